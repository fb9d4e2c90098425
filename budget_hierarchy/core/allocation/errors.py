from typing import Optional

from budget_hierarchy.core.models import OrphanReport


class BudgetDistributionError(Exception):
    pass


class PlanNotFoundError(BudgetDistributionError):
    pass


class DistributionsAlreadyExistError(BudgetDistributionError):
    pass


class AllocationValidationError(BudgetDistributionError):
    def __init__(self, message: str, *, problems: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [])


class OrphanConfirmationRequiredError(BudgetDistributionError):
    def __init__(self, report: OrphanReport) -> None:
        super().__init__("ORPHAN_LINES_CONFIRMATION_REQUIRED")
        self.report = report
