from budget_hierarchy.core.distributions.models import (
    GenerateDistributionsRequest,
    HierarchyOrderRequest,
    HierarchyRowsView,
    HierarchyView,
    MediaLinesReplaceRequest,
    MediaLinesResponse,
    MediaPlanUpsertRequest,
    OrphanPreviewResponse,
    PercentageValidationRequest,
    PercentageValidationResponse,
    SaveWizardAllocationsRequest,
    WizardAllocationsPayload,
    WizardSaveResult,
)
from budget_hierarchy.core.distributions.service import BudgetDistributionService

__all__ = [
    "BudgetDistributionService",
    "GenerateDistributionsRequest",
    "HierarchyOrderRequest",
    "HierarchyRowsView",
    "HierarchyView",
    "MediaLinesReplaceRequest",
    "MediaLinesResponse",
    "MediaPlanUpsertRequest",
    "OrphanPreviewResponse",
    "PercentageValidationRequest",
    "PercentageValidationResponse",
    "SaveWizardAllocationsRequest",
    "WizardAllocationsPayload",
    "WizardSaveResult",
]
