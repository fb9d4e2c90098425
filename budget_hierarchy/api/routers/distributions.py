from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Path, status

from budget_hierarchy.api.routers.distribution_http_errors import (
    raise_distribution_http_exception,
)
from budget_hierarchy.api.routers.distributions_config import build_repository, default_currency
from budget_hierarchy.core.allocation import (
    BudgetDistributionError,
    WizardState,
    validate_percentages,
)
from budget_hierarchy.core.common.money import sum_decimals
from budget_hierarchy.core.distributions import (
    BudgetDistributionService,
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
from budget_hierarchy.core.models import GenerationResult, MediaPlanRecord

router = APIRouter(tags=["Budget Hierarchy"])

_REPOSITORY = None
_SERVICE: Optional[BudgetDistributionService] = None

PlanId = Annotated[
    str,
    Path(description="Media plan identifier.", examples=["plan_1"]),
]


def get_budget_distribution_service() -> BudgetDistributionService:
    global _REPOSITORY
    global _SERVICE
    if _REPOSITORY is None:
        _REPOSITORY = build_repository()
    if _SERVICE is None:
        _SERVICE = BudgetDistributionService(
            repository=_REPOSITORY,
            default_currency=default_currency(),
        )
    return _SERVICE


def reset_budget_distribution_service_for_tests() -> None:
    global _REPOSITORY
    global _SERVICE
    _REPOSITORY = build_repository()
    _SERVICE = None


ServiceDep = Annotated[BudgetDistributionService, Depends(get_budget_distribution_service)]


@router.put(
    "/plans/{plan_id}",
    response_model=MediaPlanRecord,
    status_code=status.HTTP_200_OK,
    summary="Create or Update Plan Settings",
    description="Stores the plan budget, currency, hierarchy order and dimension display names.",
)
def upsert_plan(
    plan_id: PlanId,
    payload: MediaPlanUpsertRequest,
    service: ServiceDep,
) -> MediaPlanRecord:
    return service.upsert_plan(plan_id=plan_id, payload=payload)


@router.get(
    "/plans/{plan_id}",
    response_model=MediaPlanRecord,
    status_code=status.HTTP_200_OK,
    summary="Get Plan Settings",
)
def get_plan(plan_id: PlanId, service: ServiceDep) -> MediaPlanRecord:
    try:
        return service.get_plan(plan_id=plan_id)
    except BudgetDistributionError as exc:
        raise_distribution_http_exception(exc)


@router.put(
    "/plans/{plan_id}/hierarchy-order",
    response_model=HierarchyView,
    status_code=status.HTTP_200_OK,
    summary="Change Hierarchy Order",
    description=(
        "Persists a new hierarchy order. Stored distributions are kept; the returned view "
        "flags them as stale and recommends regeneration."
    ),
)
def change_hierarchy_order(
    plan_id: PlanId,
    payload: HierarchyOrderRequest,
    service: ServiceDep,
) -> HierarchyView:
    try:
        return service.change_hierarchy_order(
            plan_id=plan_id, hierarchy_order=payload.hierarchy_order
        )
    except (BudgetDistributionError, ValueError) as exc:
        raise_distribution_http_exception(exc)


@router.put(
    "/plans/{plan_id}/media-lines",
    response_model=MediaLinesResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace Media Line References",
)
def replace_media_lines(
    plan_id: PlanId,
    payload: MediaLinesReplaceRequest,
    service: ServiceDep,
) -> MediaLinesResponse:
    try:
        lines = service.replace_media_lines(plan_id=plan_id, lines=payload.lines)
    except BudgetDistributionError as exc:
        raise_distribution_http_exception(exc)
    return MediaLinesResponse(plan_id=plan_id, lines=lines)


@router.get(
    "/plans/{plan_id}/media-lines",
    response_model=MediaLinesResponse,
    status_code=status.HTTP_200_OK,
    summary="List Media Line References",
)
def list_media_lines(plan_id: PlanId, service: ServiceDep) -> MediaLinesResponse:
    try:
        lines = service.list_media_lines(plan_id=plan_id)
    except BudgetDistributionError as exc:
        raise_distribution_http_exception(exc)
    return MediaLinesResponse(plan_id=plan_id, lines=lines)


@router.get(
    "/plans/{plan_id}/hierarchy",
    response_model=HierarchyView,
    status_code=status.HTTP_200_OK,
    summary="Get Budget Hierarchy Tree",
    description=(
        "Rebuilds the allocation tree from stored rows. Rows that no longer fit the "
        "hierarchy order are dropped and listed in warnings."
    ),
)
def get_hierarchy(plan_id: PlanId, service: ServiceDep) -> HierarchyView:
    try:
        return service.get_hierarchy(plan_id=plan_id)
    except BudgetDistributionError as exc:
        raise_distribution_http_exception(exc)


@router.get(
    "/plans/{plan_id}/hierarchy/rows",
    response_model=HierarchyRowsView,
    status_code=status.HTTP_200_OK,
    summary="Get Budget Hierarchy Table Rows",
)
def get_hierarchy_rows(plan_id: PlanId, service: ServiceDep) -> HierarchyRowsView:
    try:
        return service.get_hierarchy_rows(plan_id=plan_id)
    except BudgetDistributionError as exc:
        raise_distribution_http_exception(exc)


@router.get(
    "/plans/{plan_id}/distributions/wizard-state",
    response_model=WizardState,
    status_code=status.HTTP_200_OK,
    summary="Get Wizard State From Stored Distributions",
)
def get_wizard_state(plan_id: PlanId, service: ServiceDep) -> WizardState:
    try:
        return service.get_wizard_state(plan_id=plan_id)
    except BudgetDistributionError as exc:
        raise_distribution_http_exception(exc)


@router.post(
    "/plans/{plan_id}/distributions/generate",
    response_model=GenerationResult,
    status_code=status.HTTP_200_OK,
    summary="Generate Distributions From Media Lines",
    description=(
        "Groups the plan's media lines per hierarchy level and persists the resulting tree. "
        "Partial writes are reported through count, expected_count and failures."
    ),
)
def generate_distributions(
    plan_id: PlanId,
    service: ServiceDep,
    payload: Annotated[Optional[GenerateDistributionsRequest], Body()] = None,
) -> GenerationResult:
    request = payload or GenerateDistributionsRequest()
    try:
        return service.generate_from_lines(plan_id=plan_id, clear_existing=request.clear_existing)
    except BudgetDistributionError as exc:
        raise_distribution_http_exception(exc)


@router.post(
    "/plans/{plan_id}/distributions/orphans",
    response_model=OrphanPreviewResponse,
    status_code=status.HTTP_200_OK,
    summary="Preview Orphaned Media Lines",
    description="Lists media lines whose references the proposed allocations no longer contain.",
)
def preview_orphans(
    plan_id: PlanId,
    payload: WizardAllocationsPayload,
    service: ServiceDep,
) -> OrphanPreviewResponse:
    try:
        report = service.preview_orphans(plan_id=plan_id, payload=payload)
    except (BudgetDistributionError, ValueError) as exc:
        raise_distribution_http_exception(exc)
    return OrphanPreviewResponse(plan_id=plan_id, **report.model_dump())


@router.put(
    "/plans/{plan_id}/distributions",
    response_model=WizardSaveResult,
    status_code=status.HTTP_200_OK,
    summary="Save Wizard Allocations",
    description=(
        "Validates sibling percentages, checks for orphaned media lines and replaces the "
        "stored tree. Orphans require confirm_orphan_removal=true, otherwise 409 is returned "
        "with the orphan report."
    ),
)
def save_wizard_allocations(
    plan_id: PlanId,
    payload: SaveWizardAllocationsRequest,
    service: ServiceDep,
) -> WizardSaveResult:
    try:
        return service.save_wizard_allocations(plan_id=plan_id, payload=payload)
    except (BudgetDistributionError, ValueError) as exc:
        raise_distribution_http_exception(exc)


@router.post(
    "/distributions/validate-percentages",
    response_model=PercentageValidationResponse,
    status_code=status.HTTP_200_OK,
    summary="Validate Sibling Percentages",
)
def validate_sibling_percentages(
    payload: PercentageValidationRequest,
) -> PercentageValidationResponse:
    return PercentageValidationResponse(
        valid=validate_percentages(payload.items),
        total=sum_decimals(item.percentage for item in payload.items),
    )
