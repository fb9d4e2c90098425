from typing import NoReturn

from fastapi import HTTPException, status

from budget_hierarchy.core.allocation import (
    AllocationValidationError,
    DistributionsAlreadyExistError,
    OrphanConfirmationRequiredError,
    PlanNotFoundError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_distribution_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, PlanNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, OrphanConfirmationRequiredError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": str(exc),
                "orphans": exc.report.model_dump(mode="json"),
            },
        ) from exc
    if isinstance(exc, DistributionsAlreadyExistError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, AllocationValidationError):
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail={"code": str(exc), "problems": exc.problems},
        ) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    raise exc
