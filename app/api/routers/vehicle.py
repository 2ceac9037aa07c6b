from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_context, require_perm
from app.domain.models import KnownIssueCreate, KnownIssueRead
from app.domain.permissions import PERM_INSPECTION_READ, PERM_REFERENCE_WRITE
from app.infra.tenant import InspectorContext
from app.services.errors import InspectionError, ValidationError
from app.services.inspection_service import InspectionService

router = APIRouter()


def get_inspection_service() -> InspectionService:
    return InspectionService()


Context = Annotated[InspectorContext, Depends(get_context)]
Service = Annotated[InspectionService, Depends(get_inspection_service)]


@router.get(
    "/known-issues",
    response_model=list[KnownIssueRead],
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def list_known_issues(
    service: Service,
    make: str = Query(min_length=1),
    model: str = Query(min_length=1),
    year: int | None = Query(default=None, ge=1900, le=2100),
) -> list[KnownIssueRead]:
    rows = service.get_known_issues(make, model, year)
    return [KnownIssueRead.model_validate(item) for item in rows]


@router.post(
    "/known-issues",
    response_model=KnownIssueRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_REFERENCE_WRITE))],
)
def add_known_issue(payload: KnownIssueCreate, ctx: Context, service: Service) -> KnownIssueRead:
    try:
        row = service.add_known_issue(ctx, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except InspectionError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return KnownIssueRead.model_validate(row)
