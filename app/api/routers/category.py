from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import require_perm
from app.domain.models import CategoryCreate, CategoryRead
from app.domain.permissions import PERM_INSPECTION_READ, PERM_REFERENCE_WRITE
from app.services.errors import ConflictError, InspectionError, NotFoundError, ValidationError
from app.services.template_service import TemplateService

router = APIRouter()


def get_template_service() -> TemplateService:
    return TemplateService()


Service = Annotated[TemplateService, Depends(get_template_service)]


def _handle_category_error(exc: InspectionError) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    raise exc


@router.post(
    "",
    response_model=CategoryRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_REFERENCE_WRITE))],
)
def create_category(payload: CategoryCreate, service: Service) -> CategoryRead:
    try:
        row = service.create_category(payload)
    except InspectionError as exc:
        _handle_category_error(exc)
        raise
    return CategoryRead.model_validate(row)


@router.get(
    "",
    response_model=list[CategoryRead],
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def list_categories(service: Service) -> list[CategoryRead]:
    return [CategoryRead.model_validate(item) for item in service.list_categories()]


@router.get(
    "/{category_id}",
    response_model=CategoryRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def get_category(category_id: str, service: Service) -> CategoryRead:
    try:
        row = service.get_category(category_id)
    except InspectionError as exc:
        _handle_category_error(exc)
        raise
    return CategoryRead.model_validate(row)
