from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_context, require_perm
from app.domain.models import (
    ChecklistConfigItem,
    ChecklistPreferenceItem,
    ChecklistPreferenceRead,
    StepDefinition,
    StepTemplateRead,
)
from app.domain.permissions import PERM_CHECKLIST_WRITE, PERM_INSPECTION_READ
from app.infra.tenant import InspectorContext
from app.services.errors import ConflictError, InspectionError, NotFoundError, PersistenceError, ValidationError
from app.services.template_service import TemplateService

router = APIRouter()


def get_template_service() -> TemplateService:
    return TemplateService()


Context = Annotated[InspectorContext, Depends(get_context)]
Service = Annotated[TemplateService, Depends(get_template_service)]


def _handle_checklist_error(exc: InspectionError) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if isinstance(exc, PersistenceError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    raise exc


@router.get(
    "/templates",
    response_model=list[StepTemplateRead],
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def list_step_templates(ctx: Context, service: Service) -> list[StepTemplateRead]:
    try:
        rows = service.get_step_templates(ctx.tenant_id)
    except InspectionError as exc:
        _handle_checklist_error(exc)
        raise
    return [StepTemplateRead.model_validate(item) for item in rows]


@router.get(
    "/steps",
    response_model=list[StepDefinition],
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def resolved_steps(ctx: Context, service: Service) -> list[StepDefinition]:
    try:
        return service.resolve_for(ctx)
    except InspectionError as exc:
        _handle_checklist_error(exc)
        raise


@router.get(
    "/config",
    response_model=list[ChecklistConfigItem],
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def checklist_config(ctx: Context, service: Service) -> list[ChecklistConfigItem]:
    try:
        return service.checklist_config(ctx)
    except InspectionError as exc:
        _handle_checklist_error(exc)
        raise


@router.get(
    "/preferences",
    response_model=list[ChecklistPreferenceRead],
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def list_preferences(ctx: Context, service: Service) -> list[ChecklistPreferenceRead]:
    return [ChecklistPreferenceRead.model_validate(item) for item in service.load_preferences(ctx)]


@router.put(
    "/preferences",
    response_model=list[ChecklistPreferenceRead],
    dependencies=[Depends(require_perm(PERM_CHECKLIST_WRITE))],
)
def save_preferences(
    payload: list[ChecklistPreferenceItem],
    ctx: Context,
    service: Service,
) -> list[ChecklistPreferenceRead]:
    try:
        rows = service.save_preferences(ctx, payload)
    except InspectionError as exc:
        _handle_checklist_error(exc)
        raise
    return [ChecklistPreferenceRead.model_validate(item) for item in rows]


@router.patch(
    "/preferences",
    response_model=list[ChecklistConfigItem],
    dependencies=[Depends(require_perm(PERM_CHECKLIST_WRITE))],
)
def update_preference(
    payload: ChecklistPreferenceItem,
    ctx: Context,
    service: Service,
) -> list[ChecklistConfigItem]:
    try:
        return service.update_preference(ctx, payload)
    except InspectionError as exc:
        _handle_checklist_error(exc)
        raise
