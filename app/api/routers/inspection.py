from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_context, require_perm
from app.domain.models import (
    InspectionCreate,
    InspectionDeleteResult,
    InspectionDetailRead,
    InspectionReportRead,
    InspectionStepRead,
    InspectionSummaryRead,
    ScoreRead,
    StepUpdate,
    WizardAdvanceRequest,
    WizardJumpRequest,
    WizardStepPayload,
    WizardTransitionRead,
)
from app.domain.permissions import PERM_INSPECTION_READ, PERM_INSPECTION_WRITE
from app.infra.tenant import InspectorContext
from app.services.errors import (
    AttachmentError,
    ConflictError,
    InspectionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.services.inspection_service import InspectionService
from app.services.report_service import ReportService
from app.services.scoring_service import compute_score
from app.services.wizard_service import WizardService

router = APIRouter()


def get_inspection_service() -> InspectionService:
    return InspectionService()


def get_wizard_service() -> WizardService:
    return WizardService()


def get_report_service() -> ReportService:
    return ReportService()


Context = Annotated[InspectorContext, Depends(get_context)]
Service = Annotated[InspectionService, Depends(get_inspection_service)]
Wizard = Annotated[WizardService, Depends(get_wizard_service)]
Reports = Annotated[ReportService, Depends(get_report_service)]


def _handle_inspection_error(exc: InspectionError) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if isinstance(exc, AttachmentError):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if isinstance(exc, PersistenceError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    raise exc


@router.post(
    "",
    response_model=InspectionDetailRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def create_inspection(payload: InspectionCreate, ctx: Context, service: Service) -> InspectionDetailRead:
    try:
        return service.create_inspection(ctx, payload)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.get(
    "",
    response_model=list[InspectionSummaryRead],
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def list_inspections(ctx: Context, service: Service) -> list[InspectionSummaryRead]:
    return service.list_inspections(ctx)


@router.get(
    "/{inspection_id}",
    response_model=InspectionDetailRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def get_inspection(inspection_id: str, ctx: Context, service: Service) -> InspectionDetailRead:
    try:
        return service.get_inspection(ctx, inspection_id)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.delete(
    "/{inspection_id}",
    response_model=InspectionDeleteResult,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
async def delete_inspection(inspection_id: str, ctx: Context, service: Service) -> InspectionDeleteResult:
    try:
        return await service.purge_inspection(ctx, inspection_id)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.get(
    "/{inspection_id}/score",
    response_model=ScoreRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def get_score(inspection_id: str, ctx: Context, service: Service) -> ScoreRead:
    try:
        detail = service.get_inspection(ctx, inspection_id)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise
    return compute_score(detail.steps).to_read()


@router.patch(
    "/{inspection_id}/steps/{step_number}",
    response_model=InspectionStepRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def save_step(
    inspection_id: str,
    step_number: int,
    payload: StepUpdate,
    ctx: Context,
    service: Service,
) -> InspectionStepRead:
    try:
        return service.save_step(ctx, inspection_id, step_number, payload)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.post(
    "/{inspection_id}/wizard/advance",
    response_model=WizardTransitionRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def advance(
    inspection_id: str,
    payload: WizardAdvanceRequest,
    ctx: Context,
    wizard: Wizard,
) -> WizardTransitionRead:
    try:
        return wizard.advance(ctx, inspection_id, payload)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.post(
    "/{inspection_id}/wizard/retreat",
    response_model=WizardTransitionRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def retreat(
    inspection_id: str,
    payload: WizardStepPayload,
    ctx: Context,
    wizard: Wizard,
) -> WizardTransitionRead:
    try:
        return wizard.retreat(ctx, inspection_id, payload)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.post(
    "/{inspection_id}/wizard/save",
    response_model=WizardTransitionRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def save(
    inspection_id: str,
    payload: WizardStepPayload,
    ctx: Context,
    wizard: Wizard,
) -> WizardTransitionRead:
    try:
        return wizard.save(ctx, inspection_id, payload)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.post(
    "/{inspection_id}/wizard/jump",
    response_model=WizardTransitionRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def jump(
    inspection_id: str,
    payload: WizardJumpRequest,
    ctx: Context,
    wizard: Wizard,
) -> WizardTransitionRead:
    try:
        return wizard.jump_to(ctx, inspection_id, payload.step_number)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise


@router.post(
    "/{inspection_id}/report",
    response_model=InspectionReportRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def generate_report(inspection_id: str, ctx: Context, reports: Reports) -> InspectionReportRead:
    try:
        return reports.generate_report(ctx, inspection_id)
    except InspectionError as exc:
        _handle_inspection_error(exc)
        raise
