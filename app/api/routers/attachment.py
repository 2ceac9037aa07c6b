from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Response, UploadFile, status
from fastapi.responses import FileResponse

from app.api.deps import get_context, require_perm
from app.domain.models import CustomerReportRead, PhotoRead, ReportType
from app.domain.permissions import PERM_INSPECTION_READ, PERM_INSPECTION_WRITE
from app.infra.tenant import InspectorContext
from app.services.attachment_service import AttachmentService
from app.services.errors import (
    AttachmentError,
    ConflictError,
    InspectionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

router = APIRouter()
files_router = APIRouter()


def get_attachment_service() -> AttachmentService:
    return AttachmentService()


Context = Annotated[InspectorContext, Depends(get_context)]
Service = Annotated[AttachmentService, Depends(get_attachment_service)]


def _handle_attachment_error(exc: InspectionError) -> None:
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


async def _run_photo_analysis(service: AttachmentService, ctx: InspectorContext, photo_id: str) -> None:
    try:
        await service.analyze_photo(ctx, photo_id)
    finally:
        await service.close()


async def _run_report_analysis(service: AttachmentService, ctx: InspectorContext, report_id: str) -> None:
    try:
        await service.analyze_report(ctx, report_id)
    finally:
        await service.close()


@router.put(
    "/{inspection_id}/steps/{step_number}/photos/{photo_order}",
    response_model=PhotoRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
async def attach_photo(
    inspection_id: str,
    step_number: int,
    photo_order: int,
    background_tasks: BackgroundTasks,
    ctx: Context,
    service: Service,
    file: UploadFile = File(...),
) -> PhotoRead:
    content = await file.read()
    try:
        photo = service.attach_photo(ctx, inspection_id, step_number, photo_order, content, file.content_type)
    except InspectionError as exc:
        _handle_attachment_error(exc)
        raise
    background_tasks.add_task(_run_photo_analysis, service, ctx, photo.id)
    return photo


@router.post(
    "/{inspection_id}/steps/{step_number}/photos/{photo_order}/analyze",
    response_model=PhotoRead,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def analyze_photo(
    inspection_id: str,
    step_number: int,
    photo_order: int,
    background_tasks: BackgroundTasks,
    ctx: Context,
    service: Service,
) -> PhotoRead:
    try:
        photo = service.request_photo_analysis(ctx, inspection_id, step_number, photo_order)
    except InspectionError as exc:
        _handle_attachment_error(exc)
        raise
    background_tasks.add_task(_run_photo_analysis, service, ctx, photo.id)
    return photo


@router.delete(
    "/{inspection_id}/steps/{step_number}/photos/{photo_order}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def detach_photo(
    inspection_id: str,
    step_number: int,
    photo_order: int,
    ctx: Context,
    service: Service,
) -> Response:
    try:
        service.detach_photo(ctx, inspection_id, step_number, photo_order)
    except InspectionError as exc:
        _handle_attachment_error(exc)
        raise
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{inspection_id}/reports/{report_type}",
    response_model=CustomerReportRead,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
async def attach_report(
    inspection_id: str,
    report_type: ReportType,
    background_tasks: BackgroundTasks,
    ctx: Context,
    service: Service,
    file: UploadFile = File(...),
) -> CustomerReportRead:
    content = await file.read()
    try:
        report = service.attach_report(
            ctx,
            inspection_id,
            report_type,
            content,
            file.content_type,
            file.filename,
        )
    except InspectionError as exc:
        _handle_attachment_error(exc)
        raise
    background_tasks.add_task(_run_report_analysis, service, ctx, report.id)
    return report


@router.post(
    "/{inspection_id}/reports/{report_type}/analyze",
    response_model=CustomerReportRead,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def analyze_report(
    inspection_id: str,
    report_type: ReportType,
    background_tasks: BackgroundTasks,
    ctx: Context,
    service: Service,
) -> CustomerReportRead:
    try:
        report = service.request_report_analysis(ctx, inspection_id, report_type)
    except InspectionError as exc:
        _handle_attachment_error(exc)
        raise
    background_tasks.add_task(_run_report_analysis, service, ctx, report.id)
    return report


@router.delete(
    "/{inspection_id}/reports/{report_type}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_perm(PERM_INSPECTION_WRITE))],
)
def detach_report(
    inspection_id: str,
    report_type: ReportType,
    ctx: Context,
    service: Service,
) -> Response:
    try:
        service.detach_report(ctx, inspection_id, report_type)
    except InspectionError as exc:
        _handle_attachment_error(exc)
        raise
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@files_router.get(
    "/{object_key:path}",
    dependencies=[Depends(require_perm(PERM_INSPECTION_READ))],
)
def download_file(object_key: str, ctx: Context, service: Service) -> FileResponse:
    try:
        path = service.open_file(ctx, object_key)
    except InspectionError as exc:
        _handle_attachment_error(exc)
        raise
    return FileResponse(path=path, filename=path.name)
