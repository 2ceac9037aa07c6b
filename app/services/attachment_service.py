"""Step photos and customer reports.

Uploads are stored first and recorded second. Analysis runs afterwards as
a separate coroutine keyed by the attachment id; a result is only written
back while that exact attachment row still exists, so results for deleted
or replaced uploads are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from app.domain.models import AnalysisResult, CustomerReportRead, PhotoRead, ReportType
from app.domain.state_machine import is_final
from app.infra.events import event_bus
from app.infra.tenant import InspectorContext
from app.services.analysis_service import AnalysisConfigError, AnalysisService, build_photo_prompt, build_report_prompt
from app.services.analysis_tracker import PHOTO_KIND, REPORT_KIND, AnalysisTracker, get_analysis_tracker
from app.services.errors import AttachmentError, ConflictError, InspectionError, NotFoundError, ValidationError
from app.services.inspection_service import InspectionService, check_photo_slot, vehicle_descriptor
from app.services.object_storage_service import (
    ObjectStorageError,
    ObjectStorageNotFoundError,
    ObjectStorageService,
)

logger = logging.getLogger(__name__)

DOCUMENT_MIME_TYPES = {"application/pdf"}


def normalize_content_type(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def is_image(content_type: str) -> bool:
    return content_type.startswith("image/")


class AttachmentService:
    def __init__(
        self,
        inspections: InspectionService | None = None,
        storage: ObjectStorageService | None = None,
        analysis: AnalysisService | None = None,
        tracker: AnalysisTracker | None = None,
    ) -> None:
        self._storage = storage or ObjectStorageService()
        self._tracker = tracker or get_analysis_tracker()
        self._inspections = inspections or InspectionService(storage=self._storage, tracker=self._tracker)
        self._analysis = analysis

    def _get_analysis(self) -> AnalysisService:
        if self._analysis is None:
            self._analysis = AnalysisService()
        return self._analysis

    def _ensure_open(self, ctx: InspectorContext, inspection_id: str) -> None:
        inspection = self._inspections.get_inspection_row(ctx, inspection_id)
        if is_final(inspection.status):
            raise ConflictError(f"inspection is {inspection.status}; attachments can no longer change")

    def _store(self, object_key: str, content: bytes, content_type: str) -> str:
        try:
            return self._storage.put(object_key, content, content_type).public_url
        except ObjectStorageError as exc:
            raise AttachmentError(f"failed to store {object_key}") from exc

    def _remove_quietly(self, object_keys: list[str]) -> None:
        try:
            self._storage.remove(object_keys)
        except ObjectStorageError as exc:
            logger.warning("failed to remove %s: %s", ", ".join(object_keys), exc)

    def _snapshot(self, object_key: str) -> bytes | None:
        try:
            return self._storage.read(object_key)
        except ObjectStorageError:
            return None

    def _restore(self, object_key: str, previous: bytes | None, content_type: str) -> None:
        """Put a slot's file back the way it was before a failed replacement."""
        try:
            if previous is None:
                self._storage.remove([object_key])
            else:
                self._storage.put(object_key, previous, content_type)
        except ObjectStorageError as exc:
            logger.warning("failed to restore %s after a rejected upload: %s", object_key, exc)

    def _mark_pending(self, kind: str, attachment_id: str) -> None:
        try:
            self._tracker.start(kind, attachment_id)
        except Exception:
            logger.warning("could not mark %s %s as pending", kind, attachment_id, exc_info=True)

    def _clear_pending(self, kind: str, attachment_id: str) -> None:
        try:
            self._tracker.finish(kind, attachment_id)
        except Exception:
            logger.warning("could not clear pending mark for %s %s", kind, attachment_id, exc_info=True)

    def attach_photo(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        step_number: int,
        photo_order: int,
        content: bytes,
        content_type: str | None,
        *,
        analyze: bool = True,
    ) -> PhotoRead:
        """Store a photo in its slot, replacing any earlier upload.

        With ``analyze`` the photo is reported as pending until the caller's
        scheduled ``analyze_photo`` finishes.
        """
        mime_type = normalize_content_type(content_type)
        if not is_image(mime_type):
            raise ValidationError("photos must be images")
        if not content:
            raise ValidationError("uploaded file is empty")
        self._ensure_open(ctx, inspection_id)
        step = self._inspections.get_step(ctx, inspection_id, step_number)
        check_photo_slot(step, photo_order)

        object_key = self._storage.build_photo_key(
            inspection_id=inspection_id,
            step_number=step_number,
            photo_order=photo_order,
            content_type=mime_type,
        )
        previous_content = self._snapshot(object_key)
        photo_url = self._store(object_key, content, mime_type)
        try:
            photo, previous_key = self._inspections.replace_photo(
                ctx,
                inspection_id,
                step_number,
                photo_order,
                object_key=object_key,
                photo_url=photo_url,
                content_type=mime_type,
            )
        except InspectionError:
            self._restore(object_key, previous_content, mime_type)
            raise
        if previous_key is not None and previous_key != object_key:
            self._remove_quietly([previous_key])
        if analyze:
            self._mark_pending(PHOTO_KIND, photo.id)

        event_bus.publish_dict(
            "attachment.photo.attached",
            ctx.tenant_id,
            {
                "inspection_id": inspection_id,
                "step_number": step_number,
                "photo_order": photo_order,
                "photo_id": photo.id,
            },
            actor_id=ctx.user_id,
        )
        return self._inspections.photo_read(photo)

    def request_photo_analysis(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        step_number: int,
        photo_order: int,
    ) -> PhotoRead:
        photo = self._inspections.get_photo(ctx, inspection_id, step_number, photo_order)
        self._mark_pending(PHOTO_KIND, photo.id)
        return self._inspections.photo_read(photo)

    def detach_photo(self, ctx: InspectorContext, inspection_id: str, step_number: int, photo_order: int) -> None:
        photo = self._inspections.delete_photo(ctx, inspection_id, step_number, photo_order)
        self._remove_quietly([photo.object_key])
        event_bus.publish_dict(
            "attachment.photo.detached",
            ctx.tenant_id,
            {
                "inspection_id": inspection_id,
                "step_number": step_number,
                "photo_order": photo_order,
                "photo_id": photo.id,
            },
            actor_id=ctx.user_id,
        )

    async def analyze_photo(self, ctx: InspectorContext, photo_id: str) -> AnalysisResult | None:
        """Analyze a stored photo and annotate it; never raises."""
        self._mark_pending(PHOTO_KIND, photo_id)
        try:
            return await self._analyze_photo(ctx, photo_id)
        except Exception:
            logger.exception("photo analysis for %s failed", photo_id)
            return None
        finally:
            self._clear_pending(PHOTO_KIND, photo_id)

    async def _analyze_photo(self, ctx: InspectorContext, photo_id: str) -> AnalysisResult | None:
        try:
            photo, step, inspection = self._inspections.photo_context(ctx, photo_id)
            content = await asyncio.to_thread(self._storage.read, photo.object_key)
            analysis = self._get_analysis()
        except (InspectionError, ObjectStorageError, AnalysisConfigError) as exc:
            logger.warning("photo %s cannot be analyzed: %s", photo_id, exc)
            return None

        prompt = build_photo_prompt(vehicle_descriptor(inspection), step.step_name, step.instructions)
        result = await analysis.analyze(content=content, mime_type=photo.content_type, prompt=prompt)
        if result is None:
            return None
        if not self._inspections.save_photo_analysis(photo_id, result):
            logger.info("discarding analysis for photo %s; it was removed or replaced", photo_id)
            return None

        event_bus.publish_dict(
            "attachment.photo.analyzed",
            ctx.tenant_id,
            {"inspection_id": photo.inspection_id, "photo_id": photo_id, "verdict": result.verdict},
            actor_id=ctx.user_id,
        )
        return result

    def attach_report(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        report_type: ReportType,
        content: bytes,
        content_type: str | None,
        file_name: str | None = None,
        *,
        analyze: bool = True,
    ) -> CustomerReportRead:
        mime_type = normalize_content_type(content_type)
        if not is_image(mime_type) and mime_type not in DOCUMENT_MIME_TYPES:
            raise ValidationError("reports must be an image or a PDF")
        if not content:
            raise ValidationError("uploaded file is empty")
        self._ensure_open(ctx, inspection_id)

        object_key = self._storage.build_report_key(
            inspection_id=inspection_id,
            report_type=report_type,
            content_type=mime_type,
            file_name=file_name,
        )
        previous_content = self._snapshot(object_key)
        file_url = self._store(object_key, content, mime_type)
        try:
            report, previous_key = self._inspections.replace_report(
                ctx,
                inspection_id,
                report_type,
                object_key=object_key,
                file_url=file_url,
                file_name=file_name or object_key.rsplit("/", 1)[-1],
                file_type=mime_type,
            )
        except InspectionError:
            self._restore(object_key, previous_content, mime_type)
            raise

        # One file per report type; drop copies stored under another extension.
        stale = [
            key
            for key in self._storage.list_keys(self._storage.reports_prefix(inspection_id))
            if key != object_key and key.rsplit("/", 1)[-1].split(".", 1)[0] == report_type
        ]
        if previous_key is not None and previous_key != object_key and previous_key not in stale:
            stale.append(previous_key)
        if stale:
            self._remove_quietly(stale)
        if analyze:
            self._mark_pending(REPORT_KIND, report.id)

        event_bus.publish_dict(
            "attachment.report.attached",
            ctx.tenant_id,
            {"inspection_id": inspection_id, "report_type": report_type, "report_id": report.id},
            actor_id=ctx.user_id,
        )
        return self._inspections.report_read(report)

    def request_report_analysis(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        report_type: ReportType,
    ) -> CustomerReportRead:
        report = self._inspections.get_report(ctx, inspection_id, report_type)
        self._mark_pending(REPORT_KIND, report.id)
        return self._inspections.report_read(report)

    def open_file(self, ctx: InspectorContext, object_key: str) -> Path:
        """Resolve a stored file the caller may read."""
        inspection_id = object_key.split("/", 1)[0]
        self._inspections.get_inspection_row(ctx, inspection_id)
        try:
            return self._storage.get_download_path(object_key)
        except ObjectStorageNotFoundError as exc:
            raise NotFoundError("file not found") from exc
        except ObjectStorageError as exc:
            raise ValidationError(str(exc)) from exc

    def detach_report(self, ctx: InspectorContext, inspection_id: str, report_type: ReportType) -> None:
        report = self._inspections.delete_report(ctx, inspection_id, report_type)
        self._remove_quietly([report.object_key])
        event_bus.publish_dict(
            "attachment.report.detached",
            ctx.tenant_id,
            {"inspection_id": inspection_id, "report_type": report_type, "report_id": report.id},
            actor_id=ctx.user_id,
        )

    async def analyze_report(self, ctx: InspectorContext, report_id: str) -> AnalysisResult | None:
        """Analyze a customer report and annotate it; never raises."""
        self._mark_pending(REPORT_KIND, report_id)
        try:
            return await self._analyze_report(ctx, report_id)
        except Exception:
            logger.exception("report analysis for %s failed", report_id)
            return None
        finally:
            self._clear_pending(REPORT_KIND, report_id)

    async def _analyze_report(self, ctx: InspectorContext, report_id: str) -> AnalysisResult | None:
        try:
            report, inspection = self._inspections.report_context(ctx, report_id)
            content = await asyncio.to_thread(self._storage.read, report.object_key)
            analysis = self._get_analysis()
        except (InspectionError, ObjectStorageError, AnalysisConfigError) as exc:
            logger.warning("report %s cannot be analyzed: %s", report_id, exc)
            return None

        prompt = build_report_prompt(vehicle_descriptor(inspection), report.report_type)
        result = await analysis.analyze(content=content, mime_type=report.file_type, prompt=prompt)
        if result is None:
            return None
        if not self._inspections.save_report_analysis(report_id, result):
            logger.info("discarding analysis for report %s; it was removed or replaced", report_id)
            return None

        event_bus.publish_dict(
            "attachment.report.analyzed",
            ctx.tenant_id,
            {
                "inspection_id": report.inspection_id,
                "report_id": report_id,
                "report_type": report.report_type,
                "verdict": result.verdict,
            },
            actor_id=ctx.user_id,
        )
        return result

    async def close(self) -> None:
        if self._analysis is not None:
            await self._analysis.close()
