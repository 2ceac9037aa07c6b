from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from sqlalchemy import delete, func, update
from sqlmodel import Session, select

from app.domain.checklist import ChecklistRuleError, dump_checklist, merge_submitted, parse_checklist
from app.domain.models import (
    AnalysisResult,
    CustomerReport,
    CustomerReportRead,
    Decision,
    Inspection,
    InspectionCreate,
    InspectionDeleteResult,
    InspectionDetailRead,
    InspectionKnownIssue,
    InspectionKnownIssueRead,
    InspectionPhoto,
    InspectionStep,
    InspectionStepRead,
    InspectionSummaryRead,
    KnownIssueCreate,
    PhotoRead,
    ReportType,
    StepUpdate,
    VehicleDescriptor,
    VehicleKnownIssue,
    now_utc,
)
from app.domain.state_machine import (
    STEP_COUNT,
    VEHICLE_INFO_STEP,
    InspectionStatus,
    can_transition,
    is_final,
)
from app.infra.db import get_engine
from app.infra.events import event_bus
from app.infra.tenant import InspectorContext
from app.services.analysis_tracker import PHOTO_KIND, REPORT_KIND, AnalysisTracker, get_analysis_tracker
from app.services.errors import ConflictError, NotFoundError, ValidationError, commit_or_raise
from app.services.object_storage_service import ObjectStorageService
from app.services.scoring_service import compute_score
from app.services.template_service import TemplateService

logger = logging.getLogger(__name__)

REPORT_DOCUMENT_NAME = "report.html"


def vehicle_descriptor(inspection: Inspection) -> VehicleDescriptor:
    return VehicleDescriptor.model_validate(inspection, from_attributes=True)


def check_photo_slot(step: InspectionStep, photo_order: int) -> None:
    if step.max_photos <= 0:
        raise ValidationError(f"step {step.step_number} does not take photos")
    if photo_order < 1 or photo_order > step.max_photos:
        raise ValidationError(f"photo order must be between 1 and {step.max_photos}")


class InspectionService:
    def __init__(
        self,
        templates: TemplateService | None = None,
        storage: ObjectStorageService | None = None,
        tracker: AnalysisTracker | None = None,
    ) -> None:
        self._templates = templates or TemplateService()
        self._storage = storage
        self._tracker = tracker or get_analysis_tracker()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    @property
    def storage(self) -> ObjectStorageService:
        if self._storage is None:
            self._storage = ObjectStorageService()
        return self._storage

    def _get_scoped_inspection(self, session: Session, ctx: InspectorContext, inspection_id: str) -> Inspection:
        inspection = session.exec(
            select(Inspection)
            .where(Inspection.tenant_id == ctx.tenant_id)
            .where(Inspection.user_id == ctx.user_id)
            .where(Inspection.id == inspection_id)
        ).first()
        if inspection is None:
            raise NotFoundError("inspection not found")
        return inspection

    def _get_step(self, session: Session, inspection_id: str, step_number: int) -> InspectionStep:
        step = session.exec(
            select(InspectionStep)
            .where(InspectionStep.inspection_id == inspection_id)
            .where(InspectionStep.step_number == step_number)
        ).first()
        if step is None:
            raise NotFoundError("step not found")
        return step

    @staticmethod
    def _ensure_editable(inspection: Inspection) -> None:
        if is_final(inspection.status):
            raise ConflictError(f"inspection is {inspection.status}; no further edits are accepted")

    def _load_steps(self, session: Session, inspection_id: str) -> list[InspectionStep]:
        return list(
            session.exec(
                select(InspectionStep)
                .where(InspectionStep.inspection_id == inspection_id)
                .order_by(InspectionStep.step_number)
            ).all()
        )

    def _photo_read(self, photo: InspectionPhoto) -> PhotoRead:
        return PhotoRead.model_validate(photo).model_copy(
            update={"analysis_pending": self._tracker.is_pending(PHOTO_KIND, photo.id)}
        )

    def _report_read(self, report: CustomerReport) -> CustomerReportRead:
        return CustomerReportRead.model_validate(report).model_copy(
            update={"analysis_pending": self._tracker.is_pending(REPORT_KIND, report.id)}
        )

    def _step_read(self, step: InspectionStep, photos: list[InspectionPhoto]) -> InspectionStepRead:
        return InspectionStepRead.model_validate(step).model_copy(
            update={"photos": [self._photo_read(photo) for photo in photos]}
        )

    def _build_detail(self, session: Session, inspection: Inspection) -> InspectionDetailRead:
        photos_by_step: dict[str, list[InspectionPhoto]] = defaultdict(list)
        for photo in session.exec(
            select(InspectionPhoto)
            .where(InspectionPhoto.inspection_id == inspection.id)
            .order_by(InspectionPhoto.photo_order)
        ).all():
            photos_by_step[photo.step_id].append(photo)
        steps = [
            self._step_read(step, photos_by_step.get(step.id, []))
            for step in self._load_steps(session, inspection.id)
        ]
        known_issues = session.exec(
            select(InspectionKnownIssue)
            .where(InspectionKnownIssue.inspection_id == inspection.id)
            .order_by(InspectionKnownIssue.title)
        ).all()
        reports = session.exec(
            select(CustomerReport)
            .where(CustomerReport.inspection_id == inspection.id)
            .order_by(CustomerReport.report_type)
        ).all()
        return InspectionDetailRead.model_validate(inspection).model_copy(
            update={
                "steps": steps,
                "known_issues": [InspectionKnownIssueRead.model_validate(item) for item in known_issues],
                "customer_reports": [self._report_read(item) for item in reports],
                "score": compute_score(steps).to_read(),
            }
        )

    def _find_known_issues(
        self,
        session: Session,
        make: str,
        model: str,
        year: int | None,
    ) -> list[VehicleKnownIssue]:
        statement = (
            select(VehicleKnownIssue)
            .where(func.lower(VehicleKnownIssue.make) == make.strip().lower())
            .where(func.lower(VehicleKnownIssue.model) == model.strip().lower())
        )
        if year is not None:
            statement = statement.where(VehicleKnownIssue.year_start <= year).where(
                VehicleKnownIssue.year_end >= year
            )
        return list(session.exec(statement.order_by(VehicleKnownIssue.title)).all())

    def create_inspection(self, ctx: InspectorContext, payload: InspectionCreate) -> InspectionDetailRead:
        if not payload.vehicle_make.strip() or not payload.vehicle_model.strip():
            raise ValidationError("vehicle make and model are required")
        definitions = self._templates.resolve_for(ctx)

        with self._session() as session:
            inspection = Inspection(
                tenant_id=ctx.tenant_id,
                user_id=ctx.user_id,
                vehicle_year=payload.vehicle_year,
                vehicle_make=payload.vehicle_make.strip(),
                vehicle_model=payload.vehicle_model.strip(),
                vehicle_trim=payload.vehicle_trim.strip(),
                vehicle_mileage=payload.vehicle_mileage,
                vehicle_vin=payload.vehicle_vin.strip().upper(),
                vehicle_color=payload.vehicle_color.strip(),
                status=InspectionStatus.IN_PROGRESS,
                current_step=VEHICLE_INFO_STEP,
            )
            session.add(inspection)
            session.flush()
            for definition in definitions:
                session.add(
                    InspectionStep(
                        tenant_id=ctx.tenant_id,
                        inspection_id=inspection.id,
                        step_number=definition.step_number,
                        step_name=definition.step_name,
                        instructions=definition.instructions,
                        checklist=dump_checklist(definition.checklist_items),
                        photo_required=definition.photo_required,
                        max_photos=definition.max_photos,
                    )
                )

            matched: list[VehicleKnownIssue] = []
            if payload.vehicle_year is not None:
                matched = self._find_known_issues(
                    session, payload.vehicle_make, payload.vehicle_model, payload.vehicle_year
                )
            for issue in matched:
                session.add(
                    InspectionKnownIssue(
                        inspection_id=inspection.id,
                        issue_id=issue.id,
                        make=issue.make,
                        model=issue.model,
                        year_start=issue.year_start,
                        year_end=issue.year_end,
                        category=issue.category,
                        severity=issue.severity,
                        title=issue.title,
                        description=issue.description,
                        source=issue.source,
                    )
                )
            commit_or_raise(session)
            detail = self._build_detail(session, inspection)

        event_bus.publish_dict(
            "inspection.created",
            ctx.tenant_id,
            {
                "inspection_id": detail.id,
                "vehicle": vehicle_descriptor(inspection).describe(),
                "known_issue_count": len(matched),
            },
            actor_id=ctx.user_id,
        )
        return detail

    def get_inspection(self, ctx: InspectorContext, inspection_id: str) -> InspectionDetailRead:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            return self._build_detail(session, inspection)

    def get_inspection_row(self, ctx: InspectorContext, inspection_id: str) -> Inspection:
        with self._session() as session:
            return self._get_scoped_inspection(session, ctx, inspection_id)

    def get_step(self, ctx: InspectorContext, inspection_id: str, step_number: int) -> InspectionStep:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            return self._get_step(session, inspection.id, step_number)

    def list_inspections(self, ctx: InspectorContext) -> list[InspectionSummaryRead]:
        with self._session() as session:
            inspections = list(
                session.exec(
                    select(Inspection)
                    .where(Inspection.tenant_id == ctx.tenant_id)
                    .where(Inspection.user_id == ctx.user_id)
                    .order_by(Inspection.created_at.desc())
                ).all()
            )
            if not inspections:
                return []
            steps_by_inspection: dict[str, list[InspectionStep]] = defaultdict(list)
            for step in session.exec(
                select(InspectionStep).where(InspectionStep.inspection_id.in_([item.id for item in inspections]))
            ).all():
                steps_by_inspection[step.inspection_id].append(step)

        summaries: list[InspectionSummaryRead] = []
        for inspection in inspections:
            steps = [
                InspectionStepRead.model_validate(step) for step in steps_by_inspection.get(inspection.id, [])
            ]
            summaries.append(
                InspectionSummaryRead.model_validate(inspection).model_copy(
                    update={"score_percentage": compute_score(steps).percentage}
                )
            )
        return summaries

    def save_step(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        step_number: int,
        payload: StepUpdate,
    ) -> InspectionStepRead:
        """Partial step update; omitted fields keep their stored values.

        The submitted checklist is merged into the stored snapshot by item
        text so weights cannot be changed per inspection.
        """
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            self._ensure_editable(inspection)
            step = self._get_step(session, inspection.id, step_number)

            if payload.checklist is not None:
                try:
                    merged = merge_submitted(parse_checklist(step.checklist), payload.checklist)
                except ChecklistRuleError as exc:
                    raise ValidationError(str(exc)) from exc
                step.checklist = dump_checklist(merged)
            if payload.notes is not None:
                step.notes = payload.notes
            if payload.rating is not None:
                step.rating = payload.rating
            if payload.status is not None:
                step.status = payload.status
            step.updated_at = now_utc()
            inspection.updated_at = step.updated_at
            session.add(step)
            session.add(inspection)
            commit_or_raise(session)

            photos = list(
                session.exec(
                    select(InspectionPhoto)
                    .where(InspectionPhoto.step_id == step.id)
                    .order_by(InspectionPhoto.photo_order)
                ).all()
            )
            result = self._step_read(step, photos)

        event_bus.publish_dict(
            "inspection.step.saved",
            ctx.tenant_id,
            {"inspection_id": inspection_id, "step_number": step_number, "status": result.status},
            actor_id=ctx.user_id,
        )
        return result

    def set_current_step(self, ctx: InspectorContext, inspection_id: str, step_number: int) -> Inspection:
        if step_number < VEHICLE_INFO_STEP or step_number > STEP_COUNT:
            raise ValidationError(f"step number must be between {VEHICLE_INFO_STEP} and {STEP_COUNT}")
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            self._ensure_editable(inspection)
            if inspection.current_step != step_number:
                inspection.current_step = step_number
                inspection.updated_at = now_utc()
                session.add(inspection)
                commit_or_raise(session)
            return inspection

    def complete_inspection(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        overall_rating: int,
        decision: Decision | None,
        notes: str | None = None,
    ) -> Inspection:
        if overall_rating < 1 or overall_rating > 5:
            raise ValidationError("an overall rating between 1 and 5 is required to complete the inspection")
        if decision is None:
            raise ValidationError("a decision is required to complete the inspection")
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            if not can_transition(inspection.status, InspectionStatus.COMPLETED):
                raise ConflictError(f"inspection is {inspection.status}; it cannot be completed")
            inspection.status = InspectionStatus.COMPLETED
            inspection.overall_rating = overall_rating
            inspection.decision = decision
            if notes is not None:
                inspection.notes = notes
            inspection.current_step = STEP_COUNT
            inspection.updated_at = now_utc()
            session.add(inspection)
            commit_or_raise(session)

        event_bus.publish_dict(
            "inspection.completed",
            ctx.tenant_id,
            {"inspection_id": inspection_id, "decision": decision, "overall_rating": overall_rating},
            actor_id=ctx.user_id,
        )
        return inspection

    def set_report_url(self, ctx: InspectorContext, inspection_id: str, report_url: str) -> Inspection:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            if not is_final(inspection.status):
                raise ConflictError("a report can only be generated for a finished inspection")
            inspection.report_url = report_url
            inspection.updated_at = now_utc()
            session.add(inspection)
            commit_or_raise(session)
            return inspection

    def delete_inspection(self, ctx: InspectorContext, inspection_id: str) -> InspectionDeleteResult:
        """Remove the inspection and every child row.

        Returns the storage keys of the files that belonged to it; removing
        those files is left to the caller.
        """
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            photo_keys = list(
                session.exec(
                    select(InspectionPhoto.object_key).where(InspectionPhoto.inspection_id == inspection.id)
                ).all()
            )
            report_keys = list(
                session.exec(
                    select(CustomerReport.object_key).where(CustomerReport.inspection_id == inspection.id)
                ).all()
            )
            file_keys = [*photo_keys, *report_keys]
            if inspection.report_url:
                file_keys.append(self.storage.build_document_key(inspection_id=inspection.id, name=REPORT_DOCUMENT_NAME))

            session.execute(delete(InspectionPhoto).where(InspectionPhoto.inspection_id == inspection.id))
            session.execute(delete(CustomerReport).where(CustomerReport.inspection_id == inspection.id))
            session.execute(delete(InspectionKnownIssue).where(InspectionKnownIssue.inspection_id == inspection.id))
            session.execute(delete(InspectionStep).where(InspectionStep.inspection_id == inspection.id))
            session.delete(inspection)
            commit_or_raise(session)

        event_bus.publish_dict(
            "inspection.deleted",
            ctx.tenant_id,
            {"inspection_id": inspection_id, "file_count": len(file_keys)},
            actor_id=ctx.user_id,
        )
        return InspectionDeleteResult(deleted=True, photo_file_paths=file_keys)

    async def purge_inspection(self, ctx: InspectorContext, inspection_id: str) -> InspectionDeleteResult:
        """Delete the inspection, then remove its files concurrently.

        File cleanup is best-effort: failures are counted and logged but the
        metadata deletion stands.
        """
        result = await asyncio.to_thread(self.delete_inspection, ctx, inspection_id)
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self.storage.remove, [key]) for key in result.photo_file_paths),
            return_exceptions=True,
        )
        failures = 0
        for key, outcome in zip(result.photo_file_paths, outcomes):
            if isinstance(outcome, BaseException):
                failures += 1
                logger.warning("failed to remove %s for deleted inspection %s: %s", key, inspection_id, outcome)
        return result.model_copy(update={"cleanup_failures": failures})

    def get_known_issues(self, make: str, model: str, year: int | None = None) -> list[VehicleKnownIssue]:
        with self._session() as session:
            return self._find_known_issues(session, make, model, year)

    def add_known_issue(self, ctx: InspectorContext, payload: KnownIssueCreate) -> VehicleKnownIssue:
        if not payload.make.strip() or not payload.model.strip() or not payload.title.strip():
            raise ValidationError("make, model and title are required")
        if payload.year_start > payload.year_end:
            raise ValidationError("year_start must not be after year_end")
        with self._session() as session:
            issue = VehicleKnownIssue(
                make=payload.make.strip(),
                model=payload.model.strip(),
                year_start=payload.year_start,
                year_end=payload.year_end,
                category=payload.category,
                severity=payload.severity,
                title=payload.title.strip(),
                description=payload.description,
                source=payload.source,
            )
            session.add(issue)
            commit_or_raise(session)
            session.refresh(issue)
        event_bus.publish_dict(
            "reference.known_issue.created",
            ctx.tenant_id,
            {"issue_id": issue.id, "make": issue.make, "model": issue.model},
            actor_id=ctx.user_id,
        )
        return issue

    def get_photo(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        step_number: int,
        photo_order: int,
    ) -> InspectionPhoto:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            step = self._get_step(session, inspection.id, step_number)
            photo = session.exec(
                select(InspectionPhoto)
                .where(InspectionPhoto.step_id == step.id)
                .where(InspectionPhoto.photo_order == photo_order)
            ).first()
            if photo is None:
                raise NotFoundError("photo not found")
            return photo

    def photo_context(
        self,
        ctx: InspectorContext,
        photo_id: str,
    ) -> tuple[InspectionPhoto, InspectionStep, Inspection]:
        with self._session() as session:
            photo = session.get(InspectionPhoto, photo_id)
            if photo is None:
                raise NotFoundError("photo not found")
            inspection = self._get_scoped_inspection(session, ctx, photo.inspection_id)
            step = session.get(InspectionStep, photo.step_id)
            if step is None:
                raise NotFoundError("step not found")
            return photo, step, inspection

    def replace_photo(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        step_number: int,
        photo_order: int,
        *,
        object_key: str,
        photo_url: str,
        content_type: str,
    ) -> tuple[InspectionPhoto, str | None]:
        """Record a new upload for the slot, dropping any earlier row.

        Returns the new row and the storage key of the replaced upload.
        """
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            self._ensure_editable(inspection)
            step = self._get_step(session, inspection.id, step_number)
            check_photo_slot(step, photo_order)
            previous = session.exec(
                select(InspectionPhoto)
                .where(InspectionPhoto.step_id == step.id)
                .where(InspectionPhoto.photo_order == photo_order)
            ).first()
            previous_key = None
            if previous is not None:
                previous_key = previous.object_key
                session.delete(previous)
                session.flush()
            photo = InspectionPhoto(
                tenant_id=ctx.tenant_id,
                inspection_id=inspection.id,
                step_id=step.id,
                object_key=object_key,
                photo_url=photo_url,
                photo_order=photo_order,
                content_type=content_type,
            )
            session.add(photo)
            commit_or_raise(session)
            session.refresh(photo)
        return photo, previous_key

    def save_photo_analysis(self, photo_id: str, result: AnalysisResult) -> bool:
        """Write an analysis onto a photo only if the photo still exists."""
        with self._session() as session:
            outcome = session.execute(
                update(InspectionPhoto)
                .where(InspectionPhoto.id == photo_id)
                .values(ai_analysis=result.analysis, ai_verdict=result.verdict, ai_analyzed_at=now_utc())
            )
            commit_or_raise(session)
            return outcome.rowcount > 0

    def delete_photo(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        step_number: int,
        photo_order: int,
    ) -> InspectionPhoto:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            self._ensure_editable(inspection)
            step = self._get_step(session, inspection.id, step_number)
            photo = session.exec(
                select(InspectionPhoto)
                .where(InspectionPhoto.step_id == step.id)
                .where(InspectionPhoto.photo_order == photo_order)
            ).first()
            if photo is None:
                raise NotFoundError("photo not found")
            session.delete(photo)
            commit_or_raise(session)
            return photo

    def get_report(self, ctx: InspectorContext, inspection_id: str, report_type: ReportType) -> CustomerReport:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            report = session.exec(
                select(CustomerReport)
                .where(CustomerReport.inspection_id == inspection.id)
                .where(CustomerReport.report_type == report_type)
            ).first()
            if report is None:
                raise NotFoundError("report not found")
            return report

    def report_context(self, ctx: InspectorContext, report_id: str) -> tuple[CustomerReport, Inspection]:
        with self._session() as session:
            report = session.get(CustomerReport, report_id)
            if report is None:
                raise NotFoundError("report not found")
            inspection = self._get_scoped_inspection(session, ctx, report.inspection_id)
            return report, inspection

    def replace_report(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        report_type: ReportType,
        *,
        object_key: str,
        file_url: str,
        file_name: str,
        file_type: str,
    ) -> tuple[CustomerReport, str | None]:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            self._ensure_editable(inspection)
            previous = session.exec(
                select(CustomerReport)
                .where(CustomerReport.inspection_id == inspection.id)
                .where(CustomerReport.report_type == report_type)
            ).first()
            previous_key = None
            if previous is not None:
                previous_key = previous.object_key
                session.delete(previous)
                session.flush()
            report = CustomerReport(
                tenant_id=ctx.tenant_id,
                inspection_id=inspection.id,
                report_type=report_type,
                object_key=object_key,
                file_url=file_url,
                file_name=file_name,
                file_type=file_type,
            )
            session.add(report)
            commit_or_raise(session)
            session.refresh(report)
        return report, previous_key

    def save_report_analysis(self, report_id: str, result: AnalysisResult) -> bool:
        with self._session() as session:
            outcome = session.execute(
                update(CustomerReport)
                .where(CustomerReport.id == report_id)
                .values(ai_analysis=result.analysis, ai_verdict=result.verdict, ai_analyzed_at=now_utc())
            )
            commit_or_raise(session)
            return outcome.rowcount > 0

    def delete_report(self, ctx: InspectorContext, inspection_id: str, report_type: ReportType) -> CustomerReport:
        with self._session() as session:
            inspection = self._get_scoped_inspection(session, ctx, inspection_id)
            self._ensure_editable(inspection)
            report = session.exec(
                select(CustomerReport)
                .where(CustomerReport.inspection_id == inspection.id)
                .where(CustomerReport.report_type == report_type)
            ).first()
            if report is None:
                raise NotFoundError("report not found")
            session.delete(report)
            commit_or_raise(session)
            return report

    def photo_read(self, photo: InspectionPhoto) -> PhotoRead:
        return self._photo_read(photo)

    def report_read(self, report: CustomerReport) -> CustomerReportRead:
        return self._report_read(report)
