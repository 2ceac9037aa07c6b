from __future__ import annotations

from datetime import UTC, datetime
from html import escape

from app.domain.checklist import WEIGHT_EXCLUDED, WEIGHT_HIGH
from app.domain.models import InspectionDetailRead, InspectionReportRead, InspectionStepRead
from app.domain.state_machine import VEHICLE_INFO_STEP, is_final
from app.infra.events import event_bus
from app.infra.tenant import InspectorContext
from app.services.errors import AttachmentError, ConflictError
from app.services.inspection_service import REPORT_DOCUMENT_NAME, InspectionService
from app.services.object_storage_service import ObjectStorageError, ObjectStorageService

DECISION_LABELS = {"interested": "Interested", "pass": "Pass"}


class ReportService:
    def __init__(
        self,
        inspections: InspectionService | None = None,
        storage: ObjectStorageService | None = None,
    ) -> None:
        self._storage = storage or ObjectStorageService()
        self._inspections = inspections or InspectionService(storage=self._storage)

    def generate_report(self, ctx: InspectorContext, inspection_id: str) -> InspectionReportRead:
        detail = self._inspections.get_inspection(ctx, inspection_id)
        if not is_final(detail.status):
            raise ConflictError("a report can only be generated for a finished inspection")

        object_key = self._storage.build_document_key(inspection_id=detail.id, name=REPORT_DOCUMENT_NAME)
        html = self.render_html(detail)
        try:
            meta = self._storage.put(object_key, html.encode("utf-8"), "text/html")
        except ObjectStorageError as exc:
            raise AttachmentError("failed to store report") from exc
        self._inspections.set_report_url(ctx, detail.id, meta.public_url)

        event_bus.publish_dict(
            "inspection.report.generated",
            ctx.tenant_id,
            {"inspection_id": detail.id, "report_url": meta.public_url},
            actor_id=ctx.user_id,
        )
        return InspectionReportRead(inspection_id=detail.id, report_url=meta.public_url, object_key=object_key)

    def render_html(self, detail: InspectionDetailRead) -> str:
        vehicle = " ".join(
            str(part) for part in (detail.vehicle_year, detail.vehicle_make, detail.vehicle_model, detail.vehicle_trim) if part
        )
        score = detail.score
        if score is None or score.percentage is None:
            score_text = "n/a"
        else:
            score_text = f"{score.percentage}% ({score.tier})"
        decision = DECISION_LABELS.get(str(detail.decision), "-") if detail.decision else "-"
        generated_at = datetime.now(UTC).isoformat()

        facts = [
            ("Mileage", f"{detail.vehicle_mileage:,}" if detail.vehicle_mileage is not None else "-"),
            ("VIN", detail.vehicle_vin or "-"),
            ("Color", detail.vehicle_color or "-"),
            ("Status", str(detail.status)),
            ("Decision", decision),
            ("Overall rating", f"{detail.overall_rating}/5" if detail.overall_rating else "-"),
            ("Weighted score", score_text),
        ]
        fact_rows = "\n".join(f"<tr><th>{escape(label)}</th><td>{escape(value)}</td></tr>" for label, value in facts)

        sections = [
            "<html><head><meta charset='utf-8'>"
            f"<title>Inspection Report: {escape(vehicle)}</title></head><body>",
            f"<h1>{escape(vehicle)}</h1>",
            f"<p>Inspection ID: {escape(detail.id)}</p>",
            f"<p>Generated At: {generated_at}</p>",
            f"<table border='1' cellpadding='6' cellspacing='0'>{fact_rows}</table>",
        ]
        if detail.notes:
            sections.append(f"<h2>Notes</h2><p>{escape(detail.notes)}</p>")
        if detail.known_issues:
            issues = "\n".join(
                "<tr>"
                f"<td>{escape(item.severity)}</td>"
                f"<td>{escape(item.category)}</td>"
                f"<td>{escape(item.title)}</td>"
                f"<td>{escape(item.description)}</td>"
                "</tr>"
                for item in detail.known_issues
            )
            sections.append(
                "<h2>Known Issues</h2><table border='1' cellpadding='6' cellspacing='0'>"
                "<thead><tr><th>Severity</th><th>Category</th><th>Issue</th><th>Details</th></tr></thead>"
                f"<tbody>{issues}</tbody></table>"
            )
        if detail.customer_reports:
            reports = "\n".join(
                "<tr>"
                f"<td>{escape(item.report_type)}</td>"
                f"<td>{escape(item.ai_verdict or 'pending')}</td>"
                f"<td>{escape(item.ai_analysis or 'Analysis not available.')}</td>"
                "</tr>"
                for item in detail.customer_reports
            )
            sections.append(
                "<h2>Customer Reports</h2><table border='1' cellpadding='6' cellspacing='0'>"
                "<thead><tr><th>Report</th><th>Verdict</th><th>Summary</th></tr></thead>"
                f"<tbody>{reports}</tbody></table>"
            )
        for step in detail.steps:
            if step.step_number == VEHICLE_INFO_STEP:
                continue
            sections.append(self._render_step(step))
        sections.append("</body></html>")
        return "\n".join(sections)

    def _render_step(self, step: InspectionStepRead) -> str:
        rows = []
        for item in step.checklist:
            if item.weight == WEIGHT_EXCLUDED:
                continue
            marker = " *" if item.weight == WEIGHT_HIGH else ""
            rows.append(
                "<tr>"
                f"<td>{escape(item.item)}{marker}</td>"
                f"<td>{'yes' if item.checked else 'no'}</td>"
                f"<td>{item.rating}/5</td>"
                f"<td>{escape(item.note)}</td>"
                "</tr>"
            )
        parts = [f"<h2>Step {step.step_number}: {escape(step.step_name)} ({escape(step.status)})</h2>"]
        if rows:
            parts.append(
                "<table border='1' cellpadding='6' cellspacing='0'>"
                "<thead><tr><th>Item</th><th>Checked</th><th>Rating</th><th>Note</th></tr></thead>"
                f"<tbody>{''.join(rows)}</tbody></table>"
            )
        if step.rating:
            parts.append(f"<p>Step rating: {step.rating}/5</p>")
        if step.notes:
            parts.append(f"<p>{escape(step.notes)}</p>")
        for photo in step.photos:
            verdict = photo.ai_verdict or "pending"
            analysis = photo.ai_analysis or "Analysis not available."
            parts.append(
                f"<figure><img src='{escape(photo.photo_url, quote=True)}' width='320'>"
                f"<figcaption>Photo {photo.photo_order} [{escape(verdict)}]: {escape(analysis)}</figcaption></figure>"
            )
        return "\n".join(parts)
