from __future__ import annotations

import json
import logging
import os
from typing import Any

from app.adapters.base import AnalysisRequest, AnalysisUnavailableError, VisionAdapter
from app.adapters.fake_adapter import FakeVisionAdapter
from app.adapters.http_vision_adapter import HttpVisionAdapter
from app.domain.models import AnalysisResult, ReportType, VehicleDescriptor, Verdict

logger = logging.getLogger(__name__)

RESPONSE_FORMAT = (
    'Respond with a JSON object only: {"analysis": "<2-4 sentence assessment>", '
    '"verdict": "ok" | "warning" | "issue"}. '
    'Use "ok" when nothing of concern is visible, "warning" for wear or items worth a closer look, '
    'and "issue" for damage, safety problems or anything that should affect the purchase decision.'
)

REPORT_GUIDANCE: dict[ReportType, str] = {
    ReportType.OBD2: (
        "This is an OBD-II diagnostic scan. List every diagnostic trouble code (DTC) with its meaning, "
        "note pending versus stored codes, and report emissions readiness monitors that are incomplete. "
        "Flag codes that suggest expensive repairs."
    ),
    ReportType.CARFAX: (
        "This is a CARFAX vehicle history report. Summarize the number of owners, reported accidents or damage, "
        "title brands (salvage, rebuilt, flood, lemon), odometer problems, and service history gaps."
    ),
    ReportType.AUTOCHECK: (
        "This is an AutoCheck vehicle history report. Summarize the AutoCheck score, number of owners, "
        "accidents, title brands, odometer checks, and any auction or fleet usage."
    ),
}


class AnalysisConfigError(Exception):
    pass


def build_vision_adapter() -> VisionAdapter:
    backend = os.getenv("VISION_BACKEND", "http").strip().lower()
    if backend == "http":
        return HttpVisionAdapter()
    if backend == "fake":
        return FakeVisionAdapter()
    raise AnalysisConfigError(f"unsupported vision backend: {backend}")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in free text."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def parse_analysis_response(text: str) -> AnalysisResult | None:
    stripped = text.strip()
    if not stripped:
        return None
    payload = extract_json_object(stripped)
    if payload is None:
        return AnalysisResult(analysis=stripped, verdict=Verdict.OK)
    analysis = payload.get("analysis")
    if not isinstance(analysis, str) or not analysis.strip():
        analysis = stripped
    return AnalysisResult(analysis=analysis.strip(), verdict=payload.get("verdict"))


def describe_vehicle(vehicle: VehicleDescriptor) -> str:
    description = vehicle.describe() or "vehicle"
    extras = []
    if vehicle.vehicle_mileage is not None:
        extras.append(f"{vehicle.vehicle_mileage} miles")
    if vehicle.vehicle_color:
        extras.append(vehicle.vehicle_color)
    if extras:
        description = f"{description} ({', '.join(extras)})"
    return description


def build_photo_prompt(vehicle: VehicleDescriptor, step_name: str, instructions: str = "") -> str:
    lines = [
        "You are an experienced pre-purchase inspector reviewing a photo taken during an inspection.",
        f"Vehicle: {describe_vehicle(vehicle)}.",
        f"Inspection section: {step_name}.",
    ]
    if instructions:
        lines.append(f"Inspector instructions for this section: {instructions}")
    lines.append(
        "Describe what is visible, point out damage, wear, leaks, rust or mismatched parts, "
        "and say whether a buyer should be concerned."
    )
    lines.append(RESPONSE_FORMAT)
    return "\n".join(lines)


def build_report_prompt(vehicle: VehicleDescriptor, report_type: ReportType) -> str:
    return "\n".join(
        [
            "You are helping a buyer evaluate a used vehicle before purchase.",
            f"Vehicle: {describe_vehicle(vehicle)}.",
            REPORT_GUIDANCE[report_type],
            "If the document does not appear to match this vehicle, say so in the analysis.",
            RESPONSE_FORMAT,
        ]
    )


class AnalysisService:
    def __init__(self, adapter: VisionAdapter | None = None) -> None:
        self._adapter = adapter or build_vision_adapter()

    async def analyze(self, *, content: bytes, mime_type: str, prompt: str) -> AnalysisResult | None:
        """Run one analysis; every failure resolves to ``None``."""
        try:
            text = await self._adapter.analyze(AnalysisRequest(content=content, mime_type=mime_type, prompt=prompt))
        except AnalysisUnavailableError as exc:
            logger.warning("analysis unavailable: %s", exc)
            return None
        return parse_analysis_response(text)

    async def close(self) -> None:
        await self._adapter.close()
