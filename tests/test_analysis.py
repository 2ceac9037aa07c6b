from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from app.adapters.base import AnalysisRequest, AnalysisUnavailableError
from app.adapters.fake_adapter import FakeVisionAdapter
from app.adapters.http_vision_adapter import HttpVisionAdapter
from app.domain.models import ReportType, VehicleDescriptor, Verdict
from app.services.analysis_service import (
    AnalysisConfigError,
    AnalysisService,
    build_photo_prompt,
    build_report_prompt,
    build_vision_adapter,
    extract_json_object,
    parse_analysis_response,
)

VEHICLE = VehicleDescriptor(vehicle_year=2009, vehicle_make="Mini", vehicle_model="Clubman", vehicle_mileage=82000)


def test_extract_json_object_skips_prose_and_broken_braces() -> None:
    text = 'Sure {not json} here you go: {"analysis": "Rust on sill", "verdict": "issue"} thanks'

    assert extract_json_object(text) == {"analysis": "Rust on sill", "verdict": "issue"}
    assert extract_json_object("no braces at all") is None


def test_parse_response_reads_embedded_json() -> None:
    result = parse_analysis_response('```json\n{"analysis": "Minor scuffs.", "verdict": "warning"}\n```')

    assert result is not None
    assert result.analysis == "Minor scuffs."
    assert result.verdict == Verdict.WARNING


@pytest.mark.parametrize("verdict", [None, "bad", 3, "ISSUE "])
def test_parse_response_normalizes_or_defaults_verdict(verdict: object) -> None:
    payload: dict[str, object] = {"analysis": "Looks fine."}
    if verdict is not None:
        payload["verdict"] = verdict

    result = parse_analysis_response(json.dumps(payload))

    assert result is not None
    expected = Verdict.ISSUE if verdict == "ISSUE " else Verdict.OK
    assert result.verdict == expected


def test_parse_response_falls_back_to_whole_text() -> None:
    result = parse_analysis_response("The paint looks original and even.")

    assert result is not None
    assert result.analysis == "The paint looks original and even."
    assert result.verdict == Verdict.OK
    assert parse_analysis_response("   ") is None


def test_prompts_carry_vehicle_and_context() -> None:
    photo_prompt = build_photo_prompt(VEHICLE, "Engine", "Inspect the engine bay cold if possible.")
    obd_prompt = build_report_prompt(VEHICLE, ReportType.OBD2)
    carfax_prompt = build_report_prompt(VEHICLE, ReportType.CARFAX)

    assert "2009 Mini Clubman" in photo_prompt
    assert "82000 miles" in photo_prompt
    assert "Engine" in photo_prompt
    assert "diagnostic trouble code" in obd_prompt
    assert "owners" in carfax_prompt
    assert '"verdict"' in obd_prompt


def test_build_vision_adapter_uses_backend_setting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VISION_BACKEND", "fake")
    assert isinstance(build_vision_adapter(), FakeVisionAdapter)

    monkeypatch.setenv("VISION_BACKEND", "carrier-pigeon")
    with pytest.raises(AnalysisConfigError):
        build_vision_adapter()


def test_analysis_service_returns_none_when_unavailable() -> None:
    service = AnalysisService(FakeVisionAdapter(fail=True))

    result = asyncio.run(service.analyze(content=b"img", mime_type="image/jpeg", prompt="look"))

    assert result is None


def test_analysis_service_parses_adapter_text() -> None:
    adapter = FakeVisionAdapter()
    adapter.queue_response('Result: {"analysis": "Oil leak at pan.", "verdict": "issue"}')
    service = AnalysisService(adapter)

    result = asyncio.run(service.analyze(content=b"img", mime_type="image/png", prompt="look"))

    assert result is not None
    assert result.verdict == Verdict.ISSUE
    assert adapter.calls[0].mime_type == "image/png"
    assert adapter.calls[0].size_bytes == 3


def test_http_adapter_sends_document_block_and_joins_text() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("x-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "content": [
                    {"type": "text", "text": '{"analysis": "No codes stored.", '},
                    {"type": "text", "text": '"verdict": "ok"}'},
                ]
            },
        )

    adapter = HttpVisionAdapter(
        base_url="https://vision.test",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )

    async def scenario() -> str:
        try:
            return await adapter.analyze(AnalysisRequest(content=b"%PDF-1.4", mime_type="application/pdf", prompt="scan"))
        finally:
            await adapter.close()

    text = asyncio.run(scenario())

    assert seen["path"] == "/v1/messages"
    assert seen["key"] == "secret"
    body = seen["body"]
    assert isinstance(body, dict)
    blocks = body["messages"][0]["content"]
    assert blocks[0]["type"] == "document"
    assert blocks[1] == {"type": "text", "text": "scan"}
    assert parse_analysis_response(text) is not None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(529, json={"error": "overloaded"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"content": []}),
    ],
)
def test_http_adapter_reports_unavailable(response: httpx.Response) -> None:
    adapter = HttpVisionAdapter(
        base_url="https://vision.test",
        transport=httpx.MockTransport(lambda _request: response),
    )

    async def scenario() -> None:
        try:
            await adapter.analyze(AnalysisRequest(content=b"img", mime_type="image/jpeg", prompt="look"))
        finally:
            await adapter.close()

    with pytest.raises(AnalysisUnavailableError):
        asyncio.run(scenario())


def test_http_adapter_transport_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = AnalysisService(HttpVisionAdapter(base_url="https://vision.test", transport=httpx.MockTransport(handler)))

    async def scenario() -> object:
        try:
            return await service.analyze(content=b"img", mime_type="image/jpeg", prompt="look")
        finally:
            await service.close()

    assert asyncio.run(scenario()) is None
