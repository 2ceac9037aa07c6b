from __future__ import annotations

import pytest

from app.infra.audit import audit_action, outcome_for, should_audit_request


def test_audit_action_uses_route_template() -> None:
    action = audit_action("PATCH", "/api/inspections/{inspection_id}/steps/{step_number}", "/api/inspections/i1/steps/3")
    assert action == "PATCH:/api/inspections/{inspection_id}/steps/{step_number}"


def test_audit_action_falls_back_to_path_for_router_root() -> None:
    assert audit_action("POST", "", "/api/inspections") == "POST:/api/inspections"


@pytest.mark.parametrize(
    ("method", "path", "expected"),
    [
        ("POST", "/api/inspections", True),
        ("DELETE", "/api/inspections/i1/steps/2/photos/1", True),
        ("GET", "/api/files/i1/report.html", True),
        ("GET", "/api/inspections", False),
        ("GET", "/healthz", False),
        ("POST", "/readyz", False),
    ],
)
def test_should_audit_request(method: str, path: str, expected: bool) -> None:
    assert should_audit_request(method, path) is expected


@pytest.mark.parametrize(
    ("status_code", "expected"),
    [(201, "success"), (404, "denied"), (409, "rejected"), (422, "rejected"), (503, "error")],
)
def test_outcome_for(status_code: int, expected: str) -> None:
    assert outcome_for(status_code) == expected
