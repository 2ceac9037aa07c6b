from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, select

from app import main as app_main
from app.domain.models import (
    AuditLog,
    CategoryCreate,
    CategoryDomain,
    EventRecord,
    InspectionKnownIssue,
    InspectionPhoto,
    InspectionStep,
)
from app.domain.templates import BUILTIN_STEP_TEMPLATES
from app.infra import audit, db, events
from app.infra.auth import create_access_token
from app.services.analysis_tracker import InMemoryAnalysisTracker
from app.services.object_storage_service import ObjectStorageError, ObjectStorageService
from app.services.template_service import TemplateService

AUTO_STEPS = BUILTIN_STEP_TEMPLATES[CategoryDomain.AUTO]
EXTERIOR = list(AUTO_STEPS[1].checklist_items)
SCORING_WEIGHTS = [2, 2, 2, 1, 1]
SCORING_RATINGS = [3, 3, 2, 2, 2]


@pytest.fixture()
def inspection_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    test_engine = db.build_engine(f"sqlite:///{tmp_path / 'inspection_test.db'}")
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(audit, "engine", test_engine)
    monkeypatch.setattr(events, "engine", test_engine)
    monkeypatch.setenv("OBJECT_STORAGE_ROOT", str(tmp_path / "objects"))
    monkeypatch.setenv("VISION_BACKEND", "fake")
    InMemoryAnalysisTracker.reset()
    client = TestClient(app_main.app)
    yield client
    client.close()


def _auth_header(tenant_id: str, user_id: str = "inspector-1") -> dict[str, str]:
    token = create_access_token(user_id=user_id, tenant_id=tenant_id, permissions=["*"])
    return {"Authorization": f"Bearer {token}"}


def _create_category(subdomain: str = "autoinspect") -> str:
    return TemplateService().create_category(CategoryCreate(name="Auto", subdomain=subdomain)).id


def _add_known_issue(client: TestClient, headers: dict[str, str], title: str, start: int, end: int) -> None:
    response = client.post(
        "/api/vehicles/known-issues",
        json={
            "make": "Mini",
            "model": "Clubman",
            "year_start": start,
            "year_end": end,
            "category": "engine",
            "severity": "high",
            "title": title,
        },
        headers=headers,
    )
    assert response.status_code == 201


def _create_inspection(client: TestClient, headers: dict[str, str], **overrides: Any) -> dict[str, Any]:
    payload = {"vehicle_year": 2009, "vehicle_make": "Mini", "vehicle_model": "Clubman", "vehicle_mileage": 820000}
    payload.update(overrides)
    response = client.post("/api/inspections", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()


def _scored_checklist(step_number: int) -> list[dict[str, Any]]:
    items = AUTO_STEPS[step_number - 1].checklist_items[: len(SCORING_RATINGS)]
    return [{"item": name, "rating": rating} for name, rating in zip(items, SCORING_RATINGS)]


def test_create_inspection_builds_seven_steps(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())

    detail = _create_inspection(inspection_client, headers, vehicle_vin="wmwml33509tx12345")

    assert detail["status"] == "in_progress"
    assert detail["current_step"] == 1
    assert detail["vehicle_vin"] == "WMWML33509TX12345"
    assert [step["step_number"] for step in detail["steps"]] == [1, 2, 3, 4, 5, 6, 7]
    assert all(step["status"] == "pending" for step in detail["steps"])
    assert detail["steps"][0]["checklist"] == []
    exterior = detail["steps"][1]["checklist"]
    assert [item["weight"] for item in exterior] == [1, 1, 1, 1, 1, 0, 0, 0]
    assert all(item["rating"] == 0 and item["checked"] is False for item in exterior)


def test_create_inspection_requires_make_and_model(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())

    blank = inspection_client.post(
        "/api/inspections",
        json={"vehicle_make": "  ", "vehicle_model": "Clubman"},
        headers=headers,
    )
    missing = inspection_client.post("/api/inspections", json={"vehicle_make": "Mini"}, headers=headers)

    assert blank.status_code == 422
    assert missing.status_code == 422
    assert inspection_client.get("/api/inspections", headers=headers).json() == []


def test_known_issues_are_snapshotted_at_creation(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())
    _add_known_issue(inspection_client, headers, "Timing chain tensioner", 2007, 2010)
    _add_known_issue(inspection_client, headers, "Water pump leak", 2008, 2014)
    _add_known_issue(inspection_client, headers, "Clutch judder", 2015, 2019)

    detail = _create_inspection(inspection_client, headers, vehicle_make="MINI", vehicle_model="clubman")
    assert sorted(issue["title"] for issue in detail["known_issues"]) == ["Timing chain tensioner", "Water pump leak"]

    _add_known_issue(inspection_client, headers, "Thermostat housing crack", 2009, 2012)

    reference = inspection_client.get(
        "/api/vehicles/known-issues",
        params={"make": "mini", "model": "CLUBMAN", "year": 2009},
        headers=headers,
    )
    assert len(reference.json()) == 3
    reloaded = inspection_client.get(f"/api/inspections/{detail['id']}", headers=headers).json()
    assert sorted(issue["title"] for issue in reloaded["known_issues"]) == [
        "Timing chain tensioner",
        "Water pump leak",
    ]


def test_known_issues_skipped_without_year(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())
    _add_known_issue(inspection_client, headers, "Timing chain tensioner", 2007, 2010)

    detail = _create_inspection(inspection_client, headers, vehicle_year=None)

    assert detail["known_issues"] == []


def test_known_issue_years_must_be_ordered(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())

    response = inspection_client.post(
        "/api/vehicles/known-issues",
        json={"make": "Mini", "model": "Clubman", "year_start": 2012, "year_end": 2008, "title": "Backwards"},
        headers=headers,
    )

    assert response.status_code == 422


def test_inspections_are_scoped_to_owner(inspection_client: TestClient) -> None:
    tenant_id = _create_category()
    other_tenant_id = _create_category("garageinspect")
    owner = _auth_header(tenant_id)
    detail = _create_inspection(inspection_client, owner)

    other_user = _auth_header(tenant_id, "inspector-2")
    other_tenant = _auth_header(other_tenant_id)

    assert inspection_client.get(f"/api/inspections/{detail['id']}", headers=other_user).status_code == 404
    assert inspection_client.get(f"/api/inspections/{detail['id']}", headers=other_tenant).status_code == 404
    assert inspection_client.delete(f"/api/inspections/{detail['id']}", headers=other_user).status_code == 404
    assert inspection_client.get("/api/inspections", headers=other_user).json() == []
    assert inspection_client.get(f"/api/inspections/{detail['id']}", headers=owner).status_code == 200


def test_requests_without_token_are_rejected(inspection_client: TestClient) -> None:
    assert inspection_client.get("/api/inspections").status_code in {401, 403}
    bad = inspection_client.get("/api/inspections", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


def test_patch_step_merges_checklist_and_keeps_weights(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())
    detail = _create_inspection(inspection_client, headers)

    response = inspection_client.patch(
        f"/api/inspections/{detail['id']}/steps/2",
        json={
            "checklist": [{"item": EXTERIOR[0], "rating": 4, "weight": 0, "note": "faded roof"}],
            "notes": "Parked outside",
        },
        headers=headers,
    )

    assert response.status_code == 200
    step = response.json()
    first = step["checklist"][0]
    assert first == {"item": EXTERIOR[0], "checked": True, "note": "faded roof", "rating": 4, "weight": 1}
    assert step["checklist"][1]["rating"] == 0
    assert step["notes"] == "Parked outside"
    assert step["status"] == "pending"

    score = inspection_client.get(f"/api/inspections/{detail['id']}/score", headers=headers).json()
    assert score["earned"] == 4
    summaries = inspection_client.get("/api/inspections", headers=headers).json()
    assert summaries[0]["score_percentage"] == score["percentage"]


def test_patch_step_rejects_unknown_item_and_overwrites_status(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())
    detail = _create_inspection(inspection_client, headers)
    step_url = f"/api/inspections/{detail['id']}/steps/2"

    unknown = inspection_client.patch(step_url, json={"checklist": [{"item": "Sunroof seal", "rating": 2}]}, headers=headers)
    assert unknown.status_code == 422

    completed = inspection_client.patch(step_url, json={"status": "completed"}, headers=headers)
    assert completed.status_code == 200
    reopened = inspection_client.patch(step_url, json={"status": "pending"}, headers=headers)
    assert reopened.status_code == 200
    assert reopened.json()["status"] == "pending"
    skipped = inspection_client.patch(step_url, json={"status": "skipped", "notes": "No access"}, headers=headers)
    assert skipped.status_code == 200
    assert skipped.json()["status"] == "skipped"
    assert skipped.json()["notes"] == "No access"

    missing = inspection_client.patch(f"/api/inspections/{detail['id']}/steps/9", json={}, headers=headers)
    assert missing.status_code == 404


def test_walkthrough_scores_and_completes_inspection(inspection_client: TestClient) -> None:
    tenant_id = _create_category()
    headers = _auth_header(tenant_id)
    prefs = [
        {"step_number": seed.step_number, "item_name": name, "weight": weight}
        for seed in AUTO_STEPS[1:]
        for name, weight in zip(seed.checklist_items, SCORING_WEIGHTS)
    ]
    saved = inspection_client.put("/api/checklist/preferences", json=prefs, headers=headers)
    assert saved.status_code == 200
    _add_known_issue(inspection_client, headers, "Timing chain tensioner", 2007, 2010)
    _add_known_issue(inspection_client, headers, "Water pump leak", 2008, 2014)

    detail = _create_inspection(inspection_client, headers)
    inspection_id = detail["id"]
    assert len(detail["known_issues"]) == 2

    for step_number in range(2, 7):
        moved = inspection_client.post(
            f"/api/inspections/{inspection_id}/wizard/advance",
            json={"checklist": _scored_checklist(step_number)},
            headers=headers,
        )
        assert moved.status_code == 200
        assert moved.json()["outcome"] == "moved"
        assert moved.json()["step_number"] == step_number + 1

    finished = inspection_client.post(
        f"/api/inspections/{inspection_id}/wizard/advance",
        json={
            "checklist": _scored_checklist(7),
            "overall_rating": 4,
            "decision": "interested",
            "general_notes": "Worth a second look.",
        },
        headers=headers,
    )
    assert finished.status_code == 200
    assert finished.json()["outcome"] == "completed"

    final = inspection_client.get(f"/api/inspections/{inspection_id}", headers=headers).json()
    assert final["status"] == "completed"
    assert final["decision"] == "interested"
    assert final["overall_rating"] == 4
    assert final["notes"] == "Worth a second look."
    assert [step["status"] for step in final["steps"][1:]] == ["completed"] * 6
    for step in final["steps"][1:]:
        weighted = [item for item in step["checklist"] if item["weight"] > 0]
        assert sum(item["rating"] * item["weight"] for item in weighted) == 20
        assert sum(5 * item["weight"] for item in weighted) == 40
    assert final["score"] == {"earned": 120, "max_possible": 240, "percentage": 50, "tier": "caution"}

    summaries = inspection_client.get("/api/inspections", headers=headers).json()
    assert summaries[0]["score_percentage"] == 50
    locked = inspection_client.patch(
        f"/api/inspections/{inspection_id}/steps/2",
        json={"notes": "late edit"},
        headers=headers,
    )
    assert locked.status_code == 409

    with Session(db.engine) as session:
        event_types = {row.event_type for row in session.exec(select(EventRecord)).all()}
    assert {"inspection.created", "inspection.step.saved", "inspection.completed"} <= event_types


def test_delete_inspection_removes_rows_and_files(inspection_client: TestClient, tmp_path: Path) -> None:
    headers = _auth_header(_create_category())
    _add_known_issue(inspection_client, headers, "Timing chain tensioner", 2007, 2010)
    detail = _create_inspection(inspection_client, headers)
    inspection_id = detail["id"]
    upload = inspection_client.put(
        f"/api/inspections/{inspection_id}/steps/2/photos/1",
        files={"file": ("front.jpg", b"\xff\xd8\xff\xe0front", "image/jpeg")},
        headers=headers,
    )
    assert upload.status_code == 200
    stored = tmp_path / "objects" / "inspection-photos" / inspection_id / "2" / "1.jpg"
    assert stored.is_file()

    response = inspection_client.delete(f"/api/inspections/{inspection_id}", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["deleted"] is True
    assert body["photo_file_paths"] == [f"{inspection_id}/2/1.jpg"]
    assert body["cleanup_failures"] == 0
    assert not stored.exists()
    assert inspection_client.get(f"/api/inspections/{inspection_id}", headers=headers).status_code == 404
    with Session(db.engine) as session:
        assert session.exec(select(InspectionStep).where(InspectionStep.inspection_id == inspection_id)).all() == []
        assert session.exec(select(InspectionPhoto).where(InspectionPhoto.inspection_id == inspection_id)).all() == []
        assert (
            session.exec(select(InspectionKnownIssue).where(InspectionKnownIssue.inspection_id == inspection_id)).all()
            == []
        )


def test_delete_inspection_succeeds_when_file_cleanup_fails(
    inspection_client: TestClient,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    headers = _auth_header(_create_category())
    inspection_id = _create_inspection(inspection_client, headers)["id"]
    for order in (1, 2):
        upload = inspection_client.put(
            f"/api/inspections/{inspection_id}/steps/2/photos/{order}",
            files={"file": (f"side{order}.jpg", b"\xff\xd8\xff\xe0side", "image/jpeg")},
            headers=headers,
        )
        assert upload.status_code == 200
    photo_dir = tmp_path / "objects" / "inspection-photos" / inspection_id / "2"
    locked_key = f"{inspection_id}/2/1.jpg"
    original_remove = ObjectStorageService.remove

    def _remove(self: ObjectStorageService, object_keys: list[str]) -> list[str]:
        if locked_key in object_keys:
            raise ObjectStorageError(f"failed to remove object {locked_key}")
        return original_remove(self, object_keys)

    monkeypatch.setattr(ObjectStorageService, "remove", _remove)

    response = inspection_client.delete(f"/api/inspections/{inspection_id}", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["deleted"] is True
    assert sorted(body["photo_file_paths"]) == [locked_key, f"{inspection_id}/2/2.jpg"]
    assert body["cleanup_failures"] == 1
    assert (photo_dir / "1.jpg").is_file()
    assert not (photo_dir / "2.jpg").exists()
    assert inspection_client.get(f"/api/inspections/{inspection_id}", headers=headers).status_code == 404
    with Session(db.engine) as session:
        assert session.exec(select(InspectionStep).where(InspectionStep.inspection_id == inspection_id)).all() == []
        assert session.exec(select(InspectionPhoto).where(InspectionPhoto.inspection_id == inspection_id)).all() == []


def test_write_requests_are_audited(inspection_client: TestClient) -> None:
    headers = _auth_header(_create_category())
    detail = _create_inspection(inspection_client, headers)
    inspection_client.patch(f"/api/inspections/{detail['id']}/steps/3", json={"notes": "Clean"}, headers=headers)
    inspection_client.get(f"/api/inspections/{detail['id']}", headers=headers)

    with Session(db.engine) as session:
        logs = session.exec(select(AuditLog).order_by(AuditLog.ts)).all()

    assert [log.action for log in logs] == [
        "POST:/api/inspections",
        "PATCH:/api/inspections/{inspection_id}/steps/{step_number}",
    ]
    assert logs[1].resource == f"inspection:{detail['id']}/step:3"
    assert logs[1].actor_id == "inspector-1"
    assert logs[1].detail["outcome"] == "success"
