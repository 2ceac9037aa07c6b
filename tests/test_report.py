from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from app import main as app_main
from app.domain.models import CategoryCreate
from app.domain.templates import AUTO_STEPS
from app.infra import audit, db, events
from app.infra.auth import create_access_token
from app.services.analysis_tracker import InMemoryAnalysisTracker
from app.services.template_service import TemplateService

EXTERIOR = list(AUTO_STEPS[1].checklist_items)


@pytest.fixture()
def report_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    test_engine = db.build_engine(f"sqlite:///{tmp_path / 'report_test.db'}")
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


def _setup(client: TestClient) -> tuple[dict[str, str], str]:
    tenant_id = TemplateService().create_category(CategoryCreate(name="Auto", subdomain="autoinspect")).id
    token = create_access_token(user_id="inspector-1", tenant_id=tenant_id, permissions=["*"])
    headers = {"Authorization": f"Bearer {token}"}
    response = client.post(
        "/api/inspections",
        json={"vehicle_year": 2009, "vehicle_make": "Mini", "vehicle_model": "Clubman", "vehicle_mileage": 82000},
        headers=headers,
    )
    assert response.status_code == 201
    return headers, response.json()["id"]


def test_report_requires_finished_inspection(report_client: TestClient) -> None:
    headers, inspection_id = _setup(report_client)

    response = report_client.post(f"/api/inspections/{inspection_id}/report", headers=headers)

    assert response.status_code == 409
    detail = report_client.get(f"/api/inspections/{inspection_id}", headers=headers).json()
    assert detail["report_url"] is None


def test_report_renders_finished_inspection(report_client: TestClient, tmp_path: Path) -> None:
    headers, inspection_id = _setup(report_client)
    base = f"/api/inspections/{inspection_id}"
    report_client.post(
        f"{base}/wizard/advance",
        json={"checklist": [{"item": EXTERIOR[0], "rating": 2, "note": "Scratch <near> door"}]},
        headers=headers,
    )
    report_client.put(
        f"{base}/steps/3/photos/1",
        files={"file": ("dash.jpg", b"\xff\xd8dashboard", "image/jpeg")},
        headers=headers,
    )
    report_client.post(f"{base}/wizard/jump", json={"step_number": 7}, headers=headers)
    finished = report_client.post(
        f"{base}/wizard/advance",
        json={"overall_rating": 3, "decision": "pass", "general_notes": "Seller said <b>no</b> accidents"},
        headers=headers,
    )
    assert finished.status_code == 200

    response = report_client.post(f"{base}/report", headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["object_key"] == f"{inspection_id}/report.html"
    assert body["report_url"] == f"/api/files/{inspection_id}/report.html"
    html = (tmp_path / "objects" / "inspection-photos" / inspection_id / "report.html").read_text(encoding="utf-8")
    assert "2009 Mini Clubman" in html
    assert "82,000" in html
    assert "Seller said &lt;b&gt;no&lt;/b&gt; accidents" in html
    assert "Scratch &lt;near&gt; door" in html
    assert "Step 2: Exterior (completed)" in html
    assert EXTERIOR[6] not in html
    assert "Photo 1 [ok]" in html
    assert ">Pass<" in html

    detail = report_client.get(base, headers=headers).json()
    assert detail["report_url"] == body["report_url"]
    served = report_client.get(body["report_url"], headers=headers)
    assert served.status_code == 200
    assert "2009 Mini Clubman" in served.text


def test_delete_removes_generated_report(report_client: TestClient, tmp_path: Path) -> None:
    headers, inspection_id = _setup(report_client)
    base = f"/api/inspections/{inspection_id}"
    report_client.post(f"{base}/wizard/jump", json={"step_number": 7}, headers=headers)
    report_client.post(f"{base}/wizard/advance", json={"overall_rating": 5, "decision": "interested"}, headers=headers)
    report_client.post(f"{base}/report", headers=headers)
    stored = tmp_path / "objects" / "inspection-photos" / inspection_id / "report.html"
    assert stored.is_file()

    response = report_client.delete(base, headers=headers)

    assert response.status_code == 200
    assert response.json()["photo_file_paths"] == [f"{inspection_id}/report.html"]
    assert not stored.exists()
