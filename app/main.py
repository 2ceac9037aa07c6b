from __future__ import annotations

import logging
import os

from fastapi import FastAPI, HTTPException

from app.api.routers import attachment, category, checklist, inspection, vehicle
from app.infra.audit import AuditMiddleware
from app.infra.db import check_db_ready
from app.infra.redis_state import check_redis_ready

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="vehicle-inspection",
    description="Guided pre-purchase inspections with weighted scoring and photo analysis.",
    version="0.1.0",
)

app.add_middleware(AuditMiddleware)

app.include_router(category.router, prefix="/api/categories", tags=["categories"])
app.include_router(checklist.router, prefix="/api/checklist", tags=["checklist"])
app.include_router(vehicle.router, prefix="/api/vehicles", tags=["vehicles"])
app.include_router(inspection.router, prefix="/api/inspections", tags=["inspections"])
app.include_router(attachment.router, prefix="/api/inspections", tags=["attachments"])
app.include_router(attachment.files_router, prefix="/api/files", tags=["files"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    redis_ok = check_redis_ready()
    checks = {
        "db": "ok" if db_ok else "fail",
        "redis": "ok" if redis_ok else "fail",
    }
    if not (db_ok and redis_ok):
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
