from __future__ import annotations

import logging
from typing import Any

from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.domain.models import AuditLog
from app.infra.db import engine

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
# Downloads of stored files are recorded as well.
AUDITED_READ_PREFIXES = ("/api/files/",)
SKIPPED_PATHS = {"/healthz", "/readyz"}

logger = logging.getLogger(__name__)


def write_audit_log(
    *,
    tenant_id: str,
    actor_id: str | None,
    action: str,
    resource: str,
    method: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> None:
    log = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        resource=resource,
        method=method,
        status_code=status_code,
        detail=detail or {},
    )
    with Session(engine) as session:
        session.add(log)
        session.commit()


def outcome_for(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code in {401, 403, 404}:
        return "denied"
    if status_code >= 400:
        return "rejected"
    return "success"


def audit_action(method: str, route_path: str, path: str) -> str:
    # Router-root routes may report an empty path template.
    return f"{method}:{route_path or path}"


def should_audit_request(method: str, path: str) -> bool:
    if path in SKIPPED_PATHS:
        return False
    if method in WRITE_METHODS:
        return True
    return path.startswith(AUDITED_READ_PREFIXES)


def describe_resource(request: Request) -> str:
    """Name the record a request touched, falling back to its path."""
    params = request.path_params
    if "inspection_id" in params:
        resource = f"inspection:{params['inspection_id']}"
        if "step_number" in params:
            resource += f"/step:{params['step_number']}"
        if "photo_order" in params:
            resource += f"/photo:{params['photo_order']}"
        if "report_type" in params:
            resource += f"/report:{params['report_type']}"
        return resource
    if "object_key" in params:
        return f"file:{params['object_key']}"
    if "category_id" in params:
        return f"category:{params['category_id']}"
    return request.url.path


class AuditMiddleware(BaseHTTPMiddleware):
    """Record who changed or downloaded what, one row per request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        method = request.method
        path = request.url.path
        if not should_audit_request(method, path):
            return response

        claims = getattr(request.state, "claims", {})
        tenant_id = claims.get("tenant_id") or "anonymous"
        actor_id = claims.get("sub")
        route = request.scope.get("route")
        route_path = getattr(route, "path", "")
        resource = describe_resource(request)
        detail: dict[str, Any] = {
            "route": route_path or path,
            "endpoint": getattr(route, "name", None),
            "query": request.url.query,
            "client_ip": request.client.host if request.client is not None else None,
            "outcome": outcome_for(response.status_code),
        }

        try:
            write_audit_log(
                tenant_id=tenant_id,
                actor_id=actor_id,
                action=audit_action(method, route_path, path),
                resource=resource,
                method=method,
                status_code=response.status_code,
                detail=detail,
            )
        except Exception:
            logger.warning("audit log write failed for %s %s", method, path, exc_info=True)
        return response
