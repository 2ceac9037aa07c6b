from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InspectorContext:
    """Who is acting and in which category.

    Built once per request from verified token claims and passed explicitly
    to every service call. The category id is already resolved upstream.
    """

    tenant_id: str
    user_id: str
    phone: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> InspectorContext:
        phone = claims.get("phone")
        return cls(
            tenant_id=str(claims["tenant_id"]),
            user_id=str(claims["sub"]),
            phone=phone if isinstance(phone, str) else None,
        )
