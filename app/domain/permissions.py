from __future__ import annotations

from typing import Any

PERM_WILDCARD = "*"
PERM_INSPECTION_READ = "inspection.read"
PERM_INSPECTION_WRITE = "inspection.write"
PERM_CHECKLIST_WRITE = "checklist.write"
PERM_REFERENCE_WRITE = "reference.write"

DEFAULT_PERMISSION_NAMES = [
    PERM_WILDCARD,
    PERM_INSPECTION_READ,
    PERM_INSPECTION_WRITE,
    PERM_CHECKLIST_WRITE,
    PERM_REFERENCE_WRITE,
]

INSPECTOR_PERMISSION_NAMES = [
    PERM_INSPECTION_READ,
    PERM_INSPECTION_WRITE,
    PERM_CHECKLIST_WRITE,
]


def has_permission(claims: dict[str, Any], permission: str) -> bool:
    permissions = claims.get("permissions", [])
    if not isinstance(permissions, list):
        return False
    return permission in permissions or PERM_WILDCARD in permissions
