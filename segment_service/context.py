"""
Session context passed explicitly to operations that need permission checks.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from segment_service.exceptions import PermissionDeniedError
from segment_service.models.enums import Permission


@dataclass(frozen=True)
class SessionContext:
    """Authenticated session of the caller. Built per request, never stored globally."""
    user_id: Optional[str]
    organization_id: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has(self, permission: Permission) -> bool:
        return str(permission) in self.permissions

    def require(self, permission: Permission) -> None:
        """Raise PermissionDeniedError unless the session holds the permission."""
        if not self.has(permission):
            raise PermissionDeniedError(
                f"User {self.user_id or '<anonymous>'} lacks permission '{permission}'"
            )

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "SessionContext":
        """
        Build a context from the headers set by the authenticating gateway.

        Expects X-Organization-Id, optionally X-User-Id and a comma separated
        X-Permissions list.
        """
        organization_id = headers.get("X-Organization-Id")
        if not organization_id:
            raise PermissionDeniedError("Missing X-Organization-Id header")
        raw = headers.get("X-Permissions", "") or ""
        permissions = frozenset(p.strip() for p in raw.split(",") if p.strip())
        return cls(
            user_id=headers.get("X-User-Id"),
            organization_id=organization_id,
            permissions=permissions,
        )
