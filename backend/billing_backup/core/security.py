"""Actor resolution and permission checks.

Authentication is handled upstream (reverse proxy / session layer); it forwards
the authenticated actor in two headers:

- `X-Actor-Id`: the user id
- `X-Actor-Permissions`: comma-separated permission names

Routers depend on `require_permission(...)`, which is the permission oracle for
this service. Tests override `get_actor`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional

from fastapi import Depends, Header, HTTPException, status


PERM_BACKUP_CREATE = "backup.create"
PERM_BACKUP_RESTORE = "backup.restore"
PERM_ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    actor_id: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def can(self, permission: str) -> bool:
        return PERM_ADMIN in self.permissions or permission in self.permissions


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_permissions: Optional[str] = Header(None),
) -> Actor:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    perms = frozenset(p.strip() for p in (x_actor_permissions or "").split(",") if p.strip())
    return Actor(actor_id=x_actor_id.strip(), permissions=perms)


def require_permission(permission: str) -> Callable[..., Actor]:
    def _dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if not actor.can(permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return actor

    return _dependency


def require_any_permission(*permissions: str) -> Callable[..., Actor]:
    def _dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if not any(actor.can(p) for p in permissions):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return actor

    return _dependency
