"""The authenticated principal a request acts as."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .models import Role


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value in (None, ''):
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


@dataclass(frozen=True)
class Identity:
    """Who is acting: user id, role and home camp (``None`` for admins).

    Built once per request from verified token claims and never read
    from ambient state afterwards.
    """
    user_id: int
    role: str
    camp_id: Optional[uuid.UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> 'Identity':
        role = claims.get('role')
        if role not in Role.values:
            raise ValueError(f'unknown role claim {role!r}')
        return cls(user_id=int(claims['user_id']), role=role, camp_id=_as_uuid(claims.get('camp_id')))

    @classmethod
    def from_user(cls, user) -> 'Identity':
        return cls(user_id=user.id, role=user.role, camp_id=_as_uuid(user.camp_id))
