"""
Tenant isolation guard.

:func:`authorize` is a pure decision: given who is acting and which
camp the operation targets, allow or deny with a reason.  It does not
look anything up, so an administrator is allowed even for a camp id
that does not exist; existence is the caller's concern.

Call sites carry the camp id in the URL path, the body or the query
string.  :func:`requested_camp_id` collects all of them and refuses a
request in which two sources disagree.
"""
from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from camps.exceptions import AuthorizationDenied
from camps.identity import Identity

logger = logging.getLogger(__name__)


class DenyReason(str, enum.Enum):
    MISSING_TENANT = 'missing_tenant'
    MALFORMED_TENANT = 'malformed_tenant'
    CONFLICTING_TENANT = 'conflicting_tenant'
    TENANT_MISMATCH = 'tenant_mismatch'


_MESSAGES = {
    DenyReason.MISSING_TENANT: 'Camp ID is required.',
    DenyReason.MALFORMED_TENANT: 'Invalid camp ID format.',
    DenyReason.CONFLICTING_TENANT: 'Conflicting camp IDs in request.',
    DenyReason.TENANT_MISMATCH: 'Access denied to this camp.',
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    camp_id: Optional[uuid.UUID] = None

    @property
    def message(self) -> str:
        return _MESSAGES[self.reason] if self.reason else ''


ALLOW = Decision(allowed=True)


def _deny(reason: DenyReason) -> Decision:
    return Decision(allowed=False, reason=reason)


def parse_camp_id(value: Any) -> Optional[uuid.UUID]:
    """Return the UUID ``value`` denotes, or ``None`` when it is not one."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        parsed = uuid.UUID(str(value).strip())
    except (ValueError, AttributeError, TypeError):
        return None
    # Only canonical hyphenated form, so braces/urn prefixes don't slip through
    return parsed if str(parsed) == str(value).strip().lower() else None


def authorize(identity: Identity, requested_camp_id: Any) -> Decision:
    if identity.is_admin:
        return Decision(allowed=True, camp_id=parse_camp_id(requested_camp_id))
    if requested_camp_id is None or (isinstance(requested_camp_id, str) and not requested_camp_id.strip()):
        return _deny(DenyReason.MISSING_TENANT)
    camp_id = parse_camp_id(requested_camp_id)
    if camp_id is None:
        return _deny(DenyReason.MALFORMED_TENANT)
    if identity.camp_id is None or camp_id != identity.camp_id:
        return _deny(DenyReason.TENANT_MISMATCH)
    return Decision(allowed=True, camp_id=camp_id)


def requested_camp_id(*sources: Any) -> Any:
    """Pick the camp id a request targets from its path, body and query.

    The first non-empty value wins, but every other non-empty value
    must name the same camp; a disagreement is denied outright.
    """
    values = [v for v in sources if v not in (None, '')]
    if not values:
        return None
    first = values[0]
    canonical = {str(parse_camp_id(v) or v).strip().lower() for v in values}
    if len(canonical) > 1:
        raise AuthorizationDenied(_MESSAGES[DenyReason.CONFLICTING_TENANT], code=DenyReason.CONFLICTING_TENANT.value)
    return first


def ensure_authorized(identity: Identity, requested: Any) -> Optional[uuid.UUID]:
    """Raise :class:`AuthorizationDenied` unless ``identity`` may act on ``requested``."""
    decision = authorize(identity, requested)
    if not decision.allowed:
        logger.warning(
            'Tenant access denied: user=%s role=%s home=%s requested=%r reason=%s',
            identity.user_id, identity.role, identity.camp_id, requested, decision.reason.value,
        )
        raise AuthorizationDenied(decision.message, code=decision.reason.value)
    return decision.camp_id
