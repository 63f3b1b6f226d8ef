from typing import Any, Dict, Optional

from django.db.models import QuerySet

from camps.models import AuditEvent, NotificationLogEntry


def log_action(*, user: Any = None, action: str, camp_id=None, object_type: Optional[str] = None,
               object_id: Any = None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    """Record a staff action.  ``user`` may be a ``User`` or an ``Identity``."""
    user_id = getattr(user, 'user_id', None) or getattr(user, 'pk', None)
    return AuditEvent.objects.create(
        user_id=user_id,
        camp_id=camp_id,
        action=action,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        detail=detail or {},
    )


def query_notifications(*, camp_id=None, visitor_id=None, kind: Optional[str] = None,
                        status: Optional[str] = None) -> 'QuerySet[NotificationLogEntry]':
    """Notification log filtered for operational triage, newest first."""
    qs = NotificationLogEntry.objects.select_related('visitor')
    if camp_id is not None:
        qs = qs.filter(camp_id=camp_id)
    if visitor_id is not None:
        qs = qs.filter(visitor_id=visitor_id)
    if kind:
        qs = qs.filter(kind=kind)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('-created_at')
