"""
Celery tasks for notification delivery.
"""
from celery import shared_task


@shared_task(name='camps.tasks.dispatch_notification', ignore_result=True)
def dispatch_notification(kind, visitor_id, payload=None):
    """
    Deliver one notification to a visitor.

    Args:
        kind: MessageKind value
        visitor_id: Visitor primary key (string)
        payload: extra template values, JSON-serialisable

    Returns:
        str: dispatch status, or None when the visitor could not be loaded
    """
    from camps.services.notifications import run_dispatch

    result = run_dispatch(kind, visitor_id, payload)
    return result.status.value if result else None
