"""
Notification dispatcher.

Composes the transactional messages sent to visitors over Telegram and
records every attempt in :class:`~camps.models.NotificationLogEntry`.
A dispatch never raises: provider errors, timeouts and missing
addresses all end up as a logged, terminal log row and a
:class:`DispatchResult` the caller may ignore.

Dispatches triggered by registration and consultation save are queued
with :func:`schedule_dispatch`, which hands them to the
``dispatch_notification`` Celery task after the surrounding transaction
commits.
"""
from __future__ import annotations

import enum
import functools
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from camps.exceptions import DependencyFailed
from camps.models import Camp, MessageKind, MessageStatus, NotificationLogEntry, Visitor
from camps.services import scancodes
from camps.services.telegram import ProviderError, TelegramClient, client_from_settings

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r'^[\+]?[0-9\s\-\(\)]+$')
_MDV2_SPECIAL = re.compile(r'([_*\[\]()~`>#+\-=|{}.!\\])')

SKIPPED_PREFIX = 'skipped: '
NO_ADDRESS = 'no deliverable address'


def escape_markdown_v2(text: Any) -> str:
    """Escape every MarkdownV2 special character in ``text``."""
    return _MDV2_SPECIAL.sub(r'\\\1', str(text or ''))


class DispatchStatus(str, enum.Enum):
    SENT = 'SENT'
    SKIPPED = 'SKIPPED'
    FAILED = 'FAILED'


@dataclass(frozen=True)
class DispatchResult:
    status: DispatchStatus
    log_id: Any = None
    reason: str = ''
    test_mode: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'logId': str(self.log_id) if self.log_id else None,
            'reason': self.reason,
            'testMode': self.test_mode,
        }


# ---------------------------------------------------------------------------
# Message bodies (MarkdownV2)
# ---------------------------------------------------------------------------

def _when(camp: Camp) -> Tuple[str, str]:
    start = timezone.localtime(camp.start_time)
    return start.strftime('%A, %B %d, %Y'), start.strftime('%I:%M %p')


def render_registration(camp: Camp, visitor: Visitor, payload: Dict[str, Any]) -> str:
    e = escape_markdown_v2
    day, time = _when(camp)
    contact = camp.contact_info or camp.hospital_phone or 'camp staff'
    return '\n'.join([
        '*Registration Successful\\!*',
        '',
        f'Dear {e(visitor.name)},',
        '',
        f'You have been successfully registered for *{e(camp.name)}*',
        '',
        '*Your Details:*',
        f'Patient ID: `{e(visitor.patient_id)}`',
        f'Name: {e(visitor.name)}',
        f'Phone: {e(visitor.phone)}',
        '',
        '*Camp Information:*',
        f'Hospital: {e(camp.hospital_name or "Medical Camp")}',
        f'Venue: {e(camp.venue)}',
        f'Date: {e(day)}',
        f'Time: {e(time)}',
        '',
        '*Important Instructions:*',
        '\\- Please arrive 15 minutes before the camp starts',
        f'\\- Bring your Patient ID: `{e(visitor.patient_id)}`',
        '\\- Save this QR code for quick check\\-in',
        '\\- Carry any previous medical records if available',
        '',
        f'If you have any questions, please contact: {e(contact)}',
        '',
        '_Thank you for registering\\!_',
    ])


def consultation_summary(consultation) -> str:
    return '\n'.join([
        f"Diagnosis: {consultation.diagnosis or 'Not specified'}",
        f"Treatment Plan: {consultation.treatment_plan or 'Not specified'}",
        f"Follow-up: {consultation.follow_up_advice or 'Not specified'}",
    ])


def render_consultation_complete(camp: Camp, visitor: Visitor, payload: Dict[str, Any]) -> str:
    e = escape_markdown_v2
    lines = [
        '*Consultation Completed*',
        '',
        f'Dear {e(visitor.name)},',
        '',
        f'Your consultation at *{e(camp.name)}* has been completed\\.',
        '',
        f'Patient ID: `{e(visitor.patient_id)}`',
        '',
        '*Summary:*',
        e(payload.get('summary', '')),
        '',
    ]
    if payload.get('summaryLink'):
        lines += [f"Full summary: {e(payload['summaryLink'])}", '']
    lines += [
        '*Follow\\-up Instructions:*',
        '\\- Follow the prescribed medication schedule',
        '\\- Attend follow\\-up appointments as advised',
        '\\- Contact us immediately if symptoms worsen',
        '',
        f'Thank you for visiting {e(camp.name)}\\!',
    ]
    return '\n'.join(lines)


def render_reminder(camp: Camp, visitor: Visitor, payload: Dict[str, Any]) -> str:
    e = escape_markdown_v2
    return '\n'.join([
        '*Appointment Reminder*',
        '',
        f'Dear {e(visitor.name)},',
        '',
        e(payload.get('text', '')),
        '',
        f'Camp: {e(camp.name)}',
        f'Patient ID: `{e(visitor.patient_id)}`',
        '',
        'See you soon\\!',
    ])


def render_custom(camp: Camp, visitor: Visitor, payload: Dict[str, Any]) -> str:
    return escape_markdown_v2(payload.get('text', ''))


RENDERERS: Dict[str, Callable[[Camp, Visitor, Dict[str, Any]], str]] = {
    MessageKind.REGISTRATION: render_registration,
    MessageKind.CONSULTATION_COMPLETE: render_consultation_complete,
    MessageKind.APPOINTMENT_REMINDER: render_reminder,
    MessageKind.CUSTOM: render_custom,
}


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class NotificationDispatcher:
    """Send one message to one visitor and record the attempt.

    ``fallback_chat_id`` is the test address used for visitors who have
    not linked a chat yet; empty disables the fallback.  ``qr_generator``
    turns a :class:`~camps.services.scancodes.ScanPayload` into PNG bytes.
    """

    def __init__(self, client: TelegramClient, *, fallback_chat_id: str = '',
                 qr_generator: Optional[Callable[[scancodes.ScanPayload], bytes]] = None,
                 frontend_url: str = '', clock: Callable[[], Any] = timezone.now):
        self.client = client
        self.fallback_chat_id = fallback_chat_id
        self.qr_generator = qr_generator or scancodes.generate_png
        self.frontend_url = frontend_url
        self.clock = clock

    def resolve_address(self, visitor: Visitor) -> Tuple[Optional[str], bool]:
        """Return ``(address, test_mode)``; the address is ``None`` when nothing is deliverable."""
        if visitor.chat_id:
            return visitor.chat_id, False
        if self.fallback_chat_id and PHONE_RE.match(visitor.phone or ''):
            return self.fallback_chat_id, True
        return None, False

    def dispatch(self, kind: str, camp: Camp, visitor: Visitor, payload: Optional[Dict[str, Any]] = None) -> DispatchResult:
        payload = payload or {}
        text = RENDERERS[kind](camp, visitor, payload)
        address, test_mode = self.resolve_address(visitor)
        entry = NotificationLogEntry.objects.create(
            camp=camp, visitor=visitor, kind=kind, message=text,
            delivered_to=address or '', test_mode=test_mode,
        )

        if address is None:
            entry.finish(MessageStatus.FAILED, error=SKIPPED_PREFIX + NO_ADDRESS)
            logger.warning('Notification %s skipped for visitor %s: %s', kind, visitor.patient_id, NO_ADDRESS)
            return DispatchResult(DispatchStatus.SKIPPED, entry.id, NO_ADDRESS)

        if test_mode:
            logger.info('Notification %s for visitor %s redirected to test chat', kind, visitor.patient_id)
        try:
            if kind == MessageKind.REGISTRATION:
                png = self.qr_generator(scancodes.build_payload(camp, visitor, frontend_url=self.frontend_url))
                self.client.send_photo(address, png, text)
            else:
                self.client.send_text(address, text)
        except ProviderError as exc:
            reason = exc.description
        except DependencyFailed as exc:
            reason = str(exc.detail)
        except Exception:
            logger.exception('Notification %s for visitor %s crashed', kind, visitor.patient_id)
            reason = 'internal error'
        else:
            entry.finish(MessageStatus.SENT, sent_at=self.clock())
            logger.info('Notification %s sent to visitor %s', kind, visitor.patient_id)
            return DispatchResult(DispatchStatus.SENT, entry.id, test_mode=test_mode)

        entry.finish(MessageStatus.FAILED, error=reason)
        logger.warning('Notification %s failed for visitor %s: %s', kind, visitor.patient_id, reason)
        return DispatchResult(DispatchStatus.FAILED, entry.id, reason, test_mode)

    def reply(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> bool:
        """Direct reply to an inbound chat; not recorded in the notification log."""
        try:
            self.client.send_text(chat_id, text, parse_mode=parse_mode)
            return True
        except ProviderError as exc:
            logger.warning('Reply to chat %s failed: %s', chat_id, exc.description)
            return False


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        client_from_settings(),
        fallback_chat_id=settings.TELEGRAM_TEST_CHAT_ID,
        qr_generator=functools.partial(scancodes.generate_png, timeout=settings.QR_TIMEOUT),
        frontend_url=settings.FRONTEND_URL,
    )


# ---------------------------------------------------------------------------
# Post-commit scheduling
# ---------------------------------------------------------------------------

def run_dispatch(kind: str, visitor_id, payload: Optional[Dict[str, Any]] = None) -> Optional[DispatchResult]:
    """Load the visitor afresh and dispatch; any error is logged and swallowed."""
    try:
        visitor = Visitor.objects.select_related('camp').get(pk=visitor_id)
        return get_dispatcher().dispatch(kind, visitor.camp, visitor, payload)
    except Exception:
        logger.exception('Dispatch of %s for visitor %s failed', kind, visitor_id)
        return None


def schedule_dispatch(kind: str, visitor_id, payload: Optional[Dict[str, Any]] = None) -> None:
    """Queue a dispatch task once the current transaction commits; never raises into the caller."""
    from camps.tasks import dispatch_notification

    def _enqueue():
        try:
            dispatch_notification.delay(str(kind), str(visitor_id), payload)
        except Exception:
            logger.exception('Could not queue %s for visitor %s', kind, visitor_id)

    transaction.on_commit(_enqueue)
