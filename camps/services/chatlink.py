"""
Chat-link registry.

Visitors link their Telegram chat to their registration by messaging
the bot their phone number or patient id.  The lookup deliberately
spans all camps: the link belongs to the person's chat, not to one
camp membership.  The first chat to claim a visitor keeps it.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from django.db.models import Q

from camps.models import Visitor

logger = logging.getLogger(__name__)

CONTROL_COMMANDS = ('/start', '/help')

WELCOME = (
    "Welcome to Medical Camp Manager!\n\n"
    "To link your Telegram account:\n\n"
    "1. Register on our website\n"
    "2. Send your phone number (e.g. +1234567890) or Patient ID (e.g. ABC-0001) here\n\n"
    "Once linked, you'll receive camp updates and QR codes directly on Telegram."
)
ALREADY_LINKED = (
    "This registration is already linked to another Telegram account.\n\n"
    "If you need to change it, please contact support."
)


class LinkOutcome(str, enum.Enum):
    INSTRUCTIONS = 'instructions'
    LINKED = 'linked'
    CONFLICT = 'conflict'
    NOT_FOUND = 'not_found'
    IGNORED = 'ignored'


@dataclass(frozen=True)
class LinkResult:
    outcome: LinkOutcome
    reply: str = ''
    visitor_id: Optional[str] = None


def _linked_text(visitor: Visitor) -> str:
    camp_name = visitor.camp.name if visitor.camp_id else 'Medical Camp'
    return (
        "Success! Your Telegram is now connected.\n\n"
        "Your details:\n"
        f"Name: {visitor.name}\n"
        f"Patient ID: {visitor.patient_id}\n"
        f"Camp: {camp_name}\n\n"
        "You'll receive all camp updates and notifications here."
    )


def _not_found_text(text: str) -> str:
    return (
        f'No registration found with:\n"{text}"\n\n'
        "How to link your account:\n\n"
        "1. First, register on our website\n"
        "2. Then send your phone number (format: +1234567890) or your Patient ID\n\n"
        "Make sure the phone number matches exactly what you used during registration."
    )


def find_visitor(text: str) -> Optional[Visitor]:
    """Visitor whose phone or patient id equals ``text`` in any camp.

    A patient id match beats a phone match; among equals the most
    recent registration wins.
    """
    matches = list(
        Visitor.objects.select_related('camp')
        .filter(Q(phone=text) | Q(patient_id=text))
        .order_by('-created_at')
    )
    if not matches:
        return None
    by_patient_id = [v for v in matches if v.patient_id == text]
    return (by_patient_id or matches)[0]


def link_by_inbound_message(channel_id: str, text: str, sender_name: str = '') -> LinkResult:
    channel_id = str(channel_id or '').strip()
    text = (text or '').strip()
    if not channel_id or not text:
        return LinkResult(LinkOutcome.IGNORED)

    if text.split('@', 1)[0].lower() in CONTROL_COMMANDS:
        return LinkResult(LinkOutcome.INSTRUCTIONS, WELCOME)

    visitor = find_visitor(text)
    if visitor is None:
        logger.info('Chat link: no visitor matches message from chat %s', channel_id)
        return LinkResult(LinkOutcome.NOT_FOUND, _not_found_text(text))

    # conditional update: only an unlinked visitor, or one already on this chat
    updated = (
        Visitor.objects.filter(pk=visitor.pk)
        .filter(Q(chat_id__isnull=True) | Q(chat_id='') | Q(chat_id=channel_id))
        .update(chat_id=channel_id)
    )
    if not updated:
        logger.warning('Chat link conflict: chat %s tried to claim visitor %s already linked elsewhere',
                       channel_id, visitor.patient_id)
        return LinkResult(LinkOutcome.CONFLICT, ALREADY_LINKED, str(visitor.pk))

    logger.info('Linked chat %s (%s) to visitor %s', channel_id, sender_name or 'unknown', visitor.patient_id)
    return LinkResult(LinkOutcome.LINKED, _linked_text(visitor), str(visitor.pk))


def handle_update(update: dict, dispatcher) -> Optional[LinkResult]:
    """Process one Telegram update and reply through ``dispatcher``.

    Updates without a text message are ignored.
    """
    message = update.get('message') or update.get('edited_message') or {}
    sender = message.get('from') or {}
    chat = message.get('chat') or {}
    channel_id = chat.get('id', sender.get('id'))
    text = message.get('text')
    if channel_id is None or not text:
        return None
    sender_name = sender.get('first_name') or sender.get('username') or ''
    result = link_by_inbound_message(str(channel_id), text, sender_name)
    if result.reply:
        dispatcher.reply(str(channel_id), result.reply)
    return result
