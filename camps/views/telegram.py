"""
Telegram bot endpoints.

The webhook is called by Telegram, not by our frontend: it must always
answer 200 so that Telegram does not keep redelivering an update, and
any processing error is logged rather than surfaced.  The only refusal
is a wrong ``X-Telegram-Bot-Api-Secret-Token`` when a secret is
configured. No rate limit applies, since a 429 would also trigger
redelivery.
"""
from __future__ import annotations

import hmac
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from camps.exceptions import DependencyFailed, ValidationFailed
from camps.permissions import IsAdmin
from camps.serializers.notifications import WebhookSetupSerializer
from camps.services.chatlink import handle_update
from camps.services.notifications import get_dispatcher
from camps.services.telegram import ProviderError, client_from_settings

logger = logging.getLogger(__name__)

SECRET_HEADER = 'X-Telegram-Bot-Api-Secret-Token'


def _secret_ok(request) -> bool:
    expected = settings.TELEGRAM_WEBHOOK_SECRET
    if not expected:
        return True
    return hmac.compare_digest(request.headers.get(SECRET_HEADER, ''), expected)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([])
def webhook(request):
    if not _secret_ok(request):
        logger.warning('Telegram webhook call with a bad secret token from %s', request.META.get('REMOTE_ADDR'))
        return Response({'ok': False}, status=status.HTTP_403_FORBIDDEN)
    try:
        update = request.data if isinstance(request.data, dict) else {}
        handle_update(update, get_dispatcher())
    except Exception:
        logger.exception('Telegram webhook processing failed')
    return Response({'ok': True})


def _require_client():
    client = client_from_settings()
    if not client.configured:
        raise ValidationFailed('TELEGRAM_BOT_TOKEN not configured.', code='telegram_not_configured')
    return client


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdmin])
def info(request):
    client = _require_client()
    try:
        webhook_info = client.get_webhook_info()
    except ProviderError as exc:
        raise DependencyFailed(exc.description, code='telegram_error') from exc
    return Response({'ok': True, 'configured': True, 'webhookInfo': webhook_info})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdmin])
def setup(request):
    s = WebhookSetupSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    client = _require_client()
    try:
        result = client.set_webhook(s.validated_data['webhookUrl'], secret_token=settings.TELEGRAM_WEBHOOK_SECRET)
    except ProviderError as exc:
        raise DependencyFailed(exc.description, code='telegram_error') from exc
    logger.info('Telegram webhook set to %s', s.validated_data['webhookUrl'])
    return Response({'ok': True, 'result': result})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdmin])
def delete_webhook(request):
    client = _require_client()
    try:
        result = client.delete_webhook()
    except ProviderError as exc:
        raise DependencyFailed(exc.description, code='telegram_error') from exc
    logger.info('Telegram webhook removed')
    return Response({'ok': True, 'result': result})
