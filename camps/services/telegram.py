"""
Thin client for the Telegram Bot API.

Every call is bounded by ``timeout`` and every failure (transport
error, timeout, non-JSON body, ``ok: false`` reply, missing token) is
raised as :class:`ProviderError` carrying the provider's human-readable
description.  Callers decide whether that is fatal.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The messaging provider refused or could not be reached."""

    def __init__(self, description: str, *, status_code: Optional[int] = None):
        super().__init__(description)
        self.description = description
        self.status_code = status_code


class TelegramClient:
    def __init__(self, token: str, *, api_base: str = 'https://api.telegram.org', timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.token = token
        self.api_base = api_base.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _call(self, method: str, *, json: Optional[Dict[str, Any]] = None, data: Optional[Dict[str, Any]] = None,
              files: Optional[Dict[str, Any]] = None, http_method: str = 'POST') -> Any:
        if not self.token:
            raise ProviderError('Telegram bot token not configured')
        url = f"{self.api_base}/bot{self.token}/{method}"
        try:
            r = self.session.request(http_method, url, json=json, data=data, files=files, timeout=self.timeout)
        except requests.Timeout as exc:
            raise ProviderError(f'Telegram {method} timed out after {self.timeout}s') from exc
        except requests.RequestException as exc:
            # the URL embeds the token; report the exception type only
            raise ProviderError(f'Telegram {method} request failed: {type(exc).__name__}') from exc
        try:
            body = r.json()
        except ValueError as exc:
            raise ProviderError(f'Telegram {method} returned HTTP {r.status_code}', status_code=r.status_code) from exc
        if not body.get('ok'):
            raise ProviderError(
                body.get('description') or f'Telegram {method} returned HTTP {r.status_code}',
                status_code=body.get('error_code', r.status_code),
            )
        return body.get('result')

    def send_text(self, chat_id: str, text: str, parse_mode: Optional[str] = 'MarkdownV2') -> Any:
        payload: Dict[str, Any] = {'chat_id': chat_id, 'text': text}
        if parse_mode:
            payload['parse_mode'] = parse_mode
        return self._call('sendMessage', json=payload)

    def send_photo(self, chat_id: str, image: bytes, caption: str, parse_mode: Optional[str] = 'MarkdownV2') -> Any:
        data: Dict[str, Any] = {'chat_id': chat_id, 'caption': caption}
        if parse_mode:
            data['parse_mode'] = parse_mode
        return self._call('sendPhoto', data=data, files={'photo': ('qr-code.png', image, 'image/png')})

    def get_webhook_info(self) -> Any:
        return self._call('getWebhookInfo', http_method='GET')

    def set_webhook(self, url: str, *, secret_token: str = '') -> Any:
        payload: Dict[str, Any] = {'url': url, 'allowed_updates': ['message']}
        if secret_token:
            payload['secret_token'] = secret_token
        return self._call('setWebhook', json=payload)

    def delete_webhook(self) -> Any:
        return self._call('deleteWebhook')


def client_from_settings() -> TelegramClient:
    return TelegramClient(
        settings.TELEGRAM_BOT_TOKEN,
        api_base=settings.TELEGRAM_API_BASE,
        timeout=settings.TELEGRAM_TIMEOUT,
    )
