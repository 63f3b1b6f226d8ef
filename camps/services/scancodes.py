"""
Scannable check-in codes.

A code carries either a direct link into the doctor UI (when the
frontend URL is configured) or a small JSON document naming the camp
and the patient id.  :func:`decode_payload` accepts both forms so
the scan endpoint can resolve whatever a visitor presents.
"""
from __future__ import annotations

import base64
import io
import json
import re
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from camps.exceptions import DependencyFailed
from camps.services.isolation import parse_camp_id

_LINK_RE = re.compile(r'^(?P<base>.+)/#/(?P<slug>[-a-zA-Z0-9_]+)/doctor/visitor/(?P<visitor>[0-9a-fA-F-]{36})$')

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


@dataclass(frozen=True)
class ScanPayload:
    """What a check-in code identifies.

    Link form sets ``slug`` and ``visitor_id``; JSON form sets
    ``camp_id`` and ``patient_id``.
    """
    camp_id: Optional[str] = None
    patient_id: Optional[str] = None
    slug: Optional[str] = None
    visitor_id: Optional[str] = None
    link: Optional[str] = None

    @property
    def is_link(self) -> bool:
        return self.link is not None


def build_payload(camp, visitor, *, frontend_url: str = '') -> ScanPayload:
    if frontend_url:
        link = f"{frontend_url.rstrip('/')}/#/{camp.slug}/doctor/visitor/{visitor.id}"
        return ScanPayload(slug=camp.slug, visitor_id=str(visitor.id), link=link)
    return ScanPayload(camp_id=str(camp.id), patient_id=visitor.patient_id)


def encode_payload(payload: ScanPayload) -> str:
    if payload.is_link:
        return payload.link
    return json.dumps({'campId': payload.camp_id, 'patientId': payload.patient_id}, separators=(',', ':'))


def decode_payload(text: str) -> ScanPayload:
    """Parse the text read from a code; ``ValueError`` if it is neither form."""
    text = (text or '').strip()
    m = _LINK_RE.match(text)
    if m:
        visitor_id = parse_camp_id(m.group('visitor').lower())
        if visitor_id is None:
            raise ValueError('scan link does not name a visitor')
        return ScanPayload(slug=m.group('slug'), visitor_id=str(visitor_id), link=text)
    try:
        data = json.loads(text)
    except ValueError:
        raise ValueError('unrecognised scan payload') from None
    if not isinstance(data, dict) or not data.get('campId') or not data.get('patientId'):
        raise ValueError('scan payload must carry campId and patientId')
    return ScanPayload(camp_id=str(data['campId']), patient_id=str(data['patientId']))


def make_qr(data: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=10, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    return qr


def _render_png(data: str) -> bytes:
    img = make_qr(data).make_image(fill_color='black', back_color='white')
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


def _pool() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='qr')
        return _executor


def _retire_pool(pool: ThreadPoolExecutor) -> None:
    """Stop handing work to ``pool``; its stuck render finishes on its own."""
    global _executor
    with _executor_lock:
        if _executor is pool:
            _executor = None
    pool.shutdown(wait=False)


def generate_png(payload: ScanPayload, *, timeout: float = 5.0) -> bytes:
    """Render ``payload`` as a PNG, raising :class:`DependencyFailed` on error or timeout.

    A render that overruns ``timeout`` cannot be interrupted, so the pool
    running it is retired and the next call starts a fresh one.
    """
    pool = _pool()
    future = pool.submit(_render_png, encode_payload(payload))
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        _retire_pool(pool)
        raise DependencyFailed(f'QR generation timed out after {timeout}s', code='qr_timeout') from None
    except Exception as exc:
        raise DependencyFailed('QR generation failed', code='qr_failed') from exc


def as_data_url(png: bytes) -> str:
    return 'data:image/png;base64,' + base64.b64encode(png).decode('ascii')
