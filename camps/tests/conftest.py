import datetime as dt

import pytest
from django.core.cache import cache
from django.utils import timezone

from campclinic.celery import app as celery_app
from camps.identity import Identity
from camps.models import Camp, Role, User
from camps.services import notifications
from camps.services.notifications import NotificationDispatcher
from camps.services.telegram import ProviderError


class FakeClient:
    """Records what would have been sent to Telegram."""

    configured = True

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.sent = []

    def _record(self, method, chat_id, **kw):
        if self.fail_with:
            raise ProviderError(self.fail_with)
        self.sent.append({'method': method, 'chat_id': str(chat_id), **kw})
        return {'message_id': len(self.sent)}

    def send_text(self, chat_id, text, parse_mode='MarkdownV2'):
        return self._record('sendMessage', chat_id, text=text, parse_mode=parse_mode)

    def send_photo(self, chat_id, image, caption, parse_mode='MarkdownV2'):
        return self._record('sendPhoto', chat_id, caption=caption, image=image)


@pytest.fixture(autouse=True)
def _quiet_side_effects(settings, monkeypatch):
    # dispatch tasks run inline, no broker
    monkeypatch.setattr(celery_app.conf, 'task_always_eager', True)
    monkeypatch.setattr(celery_app.conf, 'task_eager_propagates', True)
    # the app reads the CELERY_-namespaced Django settings, which take precedence
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True
    settings.TELEGRAM_TEST_CHAT_ID = ''
    settings.TELEGRAM_WEBHOOK_SECRET = ''
    settings.FRONTEND_URL = ''
    # throttle counters live in the cache
    cache.clear()


def make_camp(slug, name='Camp'):
    start = timezone.now() + dt.timedelta(days=1)
    return Camp.objects.create(
        slug=slug, name=name, venue='Town hall', hospital_name='City Hospital',
        start_time=start, end_time=start + dt.timedelta(hours=8),
    )


@pytest.fixture
def camp_a(db):
    return make_camp('winter-clinic', 'Winter Clinic')


@pytest.fixture
def camp_b(db):
    return make_camp('summer-clinic', 'Summer Clinic')


@pytest.fixture
def doctor_a(camp_a):
    return User.objects.create_user(email='doc.a@example.com', password='P@ssw0rd1', name='Dr A',
                                    role=Role.DOCTOR, camp=camp_a)


@pytest.fixture
def doctor_b(camp_b):
    return User.objects.create_user(email='doc.b@example.com', password='P@ssw0rd1', name='Dr B',
                                    role=Role.DOCTOR, camp=camp_b)


@pytest.fixture
def head_a(camp_a):
    return User.objects.create_user(email='head.a@example.com', password='P@ssw0rd1', name='Head A',
                                    role=Role.CAMP_HEAD, camp=camp_a)


@pytest.fixture
def admin_user(db):
    return User.objects.create_superuser(email='admin@example.com', password='P@ssw0rd1', name='Admin')


@pytest.fixture
def as_identity():
    return Identity.from_user


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def dispatcher(fake_client):
    return NotificationDispatcher(fake_client, qr_generator=lambda payload: b'\x89PNG fake')


@pytest.fixture
def use_dispatcher(monkeypatch, dispatcher):
    """Route every dispatch (including post-commit ones) through ``dispatcher``."""
    monkeypatch.setattr(notifications, 'get_dispatcher', lambda: dispatcher)
    return dispatcher


DEMOGRAPHICS = {
    'name': 'Asha Verma',
    'phone': '+1555000111',
    'age': 34,
    'gender': 'female',
    'symptoms': 'cough',
}
