import pytest

from camps.exceptions import DependencyFailed
from camps.models import MessageKind, MessageStatus, NotificationLogEntry, Visitor
from camps.services import visits
from camps.services.notifications import DispatchStatus, NotificationDispatcher, escape_markdown_v2

from .conftest import DEMOGRAPHICS, FakeClient

pytestmark = pytest.mark.django_db


@pytest.fixture
def visitor(camp_a):
    v, _ = visits.register(camp_a, DEMOGRAPHICS)
    return v


def test_escape_markdown_v2():
    assert escape_markdown_v2('a_b*c.d!') == 'a\\_b\\*c\\.d\\!'
    assert escape_markdown_v2('(x)-[y]') == '\\(x\\)\\-\\[y\\]'
    assert escape_markdown_v2(None) == ''


def test_no_address_is_skipped_and_logged(camp_a, visitor, dispatcher, fake_client):
    result = dispatcher.dispatch(MessageKind.CUSTOM, camp_a, visitor, {'text': 'hi'})
    assert result.status is DispatchStatus.SKIPPED
    entry = NotificationLogEntry.objects.get(pk=result.log_id)
    assert entry.status == MessageStatus.FAILED
    assert entry.error_message.startswith('skipped:')
    assert fake_client.sent == []


def test_fallback_address_marks_test_mode(camp_a, visitor, fake_client):
    dispatcher = NotificationDispatcher(fake_client, fallback_chat_id='999')
    result = dispatcher.dispatch(MessageKind.APPOINTMENT_REMINDER, camp_a, visitor, {'text': 'Tomorrow 9am.'})
    assert result.status is DispatchStatus.SENT
    assert result.test_mode
    entry = NotificationLogEntry.objects.get(pk=result.log_id)
    assert entry.delivered_to == '999'
    assert entry.sent_at is not None
    assert 'Tomorrow 9am\\.' in fake_client.sent[0]['text']


def test_fallback_not_used_for_invalid_phone(camp_a, visitor, fake_client):
    Visitor.objects.filter(pk=visitor.pk).update(phone='call me')
    visitor.refresh_from_db()
    dispatcher = NotificationDispatcher(fake_client, fallback_chat_id='999')
    assert dispatcher.resolve_address(visitor) == (None, False)


def test_provider_failure_is_recorded_not_raised(camp_a, visitor):
    Visitor.objects.filter(pk=visitor.pk).update(chat_id='42')
    visitor.refresh_from_db()
    dispatcher = NotificationDispatcher(FakeClient(fail_with='Bad Request: chat not found'))
    result = dispatcher.dispatch(MessageKind.CUSTOM, camp_a, visitor, {'text': 'x'})
    assert result.status is DispatchStatus.FAILED
    entry = NotificationLogEntry.objects.get(pk=result.log_id)
    assert entry.status == MessageStatus.FAILED
    assert entry.error_message == 'Bad Request: chat not found'


def test_qr_failure_fails_registration_message(camp_a, visitor, fake_client):
    Visitor.objects.filter(pk=visitor.pk).update(chat_id='42')
    visitor.refresh_from_db()

    def broken(payload):
        raise DependencyFailed('QR generation timed out after 5.0s', code='qr_timeout')

    dispatcher = NotificationDispatcher(fake_client, qr_generator=broken)
    result = dispatcher.dispatch(MessageKind.REGISTRATION, camp_a, visitor)
    assert result.status is DispatchStatus.FAILED
    assert 'timed out' in result.reason
    assert fake_client.sent == []


def test_log_entry_finishes_once(camp_a, visitor):
    entry = NotificationLogEntry.objects.create(camp=camp_a, visitor=visitor, kind=MessageKind.CUSTOM, message='m')
    entry.finish(MessageStatus.SENT)
    with pytest.raises(ValueError):
        entry.finish(MessageStatus.FAILED, error='late')
    with pytest.raises(ValueError):
        NotificationLogEntry.objects.create(camp=camp_a, visitor=visitor, kind=MessageKind.CUSTOM,
                                            message='m').finish(MessageStatus.PENDING)


def test_dispatch_error_after_commit_never_reaches_caller(camp_a, monkeypatch,
                                                         django_capture_on_commit_callbacks):
    from camps.services import notifications

    def explode():
        raise RuntimeError('provider misconfigured')

    monkeypatch.setattr(notifications, 'get_dispatcher', explode)
    with django_capture_on_commit_callbacks(execute=True):
        visitor, _ = visits.register(camp_a, DEMOGRAPHICS)
    assert Visitor.objects.filter(pk=visitor.pk).exists()


def test_registration_queues_dispatch_task_after_commit(camp_a, monkeypatch, django_capture_on_commit_callbacks):
    from camps import tasks

    queued = []
    monkeypatch.setattr(tasks.dispatch_notification, 'delay', lambda *args: queued.append(args))
    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        visitor, _ = visits.register(camp_a, DEMOGRAPHICS)
    assert queued == []
    for callback in callbacks:
        callback()
    assert queued == [('REGISTRATION', str(visitor.pk), None)]


def test_broker_outage_is_logged_not_raised(camp_a, monkeypatch, caplog, django_capture_on_commit_callbacks):
    from camps import tasks

    def unreachable(*args):
        raise ConnectionError('broker down')

    monkeypatch.setattr(tasks.dispatch_notification, 'delay', unreachable)
    with django_capture_on_commit_callbacks(execute=True):
        visitor, _ = visits.register(camp_a, DEMOGRAPHICS)
    assert Visitor.objects.filter(pk=visitor.pk).exists()
    assert 'Could not queue' in caplog.text


def test_dispatch_task_runs_inline_when_eager(camp_a, use_dispatcher, fake_client):
    from camps.tasks import dispatch_notification

    visitor, _ = visits.register(camp_a, DEMOGRAPHICS)
    Visitor.objects.filter(pk=visitor.pk).update(chat_id='77')
    outcome = dispatch_notification.delay('APPOINTMENT_REMINDER', str(visitor.pk), {'text': 'Bring reports.'})
    assert outcome.get() == 'SENT'
    assert fake_client.sent[0]['chat_id'] == '77'
