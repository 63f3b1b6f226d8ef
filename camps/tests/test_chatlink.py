import pytest

from camps.models import Visitor
from camps.services import visits
from camps.services.chatlink import LinkOutcome, handle_update, link_by_inbound_message

from .conftest import DEMOGRAPHICS

pytestmark = pytest.mark.django_db


def test_first_chat_wins_and_second_is_refused(camp_a):
    visitor, _ = visits.register(camp_a, DEMOGRAPHICS)

    first = link_by_inbound_message('999', DEMOGRAPHICS['phone'], 'Asha')
    assert first.outcome is LinkOutcome.LINKED
    assert 'WINTER-CLINIC-0001' in first.reply

    second = link_by_inbound_message('888', DEMOGRAPHICS['phone'])
    assert second.outcome is LinkOutcome.CONFLICT
    visitor.refresh_from_db()
    assert visitor.chat_id == '999'


def test_relinking_same_chat_is_idempotent(camp_a):
    visitor, _ = visits.register(camp_a, DEMOGRAPHICS)
    link_by_inbound_message('111', visitor.patient_id)
    again = link_by_inbound_message('111', visitor.patient_id)
    assert again.outcome is LinkOutcome.LINKED
    assert Visitor.objects.get(pk=visitor.pk).chat_id == '111'


def test_lookup_spans_camps_and_prefers_patient_id(camp_a, camp_b):
    a, _ = visits.register(camp_a, DEMOGRAPHICS)
    b, _ = visits.register(camp_b, dict(DEMOGRAPHICS, phone='+15557777'))
    result = link_by_inbound_message('333', b.patient_id)
    assert result.visitor_id == str(b.pk)
    assert Visitor.objects.get(pk=a.pk).chat_id is None


def test_control_commands_and_unknown_text(camp_a):
    assert link_by_inbound_message('1', '/start').outcome is LinkOutcome.INSTRUCTIONS
    assert link_by_inbound_message('1', '/help@CampBot').outcome is LinkOutcome.INSTRUCTIONS
    missing = link_by_inbound_message('1', '+10000000')
    assert missing.outcome is LinkOutcome.NOT_FOUND
    assert '+10000000' in missing.reply
    assert link_by_inbound_message('', 'hello').outcome is LinkOutcome.IGNORED


def test_handle_update_replies_through_dispatcher(camp_a, dispatcher, fake_client):
    visits.register(camp_a, DEMOGRAPHICS)
    update = {'update_id': 1, 'message': {'chat': {'id': 555}, 'from': {'id': 555, 'first_name': 'Asha'},
                                          'text': DEMOGRAPHICS['phone']}}
    result = handle_update(update, dispatcher)
    assert result.outcome is LinkOutcome.LINKED
    assert fake_client.sent[0]['chat_id'] == '555'
    assert fake_client.sent[0]['parse_mode'] is None


def test_handle_update_ignores_non_text(dispatcher, fake_client, db):
    assert handle_update({'update_id': 2, 'message': {'chat': {'id': 1}, 'photo': []}}, dispatcher) is None
    assert handle_update({'update_id': 3}, dispatcher) is None
    assert fake_client.sent == []
