import pytest
from django.db.models import QuerySet

from camps.exceptions import ConflictingState, ValidationFailed
from camps.models import (
    AuditEvent, Camp, Consultation, MessageKind, NotificationLogEntry, User, Visit, Visitor,
)
from camps.services import tenants, visits

from .conftest import DEMOGRAPHICS

pytestmark = pytest.mark.django_db

CAMP_DATA = {
    'name': 'Spring Clinic',
    'venue': 'School hall',
    'hospital_name': 'General Hospital',
    'start_time': '2026-03-01T09:00:00Z',
    'end_time': '2026-03-01T17:00:00Z',
}


def _populate(camp, identity):
    visitor, visit = visits.register(camp, DEMOGRAPHICS)
    visits.save_consultation(identity, camp.pk, visit.pk, {
        'chief_complaints': 'c', 'diagnosis': 'd', 'treatment_plan': 't',
    })
    NotificationLogEntry.objects.create(camp=camp, visitor=visitor, kind=MessageKind.CUSTOM, message='m')


def test_create_camp_with_staff(admin_user, as_identity):
    created = tenants.create_camp(
        as_identity(admin_user), dict(CAMP_DATA, slug='spring'),
        {'name': 'Head', 'email': 'head@spring.org'},
        [{'name': 'Dr One', 'email': 'one@spring.org', 'specialty': 'ENT'}],
    )
    camp = created['camp']
    assert camp.slug == 'spring'
    assert created['campHeadCredentials']['tempPassword']
    doctor = User.objects.get(email='one@spring.org')
    assert doctor.camp_id == camp.pk
    assert doctor.check_password(created['doctorCredentials'][0]['tempPassword'])


def test_duplicate_staff_email_rolls_back_camp(admin_user, as_identity, doctor_a):
    with pytest.raises(ConflictingState):
        tenants.create_camp(as_identity(admin_user), CAMP_DATA, {'name': 'H', 'email': doctor_a.email}, [])
    assert not Camp.objects.filter(name='Spring Clinic').exists()


def test_slug_cannot_change(admin_user, as_identity, camp_a):
    with pytest.raises(ValidationFailed) as exc:
        tenants.update_camp(as_identity(admin_user), camp_a.pk, {'slug': 'renamed'})
    assert exc.value.code == 'slug_immutable'
    updated = tenants.update_camp(as_identity(admin_user), camp_a.pk, {'venue': 'Stadium'})
    assert updated.venue == 'Stadium'


def test_delete_tenant_removes_everything_scoped(admin_user, as_identity, camp_a, camp_b, doctor_a, doctor_b):
    _populate(camp_a, as_identity(doctor_a))
    _populate(camp_b, as_identity(doctor_b))

    counts = tenants.delete_tenant(as_identity(admin_user), camp_a.pk)

    assert counts['visitors'] == 1 and counts['visits'] == 1 and counts['users'] == 1
    assert not Camp.objects.filter(pk=camp_a.pk).exists()
    for model in (Visitor, Visit, NotificationLogEntry):
        assert not model.objects.filter(camp_id=camp_a.pk).exists()
        assert model.objects.filter(camp_id=camp_b.pk).exists()
    assert not Consultation.objects.filter(visit__camp_id=camp_a.pk).exists()
    assert AuditEvent.objects.filter(action='camp_delete', camp_id=camp_a.pk).exists()


def test_delete_tenant_is_all_or_nothing(admin_user, as_identity, camp_a, doctor_a, monkeypatch):
    _populate(camp_a, as_identity(doctor_a))
    real_delete = QuerySet.delete

    def failing_delete(qs):
        if qs.model is Visitor:
            raise RuntimeError('disk full')
        return real_delete(qs)

    monkeypatch.setattr(QuerySet, 'delete', failing_delete)
    with pytest.raises(RuntimeError):
        tenants.delete_tenant(as_identity(admin_user), camp_a.pk)
    monkeypatch.undo()

    assert Camp.objects.filter(pk=camp_a.pk).exists()
    assert Visit.objects.filter(camp=camp_a).count() == 1
    assert NotificationLogEntry.objects.filter(camp=camp_a).count() == 1
    assert Consultation.objects.filter(visit__camp=camp_a).count() == 1
