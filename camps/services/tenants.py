"""
Camp (tenant) administration: creation with its staff, public profile,
updates and all-or-nothing deletion.
"""
from __future__ import annotations

import logging
import string
from typing import Any, Dict, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import QuerySet
from django.utils.crypto import get_random_string
from django.utils.text import slugify

from camps.exceptions import ConflictingState, NotFound, ValidationFailed
from camps.identity import Identity
from camps.models import (
    Attachment, Camp, Consultation, NotificationLogEntry, Role, User, Visit, Visitor,
)
from camps.services.accounts import generate_password
from camps.services.audit import log_action
from camps.services.visits import get_camp, remove_stored_file

logger = logging.getLogger(__name__)

CAMP_FIELDS = (
    'name', 'description', 'logo_url', 'background_image_url', 'venue', 'start_time', 'end_time',
    'contact_info', 'hospital_name', 'hospital_address', 'hospital_phone', 'hospital_email',
)
SLUG_ALPHABET = string.ascii_lowercase + string.digits


def _new_slug() -> str:
    return get_random_string(10, SLUG_ALPHABET)


def _password(supplied: Optional[str]) -> str:
    return supplied or generate_password()


def camp_info(slug: str) -> Dict[str, Any]:
    """Public camp profile, including who is practising there."""
    try:
        camp = Camp.objects.get(slug=slug)
    except Camp.DoesNotExist:
        raise NotFound('Camp not found.', code='camp_not_found') from None
    doctors = list(
        camp.staff.filter(role=Role.DOCTOR, is_active=True).order_by('name').values('name', 'specialty')
    )
    return {'camp': camp, 'doctors': doctors}


def create_camp(identity: Identity, data: Dict[str, Any], camp_head: Dict[str, Any],
                doctors: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Create a camp with one camp head and any number of doctors.

    Passwords not supplied are generated.  Plain-text credentials are
    only ever returned here, once.
    """
    fields = {k: data[k] for k in CAMP_FIELDS if data.get(k) is not None}
    if fields.get('start_time') and fields.get('end_time') and fields['end_time'] < fields['start_time']:
        raise ValidationFailed('endTime must not be before startTime.')
    slug = slugify(data.get('slug') or '') or _new_slug()

    try:
        with transaction.atomic():
            camp = Camp.objects.create(slug=slug, **fields)
            head_password = _password(camp_head.get('password'))
            head = User.objects.create_user(
                email=camp_head['email'], password=head_password, name=camp_head.get('name', ''),
                phone=camp_head.get('phone', ''), role=Role.CAMP_HEAD, camp=camp,
            )
            doctor_credentials = []
            for doc in doctors:
                pw = _password(doc.get('password'))
                user = User.objects.create_user(
                    email=doc['email'], password=pw, name=doc.get('name', ''), phone=doc.get('phone', ''),
                    specialty=doc.get('specialty', ''), role=Role.DOCTOR, camp=camp,
                )
                doctor_credentials.append({'name': user.name, 'email': user.email, 'tempPassword': pw})
            log_action(user=identity, action='camp_create', camp_id=camp.pk, object_type='camp',
                       object_id=camp.pk, detail={'slug': camp.slug, 'doctors': len(doctors)})
    except IntegrityError as exc:
        raise ConflictingState('Camp slug or staff email already in use.', code='duplicate') from exc

    logger.info('Camp %s created with %d doctors', camp.slug, len(doctor_credentials))
    return {
        'camp': camp,
        'campHeadCredentials': {'email': head.email, 'tempPassword': head_password},
        'doctorCredentials': doctor_credentials,
    }


def list_camps():
    return Camp.objects.order_by('-created_at')


def camp_details(camp_id) -> Camp:
    camp = get_camp(camp_id)
    camp.staff_list = list(camp.staff.order_by('role', 'name'))
    return camp


def list_staff(*, role: Optional[str] = None, camp_id=None) -> QuerySet:
    """Staff accounts across all camps, optionally narrowed by role and camp."""
    qs = User.objects.select_related('camp').order_by('camp__name', 'role', 'name')
    if role:
        qs = qs.filter(role=role)
    if camp_id is not None:
        qs = qs.filter(camp_id=camp_id)
    return qs


def camp_doctors(camp_id) -> QuerySet:
    camp = get_camp(camp_id)
    return User.objects.filter(camp=camp, role=Role.DOCTOR).order_by('name')


def camp_head(camp_id) -> User:
    camp = get_camp(camp_id)
    head = User.objects.filter(camp=camp, role=Role.CAMP_HEAD).first()
    if head is None:
        raise NotFound('Camp head not found for this camp.', code='camp_head_not_found')
    return head


def update_camp(identity: Identity, camp_id, data: Dict[str, Any]) -> Camp:
    camp = get_camp(camp_id)
    if data.get('slug') and data['slug'] != camp.slug:
        raise ValidationFailed('Camp slug cannot be changed.', code='slug_immutable')
    changed = []
    for field in CAMP_FIELDS:
        if field in data and data[field] is not None:
            setattr(camp, field, data[field])
            changed.append(field)
    if camp.end_time < camp.start_time:
        raise ValidationFailed('endTime must not be before startTime.')
    if changed:
        camp.save(update_fields=changed + ['updated_at'])
        log_action(user=identity, action='camp_update', camp_id=camp.pk, object_type='camp',
                   object_id=camp.pk, detail={'fields': changed})
    return camp


def delete_tenant(identity: Identity, camp_id) -> Dict[str, int]:
    """Remove a camp and everything scoped to it in one transaction.

    Rows go in dependency order; any failure rolls back the lot.
    Stored attachment files are removed only after the commit.
    Audit events keep a bare camp id and are left in place.
    """
    camp = get_camp(camp_id)
    counts: Dict[str, int] = {}
    with transaction.atomic():
        camp = Camp.objects.select_for_update().get(pk=camp.pk)
        files = list(Attachment.objects.filter(camp=camp).values_list('file', flat=True))
        for label, qs in (
            ('notifications', NotificationLogEntry.objects.filter(camp=camp)),
            ('attachments', Attachment.objects.filter(camp=camp)),
            ('consultations', Consultation.objects.filter(visit__camp=camp)),
            ('visits', Visit.objects.filter(camp=camp)),
            ('visitors', Visitor.objects.filter(camp=camp)),
            ('users', User.objects.filter(camp=camp)),
        ):
            counts[label] = qs.delete()[1].get(qs.model._meta.label, 0)
        pk = camp.pk
        camp.delete()
        log_action(user=identity, action='camp_delete', camp_id=pk, object_type='camp', object_id=pk, detail=counts)
        storage = Attachment._meta.get_field('file').storage

        def _cleanup():
            for name in files:
                remove_stored_file(storage, name)
        transaction.on_commit(_cleanup)

    logger.info('Deleted camp %s: %s', pk, counts)
    return counts
