"""
Visitor / visit / consultation lifecycle.

Every entry point takes the acting :class:`~camps.identity.Identity`
(where one exists) and the target camp explicitly, re-checks tenant
isolation, and scopes all queries by camp id.  ``now`` is injectable
so tests can pin the clock.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import bleach
from django.conf import settings
from django.core import signing
from django.db import IntegrityError, models, transaction
from django.db.models import F, Q, QuerySet
from django.utils import timezone

from camps.exceptions import AuthorizationDenied, ConflictingState, NotFound, ValidationFailed
from camps.identity import Identity
from camps.models import (
    OPEN_VISIT_STATUSES, Attachment, AttachmentType, Camp, Consultation, MessageKind, Visit, VisitStatus, Visitor,
)
from camps.services.audit import log_action
from camps.services.isolation import ensure_authorized, parse_camp_id
from camps.services.notifications import consultation_summary, schedule_dispatch

logger = logging.getLogger(__name__)

Clock = Callable[[], Any]

VISITOR_TEXT_FIELDS = ('name', 'phone', 'gender', 'address', 'city', 'district', 'symptoms',
                       'existing_conditions', 'allergies')
CONSULTATION_TEXT_FIELDS = ('chief_complaints', 'clinical_notes', 'diagnosis', 'treatment_plan', 'follow_up_advice')
CONSULTATION_REQUIRED = ('chief_complaints', 'diagnosis', 'treatment_plan')


class SearchField(models.TextChoices):
    """Visitor columns a search may be restricted to."""
    NAME = 'name', 'Name'
    PHONE = 'phone', 'Phone'
    PATIENT_ID = 'patientId', 'Patient ID'


SEARCH_COLUMNS = {
    SearchField.NAME: 'visitor__name',
    SearchField.PHONE: 'visitor__phone',
    SearchField.PATIENT_ID: 'visitor__patient_id',
}


def _clean(value: Any) -> str:
    return bleach.clean(str(value or '').strip(), tags=[], strip=True)


def format_patient_id(slug: str, seq: int) -> str:
    return f"{slug.upper()}-{seq:04d}"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_camp_by_slug(slug: str) -> Camp:
    try:
        return Camp.objects.get(slug=slug)
    except Camp.DoesNotExist:
        raise NotFound('Camp not found.', code='camp_not_found') from None


def get_camp(camp_id) -> Camp:
    pk = parse_camp_id(camp_id)
    camp = Camp.objects.filter(pk=pk).first() if pk else None
    if camp is None:
        raise NotFound('Camp not found.', code='camp_not_found')
    return camp


def _get_visit(camp_id, visit_id, *, for_update: bool = False) -> Visit:
    qs = Visit.objects.select_related('visitor')
    if for_update:
        qs = qs.select_for_update()
    visit = qs.filter(pk=visit_id, camp_id=camp_id).first()
    if visit is None:
        raise NotFound('Visit not found.', code='visit_not_found')
    return visit


def _get_visitor(camp_id, visitor_id) -> Visitor:
    visitor = Visitor.objects.filter(pk=visitor_id, camp_id=camp_id).first()
    if visitor is None:
        raise NotFound('Visitor not found.', code='visitor_not_found')
    return visitor


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def _next_seq(camp_id) -> Tuple[int, str]:
    with transaction.atomic():
        Camp.objects.filter(pk=camp_id).update(visitor_seq=F('visitor_seq') + 1)
        return Camp.objects.filter(pk=camp_id).values_list('visitor_seq', 'slug').get()


def register(camp: Camp, demographics: Dict[str, Any], *, now: Optional[Clock] = None) -> Tuple[Visitor, Visit]:
    """Create a visitor and its first REGISTERED visit.

    The patient id is minted from the camp's counter.  A collision with
    an existing row (ids imported or created outside this path) burns
    that number and retries, up to ``PATIENT_ID_MAX_ATTEMPTS`` times.
    A REGISTRATION notification is queued for after commit.
    """
    fields = {k: _clean(demographics.get(k)) for k in VISITOR_TEXT_FIELDS}
    fields['age'] = demographics.get('age')
    if not fields['name'] or not fields['phone'] or fields['age'] is None or not fields['gender']:
        raise ValidationFailed('name, phone, age and gender are required.')

    attempts = settings.PATIENT_ID_MAX_ATTEMPTS
    created_at = (now or timezone.now)()
    with transaction.atomic():
        for attempt in range(1, attempts + 1):
            seq, slug = _next_seq(camp.pk)
            patient_id = format_patient_id(slug, seq)
            try:
                with transaction.atomic():
                    visitor = Visitor.objects.create(camp=camp, patient_id=patient_id, created_at=created_at, **fields)
                    visit = Visit.objects.create(camp=camp, visitor=visitor, status=VisitStatus.REGISTERED,
                                                 created_at=created_at)
            except IntegrityError:
                logger.warning('Patient id %s already taken (attempt %d/%d)', patient_id, attempt, attempts)
                continue
            break
        else:
            raise ConflictingState('Could not allocate a patient id, please retry.', code='patient_id_conflict')

        schedule_dispatch(MessageKind.REGISTRATION, visitor.pk)

    logger.info('Registered visitor %s in camp %s', visitor.patient_id, camp.slug)
    return visitor, visit


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _visits(camp_id) -> QuerySet:
    return (Visit.objects.filter(camp_id=camp_id)
            .select_related('visitor', 'doctor', 'consultation'))


def list_visits(identity: Identity, camp_id, *, status: Optional[str] = None) -> QuerySet:
    camp_id = ensure_authorized(identity, camp_id)
    qs = _visits(camp_id)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('-created_at')


def _text_filter(query: str, columns: Iterable[str]) -> Q:
    cond = Q()
    for column in columns:
        cond |= Q(**{f'{column}__icontains': query})
    return cond


def search(identity: Identity, camp_id, query: str, field: Optional[str] = None) -> QuerySet:
    """Visits whose visitor matches ``query`` by case-insensitive substring.

    ``field`` restricts the match to one :class:`SearchField`; without
    it name, phone and patient id are OR-ed.
    """
    camp_id = ensure_authorized(identity, camp_id)
    query = (query or '').strip()
    if not query:
        raise ValidationFailed('Search query required.')
    if field:
        if field not in SEARCH_COLUMNS:
            raise ValidationFailed(f'Unknown search field {field!r}.')
        columns = [SEARCH_COLUMNS[field]]
    else:
        columns = SEARCH_COLUMNS.values()
    return _visits(camp_id).filter(_text_filter(query, columns)).order_by('-created_at')


def list_my_patients(identity: Identity, camp_id, *, search_text: str = '') -> QuerySet:
    """Completed visits whose consultation the acting doctor recorded."""
    camp_id = ensure_authorized(identity, camp_id)
    qs = _visits(camp_id).filter(doctor_id=identity.user_id, status=VisitStatus.COMPLETED)
    search_text = (search_text or '').strip()
    if search_text:
        qs = qs.filter(_text_filter(search_text, SEARCH_COLUMNS.values()))
    return qs.order_by('-consultation_time')


def list_visitors(identity: Identity, camp_id, *, search_text: str = '') -> QuerySet:
    camp_id = ensure_authorized(identity, camp_id)
    qs = Visitor.objects.filter(camp_id=camp_id).prefetch_related('visits')
    search_text = (search_text or '').strip()
    if search_text:
        qs = qs.filter(Q(name__icontains=search_text) | Q(phone__icontains=search_text)
                       | Q(patient_id__icontains=search_text))
    return qs.order_by('-created_at')


def visitor_details(identity: Identity, camp_id, visitor_id) -> Tuple[Visitor, List[Visit]]:
    camp_id = ensure_authorized(identity, camp_id)
    visitor = _get_visitor(camp_id, visitor_id)
    visits = list(_visits(camp_id).filter(visitor=visitor).order_by('-created_at'))
    return visitor, visits


def visit_details(identity: Identity, camp_id, visit_id) -> Visit:
    camp_id = ensure_authorized(identity, camp_id)
    visit = _visits(camp_id).prefetch_related('attachments').filter(pk=visit_id).first()
    if visit is None:
        raise NotFound('Visit not found.', code='visit_not_found')
    return visit


# ---------------------------------------------------------------------------
# Check-in scan
# ---------------------------------------------------------------------------

def resolve_by_scan(identity: Identity, visitor_id, *, camp_id=None) -> Tuple[Visitor, Visit]:
    """Open the visitor a scanned code names, in the acting doctor's camp.

    Re-entry is idempotent: the latest open visit is returned, and a
    new REGISTERED visit is created only when none is open.
    """
    target_camp = ensure_authorized(identity, camp_id if camp_id is not None else identity.camp_id)
    pk = parse_camp_id(visitor_id)
    visitor = Visitor.objects.select_related('camp').filter(pk=pk).first() if pk else None
    if visitor is None or (identity.is_admin and target_camp and visitor.camp_id != target_camp):
        raise NotFound('Visitor not found.', code='visitor_not_found')
    if not identity.is_admin and visitor.camp_id != identity.camp_id:
        logger.warning('Scan of visitor %s from camp %s by user %s of camp %s refused',
                       visitor.pk, visitor.camp_id, identity.user_id, identity.camp_id)
        raise AuthorizationDenied('This visitor is not registered for your camp.', code='cross_tenant_visitor')

    with transaction.atomic():
        # serialise concurrent scans of the same visitor
        Visitor.objects.select_for_update().filter(pk=visitor.pk).first()
        visit = (Visit.objects.filter(visitor=visitor, camp_id=visitor.camp_id, status__in=OPEN_VISIT_STATUSES)
                 .order_by('-created_at').first())
        if visit is None:
            visit = Visit.objects.create(camp_id=visitor.camp_id, visitor=visitor, status=VisitStatus.REGISTERED)
            logger.info('Opened visit %s for visitor %s on scan', visit.pk, visitor.patient_id)
    return visitor, visit


# ---------------------------------------------------------------------------
# Consultation
# ---------------------------------------------------------------------------

def _prescriptions(items: Any) -> List[Dict[str, str]]:
    if not isinstance(items, (list, tuple)):
        return []
    out = []
    for rx in items:
        if not isinstance(rx, dict):
            continue
        name = _clean(rx.get('name'))
        if not name:
            continue
        out.append({
            'name': name,
            'dosage': _clean(rx.get('dosage')),
            'frequency': _clean(rx.get('frequency')),
            'duration': _clean(rx.get('duration')),
        })
    return out


def save_consultation(identity: Identity, camp_id, visit_id, fields: Dict[str, Any], *,
                      now: Optional[Clock] = None) -> Consultation:
    """Create or update the visit's consultation and complete the visit.

    Validation happens before anything is written.  Saving again
    updates the same row and moves ``consultation_time`` forward.
    """
    camp_id = ensure_authorized(identity, camp_id)
    data = {k: _clean(fields.get(k)) for k in CONSULTATION_TEXT_FIELDS}
    missing = [k for k in CONSULTATION_REQUIRED if not data[k]]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}.")
    data['prescriptions'] = _prescriptions(fields.get('prescriptions'))
    data['is_insured'] = bool(fields.get('is_insured', False))
    clock = now or timezone.now

    with transaction.atomic():
        visit = _get_visit(camp_id, visit_id, for_update=True)
        consultation, created = Consultation.objects.update_or_create(visit=visit, defaults=data)
        visit.status = VisitStatus.COMPLETED
        visit.doctor_id = identity.user_id
        visit.consultation_time = clock()
        visit.save(update_fields=['status', 'doctor', 'consultation_time', 'updated_at'])
        log_action(user=identity, action='consultation_save', camp_id=visit.camp_id, object_type='visit',
                   object_id=visit.pk, detail={'created': created})
        payload = {'summary': consultation_summary(consultation)}
        if settings.FRONTEND_URL:
            payload['summaryLink'] = f"{settings.FRONTEND_URL.rstrip('/')}/#/visit/{visit_summary_token(visit)}"
        schedule_dispatch(MessageKind.CONSULTATION_COMPLETE, visit.visitor_id, payload)

    logger.info('Consultation %s for visit %s by user %s', 'created' if created else 'updated', visit.pk,
                identity.user_id)
    return consultation


# ---------------------------------------------------------------------------
# Visit summary links
# ---------------------------------------------------------------------------

SUMMARY_SALT = 'camps.visit-summary'


def visit_summary_token(visit: Visit) -> str:
    """Signed, expiring token that lets the visitor read one visit's summary."""
    return signing.dumps({'visit': str(visit.pk)}, salt=SUMMARY_SALT)


def visit_summary(token: str) -> Visit:
    """Resolve a summary token to its completed visit.

    Tampered, expired and unknown tokens are indistinguishable to the
    caller.
    """
    try:
        data = signing.loads(token, salt=SUMMARY_SALT, max_age=settings.VISIT_SUMMARY_MAX_AGE)
    except signing.BadSignature:
        data = {}
    pk = parse_camp_id(data.get('visit'))
    visit = (Visit.objects.select_related('camp', 'visitor', 'consultation').filter(pk=pk).first()
             if pk else None)
    if visit is None or not hasattr(visit, 'consultation'):
        raise NotFound('Visit summary not found or link expired.', code='visit_summary_not_found')
    return visit


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

def _check_upload(f) -> str:
    ctype = getattr(f, 'content_type', '') or ''
    if (f.size or 0) > settings.UPLOAD_MAX_MB * 1024 * 1024:
        raise ValidationFailed(f'File {f.name} is too large.', code='file_too_large')
    if not any(ctype.startswith(prefix) for prefix in settings.ALLOWED_UPLOAD_TYPES):
        raise ValidationFailed(f'File type {ctype or "unknown"} is not allowed.', code='file_type_not_allowed')
    return ctype


def upload_attachments(identity: Identity, camp_id, visit_id, files: List[Any],
                       attachment_type: str = AttachmentType.DOCUMENT) -> List[Attachment]:
    camp_id = ensure_authorized(identity, camp_id)
    if not files:
        raise ValidationFailed('No files uploaded.')
    if len(files) > settings.UPLOAD_MAX_FILES:
        raise ValidationFailed(f'At most {settings.UPLOAD_MAX_FILES} files per upload.')
    if attachment_type not in AttachmentType.values:
        raise ValidationFailed(f'Unknown attachment type {attachment_type!r}.')
    checked = [(f, _check_upload(f)) for f in files]

    with transaction.atomic():
        visit = _get_visit(camp_id, visit_id)
        consultation = Consultation.objects.filter(visit=visit).first()
        created = [
            Attachment.objects.create(
                camp_id=camp_id, visit=visit, consultation=consultation, file=f,
                file_name=_clean(f.name)[:255] or 'upload', type=attachment_type,
                file_size=f.size or 0, mime_type=ctype,
            )
            for f, ctype in checked
        ]
    return created


def delete_attachment(identity: Identity, camp_id, attachment_id) -> None:
    """Delete the attachment row, then its stored file once the delete commits."""
    camp_id = ensure_authorized(identity, camp_id)
    with transaction.atomic():
        att = Attachment.objects.filter(pk=attachment_id, camp_id=camp_id).first()
        if att is None:
            raise NotFound('Attachment not found.', code='attachment_not_found')
        storage, name = att.file.storage, att.file.name
        att.delete()
        log_action(user=identity, action='attachment_delete', camp_id=camp_id, object_type='attachment',
                   object_id=attachment_id, detail={'file': att.file_name})
        transaction.on_commit(lambda: remove_stored_file(storage, name))


def remove_stored_file(storage, name: str) -> None:
    if not name:
        return
    try:
        storage.delete(name)
    except OSError:
        logger.exception('Could not delete stored file %s', name)
