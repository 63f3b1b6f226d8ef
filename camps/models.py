"""
Database models for the medical camp backend.

A :class:`Camp` is the unit of tenancy: staff, visitors, visits,
consultations, attachments and notification logs all carry the id of
the camp they belong to, and every query made on behalf of camp staff
is filtered by it.  Identifiers are UUIDs so that the only
tenant-facing value that appears in public URLs is the camp slug.
"""
from __future__ import annotations

import datetime
import os
import uuid

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Role(models.TextChoices):
    ADMIN = 'ADMIN', 'Administrator'
    CAMP_HEAD = 'CAMP_HEAD', 'Camp head'
    DOCTOR = 'DOCTOR', 'Doctor'


class VisitStatus(models.TextChoices):
    REGISTERED = 'REGISTERED', 'Registered'
    # IN_PROGRESS and CANCELLED are declared for forward compatibility;
    # nothing transitions into them yet.
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


OPEN_VISIT_STATUSES = (VisitStatus.REGISTERED, VisitStatus.IN_PROGRESS)


class AttachmentType(models.TextChoices):
    LAB_REPORT = 'LAB_REPORT', 'Lab report'
    PRESCRIPTION = 'PRESCRIPTION', 'Prescription'
    DOCUMENT = 'DOCUMENT', 'Document'
    IMAGE = 'IMAGE', 'Image'


class MessageKind(models.TextChoices):
    REGISTRATION = 'REGISTRATION', 'Registration'
    CONSULTATION_COMPLETE = 'CONSULTATION_COMPLETE', 'Consultation complete'
    APPOINTMENT_REMINDER = 'APPOINTMENT_REMINDER', 'Appointment reminder'
    CUSTOM = 'CUSTOM', 'Custom'


class MessageStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    SENT = 'SENT', 'Sent'
    FAILED = 'FAILED', 'Failed'


class Camp(models.Model):
    """A temporary medical event and the tenant boundary for its data.

    ``slug`` is globally unique and immutable once the camp exists;
    ``visitor_seq`` is the counter patient ids are minted from.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slug = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    logo_url = models.URLField(max_length=512, blank=True)
    background_image_url = models.URLField(max_length=512, blank=True)
    venue = models.CharField(max_length=255)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    contact_info = models.TextField(blank=True)
    hospital_name = models.CharField(max_length=255)
    hospital_address = models.TextField(blank=True)
    hospital_phone = models.CharField(max_length=32, blank=True)
    hospital_email = models.EmailField(blank=True)
    visitor_seq = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self._state.adding:
            stored = type(self).objects.filter(pk=self.pk).values_list('slug', flat=True).first()
            if stored is not None and stored != self.slug:
                raise ValueError('camp slug is immutable')
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} ({self.slug})"


class StaffManager(BaseUserManager):
    """Manager for email-addressed staff accounts."""
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('email is required')
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', Role.ADMIN)
        extra_fields.setdefault('camp', None)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Staff account: an administrator, a camp head or a doctor.

    Administrators have no home camp and act globally.  Camp heads and
    doctors always belong to exactly one camp; the check constraint
    below keeps the database honest about it.
    """
    username = None
    email = models.EmailField(unique=True)
    name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    specialty = models.CharField(max_length=255, blank=True)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.DOCTOR)
    camp = models.ForeignKey(
        Camp, null=True, blank=True, on_delete=models.CASCADE, related_name='staff', db_index=True
    )

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS: list[str] = []

    objects = StaffManager()

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(Q(role=Role.ADMIN) & Q(camp__isnull=True))
                | (~Q(role=Role.ADMIN) & Q(camp__isnull=False)),
                name='staff_camp_matches_role',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.email} ({self.role})"


class Visitor(models.Model):
    """Someone registered at a camp.

    The same person registering at two camps gets two rows; the
    human-readable ``patient_id`` is only unique within a camp.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    camp = models.ForeignKey(Camp, on_delete=models.CASCADE, related_name='visitors')
    patient_id = models.CharField(max_length=96)
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=32, db_index=True)
    age = models.PositiveIntegerField()
    gender = models.CharField(max_length=16)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=128, blank=True)
    district = models.CharField(max_length=128, blank=True)
    symptoms = models.TextField(blank=True)
    existing_conditions = models.TextField(blank=True)
    allergies = models.TextField(blank=True)
    # Messaging chat the visitor linked through the bot webhook
    chat_id = models.CharField(max_length=64, blank=True, null=True, db_index=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['camp', 'patient_id'], name='unique_patient_id_per_camp'),
        ]
        indexes = [
            models.Index(fields=['patient_id'], name='visitor_patient_id_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.patient_id} {self.name}"


class Visit(models.Model):
    """One examination episode of a visitor within a camp."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    camp = models.ForeignKey(Camp, on_delete=models.CASCADE, related_name='visits')
    visitor = models.ForeignKey(Visitor, on_delete=models.CASCADE, related_name='visits')
    doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits'
    )
    status = models.CharField(
        max_length=16, choices=VisitStatus.choices, default=VisitStatus.REGISTERED, db_index=True
    )
    consultation_time = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['camp', 'status', 'created_at'], name='visit_camp_status_idx'),
            models.Index(fields=['visitor', 'created_at'], name='visit_visitor_created_idx'),
        ]

    def __str__(self) -> str:
        return f"visit {self.id} ({self.status})"


class Consultation(models.Model):
    """Clinical record of a completed visit, at most one per visit.

    ``prescriptions`` is an ordered list of
    ``{"name", "dosage", "frequency", "duration"}`` objects.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.OneToOneField(Visit, on_delete=models.CASCADE, related_name='consultation')
    chief_complaints = models.TextField()
    clinical_notes = models.TextField(blank=True)
    diagnosis = models.TextField()
    treatment_plan = models.TextField()
    prescriptions = models.JSONField(default=list, blank=True)
    follow_up_advice = models.TextField(blank=True)
    is_insured = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"consultation for visit {self.visit_id}"


def _attachment_upload(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return f"attachments/{datetime.date.today().strftime('%Y/%m')}/{uuid.uuid4().hex}{ext}"


class Attachment(models.Model):
    """An uploaded file attached to a visit; deletable on its own."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    camp = models.ForeignKey(Camp, on_delete=models.CASCADE, related_name='attachments')
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name='attachments')
    consultation = models.ForeignKey(
        Consultation, null=True, blank=True, on_delete=models.SET_NULL, related_name='attachments'
    )
    file = models.FileField(upload_to=_attachment_upload, max_length=512)
    file_name = models.CharField(max_length=255)
    type = models.CharField(max_length=16, choices=AttachmentType.choices, default=AttachmentType.DOCUMENT)
    file_size = models.PositiveBigIntegerField(default=0)
    mime_type = models.CharField(max_length=128)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['camp', 'visit', 'created_at'], name='attachment_camp_visit_idx')]

    @property
    def file_url(self) -> str:
        return self.file.url if self.file else ''

    def __str__(self) -> str:
        return f"att {self.id} visit={self.visit_id}"


class NotificationLogEntry(models.Model):
    """Audit record of one notification dispatch attempt.

    Rows are append-only.  The only permitted change is the single
    PENDING -> SENT / FAILED transition made by :meth:`finish`.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    camp = models.ForeignKey(Camp, on_delete=models.CASCADE, related_name='notification_logs')
    visitor = models.ForeignKey(Visitor, on_delete=models.CASCADE, related_name='notification_logs')
    kind = models.CharField(max_length=32, choices=MessageKind.choices)
    message = models.TextField()
    status = models.CharField(max_length=16, choices=MessageStatus.choices, default=MessageStatus.PENDING)
    delivered_to = models.CharField(max_length=64, blank=True)
    test_mode = models.BooleanField(default=False)
    sent_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['camp', 'kind', 'status'], name='notif_camp_kind_status_idx'),
            models.Index(fields=['visitor', 'created_at'], name='notif_visitor_created_idx'),
        ]

    def finish(self, status: str, *, sent_at=None, error: str = '') -> None:
        if self.status != MessageStatus.PENDING:
            raise ValueError(f'notification log {self.id} is already {self.status}')
        if status not in (MessageStatus.SENT, MessageStatus.FAILED):
            raise ValueError(f'invalid terminal status {status!r}')
        self.status = status
        self.sent_at = sent_at
        self.error_message = error
        self.save(update_fields=['status', 'sent_at', 'error_message'])

    def __str__(self) -> str:
        return f"{self.kind}:{self.status} visitor={self.visitor_id}"


class AuditEvent(models.Model):
    """Staff action trail.  Keeps a bare camp id so it survives tenant deletion."""
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    camp_id = models.UUIDField(null=True, blank=True, db_index=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
