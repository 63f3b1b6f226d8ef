"""
Django admin registrations for the camp models.

The admin site is the operational view for notification triage: the
log can be filtered by camp, kind and status to find failed sends.
"""

from django.contrib import admin

from .models import Attachment, AuditEvent, Camp, Consultation, NotificationLogEntry, User, Visit, Visitor


@admin.register(Camp)
class CampAdmin(admin.ModelAdmin):
    list_display = ('slug', 'name', 'venue', 'start_time', 'end_time', 'visitor_seq')
    search_fields = ('slug', 'name', 'hospital_name')
    readonly_fields = ('visitor_seq', 'created_at', 'updated_at')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('email', 'name', 'role', 'camp', 'is_active')
    list_filter = ('role', 'camp')
    search_fields = ('email', 'name')
    exclude = ('password',)


@admin.register(Visitor)
class VisitorAdmin(admin.ModelAdmin):
    list_display = ('patient_id', 'name', 'phone', 'camp', 'chat_id', 'created_at')
    list_filter = ('camp',)
    search_fields = ('patient_id', 'name', 'phone')


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ('id', 'visitor', 'status', 'doctor', 'consultation_time', 'created_at')
    list_filter = ('camp', 'status')
    search_fields = ('visitor__patient_id', 'visitor__name')


@admin.register(Consultation)
class ConsultationAdmin(admin.ModelAdmin):
    list_display = ('visit', 'diagnosis', 'is_insured', 'updated_at')


@admin.register(Attachment)
class AttachmentAdmin(admin.ModelAdmin):
    list_display = ('file_name', 'type', 'mime_type', 'file_size', 'visit', 'created_at')
    list_filter = ('camp', 'type')


@admin.register(NotificationLogEntry)
class NotificationLogEntryAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'camp', 'visitor', 'kind', 'status', 'delivered_to', 'test_mode', 'sent_at')
    list_filter = ('camp', 'kind', 'status', 'test_mode')
    search_fields = ('visitor__patient_id', 'visitor__name', 'error_message')
    readonly_fields = [f.name for f in NotificationLogEntry._meta.fields]


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'user', 'camp_id', 'object_type', 'object_id')
    list_filter = ('action',)
    search_fields = ('object_id',)
