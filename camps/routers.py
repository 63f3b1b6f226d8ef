"""
URL mappings for the camp backend API.

Trailing slashes are deliberately omitted.  Camp ids under the doctor
and camp head prefixes are matched as plain strings so that a malformed
id reaches the isolation guard and is refused there with a proper
reason, instead of falling through to a bare 404.
"""
from django.urls import path, include

from .views import admin, auth, camp_head, doctor, health, public, telegram

urlpatterns = [
    # Auth
    path('api/auth/login', auth.login_view),
    path('api/auth/refresh', auth.refresh_view),
    path('api/auth/logout', auth.logout_view),
    path('api/auth/change-password', auth.change_password_view),

    # Public registration
    path('api/public/camps/<slug:slug>', public.camp_info),
    path('api/public/camps/<slug:slug>/register', public.register),
    path('api/public/visit/<str:token>', public.visit_summary),

    # Doctor
    path('api/doctor/<str:camp_id>/visits', doctor.list_visits),
    path('api/doctor/<str:camp_id>/visits/search', doctor.search_visits),
    path('api/doctor/<str:camp_id>/visits/<uuid:visit_id>', doctor.visit_details),
    path('api/doctor/<str:camp_id>/my-patients', doctor.my_patients),
    path('api/doctor/<str:camp_id>/visitors/<uuid:visitor_id>', doctor.visitor_details),
    path('api/doctor/<str:camp_id>/scan', doctor.scan_code),
    path('api/doctor/<str:camp_id>/scan/<uuid:visitor_id>', doctor.scan_visitor),
    path('api/doctor/<str:camp_id>/consultations', doctor.save_consultation),
    path('api/doctor/<str:camp_id>/attachments', doctor.upload_attachments),
    path('api/doctor/<str:camp_id>/attachments/<uuid:attachment_id>', doctor.delete_attachment),

    # Camp head
    path('api/camp-head/<str:camp_id>/visitors', camp_head.list_visitors),
    path('api/camp-head/<str:camp_id>/notifications', camp_head.notifications),
    path('api/camp-head/<str:camp_id>/doctors', camp_head.doctors),
    path('api/camp-head/<str:camp_id>/doctors/<int:doctor_id>/reset-password', camp_head.reset_doctor_password),

    # Admin
    path('api/admin/camps', admin.camps),
    path('api/admin/camps/<uuid:camp_id>', admin.camp_detail),
    path('api/admin/camps/<uuid:camp_id>/doctors', admin.camp_doctors),
    path('api/admin/camps/<uuid:camp_id>/camp-head', admin.camp_head_detail),
    path('api/admin/users', admin.users),
    path('api/admin/doctors/<int:user_id>/reset-password', admin.reset_doctor_password),
    path('api/admin/camp-heads/<int:user_id>/reset-password', admin.reset_camp_head_password),

    # Telegram
    path('api/telegram/webhook', telegram.webhook),
    path('api/telegram/info', telegram.info),
    path('api/telegram/setup', telegram.setup),
    path('api/telegram/delete-webhook', telegram.delete_webhook),

    # Ops
    path('healthz', health.healthz),
    path('', include('django_prometheus.urls')),
]
