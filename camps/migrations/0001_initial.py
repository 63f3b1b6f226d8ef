import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import camps.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='Camp',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('slug', models.SlugField(max_length=64, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('logo_url', models.URLField(blank=True, max_length=512)),
                ('background_image_url', models.URLField(blank=True, max_length=512)),
                ('venue', models.CharField(max_length=255)),
                ('start_time', models.DateTimeField()),
                ('end_time', models.DateTimeField()),
                ('contact_info', models.TextField(blank=True)),
                ('hospital_name', models.CharField(max_length=255)),
                ('hospital_address', models.TextField(blank=True)),
                ('hospital_phone', models.CharField(blank=True, max_length=32)),
                ('hospital_email', models.EmailField(blank=True, max_length=254)),
                ('visitor_seq', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('name', models.CharField(blank=True, max_length=255)),
                ('phone', models.CharField(blank=True, max_length=32)),
                ('specialty', models.CharField(blank=True, max_length=255)),
                ('role', models.CharField(choices=[('ADMIN', 'Administrator'), ('CAMP_HEAD', 'Camp head'), ('DOCTOR', 'Doctor')], default='DOCTOR', max_length=16)),
                ('camp', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='staff', to='camps.camp')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            managers=[
                ('objects', camps.models.StaffManager()),
            ],
        ),
        migrations.AddConstraint(
            model_name='user',
            constraint=models.CheckConstraint(
                condition=models.Q(
                    models.Q(('camp__isnull', True), ('role', 'ADMIN')),
                    models.Q(models.Q(('role', 'ADMIN'), _negated=True), ('camp__isnull', False)),
                    _connector='OR',
                ),
                name='staff_camp_matches_role',
            ),
        ),
        migrations.CreateModel(
            name='Visitor',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('patient_id', models.CharField(max_length=96)),
                ('name', models.CharField(max_length=255)),
                ('phone', models.CharField(db_index=True, max_length=32)),
                ('age', models.PositiveIntegerField()),
                ('gender', models.CharField(max_length=16)),
                ('address', models.TextField(blank=True)),
                ('city', models.CharField(blank=True, max_length=128)),
                ('district', models.CharField(blank=True, max_length=128)),
                ('symptoms', models.TextField(blank=True)),
                ('existing_conditions', models.TextField(blank=True)),
                ('allergies', models.TextField(blank=True)),
                ('chat_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('camp', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='visitors', to='camps.camp')),
            ],
            options={
                'indexes': [models.Index(fields=['patient_id'], name='visitor_patient_id_idx')],
                'constraints': [models.UniqueConstraint(fields=('camp', 'patient_id'), name='unique_patient_id_per_camp')],
            },
        ),
        migrations.CreateModel(
            name='Visit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('REGISTERED', 'Registered'), ('IN_PROGRESS', 'In progress'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], db_index=True, default='REGISTERED', max_length=16)),
                ('consultation_time', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('camp', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='visits', to='camps.camp')),
                ('doctor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='visits', to=settings.AUTH_USER_MODEL)),
                ('visitor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='visits', to='camps.visitor')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['camp', 'status', 'created_at'], name='visit_camp_status_idx'),
                    models.Index(fields=['visitor', 'created_at'], name='visit_visitor_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Consultation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('chief_complaints', models.TextField()),
                ('clinical_notes', models.TextField(blank=True)),
                ('diagnosis', models.TextField()),
                ('treatment_plan', models.TextField()),
                ('prescriptions', models.JSONField(blank=True, default=list)),
                ('follow_up_advice', models.TextField(blank=True)),
                ('is_insured', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('visit', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='consultation', to='camps.visit')),
            ],
        ),
        migrations.CreateModel(
            name='Attachment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('file', models.FileField(max_length=512, upload_to=camps.models._attachment_upload)),
                ('file_name', models.CharField(max_length=255)),
                ('type', models.CharField(choices=[('LAB_REPORT', 'Lab report'), ('PRESCRIPTION', 'Prescription'), ('DOCUMENT', 'Document'), ('IMAGE', 'Image')], default='DOCUMENT', max_length=16)),
                ('file_size', models.PositiveBigIntegerField(default=0)),
                ('mime_type', models.CharField(max_length=128)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('camp', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attachments', to='camps.camp')),
                ('consultation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='attachments', to='camps.consultation')),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attachments', to='camps.visit')),
            ],
            options={
                'indexes': [models.Index(fields=['camp', 'visit', 'created_at'], name='attachment_camp_visit_idx')],
            },
        ),
        migrations.CreateModel(
            name='NotificationLogEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('kind', models.CharField(choices=[('REGISTRATION', 'Registration'), ('CONSULTATION_COMPLETE', 'Consultation complete'), ('APPOINTMENT_REMINDER', 'Appointment reminder'), ('CUSTOM', 'Custom')], max_length=32)),
                ('message', models.TextField()),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('SENT', 'Sent'), ('FAILED', 'Failed')], default='PENDING', max_length=16)),
                ('delivered_to', models.CharField(blank=True, max_length=64)),
                ('test_mode', models.BooleanField(default=False)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('error_message', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('camp', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notification_logs', to='camps.camp')),
                ('visitor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notification_logs', to='camps.visitor')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['camp', 'kind', 'status'], name='notif_camp_kind_status_idx'),
                    models.Index(fields=['visitor', 'created_at'], name='notif_visitor_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AuditEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('camp_id', models.UUIDField(blank=True, db_index=True, null=True)),
                ('action', models.CharField(max_length=64)),
                ('object_type', models.CharField(blank=True, max_length=64, null=True)),
                ('object_id', models.CharField(blank=True, max_length=64, null=True)),
                ('detail', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
                    models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
                ],
            },
        ),
    ]
