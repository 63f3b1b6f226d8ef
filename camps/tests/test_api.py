"""
HTTP level tests: authentication, the error envelope, role and tenant
checks on real routes, public registration and the Telegram webhook.

```
pytest -q camps/tests
```
"""
import tempfile
import uuid

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from camps.authentication import issue_tokens
from camps.identity import Identity
from camps.models import Attachment, Camp, NotificationLogEntry, Role, User, Visit, Visitor
from camps.services import visits

from .conftest import DEMOGRAPHICS, make_camp


@override_settings(TELEGRAM_BOT_TOKEN='', TELEGRAM_WEBHOOK_SECRET='', FRONTEND_URL='')
class CampAPITests(APITestCase):
    def setUp(self) -> None:
        self.camp_a = make_camp('winter-clinic', 'Winter Clinic')
        self.camp_b = make_camp('summer-clinic', 'Summer Clinic')
        self.doctor_a = User.objects.create_user(email='doc.a@example.com', password='P@ssw0rd1', name='Dr A',
                                                 role=Role.DOCTOR, camp=self.camp_a)
        self.head_a = User.objects.create_user(email='head.a@example.com', password='P@ssw0rd1', name='Head A',
                                               role=Role.CAMP_HEAD, camp=self.camp_a)
        self.admin = User.objects.create_superuser(email='admin@example.com', password='P@ssw0rd1')

    def auth(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_tokens(user).access_token}')

    def assertError(self, resp, status_code, code):
        self.assertEqual(resp.status_code, status_code, resp.data)
        self.assertFalse(resp.data['ok'])
        self.assertEqual(resp.data['error']['code'], code)

    # -- auth -------------------------------------------------------------

    def test_staff_login_requires_matching_camp(self):
        ok = self.client.post('/api/auth/login', {'email': 'doc.a@example.com', 'password': 'P@ssw0rd1',
                                                  'campSlug': 'winter-clinic'}, format='json')
        self.assertEqual(ok.status_code, status.HTTP_200_OK)
        self.assertEqual(ok.data['user']['role'], Role.DOCTOR)
        self.assertTrue(ok.data['access'] and ok.data['refresh'])

        wrong = self.client.post('/api/auth/login', {'email': 'doc.a@example.com', 'password': 'P@ssw0rd1',
                                                     'campSlug': 'summer-clinic'}, format='json')
        self.assertError(wrong, status.HTTP_401_UNAUTHORIZED, 'authentication_failed')

        no_slug = self.client.post('/api/auth/login', {'email': 'doc.a@example.com', 'password': 'P@ssw0rd1'},
                                   format='json')
        self.assertError(no_slug, status.HTTP_401_UNAUTHORIZED, 'authentication_failed')

    def test_admin_login_without_slug(self):
        r = self.client.post('/api/auth/login', {'email': 'admin@example.com', 'password': 'P@ssw0rd1'},
                             format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertIsNone(r.data['user']['campId'])

    def test_wrong_password_and_unknown_email_look_the_same(self):
        a = self.client.post('/api/auth/login', {'email': 'admin@example.com', 'password': 'nope'}, format='json')
        b = self.client.post('/api/auth/login', {'email': 'ghost@example.com', 'password': 'nope'}, format='json')
        self.assertEqual(a.data, b.data)

    def test_missing_token_uses_error_envelope(self):
        r = self.client.get(f'/api/doctor/{self.camp_a.pk}/visits')
        self.assertError(r, status.HTTP_401_UNAUTHORIZED, 'authentication_failed')

    # -- isolation --------------------------------------------------------

    def test_doctor_cannot_read_other_camp(self):
        self.auth(self.doctor_a)
        r = self.client.get(f'/api/doctor/{self.camp_b.pk}/visits')
        self.assertError(r, status.HTTP_403_FORBIDDEN, 'tenant_mismatch')

    def test_malformed_camp_id_is_refused(self):
        self.auth(self.doctor_a)
        r = self.client.get('/api/doctor/not-a-uuid/visits')
        self.assertError(r, status.HTTP_403_FORBIDDEN, 'malformed_tenant')

    def test_conflicting_camp_ids_are_refused(self):
        self.auth(self.doctor_a)
        r = self.client.get(f'/api/doctor/{self.camp_a.pk}/visits?campId={self.camp_b.pk}')
        self.assertError(r, status.HTTP_403_FORBIDDEN, 'conflicting_tenant')

    def test_doctor_cannot_use_camp_head_routes(self):
        self.auth(self.doctor_a)
        r = self.client.get(f'/api/camp-head/{self.camp_a.pk}/visitors')
        self.assertError(r, status.HTTP_403_FORBIDDEN, 'insufficient_role')

    def test_admin_needs_existing_camp(self):
        self.auth(self.admin)
        r = self.client.get(f'/api/doctor/{self.camp_b.pk}/visits')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        r = self.client.get('/api/doctor/not-a-uuid/visits')
        self.assertError(r, status.HTTP_404_NOT_FOUND, 'camp_not_found')

    # -- registration and doctor flow ------------------------------------

    def test_public_registration(self):
        r = self.client.post('/api/public/camps/winter-clinic/register', DEMOGRAPHICS, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        self.assertEqual(r.data['visitor']['patientId'], 'WINTER-CLINIC-0001')
        self.assertTrue(r.data['visitor']['qrCode'].startswith('data:image/png;base64,'))

        bad = self.client.post('/api/public/camps/winter-clinic/register', {'name': 'A'}, format='json')
        self.assertError(bad, status.HTTP_400_BAD_REQUEST, 'validation_failed')
        self.assertIn('phone', bad.data['error']['fields'])

        missing = self.client.post('/api/public/camps/nowhere/register', DEMOGRAPHICS, format='json')
        self.assertError(missing, status.HTTP_404_NOT_FOUND, 'camp_not_found')

    def test_consultation_completes_visit(self):
        _, visit = visits.register(self.camp_a, DEMOGRAPHICS)
        self.auth(self.doctor_a)
        r = self.client.post(f'/api/doctor/{self.camp_a.pk}/consultations', {
            'visitId': str(visit.pk),
            'chiefComplaints': 'Cough',
            'diagnosis': 'Bronchitis',
            'treatmentPlan': 'Rest',
            'prescriptions': [{'name': 'Syrup', 'dosage': '10ml'}],
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        self.assertEqual(Visit.objects.get(pk=visit.pk).status, 'COMPLETED')

        r = self.client.get(f'/api/doctor/{self.camp_a.pk}/my-patients')
        self.assertEqual(r.data['total'], 1)

    def test_scan_code_in_json_form(self):
        visitor, visit = visits.register(self.camp_a, DEMOGRAPHICS)
        self.auth(self.doctor_a)
        code = '{"campId":"%s","patientId":"%s"}' % (self.camp_a.pk, visitor.patient_id)
        r = self.client.post(f'/api/doctor/{self.camp_a.pk}/scan', {'code': code}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        self.assertEqual(r.data['visit']['id'], str(visit.pk))

        bad = self.client.post(f'/api/doctor/{self.camp_a.pk}/scan', {'code': 'hello'}, format='json')
        self.assertError(bad, status.HTTP_400_BAD_REQUEST, 'invalid_scan_code')

    def test_scan_link_with_malformed_visitor_id_is_rejected(self):
        self.auth(self.doctor_a)
        code = 'https://camp.example.org/#/winter-clinic/doctor/visitor/' + '-' * 36
        r = self.client.post(f'/api/doctor/{self.camp_a.pk}/scan', {'code': code}, format='json')
        self.assertError(r, status.HTTP_400_BAD_REQUEST, 'invalid_scan_code')

    def test_attachment_upload_and_delete(self):
        _, visit = visits.register(self.camp_a, DEMOGRAPHICS)
        self.auth(self.doctor_a)
        url = f'/api/doctor/{self.camp_a.pk}/attachments'
        with tempfile.TemporaryDirectory() as media, self.settings(MEDIA_ROOT=media):
            report = SimpleUploadedFile('cbc.pdf', b'%PDF-1.4 test', content_type='application/pdf')
            r = self.client.post(url, {'visitId': str(visit.pk), 'type': 'LAB_REPORT', 'files': [report]},
                                 format='multipart')
            self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
            att_id = r.data['attachments'][0]['id']
            self.assertEqual(r.data['attachments'][0]['mimeType'], 'application/pdf')

            script = SimpleUploadedFile('x.sh', b'echo', content_type='application/x-sh')
            bad = self.client.post(url, {'visitId': str(visit.pk), 'files': [script]}, format='multipart')
            self.assertError(bad, status.HTTP_400_BAD_REQUEST, 'file_type_not_allowed')

            d = self.client.delete(f'{url}/{att_id}')
            self.assertEqual(d.status_code, status.HTTP_200_OK)
            self.assertFalse(Attachment.objects.filter(pk=att_id).exists())

    # -- camp head --------------------------------------------------------

    def test_camp_head_sends_custom_message(self):
        visitor, _ = visits.register(self.camp_a, DEMOGRAPHICS)
        self.auth(self.head_a)
        r = self.client.post(f'/api/camp-head/{self.camp_a.pk}/notifications',
                             {'visitorId': str(visitor.pk), 'kind': 'CUSTOM', 'text': 'Hello'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        # no chat linked and no test chat: recorded as skipped
        self.assertEqual(r.data['result']['status'], 'SKIPPED')

        listing = self.client.get(f'/api/camp-head/{self.camp_a.pk}/notifications?status=FAILED')
        self.assertEqual(listing.data['total'], 1)
        self.assertEqual(NotificationLogEntry.objects.count(), 1)

    # -- admin ------------------------------------------------------------

    def test_admin_creates_and_deletes_camp(self):
        self.auth(self.admin)
        r = self.client.post('/api/admin/camps', {
            'name': 'Spring Clinic', 'venue': 'Hall', 'hospitalName': 'General',
            'startTime': '2026-03-01T09:00:00Z', 'endTime': '2026-03-01T17:00:00Z',
            'campHead': {'name': 'Head', 'email': 'head@spring.org'},
            'doctors': [{'name': 'Doc', 'email': 'doc@spring.org'}],
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        camp_id = r.data['camp']['id']
        self.assertEqual(len(r.data['doctorCredentials']), 1)

        d = self.client.delete(f'/api/admin/camps/{camp_id}')
        self.assertEqual(d.status_code, status.HTTP_200_OK)
        self.assertEqual(d.data['deleted']['users'], 2)
        self.assertFalse(Camp.objects.filter(pk=camp_id).exists())

        again = self.client.delete(f'/api/admin/camps/{uuid.uuid4()}')
        self.assertError(again, status.HTTP_404_NOT_FOUND, 'camp_not_found')

    # -- telegram webhook -------------------------------------------------

    def test_webhook_links_chat_and_always_answers_ok(self):
        visitor, _ = visits.register(self.camp_a, DEMOGRAPHICS)
        update = {'update_id': 1, 'message': {'chat': {'id': 77}, 'from': {'id': 77}, 'text': visitor.patient_id}}
        r = self.client.post('/api/telegram/webhook', update, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(Visitor.objects.get(pk=visitor.pk).chat_id, '77')

        junk = self.client.post('/api/telegram/webhook', {'message': 'not an object'}, format='json')
        self.assertEqual(junk.status_code, status.HTTP_200_OK)
        self.assertTrue(junk.data['ok'])

    def test_webhook_is_never_rate_limited(self):
        # more updates than the anonymous rate allows per minute
        codes = set()
        for i in range(70):
            update = {'update_id': i, 'message': {'chat': {'id': 5}, 'text': '/start'}}
            codes.add(self.client.post('/api/telegram/webhook', update, format='json').status_code)
        self.assertEqual(codes, {status.HTTP_200_OK})

    @override_settings(TELEGRAM_WEBHOOK_SECRET='s3cret')
    def test_webhook_checks_secret_token(self):
        r = self.client.post('/api/telegram/webhook', {'update_id': 1}, format='json')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        r = self.client.post('/api/telegram/webhook', {'update_id': 1}, format='json',
                             HTTP_X_TELEGRAM_BOT_API_SECRET_TOKEN='s3cret')
        self.assertEqual(r.status_code, status.HTTP_200_OK)

    def test_telegram_admin_routes_need_token(self):
        self.auth(self.admin)
        r = self.client.get('/api/telegram/info')
        self.assertError(r, status.HTTP_400_BAD_REQUEST, 'telegram_not_configured')

    def test_healthz(self):
        r = self.client.get('/healthz')
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.json()['ok'])

    # -- staff accounts ---------------------------------------------------

    def test_change_password_then_login_with_new_one(self):
        self.auth(self.doctor_a)
        wrong = self.client.post('/api/auth/change-password',
                                 {'currentPassword': 'nope', 'newPassword': 'Harbour-Lantern-42'}, format='json')
        self.assertError(wrong, status.HTTP_400_BAD_REQUEST, 'wrong_password')

        weak = self.client.post('/api/auth/change-password',
                                {'currentPassword': 'P@ssw0rd1', 'newPassword': 'lowercase1'}, format='json')
        self.assertError(weak, status.HTTP_400_BAD_REQUEST, 'validation_failed')
        self.assertIn('newPassword', weak.data['error']['fields'])

        ok = self.client.post('/api/auth/change-password',
                              {'currentPassword': 'P@ssw0rd1', 'newPassword': 'Harbour-Lantern-42'}, format='json')
        self.assertEqual(ok.status_code, status.HTTP_200_OK, ok.data)

        self.client.credentials()
        login = self.client.post('/api/auth/login', {'email': 'doc.a@example.com', 'password': 'Harbour-Lantern-42',
                                                     'campSlug': 'winter-clinic'}, format='json')
        self.assertEqual(login.status_code, status.HTTP_200_OK)

    def test_camp_head_lists_and_resets_own_doctors_only(self):
        doctor_b = User.objects.create_user(email='doc.b@example.com', password='P@ssw0rd1', name='Dr B',
                                            role=Role.DOCTOR, camp=self.camp_b)
        self.auth(self.head_a)
        listing = self.client.get(f'/api/camp-head/{self.camp_a.pk}/doctors')
        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual([d['email'] for d in listing.data['doctors']], ['doc.a@example.com'])
        self.assertEqual(listing.data['total'], 1)

        r = self.client.post(f'/api/camp-head/{self.camp_a.pk}/doctors/{self.doctor_a.pk}/reset-password',
                             {'passwordMode': 'manual', 'manualPassword': 'Harbour-Lantern-42'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        self.assertEqual(r.data['tempPassword'], 'Harbour-Lantern-42')

        other = self.client.post(f'/api/camp-head/{self.camp_a.pk}/doctors/{doctor_b.pk}/reset-password', {},
                                 format='json')
        self.assertError(other, status.HTTP_404_NOT_FOUND, 'doctor_not_found')

        foreign = self.client.post(f'/api/camp-head/{self.camp_b.pk}/doctors/{doctor_b.pk}/reset-password', {},
                                   format='json')
        self.assertError(foreign, status.HTTP_403_FORBIDDEN, 'tenant_mismatch')
        doctor_b.refresh_from_db()
        self.assertTrue(doctor_b.check_password('P@ssw0rd1'))

    def test_manual_reset_needs_a_password(self):
        self.auth(self.head_a)
        r = self.client.post(f'/api/camp-head/{self.camp_a.pk}/doctors/{self.doctor_a.pk}/reset-password',
                             {'passwordMode': 'manual'}, format='json')
        self.assertError(r, status.HTTP_400_BAD_REQUEST, 'validation_failed')

    def test_admin_staff_views_and_resets(self):
        self.auth(self.admin)
        users = self.client.get('/api/admin/users', {'role': Role.DOCTOR})
        self.assertEqual([u['email'] for u in users.data['users']], ['doc.a@example.com'])

        doctors = self.client.get(f'/api/admin/camps/{self.camp_a.pk}/doctors')
        self.assertEqual(len(doctors.data['doctors']), 1)
        head = self.client.get(f'/api/admin/camps/{self.camp_a.pk}/camp-head')
        self.assertEqual(head.data['campHead']['email'], 'head.a@example.com')
        none = self.client.get(f'/api/admin/camps/{self.camp_b.pk}/camp-head')
        self.assertError(none, status.HTTP_404_NOT_FOUND, 'camp_head_not_found')

        r = self.client.post(f'/api/admin/camp-heads/{self.head_a.pk}/reset-password', {}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        self.assertEqual(r.data['passwordMode'], 'auto')
        self.head_a.refresh_from_db()
        self.assertTrue(self.head_a.check_password(r.data['tempPassword']))

        wrong_role = self.client.post(f'/api/admin/doctors/{self.head_a.pk}/reset-password', {}, format='json')
        self.assertError(wrong_role, status.HTTP_404_NOT_FOUND, 'doctor_not_found')

    def test_staff_cannot_use_admin_staff_routes(self):
        self.auth(self.head_a)
        r = self.client.post(f'/api/admin/doctors/{self.doctor_a.pk}/reset-password', {}, format='json')
        self.assertError(r, status.HTTP_403_FORBIDDEN, 'insufficient_role')

    # -- visit summary ----------------------------------------------------

    def test_public_visit_summary(self):
        _, visit = visits.register(self.camp_a, DEMOGRAPHICS)
        visits.save_consultation(Identity.from_user(self.doctor_a), self.camp_a.pk, visit.pk, {
            'chief_complaints': 'Cough', 'diagnosis': 'Bronchitis', 'treatment_plan': 'Rest',
            'clinical_notes': 'internal only',
        })
        r = self.client.get(f'/api/public/visit/{visits.visit_summary_token(visit)}')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        self.assertEqual(r.data['visit']['patientId'], 'WINTER-CLINIC-0001')
        self.assertEqual(r.data['visit']['diagnosis'], 'Bronchitis')
        self.assertEqual(r.data['visit']['doctorName'], 'Dr A')
        self.assertNotIn('clinicalNotes', r.data['visit'])

        bad = self.client.get('/api/public/visit/not-a-token')
        self.assertError(bad, status.HTTP_404_NOT_FOUND, 'visit_summary_not_found')
