"""
Integration tests for the clinic API.

These tests walk a patient through the front desk: registration,
booking, check-in with payment, the doctor's queue and the consultation
that completes the visit.  They use Django REST Framework's APIClient
within the APITestCase base class.

To run the tests:

```
pytest -q clinic/tests
```
"""
import datetime as dt
from decimal import Decimal

from django.core.cache import cache
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import (
    ActivityLog,
    Appointment,
    AppointmentStatus,
    CheckIn,
    MedicalAidClaim,
    Patient,
    Payment,
    QueueEntry,
    QueueStatus,
    QueueTransition,
    Role,
    User,
)

PASSWORD = 'Corr3ct-Horse-99'


def _slot(days=1, hour=9, minute=0):
    base = timezone.localtime() + dt.timedelta(days=days)
    return base.replace(hour=hour, minute=minute, second=0, microsecond=0)


class ClinicAPITests(APITestCase):
    def setUp(self) -> None:
        cache.clear()
        self.admin = User.objects.create_user(email='admin@example.com', password=PASSWORD, name='Ada', role=Role.ADMIN)
        self.staff = User.objects.create_user(email='staff@example.com', password=PASSWORD, name='Sam', role=Role.STAFF)
        self.doctor = User.objects.create_user(email='doc@example.com', password=PASSWORD, name='Dr Dee', role=Role.DOCTOR)
        self.doctor2 = User.objects.create_user(email='doc2@example.com', password=PASSWORD, name='Dr Two', role=Role.DOCTOR)

        self.staff_client = APIClient()
        self.staff_client.force_authenticate(self.staff)
        self.doctor_client = APIClient()
        self.doctor_client.force_authenticate(self.doctor)
        self.admin_client = APIClient()
        self.admin_client.force_authenticate(self.admin)

        self.patient_body = {
            'firstName': 'Thandi',
            'lastName': 'Nkosi',
            'phone': '0821234567',
            'dateOfBirth': '1980-01-01',
            'gender': 'female',
            'idNumber': '8001015009087',
            'medicalAidScheme': 'Discovery',
            'medicalAidNumber': 'DH123',
        }

    def _register(self, **overrides):
        body = {**self.patient_body, **overrides}
        r = self.staff_client.post('/api/patients', body, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        return r.data

    def _check_in(self, patient_id, **overrides):
        body = {
            'patientId': patient_id,
            'doctorId': str(self.doctor.id),
            'paymentMethod': 'cash',
            'paymentAmount': '350.00',
        }
        body.update(overrides)
        return self.staff_client.post('/api/checkins', body, format='json')

    # patients ---------------------------------------------------------------

    def test_register_patient_and_fetch(self):
        created = self._register()
        self.assertEqual(created['idNumber'], '8001015009087')
        r = self.doctor_client.get(f"/api/patients/{created['id']}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['firstName'], 'Thandi')
        self.assertTrue(ActivityLog.objects.filter(action='register_patient', user=self.staff).exists())

    def test_duplicate_id_number_is_conflict(self):
        self._register()
        r = self.staff_client.post('/api/patients', {**self.patient_body, 'firstName': 'Other'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(r.data['error']['code'], 'conflict')
        self.assertEqual(Patient.objects.count(), 1)

    def test_register_requires_fields(self):
        r = self.staff_client.post('/api/patients', {'firstName': 'X'}, format='json')
        self.assertEqual(r.status_code, 400)
        self.assertIn('idNumber', r.data['error']['fields'])

    def test_markup_is_stripped_from_text_fields(self):
        created = self._register(allergies='<script>alert(1)</script>Penicillin')
        self.assertNotIn('<script>', created['allergies'])
        self.assertIn('Penicillin', created['allergies'])

    def test_search_and_update(self):
        created = self._register()
        r = self.doctor_client.get('/api/patients/search', {'q': 'nkos'})
        self.assertEqual([p['id'] for p in r.data], [created['id']])
        r = self.doctor_client.put(f"/api/patients/{created['id']}", {'allergies': 'Latex'}, format='json')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['allergies'], 'Latex')
        self.assertEqual(r.data['lastName'], 'Nkosi')

    def test_patient_list_refreshes_after_registration(self):
        self.assertEqual(self.staff_client.get('/api/patients').data, [])
        self._register()
        self.assertEqual(len(self.staff_client.get('/api/patients').data), 1)

    def test_patient_edit_refreshes_embedded_copies(self):
        pid = self._register()['id']
        self._check_in(pid)
        self.assertEqual(self.staff_client.get('/api/queue').data[0]['patient']['lastName'], 'Nkosi')
        self.assertEqual(self.staff_client.get('/api/payments').data[0]['patient']['lastName'], 'Nkosi')

        r = self.staff_client.put(f'/api/patients/{pid}', {'lastName': 'Dlamini'}, format='json')
        self.assertEqual(r.status_code, 200)

        self.assertEqual(self.staff_client.get('/api/queue').data[0]['patient']['lastName'], 'Dlamini')
        self.assertEqual(self.staff_client.get('/api/payments').data[0]['patient']['lastName'], 'Dlamini')
        self.assertEqual(self.staff_client.get('/api/checkins').data[0]['patient']['lastName'], 'Dlamini')

    def test_doctor_rename_refreshes_queue(self):
        pid = self._register()['id']
        self._check_in(pid)
        self.assertEqual(self.staff_client.get('/api/queue').data[0]['doctor']['name'], 'Dr Dee')

        r = self.admin_client.put(f'/api/users/{self.doctor.id}', {'name': 'Dr Dlamini'}, format='json')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.staff_client.get('/api/queue').data[0]['doctor']['name'], 'Dr Dlamini')

    def test_unknown_patient_is_json_404(self):
        r = self.staff_client.get('/api/patients/00000000-0000-0000-0000-000000000000')
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.data['error']['code'], 'not_found')

    # appointments -----------------------------------------------------------

    def test_booked_slot_is_conflict(self):
        pid = self._register()['id']
        body = {'patientId': pid, 'doctorId': str(self.doctor.id), 'appointmentDate': _slot().isoformat()}
        r = self.staff_client.post('/api/appointments', body, format='json')
        self.assertEqual(r.status_code, 201, r.data)
        self.assertEqual(r.data['status'], 'scheduled')
        r = self.staff_client.post('/api/appointments', body, format='json')
        self.assertEqual(r.status_code, 409)
        # another doctor is free at the same time
        r = self.staff_client.post('/api/appointments', {**body, 'doctorId': str(self.doctor2.id)}, format='json')
        self.assertEqual(r.status_code, 201)

    def test_cancelled_slot_can_be_rebooked(self):
        pid = self._register()['id']
        body = {'patientId': pid, 'doctorId': str(self.doctor.id), 'appointmentDate': _slot().isoformat()}
        aid = self.staff_client.post('/api/appointments', body, format='json').data['id']
        r = self.staff_client.put(f'/api/appointments/{aid}', {'status': 'cancelled'}, format='json')
        self.assertEqual(r.data['status'], 'cancelled')
        r = self.staff_client.post('/api/appointments', body, format='json')
        self.assertEqual(r.status_code, 201)

    def test_off_slot_time_is_rejected(self):
        pid = self._register()['id']
        body = {'patientId': pid, 'doctorId': str(self.doctor.id), 'appointmentDate': _slot(minute=10).isoformat()}
        r = self.staff_client.post('/api/appointments', body, format='json')
        self.assertEqual(r.status_code, 400)
        self.assertIn('appointmentDate', r.data['error']['fields'])

    def test_booking_with_non_doctor_is_rejected(self):
        pid = self._register()['id']
        body = {'patientId': pid, 'doctorId': str(self.staff.id), 'appointmentDate': _slot().isoformat()}
        r = self.staff_client.post('/api/appointments', body, format='json')
        self.assertEqual(r.status_code, 400)
        self.assertIn('doctorId', r.data['error']['fields'])

    def test_completed_appointment_cannot_be_reopened(self):
        pid = self._register()['id']
        appt = Appointment.objects.create(
            patient_id=pid, doctor=self.doctor, appointment_date=_slot(), status=AppointmentStatus.COMPLETED
        )
        r = self.staff_client.put(f'/api/appointments/{appt.id}', {'status': 'scheduled'}, format='json')
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.data['error']['code'], 'invalid_transition')

    def test_list_appointments_by_day(self):
        pid = self._register()['id']
        when = _slot(days=2)
        Appointment.objects.create(patient_id=pid, doctor=self.doctor, appointment_date=when)
        r = self.staff_client.get('/api/appointments', {'date': when.date().isoformat()})
        self.assertEqual(len(r.data), 1)
        r = self.staff_client.get('/api/appointments', {'date': (when.date() + dt.timedelta(days=1)).isoformat()})
        self.assertEqual(r.data, [])

    # check-in ---------------------------------------------------------------

    def test_walk_in_cash_check_in_queues_patient(self):
        pid = self._register()['id']
        r = self._check_in(pid)
        self.assertEqual(r.status_code, 201, r.data)
        self.assertTrue(r.data['isWalkIn'])
        entry = QueueEntry.objects.get(pk=r.data['queueEntryId'])
        self.assertEqual(entry.status, QueueStatus.WAITING)
        self.assertEqual(entry.doctor, self.doctor)
        self.assertEqual(Payment.objects.get().amount, Decimal('350.00'))
        self.assertFalse(MedicalAidClaim.objects.exists())

    def test_medical_aid_check_in_opens_claim(self):
        pid = self._register()['id']
        r = self._check_in(pid, paymentMethod='medical_aid', paymentAmount=None)
        self.assertEqual(r.status_code, 201, r.data)
        claim = MedicalAidClaim.objects.get()
        self.assertEqual(claim.status, 'pending')
        self.assertFalse(Payment.objects.exists())

    def test_medical_aid_requires_scheme_on_file(self):
        pid = self._register(idNumber='7001015009081', medicalAidScheme='', medicalAidNumber='')['id']
        r = self._check_in(pid, paymentMethod='medical_aid', paymentAmount=None)
        self.assertEqual(r.status_code, 400)
        self.assertIn('paymentMethod', r.data['error']['fields'])
        self.assertFalse(CheckIn.objects.exists())

    def test_cash_requires_amount(self):
        pid = self._register()['id']
        r = self._check_in(pid, paymentAmount=None)
        self.assertEqual(r.status_code, 400)
        self.assertIn('paymentAmount', r.data['error']['fields'])

    def test_negative_amount_is_rejected(self):
        pid = self._register()['id']
        r = self._check_in(pid, paymentAmount='-5.00')
        self.assertEqual(r.status_code, 400)
        self.assertFalse(QueueEntry.objects.exists())

    def test_check_in_confirms_appointment(self):
        pid = self._register()['id']
        appt = Appointment.objects.create(patient_id=pid, doctor=self.doctor, appointment_date=_slot(days=0, hour=23))
        r = self._check_in(pid, appointmentId=str(appt.id))
        self.assertEqual(r.status_code, 201, r.data)
        self.assertFalse(r.data['isWalkIn'])
        appt.refresh_from_db()
        self.assertEqual(appt.status, AppointmentStatus.CONFIRMED)

    def test_doctor_cannot_check_in(self):
        pid = self._register()['id']
        r = self.doctor_client.post('/api/checkins', {'patientId': pid}, format='json')
        self.assertEqual(r.status_code, 403)

    # queue and consultation -------------------------------------------------

    def test_visit_lifecycle(self):
        pid = self._register()['id']
        qid = self._check_in(pid).data['queueEntryId']

        queue = self.doctor_client.get('/api/queue', {'doctorId': str(self.doctor.id)}).data
        self.assertEqual([e['id'] for e in queue], [qid])
        self.assertEqual(self.doctor_client.get('/api/queue/next').data['next']['id'], qid)

        r = self.doctor_client.put(f'/api/queue/{qid}/status', {'status': 'in_progress'}, format='json')
        self.assertEqual(r.status_code, 200, r.data)
        self.assertEqual(r.data['status'], 'in_progress')
        self.assertIsNotNone(r.data['startedAt'])
        self.assertIsNone(self.doctor_client.get('/api/queue/next').data['next'])

        r = self.doctor_client.post('/api/consultations', {
            'patientId': pid,
            'queueId': qid,
            'diagnosis': 'Hypertension',
            'prescription': 'Amlodipine 5mg',
        }, format='json')
        self.assertEqual(r.status_code, 201, r.data)
        self.assertEqual(r.data['doctorId'], str(self.doctor.id))

        entry = QueueEntry.objects.get(pk=qid)
        self.assertEqual(entry.status, QueueStatus.COMPLETED)
        self.assertIsNotNone(entry.completed_at)
        self.assertIsNotNone(entry.actual_wait_time)
        self.assertEqual(self.doctor_client.get('/api/queue').data, [])

        history = self.doctor_client.get(f'/api/queue/{qid}').data['transitionHistory']
        self.assertEqual([(h['from'], h['to']) for h in history],
                         [('waiting', 'in_progress'), ('in_progress', 'completed')])

        r = self.doctor_client.get(f'/api/patients/{pid}/consultations')
        self.assertEqual([c['diagnosis'] for c in r.data], ['Hypertension'])

    def test_consultation_completes_waiting_entry_through_declared_steps(self):
        pid = self._register()['id']
        qid = self._check_in(pid).data['queueEntryId']
        r = self.doctor_client.post('/api/consultations', {'patientId': pid, 'queueId': qid}, format='json')
        self.assertEqual(r.status_code, 201, r.data)
        steps = list(QueueTransition.objects.filter(entry_id=qid).values_list('from_status', 'to_status'))
        self.assertEqual(steps, [('waiting', 'in_progress'), ('in_progress', 'completed')])

    def test_completed_entry_cannot_move_back(self):
        pid = self._register()['id']
        qid = self._check_in(pid).data['queueEntryId']
        self.doctor_client.put(f'/api/queue/{qid}/status', {'status': 'in_progress'}, format='json')
        self.doctor_client.put(f'/api/queue/{qid}/status', {'status': 'completed'}, format='json')
        for target in ('waiting', 'in_progress', 'completed'):
            r = self.doctor_client.put(f'/api/queue/{qid}/status', {'status': target}, format='json')
            self.assertEqual(r.status_code, 409, target)
            self.assertEqual(r.data['error']['code'], 'invalid_transition')

    def test_waiting_cannot_skip_to_completed(self):
        pid = self._register()['id']
        qid = self._check_in(pid).data['queueEntryId']
        r = self.doctor_client.put(f'/api/queue/{qid}/status', {'status': 'completed'}, format='json')
        self.assertEqual(r.status_code, 409)

    def test_unknown_status_is_validation_error(self):
        pid = self._register()['id']
        qid = self._check_in(pid).data['queueEntryId']
        r = self.doctor_client.put(f'/api/queue/{qid}/status', {'status': 'cancelled'}, format='json')
        self.assertEqual(r.status_code, 400)

    def test_staff_corrects_waiting_entry(self):
        pid = self._register()['id']
        qid = self._check_in(pid).data['queueEntryId']
        r = self.staff_client.put(f'/api/queue/{qid}', {'priority': 5, 'doctorId': str(self.doctor2.id)}, format='json')
        self.assertEqual(r.status_code, 200, r.data)
        self.assertEqual(r.data['priority'], 5)
        self.assertEqual(r.data['doctorId'], str(self.doctor2.id))
        # doctors may move entries along but not edit them
        r = self.doctor_client.put(f'/api/queue/{qid}', {'priority': 1}, format='json')
        self.assertEqual(r.status_code, 403)

    def test_consultation_rejects_foreign_queue_entry(self):
        pid = self._register()['id']
        other = self._register(idNumber='7001015009081', firstName='Lerato')['id']
        qid = self._check_in(other).data['queueEntryId']
        r = self.doctor_client.post('/api/consultations', {'patientId': pid, 'queueId': qid}, format='json')
        self.assertEqual(r.status_code, 400)
        self.assertIn('queueId', r.data['error']['fields'])

    def test_admin_must_name_doctor_for_consultation(self):
        pid = self._register()['id']
        r = self.admin_client.post('/api/consultations', {'patientId': pid}, format='json')
        self.assertEqual(r.status_code, 400)
        r = self.admin_client.post('/api/consultations', {'patientId': pid, 'doctorId': str(self.doctor.id)},
                                   format='json')
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.data['doctorId'], str(self.doctor.id))

    # billing ----------------------------------------------------------------

    def test_claim_workflow(self):
        pid = self._register()['id']
        self._check_in(pid, paymentMethod='both', paymentAmount='100.00')
        claim = self.staff_client.get('/api/medical-aid-claims', {'status': 'pending'}).data[0]

        r = self.staff_client.put(f"/api/medical-aid-claims/{claim['id']}",
                                  {'status': 'submitted', 'claimAmount': '820.50'}, format='json')
        self.assertEqual(r.status_code, 200, r.data)
        self.assertEqual(r.data['claimAmount'], '820.50')
        self.assertIsNotNone(r.data['submittedAt'])

        r = self.staff_client.put(f"/api/medical-aid-claims/{claim['id']}", {'status': 'approved'}, format='json')
        self.assertIsNotNone(r.data['approvedAt'])
        r = self.staff_client.put(f"/api/medical-aid-claims/{claim['id']}", {'status': 'pending'}, format='json')
        self.assertEqual(r.status_code, 409)

    def test_payments_listing_and_manual_payment(self):
        pid = self._register()['id']
        r = self.staff_client.post('/api/payments', {'patientId': pid, 'amount': '50.00', 'paymentMethod': 'cash'},
                                   format='json')
        self.assertEqual(r.status_code, 201, r.data)
        today = timezone.localdate().isoformat()
        r = self.staff_client.get('/api/payments', {'date': today})
        self.assertEqual([p['amount'] for p in r.data], ['50.00'])
        self.assertEqual(self.doctor_client.get('/api/payments').status_code, 403)

    def test_dashboard_counts(self):
        pid = self._register()['id']
        self._check_in(pid, paymentAmount='120.00')
        r = self.doctor_client.get('/api/dashboard/stats')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['queueCount'], 1)
        self.assertEqual(r.data['todayRevenue'], '120.00')
        self.assertEqual(r.data['newPatients'], 1)

    def test_activity_log_is_admin_only(self):
        self._register()
        self.assertEqual(self.staff_client.get('/api/activity-logs').status_code, 403)
        r = self.admin_client.get('/api/activity-logs', {'limit': 1})
        self.assertEqual(len(r.data), 1)
        self.assertEqual(r.data[0]['action'], 'register_patient')

    # users ------------------------------------------------------------------

    def test_admin_manages_users(self):
        r = self.admin_client.post('/api/users', {
            'email': 'New.Doc@Example.com', 'password': PASSWORD, 'name': 'Dr New', 'role': 'doctor',
        }, format='json')
        self.assertEqual(r.status_code, 201, r.data)
        self.assertEqual(r.data['email'], 'new.doc@example.com')
        self.assertIn('Dr New', [d['name'] for d in self.staff_client.get('/api/doctors').data])

        r = self.admin_client.delete(f"/api/users/{r.data['id']}")
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.data['isActive'])
        self.assertNotIn('Dr New', [d['name'] for d in self.staff_client.get('/api/doctors').data])

    def test_duplicate_user_email_is_conflict(self):
        r = self.admin_client.post('/api/users', {
            'email': 'staff@example.com', 'password': PASSWORD, 'name': 'Dup', 'role': 'staff',
        }, format='json')
        self.assertEqual(r.status_code, 409)

    def test_admin_cannot_deactivate_self(self):
        r = self.admin_client.put(f'/api/users/{self.admin.id}', {'isActive': False}, format='json')
        self.assertEqual(r.status_code, 400)
