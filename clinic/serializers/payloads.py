"""
JSON shapes returned by the API.

Keys are camelCase to match the client.  Timestamps are ISO-8601 strings
and money is a two-decimal string so no precision is lost in transit.
"""
from __future__ import annotations

from typing import Optional

from django.urls import reverse


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _money(value) -> Optional[str]:
    return None if value is None else f"{value:.2f}"


def user_payload(u) -> dict:
    return {
        'id': str(u.id),
        'email': u.email,
        'name': u.name,
        'role': u.role,
        'isActive': u.is_active,
        'createdAt': _iso(u.created_at),
    }


def api_key_payload(k) -> dict:
    return {
        'id': str(k.id),
        'name': k.name,
        'isActive': k.is_active,
        'lastUsedAt': _iso(k.last_used_at),
        'createdAt': _iso(k.created_at),
    }


def patient_payload(p) -> dict:
    return {
        'id': str(p.id),
        'firstName': p.first_name,
        'lastName': p.last_name,
        'email': p.email,
        'phone': p.phone,
        'dateOfBirth': _iso(p.date_of_birth),
        'gender': p.gender,
        'idNumber': p.id_number,
        'address': p.address,
        'medicalAidScheme': p.medical_aid_scheme,
        'medicalAidNumber': p.medical_aid_number,
        'allergies': p.allergies,
        'photoUrl': p.photo.url if p.photo else None,
        'createdAt': _iso(p.created_at),
    }


def patient_summary(p) -> dict:
    return {'id': str(p.id), 'firstName': p.first_name, 'lastName': p.last_name, 'idNumber': p.id_number}


def doctor_summary(u) -> dict:
    return {'id': str(u.id), 'name': u.name}


def appointment_payload(a) -> dict:
    return {
        'id': str(a.id),
        'patientId': str(a.patient_id),
        'doctorId': str(a.doctor_id),
        'patient': patient_summary(a.patient),
        'doctor': doctor_summary(a.doctor),
        'appointmentDate': _iso(a.appointment_date),
        'status': a.status,
        'appointmentType': a.appointment_type,
        'notes': a.notes,
        'createdAt': _iso(a.created_at),
    }


def check_in_payload(c) -> dict:
    return {
        'id': str(c.id),
        'patientId': str(c.patient_id),
        'patient': patient_summary(c.patient),
        'appointmentId': str(c.appointment_id) if c.appointment_id else None,
        'checkInTime': _iso(c.check_in_time),
        'paymentMethod': c.payment_method,
        'isWalkIn': c.is_walk_in,
        'notes': c.notes,
    }


def queue_entry_payload(q, *, with_history: bool = False) -> dict:
    data = {
        'id': str(q.id),
        'patientId': str(q.patient_id),
        'checkInId': str(q.check_in_id),
        'doctorId': str(q.doctor_id),
        'patient': patient_summary(q.patient),
        'doctor': doctor_summary(q.doctor),
        'status': q.status,
        'priority': q.priority,
        'estimatedWaitTime': q.estimated_wait_time,
        'actualWaitTime': q.actual_wait_time,
        'enteredAt': _iso(q.entered_at),
        'startedAt': _iso(q.started_at),
        'completedAt': _iso(q.completed_at),
    }
    if with_history:
        data['transitionHistory'] = [
            {
                'from': t.from_status,
                'to': t.to_status,
                'operator': t.operator.name if t.operator else '',
                'timestamp': _iso(t.timestamp),
            }
            for t in q.transitions.select_related('operator').order_by('timestamp', 'id')
        ]
    return data


def attachment_payload(a) -> dict:
    return {
        'id': str(a.id),
        'consultationId': str(a.consultation_id),
        'originalName': a.original_name,
        'mimeType': a.mime_type,
        'fileSize': a.file_size,
        'uploadedAt': _iso(a.uploaded_at),
        'downloadUrl': reverse('attachment_download', args=[a.id]),
    }


def consultation_payload(c, *, with_attachments: bool = False) -> dict:
    data = {
        'id': str(c.id),
        'patientId': str(c.patient_id),
        'doctorId': str(c.doctor_id),
        'doctor': doctor_summary(c.doctor),
        'queueId': str(c.queue_entry_id) if c.queue_entry_id else None,
        'notes': c.notes,
        'diagnosis': c.diagnosis,
        'prescription': c.prescription,
        'referralLetters': c.referral_letters,
        'consultationDate': _iso(c.consultation_date),
    }
    if with_attachments:
        data['attachments'] = [attachment_payload(a) for a in c.attachments.all()]
    return data


def payment_payload(p) -> dict:
    return {
        'id': str(p.id),
        'patientId': str(p.patient_id),
        'patient': patient_summary(p.patient),
        'checkInId': str(p.check_in_id) if p.check_in_id else None,
        'amount': _money(p.amount),
        'paymentMethod': p.payment_method,
        'paymentDate': _iso(p.payment_date),
    }


def claim_payload(c) -> dict:
    return {
        'id': str(c.id),
        'patientId': str(c.patient_id),
        'patient': patient_summary(c.patient),
        'checkInId': str(c.check_in_id),
        'status': c.status,
        'claimAmount': _money(c.claim_amount),
        'notes': c.notes,
        'submittedAt': _iso(c.submitted_at),
        'approvedAt': _iso(c.approved_at),
        'createdAt': _iso(c.created_at),
    }


def activity_payload(log) -> dict:
    return {
        'id': log.id,
        'userId': str(log.user_id) if log.user_id else None,
        'userName': log.user.name if log.user else None,
        'action': log.action,
        'details': log.details,
        'timestamp': _iso(log.timestamp),
    }


def birthday_wish_payload(w) -> dict:
    return {
        'id': w.id,
        'patientId': str(w.patient_id),
        'message': w.message,
        'sentAt': _iso(w.sent_at),
    }
