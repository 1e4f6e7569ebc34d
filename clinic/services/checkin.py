"""
Patient check-in.

Checking a patient in is one atomic step that records the arrival, takes
the payment (cash, medical aid or both), opens a medical-aid claim when
the visit is billed to a scheme, confirms the linked appointment and
admits the patient to the doctor's queue.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction
from rest_framework.exceptions import ValidationError

from clinic.exceptions import Conflict
from clinic.models import (
    Appointment,
    AppointmentStatus,
    CheckIn,
    ClaimStatus,
    MedicalAidClaim,
    Patient,
    Payment,
    PaymentMethod,
    User,
)
from clinic.services.audit import log_activity
from clinic.services.queue import admit_to_queue

logger = logging.getLogger(__name__)

CASH_METHODS = (PaymentMethod.CASH, PaymentMethod.BOTH)
MEDICAL_AID_METHODS = (PaymentMethod.MEDICAL_AID, PaymentMethod.BOTH)


def _validate(patient: Patient, payment_method: str, payment_amount, appointment: Optional[Appointment]) -> None:
    errors: dict[str, list[str]] = {}
    if payment_method in CASH_METHODS and payment_amount is None:
        errors['paymentAmount'] = ['Payment amount is required for cash payments.']
    if payment_method in MEDICAL_AID_METHODS and not patient.has_medical_aid:
        errors['paymentMethod'] = ['Patient has no medical aid scheme and number on file.']
    if appointment is not None and appointment.patient_id != patient.pk:
        errors['appointmentId'] = ['Appointment belongs to a different patient.']
    if errors:
        raise ValidationError(errors)
    if appointment is not None and appointment.status in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED):
        raise Conflict(f"Appointment is already {appointment.status}.")


@transaction.atomic
def check_in_patient(
    operator: User,
    *,
    patient: Patient,
    doctor: User,
    payment_method: str,
    payment_amount: Optional[Decimal] = None,
    appointment: Optional[Appointment] = None,
    is_walk_in: Optional[bool] = None,
    notes: str = '',
    priority: int = 0,
    estimated_wait_time: Optional[int] = None,
) -> CheckIn:
    _validate(patient, payment_method, payment_amount, appointment)

    check_in = CheckIn.objects.create(
        patient=patient,
        appointment=appointment,
        payment_method=payment_method,
        is_walk_in=appointment is None if is_walk_in is None else is_walk_in,
        notes=notes or '',
    )

    if appointment is not None and appointment.status == AppointmentStatus.SCHEDULED:
        appointment.status = AppointmentStatus.CONFIRMED
        appointment.save(update_fields=['status'])

    if payment_amount is not None:
        Payment.objects.create(
            patient=patient,
            check_in=check_in,
            amount=payment_amount,
            payment_method=payment_method,
        )

    if payment_method in MEDICAL_AID_METHODS:
        MedicalAidClaim.objects.create(patient=patient, check_in=check_in, status=ClaimStatus.PENDING)

    admit_to_queue(
        check_in=check_in,
        doctor=doctor,
        priority=priority,
        estimated_wait_time=estimated_wait_time,
        operator=operator,
    )

    log_activity(
        user=operator,
        action='check_in',
        details=f"Checked in {patient.full_name} ({payment_method})",
    )
    logger.info("patient %s checked in for doctor %s", patient.pk, doctor.pk)
    return check_in


def list_check_ins(day=None):
    qs = CheckIn.objects.select_related('patient', 'appointment')
    if day is not None:
        qs = qs.filter(check_in_time__date=day)
    return qs.order_by('-check_in_time')
