"""
Appointment booking rules.

Bookings sit on 30-minute slots and a doctor can hold only one live
(non-cancelled) booking per slot.  The slot check here gives a friendly
409; the partial unique constraint on the table is what actually
guarantees it when two bookings race.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError, transaction
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import Conflict, InvalidTransition
from clinic.models import Appointment, AppointmentStatus, Patient, User
from clinic.services.audit import log_activity
from clinic.services.queue import ensure_doctor

logger = logging.getLogger(__name__)

SLOT_MINUTES = 30

APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

if set(AppointmentStatus) - set(APPOINTMENT_TRANSITIONS):
    raise ImproperlyConfigured('every appointment status needs transition rules')


def get_appointment(appointment_id) -> Appointment:
    try:
        return Appointment.objects.select_related('patient', 'doctor').get(pk=appointment_id)
    except Appointment.DoesNotExist:
        raise NotFound('Appointment not found')


def validate_slot(when: datetime) -> None:
    if when.minute % SLOT_MINUTES or when.second or when.microsecond:
        raise ValidationError({'appointmentDate': ['Appointments must start on the hour or half hour.']})


def ensure_slot_free(doctor: User, when: datetime, exclude_pk=None) -> None:
    qs = Appointment.objects.filter(doctor=doctor, appointment_date=when).exclude(
        status=AppointmentStatus.CANCELLED
    )
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    if qs.exists():
        raise Conflict('The doctor already has an appointment in this time slot.')


def _save(appointment: Appointment) -> None:
    try:
        with transaction.atomic():
            appointment.save()
    except IntegrityError:
        logger.info("slot race lost for doctor %s at %s", appointment.doctor_id, appointment.appointment_date)
        raise Conflict('The doctor already has an appointment in this time slot.')


def create_appointment(
    current_user: User,
    *,
    patient: Patient,
    doctor: User,
    appointment_date: datetime,
    appointment_type: str = 'consultation',
    notes: str = '',
) -> Appointment:
    ensure_doctor(doctor)
    validate_slot(appointment_date)
    ensure_slot_free(doctor, appointment_date)
    appointment = Appointment(
        patient=patient,
        doctor=doctor,
        appointment_date=appointment_date,
        appointment_type=appointment_type or 'consultation',
        notes=notes or '',
    )
    _save(appointment)
    log_activity(
        user=current_user,
        action='create_appointment',
        details=f"Booked {patient.full_name} with {doctor.name} at {appointment_date:%Y-%m-%d %H:%M}",
    )
    return appointment


def change_status(appointment: Appointment, new_status: str) -> None:
    current = AppointmentStatus(appointment.status)
    target = AppointmentStatus(new_status)
    if target == current:
        return
    if target not in APPOINTMENT_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move appointment from {current.value} to {target.value}.")
    appointment.status = target


def update_appointment(
    current_user: User,
    appointment: Appointment,
    *,
    doctor: Optional[User] = None,
    appointment_date: Optional[datetime] = None,
    status: Optional[str] = None,
    appointment_type: Optional[str] = None,
    notes: Optional[str] = None,
) -> Appointment:
    if status is not None:
        change_status(appointment, status)
    if doctor is not None:
        appointment.doctor = ensure_doctor(doctor)
    if appointment_date is not None:
        validate_slot(appointment_date)
        appointment.appointment_date = appointment_date
    if appointment_type is not None:
        appointment.appointment_type = appointment_type
    if notes is not None:
        appointment.notes = notes

    if appointment.status != AppointmentStatus.CANCELLED and (doctor is not None or appointment_date is not None):
        ensure_slot_free(appointment.doctor, appointment.appointment_date, exclude_pk=appointment.pk)
    _save(appointment)
    log_activity(
        user=current_user,
        action='update_appointment',
        details=f"Updated appointment for {appointment.patient.full_name} ({appointment.status})",
    )
    return appointment


def list_appointments(*, day=None, doctor_id=None):
    qs = Appointment.objects.select_related('patient', 'doctor')
    if day is not None:
        qs = qs.filter(appointment_date__date=day)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    return qs.order_by('appointment_date')
