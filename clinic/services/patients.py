import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import Conflict
from clinic.models import Patient
from clinic.services.audit import log_activity

logger = logging.getLogger(__name__)


def get_patient(patient_id) -> Patient:
    try:
        return Patient.objects.get(pk=patient_id)
    except Patient.DoesNotExist:
        raise NotFound('Patient not found')


def validate_photo(photo) -> None:
    if photo is None:
        return
    ctype = getattr(photo, 'content_type', '') or ''
    if not ctype.startswith('image/'):
        raise ValidationError({'photo': ['Only image files are allowed.']})
    if (photo.size or 0) > settings.PATIENT_PHOTO_MAX_MB * 1024 * 1024:
        raise ValidationError({'photo': [f'Photo must be at most {settings.PATIENT_PHOTO_MAX_MB} MB.']})


def create_patient(current_user, data: dict, photo=None) -> Patient:
    validate_photo(photo)
    try:
        with transaction.atomic():
            patient = Patient(**data)
            if photo is not None:
                patient.photo = photo
            patient.save()
            log_activity(
                user=current_user,
                action='register_patient',
                details=f"Registered patient {patient.full_name} ({patient.id_number})",
            )
    except IntegrityError:
        logger.info("duplicate id number rejected: %s", data.get('id_number'))
        raise Conflict('A patient with this ID number already exists.')
    return patient


def update_patient(current_user, patient: Patient, data: dict, photo=None) -> Patient:
    validate_photo(photo)
    try:
        with transaction.atomic():
            for field, value in data.items():
                setattr(patient, field, value)
            if photo is not None:
                patient.photo = photo
            patient.save()
            log_activity(
                user=current_user,
                action='update_patient',
                details=f"Updated patient {patient.full_name}: {', '.join(sorted(data)) or 'photo'}",
            )
    except IntegrityError:
        raise Conflict('A patient with this ID number already exists.')
    return patient


def search_patients(q: str):
    q = (q or '').strip()
    if not q:
        return Patient.objects.none()
    return Patient.objects.filter(
        Q(first_name__icontains=q)
        | Q(last_name__icontains=q)
        | Q(phone__icontains=q)
        | Q(id_number__icontains=q)
    ).order_by('last_name', 'first_name')


def todays_birthdays(today=None):
    today = today or timezone.localdate()
    return Patient.objects.filter(
        date_of_birth__month=today.month, date_of_birth__day=today.day
    ).order_by('last_name', 'first_name')
