import logging
from typing import Optional

from django.conf import settings
from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from clinic.models import Consultation, MedicalAttachment, Patient, QueueEntry, Role, User
from clinic.services.audit import log_activity
from clinic.services.queue import advance_to_completed, ensure_doctor

logger = logging.getLogger(__name__)


def get_consultation(consultation_id) -> Consultation:
    try:
        return Consultation.objects.select_related('patient', 'doctor').get(pk=consultation_id)
    except Consultation.DoesNotExist:
        raise NotFound('Consultation not found')


@transaction.atomic
def record_consultation(
    author: User,
    *,
    patient: Patient,
    doctor: Optional[User] = None,
    queue_entry: Optional[QueueEntry] = None,
    notes: str = '',
    diagnosis: str = '',
    prescription: str = '',
    referral_letters: str = '',
) -> Consultation:
    """Store a consultation and complete the queue entry it closes.

    Doctors record their own consultations; admins must name the doctor.
    """
    if author.role == Role.DOCTOR:
        doctor = author
    elif doctor is None:
        raise ValidationError({'doctorId': ['A doctor is required.']})
    ensure_doctor(doctor)

    if queue_entry is not None and queue_entry.patient_id != patient.pk:
        raise ValidationError({'queueId': ['Queue entry belongs to a different patient.']})

    consultation = Consultation.objects.create(
        patient=patient,
        doctor=doctor,
        queue_entry=queue_entry,
        notes=notes,
        diagnosis=diagnosis,
        prescription=prescription,
        referral_letters=referral_letters,
    )
    if queue_entry is not None:
        advance_to_completed(queue_entry, operator=author)

    log_activity(
        user=author,
        action='create_consultation',
        details=f"Completed consultation for {patient.full_name}",
    )
    return consultation


def patient_consultations(patient: Patient):
    return (
        Consultation.objects.filter(patient=patient)
        .select_related('doctor')
        .prefetch_related('attachments')
        .order_by('-consultation_date')
    )


def _check_upload(f) -> str:
    ctype = getattr(f, 'content_type', '') or ''
    if not any(ctype.startswith(prefix) for prefix in settings.ALLOWED_ATTACHMENT_TYPES):
        raise ValidationError({'files': [f'{f.name}: unsupported file type.']})
    if (f.size or 0) > settings.ATTACHMENT_MAX_MB * 1024 * 1024:
        raise ValidationError({'files': [f'{f.name}: file exceeds {settings.ATTACHMENT_MAX_MB} MB.']})
    return ctype


@transaction.atomic
def add_attachments(consultation: Consultation, files: list, uploaded_by: User) -> list[MedicalAttachment]:
    if not files:
        raise ValidationError({'files': ['No files uploaded.']})
    if len(files) > settings.ATTACHMENT_MAX_FILES:
        raise ValidationError({'files': [f'At most {settings.ATTACHMENT_MAX_FILES} files per upload.']})

    attachments = []
    for f in files:
        ctype = _check_upload(f)
        attachments.append(MedicalAttachment.objects.create(
            consultation=consultation,
            file=f,
            original_name=f.name[:255],
            mime_type=ctype,
            file_size=f.size or 0,
            uploaded_by=uploaded_by,
        ))
    log_activity(
        user=uploaded_by,
        action='upload_attachment',
        details=f"Uploaded {len(attachments)} attachment(s) for consultation {consultation.pk}",
    )
    logger.info("%d attachment(s) stored for consultation %s", len(attachments), consultation.pk)
    return attachments


def get_attachment(attachment_id) -> MedicalAttachment:
    try:
        return MedicalAttachment.objects.select_related('consultation').get(pk=attachment_id)
    except MedicalAttachment.DoesNotExist:
        raise NotFound('Attachment not found')
