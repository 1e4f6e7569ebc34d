"""
Database models for the clinic backend.

The schema covers staff accounts, patients and everything that hangs off
a visit: appointments, check-ins, the doctor queue, consultations with
their attachments, payments and medical-aid claims.  Clinical rows are
never deleted; foreign keys protect them and users are deactivated
instead.  Status and role values are closed ``TextChoices`` enums so the
state-transition code can check it handles every member.
"""
from __future__ import annotations

import os
import uuid
from datetime import date

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Role(models.TextChoices):
    STAFF = 'staff', 'Staff'
    ADMIN = 'admin', 'Administrator'
    DOCTOR = 'doctor', 'Doctor'


class Gender(models.TextChoices):
    MALE = 'male', 'Male'
    FEMALE = 'female', 'Female'
    OTHER = 'other', 'Other'


class AppointmentStatus(models.TextChoices):
    SCHEDULED = 'scheduled', 'Scheduled'
    CONFIRMED = 'confirmed', 'Confirmed'
    IN_PROGRESS = 'in_progress', 'In progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class PaymentMethod(models.TextChoices):
    CASH = 'cash', 'Cash'
    MEDICAL_AID = 'medical_aid', 'Medical aid'
    BOTH = 'both', 'Cash and medical aid'


class QueueStatus(models.TextChoices):
    WAITING = 'waiting', 'Waiting'
    IN_PROGRESS = 'in_progress', 'In progress'
    COMPLETED = 'completed', 'Completed'


class ClaimStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    SUBMITTED = 'submitted', 'Submitted'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'


class UserManager(BaseUserManager):
    """Manager for email-based accounts."""

    use_in_migrations = True

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('role', Role.ADMIN)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('name', 'Administrator')
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """A clinic staff account.

    Accounts are never removed; ``is_active`` is the only way to revoke
    access and it also invalidates every API key the user issued.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    name = models.CharField(max_length=255)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.STAFF, db_index=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    class Meta:
        ordering = ['name']

    @property
    def is_staff(self) -> bool:
        # Django admin access follows the clinic admin role
        return self.role == Role.ADMIN

    def __str__(self) -> str:
        return f"{self.email} ({self.role})"


def _patient_photo_upload(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return f"patient-photos/{date.today().strftime('%Y/%m')}/{uuid.uuid4().hex}{ext}"


class Patient(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=10, choices=Gender.choices)
    # National ID number; uniqueness is enforced by the database
    id_number = models.CharField(max_length=32, unique=True)
    address = models.TextField(blank=True)
    medical_aid_scheme = models.CharField(max_length=100, blank=True)
    medical_aid_number = models.CharField(max_length=64, blank=True)
    allergies = models.TextField(blank=True)
    photo = models.FileField(upload_to=_patient_photo_upload, max_length=512, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['last_name', 'first_name'], name='patient_name_idx'),
            models.Index(fields=['phone'], name='patient_phone_idx'),
        ]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def has_medical_aid(self) -> bool:
        return bool(self.medical_aid_scheme and self.medical_aid_number)

    def __str__(self) -> str:
        return f"{self.full_name} ({self.id_number})"


class Appointment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='appointments')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='appointments')
    appointment_date = models.DateTimeField(db_index=True)
    status = models.CharField(
        max_length=16, choices=AppointmentStatus.choices, default=AppointmentStatus.SCHEDULED, db_index=True
    )
    appointment_type = models.CharField(max_length=64, default='consultation')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['appointment_date']
        constraints = [
            # A doctor holds at most one live booking per slot
            models.UniqueConstraint(
                fields=['doctor', 'appointment_date'],
                condition=~Q(status='cancelled'),
                name='uniq_doctor_slot_active',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.patient_id} with {self.doctor_id} @ {self.appointment_date:%F %H:%M}"


class CheckIn(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='check_ins')
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.PROTECT, related_name='check_ins'
    )
    check_in_time = models.DateTimeField(default=timezone.now, db_index=True)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    is_walk_in = models.BooleanField(default=False)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-check_in_time']

    def __str__(self) -> str:
        return f"check-in {self.patient_id} @ {self.check_in_time:%F %H:%M}"


class QueueEntry(models.Model):
    """A patient's place in a doctor's waiting line.

    ``started_at`` and ``completed_at`` are only written by
    :mod:`clinic.services.queue` on the matching transition.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='queue_entries')
    check_in = models.ForeignKey(CheckIn, on_delete=models.PROTECT, related_name='queue_entries')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='queue_entries')
    status = models.CharField(
        max_length=16, choices=QueueStatus.choices, default=QueueStatus.WAITING, db_index=True
    )
    # Higher values are served first
    priority = models.IntegerField(default=0)
    estimated_wait_time = models.PositiveIntegerField(null=True, blank=True, help_text='minutes, set by staff')
    actual_wait_time = models.PositiveIntegerField(null=True, blank=True, help_text='minutes')
    entered_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-priority', 'entered_at']
        indexes = [
            models.Index(fields=['doctor', 'status'], name='queue_doctor_status_idx'),
            models.Index(fields=['status', '-priority', 'entered_at'], name='queue_service_order_idx'),
        ]

    def __str__(self) -> str:
        return f"queue {self.patient_id} -> {self.doctor_id} [{self.status}]"


class QueueTransition(models.Model):
    """Records a status transition for a queue entry."""
    entry = models.ForeignKey(QueueEntry, related_name='transitions', on_delete=models.PROTECT)
    from_status = models.CharField(max_length=16, choices=QueueStatus.choices)
    to_status = models.CharField(max_length=16, choices=QueueStatus.choices)
    operator = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='queue_transitions')
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self) -> str:
        return f"{self.entry_id}: {self.from_status} -> {self.to_status}"


class Consultation(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='consultations')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='consultations')
    queue_entry = models.ForeignKey(
        QueueEntry, null=True, blank=True, on_delete=models.PROTECT, related_name='consultations'
    )
    notes = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    prescription = models.TextField(blank=True)
    referral_letters = models.TextField(blank=True)
    consultation_date = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-consultation_date']

    def __str__(self) -> str:
        return f"consultation {self.patient_id} by {self.doctor_id} @ {self.consultation_date:%F}"


def _attachment_upload(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return f"attachments/{date.today().strftime('%Y/%m')}/{uuid.uuid4().hex}{ext}"


class MedicalAttachment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    consultation = models.ForeignKey(Consultation, on_delete=models.PROTECT, related_name='attachments')
    file = models.FileField(upload_to=_attachment_upload, max_length=512)
    original_name = models.CharField(max_length=255)
    mime_type = models.CharField(max_length=128)
    file_size = models.PositiveIntegerField(default=0)
    uploaded_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='uploaded_attachments')
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['uploaded_at']

    def __str__(self) -> str:
        return f"att {self.original_name} consultation={self.consultation_id}"


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='payments')
    check_in = models.ForeignKey(CheckIn, null=True, blank=True, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    payment_date = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-payment_date']
        constraints = [
            models.CheckConstraint(condition=Q(amount__gte=0), name='payment_amount_non_negative'),
        ]

    def __str__(self) -> str:
        return f"{self.amount} ({self.payment_method}) {self.patient_id}"


class MedicalAidClaim(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='medical_aid_claims')
    check_in = models.OneToOneField(CheckIn, on_delete=models.PROTECT, related_name='medical_aid_claim')
    status = models.CharField(max_length=16, choices=ClaimStatus.choices, default=ClaimStatus.PENDING, db_index=True)
    claim_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(0)]
    )
    notes = models.TextField(blank=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"claim {self.patient_id} [{self.status}]"


class ActivityLog(models.Model):
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='activity_logs')
    action = models.CharField(max_length=64)
    details = models.TextField(blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp', '-id']
        indexes = [
            models.Index(fields=['action', 'timestamp'], name='activity_action_ts_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.user_id}@{self.timestamp:%F %T}"


class ApiKey(models.Model):
    """Long-lived automation credential.

    Only the SHA-256 digest of the key is stored; the raw ``sk_`` value
    is shown once when the key is issued.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='api_keys')
    name = models.CharField(max_length=100)
    key_hash = models.CharField(max_length=64, unique=True)
    is_active = models.BooleanField(default=True)
    last_used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"{self.name} ({self.user_id})"


class BirthdayWish(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='birthday_wishes')
    sent_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='birthday_wishes')
    message = models.TextField()
    webhook_response = models.TextField(blank=True)
    sent_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-sent_at']

    def __str__(self) -> str:
        return f"wish {self.patient_id} @ {self.sent_at:%F}"
