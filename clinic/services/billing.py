"""
Payments and medical-aid claims.

Claims move ``pending -> submitted -> approved`` with ``rejected``
reachable from the two open states.  ``submitted_at`` and
``approved_at`` are stamped the first time a claim enters that state.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import InvalidTransition
from clinic.models import CheckIn, ClaimStatus, MedicalAidClaim, Patient, Payment, User
from clinic.services.audit import log_activity

CLAIM_TRANSITIONS: dict[ClaimStatus, frozenset] = {
    ClaimStatus.PENDING: frozenset({ClaimStatus.SUBMITTED, ClaimStatus.REJECTED}),
    ClaimStatus.SUBMITTED: frozenset({ClaimStatus.APPROVED, ClaimStatus.REJECTED}),
    ClaimStatus.APPROVED: frozenset(),
    ClaimStatus.REJECTED: frozenset(),
}

if set(ClaimStatus) - set(CLAIM_TRANSITIONS):
    raise ImproperlyConfigured('every claim status needs transition rules')


def record_payment(
    operator: User,
    *,
    patient: Patient,
    amount: Decimal,
    payment_method: str,
    check_in: Optional[CheckIn] = None,
) -> Payment:
    if check_in is not None and check_in.patient_id != patient.pk:
        raise ValidationError({'checkInId': ['Check-in belongs to a different patient.']})
    payment = Payment(patient=patient, check_in=check_in, amount=amount, payment_method=payment_method)
    payment.full_clean()
    payment.save()
    log_activity(
        user=operator,
        action='record_payment',
        details=f"Recorded payment of {amount} ({payment_method}) for {patient.full_name}",
    )
    return payment


def list_payments(day=None):
    qs = Payment.objects.select_related('patient')
    if day is not None:
        qs = qs.filter(payment_date__date=day)
    return qs.order_by('-payment_date')


def list_claims(status: Optional[str] = None):
    qs = MedicalAidClaim.objects.select_related('patient', 'check_in')
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('-created_at')


def get_claim(claim_id) -> MedicalAidClaim:
    try:
        return MedicalAidClaim.objects.select_related('patient').get(pk=claim_id)
    except MedicalAidClaim.DoesNotExist:
        raise NotFound('Medical aid claim not found')


@transaction.atomic
def update_claim(
    operator: User,
    claim: MedicalAidClaim,
    *,
    status: Optional[str] = None,
    claim_amount: Optional[Decimal] = None,
    notes: Optional[str] = None,
) -> MedicalAidClaim:
    fields = []
    if status is not None and status != claim.status:
        current, target = ClaimStatus(claim.status), ClaimStatus(status)
        if target not in CLAIM_TRANSITIONS[current]:
            raise InvalidTransition(f"Cannot move claim from {current.value} to {target.value}.")
        # compare-and-set so two clerks cannot both advance the claim
        now = timezone.now()
        stamps = {}
        if target == ClaimStatus.SUBMITTED and claim.submitted_at is None:
            stamps['submitted_at'] = now
        if target == ClaimStatus.APPROVED and claim.approved_at is None:
            stamps['approved_at'] = now
        updated = MedicalAidClaim.objects.filter(pk=claim.pk, status=current).update(status=target, **stamps)
        if updated != 1:
            raise InvalidTransition('Claim was updated by another request; reload and try again.')
        claim.refresh_from_db()
    if claim_amount is not None:
        claim.claim_amount = claim_amount
        fields.append('claim_amount')
    if notes is not None:
        claim.notes = notes
        fields.append('notes')
    if fields:
        claim.save(update_fields=fields)
    log_activity(
        user=operator,
        action='update_claim',
        details=f"Medical aid claim for {claim.patient.full_name} is {claim.status}",
    )
    return claim
