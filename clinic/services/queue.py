"""
Queue lifecycle: admission, service order and status transitions.

An entry moves ``waiting -> in_progress -> completed`` and never back.
Transitions are applied with compare-and-set: the UPDATE only matches
the row while it still holds the status the caller observed, so when
two requests race to advance the same entry exactly one of them wins and
the other gets :class:`~clinic.exceptions.InvalidTransition` (409).
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import Conflict, InvalidTransition
from clinic.models import CheckIn, QueueEntry, QueueStatus, QueueTransition, Role, User
from clinic.services.audit import log_activity

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[QueueStatus, frozenset] = {
    QueueStatus.WAITING: frozenset({QueueStatus.IN_PROGRESS}),
    QueueStatus.IN_PROGRESS: frozenset({QueueStatus.COMPLETED}),
    QueueStatus.COMPLETED: frozenset(),
}

_unmapped = set(QueueStatus) - set(ALLOWED_TRANSITIONS)
if _unmapped:
    raise ImproperlyConfigured(f"queue statuses without transition rules: {sorted(_unmapped)}")

ACTIVE_STATUSES = (QueueStatus.WAITING, QueueStatus.IN_PROGRESS)


def can_transition(current: str, new: str) -> bool:
    """Return True if a queue entry may move from ``current`` to ``new``."""
    return QueueStatus(new) in ALLOWED_TRANSITIONS[QueueStatus(current)]


def wait_minutes(entered_at: datetime, started_at: datetime) -> int:
    return max(0, int((started_at - entered_at).total_seconds() // 60))


def ensure_doctor(user: Optional[User], field: str = 'doctorId') -> User:
    if user is None or user.role != Role.DOCTOR or not user.is_active:
        raise ValidationError({field: ['Selected user is not an active doctor.']})
    return user


def doctor_by_id(doctor_id, field: str = 'doctorId') -> User:
    return ensure_doctor(User.objects.filter(pk=doctor_id).first(), field)


def admit_to_queue(
    *,
    check_in: CheckIn,
    doctor: User,
    priority: int = 0,
    estimated_wait_time: Optional[int] = None,
    operator: Optional[User] = None,
) -> QueueEntry:
    ensure_doctor(doctor)
    entry = QueueEntry.objects.create(
        patient=check_in.patient,
        check_in=check_in,
        doctor=doctor,
        priority=priority,
        estimated_wait_time=estimated_wait_time,
    )
    log_activity(
        user=operator,
        action='queue_admit',
        details=f"Added {check_in.patient.full_name} to the queue for {doctor.name} (priority {priority})",
    )
    return entry


def service_order(qs):
    """Highest priority first, then first-in-first-served."""
    return qs.order_by('-priority', 'entered_at', 'id')


def active_queue(doctor_id=None):
    qs = QueueEntry.objects.select_related('patient', 'doctor').filter(status__in=ACTIVE_STATUSES)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    return service_order(qs)


def next_entry(doctor_id=None) -> Optional[QueueEntry]:
    """The waiting entry that should be called in next, if any."""
    return active_queue(doctor_id).filter(status=QueueStatus.WAITING).first()


def _load_entry(entry_id) -> QueueEntry:
    try:
        return QueueEntry.objects.select_related('patient', 'doctor').get(pk=entry_id)
    except QueueEntry.DoesNotExist:
        raise NotFound('Queue entry not found')


def get_entry(entry_id) -> QueueEntry:
    return _load_entry(entry_id)


def transition(entry_id, to_status: str, *, operator: Optional[User] = None) -> QueueEntry:
    try:
        target = QueueStatus(to_status)
    except ValueError:
        raise ValidationError({'status': [f'"{to_status}" is not a valid queue status.']})

    entry = _load_entry(entry_id)
    current = QueueStatus(entry.status)
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot move queue entry from {current.value} to {target.value}.")

    now = timezone.now()
    changes: dict = {'status': target}
    if target == QueueStatus.IN_PROGRESS:
        changes['started_at'] = now
    elif target == QueueStatus.COMPLETED:
        changes['completed_at'] = now
        changes['actual_wait_time'] = wait_minutes(entry.entered_at, entry.started_at or now)

    with transaction.atomic():
        updated = QueueEntry.objects.filter(pk=entry.pk, status=current).update(**changes)
        if updated != 1:
            logger.warning("queue entry %s lost transition race %s -> %s", entry.pk, current, target)
            raise InvalidTransition('Queue entry was updated by another request; reload and try again.')
        QueueTransition.objects.create(entry_id=entry.pk, from_status=current, to_status=target, operator=operator)
        log_activity(
            user=operator,
            action='queue_status',
            details=f"Queue entry for {entry.patient.full_name}: {current.value} -> {target.value}",
        )

    logger.info("queue entry %s moved %s -> %s", entry.pk, current, target)
    entry.refresh_from_db()
    return entry


def advance_to_completed(entry: QueueEntry, *, operator: Optional[User] = None) -> QueueEntry:
    """Walk an entry through every remaining declared transition until it is completed."""
    while entry.status != QueueStatus.COMPLETED:
        (next_status,) = ALLOWED_TRANSITIONS[QueueStatus(entry.status)]
        entry = transition(entry.pk, next_status, operator=operator)
    return entry


def update_entry(
    entry_id,
    *,
    operator: Optional[User] = None,
    priority: Optional[int] = None,
    estimated_wait_time: Optional[int] = None,
    doctor: Optional[User] = None,
) -> QueueEntry:
    """Corrective edit of a waiting entry (priority, estimate, assigned doctor)."""
    entry = _load_entry(entry_id)
    changes: dict = {}
    if priority is not None:
        changes['priority'] = priority
    if estimated_wait_time is not None:
        changes['estimated_wait_time'] = estimated_wait_time
    if doctor is not None:
        changes['doctor'] = ensure_doctor(doctor)
    if not changes:
        return entry

    updated = QueueEntry.objects.filter(pk=entry.pk, status=QueueStatus.WAITING).update(**changes)
    if updated != 1:
        raise Conflict('Only waiting queue entries can be edited.')
    log_activity(
        user=operator,
        action='queue_update',
        details=f"Updated queue entry for {entry.patient.full_name}: {', '.join(sorted(changes))}",
    )
    entry.refresh_from_db()
    return entry
