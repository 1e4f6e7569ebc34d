"""
Business insights for the clinic owner: month-on-month figures, patient
retention and when the practice is busiest.

Months are calendar months in the clinic's local time zone.  Percentages
are whole numbers rounded half up; revenue is a two-place decimal string
like the dashboard's ``todayRevenue``.
"""
from __future__ import annotations

import calendar
import datetime as dt
from decimal import ROUND_HALF_UP, Decimal

from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from clinic.models import Appointment, AppointmentStatus, ClaimStatus, MedicalAidClaim, Patient, Payment

RETENTION_WINDOWS = (('thirtyDay', 30), ('sixtyDay', 60), ('ninetyDay', 90))
# JavaScript day numbering (Sunday == 0), which the client expects
DAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


def _percent(part, whole) -> int:
    if not whole:
        return 0
    return int((Decimal(part) * 100 / Decimal(whole)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _money(value) -> str:
    return str((value or Decimal('0')).quantize(Decimal('0.01')))


def _start_of(day: dt.date) -> dt.datetime:
    return timezone.make_aware(dt.datetime.combine(day, dt.time.min))


def _next_month(first: dt.date) -> dt.date:
    return dt.date(first.year + first.month // 12, first.month % 12 + 1, 1)


def month_starts(count: int, today=None) -> list[dt.date]:
    """First days of the last ``count`` months, oldest first, ending with this month."""
    today = today or timezone.localdate()
    year, month = today.year, today.month
    firsts = []
    for _ in range(count):
        firsts.append(dt.date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return firsts[::-1]


def _month_range(first: dt.date) -> tuple[dt.datetime, dt.datetime]:
    return _start_of(first), _start_of(_next_month(first))


def monthly_stats(months_back: int = 12, today=None) -> dict:
    """Revenue, bookings, registrations and completion rate per month.

    Revenue counts payments taken in the month plus medical-aid claims
    approved in it.
    """
    monthly = []
    for first in month_starts(months_back, today):
        start, end = _month_range(first)
        paid = Payment.objects.filter(payment_date__gte=start, payment_date__lt=end).aggregate(
            total=Sum('amount'))['total'] or Decimal('0')
        approved = MedicalAidClaim.objects.filter(
            status=ClaimStatus.APPROVED,
            claim_amount__isnull=False,
            approved_at__gte=start,
            approved_at__lt=end,
        ).aggregate(total=Sum('claim_amount'))['total'] or Decimal('0')
        bookings = Appointment.objects.filter(appointment_date__gte=start, appointment_date__lt=end).aggregate(
            total=Count('id'),
            completed=Count('id', filter=Q(status=AppointmentStatus.COMPLETED)),
        )
        monthly.append({
            'month': calendar.month_name[first.month],
            'year': first.year,
            'revenue': _money(paid + approved),
            'appointments': bookings['total'],
            'patients': Patient.objects.filter(created_at__gte=start, created_at__lt=end).count(),
            'completionRate': _percent(bookings['completed'], bookings['total']),
        })
    return {'monthlyData': monthly}


def patient_retention_stats(today=None) -> dict:
    now = timezone.now()
    completed = Appointment.objects.filter(status=AppointmentStatus.COMPLETED)

    visits = completed.values('patient').annotate(n=Count('id'))
    first_timers = visits.filter(n=1).count()
    returning = visits.filter(n__gt=1).count()
    total = first_timers + returning

    trends = []
    for first in month_starts(6, today):
        start, end = _month_range(first)
        trends.append({
            'month': calendar.month_name[first.month],
            'year': first.year,
            'newRegistrations': Patient.objects.filter(created_at__gte=start, created_at__lt=end).count(),
            'returningVisits': completed.filter(
                appointment_date__gte=start,
                appointment_date__lt=end,
                patient__created_at__lte=start,
            ).count(),
        })

    rates = {}
    for name, days in RETENTION_WINDOWS:
        cutoff = now - dt.timedelta(days=days)
        cohort = Patient.objects.filter(created_at__lte=cutoff)
        # a visit on the registration day itself does not count as coming back
        retained = cohort.filter(
            appointments__status=AppointmentStatus.COMPLETED,
            appointments__appointment_date__gt=F('created_at') + dt.timedelta(days=1),
        ).distinct().count()
        rates[name] = _percent(retained, cohort.count())

    return {
        'newVsReturning': {
            'newPatients': first_timers,
            'returningPatients': returning,
            'totalPatients': total,
            'newPatientRate': _percent(first_timers, total),
            'returningPatientRate': _percent(returning, total),
        },
        'registrationTrends': trends,
        'retentionRates': rates,
    }


def peak_hours_analysis() -> dict:
    """Distribution of live (non-cancelled) bookings by local hour and weekday."""
    hours = [0] * 24
    days = [0] * 7
    booked = Appointment.objects.exclude(status=AppointmentStatus.CANCELLED).values_list('appointment_date', flat=True)
    for when in booked.iterator():
        local = timezone.localtime(when)
        hours[local.hour] += 1
        days[(local.weekday() + 1) % 7] += 1
    total = sum(hours)

    hourly = [{'hour': h, 'count': n, 'percentage': _percent(n, total)} for h, n in enumerate(hours)]
    daily = [
        {'day': DAY_NAMES[d], 'dayNumber': d, 'count': n, 'percentage': _percent(n, total)}
        for d, n in enumerate(days)
    ]
    peak_hour = peak_day = None
    if total:
        # ties go to the earlier hour / day
        h = max(range(24), key=lambda i: (hours[i], -i))
        d = max(range(7), key=lambda i: (days[i], -i))
        peak_hour = {'hour': h, 'timeLabel': f"{h:02d}:00", 'count': hours[h]}
        peak_day = {'day': DAY_NAMES[d], 'dayNumber': d, 'count': days[d]}
    return {
        'totalAppointments': total,
        'hourlyDistribution': hourly,
        'dailyDistribution': daily,
        'peakHour': peak_hour,
        'peakDay': peak_day,
    }
