from datetime import timedelta
from decimal import Decimal

from django.db.models import Sum
from django.utils import timezone

from clinic.models import Appointment, Patient, Payment, QueueEntry
from clinic.services.queue import ACTIVE_STATUSES


def dashboard_stats(today=None) -> dict:
    """Headline numbers for the front desk: today's load and takings."""
    today = today or timezone.localdate()
    week_ago = timezone.now() - timedelta(days=7)
    revenue = Payment.objects.filter(payment_date__date=today).aggregate(total=Sum('amount'))['total']
    return {
        'todayAppointments': Appointment.objects.filter(appointment_date__date=today).count(),
        'queueCount': QueueEntry.objects.filter(status__in=ACTIVE_STATUSES).count(),
        'todayRevenue': str((revenue or Decimal('0')).quantize(Decimal('0.01'))),
        'newPatients': Patient.objects.filter(created_at__gte=week_ago).count(),
    }
