"""
URL mappings for the clinic API.

Paths mirror the client's endpoint table, so trailing slashes are
deliberately omitted.  Record ids are UUIDs; a malformed id falls
through to the JSON 404 catch-all in ``clinicdesk.urls``.
"""
from django.urls import path

from .auth_views import login_view, logout_view, me_view, navigation_view
from .views import health
from .views.api_keys import api_keys, revoke_key
from .views.appointments import appointment_detail, appointments
from .views.billing import claim_detail, claims, payments
from .views.checkins import checkins
from .views.consultations import (
    attachment_download,
    consultation_attachments,
    consultation_detail,
    consultations,
    patient_consultation_history,
)
from .views.dashboard import activity_logs, dashboard, monthly_stats, patient_retention, peak_hours
from .views.patients import (
    birthday_wish,
    birthday_wishes_today,
    birthdays,
    health_advice,
    patient_detail,
    patient_search,
    patients,
)
from .views.queues import queue_detail, queue_list, queue_next, queue_status
from .views.users import doctors, user_detail, users

urlpatterns = [
    path('healthz', health.healthz, name='healthz'),
    # Auth
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/logout', logout_view, name='logout_view'),
    path('api/auth/me', me_view, name='me_view'),
    path('api/auth/navigation', navigation_view, name='navigation_view'),
    path('api/api-keys', api_keys, name='api_keys'),
    path('api/api-keys/<uuid:key_id>', revoke_key, name='revoke_key'),
    # Accounts
    path('api/users', users, name='users'),
    path('api/users/<uuid:user_id>', user_detail, name='user_detail'),
    path('api/doctors', doctors, name='doctors'),
    # Patients
    path('api/patients', patients, name='patients'),
    path('api/patients/search', patient_search, name='patient_search'),
    path('api/patients/birthdays', birthdays, name='birthdays'),
    path('api/patients/<uuid:patient_id>', patient_detail, name='patient_detail'),
    path('api/patients/<uuid:patient_id>/birthday-wish', birthday_wish, name='birthday_wish'),
    path('api/patients/<uuid:patient_id>/consultations', patient_consultation_history,
         name='patient_consultation_history'),
    path('api/birthday-wishes', birthday_wishes_today, name='birthday_wishes_today'),
    path('api/send-health-advice', health_advice, name='health_advice'),
    # Visits
    path('api/appointments', appointments, name='appointments'),
    path('api/appointments/<uuid:appointment_id>', appointment_detail, name='appointment_detail'),
    path('api/checkins', checkins, name='checkins'),
    path('api/queue', queue_list, name='queue_list'),
    path('api/queue/next', queue_next, name='queue_next'),
    path('api/queue/<uuid:entry_id>', queue_detail, name='queue_detail'),
    path('api/queue/<uuid:entry_id>/status', queue_status, name='queue_status'),
    path('api/consultations', consultations, name='consultations'),
    path('api/consultations/<uuid:consultation_id>', consultation_detail, name='consultation_detail'),
    path('api/consultations/<uuid:consultation_id>/attachments', consultation_attachments,
         name='consultation_attachments'),
    path('api/attachments/<uuid:attachment_id>/download', attachment_download, name='attachment_download'),
    # Billing
    path('api/payments', payments, name='payments'),
    path('api/medical-aid-claims', claims, name='claims'),
    path('api/medical-aid-claims/<uuid:claim_id>', claim_detail, name='claim_detail'),
    # Dashboard
    path('api/dashboard/stats', dashboard, name='dashboard'),
    path('api/dashboard/monthly-stats', monthly_stats, name='monthly_stats'),
    path('api/dashboard/patient-retention', patient_retention, name='patient_retention'),
    path('api/dashboard/peak-hours', peak_hours, name='peak_hours'),
    path('api/activity-logs', activity_logs, name='activity_logs'),
]
