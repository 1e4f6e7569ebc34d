"""
Patient relations: birthday wishes and health advice delivered through an
outbound webhook.

The clinic's messaging automation listens on ``RELATIONS_WEBHOOK_URL``;
this module only posts the payload and records what was sent.  A patient
receives at most one birthday wish per day.
"""
from __future__ import annotations

import logging
from typing import Optional

import requests
from django.conf import settings
from django.utils import timezone

from clinic.exceptions import BadGateway, Conflict, GatewayTimeout, ServiceUnavailable
from clinic.models import BirthdayWish, Patient, User
from clinic.services.audit import log_activity

logger = logging.getLogger(__name__)

HEALTH_ADVICE = {
    '1': ('Stay Hydrated',
          'Remember to drink at least 8 glasses of water daily. Proper hydration is essential '
          'for your overall health and well-being.'),
    '2': ('Regular Exercise',
          'Aim for at least 30 minutes of moderate exercise daily. Even a simple walk can make '
          'a significant difference to your health.'),
    '3': ('Balanced Diet',
          'Include plenty of fruits, vegetables, and whole grains in your diet. A balanced diet '
          'provides essential nutrients for optimal health.'),
    '4': ('Regular Check-ups',
          'Schedule regular medical check-ups to monitor your health and catch any potential '
          'issues early.'),
    '5': ('Mental Health',
          'Take time for mental health. Practice stress management techniques like meditation, '
          'deep breathing, or talking to someone you trust.'),
}


def default_birthday_message(patient: Patient) -> str:
    return (
        f"Happy Birthday {patient.first_name}! Wishing you a wonderful year ahead "
        f"filled with health and happiness. From all of us at the clinic!"
    )


def advice_message(advice_id: str) -> Optional[str]:
    if advice_id not in HEALTH_ADVICE:
        return None
    title, content = HEALTH_ADVICE[advice_id]
    return f"{title}\n\n{content}"


def wishes_sent_today(today=None):
    today = today or timezone.localdate()
    return BirthdayWish.objects.select_related('patient', 'sent_by').filter(sent_at__date=today)


def _webhook_url() -> str:
    url = settings.RELATIONS_WEBHOOK_URL
    if not url:
        raise ServiceUnavailable('Webhook URL not configured.', code='webhook_not_configured')
    return url


def _payload(kind: str, patient: Patient, message: str) -> dict:
    return {
        'type': kind,
        'patient': {
            'id': str(patient.id),
            'firstName': patient.first_name,
            'lastName': patient.last_name,
            'phone': patient.phone,
            'email': patient.email,
        },
        'message': message,
        'timestamp': timezone.now().isoformat(),
    }


def _deliver(url: str, payload: dict) -> str:
    """POST one message; returns the response body or raises 504 / 502."""
    patient_id = payload['patient']['id']
    try:
        resp = requests.post(url, json=payload, timeout=settings.WEBHOOK_TIMEOUT)
    except requests.Timeout:
        logger.warning("%s webhook timed out for patient %s", payload['type'], patient_id)
        raise GatewayTimeout('Request timeout - webhook service not responding.')
    except requests.RequestException as e:
        logger.warning("%s webhook failed for patient %s: %s", payload['type'], patient_id, e)
        raise BadGateway('Failed to send message - webhook service unavailable.')

    if not resp.ok:
        logger.warning("%s webhook returned %s for patient %s", payload['type'], resp.status_code, patient_id)
        raise BadGateway(f'Webhook failed: {resp.status_code}')
    return resp.text


def send_birthday_wish(sender: User, patient: Patient, custom_message: Optional[str] = None) -> BirthdayWish:
    if wishes_sent_today().filter(patient=patient).exists():
        raise Conflict('Birthday wish already sent to this patient today.')

    url = _webhook_url()
    message = (custom_message or '').strip() or default_birthday_message(patient)
    body = _deliver(url, _payload('birthday_wish', patient, message))

    wish = BirthdayWish.objects.create(
        patient=patient, sent_by=sender, message=message, webhook_response=body[:2000]
    )
    log_activity(
        user=sender,
        action='send_birthday_wish',
        details=f"Sent birthday wish to {patient.full_name}",
    )
    return wish


def send_health_advice(sender: User, patient_ids, message: str) -> dict:
    """Send ``message`` to each patient in turn.

    One patient's failure does not stop the rest; each outcome is reported
    in ``results`` and only the successes are counted in ``sentCount``.
    """
    url = _webhook_url()
    patients = Patient.objects.in_bulk(list(patient_ids))
    results = []
    sent = 0
    for patient_id in patient_ids:
        patient = patients.get(patient_id)
        if patient is None:
            results.append({'patientId': str(patient_id), 'success': False, 'error': 'Patient not found'})
            continue
        try:
            _deliver(url, _payload('health_advice', patient, message))
        except GatewayTimeout:
            results.append({'patientId': str(patient_id), 'success': False, 'error': 'Timeout'})
            continue
        except BadGateway as e:
            results.append({'patientId': str(patient_id), 'success': False, 'error': str(e.detail)})
            continue
        sent += 1
        results.append({'patientId': str(patient_id), 'success': True})

    log_activity(user=sender, action='send_health_advice', details=f"Sent health advice to {sent} patients")
    return {
        'sentCount': sent,
        'totalRequested': len(patient_ids),
        'results': results,
        'message': message,
    }
