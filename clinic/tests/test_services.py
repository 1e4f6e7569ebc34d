import datetime as dt
import uuid

import pytest
import requests
from django.core.management import call_command
from django.utils import timezone

from clinic.exceptions import BadGateway, Conflict, GatewayTimeout, ServiceUnavailable
from clinic.models import ActivityLog, BirthdayWish, Role, User
from clinic.services import cache
from clinic.services.api_keys import issue_api_key, touch_api_key
from clinic.services.relations import advice_message, send_birthday_wish, send_health_advice
from clinic.tests.conftest import make_patient


# response cache ---------------------------------------------------------------

def test_every_mutation_invalidates_known_paths():
    for mutation, paths in cache.INVALIDATIONS.items():
        assert paths, mutation
        assert set(paths) <= set(cache.RESOURCE_PATHS)


def test_invalidate_bumps_version_and_broadcasts(monkeypatch):
    sent = []
    monkeypatch.setattr(cache, 'broadcast_refresh', lambda paths: sent.append(list(paths)))
    before = cache.response_key(cache.API_KEYS, 'u1')
    other = cache.response_key(cache.PATIENTS, 'u1')

    assert cache.invalidate('api_key.create') == [cache.API_KEYS]

    assert cache.response_key(cache.API_KEYS, 'u1') != before
    assert cache.response_key(cache.PATIENTS, 'u1') == other
    assert sent == [[cache.API_KEYS]]


def test_edits_reach_responses_that_embed_the_record():
    embeds_doctor = {cache.APPOINTMENTS, cache.QUEUE, cache.CHECKINS, cache.CONSULTATIONS}
    embeds_patient = embeds_doctor | {cache.PAYMENTS, cache.CLAIMS}
    assert embeds_patient <= set(cache.INVALIDATIONS['patient.update'])
    assert embeds_doctor <= set(cache.INVALIDATIONS['user.update'])


@pytest.mark.django_db
def test_key_use_refreshes_listing_quietly(monkeypatch, staff_user):
    sent = []
    monkeypatch.setattr(cache, 'broadcast_refresh', lambda paths: sent.append(list(paths)))
    api_key, _raw = issue_api_key(staff_user, 'sync')
    before = cache.response_key(cache.API_KEYS, staff_user.pk)
    touch_api_key(api_key)
    assert cache.response_key(cache.API_KEYS, staff_user.pk) != before
    assert sent == []


def test_broadcast_refresh_targets_updates_group(monkeypatch):
    calls = []

    class Layer:
        async def group_send(self, group, event):
            calls.append((group, event))

    monkeypatch.setattr(cache, 'get_channel_layer', lambda: Layer())
    cache.broadcast_refresh([cache.QUEUE])
    (group, event), = calls
    assert group == cache.UPDATES_GROUP
    assert event['type'] == 'broadcast.refresh'
    assert event['keys'] == [cache.QUEUE]


def test_unknown_cache_path_is_rejected():
    with pytest.raises(ValueError):
        cache.cached_response('/api/nope')


def test_refresh_caches_command(monkeypatch):
    seen = []
    monkeypatch.setattr(cache, 'broadcast_refresh', lambda paths: seen.extend(paths))
    call_command('refresh_caches')
    assert set(seen) == set(cache.RESOURCE_PATHS)


@pytest.mark.django_db
def test_ensure_demo_users_is_idempotent():
    call_command('ensure_demo_users', password='Demo-Passw0rd!')
    call_command('ensure_demo_users', password='Demo-Passw0rd!')
    assert User.objects.count() == 3
    assert set(User.objects.values_list('role', flat=True)) == {Role.ADMIN, Role.STAFF, Role.DOCTOR}
    assert User.objects.get(email='doctor@clinic.local').check_password('Demo-Passw0rd!')


# birthday wishes --------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code=200, text='ok'):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400


@pytest.fixture
def webhook(settings, monkeypatch):
    settings.RELATIONS_WEBHOOK_URL = 'https://hooks.example.com/birthday'
    posted = []

    def fake_post(url, json=None, timeout=None):
        posted.append({'url': url, 'json': json, 'timeout': timeout})
        return FakeResponse()

    monkeypatch.setattr('clinic.services.relations.requests.post', fake_post)
    return posted


@pytest.mark.django_db
def test_birthday_wish_posts_and_records(webhook, staff_user):
    p = make_patient(first_name='Lerato')
    wish = send_birthday_wish(staff_user, p)
    assert webhook[0]['url'] == 'https://hooks.example.com/birthday'
    assert webhook[0]['json']['patient']['id'] == str(p.id)
    assert 'Lerato' in webhook[0]['json']['message']
    assert wish.message == webhook[0]['json']['message']
    assert ActivityLog.objects.filter(action='send_birthday_wish').exists()


@pytest.mark.django_db
def test_birthday_wish_once_per_day(webhook, staff_user):
    p = make_patient()
    send_birthday_wish(staff_user, p, 'Many happy returns')
    with pytest.raises(Conflict):
        send_birthday_wish(staff_user, p)
    assert len(webhook) == 1


@pytest.mark.django_db
def test_birthday_wish_without_webhook(settings, staff_user):
    settings.RELATIONS_WEBHOOK_URL = ''
    with pytest.raises(ServiceUnavailable):
        send_birthday_wish(staff_user, make_patient())


@pytest.mark.django_db
@pytest.mark.parametrize('failure,expected', [
    (requests.Timeout('slow'), GatewayTimeout),
    (requests.ConnectionError('down'), BadGateway),
    (FakeResponse(500, 'boom'), BadGateway),
])
def test_birthday_wish_webhook_failures(settings, monkeypatch, staff_user, failure, expected):
    settings.RELATIONS_WEBHOOK_URL = 'https://hooks.example.com/birthday'

    def fake_post(url, json=None, timeout=None):
        if isinstance(failure, Exception):
            raise failure
        return failure

    monkeypatch.setattr('clinic.services.relations.requests.post', fake_post)
    with pytest.raises(expected):
        send_birthday_wish(staff_user, make_patient())
    assert not BirthdayWish.objects.exists()


@pytest.mark.django_db
def test_birthday_endpoints(webhook, staff_client, doctor_client):
    today = timezone.localdate()
    born = today.replace(year=1990) if not (today.month == 2 and today.day == 29) else dt.date(1992, 2, 29)
    p = make_patient(date_of_birth=born)
    make_patient('7001015009081', date_of_birth=born - dt.timedelta(days=3))

    r = staff_client.get('/api/patients/birthdays')
    assert [(x['id'], x['wishSent']) for x in r.data] == [(str(p.id), False)]

    r = staff_client.post(f'/api/patients/{p.id}/birthday-wish', {'customMessage': 'Enjoy your day'}, format='json')
    assert r.status_code == 201
    assert r.data['message'] == 'Enjoy your day'
    assert staff_client.get('/api/patients/birthdays').data[0]['wishSent'] is True

    r = staff_client.post(f'/api/patients/{p.id}/birthday-wish', {}, format='json')
    assert r.status_code == 409
    assert doctor_client.get('/api/patients/birthdays').status_code == 403


@pytest.mark.django_db
def test_birthday_wishes_sent_today(webhook, staff_client, doctor_client):
    p = make_patient(first_name='Lerato')
    staff_client.post(f'/api/patients/{p.id}/birthday-wish', {}, format='json')
    BirthdayWish.objects.create(
        patient=make_patient('7001015009081'),
        sent_by=User.objects.get(email='staff@example.com'),
        message='late',
    )
    BirthdayWish.objects.filter(message='late').update(sent_at=timezone.now() - dt.timedelta(days=1))

    r = staff_client.get('/api/birthday-wishes')
    assert r.status_code == 200
    assert [(w['patient']['id'], w['sentBy']) for w in r.data] == [(str(p.id), 'Sam Staff')]
    assert 'Lerato' in r.data[0]['message']
    assert doctor_client.get('/api/birthday-wishes').status_code == 403


# health advice ----------------------------------------------------------------

@pytest.mark.django_db
def test_health_advice_uses_predefined_tip(webhook, staff_user):
    a, b = make_patient(), make_patient('7001015009081')
    result = send_health_advice(staff_user, [a.id, b.id], advice_message('1'))
    assert result['sentCount'] == 2
    assert result['totalRequested'] == 2
    assert [x['success'] for x in result['results']] == [True, True]
    assert {w['json']['type'] for w in webhook} == {'health_advice'}
    assert webhook[0]['json']['message'].startswith('Stay Hydrated\n\n')
    assert ActivityLog.objects.get(action='send_health_advice').details == 'Sent health advice to 2 patients'


@pytest.mark.django_db
def test_health_advice_reports_each_failure(settings, monkeypatch, staff_user):
    settings.RELATIONS_WEBHOOK_URL = 'https://hooks.example.com/relations'
    slow = make_patient(first_name='Slow')
    broken = make_patient('7001015009081', first_name='Broken')
    fine = make_patient('6001015009080', first_name='Fine')
    missing = uuid.uuid4()

    def fake_post(url, json=None, timeout=None):
        name = json['patient']['firstName']
        if name == 'Slow':
            raise requests.Timeout('slow')
        if name == 'Broken':
            return FakeResponse(500, 'boom')
        return FakeResponse()

    monkeypatch.setattr('clinic.services.relations.requests.post', fake_post)
    result = send_health_advice(staff_user, [slow.id, broken.id, missing, fine.id], 'Wash your hands')

    assert result['sentCount'] == 1
    assert result['totalRequested'] == 4
    assert result['results'] == [
        {'patientId': str(slow.id), 'success': False, 'error': 'Timeout'},
        {'patientId': str(broken.id), 'success': False, 'error': 'Webhook failed: 500'},
        {'patientId': str(missing), 'success': False, 'error': 'Patient not found'},
        {'patientId': str(fine.id), 'success': True},
    ]


@pytest.mark.django_db
def test_health_advice_endpoint(webhook, staff_client, doctor_client):
    p = make_patient()
    r = staff_client.post('/api/send-health-advice',
                          {'adviceId': '3', 'patientIds': [str(p.id)]}, format='json')
    assert r.status_code == 200
    assert r.data['sentCount'] == 1
    assert r.data['message'].startswith('Balanced Diet')

    r = staff_client.post('/api/send-health-advice',
                          {'customMessage': '<b>Flu season</b> is here', 'patientIds': [str(p.id)]}, format='json')
    assert r.data['message'] == 'Flu season is here'

    r = staff_client.post('/api/send-health-advice', {'patientIds': [str(p.id)]}, format='json')
    assert r.status_code == 400
    assert 'customMessage' in r.data['error']['fields']

    r = staff_client.post('/api/send-health-advice', {'adviceId': '1', 'patientIds': []}, format='json')
    assert r.status_code == 400
    assert 'patientIds' in r.data['error']['fields']

    r = doctor_client.post('/api/send-health-advice', {'adviceId': '1', 'patientIds': [str(p.id)]}, format='json')
    assert r.status_code == 403


@pytest.mark.django_db
def test_health_advice_without_webhook(settings, staff_user):
    settings.RELATIONS_WEBHOOK_URL = ''
    with pytest.raises(ServiceUnavailable):
        send_health_advice(staff_user, [make_patient().id], 'Sleep well')


# dashboard --------------------------------------------------------------------

@pytest.mark.django_db
def test_dashboard_cache_rolls_over_at_midnight(staff_client, monkeypatch):
    make_patient()
    first = staff_client.get('/api/dashboard/stats').data
    make_patient('7001015009081')
    # same day: still the cached figures
    assert staff_client.get('/api/dashboard/stats').data == first

    tomorrow = timezone.localdate() + dt.timedelta(days=1)
    monkeypatch.setattr('clinic.views.dashboard.timezone.localdate', lambda *args, **kwargs: tomorrow)
    assert staff_client.get('/api/dashboard/stats').data['newPatients'] == 2
