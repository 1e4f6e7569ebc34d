import pytest
from django.db import DatabaseError
from django.urls import reverse
from rest_framework.test import APIClient

from clinic.models import ActivityLog, ApiKey, Role
from clinic.tests.conftest import PASSWORD, make_user

pytestmark = pytest.mark.django_db


def login(client, email, password=PASSWORD):
    return client.post(reverse('login_view'), {'email': email, 'password': password}, format='json')


def bearer(token):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    return client


def test_login_returns_bearer_token_and_user(staff_user):
    r = login(APIClient(), 'Staff@Example.com')
    assert r.status_code == 200
    assert r.data['token']
    assert r.data['user']['email'] == 'staff@example.com'
    assert r.data['user']['role'] == 'staff'
    assert 'password' not in r.data['user']
    assert ActivityLog.objects.filter(user=staff_user, action='login').exists()


def test_login_rejects_bad_password_with_envelope(staff_user):
    r = login(APIClient(), 'staff@example.com', 'wrong-password')
    assert r.status_code == 401
    assert r.data['ok'] is False
    assert r.data['error']['message'] == 'Invalid credentials'


def test_login_rejects_inactive_account(db):
    make_user('gone@example.com', Role.STAFF, is_active=False)
    r = login(APIClient(), 'gone@example.com')
    assert r.status_code == 401


def test_login_ignores_role_in_body(staff_user):
    r = APIClient().post(
        reverse('login_view'),
        {'email': 'staff@example.com', 'password': PASSWORD, 'role': 'admin'},
        format='json',
    )
    assert r.status_code == 200
    staff_user.refresh_from_db()
    assert staff_user.role == Role.STAFF


def test_login_missing_fields_is_validation_error(db):
    r = APIClient().post(reverse('login_view'), {'email': 'x@example.com'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'validation_error'
    assert 'password' in r.data['error']['fields']


def test_session_token_reaches_me(doctor):
    token = login(APIClient(), 'doctor@example.com').data['token']
    r = bearer(token).get(reverse('me_view'))
    assert r.status_code == 200
    assert r.data['role'] == 'doctor'
    assert r.data['authMethod'] == 'session'


def test_me_without_credentials_is_401(anon_client):
    r = anon_client.get(reverse('me_view'))
    assert r.status_code == 401
    assert r.data['ok'] is False


def test_me_with_garbage_token_is_401(db):
    r = bearer('not-a-token').get(reverse('me_view'))
    assert r.status_code == 401


def test_token_of_deactivated_user_is_rejected(staff_user):
    token = login(APIClient(), 'staff@example.com').data['token']
    staff_user.is_active = False
    staff_user.save()
    r = bearer(token).get(reverse('me_view'))
    assert r.status_code == 401


def test_store_outage_on_session_check_is_503_not_401(staff_client, monkeypatch):
    def broken(user):
        raise DatabaseError('connection refused')

    monkeypatch.setattr('clinic.auth_views.user_payload', broken)
    r = staff_client.get(reverse('me_view'))
    assert r.status_code == 503
    assert r.data['error']['code'] == 'store_unavailable'


def test_staff_cannot_reach_doctor_only_routes(staff_client, patient):
    r = staff_client.post('/api/consultations', {'patientId': str(patient.id)}, format='json')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'permission_denied'


def test_doctor_cannot_manage_users(doctor_client):
    assert doctor_client.get('/api/users').status_code == 403


def test_doctor_cannot_register_patients(doctor_client):
    r = doctor_client.post('/api/patients', {'firstName': 'A'}, format='json')
    assert r.status_code == 403


def test_navigation_follows_role(doctor_client, admin_client):
    doctor_paths = {i['path'] for i in doctor_client.get(reverse('navigation_view')).data['items']}
    admin_paths = {i['path'] for i in admin_client.get(reverse('navigation_view')).data['items']}
    assert '/doctor' in doctor_paths
    assert '/users' not in doctor_paths
    assert '/checkin' not in doctor_paths
    assert {'/users', '/admin', '/doctor', '/checkin'} <= admin_paths


def test_api_key_lifecycle(staff_client, staff_user):
    r = staff_client.post('/api/api-keys', {'name': 'lab sync'}, format='json')
    assert r.status_code == 201
    raw = r.data['key']
    assert raw.startswith('sk_')
    # only the digest is stored
    assert not ApiKey.objects.filter(key_hash=raw).exists()

    listed = staff_client.get('/api/api-keys').data
    assert [k['name'] for k in listed] == ['lab sync']
    assert 'key' not in listed[0]
    assert listed[0]['lastUsedAt'] is None

    via_key = bearer(raw).get(reverse('me_view'))
    assert via_key.status_code == 200
    assert via_key.data['authMethod'] == 'api_key'
    assert ApiKey.objects.get(name='lab sync').last_used_at is not None
    # the cached listing picks up the new timestamp
    assert staff_client.get('/api/api-keys').data[0]['lastUsedAt'] is not None
    via_header = APIClient().get(reverse('me_view'), HTTP_X_API_KEY=raw)
    assert via_header.status_code == 200

    key_id = listed[0]['id']
    assert staff_client.delete(f'/api/api-keys/{key_id}').status_code == 200
    assert bearer(raw).get(reverse('me_view')).status_code == 401
    # the interactive session is unaffected
    assert staff_client.get(reverse('me_view')).status_code == 200
    # the cached list reflects the revocation
    assert staff_client.get('/api/api-keys').data[0]['isActive'] is False


def test_cannot_revoke_someone_elses_key(staff_client, doctor_client):
    key_id = doctor_client.post('/api/api-keys', {'name': 'mine'}, format='json').data['id']
    r = staff_client.delete(f'/api/api-keys/{key_id}')
    assert r.status_code == 404


def test_api_key_of_deactivated_user_is_rejected(staff_client, staff_user):
    raw = staff_client.post('/api/api-keys', {'name': 'cron'}, format='json').data['key']
    staff_user.is_active = False
    staff_user.save()
    assert bearer(raw).get(reverse('me_view')).status_code == 401


def test_login_is_throttled(staff_user, monkeypatch):
    from rest_framework.throttling import ScopedRateThrottle

    monkeypatch.setattr(ScopedRateThrottle, 'THROTTLE_RATES', {'login': '2/min'})
    client = APIClient()
    codes = [login(client, 'staff@example.com', 'nope').status_code for _ in range(3)]
    assert codes == [401, 401, 429]
