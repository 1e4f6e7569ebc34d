import datetime as dt

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from clinic.models import Patient, Role, User

PASSWORD = 'Corr3ct-Horse-99'


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttles and cached responses share the locmem cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def _media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path / 'media'


def make_user(email, role, name=None, **extra):
    return User.objects.create_user(email=email, password=PASSWORD, name=name or email.split('@')[0], role=role, **extra)


@pytest.fixture
def admin_user(db):
    return make_user('admin@example.com', Role.ADMIN, 'Ada Admin')


@pytest.fixture
def staff_user(db):
    return make_user('staff@example.com', Role.STAFF, 'Sam Staff')


@pytest.fixture
def doctor(db):
    return make_user('doctor@example.com', Role.DOCTOR, 'Dr Dee')


@pytest.fixture
def other_doctor(db):
    return make_user('doctor2@example.com', Role.DOCTOR, 'Dr Two')


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)


@pytest.fixture
def staff_client(staff_user):
    return client_for(staff_user)


@pytest.fixture
def doctor_client(doctor):
    return client_for(doctor)


@pytest.fixture
def anon_client():
    return APIClient()


def make_patient(id_number='8001015009087', **extra):
    data = {
        'first_name': 'Thandi',
        'last_name': 'Nkosi',
        'phone': '0821234567',
        'date_of_birth': dt.date(1980, 1, 1),
        'gender': 'female',
        'id_number': id_number,
    }
    data.update(extra)
    return Patient.objects.create(**data)


@pytest.fixture
def patient(db):
    return make_patient()


@pytest.fixture
def insured_patient(db):
    return make_patient(
        id_number='9002026009088',
        first_name='Pieter',
        last_name='Botha',
        medical_aid_scheme='Discovery',
        medical_aid_number='DH123456',
    )
