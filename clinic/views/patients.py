"""
Patient registry endpoints.

Registration accepts JSON or multipart (with an optional ``photo``
image).  The national ID number is unique; a duplicate answers 409.
Patients are never deleted, only corrected through PUT.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Patient
from clinic.permissions import capability
from clinic.serializers.patient import (
    BirthdayWishSerializer,
    HealthAdviceSerializer,
    PatientSearchQuerySerializer,
    PatientSerializer,
)
from clinic.serializers.payloads import birthday_wish_payload, patient_payload, patient_summary
from clinic.services import cache
from clinic.services.patients import create_patient, get_patient, search_patients, todays_birthdays, update_patient
from clinic.services.relations import send_birthday_wish, send_health_advice, wishes_sent_today


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability('patients.view', POST='patients.create')])
@cache.cached_response(cache.PATIENTS)
def patients(request):
    if request.method == 'GET':
        return Response([patient_payload(p) for p in Patient.objects.order_by('-created_at')])

    s = PatientSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = create_patient(request.user, dict(s.validated_data), photo=request.FILES.get('photo'))
    cache.invalidate('patient.create')
    return Response(patient_payload(patient), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('patients.view')])
def patient_search(request):
    """Case-insensitive match on first/last name, phone or ID number."""
    q = PatientSearchQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response([patient_payload(p) for p in search_patients(q.validated_data['q'])[:50]])


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, capability('patients.view', PUT='patients.update')])
@cache.cached_response(cache.PATIENTS)
def patient_detail(request, patient_id):
    patient = get_patient(patient_id)
    if request.method == 'GET':
        return Response(patient_payload(patient))

    s = PatientSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    patient = update_patient(request.user, patient, dict(s.validated_data), photo=request.FILES.get('photo'))
    cache.invalidate('patient.update')
    return Response(patient_payload(patient))


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('patients.relations')])
def birthdays(request):
    sent = set(wishes_sent_today().values_list('patient_id', flat=True))
    data = []
    for p in todays_birthdays():
        item = patient_payload(p)
        item['wishSent'] = p.id in sent
        data.append(item)
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, capability('patients.relations')])
def birthday_wish(request, patient_id):
    patient = get_patient(patient_id)
    s = BirthdayWishSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    wish = send_birthday_wish(request.user, patient, s.validated_data.get('customMessage'))
    return Response(birthday_wish_payload(wish), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('patients.relations')])
def birthday_wishes_today(request):
    data = []
    for wish in wishes_sent_today().order_by('sent_at'):
        item = birthday_wish_payload(wish)
        item['patient'] = patient_summary(wish.patient)
        item['sentBy'] = wish.sent_by.name
        data.append(item)
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, capability('patients.relations')])
def health_advice(request):
    """Send a health tip to several patients; per-patient outcomes are returned."""
    s = HealthAdviceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return Response(send_health_advice(request.user, s.validated_data['patientIds'], s.validated_data['message']))
