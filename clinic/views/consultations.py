"""
Consultation notes and their attachments.

Recording a consultation completes the queue entry it belongs to.
Attachments (images and PDFs) are uploaded as multipart ``files`` and
downloaded only through the API so the role check applies to them too.
"""
from __future__ import annotations

from django.http import FileResponse
from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import capability
from clinic.serializers.payloads import attachment_payload, consultation_payload
from clinic.serializers.visits import ConsultationCreateSerializer
from clinic.services import cache
from clinic.services.consultations import (
    add_attachments,
    get_attachment,
    get_consultation,
    patient_consultations,
    record_consultation,
)
from clinic.services.patients import get_patient
from clinic.services.queue import doctor_by_id, get_entry


@api_view(['POST'])
@permission_classes([IsAuthenticated, capability('consultations.create')])
def consultations(request):
    s = ConsultationCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    consultation = record_consultation(
        request.user,
        patient=get_patient(vd['patientId']),
        doctor=doctor_by_id(vd['doctorId']) if vd.get('doctorId') else None,
        queue_entry=get_entry(vd['queueId']) if vd.get('queueId') else None,
        notes=vd['notes'],
        diagnosis=vd['diagnosis'],
        prescription=vd['prescription'],
        referral_letters=vd['referralLetters'],
    )
    cache.invalidate('consultation.create')
    return Response(consultation_payload(consultation), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('consultations.view')])
@cache.cached_response(cache.CONSULTATIONS)
def consultation_detail(request, consultation_id):
    return Response(consultation_payload(get_consultation(consultation_id), with_attachments=True))


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('consultations.view')])
@cache.cached_response(cache.CONSULTATIONS)
def patient_consultation_history(request, patient_id):
    patient = get_patient(patient_id)
    return Response([consultation_payload(c, with_attachments=True) for c in patient_consultations(patient)])


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability('consultations.view', POST='attachments.manage')])
@parser_classes([MultiPartParser, FormParser])
@cache.cached_response(cache.CONSULTATIONS)
def consultation_attachments(request, consultation_id):
    consultation = get_consultation(consultation_id)
    if request.method == 'GET':
        return Response([attachment_payload(a) for a in consultation.attachments.all()])

    attachments = add_attachments(consultation, request.FILES.getlist('files'), request.user)
    cache.invalidate('attachment.upload')
    return Response([attachment_payload(a) for a in attachments], status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('consultations.view')])
def attachment_download(request, attachment_id):
    attachment = get_attachment(attachment_id)
    return FileResponse(
        attachment.file.open('rb'),
        as_attachment=True,
        filename=attachment.original_name,
        content_type=attachment.mime_type or 'application/octet-stream',
    )
