from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import capability
from clinic.serializers.payloads import check_in_payload
from clinic.serializers.visits import CheckInSerializer, DateQuerySerializer
from clinic.services import cache
from clinic.services.appointments import get_appointment
from clinic.services.checkin import check_in_patient, list_check_ins
from clinic.services.patients import get_patient
from clinic.services.queue import doctor_by_id


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability('checkins.view', POST='checkins.create')])
@cache.cached_response(cache.CHECKINS)
def checkins(request):
    """Today's arrivals (``?date=``), or check a patient in and queue them."""
    if request.method == 'GET':
        q = DateQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        return Response([check_in_payload(c) for c in list_check_ins(q.validated_data.get('date'))])

    s = CheckInSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    appointment_id = vd.get('appointmentId')
    check_in = check_in_patient(
        request.user,
        patient=get_patient(vd['patientId']),
        doctor=doctor_by_id(vd['doctorId']),
        payment_method=vd['paymentMethod'],
        payment_amount=vd.get('paymentAmount'),
        appointment=get_appointment(appointment_id) if appointment_id else None,
        is_walk_in=vd.get('isWalkIn'),
        notes=vd.get('notes', ''),
        priority=vd.get('priority', 0),
        estimated_wait_time=vd.get('estimatedWaitTime'),
    )
    cache.invalidate('checkin.create')
    data = check_in_payload(check_in)
    entry = check_in.queue_entries.first()
    data['queueEntryId'] = str(entry.id) if entry else None
    return Response(data, status=status.HTTP_201_CREATED)
