from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import capability
from clinic.serializers.payloads import appointment_payload
from clinic.serializers.visits import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentUpdateSerializer,
)
from clinic.services import cache
from clinic.services.appointments import create_appointment, get_appointment, list_appointments, update_appointment
from clinic.services.patients import get_patient
from clinic.services.queue import doctor_by_id


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability('appointments.view', POST='appointments.manage')])
@cache.cached_response(cache.APPOINTMENTS)
def appointments(request):
    """List appointments (``?date=YYYY-MM-DD&doctorId=``) or book one."""
    if request.method == 'GET':
        q = AppointmentListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = list_appointments(day=q.validated_data.get('date'), doctor_id=q.validated_data.get('doctorId'))
        return Response([appointment_payload(a) for a in qs])

    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    appointment = create_appointment(
        request.user,
        patient=get_patient(vd['patientId']),
        doctor=doctor_by_id(vd['doctorId']),
        appointment_date=vd['appointmentDate'],
        appointment_type=vd.get('appointmentType', ''),
        notes=vd.get('notes', ''),
    )
    cache.invalidate('appointment.create')
    return Response(appointment_payload(appointment), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, capability('appointments.view', PUT='appointments.manage')])
@cache.cached_response(cache.APPOINTMENTS)
def appointment_detail(request, appointment_id):
    appointment = get_appointment(appointment_id)
    if request.method == 'GET':
        return Response(appointment_payload(appointment))

    s = AppointmentUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    appointment = update_appointment(
        request.user,
        appointment,
        doctor=doctor_by_id(vd['doctorId']) if 'doctorId' in vd else None,
        appointment_date=vd.get('appointmentDate'),
        status=vd.get('status'),
        appointment_type=vd.get('appointmentType'),
        notes=vd.get('notes'),
    )
    cache.invalidate('appointment.update')
    return Response(appointment_payload(appointment))
