import bleach
from rest_framework import serializers

from clinic.models import AppointmentStatus, PaymentMethod, QueueStatus


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class DateQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)


class AppointmentListQuerySerializer(DateQuerySerializer):
    doctorId = serializers.UUIDField(required=False)


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.UUIDField()
    doctorId = serializers.UUIDField()
    appointmentDate = serializers.DateTimeField()
    appointmentType = serializers.CharField(max_length=64, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_notes(self, v):
        return _clean(v)


class AppointmentUpdateSerializer(serializers.Serializer):
    doctorId = serializers.UUIDField(required=False)
    appointmentDate = serializers.DateTimeField(required=False)
    status = serializers.ChoiceField(choices=AppointmentStatus.choices, required=False)
    appointmentType = serializers.CharField(max_length=64, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_notes(self, v):
        return _clean(v)


class CheckInSerializer(serializers.Serializer):
    patientId = serializers.UUIDField()
    doctorId = serializers.UUIDField()
    appointmentId = serializers.UUIDField(required=False, allow_null=True)
    paymentMethod = serializers.ChoiceField(choices=PaymentMethod.choices)
    paymentAmount = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    isWalkIn = serializers.BooleanField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True)
    priority = serializers.IntegerField(min_value=0, max_value=100, required=False, default=0)
    estimatedWaitTime = serializers.IntegerField(min_value=0, required=False, allow_null=True)

    def validate_notes(self, v):
        return _clean(v)


class QueueListQuerySerializer(serializers.Serializer):
    doctorId = serializers.UUIDField(required=False)


class QueueStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=QueueStatus.choices)


class QueueUpdateSerializer(serializers.Serializer):
    priority = serializers.IntegerField(min_value=0, max_value=100, required=False)
    estimatedWaitTime = serializers.IntegerField(min_value=0, required=False)
    doctorId = serializers.UUIDField(required=False)


class ConsultationCreateSerializer(serializers.Serializer):
    patientId = serializers.UUIDField()
    doctorId = serializers.UUIDField(required=False)
    queueId = serializers.UUIDField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    diagnosis = serializers.CharField(required=False, allow_blank=True, default='')
    prescription = serializers.CharField(required=False, allow_blank=True, default='')
    referralLetters = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        for field in ('notes', 'diagnosis', 'prescription', 'referralLetters'):
            attrs[field] = _clean(attrs.get(field))
        return attrs
