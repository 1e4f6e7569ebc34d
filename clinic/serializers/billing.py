from rest_framework import serializers

from clinic.models import ClaimStatus, PaymentMethod


class PaymentCreateSerializer(serializers.Serializer):
    patientId = serializers.UUIDField()
    checkInId = serializers.UUIDField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    paymentMethod = serializers.ChoiceField(choices=PaymentMethod.choices)


class ClaimListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ClaimStatus.choices, required=False)


class ClaimUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ClaimStatus.choices, required=False)
    claimAmount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class ActivityLogQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=500, required=False, default=100)


class MonthlyStatsQuerySerializer(serializers.Serializer):
    months = serializers.IntegerField(min_value=1, max_value=36, required=False, default=12)
