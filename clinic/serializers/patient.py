import bleach
from rest_framework import serializers

from clinic.models import Gender
from clinic.services.relations import advice_message

TEXT_FIELDS = (
    'first_name', 'last_name', 'phone', 'id_number', 'address',
    'medical_aid_scheme', 'medical_aid_number', 'allergies',
)


class PatientSerializer(serializers.Serializer):
    """Patient registration and corrective edits (use ``partial=True`` for edits)."""
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32)
    dateOfBirth = serializers.DateField(source='date_of_birth')
    gender = serializers.ChoiceField(choices=Gender.choices)
    idNumber = serializers.CharField(source='id_number', max_length=32)
    address = serializers.CharField(required=False, allow_blank=True)
    medicalAidScheme = serializers.CharField(source='medical_aid_scheme', max_length=100, required=False, allow_blank=True)
    medicalAidNumber = serializers.CharField(source='medical_aid_number', max_length=64, required=False, allow_blank=True)
    allergies = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        for field in TEXT_FIELDS:
            if field in attrs:
                attrs[field] = bleach.clean((attrs[field] or '').strip(), strip=True)
        required = {'first_name': 'firstName', 'last_name': 'lastName', 'id_number': 'idNumber', 'phone': 'phone'}
        for field, name in required.items():
            if field in attrs and not attrs[field]:
                raise serializers.ValidationError({name: ['This field may not be blank.']})
        return attrs


class PatientSearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=100)


class BirthdayWishSerializer(serializers.Serializer):
    customMessage = serializers.CharField(max_length=1000, required=False, allow_blank=True)

    def validate_customMessage(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class HealthAdviceSerializer(serializers.Serializer):
    """A predefined tip (``adviceId``) or a free-text message for many patients."""
    adviceId = serializers.CharField(max_length=8, required=False, allow_blank=True)
    customMessage = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    patientIds = serializers.ListField(child=serializers.UUIDField(), min_length=1, max_length=200)

    def validate(self, attrs):
        custom = bleach.clean((attrs.get('customMessage') or '').strip(), strip=True)
        message = advice_message(attrs['adviceId']) if attrs.get('adviceId') else None
        message = message or custom
        if not message:
            raise serializers.ValidationError(
                {'customMessage': ['Either adviceId or customMessage must be provided.']}
            )
        attrs['message'] = message
        return attrs
