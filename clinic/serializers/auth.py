import bleach
from rest_framework import serializers

from clinic.models import Role


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False)

    def validate_email(self, v):
        return (v or '').strip().lower()

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('Password is required.')
        return v


class ApiKeyCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)

    def validate_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if not v:
            raise serializers.ValidationError('Name is required.')
        return v


class UserCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    name = serializers.CharField(max_length=255)
    role = serializers.ChoiceField(choices=Role.choices)

    def validate_email(self, v):
        return v.strip().lower()

    def validate_name(self, v):
        return bleach.clean(v.strip(), strip=True)


class UserUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    role = serializers.ChoiceField(choices=Role.choices, required=False)
    isActive = serializers.BooleanField(source='is_active', required=False)
    password = serializers.CharField(write_only=True, required=False, trim_whitespace=False)

    def validate_name(self, v):
        return bleach.clean(v.strip(), strip=True)
