"""
Authentication views.

Login exchanges an email and password for a signed access token (a
simplejwt ``AccessToken``) that the client sends back as
``Authorization: Bearer <token>``.  The token is verified on every
request by :class:`clinic.authentication.BearerAuthentication`, which
also accepts API keys, so ``/api/auth/me`` works for both.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from rest_framework import exceptions
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.tokens import AccessToken

from clinic.models import ApiKey
from clinic.permissions import navigation_for
from clinic.serializers.auth import LoginSerializer
from clinic.serializers.payloads import user_payload
from clinic.services.audit import log_activity

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([ScopedRateThrottle])
def login_view(request):
    """Email/password login.  Inactive accounts cannot log in."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    email = s.validated_data['email']

    user = authenticate(request, username=email, password=s.validated_data['password'])
    if user is None:
        logger.info("failed login for %s from %s", email, request.META.get('REMOTE_ADDR'))
        raise exceptions.AuthenticationFailed('Invalid credentials')

    token = AccessToken.for_user(user)
    log_activity(user=user, action='login', details=f"User logged in: {user.email}")
    logger.info("user %s logged in", user.pk)
    return Response({'token': str(token), 'user': user_payload(user)})


# ScopedRateThrottle reads the scope from the generated view class
login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    # Access tokens are stateless; the client discards its copy
    log_activity(user=request.user, action='logout', details=f"User logged out: {request.user.email}")
    return Response({'ok': True})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    data = user_payload(request.user)
    data['authMethod'] = 'api_key' if isinstance(request.auth, ApiKey) else 'session'
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def navigation_view(request):
    """Menu entries the caller's role can open."""
    return Response({'items': navigation_for(request.user)})
