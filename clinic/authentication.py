"""
Bearer authentication for session tokens and API keys.

Both credential kinds arrive as ``Authorization: Bearer <credential>``.
Values carrying the API key prefix (``sk_``) are looked up as API keys;
everything else is validated as a simplejwt access token.  Automation
clients may also send the key in an ``X-API-Key`` header.  Either way a
credential that does not resolve to an active user is rejected with 401.
"""
from __future__ import annotations

import logging

from django.conf import settings
from rest_framework import exceptions
from rest_framework_simplejwt.authentication import JWTAuthentication

from clinic.services.api_keys import resolve_api_key, touch_api_key

logger = logging.getLogger(__name__)


class BearerAuthentication(JWTAuthentication):
    """JWT bearer authentication that also accepts ``sk_`` API keys.

    ``request.auth`` is the validated token for sessions and the
    :class:`clinic.models.ApiKey` row for API keys.
    """

    def authenticate(self, request):
        raw_key = self._api_key_from_request(request)
        if raw_key is not None:
            return self._authenticate_api_key(raw_key)
        return super().authenticate(request)

    def _api_key_from_request(self, request) -> str | None:
        prefix = settings.API_KEY_PREFIX
        explicit = request.META.get('HTTP_X_API_KEY')
        if explicit:
            return explicit.strip()
        header = self.get_header(request)
        if header is None:
            return None
        raw = self.get_raw_token(header)
        if raw is None:
            return None
        value = raw.decode('utf-8', errors='replace') if isinstance(raw, bytes) else raw
        return value if value.startswith(prefix) else None

    def _authenticate_api_key(self, raw_key: str):
        api_key = resolve_api_key(raw_key)
        if api_key is None or not api_key.is_active:
            logger.info("rejected unknown or revoked api key")
            raise exceptions.AuthenticationFailed('Invalid or revoked API key', code='invalid_api_key')
        user = api_key.user
        if not user.is_active:
            raise exceptions.AuthenticationFailed('User is inactive', code='user_inactive')
        touch_api_key(api_key)
        return user, api_key


def user_for_credential(raw: str):
    """Resolve a bare session token or API key to its active user, else None.

    Used where no HTTP request exists, such as the websocket handshake.
    """
    if not raw:
        return None
    auth = BearerAuthentication()
    try:
        if raw.startswith(settings.API_KEY_PREFIX):
            user, _key = auth._authenticate_api_key(raw)
            return user
        user = auth.get_user(auth.get_validated_token(raw.encode()))
    except exceptions.AuthenticationFailed:
        return None
    return user if user.is_active else None
