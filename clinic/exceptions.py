"""
Error taxonomy and the unified API exception handler.

Views and services raise DRF exceptions; this module adds the ones DRF
does not ship (``Conflict`` and its ``InvalidTransition`` variant, store
and upstream failures) and renders every error in one envelope::

    {"ok": false, "error": {"code": "...", "message": "..."}}

Validation errors also carry ``"fields"`` with per-field messages.
"""
from __future__ import annotations

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with the current state of the resource.'
    default_code = 'conflict'


class InvalidTransition(Conflict):
    default_detail = 'Invalid status transition.'
    default_code = 'invalid_transition'


class ServiceUnavailable(exceptions.APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'The data store is unavailable, try again later.'
    default_code = 'store_unavailable'


class BadGateway(exceptions.APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Upstream service returned an error.'
    default_code = 'bad_gateway'


class GatewayTimeout(exceptions.APIException):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_detail = 'Upstream service did not respond in time.'
    default_code = 'gateway_timeout'


def error_payload(code: str, message, fields=None) -> dict:
    error = {'code': code, 'message': message}
    if fields is not None:
        error['fields'] = fields
    return {'ok': False, 'error': error}


def _first_message(detail) -> str:
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else ''
    if isinstance(detail, dict):
        return _first_message(next(iter(detail.values()))) if detail else ''
    return str(detail)


def api_exception_handler(exc, context):
    # Store-level failures are translated before DRF sees them
    if isinstance(exc, IntegrityError):
        logger.info("integrity error mapped to 409: %s", exc)
        exc = Conflict('A record with the same unique value already exists.')
    elif isinstance(exc, DatabaseError):
        logger.error("database error: %s", exc)
        exc = ServiceUnavailable()
    elif isinstance(exc, DjangoValidationError):
        exc = exceptions.ValidationError(exc.message_dict if hasattr(exc, 'error_dict') else {'non_field_errors': exc.messages})
    elif isinstance(exc, Http404):
        exc = exceptions.NotFound(str(exc) or 'Not found.')
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied()

    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception("unhandled error in %s", context.get('view'), exc_info=exc)
        return Response(error_payload('server_error', 'Internal server error'), status=500)

    if isinstance(exc, exceptions.ValidationError):
        fields = exc.detail if isinstance(exc.detail, dict) else {'non_field_errors': exc.detail}
        payload = error_payload('validation_error', _first_message(exc.detail) or 'Invalid request data', fields)
    else:
        codes = exc.get_codes() if isinstance(exc, exceptions.APIException) else 'api_error'
        code = codes if isinstance(codes, str) else getattr(exc, 'default_code', 'api_error')
        detail = exc.detail if isinstance(exc, exceptions.APIException) else resp.data
        payload = error_payload(code, _first_message(detail))
    return Response(payload, status=resp.status_code, headers=_auth_headers(resp))


def _auth_headers(resp) -> dict:
    # Keep WWW-Authenticate / Retry-After produced by DRF
    return {k: v for k, v in resp.items() if k in ('WWW-Authenticate', 'Retry-After')}
