"""
Response cache for read endpoints with explicit invalidation.

GET views decorated with :func:`cached_response` store their payload
under a key made of the resource path, a per-path version, the caller
and the query string.  Nothing expires implicitly except through
``RESPONSE_CACHE_TIMEOUT``; instead every mutation names itself in
:data:`INVALIDATIONS`, and :func:`invalidate` bumps the version of each
path it lists so all cached variants of those paths are dropped at once.

After invalidating, a ``broadcast.refresh`` event listing the paths is
sent to the ``updates`` channel group so connected clients refetch.
"""
from __future__ import annotations

import functools
import logging
import uuid

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone
from rest_framework.response import Response

logger = logging.getLogger(__name__)

UPDATES_GROUP = 'updates'

API_KEYS = '/api/api-keys'
USERS = '/api/users'
DOCTORS = '/api/doctors'
PATIENTS = '/api/patients'
APPOINTMENTS = '/api/appointments'
CHECKINS = '/api/checkins'
QUEUE = '/api/queue'
CONSULTATIONS = '/api/consultations'
PAYMENTS = '/api/payments'
CLAIMS = '/api/medical-aid-claims'
DASHBOARD = '/api/dashboard/stats'

RESOURCE_PATHS = (
    API_KEYS, USERS, DOCTORS, PATIENTS, APPOINTMENTS, CHECKINS, QUEUE,
    CONSULTATIONS, PAYMENTS, CLAIMS, DASHBOARD,
)

# mutation -> resource paths whose cached responses become stale
INVALIDATIONS: dict[str, tuple[str, ...]] = {
    'api_key.create': (API_KEYS,),
    'api_key.revoke': (API_KEYS,),
    'api_key.use': (API_KEYS,),
    'user.create': (USERS, DOCTORS),
    'user.update': (USERS, DOCTORS, APPOINTMENTS, QUEUE, CHECKINS, CONSULTATIONS),
    'patient.create': (PATIENTS, DASHBOARD),
    'patient.update': (PATIENTS, APPOINTMENTS, CHECKINS, QUEUE, CONSULTATIONS, PAYMENTS, CLAIMS),
    'appointment.create': (APPOINTMENTS, DASHBOARD),
    'appointment.update': (APPOINTMENTS, DASHBOARD),
    'checkin.create': (CHECKINS, APPOINTMENTS, QUEUE, PAYMENTS, CLAIMS, DASHBOARD),
    'queue.transition': (QUEUE, DASHBOARD),
    'queue.update': (QUEUE,),
    'consultation.create': (CONSULTATIONS, QUEUE, DASHBOARD),
    'attachment.upload': (CONSULTATIONS,),
    'payment.create': (PAYMENTS, DASHBOARD),
    'claim.update': (CLAIMS,),
}

for _mutation, _paths in INVALIDATIONS.items():
    if not set(_paths) <= set(RESOURCE_PATHS):
        raise ImproperlyConfigured(f"{_mutation} invalidates unknown paths: {_paths}")


def _version_key(path: str) -> str:
    return f"resp:ver:{path}"


def _version(path: str) -> str:
    return cache.get_or_set(_version_key(path), lambda: uuid.uuid4().hex, None)


def response_key(path: str, user_id, query: str = '') -> str:
    return f"resp:{path}:{_version(path)}:u={user_id}:q={query}"


def _query_string(request) -> str:
    params = request.query_params
    return '&'.join(f"{k}={v}" for k in sorted(params) for v in params.getlist(k))


def cached_response(path: str, vary=None):
    """Cache successful GET payloads of a DRF function view under ``path``.

    ``vary`` is an optional callable of the request whose result joins the
    key, for payloads that depend on something besides the query string.
    """
    if path not in RESOURCE_PATHS:
        raise ValueError(f"unknown resource path: {path}")

    def decorator(view):
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            if request.method != 'GET':
                return view(request, *args, **kwargs)
            user_id = getattr(request.user, 'pk', None)
            query = f"{request.path}?{_query_string(request)}"
            if vary is not None:
                query = f"{query}#{vary(request)}"
            key = response_key(path, user_id, query)
            cached = cache.get(key)
            if cached is not None:
                return Response(cached)
            resp = view(request, *args, **kwargs)
            if resp.status_code == 200:
                cache.set(key, resp.data, settings.RESPONSE_CACHE_TIMEOUT)
            return resp
        return wrapper
    return decorator


def invalidate_paths(paths, broadcast: bool = True) -> list[str]:
    paths = list(dict.fromkeys(paths))
    for path in paths:
        cache.set(_version_key(path), uuid.uuid4().hex, None)
    if broadcast:
        broadcast_refresh(paths)
    return paths


def invalidate(mutation: str, broadcast: bool = True) -> list[str]:
    """Drop the cached responses ``mutation`` makes stale.

    Pass ``broadcast=False`` for bookkeeping writes (such as an API key
    being used) that open clients need not refetch for.
    """
    paths = INVALIDATIONS[mutation]
    logger.debug("mutation %s invalidates %s", mutation, paths)
    return invalidate_paths(paths, broadcast=broadcast)


def broadcast_refresh(paths) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    now = timezone.now()
    event = {
        "type": "broadcast.refresh",
        "version": int(now.timestamp()),
        "ts": now.isoformat(),
        "keys": list(paths),
    }
    async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
