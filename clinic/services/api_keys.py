"""
Issuing, listing, resolving and revoking API keys.

A raw key is ``sk_`` followed by 64 hex characters.  It is returned to
the caller exactly once; the database only keeps its SHA-256 digest, so
a leaked table does not leak usable credentials.
"""
from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Optional

from django.conf import settings
from django.utils import timezone
from rest_framework.exceptions import NotFound

from clinic.models import ApiKey, Role, User
from clinic.services import cache
from clinic.services.audit import log_activity

logger = logging.getLogger(__name__)


def hash_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode('utf-8')).hexdigest()


def generate_raw_key() -> str:
    return f"{settings.API_KEY_PREFIX}{secrets.token_hex(32)}"


def issue_api_key(user: User, name: str) -> tuple[ApiKey, str]:
    raw_key = generate_raw_key()
    api_key = ApiKey.objects.create(user=user, name=name, key_hash=hash_key(raw_key))
    log_activity(user=user, action='create_api_key', details=f"Created API key '{name}'")
    logger.info("api key %s issued for user %s", api_key.pk, user.pk)
    return api_key, raw_key


def list_api_keys(user: User):
    return ApiKey.objects.filter(user=user).order_by('-created_at')


def revoke_api_key(actor: User, key_id) -> ApiKey:
    """Deactivate a key.  Users revoke their own keys; admins may revoke any."""
    qs = ApiKey.objects.all()
    if actor.role != Role.ADMIN:
        qs = qs.filter(user=actor)
    api_key = qs.filter(pk=key_id).first()
    if api_key is None:
        raise NotFound('API key not found')
    if api_key.is_active:
        api_key.is_active = False
        api_key.save(update_fields=['is_active'])
        log_activity(user=actor, action='revoke_api_key', details=f"Revoked API key '{api_key.name}'")
        logger.info("api key %s revoked by %s", api_key.pk, actor.pk)
    return api_key


def resolve_api_key(raw_key: str) -> Optional[ApiKey]:
    if not raw_key.startswith(settings.API_KEY_PREFIX):
        return None
    return ApiKey.objects.select_related('user').filter(key_hash=hash_key(raw_key)).first()


def touch_api_key(api_key: ApiKey) -> None:
    now = timezone.now()
    ApiKey.objects.filter(pk=api_key.pk).update(last_used_at=now)
    api_key.last_used_at = now
    cache.invalidate('api_key.use', broadcast=False)
