import logging

from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import Conflict
from clinic.models import Role, User
from clinic.services.audit import log_activity

logger = logging.getLogger(__name__)


def get_user(user_id) -> User:
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise NotFound('User not found')


def _check_password(password: str, user=None) -> None:
    try:
        validate_password(password, user=user)
    except DjangoValidationError as e:
        raise ValidationError({'password': e.messages})


def create_user(admin: User, *, email: str, password: str, name: str, role: str) -> User:
    _check_password(password)
    try:
        with transaction.atomic():
            user = User.objects.create_user(email=email, password=password, name=name, role=role)
    except IntegrityError:
        raise Conflict('A user with this email already exists.')
    log_activity(user=admin, action='create_user', details=f"Created {role} account {user.email}")
    return user


def update_user(admin: User, user: User, data: dict) -> User:
    if data.get('is_active') is False and user.pk == admin.pk:
        raise ValidationError({'isActive': ['You cannot deactivate your own account.']})
    if data.get('role') not in (None, Role.ADMIN) and user.pk == admin.pk:
        raise ValidationError({'role': ['You cannot remove your own admin role.']})

    password = data.pop('password', None)
    for field, value in data.items():
        setattr(user, field, value)
    if password:
        _check_password(password, user)
        user.set_password(password)
    user.save()
    log_activity(user=admin, action='update_user', details=f"Updated account {user.email}")
    return user


def deactivate_user(admin: User, user: User) -> User:
    """Accounts are never deleted; deactivation also shuts out their API keys."""
    if user.pk == admin.pk:
        raise ValidationError({'id': ['You cannot deactivate your own account.']})
    if user.is_active:
        user.is_active = False
        user.save(update_fields=['is_active'])
        log_activity(user=admin, action='deactivate_user', details=f"Deactivated account {user.email}")
        logger.info("user %s deactivated by %s", user.pk, admin.pk)
    return user


def active_doctors():
    return User.objects.filter(role=Role.DOCTOR, is_active=True).order_by('name')
