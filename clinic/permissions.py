"""
Role-based access control.

Every protected capability is declared once in ``CAPABILITY_ROLES`` with
the set of roles allowed to use it.  Views never spell out role lists;
they ask for a capability::

    @permission_classes([IsAuthenticated, capability('patients.create')])

``NAVIGATION`` uses the same table so the client menu the API returns
always agrees with what the server will actually admit.
"""
from __future__ import annotations

from rest_framework.permissions import BasePermission

from .models import Role

STAFF, ADMIN, DOCTOR = Role.STAFF, Role.ADMIN, Role.DOCTOR
EVERYONE = frozenset({STAFF, ADMIN, DOCTOR})

CAPABILITY_ROLES: dict[str, frozenset] = {
    # accounts
    'users.manage': frozenset({ADMIN}),
    'doctors.list': EVERYONE,
    'api_keys.manage': EVERYONE,
    'activity_logs.view': frozenset({ADMIN}),
    'dashboard.view': EVERYONE,
    'insights.view': frozenset({ADMIN}),
    # patients
    'patients.view': EVERYONE,
    'patients.create': frozenset({STAFF, ADMIN}),
    'patients.update': EVERYONE,
    'patients.relations': frozenset({STAFF, ADMIN}),
    # visits
    'appointments.view': EVERYONE,
    'appointments.manage': EVERYONE,
    'checkins.view': EVERYONE,
    'checkins.create': frozenset({STAFF, ADMIN}),
    'queue.view': EVERYONE,
    'queue.transition': EVERYONE,
    'queue.edit': frozenset({STAFF, ADMIN}),
    'consultations.view': frozenset({DOCTOR, ADMIN}),
    'consultations.create': frozenset({DOCTOR, ADMIN}),
    'attachments.manage': frozenset({DOCTOR, ADMIN}),
    # billing
    'payments.view': frozenset({STAFF, ADMIN}),
    'payments.create': frozenset({STAFF, ADMIN}),
    'claims.manage': frozenset({STAFF, ADMIN}),
}

# (label, client path, capability)
NAVIGATION: list[tuple[str, str, str]] = [
    ('Dashboard', '/', 'dashboard.view'),
    ('Patients', '/patients', 'patients.create'),
    ('Register Patient', '/patient-registration', 'patients.create'),
    ('Appointments', '/appointments', 'appointments.view'),
    ('Check-in', '/checkin', 'checkins.create'),
    ('Queue', '/queue', 'queue.view'),
    ('Customer Relations', '/customer-relations', 'patients.relations'),
    ('Doctor', '/doctor', 'consultations.create'),
    ('Medical Aid', '/medical-aid', 'claims.manage'),
    ('Users', '/users', 'users.manage'),
    ('Business Insights', '/insights', 'insights.view'),
    ('Activity Logs', '/admin', 'activity_logs.view'),
    ('API Keys', '/api-keys', 'api_keys.manage'),
]


def roles_for(name: str) -> frozenset:
    try:
        return CAPABILITY_ROLES[name]
    except KeyError:
        raise KeyError(f"unknown capability: {name}") from None


def has_capability(user, name: str) -> bool:
    roles = roles_for(name)
    return bool(user and user.is_authenticated and user.is_active and getattr(user, 'role', None) in roles)


def navigation_for(user) -> list[dict]:
    return [
        {'label': label, 'path': path}
        for label, path, name in NAVIGATION
        if has_capability(user, name)
    ]


def capability(name: str, **by_method: str) -> type[BasePermission]:
    """Build a permission class admitting only the roles declared for ``name``.

    Keyword arguments override the capability per HTTP method, e.g.
    ``capability('patients.view', POST='patients.create')``.  Unknown
    capability names fail when the view module is imported.
    """
    per_method = {method.upper(): cap for method, cap in by_method.items()}
    for cap in (name, *per_method.values()):
        roles_for(cap)

    class CapabilityPermission(BasePermission):
        message = 'Your role is not allowed to perform this action.'

        def has_permission(self, request, view) -> bool:  # type: ignore[override]
            return has_capability(getattr(request, 'user', None), per_method.get(request.method, name))

    CapabilityPermission.__name__ = f"Can_{name.replace('.', '_')}"
    CapabilityPermission.capability = name
    return CapabilityPermission


# Every navigation entry must point at a declared capability
for _label, _path, _name in NAVIGATION:
    roles_for(_name)
