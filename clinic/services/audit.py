from typing import Optional

from clinic.models import ActivityLog, User


def log_activity(*, user: Optional[User], action: str, details: str = '') -> ActivityLog:
    return ActivityLog.objects.create(
        user=user if getattr(user, 'pk', None) else None,
        action=action,
        details=details,
    )
