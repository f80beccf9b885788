"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.
After too many consecutive failures, the account is temporarily locked.

SECURITY FEATURES:
- Failed attempts counted on the user row (failed_login_count)
- Lockout after MAX_FAILED_ATTEMPTS consecutive failures
- Lockout duration: LOCKOUT_DURATION, recorded as users.locked_until
- Counter cleared on successful login
"""

from datetime import timedelta

from ..extensions import db
from ..models import User
from ..time_utils import utcnow


# Configuration constants
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=15)


def is_account_locked(user: User) -> tuple[bool, int | None]:
    """
    Check if an account is currently locked.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if user.locked_until is None:
        return False, None

    now = utcnow()
    if now < user.locked_until:
        return True, int((user.locked_until - now).total_seconds())

    return False, None


def record_failed_attempt(user: User) -> bool:
    """
    Count a failed password attempt and lock the account at the threshold.

    Returns True if this attempt locked the account.
    """
    user.failed_login_count = (user.failed_login_count or 0) + 1
    locked = False
    if user.failed_login_count >= MAX_FAILED_ATTEMPTS:
        user.locked_until = utcnow() + LOCKOUT_DURATION
        user.failed_login_count = 0
        locked = True
    db.session.commit()
    return locked


def clear_failed_attempts(user: User) -> None:
    """Reset the failure counter after a successful login. Caller commits."""
    user.failed_login_count = 0
    user.locked_until = None
