# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one organization (org_id).
Email uniqueness is tenant-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters; upper, lower, digit and special char required
- Consecutive failures lock the account (see login_throttle_service.py)
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import User, Organization
from ..time_utils import utcnow
from . import login_throttle_service


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountLockedError(Exception):
    """Raised when a locked account attempts to log in."""

    def __init__(self, seconds_remaining: int):
        super().__init__("Account is temporarily locked")
        self.seconds_remaining = seconds_remaining


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes verify as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    org_id: int,
    role: str = "salesperson",
    display_name: str | None = None,
    permissions: dict | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If org doesn't exist or is inactive, or email is taken in the org
        PasswordValidationError: If password doesn't meet requirements
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise ValueError("Organization not found")
    if not org.is_active:
        raise ValueError("Organization is not active")

    normalized_email = email.strip().lower()
    existing = db.session.query(User).filter_by(org_id=org_id, email=normalized_email).first()
    if existing:
        raise ValueError("Email already exists in this organization")

    user = User(
        org_id=org_id,
        email=normalized_email,
        display_name=display_name,
        password_hash=hash_password(password),
        role=role,
        permissions=permissions,
        status="active",
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str, org_id: int | None = None) -> User | None:
    """
    Authenticate user with email and password.

    MULTI-TENANT: If org_id is provided, authentication is scoped to that org.

    Returns User if credentials valid, None otherwise. Updates last_login_at
    and clears the failure counter on success.

    Raises AccountLockedError while the account is locked, even when the
    password is correct.
    """
    query = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.status == "active",
    )
    if org_id is not None:
        query = query.filter(User.org_id == org_id)

    user = query.first()
    if not user:
        return None

    org = db.session.query(Organization).filter_by(id=user.org_id).first()
    if not org or not org.is_active:
        return None

    locked, seconds_remaining = login_throttle_service.is_account_locked(user)
    if locked:
        raise AccountLockedError(seconds_remaining or 0)

    if not verify_password(password, user.password_hash):
        login_throttle_service.record_failed_attempt(user)
        return None

    login_throttle_service.clear_failed_attempts(user)
    user.last_login_at = utcnow()
    db.session.commit()
    return user
