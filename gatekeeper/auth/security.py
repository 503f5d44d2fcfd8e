"""
Credential verification and authentication audit helpers.

verify_credentials always runs bcrypt, against a dummy hash when the
email is unknown, so response time does not reveal which emails exist.
"""

from typing import Optional

from gatekeeper.extensions import bcrypt
from gatekeeper.logging_config import audit_log, sanitize_log_value
from gatekeeper.security.context import get_request_context

DUMMY_HASH: Optional[str] = None


def init_dummy_hash(app) -> None:
    """Called from the app factory so the dummy hash uses the configured cost."""
    global DUMMY_HASH
    DUMMY_HASH = bcrypt.generate_password_hash('dummy_password_for_timing').decode('utf-8')


def hash_password(password: str) -> str:
    return bcrypt.generate_password_hash(password).decode('utf-8')


def verify_credentials(email: str, password: str) -> bool:
    """
    Verify credentials in constant time regardless of whether the user exists.

    The caller MUST NOT reveal why verification failed.
    """
    from gatekeeper.auth.models import get_user_by_email

    user = get_user_by_email(email)
    if user is not None:
        return bcrypt.check_password_hash(user['password_hash'], password)

    bcrypt.check_password_hash(DUMMY_HASH, password)
    return False


def log_login_success(email: str) -> None:
    audit_log(
        event='login_success',
        message=f'Successful login for {sanitize_log_value(email)}',
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_login_failed(email: str, reason: str = 'invalid_credentials') -> None:
    audit_log(
        event='login_failed',
        message=f'Failed login for {sanitize_log_value(email)}: {reason}',
        email=sanitize_log_value(email),
        reason=reason,
        **get_request_context(),
    )


def log_registration(email: str) -> None:
    audit_log(
        event='registration',
        message=f'Registration for {sanitize_log_value(email)}',
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_logout(email: str) -> None:
    audit_log(
        event='logout',
        message=f'Logout for {sanitize_log_value(email)}',
        email=sanitize_log_value(email),
        **get_request_context(),
    )
