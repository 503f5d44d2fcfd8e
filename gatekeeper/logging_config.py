"""
Structured security audit logging.

All pipeline events are logged as JSON for machine parsing.
Events include: csrf_failure, rate_limit_exceeded, captcha_issued,
captcha_verified, captcha_failed, captcha_unavailable, login_success,
login_failed, registration, logout.

NEVER logs: CSRF tokens, CAPTCHA answers, bearer tokens, passwords.
"""

import json
import logging
import re
import time
from typing import Any, Dict


# Control characters that could enable log injection attacks.
_LOG_INJECTION_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

# Context fields copied from the record into the JSON entry, in this order.
AUDIT_FIELDS = (
    'ip',
    'method',
    'path',
    'reason',
    'provider',
    'identifier',
    'email',
    'user_agent',
    'request_id',
)


def sanitize_log_value(value: str, max_length: int = 256) -> str:
    """
    Sanitize a string for safe inclusion in log output.

    Prevents log injection by removing control characters and
    truncating to a maximum length.
    """
    cleaned = _LOG_INJECTION_PATTERN.sub('', str(value))
    return cleaned[:max_length]


class SecurityAuditFormatter(logging.Formatter):
    """JSON formatter for security audit events."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S%z', time.gmtime(record.created)),
            'level': record.levelname,
            'event': getattr(record, 'event', 'unknown'),
            'message': record.getMessage(),
        }

        for field in AUDIT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = sanitize_log_value(str(value))

        return json.dumps(log_entry)


def setup_security_logging(app) -> logging.Logger:
    """
    Configure the security audit logger.

    Returns a dedicated 'security.audit' logger that writes JSON to stderr.
    """
    logger = logging.getLogger('security.audit')
    logger.setLevel(logging.INFO)

    # Repeated create_app() calls (tests) must not stack handlers.
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(SecurityAuditFormatter())
    logger.addHandler(console_handler)

    return logger


def audit_log(event: str, message: str, level: int = logging.INFO, **context) -> None:
    """
    Log a security audit event.

    Args:
        event: Event type (e.g., 'csrf_failure', 'rate_limit_exceeded')
        message: Human-readable description
        level: Logging level, INFO unless the event is a rejection
        **context: Additional context (ip, method, path, reason, ...)
    """
    logger = logging.getLogger('security.audit')
    extra = {'event': event}
    extra.update(context)
    logger.log(level, message, extra=extra)
