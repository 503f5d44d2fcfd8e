"""
Double-submit cookie CSRF protection.

The same random secret is set in the ``csrf-token`` cookie and must be
echoed by script in the ``X-CSRF-Token`` header. A cross-site attacker
can make the browser send the cookie but cannot read it to forge the
header, so equality proves the request came from our own origin. No
server-side record is kept: validity is pure equality.

Checks, in order:
1. Safe methods (GET, HEAD, OPTIONS) pass.
2. A bearer token that verifies passes (cookie auth is the CSRF-relevant one).
3. Exempt paths pass (login/registration happen before any token exists).
4. Both tokens present and constant-time equal, or the request is rejected.
"""

import logging
from typing import Iterable, NamedTuple, Optional

from flask import current_app, g, request

from gatekeeper.logging_config import audit_log
from gatekeeper.security.bearer import parse_bearer_header
from gatekeeper.security.context import get_request_context
from gatekeeper.security.errors import CsrfMismatch, CsrfMissing
from gatekeeper.security.paths import path_matches
from gatekeeper.security.tokens import constant_time_equals, generate_token

SAFE_METHODS = frozenset(('GET', 'HEAD', 'OPTIONS'))


class CsrfTokenPair(NamedTuple):
    """Cookie value and expected header value; identical by construction."""

    cookie_token: str
    header_token: str


class CsrfValidator:
    """Stateless decision logic for the double-submit check."""

    def __init__(self, exempt_paths: Iterable[str] = ()):
        self.exempt_paths = tuple(exempt_paths)

    def should_check(self, method: str) -> bool:
        return method.upper() not in SAFE_METHODS

    def is_exempt(self, path: str) -> bool:
        """Match the raw path and its normalized form against the exemption list."""
        return path_matches(path, self.exempt_paths)

    def validate(self, cookie_token: Optional[str], header_token: Optional[str]) -> bool:
        return constant_time_equals(cookie_token, header_token)

    def check(self, cookie_token: Optional[str], header_token: Optional[str]) -> None:
        """Raise CsrfMissing or CsrfMismatch unless the tokens validate."""
        if not cookie_token or not header_token:
            raise CsrfMissing()
        if not self.validate(cookie_token, header_token):
            raise CsrfMismatch()

    @staticmethod
    def generate_token_pair() -> CsrfTokenPair:
        token = generate_token()
        return CsrfTokenPair(cookie_token=token, header_token=token)


class CsrfProtection:
    """Flask extension running CsrfValidator before every request."""

    def __init__(self, app=None):
        self.validator = CsrfValidator()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.validator = CsrfValidator(app.config.get('CSRF_EXEMPT_PATHS', ()))
        app.extensions['csrf'] = self
        app.before_request(self.protect)

    def protect(self) -> None:
        """before_request hook; raises a CsrfError to reject the request."""
        if not current_app.config.get('CSRF_ENABLED', True):
            return
        if not self.validator.should_check(request.method):
            return

        subject = self._bearer_subject()
        if subject is not None:
            g.bearer_subject = subject
            return

        if self.validator.is_exempt(request.path):
            return

        cookie_token = request.cookies.get(current_app.config['CSRF_COOKIE_NAME'])
        header_token = request.headers.get(current_app.config['CSRF_HEADER_NAME'])
        try:
            self.validator.check(cookie_token, header_token)
        except (CsrfMissing, CsrfMismatch) as exc:
            log_csrf_failure(exc.reason)
            raise

    @staticmethod
    def _bearer_subject() -> Optional[str]:
        token = parse_bearer_header(request.headers.get('Authorization'))
        if token is None:
            return None
        bearer_tokens = current_app.extensions.get('bearer_tokens')
        if bearer_tokens is None:
            return None
        return bearer_tokens.verify(token)

    # --- Cookie lifecycle ---

    def issue(self, response) -> CsrfTokenPair:
        """Mint a new pair and attach it to ``response`` (cookie + echo header)."""
        pair = self.validator.generate_token_pair()
        config = current_app.config
        response.set_cookie(
            config['CSRF_COOKIE_NAME'],
            pair.cookie_token,
            max_age=config.get('CSRF_COOKIE_MAX_AGE'),
            path='/',
            secure=config.get('SESSION_COOKIE_SECURE', False),
            httponly=False,  # script must read it to echo the header
            samesite=config.get('SESSION_COOKIE_SAMESITE', 'Lax'),
        )
        response.headers[config['CSRF_HEADER_NAME']] = pair.header_token
        return pair

    def clear(self, response) -> None:
        config = current_app.config
        response.delete_cookie(
            config['CSRF_COOKIE_NAME'],
            path='/',
            secure=config.get('SESSION_COOKIE_SECURE', False),
            samesite=config.get('SESSION_COOKIE_SAMESITE', 'Lax'),
        )


def log_csrf_failure(reason: str) -> None:
    """Audit log: CSRF rejection. Records where it came from, never the token."""
    audit_log(
        event='csrf_failure',
        message=f'CSRF token validation failed: {reason}',
        level=logging.WARNING,
        reason=reason,
        **get_request_context(),
    )
