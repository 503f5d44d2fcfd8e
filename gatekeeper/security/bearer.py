"""
Bearer token issuance and verification.

The CSRF layer only needs one signal from authentication: "does this
request carry a bearer token that actually verifies?". Tokens are
itsdangerous signed, timestamped payloads; a header that merely starts
with "Bearer " earns nothing.
"""

from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer


class BearerTokens:
    """Flask extension wrapping a timed serializer bound to SECRET_KEY."""

    salt = 'bearer-token'

    def __init__(self, app=None):
        self._serializer = None
        self.max_age = 900
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self._serializer = URLSafeTimedSerializer(app.config['SECRET_KEY'], salt=self.salt)
        self.max_age = app.config.get('BEARER_TOKEN_MAX_AGE', 900)
        app.extensions['bearer_tokens'] = self

    def issue(self, subject: str) -> str:
        return self._serializer.dumps({'sub': subject})

    def verify(self, token: Optional[str]) -> Optional[str]:
        """Return the token's subject, or None if it is missing, forged or expired."""
        if not token:
            return None
        try:
            payload = self._serializer.loads(token, max_age=self.max_age)
        except BadSignature:  # includes SignatureExpired
            return None
        if not isinstance(payload, dict):
            return None
        return payload.get('sub')


def parse_bearer_header(value: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not value:
        return None
    scheme, _, token = value.partition(' ')
    if scheme.lower() != 'bearer':
        return None
    return token.strip() or None
