"""
Flask extension instances: created here, initialized in the app factory.

This pattern (separate from __init__.py) prevents circular imports
and allows extensions to be imported independently by blueprints.
"""

from flask_bcrypt import Bcrypt
from flask_limiter import Limiter
from flask_session import Session

from gatekeeper.captcha.challenge import ChallengeService
from gatekeeper.captcha.verifier import CaptchaVerifier
from gatekeeper.security.bearer import BearerTokens
from gatekeeper.security.context import client_identifier
from gatekeeper.security.csrf import CsrfProtection
from gatekeeper.security.ratelimit import RequestRateLimiter

# Password hashing: bcrypt with configurable rounds (see config.py).
bcrypt = Bcrypt()

# Server-side session management: replaces Flask's default client-side sessions.
sess = Session()

# Per-route limits (challenge issuance). Storage comes from RATELIMIT_STORAGE_URI.
limiter = Limiter(key_func=client_identifier)

# Double-submit CSRF check: before_request, registered first.
csrf = CsrfProtection()

# Fixed-window counters for every in-scope request: before_request, after CSRF.
rate_limiter = RequestRateLimiter()

# Signed, expiring access tokens; a verified one bypasses the CSRF check.
bearer_tokens = BearerTokens()

# Self-hosted image challenges (issue + single-use verify).
challenges = ChallengeService()

# Server-side dispatch of captchaToken to the right provider.
captcha_verifier = CaptchaVerifier()
