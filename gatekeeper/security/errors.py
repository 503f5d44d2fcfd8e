"""
Request-integrity error taxonomy.

Every rejection raised by the pipeline is a werkzeug HTTPException
(the same approach flask-wtf takes with CSRFError) carrying a stable,
machine-readable ``reason``. The app factory renders them as JSON.

- CsrfMissing / CsrfMismatch: client reloads and resubmits.
- RateLimitExceeded: client backs off per Retry-After.
- CaptchaRequired / CaptchaExpired / CaptchaMismatch: client retries
  the security check with a fresh challenge.
- CaptchaProviderUnavailable: transient. Client-side it only drives the
  orchestrator's fallback chain; server-side it means a siteverify call
  could not be made.
"""

from werkzeug.exceptions import BadRequest, Forbidden, ServiceUnavailable, TooManyRequests


class CsrfError(Forbidden):
    """Base class for double-submit validation failures."""

    reason = 'csrf_failed'
    description = 'CSRF token validation failed. Please refresh and try again.'


class CsrfMissing(CsrfError):
    """Cookie token or header token absent."""

    reason = 'csrf_missing'


class CsrfMismatch(CsrfError):
    """Both tokens present but not equal."""

    reason = 'csrf_mismatch'


class RateLimitExceeded(TooManyRequests):
    """Client identifier exceeded its ceiling for the current window."""

    reason = 'rate_limited'

    def __init__(self, retry_after_seconds: int, limit: int = None):
        self.retry_after_seconds = retry_after_seconds
        self.limit = limit
        super().__init__(
            description=(
                f'Too many requests. Please try again in {retry_after_seconds} seconds.'
            ),
            retry_after=retry_after_seconds,
        )


class CaptchaError(BadRequest):
    """Base class for verification failures surfaced to the user."""

    reason = 'captcha_failed'
    description = 'Security verification failed. Please try again.'

    def __init__(self, description: str = None, provider: str = None):
        self.provider = provider
        super().__init__(description=description)


class CaptchaRequired(CaptchaError):
    """A sensitive endpoint was called without a verification token."""

    reason = 'captcha_required'
    description = 'Security verification is required.'


class CaptchaExpired(CaptchaError):
    """The self-hosted challenge outlived its TTL (or was already used)."""

    reason = 'captcha_expired'


class CaptchaMismatch(CaptchaError):
    """The answer or provider token did not verify."""

    reason = 'captcha_mismatch'


class CaptchaProviderUnavailable(ServiceUnavailable):
    """A verification provider could not be reached or initialized."""

    reason = 'captcha_unavailable'
    description = 'Security check unavailable. Please retry.'

    def __init__(self, description: str = None, provider: str = None):
        self.provider = provider
        super().__init__(description=description)
