"""
Application configuration: all pipeline thresholds in one place.

Every threshold includes a comment explaining the value.
No magic numbers.
"""

import os
import secrets


def _env_list(name, default):
    """Read a comma-separated list from the environment."""
    raw = os.environ.get(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(',') if item.strip()]


class BaseConfig:
    """Shared configuration for all environments."""

    # --- Flask Core ---
    # 256-bit random secret for session signing, bearer tokens and
    # CAPTCHA answer hashing. In production, load from environment variable.
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

    # Reject request bodies larger than 16KB.
    # Login/registration payloads are well under 1KB.
    MAX_CONTENT_LENGTH = 16 * 1024  # 16KB

    # --- Session Configuration (flask-session) ---
    SESSION_TYPE = 'filesystem'
    SESSION_PERMANENT = True
    PERMANENT_SESSION_LIFETIME = 1800  # 30-minute idle timeout
    SESSION_USE_SIGNER = True
    SESSION_KEY_PREFIX = 'session:'

    # --- Session Cookie Flags ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_NAME = 'session'

    # --- bcrypt ---
    # 12 rounds ≈ 250ms per hash.
    BCRYPT_LOG_ROUNDS = 12

    # --- CSRF (double-submit cookie) ---
    CSRF_ENABLED = True
    CSRF_COOKIE_NAME = 'csrf-token'
    CSRF_HEADER_NAME = 'X-CSRF-Token'
    # Login, registration and password reset requests happen before any
    # token exists; refresh and logout ride on the httpOnly session cookie;
    # health is unauthenticated.
    CSRF_EXEMPT_PATHS = _env_list('CSRF_EXEMPT_PATHS', [
        '/auth/login',
        '/auth/register',
        '/auth/forgot-password',
        '/auth/refresh',
        '/auth/logout',
        '/health',
    ])
    # One day. The pair is re-minted on every login and refresh anyway.
    CSRF_COOKIE_MAX_AGE = 86400

    # --- Rate Limiting ---
    RATELIMIT_ENABLED = True
    # In-memory storage for single-instance deployment.
    # Multi-instance: any `limits` storage URI ("redis://localhost:6379").
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    # The pipeline emits its own X-RateLimit-* headers; flask-limiter's
    # would collide on the challenge endpoint.
    RATELIMIT_HEADERS_ENABLED = False
    # General API: 100 requests per 15 minutes per client.
    RATELIMIT_API_MAX_REQUESTS = int(os.environ.get('RATELIMIT_API_MAX_REQUESTS', '100'))
    RATELIMIT_API_WINDOW = int(os.environ.get('RATELIMIT_API_WINDOW', '900'))
    # Sensitive endpoints: 5 attempts per 15 minutes per client.
    # Enough for a few typos, far too few for credential stuffing.
    RATELIMIT_AUTH_MAX_REQUESTS = int(os.environ.get('RATELIMIT_AUTH_MAX_REQUESTS', '5'))
    RATELIMIT_AUTH_WINDOW = int(os.environ.get('RATELIMIT_AUTH_WINDOW', '900'))
    RATELIMIT_SENSITIVE_PATHS = [
        '/auth/login',
        '/auth/register',
        '/auth/forgot-password',
        '/auth/reset-password',
    ]
    # Load balancer probes must never be throttled.
    RATELIMIT_EXEMPT_PATHS = ['/health']
    # Sweep expired counters only once the table is this large.
    RATELIMIT_SWEEP_THRESHOLD = 10000

    # --- CAPTCHA ---
    CAPTCHA_REQUIRED = True
    # Default provider announced to clients: recaptcha-v3, recaptcha-v2 or custom.
    # The self-hosted challenge needs no third-party keys, so it is the default.
    CAPTCHA_TYPE = os.environ.get('CAPTCHA_TYPE', 'custom')
    RECAPTCHA_V2_SITE_KEY = os.environ.get('RECAPTCHA_V2_SITE_KEY')
    RECAPTCHA_V2_SECRET_KEY = os.environ.get('RECAPTCHA_V2_SECRET_KEY')
    RECAPTCHA_V3_SITE_KEY = os.environ.get('RECAPTCHA_V3_SITE_KEY')
    RECAPTCHA_V3_SECRET_KEY = os.environ.get('RECAPTCHA_V3_SECRET_KEY')
    # Google recommends 0.5 as the starting threshold for v3 scores.
    RECAPTCHA_V3_MIN_SCORE = float(os.environ.get('RECAPTCHA_V3_MIN_SCORE', '0.5'))
    RECAPTCHA_VERIFY_URL = 'https://www.google.com/recaptcha/api/siteverify'
    RECAPTCHA_TIMEOUT = 5  # seconds
    # Five minutes to read four characters is generous.
    CAPTCHA_CHALLENGE_TTL = 300
    CAPTCHA_LENGTH = 4
    # No 0/O, 1/I/L: every rendered glyph is unambiguous.
    CAPTCHA_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'
    CAPTCHA_STORE_SWEEP_THRESHOLD = 10000
    # Issuance creates server state; bound it per client.
    CAPTCHA_ISSUE_RATE_LIMIT = '30/minute'

    # --- Bearer Tokens ---
    # 15 minutes, matching a typical access-token lifetime.
    BEARER_TOKEN_MAX_AGE = 900

    # --- Database ---
    DATABASE_NAME = 'app.db'

    # --- Proxy Awareness ---
    # Number of trusted reverse proxies; 0 uses the socket address directly.
    PROXY_COUNT = int(os.environ.get('PROXY_COUNT', '0'))


class ProductionConfig(BaseConfig):
    """Production environment: all pipeline controls enforced."""

    DEBUG = False
    TESTING = False

    # SECRET_KEY MUST be set via environment variable in production.
    # A random key would invalidate sessions, bearer tokens and
    # outstanding challenges on every restart.
    SECRET_KEY = os.environ.get('SECRET_KEY')

    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    PROXY_COUNT = int(os.environ.get('PROXY_COUNT', '1'))

    @classmethod
    def init_app(cls, app):
        """Validate required configuration at startup."""
        if not cls.SECRET_KEY:
            raise RuntimeError(
                'SECRET_KEY environment variable is required in production. '
                'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
            )


class DevelopmentConfig(BaseConfig):
    """Development environment: relaxed cookie settings for HTTP."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False


class TestConfig(BaseConfig):
    """Test environment: fast bcrypt, pipeline checks off by default."""

    TESTING = True
    SESSION_COOKIE_SECURE = False
    BCRYPT_LOG_ROUNDS = 4
    # Specific test files enable each control via dedicated config classes.
    CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    CAPTCHA_REQUIRED = False
    CAPTCHA_TYPE = 'custom'
    RECAPTCHA_V2_SITE_KEY = None
    RECAPTCHA_V2_SECRET_KEY = None
    RECAPTCHA_V3_SITE_KEY = None
    RECAPTCHA_V3_SECRET_KEY = None
    DATABASE_NAME = 'test.db'


class RateLimitTestConfig(TestConfig):
    """Test config with rate limiting enabled."""

    RATELIMIT_ENABLED = True


class CSRFTestConfig(TestConfig):
    """Test config with double-submit CSRF protection enabled."""

    CSRF_ENABLED = True


class CaptchaTestConfig(TestConfig):
    """Test config with CAPTCHA required on sensitive endpoints."""

    CAPTCHA_REQUIRED = True
