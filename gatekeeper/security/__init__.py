"""
Request-integrity pipeline: CSRF double-submit validation, per-client
rate limiting, bearer token verification and the shared error taxonomy.
"""

from gatekeeper.security.bearer import BearerTokens
from gatekeeper.security.csrf import CsrfProtection, CsrfTokenPair, CsrfValidator
from gatekeeper.security.ratelimit import (
    MemoryRateLimitStore,
    RateLimiter,
    RateLimitResult,
    RequestRateLimiter,
)

__all__ = [
    'BearerTokens',
    'CsrfProtection',
    'CsrfTokenPair',
    'CsrfValidator',
    'MemoryRateLimitStore',
    'RateLimiter',
    'RateLimitResult',
    'RequestRateLimiter',
]
