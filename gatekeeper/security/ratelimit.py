"""
Per-client fixed-window rate limiting.

Each client identifier (hash of source IP + user-agent) gets two
independent counters: a strict one for sensitive endpoints (login,
registration, password reset) and a looser one for the general API.

Algorithm: fixed window counter:
- no entry, or the window has elapsed → fresh window with count=1
- otherwise → increment, compare against the ceiling

Bursts straddling a window boundary can reach ~2x the nominal rate.
Acceptable for abuse deterrence; a sliding window or token bucket can
replace RateLimiter.check() without touching callers.

Counters live behind RateLimitStore. The default store is an in-process,
lock-guarded dict (per worker, lost on restart); LimitsRateLimitStore
delegates to any `limits` storage backend (redis://, memcached://, ...)
for deployments with more than one instance.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, NamedTuple, Optional

from flask import current_app, g, request
from limits.storage import storage_from_string

from gatekeeper.logging_config import audit_log
from gatekeeper.security.context import client_identifier, get_request_context
from gatekeeper.security.errors import RateLimitExceeded
from gatekeeper.security.paths import path_matches

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float  # epoch seconds


class RateLimitResult(NamedTuple):
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int  # seconds, 0 when allowed


class RateLimitStore(ABC):
    """Key-value counter table with per-key windows."""

    @abstractmethod
    def hit(self, key: str, window: float, now: float) -> RateLimitEntry:
        """Atomically count one request, opening a fresh window if the old one elapsed."""

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitEntry]:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def sweep(self, now: float) -> int:
        """Remove expired entries; returns how many were removed."""
        return 0


class MemoryRateLimitStore(RateLimitStore):
    """
    In-process counter table.

    Expired entries are swept only once the table grows past
    ``sweep_threshold``, and at most once per ``sweep_interval`` seconds,
    keeping the common path O(1) even while every entry is still live.
    """

    def __init__(self, sweep_threshold: int = 10000, sweep_interval: float = 60.0):
        self.sweep_threshold = sweep_threshold
        self.sweep_interval = sweep_interval
        self._last_sweep: Optional[float] = None
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def hit(self, key: str, window: float, now: float) -> RateLimitEntry:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                # Replace, never merge: the old window's count is discarded.
                entry = RateLimitEntry(count=1, reset_at=now + window)
                self._entries[key] = entry
                if len(self._entries) > self.sweep_threshold and self._sweep_due(now):
                    self._sweep_locked(now)
            else:
                entry.count += 1
            return RateLimitEntry(entry.count, entry.reset_at)

    def get(self, key: str) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(key)
            return None if entry is None else RateLimitEntry(entry.count, entry.reset_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self, now: float) -> int:
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_due(self, now: float) -> bool:
        return self._last_sweep is None or now - self._last_sweep >= self.sweep_interval

    def _sweep_locked(self, now: float) -> int:
        self._last_sweep = now
        expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug('Swept %d expired rate limit entries', len(expired))
        return len(expired)


class LimitsRateLimitStore(RateLimitStore):
    """
    Counter table in an external `limits` storage backend.

    The backend's native per-key TTL and atomic increment implement the
    fixed window; the backend's clock is authoritative, so ``now`` is
    only used by the in-memory store.
    """

    def __init__(self, storage_uri: str, key_prefix: str = 'gatekeeper'):
        self._storage = storage_from_string(storage_uri)
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f'{self._prefix}:{key}'

    def hit(self, key: str, window: float, now: float) -> RateLimitEntry:
        storage_key = self._key(key)
        count = self._storage.incr(storage_key, int(math.ceil(window)))
        return RateLimitEntry(count=count, reset_at=self._storage.get_expiry(storage_key))

    def get(self, key: str) -> Optional[RateLimitEntry]:
        storage_key = self._key(key)
        count = self._storage.get(storage_key)
        if not count:
            return None
        return RateLimitEntry(count=count, reset_at=self._storage.get_expiry(storage_key))

    def delete(self, key: str) -> None:
        self._storage.clear(self._key(key))


def build_store(storage_uri: str, sweep_threshold: int = 10000) -> RateLimitStore:
    if not storage_uri or storage_uri.startswith('memory://'):
        return MemoryRateLimitStore(sweep_threshold=sweep_threshold)
    return LimitsRateLimitStore(storage_uri)


class RateLimiter:
    """Applies the two ceilings to a store."""

    def __init__(
        self,
        store: RateLimitStore,
        api_max_requests: int = 100,
        api_window: float = 900,
        auth_max_requests: int = 5,
        auth_window: float = 900,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.api_max_requests = api_max_requests
        self.api_window = api_window
        self.auth_max_requests = auth_max_requests
        self.auth_window = auth_window
        self.clock = clock

    def check(self, identifier: str, sensitive: bool = False) -> RateLimitResult:
        """Count one request from ``identifier`` and report whether it is allowed."""
        if sensitive:
            scope, limit, window = 'auth', self.auth_max_requests, self.auth_window
        else:
            scope, limit, window = 'api', self.api_max_requests, self.api_window

        now = self.clock()
        entry = self.store.hit(f'{scope}:{identifier}', window, now)

        allowed = entry.count <= limit
        retry_after = 0 if allowed else max(1, math.ceil(entry.reset_at - now))
        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - entry.count),
            reset_at=entry.reset_at,
            retry_after=retry_after,
        )

    def enforce(self, identifier: str, sensitive: bool = False) -> RateLimitResult:
        """Like check(), but raises RateLimitExceeded when over the ceiling."""
        result = self.check(identifier, sensitive)
        if not result.allowed:
            raise RateLimitExceeded(result.retry_after, limit=result.limit)
        return result


class RequestRateLimiter:
    """Flask extension: counts every in-scope request and emits X-RateLimit-* headers."""

    def __init__(self, app=None):
        self.limiter = None
        self.sensitive_paths = ()
        self.exempt_paths = ()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        config = app.config
        store = build_store(
            config.get('RATELIMIT_STORAGE_URI', 'memory://'),
            sweep_threshold=config.get('RATELIMIT_SWEEP_THRESHOLD', 10000),
        )
        self.limiter = RateLimiter(
            store,
            api_max_requests=config.get('RATELIMIT_API_MAX_REQUESTS', 100),
            api_window=config.get('RATELIMIT_API_WINDOW', 900),
            auth_max_requests=config.get('RATELIMIT_AUTH_MAX_REQUESTS', 5),
            auth_window=config.get('RATELIMIT_AUTH_WINDOW', 900),
        )
        self.sensitive_paths = tuple(config.get('RATELIMIT_SENSITIVE_PATHS', ()))
        self.exempt_paths = tuple(config.get('RATELIMIT_EXEMPT_PATHS', ()))
        app.extensions['rate_limiter'] = self
        app.before_request(self.limit_request)
        app.after_request(self.apply_headers)

    def is_sensitive(self, path: str) -> bool:
        return path_matches(path, self.sensitive_paths)

    def in_scope(self, path: str) -> bool:
        return not (path.startswith('/static/') or path_matches(path, self.exempt_paths))

    def limit_request(self) -> None:
        """before_request hook; runs after the CSRF check."""
        if not current_app.config.get('RATELIMIT_ENABLED', True):
            return
        if not self.in_scope(request.path):
            return

        sensitive = self.is_sensitive(request.path)
        result = self.limiter.check(client_identifier(), sensitive)
        g.rate_limit = result

        if not result.allowed:
            log_rate_limit_exceeded(result, sensitive)
            raise RateLimitExceeded(result.retry_after, limit=result.limit)

    @staticmethod
    def apply_headers(response):
        """after_request hook; runs on allowed and rejected responses alike."""
        result = g.get('rate_limit')
        if result is None:
            return response
        response.headers['X-RateLimit-Limit'] = str(result.limit)
        response.headers['X-RateLimit-Remaining'] = str(result.remaining)
        response.headers['X-RateLimit-Reset'] = str(int(math.ceil(result.reset_at)))
        if not result.allowed:
            response.headers['Retry-After'] = str(result.retry_after)
        return response


def log_rate_limit_exceeded(result: RateLimitResult, sensitive: bool) -> None:
    """Audit log: request rejected for exceeding its ceiling."""
    audit_log(
        event='rate_limit_exceeded',
        message=f'Rate limit of {result.limit} exceeded; retry in {result.retry_after}s',
        level=logging.WARNING,
        reason='auth' if sensitive else 'api',
        identifier=client_identifier()[:16],
        **get_request_context(),
    )
