"""
Self-hosted image challenge: issue and single-use verification.

Lifecycle of one challenge:

    issued ──verify(correct)──▶ verified
       │ ───verify(wrong)────▶ rejected
       └────TTL elapsed──────▶ expired

All three outcomes are absorbing. verify() removes the challenge from
the store before comparing anything, so a second verify() on the same
id fails even if the first was correct: an attacker gets exactly one
guess per issued image.

Only an HMAC of the normalized answer is stored; the answer itself
exists just long enough to be rendered.
"""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, NamedTuple, Optional

from gatekeeper.captcha.render import render_challenge
from gatekeeper.security.tokens import constant_time_equals, keyed_digest

logger = logging.getLogger(__name__)

DEFAULT_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'


class ChallengeStatus(str, Enum):
    VERIFIED = 'verified'
    REJECTED = 'rejected'
    EXPIRED = 'expired'
    UNKNOWN = 'unknown'  # never issued, or already consumed


@dataclass
class CaptchaChallenge:
    id: str
    image: str
    answer_hash: str
    issued_at: float
    expires_at: float
    consumed: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class IssuedChallenge(NamedTuple):
    id: str
    image: str
    expires_at: float

    def to_dict(self) -> dict:
        expires = datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
        return {
            'captchaId': self.id,
            'image': self.image,
            'expiresAt': expires.isoformat().replace('+00:00', 'Z'),
        }


class ChallengeOutcome(NamedTuple):
    ok: bool
    status: ChallengeStatus


class ChallengeStore(ABC):
    """Challenge table. ``take`` must remove atomically: it is the consume step."""

    @abstractmethod
    def add(self, challenge: CaptchaChallenge) -> None:
        pass

    @abstractmethod
    def take(self, challenge_id: str) -> Optional[CaptchaChallenge]:
        pass

    def sweep(self, now: float) -> int:
        return 0


class MemoryChallengeStore(ChallengeStore):
    """Lock-guarded in-process table, swept of expired entries past a high-water mark."""

    def __init__(self, sweep_threshold: int = 10000, clock: Callable[[], float] = time.time):
        self.sweep_threshold = sweep_threshold
        self.clock = clock
        self._challenges: Dict[str, CaptchaChallenge] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._challenges)

    def add(self, challenge: CaptchaChallenge) -> None:
        with self._lock:
            self._challenges[challenge.id] = challenge
            if len(self._challenges) > self.sweep_threshold:
                self._sweep_locked(self.clock())

    def take(self, challenge_id: str) -> Optional[CaptchaChallenge]:
        with self._lock:
            challenge = self._challenges.pop(challenge_id, None)
        if challenge is not None:
            challenge.consumed = True
        return challenge

    def sweep(self, now: float) -> int:
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        expired = [cid for cid, c in self._challenges.items() if c.is_expired(now)]
        for cid in expired:
            del self._challenges[cid]
        if expired:
            logger.debug('Swept %d expired challenges', len(expired))
        return len(expired)


class ChallengeService:
    """Issues and verifies self-hosted challenges (Flask extension)."""

    def __init__(
        self,
        app=None,
        secret_key: str = None,
        ttl: float = 300,
        length: int = 4,
        alphabet: str = DEFAULT_ALPHABET,
        store: ChallengeStore = None,
        clock: Callable[[], float] = time.time,
        renderer: Callable[[str], str] = render_challenge,
    ):
        self.secret_key = secret_key
        self.ttl = ttl
        self.length = length
        self.alphabet = alphabet
        self.clock = clock
        self.renderer = renderer
        self.store = store if store is not None else MemoryChallengeStore(clock=clock)
        # Tests pin the answer; production draws it from `secrets`.
        self.answer_factory: Optional[Callable[[], str]] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        config = app.config
        self.secret_key = config['SECRET_KEY']
        self.ttl = config.get('CAPTCHA_CHALLENGE_TTL', 300)
        self.length = config.get('CAPTCHA_LENGTH', 4)
        self.alphabet = config.get('CAPTCHA_ALPHABET', DEFAULT_ALPHABET)
        self.store = MemoryChallengeStore(
            sweep_threshold=config.get('CAPTCHA_STORE_SWEEP_THRESHOLD', 10000),
            clock=self.clock,
        )
        app.extensions['challenges'] = self

    def generate_answer(self) -> str:
        if self.answer_factory is not None:
            return self.answer_factory()
        return ''.join(secrets.choice(self.alphabet) for _ in range(self.length))

    def _hash(self, answer: str) -> str:
        return keyed_digest(self.secret_key, answer.strip().upper())

    def issue(self) -> IssuedChallenge:
        answer = self.generate_answer()
        now = self.clock()
        challenge = CaptchaChallenge(
            id=secrets.token_urlsafe(16),
            image=self.renderer(answer),
            answer_hash=self._hash(answer),
            issued_at=now,
            expires_at=now + self.ttl,
        )
        self.store.add(challenge)
        return IssuedChallenge(challenge.id, challenge.image, challenge.expires_at)

    def verify(self, challenge_id: Optional[str], candidate: Optional[str]) -> ChallengeOutcome:
        """Consume the challenge, then check expiry, then compare answers."""
        challenge = self.store.take(challenge_id) if challenge_id else None
        if challenge is None:
            return ChallengeOutcome(False, ChallengeStatus.UNKNOWN)

        if challenge.is_expired(self.clock()):
            return ChallengeOutcome(False, ChallengeStatus.EXPIRED)

        if constant_time_equals(self._hash(candidate or ''), challenge.answer_hash):
            return ChallengeOutcome(True, ChallengeStatus.VERIFIED)
        return ChallengeOutcome(False, ChallengeStatus.REJECTED)
