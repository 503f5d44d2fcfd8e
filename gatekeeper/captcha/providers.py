"""
Client-side verification providers driven by CaptchaOrchestrator.

Each provider hides one widget behind the same small surface:
``initialize(callbacks)`` brings it up and ``reset()`` clears its state.
Tokens and failures travel back through the callbacks, never through
return values, because third-party widgets report asynchronously.

reCAPTCHA itself is reached through a RecaptchaBridge; the host
environment (a browser shim, a headless test double) supplies it.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from gatekeeper.captcha.types import ProviderType
from gatekeeper.security.errors import CaptchaProviderUnavailable

logger = logging.getLogger(__name__)

_NON_ANSWER = re.compile(r'[^A-Z0-9]')


@dataclass
class ProviderCallbacks:
    """
    on_success(token, captcha_id): an empty token means "no longer verified".
    on_error(exc): the provider failed and the orchestrator should move on.
    """
    on_success: Callable[[str, Optional[str]], None]
    on_error: Callable[[Exception], None]


class RecaptchaBridge(ABC):
    """Access to Google's widget script from wherever the form is rendered."""

    @abstractmethod
    async def load(self, site_key: str) -> None:
        pass

    @abstractmethod
    async def execute(self, site_key: str, action: str) -> str:
        """Run the invisible v3 check and return its token."""

    @abstractmethod
    async def render(
        self,
        site_key: str,
        on_token: Callable[[str], None],
        on_error: Callable[[], None],
        on_expired: Callable[[], None],
    ) -> None:
        """Render the v2 checkbox; its callbacks fire whenever the user interacts."""


class CaptchaProvider(ABC):
    provider_type: ProviderType

    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def initialize(self, callbacks: ProviderCallbacks) -> None:
        pass

    def reset(self) -> None:
        pass


class RecaptchaV3Provider(CaptchaProvider):
    """Invisible score-based check: one execute() produces the token."""

    provider_type = ProviderType.RECAPTCHA_V3

    def __init__(self, site_key: Optional[str], bridge: RecaptchaBridge, action: str = 'submit'):
        self.site_key = site_key
        self.bridge = bridge
        self.action = action

    def is_configured(self) -> bool:
        return bool(self.site_key)

    async def initialize(self, callbacks: ProviderCallbacks) -> None:
        if not self.is_configured():
            raise CaptchaProviderUnavailable('reCAPTCHA v3 site key missing', provider=self.provider_type.value)
        try:
            await self.bridge.load(self.site_key)
            token = await self.bridge.execute(self.site_key, self.action)
        except CaptchaProviderUnavailable:
            raise
        except Exception as exc:
            raise CaptchaProviderUnavailable(str(exc), provider=self.provider_type.value) from exc

        if not token:
            raise CaptchaProviderUnavailable('reCAPTCHA v3 returned no token', provider=self.provider_type.value)
        callbacks.on_success(token, None)


class RecaptchaV2Provider(CaptchaProvider):
    """Checkbox widget; token arrives when the user ticks it, and may expire later."""

    provider_type = ProviderType.RECAPTCHA_V2

    def __init__(self, site_key: Optional[str], bridge: RecaptchaBridge):
        self.site_key = site_key
        self.bridge = bridge

    def is_configured(self) -> bool:
        return bool(self.site_key)

    async def initialize(self, callbacks: ProviderCallbacks) -> None:
        if not self.is_configured():
            raise CaptchaProviderUnavailable('reCAPTCHA v2 site key missing', provider=self.provider_type.value)

        def on_error():
            callbacks.on_error(
                CaptchaProviderUnavailable('reCAPTCHA v2 widget error', provider=self.provider_type.value)
            )

        try:
            await self.bridge.load(self.site_key)
            await self.bridge.render(
                self.site_key,
                on_token=lambda token: callbacks.on_success(token, None),
                on_error=on_error,
                on_expired=lambda: callbacks.on_success('', None),
            )
        except CaptchaProviderUnavailable:
            raise
        except Exception as exc:
            raise CaptchaProviderUnavailable(str(exc), provider=self.provider_type.value) from exc


ChallengeLoader = Callable[[], Awaitable[dict]]


class CustomChallengeProvider(CaptchaProvider):
    """
    Self-hosted image challenge. Needs nothing but our own /captcha/challenge.

    The typed answer is normalized (uppercased, non-alphanumerics dropped)
    and only emitted once it reaches full length.
    """

    provider_type = ProviderType.CUSTOM

    def __init__(self, loader: ChallengeLoader, answer_length: int = 4):
        self.loader = loader
        self.answer_length = answer_length
        self.challenge: Optional[dict] = None
        self.answer = ''
        self._callbacks: Optional[ProviderCallbacks] = None

    @property
    def captcha_id(self) -> Optional[str]:
        return self.challenge.get('captchaId') if self.challenge else None

    async def initialize(self, callbacks: ProviderCallbacks) -> None:
        self._callbacks = callbacks
        await self.load_challenge()

    async def load_challenge(self) -> dict:
        """Fetch a fresh challenge; any previously typed answer is void."""
        self.answer = ''
        try:
            challenge = await self.loader()
        except Exception as exc:
            raise CaptchaProviderUnavailable(str(exc), provider=self.provider_type.value) from exc
        if not challenge or not challenge.get('captchaId'):
            raise CaptchaProviderUnavailable('Malformed challenge', provider=self.provider_type.value)

        self.challenge = challenge
        if self._callbacks is not None:
            self._callbacks.on_success('', None)
        return challenge

    def on_input(self, text: str) -> str:
        self.answer = _NON_ANSWER.sub('', (text or '').upper())[:self.answer_length]
        if self._callbacks is not None:
            if len(self.answer) == self.answer_length:
                self._callbacks.on_success(self.answer, self.captcha_id)
            else:
                self._callbacks.on_success('', None)
        return self.answer

    def reset(self) -> None:
        self.answer = ''
