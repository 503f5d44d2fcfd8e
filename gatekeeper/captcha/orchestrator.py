"""
Client-side CAPTCHA fallback state machine.

Providers are tried along an explicit fallback order:

    recaptcha-v3 ──fail/timeout──▶ recaptcha-v2 ──fail/timeout──▶ custom
         └──────(no v2 site key)─────────────────────────────────▶ custom

A provider "fails" when its initialization raises
CaptchaProviderUnavailable, does not finish within ``init_timeout``,
or reports an error through its callbacks later on. ``custom`` is
terminal: if even the self-hosted challenge cannot be loaded the
orchestrator goes ``unavailable`` and waits for an explicit retry().

Every provider switch invalidates whatever token the previous provider
produced, and callbacks from an abandoned provider are ignored by
generation number. The caller only ever hears from ``on_verify``:

    on_verify(token, captcha_id, provider_type)

An empty token means "not verified (any more)". The orchestrator never
looks inside a token, only at whether there is one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from gatekeeper.captcha.providers import (
    CaptchaProvider,
    CustomChallengeProvider,
    ProviderCallbacks,
    RecaptchaBridge,
    RecaptchaV2Provider,
    RecaptchaV3Provider,
)
from gatekeeper.captcha.types import DEFAULT_FALLBACK_ORDER, ProviderType
from gatekeeper.security.errors import CaptchaProviderUnavailable

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = 'Security check unavailable. Please retry.'

VerifyCallback = Callable[[str, Optional[str], ProviderType], None]


class OrchestratorStatus(str, Enum):
    IDLE = 'idle'
    INITIALIZING = 'initializing'
    READY = 'ready'
    VERIFIED = 'verified'
    UNAVAILABLE = 'unavailable'


@dataclass
class ProviderState:
    """Per-attempt state; discarded once the token is consumed or the form resets."""
    active_provider: Optional[ProviderType] = None
    fallback_history: List[ProviderType] = field(default_factory=list)
    verified: bool = False


class CaptchaOrchestrator:

    def __init__(
        self,
        providers: Mapping[ProviderType, CaptchaProvider],
        on_verify: VerifyCallback,
        initial: Optional[ProviderType] = None,
        init_timeout: float = 5.0,
        fallback_order: Sequence[ProviderType] = DEFAULT_FALLBACK_ORDER,
    ):
        self.providers: Dict[ProviderType, CaptchaProvider] = dict(providers)
        self.on_verify = on_verify
        self.fallback_order = tuple(fallback_order)
        self.init_timeout = init_timeout
        self.initial = initial or next(p for p in self.fallback_order if p in self.providers)

        self.state = ProviderState()
        self.status = OrchestratorStatus.IDLE
        self.message: Optional[str] = None
        self._token = ''
        self._captcha_id: Optional[str] = None
        self._generation = 0
        self._pending = set()

    @classmethod
    def from_config(
        cls,
        config: Mapping,
        bridge: RecaptchaBridge,
        loader,
        on_verify: VerifyCallback,
        override: Optional[str] = None,
        init_timeout: float = 5.0,
    ) -> 'CaptchaOrchestrator':
        """Build from the public ``GET /captcha/config`` payload."""
        providers = {
            ProviderType.RECAPTCHA_V3: RecaptchaV3Provider(config.get('recaptchaV3SiteKey'), bridge),
            ProviderType.RECAPTCHA_V2: RecaptchaV2Provider(config.get('recaptchaV2SiteKey'), bridge),
            ProviderType.CUSTOM: CustomChallengeProvider(loader, config.get('challengeLength', 4)),
        }
        initial = ProviderType(override or config.get('captchaType') or ProviderType.CUSTOM.value)
        return cls(providers, on_verify, initial=initial, init_timeout=init_timeout)

    @property
    def active_provider(self) -> Optional[ProviderType]:
        return self.state.active_provider

    @property
    def token(self) -> str:
        return self._token

    async def start(self) -> None:
        self.state = ProviderState()
        await self._activate(self.initial)

    async def retry(self) -> None:
        """Explicit user retry: reissue the self-hosted challenge."""
        self.message = None
        target = ProviderType.CUSTOM if ProviderType.CUSTOM in self.providers else self.initial
        await self._activate(target)

    async def settle(self) -> None:
        """Wait for fallbacks scheduled from provider error callbacks."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _activate(self, provider_type: ProviderType) -> None:
        self._invalidate()
        self._generation += 1
        generation = self._generation

        provider = self.providers[provider_type]
        self.state.active_provider = provider_type
        self.status = OrchestratorStatus.INITIALIZING
        callbacks = ProviderCallbacks(
            on_success=partial(self._on_success, generation, provider_type),
            on_error=partial(self._on_error, generation, provider_type),
        )
        logger.debug('Initializing %s', provider_type.value)

        try:
            await asyncio.wait_for(provider.initialize(callbacks), self.init_timeout)
        except asyncio.TimeoutError:
            await self._fallback(
                generation,
                provider_type,
                CaptchaProviderUnavailable('Initialization timed out', provider=provider_type.value),
            )
            return
        except CaptchaProviderUnavailable as exc:
            await self._fallback(generation, provider_type, exc)
            return

        if generation == self._generation and self.status is OrchestratorStatus.INITIALIZING:
            self.status = OrchestratorStatus.READY

    async def _fallback(self, generation: int, failed: ProviderType, exc: Exception) -> None:
        if generation != self._generation:
            return

        logger.warning('%s failed: %s', failed.value, exc)
        self.state.fallback_history.append(failed)
        next_provider = self._next_provider(failed)
        if next_provider is None:
            self._invalidate()
            self.status = OrchestratorStatus.UNAVAILABLE
            self.message = UNAVAILABLE_MESSAGE
            logger.error('No verification provider left after %s', failed.value)
            return

        logger.info('Falling back from %s to %s', failed.value, next_provider.value)
        await self._activate(next_provider)

    def _next_provider(self, failed: ProviderType) -> Optional[ProviderType]:
        if failed not in self.fallback_order:
            return None
        for candidate in self.fallback_order[self.fallback_order.index(failed) + 1:]:
            provider = self.providers.get(candidate)
            if provider is not None and provider.is_configured():
                return candidate
        return None

    def _on_success(
        self,
        generation: int,
        provider_type: ProviderType,
        token: str,
        captcha_id: Optional[str] = None,
    ) -> None:
        if generation != self._generation:
            logger.debug('Ignoring token from abandoned provider %s', provider_type.value)
            return

        if token:
            self._token = token
            self._captcha_id = captcha_id
            self.state.verified = True
            self.status = OrchestratorStatus.VERIFIED
            self.on_verify(token, captcha_id, provider_type)
            return

        if self.status is OrchestratorStatus.VERIFIED:
            self.status = OrchestratorStatus.READY
        self._invalidate()

    def _on_error(self, generation: int, provider_type: ProviderType, exc: Exception) -> None:
        if generation != self._generation:
            return
        task = asyncio.get_running_loop().create_task(self._fallback(generation, provider_type, exc))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _invalidate(self) -> None:
        was_verified = self.state.verified
        self._token = ''
        self._captcha_id = None
        self.state.verified = False
        if was_verified:
            self.on_verify('', None, self.state.active_provider)

    def input_answer(self, text: str) -> str:
        """Forward typed input to the active self-hosted challenge."""
        provider = self.providers.get(self.state.active_provider)
        if not isinstance(provider, CustomChallengeProvider):
            raise RuntimeError('No self-hosted challenge is active')
        return provider.on_input(text)

    def submission_fields(self) -> dict:
        """Fields a form attaches to its payload; empty until verified."""
        if not self.state.verified:
            return {}
        fields = {
            'captchaToken': self._token,
            'captchaType': self.state.active_provider.value,
        }
        if self.state.active_provider is ProviderType.CUSTOM:
            fields['captchaId'] = self._captcha_id
        return fields

    def consume(self) -> dict:
        """Hand the token to the form handler exactly once, then reset."""
        fields = self.submission_fields()
        self.reset()
        return fields

    def reset(self) -> None:
        self._generation += 1
        self._invalidate()
        provider = self.providers.get(self.state.active_provider)
        if provider is not None:
            provider.reset()
        self.state = ProviderState()
        self.status = OrchestratorStatus.IDLE
        self.message = None
