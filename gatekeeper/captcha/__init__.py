"""
CAPTCHA subsystem: the self-hosted ChallengeService, server-side token
verification, and the client-side provider fallback orchestrator.
"""

from gatekeeper.captcha.challenge import ChallengeService, ChallengeStatus, MemoryChallengeStore
from gatekeeper.captcha.loader import HttpChallengeLoader
from gatekeeper.captcha.orchestrator import CaptchaOrchestrator, OrchestratorStatus, ProviderState
from gatekeeper.captcha.providers import (
    CaptchaProvider,
    CustomChallengeProvider,
    ProviderCallbacks,
    RecaptchaBridge,
    RecaptchaV2Provider,
    RecaptchaV3Provider,
)
from gatekeeper.captcha.types import DEFAULT_FALLBACK_ORDER, ProviderType
from gatekeeper.captcha.verifier import CaptchaVerifier, captcha_required

__all__ = [
    'CaptchaOrchestrator',
    'CaptchaProvider',
    'CaptchaVerifier',
    'ChallengeService',
    'ChallengeStatus',
    'CustomChallengeProvider',
    'DEFAULT_FALLBACK_ORDER',
    'HttpChallengeLoader',
    'MemoryChallengeStore',
    'OrchestratorStatus',
    'ProviderCallbacks',
    'ProviderState',
    'ProviderType',
    'RecaptchaBridge',
    'RecaptchaV2Provider',
    'RecaptchaV3Provider',
    'captcha_required',
]
