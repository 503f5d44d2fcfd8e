"""
Server-side verification of the token a form attaches to a sensitive request.

Forms send ``{captchaToken, captchaId?, captchaType}`` next to their
normal payload. Dispatch by captchaType:

- custom        → ChallengeService (captchaId required, single use)
- recaptcha-v3  → Google siteverify with the v3 secret, score threshold
- recaptcha-v2  → Google siteverify with the v2 secret

A provider whose secret is not configured fails safe: the token is
rejected rather than waved through.
"""

import logging
from functools import wraps
from typing import Optional

import requests
from flask import current_app, g, request

from gatekeeper.captcha.challenge import ChallengeStatus
from gatekeeper.captcha.types import ProviderType
from gatekeeper.logging_config import audit_log
from gatekeeper.security.context import client_ip, get_request_context
from gatekeeper.security.errors import (
    CaptchaError,
    CaptchaExpired,
    CaptchaMismatch,
    CaptchaProviderUnavailable,
    CaptchaRequired,
)

logger = logging.getLogger(__name__)


class CaptchaVerifier:
    """Flask extension dispatching verification to the right provider."""

    def __init__(self, app=None, http: requests.Session = None):
        self.http = http
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        if self.http is None:
            self.http = requests.Session()
        app.extensions['captcha_verifier'] = self

    def verify(
        self,
        token: Optional[str],
        remote_ip: Optional[str] = None,
        captcha_id: Optional[str] = None,
        captcha_type: Optional[str] = None,
    ) -> ProviderType:
        """
        Verify ``token``; returns the provider that vouched for it.

        Raises:
            CaptchaRequired: no token at all.
            CaptchaMismatch: wrong answer, rejected token, or unusable type.
            CaptchaExpired: custom challenge expired or already consumed.
            CaptchaProviderUnavailable: siteverify could not be reached.
        """
        config = current_app.config
        if captcha_type is not None and not isinstance(captcha_type, str):
            raise CaptchaMismatch()
        try:
            provider = ProviderType(captcha_type or config.get('CAPTCHA_TYPE', 'custom'))
        except ValueError:
            raise CaptchaMismatch() from None

        # Type checks run before any challenge is taken.
        for value in (token, captcha_id):
            if value is not None and not isinstance(value, str):
                raise CaptchaMismatch(provider=provider.value)

        if not token:
            raise CaptchaRequired(provider=provider.value)

        if provider is ProviderType.CUSTOM:
            self._verify_custom(token, captcha_id)
        elif provider is ProviderType.RECAPTCHA_V3:
            self._verify_recaptcha(
                provider,
                token,
                config.get('RECAPTCHA_V3_SECRET_KEY'),
                remote_ip,
                min_score=config.get('RECAPTCHA_V3_MIN_SCORE', 0.5),
            )
        else:
            self._verify_recaptcha(provider, token, config.get('RECAPTCHA_V2_SECRET_KEY'), remote_ip)
        return provider

    @staticmethod
    def _verify_custom(answer: str, captcha_id: Optional[str]) -> None:
        if not captcha_id:
            raise CaptchaMismatch(provider=ProviderType.CUSTOM.value)

        outcome = current_app.extensions['challenges'].verify(captcha_id, answer)
        if outcome.ok:
            return
        if outcome.status in (ChallengeStatus.EXPIRED, ChallengeStatus.UNKNOWN):
            raise CaptchaExpired(provider=ProviderType.CUSTOM.value)
        raise CaptchaMismatch(provider=ProviderType.CUSTOM.value)

    def _verify_recaptcha(
        self,
        provider: ProviderType,
        token: str,
        secret: Optional[str],
        remote_ip: Optional[str],
        min_score: Optional[float] = None,
    ) -> None:
        if not secret:
            logger.warning('%s secret not configured; rejecting token', provider.value)
            raise CaptchaMismatch(provider=provider.value)

        payload = {'secret': secret, 'response': token}
        if remote_ip:
            payload['remoteip'] = remote_ip

        config = current_app.config
        try:
            response = self.http.post(
                config['RECAPTCHA_VERIFY_URL'],
                data=payload,
                timeout=config.get('RECAPTCHA_TIMEOUT', 5),
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error('%s siteverify failed: %s', provider.value, exc)
            raise CaptchaProviderUnavailable(provider=provider.value) from exc

        if not data.get('success'):
            logger.info('%s rejected token: %s', provider.value, data.get('error-codes', []))
            raise CaptchaMismatch(provider=provider.value)

        score = data.get('score')
        if min_score is not None and score is not None and float(score) < min_score:
            logger.info('%s score %.2f below %.2f', provider.value, float(score), min_score)
            raise CaptchaMismatch(provider=provider.value)


def public_captcha_config(config) -> dict:
    """What a client orchestrator needs to pick and initialize providers. No secrets."""
    return {
        'captchaType': config.get('CAPTCHA_TYPE', 'custom'),
        'recaptchaV3SiteKey': config.get('RECAPTCHA_V3_SITE_KEY'),
        'recaptchaV2SiteKey': config.get('RECAPTCHA_V2_SITE_KEY'),
        'challengeLength': config.get('CAPTCHA_LENGTH', 4),
    }


def _submitted_fields():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form
    return payload.get('captchaToken'), payload.get('captchaId'), payload.get('captchaType')


def captcha_required(view):
    """
    Require a verified CAPTCHA token before the view runs.

    With CAPTCHA_REQUIRED off, a token is still verified if one is sent.
    """
    @wraps(view)
    def decorated_function(*args, **kwargs):
        token, captcha_id, captcha_type = _submitted_fields()
        if not token and not current_app.config.get('CAPTCHA_REQUIRED', True):
            return view(*args, **kwargs)

        verifier = current_app.extensions['captcha_verifier']
        try:
            provider = verifier.verify(token, client_ip(), captcha_id, captcha_type)
        except (CaptchaError, CaptchaProviderUnavailable) as exc:
            log_captcha_failure(exc)
            raise

        log_captcha_verified(provider)
        g.captcha_provider = provider
        return view(*args, **kwargs)
    return decorated_function


# --- Audit helpers ---

def log_captcha_issued() -> None:
    audit_log(
        event='captcha_issued',
        message='Self-hosted challenge issued',
        provider=ProviderType.CUSTOM.value,
        **get_request_context(),
    )


def log_captcha_verified(provider: ProviderType) -> None:
    audit_log(
        event='captcha_verified',
        message=f'Security check passed via {provider.value}',
        provider=provider.value,
        **get_request_context(),
    )


def log_captcha_failure(exc) -> None:
    event = 'captcha_unavailable' if isinstance(exc, CaptchaProviderUnavailable) else 'captcha_failed'
    audit_log(
        event=event,
        message=f'Security check failed: {exc.reason}',
        level=logging.WARNING,
        reason=exc.reason,
        provider=getattr(exc, 'provider', None),
        **get_request_context(),
    )
