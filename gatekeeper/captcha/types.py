"""Verification provider identifiers shared by client and server sides."""

from enum import Enum


class ProviderType(str, Enum):
    RECAPTCHA_V3 = 'recaptcha-v3'
    RECAPTCHA_V2 = 'recaptcha-v2'
    CUSTOM = 'custom'


# Invisible first, then checkbox, then the self-hosted challenge that
# needs no third party. Adding a provider is an edit to this tuple.
DEFAULT_FALLBACK_ORDER = (
    ProviderType.RECAPTCHA_V3,
    ProviderType.RECAPTCHA_V2,
    ProviderType.CUSTOM,
)
