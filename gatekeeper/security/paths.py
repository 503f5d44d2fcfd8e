"""Path normalization and prefix matching for exemption/scope lists."""

from typing import Iterable


def normalize_path(path: str) -> str:
    """Strip query string and fragment, trailing slashes, and fold case."""
    path = path.split('?', 1)[0].split('#', 1)[0]
    path = path.rstrip('/') or '/'
    return path.lower()


def path_matches(path: str, prefixes: Iterable[str]) -> bool:
    """
    True if the raw or normalized ``path`` equals a prefix or sits below it.

    Prefixes match at segment boundaries: ``/auth/login`` covers
    ``/auth/login/sso`` but not ``/auth/loginx``.
    """
    candidates = {path, normalize_path(path)}
    for prefix in prefixes:
        prefix = normalize_path(prefix)
        for candidate in candidates:
            if candidate == prefix or candidate.startswith(prefix.rstrip('/') + '/'):
                return True
    return False
