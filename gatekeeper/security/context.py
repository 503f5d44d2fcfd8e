"""
Request context helpers shared by the pipeline and audit logging.
"""

import hashlib

from flask import g, request

from gatekeeper.logging_config import sanitize_log_value


def derive_identifier(ip: str, user_agent: str) -> str:
    """
    Hash a source IP and user-agent into a rate-limit identifier.

    Coarse enough to throttle one client, while distinct browsers behind
    a shared IP still get separate buckets.
    """
    raw = f'{ip or "unknown"}\x00{user_agent or "unknown"}'
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()


def client_ip() -> str:
    return request.remote_addr or 'unknown'


def client_identifier() -> str:
    """Identifier of the current request's client (also flask-limiter's key_func)."""
    return derive_identifier(client_ip(), request.headers.get('User-Agent', ''))


def get_request_context() -> dict:
    """
    Extract security-relevant context from the current request.

    Returns:
        dict with ip, method, path, user_agent and request_id for audit
        logging. User-agent is truncated to 200 chars to prevent log bloat
        from crafted UA strings.
    """
    return {
        'ip': client_ip(),
        'method': request.method,
        'path': request.path,
        'user_agent': sanitize_log_value(
            request.headers.get('User-Agent', 'unknown'),
            max_length=200,
        ),
        'request_id': g.get('request_id', 'unknown'),
    }
