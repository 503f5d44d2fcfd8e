"""
WSGI entry point for production deployment (gunicorn).

Usage:
    gunicorn -c gunicorn.conf.py wsgi:app

Creates the app with ProductionConfig, which refuses to start without
SECRET_KEY (sessions, bearer tokens and challenge hashes all depend on it).
"""

import sys

from gatekeeper.config import ProductionConfig

if not ProductionConfig.SECRET_KEY:
    print(
        'FATAL: SECRET_KEY environment variable is required.\n'
        'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"',
        file=sys.stderr,
    )
    sys.exit(1)

from gatekeeper import create_app  # noqa: E402

app = create_app(config_class=ProductionConfig)
