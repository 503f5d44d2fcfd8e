"""
Flask application factory.

Creates and configures the Flask app with the request-integrity
pipeline, supporting extensions, and blueprints. Uses the factory
pattern for testability: each test can create an app with a
different config class.

before_request order (Flask runs hooks in registration order):
1. request id: so every audit line can be correlated
2. csrf: double-submit check on state-changing requests
3. rate_limiter: per-client fixed-window counters
4. limiter: flask-limiter, only for decorated routes
5. captcha: per-view decorator on sensitive endpoints

See DESIGN.md for the architecture overview.
"""

import math
import os
import time
import uuid

from flask import Flask, current_app, g, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from gatekeeper.config import DevelopmentConfig


def create_app(config_class=None, instance_path=None):
    """
    Create and configure the Flask application.

    Args:
        config_class: Configuration class to use. Defaults to DevelopmentConfig.
                      Tests pass TestConfig, RateLimitTestConfig, etc.
        instance_path: Where the SQLite database and session files live.
                       Defaults to Flask's instance folder.

    Returns:
        Configured Flask application instance.
    """
    if config_class is None:
        config_class = DevelopmentConfig

    app = Flask(__name__, instance_path=instance_path)
    app.config.from_object(config_class)
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    # Ensure the instance folder exists (for SQLite database and sessions).
    os.makedirs(app.instance_path, exist_ok=True)

    session_dir = os.path.join(app.instance_path, 'flask_sessions')
    os.makedirs(session_dir, exist_ok=True)
    app.config['SESSION_FILE_DIR'] = session_dir

    # Client identity (rate-limit key, audit ip) must be the real client,
    # not the load balancer.
    proxy_count = app.config.get('PROXY_COUNT', 0)
    if proxy_count:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxy_count, x_proto=proxy_count)

    @app.before_request
    def set_request_id() -> None:
        """Short unique id for log correlation."""
        g.request_id = str(uuid.uuid4())[:8]

    # --- Initialize Extensions ---
    # Order matters: csrf and rate_limiter register before_request hooks.

    from gatekeeper.extensions import (
        bcrypt,
        bearer_tokens,
        captcha_verifier,
        challenges,
        csrf,
        limiter,
        rate_limiter,
        sess,
    )

    bcrypt.init_app(app)
    bearer_tokens.init_app(app)
    csrf.init_app(app)
    rate_limiter.init_app(app)
    sess.init_app(app)
    challenges.init_app(app)
    captcha_verifier.init_app(app)

    # Decorators remain on routes either way; enforcement follows config.
    limiter.init_app(app)
    limiter.enabled = app.config.get('RATELIMIT_ENABLED', True)

    # --- Logging ---
    from gatekeeper.logging_config import setup_security_logging
    setup_security_logging(app)

    # --- Initialize Dummy Hash for Timing-Safe Verification ---
    from gatekeeper.auth.security import init_dummy_hash
    with app.app_context():
        init_dummy_hash(app)

    # --- Register Blueprints ---
    from gatekeeper.api import api_bp, captcha_bp
    from gatekeeper.auth import auth_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(captcha_bp)

    register_error_handlers(app)

    # --- Database Initialization ---
    from gatekeeper.auth.models import close_db, init_db

    app.teardown_appcontext(close_db)
    with app.app_context():
        init_db(app)

    return app


def error_response(status: int, error: str, message: str, **extra):
    """JSON error body shared by every rejection: statusCode, error, message."""
    body = {'statusCode': status, 'error': error, 'message': message}
    body.update({key: value for key, value in extra.items() if value is not None})
    response = jsonify(body)
    response.status_code = status
    return response


def register_error_handlers(app) -> None:
    from gatekeeper.security.errors import (
        CaptchaError,
        CaptchaProviderUnavailable,
        CsrfError,
    )

    @app.errorhandler(CsrfError)
    def handle_csrf_error(e):
        """Forged or stale request: the client reloads and resubmits."""
        return error_response(403, 'Forbidden', e.description, reason=e.reason)

    @app.errorhandler(429)
    def handle_rate_limit(e):
        """Pipeline counters and flask-limiter decorators both land here."""
        retry_after = getattr(e, 'retry_after_seconds', None)
        if retry_after is None:
            from gatekeeper.extensions import limiter
            current = limiter.current_limit
            retry_after = max(1, math.ceil(current.reset_at - time.time())) if current else 60
        response = error_response(
            429,
            'Too Many Requests',
            f'Too many requests. Please try again in {retry_after} seconds.',
            reason='rate_limited',
        )
        response.headers['Retry-After'] = str(retry_after)
        return response

    @app.errorhandler(CaptchaError)
    def handle_captcha_error(e):
        """Failed check; a custom-provider client also gets a fresh challenge."""
        challenge = None
        if e.provider == 'custom':
            challenge = current_app.extensions['challenges'].issue().to_dict()
        return error_response(
            400,
            'Bad Request',
            e.description,
            reason=e.reason,
            provider=e.provider,
            challenge=challenge,
        )

    @app.errorhandler(CaptchaProviderUnavailable)
    def handle_captcha_unavailable(e):
        return error_response(503, 'Service Unavailable', e.description, reason=e.reason, provider=e.provider)

    @app.errorhandler(400)
    def handle_bad_request(e):
        return error_response(400, 'Bad Request', 'The request could not be understood.')

    @app.errorhandler(404)
    def handle_not_found(e):
        return error_response(404, 'Not Found', 'Resource not found.')

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return error_response(405, 'Method Not Allowed', 'Method not allowed for this resource.')

    @app.errorhandler(413)
    def handle_request_too_large(e):
        """Request body exceeds MAX_CONTENT_LENGTH (16KB)."""
        return error_response(413, 'Payload Too Large', 'Request body too large.')

    @app.errorhandler(500)
    def handle_server_error(e):
        """Internal server error: no stack traces or internal details."""
        return error_response(500, 'Internal Server Error', 'An unexpected error occurred.')
