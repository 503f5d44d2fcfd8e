"""
Pytest fixtures for the request-integrity pipeline test suite.

Provides multiple app configurations for testing each control in
isolation:
- app/client: Base test config (CSRF, rate limiting, captcha all off)
- csrf_app/csrf_client: double-submit CSRF enabled
- rate_limit_app/rate_limit_client: rate limiting enabled
- captcha_app/captcha_client: captcha required on login/registration
"""

import pytest

from gatekeeper import create_app
from gatekeeper.auth.models import DEMO_EMAIL, DEMO_PASSWORD
from gatekeeper.config import (
    CaptchaTestConfig,
    CSRFTestConfig,
    RateLimitTestConfig,
    TestConfig,
)
from gatekeeper.extensions import challenges

DEMO_CREDENTIALS = {'email': DEMO_EMAIL, 'password': DEMO_PASSWORD}


@pytest.fixture
def app(tmp_path):
    """Create a Flask app with the base test configuration."""
    yield create_app(TestConfig, instance_path=str(tmp_path))


@pytest.fixture
def client(app):
    """Test client for the base app configuration."""
    return app.test_client()


@pytest.fixture
def csrf_app(tmp_path):
    """Create a Flask app with CSRF protection enabled."""
    yield create_app(CSRFTestConfig, instance_path=str(tmp_path))


@pytest.fixture
def csrf_client(csrf_app):
    """Test client with CSRF protection enabled."""
    return csrf_app.test_client()


@pytest.fixture
def rate_limit_app(tmp_path):
    """Create a Flask app with rate limiting enabled."""
    yield create_app(RateLimitTestConfig, instance_path=str(tmp_path))


@pytest.fixture
def rate_limit_client(rate_limit_app):
    """Test client with rate limiting enabled."""
    return rate_limit_app.test_client()


@pytest.fixture
def captcha_app(tmp_path):
    """Create a Flask app that requires a captcha token on sensitive endpoints."""
    yield create_app(CaptchaTestConfig, instance_path=str(tmp_path))


@pytest.fixture
def captcha_client(captcha_app):
    """Test client with captcha enforcement enabled."""
    return captcha_app.test_client()


@pytest.fixture
def pinned_answer():
    """Make every issued challenge carry a known answer."""
    challenges.answer_factory = lambda: 'AB23'
    yield 'AB23'
    challenges.answer_factory = None


@pytest.fixture
def authenticated_client(app, client):
    """Test client that is already logged in (session + CSRF cookie)."""
    response = client.post('/auth/login', json=DEMO_CREDENTIALS)
    assert response.status_code == 200
    return client
