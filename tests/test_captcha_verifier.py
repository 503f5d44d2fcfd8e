"""
Tests for server-side captcha verification.

reCAPTCHA siteverify calls are replaced with unittest.mock; the custom
provider runs against the real ChallengeService with a pinned answer.
"""

from unittest import mock

import pytest
import requests

from gatekeeper.auth.models import DEMO_EMAIL, DEMO_PASSWORD
from gatekeeper.captcha.types import ProviderType
from gatekeeper.security.errors import (
    CaptchaExpired,
    CaptchaMismatch,
    CaptchaProviderUnavailable,
    CaptchaRequired,
)


def _siteverify(payload):
    response = mock.Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


@pytest.fixture
def http(captcha_app, monkeypatch):
    """Replace the verifier's requests session for the duration of a test."""
    fake = mock.Mock()
    monkeypatch.setattr(captcha_app.extensions['captcha_verifier'], 'http', fake)
    return fake


@pytest.fixture
def verifier(captcha_app):
    with captcha_app.test_request_context('/auth/login', method='POST'):
        yield captcha_app.extensions['captcha_verifier']


class TestRecaptcha:
    """Tests for v3/v2 dispatch to siteverify."""

    def test_v3_success(self, captcha_app, verifier, http):
        captcha_app.config['RECAPTCHA_V3_SECRET_KEY'] = 'v3-secret'
        http.post.return_value = _siteverify({'success': True, 'score': 0.9})

        provider = verifier.verify('tok', '203.0.113.5', captcha_type='recaptcha-v3')

        assert provider is ProviderType.RECAPTCHA_V3
        args, kwargs = http.post.call_args
        assert args[0] == captcha_app.config['RECAPTCHA_VERIFY_URL']
        assert kwargs['data'] == {'secret': 'v3-secret', 'response': 'tok', 'remoteip': '203.0.113.5'}
        assert kwargs['timeout'] == captcha_app.config['RECAPTCHA_TIMEOUT']

    def test_v3_low_score_rejected(self, captcha_app, verifier, http):
        captcha_app.config['RECAPTCHA_V3_SECRET_KEY'] = 'v3-secret'
        http.post.return_value = _siteverify({'success': True, 'score': 0.3})

        with pytest.raises(CaptchaMismatch):
            verifier.verify('tok', captcha_type='recaptcha-v3')

    def test_v2_uses_v2_secret(self, captcha_app, verifier, http):
        captcha_app.config['RECAPTCHA_V2_SECRET_KEY'] = 'v2-secret'
        captcha_app.config['RECAPTCHA_V3_SECRET_KEY'] = 'v3-secret'
        http.post.return_value = _siteverify({'success': True})

        assert verifier.verify('tok', captcha_type='recaptcha-v2') is ProviderType.RECAPTCHA_V2
        assert http.post.call_args.kwargs['data']['secret'] == 'v2-secret'

    def test_unsuccessful_token_rejected(self, captcha_app, verifier, http):
        captcha_app.config['RECAPTCHA_V2_SECRET_KEY'] = 'v2-secret'
        http.post.return_value = _siteverify({'success': False, 'error-codes': ['invalid-input-response']})

        with pytest.raises(CaptchaMismatch):
            verifier.verify('tok', captcha_type='recaptcha-v2')

    def test_missing_secret_fails_safe(self, verifier, http):
        with pytest.raises(CaptchaMismatch):
            verifier.verify('tok', captcha_type='recaptcha-v3')
        http.post.assert_not_called()

    @pytest.mark.parametrize('error', [requests.ConnectionError('down'), requests.Timeout('slow')])
    def test_network_failure_is_unavailable(self, captcha_app, verifier, http, error):
        captcha_app.config['RECAPTCHA_V2_SECRET_KEY'] = 'v2-secret'
        http.post.side_effect = error

        with pytest.raises(CaptchaProviderUnavailable) as excinfo:
            verifier.verify('tok', captcha_type='recaptcha-v2')
        assert excinfo.value.code == 503

    def test_malformed_response_is_unavailable(self, captcha_app, verifier, http):
        captcha_app.config['RECAPTCHA_V2_SECRET_KEY'] = 'v2-secret'
        response = _siteverify(None)
        response.json.side_effect = ValueError('not json')
        http.post.return_value = response

        with pytest.raises(CaptchaProviderUnavailable):
            verifier.verify('tok', captcha_type='recaptcha-v2')


class TestDispatch:

    def test_empty_token_is_required(self, verifier):
        with pytest.raises(CaptchaRequired):
            verifier.verify('', captcha_type='custom')

    def test_unknown_type_rejected(self, verifier):
        with pytest.raises(CaptchaMismatch):
            verifier.verify('tok', captcha_type='hcaptcha')

    def test_type_defaults_to_configured(self, captcha_app, verifier):
        issued = captcha_app.extensions['challenges'].issue()
        with pytest.raises(CaptchaMismatch) as excinfo:
            verifier.verify('nope', captcha_id=issued.id)
        assert excinfo.value.provider == 'custom'

    def test_custom_requires_captcha_id(self, verifier):
        with pytest.raises(CaptchaMismatch):
            verifier.verify('AB23', captcha_type='custom')

    def test_custom_consumed_challenge_is_expired(self, captcha_app, verifier, pinned_answer):
        issued = captcha_app.extensions['challenges'].issue()
        assert verifier.verify(pinned_answer, captcha_id=issued.id, captcha_type='custom') is ProviderType.CUSTOM

        with pytest.raises(CaptchaExpired):
            verifier.verify(pinned_answer, captcha_id=issued.id, captcha_type='custom')


class TestCaptchaRequiredEndpoint:
    """End-to-end: login guarded by captcha_required."""

    def _challenge(self, client):
        return client.get('/captcha/challenge').get_json()

    def test_login_without_token_is_rejected(self, captcha_client):
        response = captcha_client.post('/auth/login', json={'email': DEMO_EMAIL, 'password': DEMO_PASSWORD})

        assert response.status_code == 400
        body = response.get_json()
        assert body['reason'] == 'captcha_required'
        assert body['statusCode'] == 400

    def test_login_with_correct_answer(self, captcha_client, pinned_answer):
        challenge = self._challenge(captcha_client)
        response = captcha_client.post('/auth/login', json={
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': pinned_answer.lower(),
            'captchaId': challenge['captchaId'],
            'captchaType': 'custom',
        })
        assert response.status_code == 200
        assert response.get_json()['accessToken']

    def test_wrong_answer_returns_fresh_challenge(self, captcha_client, pinned_answer):
        challenge = self._challenge(captcha_client)
        response = captcha_client.post('/auth/login', json={
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': 'ZZZZ',
            'captchaId': challenge['captchaId'],
            'captchaType': 'custom',
        })

        assert response.status_code == 400
        body = response.get_json()
        assert body['reason'] == 'captcha_mismatch'
        assert body['message'] == 'Security verification failed. Please try again.'
        assert body['challenge']['captchaId'] != challenge['captchaId']

    def test_replayed_answer_is_expired(self, captcha_client, pinned_answer):
        challenge = self._challenge(captcha_client)
        payload = {
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': pinned_answer,
            'captchaId': challenge['captchaId'],
            'captchaType': 'custom',
        }
        assert captcha_client.post('/auth/login', json=payload).status_code == 200

        response = captcha_client.post('/auth/login', json=payload)
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'captcha_expired'

    def test_numeric_token_is_mismatch_and_keeps_challenge(self, captcha_app, captcha_client, pinned_answer):
        challenge = self._challenge(captcha_client)
        response = captcha_client.post('/auth/login', json={
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': 1234,
            'captchaId': challenge['captchaId'],
            'captchaType': 'custom',
        })

        assert response.status_code == 400
        body = response.get_json()
        assert body['reason'] == 'captcha_mismatch'
        assert body['challenge']['captchaId']
        # The malformed attempt did not consume the challenge.
        outcome = captcha_app.extensions['challenges'].verify(challenge['captchaId'], pinned_answer)
        assert outcome.ok is True

    @pytest.mark.parametrize('field, value', [
        ('captchaId', ['a', 'b']),
        ('captchaType', 7),
    ])
    def test_non_string_fields_are_rejected(self, captcha_client, pinned_answer, field, value):
        challenge = self._challenge(captcha_client)
        payload = {
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': pinned_answer,
            'captchaId': challenge['captchaId'],
            'captchaType': 'custom',
        }
        payload[field] = value

        response = captcha_client.post('/auth/login', json=payload)
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'captcha_mismatch'

    def test_form_encoded_fields_are_read(self, captcha_client, pinned_answer):
        challenge = self._challenge(captcha_client)
        response = captcha_client.post('/auth/login', data={
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': pinned_answer,
            'captchaId': challenge['captchaId'],
            'captchaType': 'custom',
        })
        assert response.status_code == 200

    def test_siteverify_outage_is_503(self, captcha_app, captcha_client, http):
        captcha_app.config['RECAPTCHA_V3_SECRET_KEY'] = 'v3-secret'
        http.post.side_effect = requests.ConnectionError('down')

        response = captcha_client.post('/auth/login', json={
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': 'tok',
            'captchaType': 'recaptcha-v3',
        })
        assert response.status_code == 503
        assert response.get_json()['reason'] == 'captcha_unavailable'

    def test_optional_mode_skips_missing_token(self, client):
        """With CAPTCHA_REQUIRED off, no token means no check."""
        response = client.post('/auth/login', json={'email': DEMO_EMAIL, 'password': DEMO_PASSWORD})
        assert response.status_code == 200

    def test_optional_mode_still_verifies_sent_token(self, client):
        response = client.post('/auth/login', json={
            'email': DEMO_EMAIL,
            'password': DEMO_PASSWORD,
            'captchaToken': 'ZZZZ',
            'captchaId': 'never-issued',
            'captchaType': 'custom',
        })
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'captcha_expired'
