"""
Tests for the self-hosted challenge: issuance, single-use verification
and expiry, plus the HTTP endpoint that serves it.
"""

import threading
from datetime import datetime

import pytest

from gatekeeper.captcha.challenge import (
    ChallengeService,
    ChallengeStatus,
    MemoryChallengeStore,
)


class FakeClock:

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    service = ChallengeService(
        secret_key='test-secret',
        ttl=300,
        clock=clock,
        renderer=lambda text: f'image:{len(text)}',
    )
    service.answer_factory = lambda: 'AB23'
    return service


class TestIssue:
    """Tests for challenge issuance."""

    def test_issue_returns_id_image_and_expiry(self, service, clock):
        issued = service.issue()
        assert issued.id
        assert issued.image == 'image:4'
        assert issued.expires_at == clock.now + 300

    def test_ids_are_unique(self, service):
        assert service.issue().id != service.issue().id

    def test_answer_is_not_stored_in_clear(self, service):
        issued = service.issue()
        stored = service.store._challenges[issued.id]
        assert 'AB23' not in stored.answer_hash
        assert stored.consumed is False

    def test_generated_answer_uses_alphabet_and_length(self):
        service = ChallengeService(secret_key='k', length=6, alphabet='XY')
        answer = service.generate_answer()
        assert len(answer) == 6
        assert set(answer) <= {'X', 'Y'}

    def test_to_dict_uses_iso_expiry(self, service):
        body = service.issue().to_dict()
        assert set(body) == {'captchaId', 'image', 'expiresAt'}
        assert body['expiresAt'].endswith('Z')
        datetime.fromisoformat(body['expiresAt'].replace('Z', '+00:00'))

    def test_real_renderer_produces_png_data_uri(self):
        issued = ChallengeService(secret_key='k').issue()
        assert issued.image.startswith('data:image/png;base64,')


class TestVerify:
    """A challenge is consumed by its first verify(), whatever the outcome."""

    def test_correct_answer_verifies(self, service):
        issued = service.issue()
        outcome = service.verify(issued.id, 'AB23')
        assert outcome.ok is True
        assert outcome.status is ChallengeStatus.VERIFIED

    def test_answer_is_case_and_whitespace_insensitive(self, service):
        issued = service.issue()
        assert service.verify(issued.id, ' ab23 ').ok is True

    def test_second_verify_fails_even_after_success(self, service):
        issued = service.issue()
        assert service.verify(issued.id, 'AB23').ok is True

        outcome = service.verify(issued.id, 'AB23')
        assert outcome.ok is False
        assert outcome.status is ChallengeStatus.UNKNOWN

    def test_wrong_then_correct_fails(self, service):
        """One guess per image: a wrong answer burns the challenge."""
        issued = service.issue()
        assert service.verify(issued.id, 'ZZZZ').status is ChallengeStatus.REJECTED
        assert service.verify(issued.id, 'AB23').ok is False

    def test_expired_challenge_fails(self, service, clock):
        issued = service.issue()
        clock.now += 301
        outcome = service.verify(issued.id, 'AB23')
        assert outcome.ok is False
        assert outcome.status is ChallengeStatus.EXPIRED

    def test_expiry_boundary_is_exclusive(self, service, clock):
        issued = service.issue()
        clock.now = issued.expires_at
        assert service.verify(issued.id, 'AB23').status is ChallengeStatus.EXPIRED

    @pytest.mark.parametrize('challenge_id', [None, '', 'never-issued'])
    def test_unknown_id_fails(self, service, challenge_id):
        assert service.verify(challenge_id, 'AB23').status is ChallengeStatus.UNKNOWN

    def test_missing_answer_fails(self, service):
        issued = service.issue()
        assert service.verify(issued.id, None).status is ChallengeStatus.REJECTED

    def test_concurrent_verifies_consume_once(self, service):
        issued = service.issue()
        results = []

        def worker():
            results.append(service.verify(issued.id, 'AB23').ok)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1


class TestStore:

    def test_sweep_past_high_water_mark(self, clock):
        service = ChallengeService(
            secret_key='k',
            ttl=10,
            clock=clock,
            renderer=lambda text: '',
            store=MemoryChallengeStore(sweep_threshold=2, clock=clock),
        )
        service.issue()
        service.issue()
        clock.now += 20
        fresh = service.issue()

        assert len(service.store) == 1
        assert fresh.id in service.store._challenges


class TestChallengeEndpoint:
    """Tests for GET /captcha/challenge and GET /captcha/config."""

    def test_issue_endpoint(self, client):
        response = client.get('/captcha/challenge')
        assert response.status_code == 200
        assert response.headers['Cache-Control'] == 'no-store'

        body = response.get_json()
        assert body['captchaId']
        assert body['image'].startswith('data:image/png;base64,')
        assert body['expiresAt'].endswith('Z')

    def test_config_endpoint_exposes_no_secrets(self, app, client):
        app.config['RECAPTCHA_V2_SITE_KEY'] = 'site-v2'
        app.config['RECAPTCHA_V2_SECRET_KEY'] = 'secret-v2'

        body = client.get('/captcha/config').get_json()
        assert body == {
            'captchaType': 'custom',
            'recaptchaV3SiteKey': None,
            'recaptchaV2SiteKey': 'site-v2',
            'challengeLength': 4,
        }
        assert b'secret-v2' not in client.get('/captcha/config').data
