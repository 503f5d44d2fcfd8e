"""
Public endpoints backing the client-side CAPTCHA orchestrator.

GET /captcha/challenge issues a fresh self-hosted challenge. Issuance
creates server state, so it carries its own flask-limiter ceiling on
top of the general per-client counter.
"""

from flask import current_app, jsonify

from gatekeeper.api import captcha_bp
from gatekeeper.captcha.verifier import log_captcha_issued, public_captcha_config
from gatekeeper.extensions import challenges, limiter


@captcha_bp.route('/challenge')
@limiter.limit(lambda: current_app.config.get('CAPTCHA_ISSUE_RATE_LIMIT', '30/minute'))
def issue_challenge():
    issued = challenges.issue()
    log_captcha_issued()
    response = jsonify(issued.to_dict())
    # Single-use: a cached challenge would be an already-consumed one.
    response.headers['Cache-Control'] = 'no-store'
    return response


@captcha_bp.route('/config')
def captcha_config():
    return jsonify(public_captcha_config(current_app.config))
