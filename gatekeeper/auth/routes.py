"""
Authentication routes: JSON login, registration, refresh, logout and
password reset request.

Request flow (login POST):
1. CSRF: exempt path, passes through (no token exists yet)
2. Rate limiter: sensitive path, 5 per 15 minutes per client
3. captcha_required: token verified server-side before anything else
4. WTForms validation: input constraints
5. Timing-safe credential verification: bcrypt ALWAYS runs
6. Session + CSRF pair + bearer token minted on success
"""

from datetime import datetime, timezone
from functools import wraps

from flask import g, jsonify, request, session

from gatekeeper import error_response
from gatekeeper.auth import auth_bp
from gatekeeper.auth.forms import ForgotPasswordForm, LoginForm, RegistrationForm
from gatekeeper.auth.models import create_user
from gatekeeper.auth.security import (
    hash_password,
    log_login_failed,
    log_login_success,
    log_logout,
    log_registration,
    verify_credentials,
)
from gatekeeper.captcha.verifier import captcha_required
from gatekeeper.extensions import bearer_tokens, csrf
from gatekeeper.security.bearer import parse_bearer_header


# --- Decorators ---

def current_subject():
    """Email of the session user or of a verified bearer token, else None."""
    if 'user_email' in session:
        return session['user_email']
    subject = g.get('bearer_subject')
    if subject is None:
        subject = bearer_tokens.verify(parse_bearer_header(request.headers.get('Authorization')))
        if subject is not None:
            g.bearer_subject = subject
    return subject


def login_required(f):
    """Reject with 401 unless the request carries a session or a valid bearer token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_subject() is None:
            return error_response(401, 'Unauthorized', 'Authentication required.')
        return f(*args, **kwargs)
    return decorated_function


def _establish(email: str, status: int = 200, message: str = 'Login successful.'):
    """Start a fresh session and mint the CSRF pair and bearer token."""
    # Session fixation prevention: new session before storing identity.
    session.clear()
    session['user_email'] = email
    session['login_time'] = datetime.now(timezone.utc).isoformat()
    session['login_ip'] = request.remote_addr
    session.permanent = True

    response = jsonify({
        'message': message,
        'accessToken': bearer_tokens.issue(email),
        'expiresIn': bearer_tokens.max_age,
    })
    response.status_code = status
    csrf.issue(response)
    return response


def _invalid(form):
    return error_response(400, 'Bad Request', 'Invalid input.', errors=form.errors)


# --- Routes ---

@auth_bp.route('/login', methods=['POST'])
@captcha_required
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return _invalid(form)

    email = form.email.data.strip().lower()
    if not verify_credentials(email, form.password.data):
        log_login_failed(email)
        # Generic error: never "User not found" or "Wrong password".
        return error_response(401, 'Unauthorized', 'Invalid email or password.')

    log_login_success(email)
    return _establish(email)


@auth_bp.route('/register', methods=['POST'])
@captcha_required
def register():
    form = RegistrationForm()
    if not form.validate_on_submit():
        return _invalid(form)

    email = form.email.data.strip().lower()
    if not create_user(email, hash_password(form.password.data)):
        return error_response(409, 'Conflict', 'Unable to register with these details.')

    log_registration(email)
    return _establish(email, status=201, message='Registration successful.')


@auth_bp.route('/refresh', methods=['POST'])
@login_required
def refresh():
    """Rotate the CSRF pair and issue a new bearer token."""
    email = current_subject()
    response = jsonify({
        'message': 'Token refreshed.',
        'accessToken': bearer_tokens.issue(email),
        'expiresIn': bearer_tokens.max_age,
    })
    csrf.issue(response)
    return response


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """POST-only; clears the server-side session and the CSRF cookie."""
    email = current_subject() or 'unknown'
    session.clear()
    log_logout(email)

    response = jsonify({'message': 'You have been logged out successfully.'})
    csrf.clear(response)
    return response


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    """Same answer whether or not the email is registered; delivery happens elsewhere."""
    form = ForgotPasswordForm()
    if not form.validate_on_submit():
        return _invalid(form)
    return jsonify({'message': 'If that email is registered, a reset link has been sent.'})
