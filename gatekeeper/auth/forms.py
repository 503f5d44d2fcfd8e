"""
WTForms form definitions with input validation.

Forms accept JSON or form-encoded bodies (flask-wtf wraps either).
Their own CSRF field is disabled: the double-submit cookie check runs
before any view, and login/registration are exempt from it by design of
the token lifecycle (no token exists yet).

Input constraints:
- Email: Required, valid format, max 254 chars (RFC 5321 §4.5.3.1.3)
- Password: Required, max 128 chars (prevents bcrypt DoS via huge inputs)
"""

from flask_wtf import FlaskForm
from wtforms import EmailField, PasswordField
from wtforms.validators import DataRequired, Email, Length


class JsonForm(FlaskForm):

    class Meta:
        csrf = False


class LoginForm(JsonForm):
    """Login form with email and password validation."""

    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
    )

    password = PasswordField(
        'Password',
        validators=[
            DataRequired(message='Password is required.'),
            Length(max=128, message='Password is too long.'),
        ],
    )


class RegistrationForm(LoginForm):
    """Registration adds a minimum password length on top of login's checks."""

    password = PasswordField(
        'Password',
        validators=[
            DataRequired(message='Password is required.'),
            # NIST SP 800-63B §5.1.1: at least 8 characters.
            Length(min=8, max=128, message='Password must be 8 to 128 characters.'),
        ],
    )


class ForgotPasswordForm(JsonForm):

    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
    )
