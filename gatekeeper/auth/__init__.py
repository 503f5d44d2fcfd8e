"""
Authentication blueprint: login, registration, refresh, logout and
password reset request. Mints the CSRF pair and bearer token that the
rest of the pipeline checks.
"""

from flask import Blueprint

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

# Import routes to register them with the blueprint.
# This import must be at the bottom to avoid circular imports.
from gatekeeper.auth import routes  # noqa: E402, F401
