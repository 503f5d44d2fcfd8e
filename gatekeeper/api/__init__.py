"""
API and challenge blueprints: the protected resource surface and the
public endpoints the client-side CAPTCHA orchestrator talks to.
"""

from flask import Blueprint

api_bp = Blueprint('api', __name__)

captcha_bp = Blueprint('captcha', __name__, url_prefix='/captcha')

# Import routes to register them with the blueprints.
# This import must be at the bottom to avoid circular imports.
from gatekeeper.api import captcha, routes  # noqa: E402, F401
