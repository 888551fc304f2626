"""
Auth blueprint: agent sign-in, sign-out and registration pages
"""
from flask import Blueprint

auth_bp = Blueprint('auth', __name__)

# Import routes after blueprint creation to avoid circular imports
from . import routes  # noqa: E402,F401
