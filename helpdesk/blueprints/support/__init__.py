"""
Support blueprint: the agent-facing ticket desk
"""
from flask import Blueprint

support_bp = Blueprint('support', __name__)

# Import routes after blueprint creation to avoid circular imports
from . import routes  # noqa: E402,F401
