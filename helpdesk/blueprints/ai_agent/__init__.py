"""
AI agent API
Authenticated with a per-workspace bearer key instead of a session cookie
"""
from flask import Blueprint

ai_agent_bp = Blueprint('ai_agent', __name__)

from . import routes  # noqa: E402,F401
