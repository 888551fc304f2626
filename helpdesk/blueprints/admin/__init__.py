"""
Admin blueprint for workspace owners and admins
Tags, automations, SLAs, groups, agents, canned responses, knowledge base,
banner, apps and AI configuration
"""
from flask import Blueprint

# Create admin blueprint
admin_bp = Blueprint('admin', __name__)

# Import routes after blueprint creation to avoid circular imports
from . import routes, content_routes, ai_routes  # noqa: E402,F401
