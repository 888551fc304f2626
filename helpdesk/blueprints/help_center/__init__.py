"""
Public help center: published knowledge base for each workspace
"""
from flask import Blueprint

help_center_bp = Blueprint('help_center', __name__)

from . import routes  # noqa: E402,F401
