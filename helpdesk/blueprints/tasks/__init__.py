"""
Tasks blueprint: follow-up work with notes, subtasks and reminders
"""
from flask import Blueprint

tasks_bp = Blueprint('tasks', __name__)

# Import routes after blueprint creation to avoid circular imports
from . import routes  # noqa: E402,F401
