from flask import Blueprint

time_entries_bp = Blueprint('time_entries', __name__)

from . import routes  # noqa: E402,F401
