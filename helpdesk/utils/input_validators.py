"""
Input validation and sanitization utilities
"""
import re
from datetime import datetime
from helpdesk.utils.timezone_utils import to_naive_utc


MAX_SUBJECT_LENGTH = 255
MAX_BODY_LENGTH = 50000
MAX_NAME_LENGTH = 200
MAX_TITLE_LENGTH = 200
MAX_EMAIL_LENGTH = 255
PORTAL_PASSWORD_MIN_LENGTH = 6


def validate_message_body(body, field_name="Message"):
    """
    Validate a ticket message / description body
    Returns: (is_valid, cleaned_body or error_message)
    """
    if body is None:
        return False, f"{field_name} is required"

    body_str = str(body).strip()

    if len(body_str) == 0:
        return False, f"{field_name} cannot be empty"

    if len(body_str) > MAX_BODY_LENGTH:
        return False, f"{field_name} too long (max {MAX_BODY_LENGTH} characters)"

    return True, body_str


def validate_subject(subject):
    """Returns: (is_valid, cleaned_subject or error_message)"""
    if not subject or not str(subject).strip():
        return False, "Subject is required"

    subject_str = str(subject).strip()
    if len(subject_str) > MAX_SUBJECT_LENGTH:
        return False, f"Subject too long (max {MAX_SUBJECT_LENGTH} characters)"

    return True, subject_str


def validate_email(email):
    """
    Validate email format
    Returns: (is_valid, normalized_email or error_message)
    """
    if not email:
        return False, "Email is required"

    email_str = str(email).strip().lower()

    if len(email_str) > MAX_EMAIL_LENGTH:
        return False, f"Email too long (max {MAX_EMAIL_LENGTH} characters)"

    # Basic email pattern
    email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not re.match(email_pattern, email_str):
        return False, "Invalid email format"

    return True, email_str


def validate_password_strength(password):
    """
    Validate an agent password meets security requirements
    Returns: (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    password_str = str(password)

    if len(password_str) < 8:
        return False, "Password must be at least 8 characters long"

    if len(password_str) > 128:
        return False, "Password too long (max 128 characters)"

    has_uppercase = re.search(r'[A-Z]', password_str)
    has_lowercase = re.search(r'[a-z]', password_str)
    has_digit = re.search(r'\d', password_str)
    has_special = re.search(r'[!@#$%^&*()_+\-=\[\]{};:\'",.<>/?\\|`~]', password_str)

    missing_requirements = []
    if not has_uppercase:
        missing_requirements.append("one uppercase letter")
    if not has_lowercase:
        missing_requirements.append("one lowercase letter")
    if not has_digit:
        missing_requirements.append("one number")
    if not has_special:
        missing_requirements.append("one special character")

    if missing_requirements:
        return False, f"Password must contain: {', '.join(missing_requirements)}"

    return True, None


def validate_portal_password(password):
    """
    Customer portal passwords only need a minimum length
    Returns: (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    if len(str(password)) < PORTAL_PASSWORD_MIN_LENGTH:
        return False, f"Password must be at least {PORTAL_PASSWORD_MIN_LENGTH} characters"

    return True, None


def validate_unit_interval(value, field_name):
    """
    Validate a number in [0, 1] (confidence scores, thresholds)
    Returns: (is_valid, float_value or error_message)
    """
    if value is None or isinstance(value, bool):
        return False, f"{field_name} must be a number between 0 and 1"

    try:
        number = float(value)
    except (TypeError, ValueError):
        return False, f"{field_name} must be a number between 0 and 1"

    if number < 0 or number > 1:
        return False, f"{field_name} must be between 0 and 1"

    return True, number


def validate_title(title):
    """Returns: (is_valid, cleaned_title or error_message)"""
    if not title or not str(title).strip():
        return False, "Title is required"

    title_str = str(title).strip()
    if len(title_str) > MAX_TITLE_LENGTH:
        return False, f"Title too long (max {MAX_TITLE_LENGTH} characters)"

    return True, title_str


def parse_datetime(value, field_name):
    """
    Parse an ISO 8601 date or datetime from a request body.
    Offsets are converted to UTC; the result is naive UTC like the columns.

    Returns: (is_valid, datetime or None or error_message)
    """
    if value in (None, ''):
        return True, None

    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return False, f"Invalid {field_name}. Use YYYY-MM-DD or an ISO 8601 datetime"

    if parsed.tzinfo is not None:
        parsed = to_naive_utc(parsed)
    return True, parsed


def validate_hex_color(color):
    """Returns: (is_valid, color or error_message)"""
    if not color or not re.match(r'^#[0-9A-Fa-f]{6}$', str(color)):
        return False, "Color must be a hex value like #1A2B3C"
    return True, str(color)


def sanitize_sql_like_pattern(pattern):
    """
    Escape SQL LIKE wildcards in user input
    """
    if not pattern:
        return ""

    sanitized = pattern.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return sanitized
