"""
Timezone utility functions
"""
import logging
from datetime import datetime
import pytz

logger = logging.getLogger(__name__)


# Common timezones offered in workspace settings
COMMON_TIMEZONES = [
    # US
    'America/New_York',
    'America/Chicago',
    'America/Denver',
    'America/Los_Angeles',
    'America/Phoenix',
    'Pacific/Honolulu',

    # Europe
    'Europe/London',
    'Europe/Paris',
    'Europe/Berlin',
    'Europe/Madrid',

    # Asia
    'Asia/Tokyo',
    'Asia/Singapore',
    'Asia/Dubai',
    'Asia/Kolkata',

    # Australia
    'Australia/Sydney',

    'UTC',
]


def is_valid_timezone(tz_name):
    return tz_name in pytz.all_timezones_set


def get_timezone_offset(tz_name):
    """Get current UTC offset for a timezone (e.g., 'UTC-08:00')"""
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        return "UTC+00:00"
    offset = datetime.now(tz).strftime('%z')
    return f"UTC{offset[:3]}:{offset[3:]}"


def convert_utc_to_user_tz(utc_datetime, user_timezone):
    """Convert naive-UTC (or aware) datetime to the given timezone"""
    if not utc_datetime:
        return None

    try:
        user_tz = pytz.timezone(user_timezone)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {user_timezone!r}, leaving datetime in UTC")
        return utc_datetime

    if utc_datetime.tzinfo is None:
        utc_datetime = pytz.UTC.localize(utc_datetime)

    return utc_datetime.astimezone(user_tz)


def convert_user_tz_to_utc(local_datetime, user_timezone):
    """Convert a local datetime in the given timezone to aware UTC"""
    if not local_datetime:
        return None

    try:
        user_tz = pytz.timezone(user_timezone)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {user_timezone!r}, treating datetime as UTC")
        user_tz = pytz.UTC

    # If naive datetime, localize it
    if local_datetime.tzinfo is None:
        local_datetime = user_tz.localize(local_datetime)

    return local_datetime.astimezone(pytz.UTC)


def to_naive_utc(aware_datetime):
    """Strip tzinfo after converting to UTC (columns store naive UTC)"""
    return aware_datetime.astimezone(pytz.UTC).replace(tzinfo=None)


def format_datetime_for_user(utc_datetime, user_timezone, format_str='%Y-%m-%d %I:%M %p %Z'):
    """Format UTC datetime for display in the given timezone"""
    if not utc_datetime:
        return ''

    local_dt = convert_utc_to_user_tz(utc_datetime, user_timezone)
    if local_dt:
        return local_dt.strftime(format_str)
    return utc_datetime.strftime(format_str)
