"""
Tests for timezone utility functions and business-hours arithmetic
"""
from datetime import datetime
import pytz
from helpdesk.utils.timezone_utils import (
    convert_utc_to_user_tz,
    convert_user_tz_to_utc,
    format_datetime_for_user,
    get_timezone_offset,
    is_valid_timezone
)
from helpdesk.services.sla_service import add_business_minutes


def test_utc_to_pacific_conversion():
    """Test converting UTC datetime to Pacific timezone"""
    utc_time = pytz.UTC.localize(datetime(2024, 12, 1, 20, 0, 0))  # 8pm UTC

    pacific_time = convert_utc_to_user_tz(utc_time, 'America/Los_Angeles')

    # Should be 12pm PST (UTC-8 in winter)
    assert pacific_time.hour == 12
    assert pacific_time.minute == 0


def test_pacific_to_utc_conversion():
    pacific_tz = pytz.timezone('America/Los_Angeles')
    pacific_time = pacific_tz.localize(datetime(2024, 12, 1, 12, 0, 0))

    utc_time = convert_user_tz_to_utc(pacific_time, 'America/Los_Angeles')

    assert utc_time.hour == 20
    assert utc_time.minute == 0


def test_dst_transitions():
    """Test timezone conversion during DST transitions"""
    # Summer time (PDT = UTC-7)
    summer_utc = pytz.UTC.localize(datetime(2024, 7, 1, 19, 0, 0))
    assert convert_utc_to_user_tz(summer_utc, 'America/Los_Angeles').hour == 12

    # Winter time (PST = UTC-8)
    winter_utc = pytz.UTC.localize(datetime(2024, 12, 1, 20, 0, 0))
    assert convert_utc_to_user_tz(winter_utc, 'America/Los_Angeles').hour == 12


def test_format_datetime_for_user():
    utc_time = pytz.UTC.localize(datetime(2024, 12, 1, 20, 0, 0))

    formatted = format_datetime_for_user(utc_time, 'America/Los_Angeles', '%I:%M %p %Z')

    assert 'PST' in formatted
    assert '12:00' in formatted


def test_get_timezone_offset():
    offset = get_timezone_offset('America/Los_Angeles')

    # UTC-08:00 or UTC-07:00 depending on DST
    assert offset.startswith('UTC-0')


def test_none_datetime_handling():
    assert convert_utc_to_user_tz(None, 'America/Los_Angeles') is None
    assert convert_user_tz_to_utc(None, 'America/Los_Angeles') is None
    assert format_datetime_for_user(None, 'America/Los_Angeles') == ''


def test_invalid_timezone_handling():
    """Unknown timezones leave the datetime in UTC"""
    utc_time = pytz.UTC.localize(datetime(2024, 12, 1, 20, 0, 0))

    assert convert_utc_to_user_tz(utc_time, 'Invalid/Timezone') == utc_time
    assert not is_valid_timezone('Invalid/Timezone')
    assert is_valid_timezone('Europe/Berlin')


def test_naive_datetime_handling():
    """Naive datetimes are treated as UTC"""
    pacific_time = convert_utc_to_user_tz(datetime(2024, 12, 1, 20, 0, 0), 'America/Los_Angeles')

    assert pacific_time.hour == 12


class TestBusinessMinutes:
    """Working-time arithmetic used for SLA deadlines"""

    def test_within_same_day(self):
        # Monday 10:00 UTC + 2h of business time
        start = datetime(2024, 12, 2, 10, 0)
        assert add_business_minutes(start, 120) == datetime(2024, 12, 2, 12, 0)

    def test_rolls_over_to_next_business_day(self):
        # Monday 16:00 + 2h: one hour Monday, one hour Tuesday
        start = datetime(2024, 12, 2, 16, 0)
        assert add_business_minutes(start, 120) == datetime(2024, 12, 3, 10, 0)

    def test_skips_weekend(self):
        # Friday 16:30 + 1h: 30 minutes Friday, 30 minutes Monday
        start = datetime(2024, 12, 6, 16, 30)
        assert add_business_minutes(start, 60) == datetime(2024, 12, 9, 9, 30)

    def test_starts_before_opening(self):
        # Monday 06:00 counts from 09:00
        start = datetime(2024, 12, 2, 6, 0)
        assert add_business_minutes(start, 30) == datetime(2024, 12, 2, 9, 30)

    def test_uses_tenant_timezone(self):
        # 17:00 UTC is 09:00 in Los Angeles (PST), so a full 8h day is available
        start = datetime(2024, 12, 2, 17, 0)
        due = add_business_minutes(start, 60, tz_name='America/Los_Angeles')
        assert due == datetime(2024, 12, 2, 18, 0)
