"""
Time tracking on tickets and tasks
"""
import logging
from datetime import datetime
from helpdesk import db
from helpdesk.models.task import Task
from helpdesk.models.ticket import Ticket
from helpdesk.models.time_entry import TimeEntry
from helpdesk.services.ticket_service import _ensure_in_tenant
from helpdesk.utils.input_validators import parse_datetime

logger = logging.getLogger(__name__)


def _clean_fields(data):
    cleaned = {}

    if 'duration_minutes' in data:
        duration = data['duration_minutes']
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
            raise ValueError("Duration must be greater than 0")
        cleaned['duration_minutes'] = int(round(duration)) or 1

    if 'description' in data:
        cleaned['description'] = (data['description'] or '').strip() or None

    if 'is_billable' in data:
        cleaned['is_billable'] = bool(data['is_billable'])

    if 'hourly_rate' in data:
        rate = data['hourly_rate']
        if rate is not None and (isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate < 0):
            raise ValueError("hourly_rate must be a positive number")
        cleaned['hourly_rate'] = float(rate) if rate is not None else None

    for key in ('date', 'started_at', 'ended_at'):
        if key in data:
            is_valid, value = parse_datetime(data[key], key)
            if not is_valid:
                raise ValueError(value)
            cleaned[key] = value

    return cleaned


def _check_times(entry):
    if entry.started_at and entry.ended_at and entry.ended_at < entry.started_at:
        raise ValueError("ended_at must be after started_at")


def log_time(tenant_id, user_id, data):
    """
    Log time against a ticket or a task

    Args:
        data: ticket_id or task_id (exactly one), duration_minutes (required),
            description, date (defaults to now), is_billable (defaults to true),
            hourly_rate, started_at, ended_at

    Returns:
        TimeEntry (committed)
    """
    ticket_id = data.get('ticket_id')
    task_id = data.get('task_id')
    if bool(ticket_id) == bool(task_id):
        raise ValueError("Provide either ticket_id or task_id")
    if 'duration_minutes' not in data:
        raise ValueError("Duration must be greater than 0")

    ticket = _ensure_in_tenant(Ticket, tenant_id, ticket_id, 'Ticket')
    task = _ensure_in_tenant(Task, tenant_id, task_id, 'Task')

    cleaned = _clean_fields(data)
    entry = TimeEntry(
        tenant_id=tenant_id,
        user_id=user_id,
        ticket_id=ticket.id if ticket else None,
        task_id=task.id if task else None,
        **cleaned
    )
    if entry.date is None:
        entry.date = datetime.utcnow()
    _check_times(entry)

    db.session.add(entry)
    db.session.commit()
    logger.info(f"User {user_id} logged {entry.duration_minutes}m in tenant {tenant_id} (entry {entry.id})")
    return entry


def update_entry(entry, data):
    """Partial update of an entry's time fields; its ticket or task cannot change"""
    cleaned = _clean_fields(data)
    if 'date' in cleaned and cleaned['date'] is None:
        raise ValueError("date cannot be empty")

    for key, value in cleaned.items():
        setattr(entry, key, value)
    _check_times(entry)

    db.session.commit()
    return entry


def delete_entry(entry):
    db.session.delete(entry)
    db.session.commit()


def build_entry_query(tenant_id, ticket_id=None, task_id=None, user_id=None, start=None, end=None):
    """Entries newest first; start is inclusive, end exclusive"""
    query = TimeEntry.query.filter_by(tenant_id=tenant_id)
    if ticket_id:
        query = query.filter_by(ticket_id=ticket_id)
    if task_id:
        query = query.filter_by(task_id=task_id)
    if user_id:
        query = query.filter_by(user_id=user_id)
    if start:
        query = query.filter(TimeEntry.date >= start)
    if end:
        query = query.filter(TimeEntry.date < end)
    return query.order_by(TimeEntry.date.desc(), TimeEntry.id.desc())


def summarize(entries):
    """Totals for a list of entries: minutes, billable minutes and billable amount"""
    total = sum(entry.duration_minutes for entry in entries)
    billable = sum(entry.duration_minutes for entry in entries if entry.is_billable)
    amount = sum(entry.amount or 0 for entry in entries)
    return {
        'total_minutes': total,
        'billable_minutes': billable,
        'billable_amount': round(amount, 2),
    }
