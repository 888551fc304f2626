"""
Task Service
Follow-up tasks for agents: CRUD, notes, subtasks, bulk actions and due-date reminders.
"""
import logging
from datetime import datetime, timedelta
from helpdesk import db
from helpdesk.models.task import Task, TaskNote, Subtask
from helpdesk.models.ticket import Ticket
from helpdesk.models.contact import Contact
from helpdesk.models.company import Company
from helpdesk.models.notification import Notification
from helpdesk.services import notification_service
from helpdesk.services.ticket_service import _ensure_member, _ensure_in_tenant
from helpdesk.utils.input_validators import validate_title, parse_datetime

logger = logging.getLogger(__name__)

BULK_ACTIONS = ['update_status', 'update_priority', 'assign_to', 'set_due_date', 'delete', 'archive']

REMINDER_TYPE = 'task_reminder'


# ========== CREATE / UPDATE ==========

def _clean_fields(tenant_id, data):
    """
    Validate the task fields present in data

    Returns:
        dict: Only the keys present in data, with cleaned values

    Raises:
        ValueError: On the first invalid field
    """
    cleaned = {}

    if 'title' in data:
        is_valid, title = validate_title(data['title'])
        if not is_valid:
            raise ValueError(title)
        cleaned['title'] = title

    if 'description' in data:
        cleaned['description'] = data['description'] or None

    if 'status' in data:
        if data['status'] not in Task.STATUSES:
            raise ValueError(f"Invalid status: {data['status']}")
        cleaned['status'] = data['status']

    if 'priority' in data:
        if data['priority'] not in Task.PRIORITIES:
            raise ValueError(f"Invalid priority: {data['priority']}")
        cleaned['priority'] = data['priority']

    if 'due_date' in data:
        is_valid, due_date = parse_datetime(data['due_date'], 'due_date')
        if not is_valid:
            raise ValueError(due_date)
        cleaned['due_date'] = due_date

    if 'assignee_id' in data:
        if data['assignee_id']:
            _ensure_member(tenant_id, data['assignee_id'])
        cleaned['assignee_id'] = data['assignee_id'] or None

    for key, model, label in (('ticket_id', Ticket, 'Ticket'),
                              ('contact_id', Contact, 'Contact'),
                              ('company_id', Company, 'Company')):
        if key in data:
            record = _ensure_in_tenant(model, tenant_id, data[key] or None, label)
            cleaned[key] = record.id if record else None

    if 'recurrence' in data:
        if data['recurrence'] and data['recurrence'] not in Task.RECURRENCES:
            raise ValueError(f"Invalid recurrence: {data['recurrence']}")
        cleaned['recurrence'] = data['recurrence'] or None

    if 'is_recurring' in data:
        cleaned['is_recurring'] = bool(data['is_recurring'])

    if 'sort_order' in data:
        try:
            cleaned['sort_order'] = int(data['sort_order'])
        except (TypeError, ValueError):
            raise ValueError("sort_order must be an integer")

    return cleaned


def _notify_assignee(task, actor_id=None):
    notification_service.notify(
        task.tenant_id, task.assignee_id, 'task_assigned',
        f'Task "{task.title}" was assigned to you',
        ticket_id=task.ticket_id, task_id=task.id, actor_id=actor_id
    )


def create_task(tenant_id, data, created_by_id=None, **ai_fields):
    """
    Create a task

    Args:
        tenant_id: Owning tenant
        data: Request fields (title required; status, priority, due_date,
            assignee_id, ticket_id, contact_id, company_id, is_recurring, recurrence)
        created_by_id: Author
        **ai_fields: ai_generated, ai_reasoning, ai_confidence, approval_status

    Returns:
        Task: The created task (committed)
    """
    if 'title' not in data:
        raise ValueError("Title is required")

    cleaned = _clean_fields(tenant_id, data)
    status = cleaned.pop('status', 'todo')

    task = Task(
        tenant_id=tenant_id,
        created_by_id=created_by_id,
        status=status,
        completed_at=datetime.utcnow() if status == 'done' else None,
        **cleaned,
        **ai_fields
    )
    db.session.add(task)
    db.session.flush()

    if task.assignee_id:
        _notify_assignee(task, actor_id=created_by_id)

    db.session.commit()
    logger.info(f"Created task {task.id} in tenant {tenant_id}")
    return task


def update_task(task, data, changed_by_id=None):
    """Partial update; nothing is written when any field is invalid"""
    cleaned = _clean_fields(task.tenant_id, data)

    status = cleaned.pop('status', None)
    previous_assignee = task.assignee_id

    for key, value in cleaned.items():
        setattr(task, key, value)
    if status:
        task.set_status(status)
    task.updated_at = datetime.utcnow()

    if task.assignee_id and task.assignee_id != previous_assignee:
        _notify_assignee(task, actor_id=changed_by_id)

    db.session.commit()
    return task


def delete_task(task):
    """Delete a task with its notes, subtasks, time entries and reminders"""
    db.session.delete(task)
    db.session.commit()


def build_task_query(tenant_id, user_id=None, status=None, assignee=None, ticket_id=None,
                     contact_id=None, company_id=None, my_tasks=False, include_closed=True):
    """
    Build the task list query for a tenant

    Args:
        assignee: A user id or 'unassigned'
        my_tasks: Only tasks assigned to user_id

    Returns:
        Query ordered by due date (tasks without one last), then sort_order
    """
    query = Task.query.filter_by(tenant_id=tenant_id)

    if status:
        query = query.filter_by(status=status)
    elif not include_closed:
        query = query.filter(Task.status.notin_(Task.CLOSED_STATUSES))

    if my_tasks:
        query = query.filter_by(assignee_id=user_id)
    elif assignee == 'unassigned':
        query = query.filter(Task.assignee_id.is_(None))
    elif assignee:
        query = query.filter_by(assignee_id=int(assignee))

    if ticket_id:
        query = query.filter_by(ticket_id=ticket_id)
    if contact_id:
        query = query.filter_by(contact_id=contact_id)
    if company_id:
        query = query.filter_by(company_id=company_id)

    return query.order_by(Task.due_date.asc().nullslast(), Task.sort_order.asc(), Task.id.asc())


# ========== NOTES & SUBTASKS ==========

def add_note(task, content, author_id=None):
    content = (content or '').strip()
    if not content:
        raise ValueError("Content is required")

    note = TaskNote(task_id=task.id, author_id=author_id, content=content)
    db.session.add(note)
    task.updated_at = datetime.utcnow()
    db.session.commit()
    return note


def add_subtask(task, title):
    """Append a subtask at the end of the checklist"""
    is_valid, title = validate_title(title)
    if not is_valid:
        raise ValueError(title)

    last = db.session.query(db.func.max(Subtask.sort_order)).filter(Subtask.task_id == task.id).scalar()
    subtask = Subtask(task_id=task.id, title=title, sort_order=(last if last is not None else -1) + 1)
    db.session.add(subtask)
    db.session.commit()
    return subtask


def update_subtask(subtask, data):
    if 'title' in data:
        is_valid, title = validate_title(data['title'])
        if not is_valid:
            raise ValueError(title)
        subtask.title = title

    if 'sort_order' in data:
        try:
            subtask.sort_order = int(data['sort_order'])
        except (TypeError, ValueError):
            raise ValueError("sort_order must be an integer")

    if 'is_completed' in data:
        completed = bool(data['is_completed'])
        if completed and not subtask.is_completed:
            subtask.completed_at = datetime.utcnow()
        elif not completed:
            subtask.completed_at = None
        subtask.is_completed = completed

    db.session.commit()
    return subtask


def delete_subtask(subtask):
    db.session.delete(subtask)
    db.session.commit()


# ========== BULK ==========

def bulk_action(tenant_id, task_ids, action, data=None, changed_by_id=None):
    """
    Apply one action to many tasks. Ids from other tenants are ignored.

    Args:
        action: update_status, update_priority, assign_to, set_due_date,
            delete or archive (archive cancels the tasks)
        data: status, priority, assignee_id or due_date depending on the action

    Returns:
        int: Number of tasks affected
    """
    data = data or {}
    if action not in BULK_ACTIONS:
        raise ValueError(f"Invalid action. Must be one of: {', '.join(BULK_ACTIONS)}")

    if action == 'update_status' and not data.get('status'):
        raise ValueError("Status is required")
    if action == 'update_priority' and not data.get('priority'):
        raise ValueError("Priority is required")

    fields = {
        'update_status': {'status': data.get('status')},
        'update_priority': {'priority': data.get('priority')},
        'assign_to': {'assignee_id': data.get('assignee_id')},
        'set_due_date': {'due_date': data.get('due_date')},
        'archive': {'status': 'cancelled'},
        'delete': {},
    }[action]
    cleaned = _clean_fields(tenant_id, fields)

    tasks = Task.query.filter(Task.tenant_id == tenant_id, Task.id.in_(task_ids)).all()
    now = datetime.utcnow()

    for task in tasks:
        if action == 'delete':
            db.session.delete(task)
            continue

        status = cleaned.get('status')
        for key, value in cleaned.items():
            if key != 'status':
                setattr(task, key, value)
        if status:
            task.set_status(status)
        task.updated_at = now

        if action == 'assign_to' and task.assignee_id:
            _notify_assignee(task, actor_id=changed_by_id)

    db.session.commit()
    logger.info(f"Bulk task {action} on {len(tasks)} tasks in tenant {tenant_id}")
    return len(tasks)


# ========== REMINDERS ==========

def _start_of_day(moment):
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def get_reminders(tenant_id, user_id, now=None):
    """
    Open tasks assigned to the user, bucketed by due date (UTC days)

    Returns:
        dict: overdue, due_today, due_tomorrow, due_this_week (lists of task dicts)
            and a summary of their counts
    """
    now = now or datetime.utcnow()
    today = _start_of_day(now)
    tomorrow = today + timedelta(days=1)
    day_after = today + timedelta(days=2)
    next_week = now + timedelta(days=7)

    tasks = Task.query.filter(
        Task.tenant_id == tenant_id,
        Task.assignee_id == user_id,
        Task.status.notin_(Task.CLOSED_STATUSES),
        Task.due_date.isnot(None)
    ).order_by(Task.due_date.asc()).all()

    buckets = {'overdue': [], 'due_today': [], 'due_tomorrow': [], 'due_this_week': []}
    for task in tasks:
        if task.due_date < now:
            buckets['overdue'].append(task)
        elif task.due_date < tomorrow:
            buckets['due_today'].append(task)
        elif task.due_date < day_after:
            buckets['due_tomorrow'].append(task)
        elif task.due_date <= next_week:
            buckets['due_this_week'].append(task)

    summary = {name: len(items) for name, items in buckets.items()}
    summary['total'] = sum(summary.values())

    result = {name: [task.to_dict() for task in items] for name, items in buckets.items()}
    result['summary'] = summary
    return result


def send_reminders(tenant_id, now=None):
    """
    Notify assignees of open tasks that are overdue or due by the end of tomorrow.
    A task gets at most one reminder per day.

    Returns:
        dict: notifications_created, tasks_checked
    """
    now = now or datetime.utcnow()
    today = _start_of_day(now)
    tomorrow = today + timedelta(days=1)

    tasks = Task.query.filter(
        Task.tenant_id == tenant_id,
        Task.assignee_id.isnot(None),
        Task.status.notin_(Task.CLOSED_STATUSES),
        Task.due_date.isnot(None),
        Task.due_date < today + timedelta(days=2)
    ).all()

    created = 0
    for task in tasks:
        already_sent = Notification.query.filter(
            Notification.task_id == task.id,
            Notification.user_id == task.assignee_id,
            Notification.type == REMINDER_TYPE,
            Notification.created_at >= today
        ).first()
        if already_sent:
            continue

        if task.due_date < now:
            title, body = 'Task overdue', f'Task "{task.title}" is overdue.'
        elif task.due_date < tomorrow:
            title, body = 'Task due today', f'Task "{task.title}" is due today.'
        else:
            title, body = 'Task due tomorrow', f'Task "{task.title}" is due tomorrow.'

        if notification_service.notify(tenant_id, task.assignee_id, REMINDER_TYPE, title,
                                       body=body, ticket_id=task.ticket_id, task_id=task.id):
            created += 1

    db.session.commit()
    logger.info(f"Sent {created} task reminders for tenant {tenant_id} ({len(tasks)} tasks checked)")
    return {'notifications_created': created, 'tasks_checked': len(tasks)}
