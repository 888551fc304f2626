"""
Ticket Service for managing support tickets
"""
import logging
from datetime import datetime
from sqlalchemy import func
from helpdesk import db
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.models.ticket_status_history import TicketStatusHistory
from helpdesk.models.contact import Contact
from helpdesk.models.company import Company
from helpdesk.models.group import Group
from helpdesk.models.counter import Counter
from helpdesk.models.tag import Tag
from helpdesk.models.task import Task
from helpdesk.models.user import User
from helpdesk.services import automation_engine, notification_service, sla_service
from helpdesk.utils.input_validators import sanitize_sql_like_pattern

logger = logging.getLogger(__name__)

TICKET_NUMBER_COUNTER = 'ticket_number'


# ========== NUMBERING ==========

def _highest_ticket_number(tenant_id):
    """Largest numeric suffix among the tenant's existing ticket numbers"""
    last = db.session.query(Ticket.ticket_number).filter(
        Ticket.tenant_id == tenant_id
    ).order_by(func.length(Ticket.ticket_number).desc(), Ticket.ticket_number.desc()).first()

    if not last:
        return 0
    try:
        return int(last[0].split('-')[1])
    except (IndexError, ValueError):
        return 0


def generate_ticket_number(tenant_id):
    """
    Reserve the next ticket number for a tenant
    Format: TKT-00001

    The counter row is locked for the rest of the transaction. If it has fallen
    behind the highest existing number (imported tickets), it is synced up first.
    """
    counter = Counter.query.filter_by(
        tenant_id=tenant_id,
        name=TICKET_NUMBER_COUNTER
    ).with_for_update().first()

    if not counter:
        counter = Counter(tenant_id=tenant_id, name=TICKET_NUMBER_COUNTER, value=0)
        db.session.add(counter)

    highest = _highest_ticket_number(tenant_id)
    if (counter.value or 0) < highest:
        counter.value = highest

    counter.value = (counter.value or 0) + 1
    db.session.flush()

    return f"TKT-{counter.value:05d}"


# ========== VALIDATION HELPERS ==========

def _ensure_member(tenant_id, user_id):
    user = db.session.get(User, user_id)
    if not user or not user.has_tenant_access(tenant_id):
        raise ValueError("Assignee is not a member of this workspace")
    return user


def _ensure_in_tenant(model, tenant_id, record_id, label):
    if record_id is None:
        return None
    record = model.query.filter_by(id=record_id, tenant_id=tenant_id).first()
    if not record:
        raise ValueError(f"{label} not found")
    return record


def find_or_create_contact(tenant_id, email, name=None):
    """
    Upsert a contact by (tenant, email)

    Returns:
        Contact: Existing or newly created contact (flushed, not committed)
    """
    email = email.strip().lower()
    contact = Contact.query.filter_by(tenant_id=tenant_id, email=email).first()

    if contact:
        if name and not contact.name:
            contact.name = name
        return contact

    contact = Contact(tenant_id=tenant_id, email=email, name=name)

    # Attach to a company whose domain matches the email
    domain = email.split('@')[-1]
    company = Company.query.filter_by(tenant_id=tenant_id, domain=domain).first()
    if company:
        contact.company_id = company.id

    db.session.add(contact)
    db.session.flush()
    return contact


# ========== CREATE ==========

def create_ticket(tenant_id, subject, description='', run_automations=True, **kwargs):
    """
    Create a new support ticket

    Args:
        tenant_id: The tenant creating the ticket
        subject: Ticket subject/title
        description: Ticket description
        run_automations: Run ticket_created automations after commit
        **kwargs: Additional ticket fields (contact_id, contact_email, contact_name,
            company_id, assignee_id, group_id, priority, status, source, category,
            tag_ids, ai_generated, approval_status, created_by_id)

    Returns:
        Ticket: The created ticket
    """
    priority = kwargs.get('priority') or 'medium'
    status = kwargs.get('status') or 'new'
    source = kwargs.get('source') or 'web'

    if priority not in Ticket.PRIORITIES:
        raise ValueError(f"Invalid priority: {priority}")
    if status not in Ticket.STATUSES:
        raise ValueError(f"Invalid status: {status}")
    if source not in Ticket.SOURCES:
        raise ValueError(f"Invalid source: {source}")

    contact = _ensure_in_tenant(Contact, tenant_id, kwargs.get('contact_id'), 'Contact')
    if not contact and kwargs.get('contact_email'):
        contact = find_or_create_contact(tenant_id, kwargs['contact_email'], kwargs.get('contact_name'))

    company = _ensure_in_tenant(Company, tenant_id, kwargs.get('company_id'), 'Company')
    group = _ensure_in_tenant(Group, tenant_id, kwargs.get('group_id'), 'Group')

    assignee_id = kwargs.get('assignee_id')
    if assignee_id:
        _ensure_member(tenant_id, assignee_id)

    ticket = Ticket(
        tenant_id=tenant_id,
        ticket_number=generate_ticket_number(tenant_id),
        subject=subject,
        description=description or '',
        status=status,
        priority=priority,
        category=kwargs.get('category'),
        source=source,
        contact_id=contact.id if contact else None,
        company_id=company.id if company else (contact.company_id if contact else None),
        assignee_id=assignee_id,
        group_id=group.id if group else None,
        ai_generated=bool(kwargs.get('ai_generated', False)),
        approval_status=kwargs.get('approval_status')
    )
    db.session.add(ticket)
    db.session.flush()

    sla_service.apply_sla(ticket)

    for tag_id in kwargs.get('tag_ids') or []:
        tag = _ensure_in_tenant(Tag, tenant_id, tag_id, 'Tag')
        if tag not in ticket.tags:
            ticket.tags.append(tag)

    # Create initial status history entry
    history = TicketStatusHistory(
        ticket=ticket,
        from_status=None,
        to_status=ticket.status,
        changed_by_id=kwargs.get('created_by_id')
    )
    db.session.add(history)

    if assignee_id:
        notification_service.notify(
            tenant_id, assignee_id, 'ticket_assigned',
            f"{ticket.ticket_number} was assigned to you",
            body=ticket.subject, ticket_id=ticket.id, actor_id=kwargs.get('created_by_id')
        )

    db.session.commit()

    if run_automations:
        automation_engine.run_automations(automation_engine.TRIGGER_TICKET_CREATED, ticket)

    return ticket


# ========== UPDATE ==========

def _clean_update(tenant_id, data):
    """
    Validate an update payload before anything on the ticket is touched

    Returns:
        dict: Only the keys present in `data`, with ids resolved to tenant records
    """
    cleaned = {}

    if 'subject' in data:
        if not data['subject'] or not str(data['subject']).strip():
            raise ValueError("Subject is required")
        cleaned['subject'] = str(data['subject']).strip()
    if 'description' in data:
        cleaned['description'] = data['description'] or ''
    if 'category' in data:
        cleaned['category'] = data['category'] or None
    if 'priority' in data:
        if data['priority'] not in Ticket.PRIORITIES:
            raise ValueError(f"Invalid priority: {data['priority']}")
        cleaned['priority'] = data['priority']
    if 'status' in data:
        if data['status'] not in Ticket.STATUSES:
            raise ValueError(f"Invalid status: {data['status']}")
        cleaned['status'] = data['status']
    if 'assignee_id' in data:
        assignee_id = data['assignee_id'] or None
        if assignee_id:
            _ensure_member(tenant_id, assignee_id)
        cleaned['assignee_id'] = assignee_id

    for key, model, label in (('contact_id', Contact, 'Contact'),
                              ('company_id', Company, 'Company'),
                              ('group_id', Group, 'Group')):
        if key in data:
            record = _ensure_in_tenant(model, tenant_id, data[key] or None, label)
            cleaned[key] = record.id if record else None

    return cleaned


def _apply_update(ticket, cleaned, changed_by_id=None, reason=None):
    """Write a validated payload to the ticket without committing"""
    for field in ('subject', 'description', 'category', 'contact_id', 'company_id', 'group_id'):
        if field in cleaned:
            setattr(ticket, field, cleaned[field])

    if 'priority' in cleaned and cleaned['priority'] != ticket.priority:
        ticket.priority = cleaned['priority']
        sla_service.apply_sla(ticket)

    ticket.updated_at = datetime.utcnow()
    ticket.last_activity_at = datetime.utcnow()

    if 'assignee_id' in cleaned and cleaned['assignee_id'] != ticket.assignee_id:
        assign_ticket(ticket.id, cleaned['assignee_id'], changed_by_id=changed_by_id, commit=False)
    if 'status' in cleaned and cleaned['status'] != ticket.status:
        change_status(ticket.id, cleaned['status'], changed_by_id=changed_by_id, reason=reason, commit=False)


def update_ticket(ticket, data, changed_by_id=None, run_automations=True):
    """
    Partial update of a ticket followed by ticket_updated automations.
    The whole payload is validated first and committed in one transaction,
    so a rejected update leaves the ticket untouched.

    Args:
        ticket: Ticket to update
        data: Dict with any of subject, description, priority, category, status,
            contact_id, company_id, group_id, assignee_id (and an optional reason)
        changed_by_id: Acting agent

    Returns:
        tuple: (ticket, automation result dict or None)
    """
    cleaned = _clean_update(ticket.tenant_id, data)
    previous = ticket.snapshot()

    _apply_update(ticket, cleaned, changed_by_id=changed_by_id, reason=data.get('reason'))
    db.session.commit()

    result = None
    if run_automations and ticket.snapshot() != previous:
        result = automation_engine.run_automations(automation_engine.TRIGGER_TICKET_UPDATED, ticket, previous)

    return ticket, result


def assign_ticket(ticket_id, assignee_id, changed_by_id=None, commit=True):
    """
    Assign a ticket to an agent (or unassign with None)

    Args:
        ticket_id: ID of the ticket
        assignee_id: ID of the user to assign to
        changed_by_id: ID of user making the change
        commit: False leaves the change in the caller's transaction

    Returns:
        Ticket: The updated ticket
    """
    ticket = db.session.get(Ticket, ticket_id)
    if not ticket:
        raise ValueError("Ticket not found")

    if assignee_id:
        _ensure_member(ticket.tenant_id, assignee_id)

    ticket.assignee_id = assignee_id
    ticket.updated_at = datetime.utcnow()
    ticket.last_activity_at = datetime.utcnow()

    if assignee_id:
        notification_service.notify(
            ticket.tenant_id, assignee_id, 'ticket_assigned',
            f"{ticket.ticket_number} was assigned to you",
            body=ticket.subject, ticket_id=ticket.id, actor_id=changed_by_id
        )

        # Automatically change status from 'new' to 'open' when assigned
        if ticket.status == 'new':
            change_status(ticket_id, 'open', changed_by_id=changed_by_id, reason="Assigned to agent", commit=False)

    if commit:
        db.session.commit()
    return ticket


def change_status(ticket_id, new_status, changed_by_id=None, reason=None, commit=True):
    """
    Change ticket status and track in history

    Args:
        ticket_id: ID of the ticket
        new_status: New status value
        changed_by_id: ID of user making the change (None for customer/automation)
        reason: Optional reason for the change
        commit: False leaves the change in the caller's transaction

    Returns:
        Ticket: The updated ticket
    """
    ticket = db.session.get(Ticket, ticket_id)
    if not ticket:
        raise ValueError("Ticket not found")

    if new_status not in Ticket.STATUSES:
        raise ValueError(f"Invalid status: {new_status}")

    old_status = ticket.status

    # Don't record if status hasn't changed
    if old_status == new_status:
        return ticket

    ticket.status = new_status
    ticket.updated_at = datetime.utcnow()
    ticket.last_activity_at = datetime.utcnow()

    # Set resolved/closed timestamps; reopening clears them
    if new_status == 'resolved' and not ticket.resolved_at:
        ticket.resolved_at = datetime.utcnow()
    elif new_status == 'closed' and not ticket.closed_at:
        ticket.closed_at = datetime.utcnow()
        if not ticket.resolved_at:
            ticket.resolved_at = datetime.utcnow()
    elif new_status in Ticket.OPEN_STATUSES:
        ticket.resolved_at = None
        ticket.closed_at = None

    history = TicketStatusHistory(
        ticket_id=ticket_id,
        from_status=old_status,
        to_status=new_status,
        changed_by_id=changed_by_id,
        reason=reason
    )
    db.session.add(history)

    if commit:
        db.session.commit()
    return ticket


# ========== MESSAGES ==========

def add_message(ticket_id, body, author_id=None, author_type='agent', is_internal=False, is_resolution=False, **kwargs):
    """
    Add a reply, internal note or system event to a ticket

    Args:
        ticket_id: ID of the ticket
        body: Message text
        author_id: ID of the user (agent or AI user)
        author_type: 'agent', 'contact', 'system' or 'ai'
        is_internal: Internal note, never shown to the customer
        is_resolution: Whether this message resolves the ticket
        **kwargs: contact_author_id, author_name, approval_status

    Returns:
        TicketMessage: The created message
    """
    ticket = db.session.get(Ticket, ticket_id)
    if not ticket:
        raise ValueError("Ticket not found")

    if author_type not in TicketMessage.AUTHOR_TYPES:
        raise ValueError(f"Invalid author type: {author_type}")

    message = TicketMessage(
        ticket_id=ticket_id,
        author_id=author_id,
        contact_author_id=kwargs.get('contact_author_id'),
        author_type=author_type,
        author_name=kwargs.get('author_name'),
        body=body,
        is_internal=is_internal,
        is_resolution=is_resolution,
        approval_status=kwargs.get('approval_status')
    )
    db.session.add(message)

    ticket.updated_at = datetime.utcnow()
    ticket.last_activity_at = datetime.utcnow()

    # Track first response time
    if author_type == 'agent' and not is_internal and not ticket.first_response_at:
        ticket.first_response_at = datetime.utcnow()

    # Auto-resolve ticket if this is a resolution message
    if is_resolution and ticket.status not in ['resolved', 'closed']:
        change_status(ticket_id, 'resolved', changed_by_id=author_id, reason="Marked as resolved via reply")

    db.session.commit()
    return message


# ========== MERGE / DELETE ==========

def merge_tickets(source_ticket_id, target_ticket_id, merged_by_id=None):
    """
    Merge one ticket into another

    Args:
        source_ticket_id: Ticket to merge (will be closed)
        target_ticket_id: Ticket to merge into
        merged_by_id: User performing the merge

    Returns:
        Ticket: The target ticket
    """
    if source_ticket_id == target_ticket_id:
        raise ValueError("Cannot merge a ticket into itself")

    source = db.session.get(Ticket, source_ticket_id)
    target = db.session.get(Ticket, target_ticket_id)

    if not source or not target:
        raise ValueError("Ticket not found")

    if source.tenant_id != target.tenant_id:
        raise ValueError("Cannot merge tickets from different tenants")

    source.merged_into_id = target.id

    add_message(
        target.id,
        f"Ticket {source.ticket_number} was merged into this ticket.",
        author_id=merged_by_id,
        author_type='system',
        is_internal=True
    )

    change_status(
        source.id,
        'closed',
        changed_by_id=merged_by_id,
        reason=f"Merged into {target.ticket_number}"
    )

    db.session.commit()
    return target


def delete_ticket(ticket):
    """Hard delete a ticket with its messages, history, time entries and tag links; its tasks are kept"""
    Ticket.query.filter_by(merged_into_id=ticket.id).update({'merged_into_id': None}, synchronize_session=False)
    Task.query.filter_by(ticket_id=ticket.id).update({'ticket_id': None}, synchronize_session=False)
    db.session.delete(ticket)
    db.session.commit()


# ========== TAGS ==========

def add_tag(ticket, tag_id):
    tag = _ensure_in_tenant(Tag, ticket.tenant_id, tag_id, 'Tag')
    if tag in ticket.tags:
        raise ValueError("Tag already added to this ticket")
    ticket.tags.append(tag)
    ticket.updated_at = datetime.utcnow()
    db.session.commit()
    return tag


def remove_tag(ticket, tag_id):
    tag = _ensure_in_tenant(Tag, ticket.tenant_id, tag_id, 'Tag')
    if tag not in ticket.tags:
        raise ValueError("Tag is not on this ticket")
    ticket.tags.remove(tag)
    ticket.updated_at = datetime.utcnow()
    db.session.commit()
    return tag


# ========== LISTING ==========

VIEWS = ['all', 'my', 'unassigned', 'open', 'pending', 'resolved', 'closed', 'overdue']


def build_ticket_query(tenant_id, user_id=None, view='all', status=None, priority=None,
                       assignee=None, group_id=None, tag_id=None, search=None):
    """
    Build the filtered ticket query for list views

    Args:
        view: One of VIEWS
        assignee: User id, or 'unassigned'

    Returns:
        Query ordered newest first
    """
    query = Ticket.query.filter_by(tenant_id=tenant_id)

    if view == 'my':
        query = query.filter(Ticket.assignee_id == user_id, Ticket.status != 'closed')
    elif view == 'unassigned':
        query = query.filter(Ticket.assignee_id.is_(None), Ticket.status.in_(['new', 'open', 'pending']))
    elif view == 'open':
        query = query.filter(Ticket.status.in_(['new', 'open']))
    elif view in ('pending', 'resolved', 'closed'):
        query = query.filter(Ticket.status == view)
    elif view == 'overdue':
        query = query.filter(
            Ticket.resolution_due_at < datetime.utcnow(),
            Ticket.status.notin_(['resolved', 'closed'])
        )

    if status:
        query = query.filter(Ticket.status == status)
    if priority:
        query = query.filter(Ticket.priority == priority)
    if assignee:
        if assignee == 'unassigned':
            query = query.filter(Ticket.assignee_id.is_(None))
        else:
            query = query.filter(Ticket.assignee_id == int(assignee))
    if group_id:
        query = query.filter(Ticket.group_id == int(group_id))
    if tag_id:
        query = query.filter(Ticket.tags.any(Tag.id == int(tag_id)))
    if search:
        pattern = f'%{sanitize_sql_like_pattern(search)}%'
        query = query.filter(
            db.or_(
                Ticket.ticket_number.ilike(pattern, escape='\\'),
                Ticket.subject.ilike(pattern, escape='\\'),
                Ticket.description.ilike(pattern, escape='\\')
            )
        )

    return query.order_by(Ticket.created_at.desc(), Ticket.id.desc())


def bulk_update(tenant_id, ticket_ids, data, changed_by_id=None):
    """
    Apply the same status/priority/assignee change to many tickets.
    Validated once up front and committed together; automations run afterwards.

    Returns:
        int: Number of tickets updated
    """
    allowed = {key: data[key] for key in ('status', 'priority', 'assignee_id') if key in data}
    if not allowed:
        raise ValueError("Nothing to update")

    cleaned = _clean_update(tenant_id, allowed)

    tickets = Ticket.query.filter(Ticket.tenant_id == tenant_id, Ticket.id.in_(ticket_ids)).all()
    previous = {}
    for ticket in tickets:
        previous[ticket.id] = ticket.snapshot()
        _apply_update(ticket, cleaned, changed_by_id=changed_by_id)
    db.session.commit()

    for ticket in tickets:
        if ticket.snapshot() != previous[ticket.id]:
            automation_engine.run_automations(
                automation_engine.TRIGGER_TICKET_UPDATED, ticket, previous[ticket.id]
            )

    return len(tickets)


# ========== METRICS ==========

def get_ticket_metrics(tenant_id):
    """
    Get ticket metrics for dashboard

    Args:
        tenant_id: The tenant ID

    Returns:
        dict: Metrics dictionary
    """
    # Count by status
    status_counts = dict(
        db.session.query(Ticket.status, func.count(Ticket.id))
        .filter_by(tenant_id=tenant_id)
        .group_by(Ticket.status)
        .all()
    )

    # Count by priority
    priority_counts = dict(
        db.session.query(Ticket.priority, func.count(Ticket.id))
        .filter_by(tenant_id=tenant_id)
        .group_by(Ticket.priority)
        .all()
    )

    open_count = Ticket.query.filter_by(tenant_id=tenant_id).filter(
        Ticket.status.in_(Ticket.OPEN_STATUSES)
    ).count()

    unassigned_count = Ticket.query.filter_by(tenant_id=tenant_id, assignee_id=None).filter(
        Ticket.status.in_(['new', 'open', 'pending'])
    ).count()

    overdue_count = Ticket.query.filter_by(tenant_id=tenant_id).filter(
        Ticket.resolution_due_at < datetime.utcnow(),
        Ticket.status.notin_(['resolved', 'closed'])
    ).count()

    # Average response time (for tickets with first response)
    tickets_with_response = Ticket.query.filter_by(tenant_id=tenant_id).filter(
        Ticket.first_response_at.isnot(None)
    ).all()

    avg_response_time = None
    if tickets_with_response:
        total_seconds = sum([
            (t.first_response_at - t.created_at).total_seconds()
            for t in tickets_with_response
        ])
        avg_response_time = total_seconds / len(tickets_with_response) / 3600  # In hours

    return {
        'status_counts': status_counts,
        'priority_counts': priority_counts,
        'open_count': open_count,
        'unassigned_count': unassigned_count,
        'overdue_count': overdue_count,
        'avg_response_time_hours': avg_response_time
    }
