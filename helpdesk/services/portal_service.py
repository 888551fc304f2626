"""
Customer portal service: contact accounts and self-service tickets
"""
from datetime import datetime
from helpdesk import db
from helpdesk.models.contact import Contact
from helpdesk.models.ticket import Ticket
from helpdesk.services import automation_engine, notification_service, ticket_service

REOPEN_STATUSES = ['closed', 'resolved', 'pending']


# ========== ACCOUNTS ==========

def register_contact(tenant_id, email, password, name=None):
    """
    Create a portal account for a contact

    An existing contact without a password gets one (and is marked verified);
    an existing contact with a password cannot register again.

    Returns:
        Contact
    """
    contact = Contact.query.filter_by(tenant_id=tenant_id, email=email).first()

    if contact and contact.has_portal_account:
        raise ValueError("An account with this email already exists")

    if not contact:
        contact = Contact(tenant_id=tenant_id, email=email)
        db.session.add(contact)

    contact.set_password(password)
    contact.name = name or contact.name
    contact.is_verified = True
    contact.last_login_at = datetime.utcnow()

    db.session.commit()
    return contact


def authenticate_contact(tenant_id, email, password):
    """
    Returns:
        Contact on success

    Raises:
        ValueError: Same message for an unknown email and a wrong password
    """
    contact = Contact.query.filter_by(tenant_id=tenant_id, email=email).first()

    if not contact or not contact.check_password(password):
        raise ValueError("Invalid email or password")

    contact.last_login_at = datetime.utcnow()
    db.session.commit()
    return contact


def change_password(contact, current_password, new_password):
    if not contact.check_password(current_password):
        raise ValueError("Current password is incorrect")

    contact.set_password(new_password)
    db.session.commit()


def update_profile(contact, data):
    if 'name' in data:
        contact.name = (data['name'] or '').strip() or None
    if 'phone' in data:
        contact.phone = (data['phone'] or '').strip() or None
    db.session.commit()
    return contact


# ========== TICKETS ==========

def list_contact_tickets(contact, status=None):
    query = Ticket.query.filter_by(tenant_id=contact.tenant_id, contact_id=contact.id)
    if status:
        query = query.filter(Ticket.status == status)
    return query.order_by(Ticket.last_activity_at.desc(), Ticket.id.desc()).all()


def get_contact_ticket(contact, ticket_id):
    """A ticket only if it belongs to this contact; foreign tickets look missing"""
    return Ticket.query.filter_by(id=ticket_id, tenant_id=contact.tenant_id, contact_id=contact.id).first()


def create_portal_ticket(contact, subject, description, priority='medium', category=None):
    """
    Open a ticket from the portal. The description is also stored as the
    first contact message.
    """
    ticket = ticket_service.create_ticket(
        contact.tenant_id,
        subject,
        description,
        contact_id=contact.id,
        priority=priority,
        category=category,
        source='portal',
        status='open',
        run_automations=False
    )

    ticket_service.add_message(
        ticket.id,
        description,
        author_type='contact',
        contact_author_id=contact.id
    )

    automation_engine.run_automations(automation_engine.TRIGGER_TICKET_CREATED, ticket)
    return ticket


def add_contact_reply(contact, ticket, body):
    """
    Add a customer reply. Replying to a closed, resolved or pending ticket
    reopens it, which runs ticket_updated automations.
    """
    previous = ticket.snapshot()

    message = ticket_service.add_message(
        ticket.id,
        body,
        author_type='contact',
        contact_author_id=contact.id
    )

    if ticket.status in REOPEN_STATUSES:
        ticket_service.change_status(ticket.id, 'open', reason="Customer replied")
        automation_engine.run_automations(automation_engine.TRIGGER_TICKET_UPDATED, ticket, previous)

    if ticket.assignee_id:
        notification_service.notify(
            ticket.tenant_id, ticket.assignee_id, 'customer_reply',
            f"New reply on {ticket.ticket_number}",
            body=body[:200], ticket_id=ticket.id
        )
        db.session.commit()

    return message
