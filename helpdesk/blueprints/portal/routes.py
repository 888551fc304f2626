"""
Customer portal API, addressed by workspace slug: /portal/<tenant_slug>/...

Contacts sign in here with their own credentials; the agent session is never used.
"""
from flask import request, jsonify, g, session, current_app
from helpdesk import db, limiter
from helpdesk.blueprints.portal import portal_bp
from helpdesk.models.ticket import Ticket
from helpdesk.services import portal_service
from helpdesk.utils.input_validators import (
    validate_email, validate_portal_password, validate_subject, validate_message_body, MAX_NAME_LENGTH
)
from helpdesk.utils.security_decorators import (
    portal_login_required, get_portal_tenant, get_portal_contact, PORTAL_SESSION_KEY
)


def _own_ticket(ticket_id):
    """The signed-in contact's ticket; anything else is reported as missing"""
    ticket = portal_service.get_contact_ticket(g.portal_contact, ticket_id)
    if not ticket:
        return None, (jsonify({'error': 'Ticket not found'}), 404)
    return ticket, None


# ========== AUTH ==========

@portal_bp.route('/<tenant_slug>/auth/register', methods=['POST'])
@limiter.limit("10 per hour")
def register(tenant_slug):
    tenant = get_portal_tenant(tenant_slug)
    data = request.get_json() or {}

    is_valid, email = validate_email(data.get('email'))
    if not is_valid:
        return jsonify({'error': email}), 400

    is_valid, error = validate_portal_password(data.get('password'))
    if not is_valid:
        return jsonify({'error': error}), 400

    name = (data.get('name') or '').strip() or None
    if name and len(name) > MAX_NAME_LENGTH:
        return jsonify({'error': f'Name too long (max {MAX_NAME_LENGTH} characters)'}), 400

    try:
        contact = portal_service.register_contact(tenant.id, email, data['password'], name=name)
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Portal registration failed for tenant {tenant.id}: {e}")
        return jsonify({'error': 'Registration failed'}), 500

    session[PORTAL_SESSION_KEY] = contact.id
    session.permanent = True
    return jsonify({'success': True, 'contact': contact.to_portal_dict()}), 201


@portal_bp.route('/<tenant_slug>/auth/login', methods=['POST'])
@limiter.limit("10 per minute")
def login(tenant_slug):
    tenant = get_portal_tenant(tenant_slug)
    data = request.get_json() or {}

    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    try:
        contact = portal_service.authenticate_contact(tenant.id, email, password)
    except ValueError as e:
        return jsonify({'error': str(e)}), 401

    session[PORTAL_SESSION_KEY] = contact.id
    session.permanent = True
    return jsonify({'success': True, 'contact': contact.to_portal_dict()})


@portal_bp.route('/<tenant_slug>/auth/logout', methods=['POST'])
def logout(tenant_slug):
    session.pop(PORTAL_SESSION_KEY, None)
    return jsonify({'success': True})


@portal_bp.route('/<tenant_slug>/auth/session')
def current_session(tenant_slug):
    """Who is signed in to this portal (if anyone)"""
    tenant = get_portal_tenant(tenant_slug)
    contact = get_portal_contact(tenant.id)
    return jsonify({
        'authenticated': contact is not None,
        'contact': contact.to_portal_dict() if contact else None,
        'tenant': {'name': tenant.name, 'slug': tenant.slug, 'logo_url': tenant.logo_url}
    })


# ========== PROFILE ==========

@portal_bp.route('/<tenant_slug>/profile')
@portal_login_required
def get_profile(tenant_slug):
    return jsonify({'contact': g.portal_contact.to_portal_dict()})


@portal_bp.route('/<tenant_slug>/profile', methods=['PATCH'])
@portal_login_required
def update_profile(tenant_slug):
    data = request.get_json() or {}

    if len(data.get('name') or '') > MAX_NAME_LENGTH:
        return jsonify({'error': f'Name too long (max {MAX_NAME_LENGTH} characters)'}), 400

    contact = portal_service.update_profile(g.portal_contact, data)
    return jsonify({'success': True, 'contact': contact.to_portal_dict()})


@portal_bp.route('/<tenant_slug>/profile/password', methods=['POST'])
@portal_login_required
def change_password(tenant_slug):
    data = request.get_json() or {}

    is_valid, error = validate_portal_password(data.get('new_password'))
    if not is_valid:
        return jsonify({'error': error}), 400

    try:
        portal_service.change_password(g.portal_contact, data.get('current_password') or '', data['new_password'])
        return jsonify({'success': True})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400


# ========== TICKETS ==========

@portal_bp.route('/<tenant_slug>/tickets')
@portal_login_required
def list_tickets(tenant_slug):
    """The contact's tickets, most recent activity first"""
    status = request.args.get('status')
    if status and status not in Ticket.STATUSES:
        return jsonify({'error': 'Invalid status'}), 400

    tickets = portal_service.list_contact_tickets(g.portal_contact, status=status)
    return jsonify({'tickets': [t.to_portal_dict() for t in tickets]})


@portal_bp.route('/<tenant_slug>/tickets', methods=['POST'])
@portal_login_required
def create_ticket(tenant_slug):
    data = request.get_json() or {}

    is_valid, subject = validate_subject(data.get('subject'))
    if not is_valid:
        return jsonify({'error': subject}), 400

    is_valid, description = validate_message_body(data.get('description'), field_name="Description")
    if not is_valid:
        return jsonify({'error': description}), 400

    priority = data.get('priority') or 'medium'
    if priority not in Ticket.PRIORITIES:
        return jsonify({'error': f'Invalid priority. Must be one of: {", ".join(Ticket.PRIORITIES)}'}), 400

    try:
        ticket = portal_service.create_portal_ticket(
            g.portal_contact, subject, description, priority=priority, category=data.get('category')
        )
        return jsonify({'success': True, 'ticket': ticket.to_portal_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Portal ticket creation failed for contact {g.portal_contact.id}: {e}")
        return jsonify({'error': 'Failed to create ticket'}), 500


@portal_bp.route('/<tenant_slug>/tickets/<int:ticket_id>')
@portal_login_required
def get_ticket(tenant_slug, ticket_id):
    ticket, error = _own_ticket(ticket_id)
    if error:
        return error

    data = ticket.to_portal_dict()
    data['messages'] = [m.to_portal_dict() for m in ticket.public_messages()]
    return jsonify({'ticket': data})


@portal_bp.route('/<tenant_slug>/tickets/<int:ticket_id>/messages')
@portal_login_required
def list_messages(tenant_slug, ticket_id):
    ticket, error = _own_ticket(ticket_id)
    if error:
        return error

    return jsonify({'messages': [m.to_portal_dict() for m in ticket.public_messages()]})


@portal_bp.route('/<tenant_slug>/tickets/<int:ticket_id>/messages', methods=['POST'])
@portal_login_required
def reply(tenant_slug, ticket_id):
    """Customer reply; reopens closed, resolved and pending tickets"""
    ticket, error = _own_ticket(ticket_id)
    if error:
        return error

    data = request.get_json() or {}
    is_valid, body = validate_message_body(data.get('body'))
    if not is_valid:
        return jsonify({'error': body}), 400

    try:
        message = portal_service.add_contact_reply(g.portal_contact, ticket, body)
        return jsonify({
            'success': True,
            'message': message.to_portal_dict(),
            'ticket_status': ticket.status
        }), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Portal reply failed on ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to send reply'}), 500
