from flask import request, jsonify, g, current_app
from helpdesk import db
from helpdesk.blueprints.ai_agent import ai_agent_bp
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.models.task import Task
from helpdesk.services import ai_agent_service
from helpdesk.utils.input_validators import (
    validate_subject, validate_message_body, validate_email, validate_unit_interval, validate_title, parse_datetime
)
from helpdesk.utils.security_decorators import require_ai_api_key


def _validate_ai_fields(data):
    """Reasoning and confidence are required on every AI action"""
    reasoning = (data.get('ai_reasoning') or '').strip()
    if not reasoning:
        return False, 'ai_reasoning is required'

    is_valid, confidence = validate_unit_interval(data.get('ai_confidence'), 'ai_confidence')
    if not is_valid:
        return False, confidence

    return True, {
        'ai_reasoning': reasoning,
        'ai_confidence': confidence,
        'ai_model': data.get('ai_model'),
        'ai_context': data.get('ai_context')
    }


def _status_message(subject, approval_status):
    if approval_status == 'auto_approved':
        return f"{subject} created and auto-approved"
    return f"{subject} created, pending approval"


# ========== TICKETS ==========

@ai_agent_bp.route('/tickets', methods=['POST'])
@require_ai_api_key
def create_ticket():
    """
    Create a ticket as the AI agent

    Body: subject, description, priority, contact_email, contact_name,
    ai_reasoning, ai_confidence, ai_model, ai_context
    """
    data = request.get_json() or {}

    is_valid, subject = validate_subject(data.get('subject'))
    if not is_valid:
        return jsonify({'error': subject}), 400

    is_valid, ai_fields = _validate_ai_fields(data)
    if not is_valid:
        return jsonify({'error': ai_fields}), 400

    priority = data.get('priority') or 'medium'
    if priority not in Ticket.PRIORITIES:
        return jsonify({'error': f'Invalid priority. Must be one of: {", ".join(Ticket.PRIORITIES)}'}), 400

    contact_email = None
    if data.get('contact_email'):
        is_valid, contact_email = validate_email(data['contact_email'])
        if not is_valid:
            return jsonify({'error': contact_email}), 400

    payload = dict(
        ai_fields,
        subject=subject,
        description=data.get('description') or '',
        priority=priority,
        contact_email=contact_email,
        contact_name=data.get('contact_name'),
        assignee_id=data.get('assignee_id'),
        group_id=data.get('group_id')
    )

    try:
        ticket, log = ai_agent_service.create_ai_ticket(g.current_tenant, payload)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        current_app.logger.error(f"AI agent ticket creation failed for tenant {g.current_tenant.id}: {e}")
        return jsonify({'error': 'Failed to create ticket'}), 500

    return jsonify({
        'success': True,
        'ticket': ticket.to_dict(),
        'actionLogId': log.id,
        'approvalStatus': log.approval_status,
        'statusMessage': _status_message('Ticket', log.approval_status)
    }), 201


@ai_agent_bp.route('/tickets')
@require_ai_api_key
def list_tickets():
    """Tickets created by the AI agent, newest first"""
    query = Ticket.query.filter_by(tenant_id=g.current_tenant.id, ai_generated=True)

    approval_status = request.args.get('approval_status')
    if approval_status:
        query = query.filter_by(approval_status=approval_status)

    limit = min(request.args.get('limit', 50, type=int), 200)
    tickets = query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).limit(limit).all()
    return jsonify({'tickets': [t.to_dict() for t in tickets]})


# ========== REPLIES ==========

@ai_agent_bp.route('/ticket-replies', methods=['POST'])
@require_ai_api_key
def create_reply():
    """
    Add a reply (or an internal note with internal=true) as the AI agent

    Body: ticket_id, body, internal, ai_reasoning, ai_confidence, ai_model
    """
    data = request.get_json() or {}

    ticket_id = data.get('ticket_id')
    ticket = Ticket.query.filter_by(id=ticket_id, tenant_id=g.current_tenant.id).first() if ticket_id else None
    if not ticket:
        return jsonify({'error': 'Ticket not found'}), 404

    is_valid, body = validate_message_body(data.get('body'))
    if not is_valid:
        return jsonify({'error': body}), 400

    is_valid, ai_fields = _validate_ai_fields(data)
    if not is_valid:
        return jsonify({'error': ai_fields}), 400

    internal = bool(data.get('internal', False))
    payload = dict(ai_fields, body=body, internal=internal)

    try:
        message, log = ai_agent_service.create_ai_reply(g.current_tenant, ticket, payload)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        current_app.logger.error(f"AI agent reply failed on ticket {ticket.id}: {e}")
        return jsonify({'error': 'Failed to create reply'}), 500

    return jsonify({
        'success': True,
        'message': message.to_dict(),
        'actionLogId': log.id,
        'approvalStatus': log.approval_status,
        'statusMessage': _status_message('Internal note' if internal else 'Reply', log.approval_status)
    }), 201


@ai_agent_bp.route('/ticket-replies')
@require_ai_api_key
def list_replies():
    """Messages authored by the AI agent, optionally for one ticket"""
    query = TicketMessage.query.join(Ticket).filter(
        Ticket.tenant_id == g.current_tenant.id,
        TicketMessage.author_type == 'ai'
    )

    ticket_id = request.args.get('ticket_id', type=int)
    if ticket_id:
        query = query.filter(TicketMessage.ticket_id == ticket_id)

    limit = min(request.args.get('limit', 50, type=int), 200)
    messages = query.order_by(TicketMessage.created_at.desc(), TicketMessage.id.desc()).limit(limit).all()
    return jsonify({'replies': [m.to_dict() for m in messages]})


# ========== TASKS ==========

@ai_agent_bp.route('/tasks', methods=['POST'])
@require_ai_api_key
def create_task():
    """
    Create a follow-up task as the AI agent

    Body: title, description, priority, due_date, assignee_id, ticket_id,
    contact_id, company_id, ai_reasoning, ai_confidence, ai_model, ai_context
    """
    data = request.get_json() or {}

    is_valid, title = validate_title(data.get('title'))
    if not is_valid:
        return jsonify({'error': title}), 400

    is_valid, ai_fields = _validate_ai_fields(data)
    if not is_valid:
        return jsonify({'error': ai_fields}), 400

    priority = data.get('priority') or 'medium'
    if priority not in Task.PRIORITIES:
        return jsonify({'error': f'Invalid priority. Must be one of: {", ".join(Task.PRIORITIES)}'}), 400

    is_valid, error = parse_datetime(data.get('due_date'), 'due_date')
    if not is_valid:
        return jsonify({'error': error}), 400

    payload = dict(
        ai_fields,
        title=title,
        description=data.get('description'),
        priority=priority,
        due_date=data.get('due_date'),
        assignee_id=data.get('assignee_id'),
        ticket_id=data.get('ticket_id'),
        contact_id=data.get('contact_id'),
        company_id=data.get('company_id')
    )

    try:
        task, log = ai_agent_service.create_ai_task(g.current_tenant, payload)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        current_app.logger.error(f"AI agent task creation failed for tenant {g.current_tenant.id}: {e}")
        return jsonify({'error': 'Failed to create task'}), 500

    return jsonify({
        'success': True,
        'task': task.to_dict(),
        'actionLogId': log.id,
        'approvalStatus': log.approval_status,
        'statusMessage': _status_message('Task', log.approval_status)
    }), 201


@ai_agent_bp.route('/tasks')
@require_ai_api_key
def list_tasks():
    """Tasks created by the AI agent, newest first"""
    query = Task.query.filter_by(tenant_id=g.current_tenant.id, ai_generated=True)

    approval_status = request.args.get('approval_status')
    if approval_status:
        query = query.filter_by(approval_status=approval_status)
    for key in ('ticket_id', 'contact_id', 'company_id'):
        value = request.args.get(key, type=int)
        if value:
            query = query.filter_by(**{key: value})

    limit = min(request.args.get('limit', 50, type=int), 200)
    tasks = query.order_by(Task.created_at.desc(), Task.id.desc()).limit(limit).all()
    return jsonify({'tasks': [t.to_dict() for t in tasks], 'count': len(tasks)})
