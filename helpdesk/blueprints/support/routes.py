from flask import request, jsonify, g, current_app
from flask_login import login_required, current_user
from helpdesk import db
from helpdesk.blueprints.support import support_bp
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.models.ai_settings import AISettings
from helpdesk.services import ticket_service, time_entry_service
from helpdesk.services.ai_service import get_ai_service_for_tenant, AIDisabledError, TONES
from helpdesk.utils.input_validators import validate_subject, validate_message_body
from helpdesk.utils.security_decorators import require_tenant_access


def _tenant_ticket(ticket_id):
    """Load a ticket for the current tenant; returns (ticket, error_response)"""
    ticket = db.get_or_404(Ticket, ticket_id)

    # Verify tenant access
    if ticket.tenant_id != g.current_tenant.id:
        return None, (jsonify({'error': 'Access denied'}), 403)

    return ticket, None


# ========== DASHBOARD ==========

@support_bp.route('/metrics')
@login_required
@require_tenant_access
def metrics():
    """Support dashboard metrics"""
    return jsonify(ticket_service.get_ticket_metrics(g.current_tenant.id))


# ========== TICKET LIST & VIEWS ==========

@support_bp.route('/tickets')
@login_required
@require_tenant_access
def list_tickets():
    """List tickets for a view, with filters and pagination"""
    view = request.args.get('view', 'all')
    if view not in ticket_service.VIEWS:
        return jsonify({'error': f'Invalid view. Must be one of: {", ".join(ticket_service.VIEWS)}'}), 400

    assignee = request.args.get('assignee')
    if assignee and assignee != 'unassigned' and not assignee.isdigit():
        return jsonify({'error': 'Invalid assignee filter'}), 400

    query = ticket_service.build_ticket_query(
        g.current_tenant.id,
        user_id=current_user.id,
        view=view,
        status=request.args.get('status'),
        priority=request.args.get('priority'),
        assignee=assignee,
        group_id=request.args.get('group_id', type=int),
        tag_id=request.args.get('tag_id', type=int),
        search=request.args.get('search', '').strip()
    )

    # Execute query with pagination
    page = request.args.get('page', 1, type=int)
    per_page = current_app.config.get('TICKETS_PER_PAGE', 25)
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'tickets': [t.to_dict() for t in pagination.items],
        'page': pagination.page,
        'per_page': per_page,
        'total': pagination.total,
        'pages': pagination.pages,
        'view': view
    })


@support_bp.route('/tickets', methods=['POST'])
@login_required
@require_tenant_access
def create_ticket():
    """Create a new ticket"""
    data = request.get_json() or {}

    is_valid, subject = validate_subject(data.get('subject'))
    if not is_valid:
        return jsonify({'error': subject}), 400

    try:
        # Create ticket using service
        ticket = ticket_service.create_ticket(
            tenant_id=g.current_tenant.id,
            subject=subject,
            description=data.get('description') or '',
            priority=data.get('priority', 'medium'),
            status=data.get('status', 'new'),
            category=data.get('category'),
            source=data.get('source', 'web'),
            contact_id=data.get('contact_id'),
            contact_email=data.get('contact_email'),
            contact_name=data.get('contact_name'),
            company_id=data.get('company_id'),
            assignee_id=data.get('assignee_id'),
            group_id=data.get('group_id'),
            tag_ids=data.get('tag_ids'),
            created_by_id=current_user.id
        )

        return jsonify({
            'success': True,
            'id': ticket.id,
            'ticket_number': ticket.ticket_number,
            'ticket': ticket.to_dict()
        }), 201

    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating ticket: {e}")
        return jsonify({'error': 'Failed to create ticket'}), 500


@support_bp.route('/tickets/<int:ticket_id>')
@login_required
@require_tenant_access
def get_ticket(ticket_id):
    """Ticket detail with the full conversation (internal notes included) and status history"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = ticket.to_dict()
    data['messages'] = [m.to_dict() for m in ticket.messages.order_by(TicketMessage.created_at.asc(), TicketMessage.id.asc())]
    data['status_history'] = [h.to_dict() for h in ticket.status_history]
    data['merged_tickets'] = [t.to_summary_dict() for t in ticket.merged_tickets]

    return jsonify({'ticket': data})


# ========== UPDATE TICKET ==========

@support_bp.route('/tickets/<int:ticket_id>', methods=['PATCH'])
@login_required
@require_tenant_access
def update_ticket(ticket_id):
    """Partial update of ticket details"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = request.get_json() or {}

    try:
        ticket, result = ticket_service.update_ticket(ticket, data, changed_by_id=current_user.id)
        return jsonify({
            'success': True,
            'ticket': ticket.to_dict(),
            'automations': result['actions'] if result else []
        })
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to update ticket'}), 500


@support_bp.route('/tickets/<int:ticket_id>', methods=['DELETE'])
@login_required
@require_tenant_access
def delete_ticket(ticket_id):
    """Permanently delete a ticket"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    try:
        ticket_service.delete_ticket(ticket)
        return jsonify({'success': True})
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to delete ticket'}), 500


# ========== TICKET ACTIONS ==========

@support_bp.route('/tickets/<int:ticket_id>/assign', methods=['POST'])
@login_required
@require_tenant_access
def assign_ticket(ticket_id):
    """Assign ticket to an agent (null unassigns)"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = request.get_json() or {}

    try:
        ticket, result = ticket_service.update_ticket(
            ticket, {'assignee_id': data.get('assignee_id')}, changed_by_id=current_user.id
        )
        return jsonify({'success': True, 'assignee_id': ticket.assignee_id, 'status': ticket.status})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error assigning ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to assign ticket'}), 500


@support_bp.route('/tickets/<int:ticket_id>/status', methods=['POST'])
@login_required
@require_tenant_access
def change_ticket_status(ticket_id):
    """Change ticket status"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = request.get_json() or {}
    new_status = data.get('status')

    if not new_status:
        return jsonify({'error': 'Status is required'}), 400

    try:
        ticket, result = ticket_service.update_ticket(
            ticket, {'status': new_status, 'reason': data.get('reason')}, changed_by_id=current_user.id
        )
        return jsonify({'success': True, 'status': ticket.status})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error changing status of ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to change status'}), 500


@support_bp.route('/tickets/<int:ticket_id>/messages')
@login_required
@require_tenant_access
def list_messages(ticket_id):
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    messages = ticket.messages.order_by(TicketMessage.created_at.asc(), TicketMessage.id.asc()).all()
    return jsonify({'messages': [m.to_dict() for m in messages]})


@support_bp.route('/tickets/<int:ticket_id>/messages', methods=['POST'])
@login_required
@require_tenant_access
def add_message(ticket_id):
    """Add a reply or internal note to a ticket"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = request.get_json() or {}
    is_valid, body = validate_message_body(data.get('body'))
    if not is_valid:
        return jsonify({'error': body}), 400

    try:
        message = ticket_service.add_message(
            ticket_id=ticket.id,
            body=body,
            author_id=current_user.id,
            author_type='agent',
            is_internal=bool(data.get('is_internal', False)),
            is_resolution=bool(data.get('is_resolution', False))
        )

        return jsonify({
            'success': True,
            'message': message.to_dict(),
            'ticket_status': ticket.status
        }), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error adding message to ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to add message'}), 500


@support_bp.route('/tickets/<int:ticket_id>/merge', methods=['POST'])
@login_required
@require_tenant_access
def merge_ticket(ticket_id):
    """Merge ticket into another ticket"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = request.get_json() or {}
    target_ticket_id = data.get('target_ticket_id')

    if not target_ticket_id:
        return jsonify({'error': 'Target ticket ID is required'}), 400

    target = db.session.get(Ticket, target_ticket_id)
    if not target:
        return jsonify({'error': 'Target ticket not found'}), 404
    if target.tenant_id != g.current_tenant.id:
        return jsonify({'error': 'Access denied'}), 403

    try:
        target_ticket = ticket_service.merge_tickets(
            ticket.id,
            target.id,
            merged_by_id=current_user.id
        )

        return jsonify({
            'success': True,
            'target_ticket_id': target_ticket.id,
            'target_ticket_number': target_ticket.ticket_number
        })
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error merging ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to merge tickets'}), 500


# ========== TAGS ==========

@support_bp.route('/tickets/<int:ticket_id>/tags')
@login_required
@require_tenant_access
def list_ticket_tags(ticket_id):
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    return jsonify({'tags': [tag.to_dict(include_count=False) for tag in ticket.tags]})


@support_bp.route('/tickets/<int:ticket_id>/tags', methods=['POST'])
@login_required
@require_tenant_access
def add_ticket_tag(ticket_id):
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = request.get_json() or {}
    if not data.get('tag_id'):
        return jsonify({'error': 'Tag ID is required'}), 400

    try:
        tag = ticket_service.add_tag(ticket, data['tag_id'])
        return jsonify({'success': True, 'tag': tag.to_dict(include_count=False)}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@support_bp.route('/tickets/<int:ticket_id>/tags/<int:tag_id>', methods=['DELETE'])
@login_required
@require_tenant_access
def remove_ticket_tag(ticket_id, tag_id):
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    try:
        ticket_service.remove_tag(ticket, tag_id)
        return jsonify({'success': True})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 404


# ========== BULK ==========

@support_bp.route('/tickets/bulk', methods=['POST'])
@login_required
@require_tenant_access
def bulk_update():
    """Apply status, priority or assignee to several tickets at once"""
    data = request.get_json() or {}
    ticket_ids = data.get('ticket_ids')

    if not ticket_ids or not isinstance(ticket_ids, list):
        return jsonify({'error': 'ticket_ids must be a non-empty list'}), 400

    try:
        updated = ticket_service.bulk_update(
            g.current_tenant.id, ticket_ids, data.get('updates') or {}, changed_by_id=current_user.id
        )
        return jsonify({'success': True, 'updated': updated})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in bulk ticket update: {e}")
        return jsonify({'error': 'Failed to update tickets'}), 500


# ========== TIME TRACKING ==========

@support_bp.route('/tickets/<int:ticket_id>/time-entries')
@login_required
@require_tenant_access
def ticket_time_entries(ticket_id):
    """Time logged on a ticket, with totals"""
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    entries = time_entry_service.build_entry_query(g.current_tenant.id, ticket_id=ticket.id).all()
    return jsonify({
        'entries': [entry.to_dict() for entry in entries],
        'summary': time_entry_service.summarize(entries)
    })


# ========== AI ASSIST ==========


def _ai_for_feature(flag):
    """Returns (ai_service, error_response)"""
    try:
        ai = get_ai_service_for_tenant(g.current_tenant)
    except AIDisabledError as e:
        return None, (jsonify({'error': str(e)}), 400)

    settings = AISettings.query.filter_by(tenant_id=g.current_tenant.id).first()
    if not getattr(settings, flag):
        return None, (jsonify({'error': 'This AI feature is turned off for this workspace'}), 400)

    return ai, None


@support_bp.route('/tickets/<int:ticket_id>/ai/summary', methods=['POST'])
@login_required
@require_tenant_access
def ai_summary(ticket_id):
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    ai, error = _ai_for_feature('summary_enabled')
    if error:
        return error

    try:
        summary = ai.summarize_ticket(ticket, user_id=current_user.id)
        return jsonify({'summary': summary})
    except Exception as e:
        current_app.logger.error(f"AI summary failed for ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to generate summary'}), 502


@support_bp.route('/tickets/<int:ticket_id>/ai/suggest-reply', methods=['POST'])
@login_required
@require_tenant_access
def ai_suggest_reply(ticket_id):
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    tone = data.get('tone', 'professional')
    if tone not in TONES:
        return jsonify({'error': f'Invalid tone. Must be one of: {", ".join(TONES)}'}), 400

    ai, error = _ai_for_feature('reply_enabled')
    if error:
        return error

    try:
        reply = ai.suggest_reply(ticket, tone=tone, user_id=current_user.id)
        return jsonify({'reply': reply, 'tone': tone})
    except Exception as e:
        current_app.logger.error(f"AI reply suggestion failed for ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to suggest a reply'}), 502


@support_bp.route('/tickets/<int:ticket_id>/ai/categorize', methods=['POST'])
@login_required
@require_tenant_access
def ai_categorize(ticket_id):
    ticket, error = _tenant_ticket(ticket_id)
    if error:
        return error

    ai, error = _ai_for_feature('categorize_enabled')
    if error:
        return error

    try:
        result = ai.categorize_ticket(ticket, user_id=current_user.id)
        return jsonify(result)
    except ValueError as e:
        return jsonify({'error': str(e)}), 502
    except Exception as e:
        current_app.logger.error(f"AI categorization failed for ticket {ticket_id}: {e}")
        return jsonify({'error': 'Failed to categorize ticket'}), 502
