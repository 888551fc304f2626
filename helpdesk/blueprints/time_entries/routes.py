from datetime import timedelta
from flask import request, jsonify, g, current_app
from flask_login import login_required, current_user
from helpdesk import db
from helpdesk.blueprints.time_entries import time_entries_bp
from helpdesk.models.time_entry import TimeEntry
from helpdesk.services import time_entry_service
from helpdesk.utils.input_validators import parse_datetime
from helpdesk.utils.security_decorators import require_tenant_access


def _tenant_entry(entry_id, for_write=False):
    """Returns (entry, error_response). Only the author or an admin may change an entry."""
    entry = db.get_or_404(TimeEntry, entry_id)

    # Verify tenant access
    if entry.tenant_id != g.current_tenant.id:
        return None, (jsonify({'error': 'Access denied'}), 403)

    if for_write and entry.user_id != current_user.id and not current_user.is_tenant_admin(g.current_tenant.id):
        return None, (jsonify({'error': 'Only the author or an admin can change this time entry'}), 403)

    return entry, None


@time_entries_bp.route('')
@login_required
@require_tenant_access
def list_entries():
    """
    List time entries with totals

    Query: ticket_id, task_id, user_id, start, end (YYYY-MM-DD or ISO datetimes;
    a date-only end includes that whole day)
    """
    is_valid, start = parse_datetime(request.args.get('start'), 'start')
    if not is_valid:
        return jsonify({'error': start}), 400

    raw_end = request.args.get('end')
    is_valid, end = parse_datetime(raw_end, 'end')
    if not is_valid:
        return jsonify({'error': end}), 400
    if end and len(raw_end) == 10:
        end += timedelta(days=1)

    entries = time_entry_service.build_entry_query(
        g.current_tenant.id,
        ticket_id=request.args.get('ticket_id', type=int),
        task_id=request.args.get('task_id', type=int),
        user_id=request.args.get('user_id', type=int),
        start=start,
        end=end
    ).all()

    return jsonify({
        'entries': [entry.to_dict() for entry in entries],
        'summary': time_entry_service.summarize(entries)
    })


@time_entries_bp.route('', methods=['POST'])
@login_required
@require_tenant_access
def create_entry():
    """Log time. Body: ticket_id or task_id, duration_minutes, description, date, is_billable, hourly_rate"""
    try:
        entry = time_entry_service.log_time(g.current_tenant.id, current_user.id, request.get_json() or {})
        return jsonify({'success': True, 'entry': entry.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error logging time: {e}")
        return jsonify({'error': 'Failed to create time entry'}), 500


@time_entries_bp.route('/<int:entry_id>')
@login_required
@require_tenant_access
def get_entry(entry_id):
    entry, error = _tenant_entry(entry_id)
    if error:
        return error

    return jsonify({'entry': entry.to_dict()})


@time_entries_bp.route('/<int:entry_id>', methods=['PATCH'])
@login_required
@require_tenant_access
def update_entry(entry_id):
    entry, error = _tenant_entry(entry_id, for_write=True)
    if error:
        return error

    try:
        entry = time_entry_service.update_entry(entry, request.get_json() or {})
        return jsonify({'success': True, 'entry': entry.to_dict()})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@time_entries_bp.route('/<int:entry_id>', methods=['DELETE'])
@login_required
@require_tenant_access
def delete_entry(entry_id):
    entry, error = _tenant_entry(entry_id, for_write=True)
    if error:
        return error

    time_entry_service.delete_entry(entry)
    return jsonify({'success': True})
