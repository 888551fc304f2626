from flask import request, jsonify, g, current_app
from flask_login import login_required, current_user
from helpdesk import db
from helpdesk.blueprints.tasks import tasks_bp
from helpdesk.models.task import Task, Subtask
from helpdesk.services import task_service
from helpdesk.utils.security_decorators import require_tenant_access, require_tenant_role


def _tenant_task(task_id):
    """Load a task for the current tenant; returns (task, error_response)"""
    task = db.get_or_404(Task, task_id)

    # Verify tenant access
    if task.tenant_id != g.current_tenant.id:
        return None, (jsonify({'error': 'Access denied'}), 403)

    return task, None


# ========== TASKS ==========

@tasks_bp.route('')
@login_required
@require_tenant_access
def list_tasks():
    """List tasks with filters"""
    status = request.args.get('status')
    if status and status not in Task.STATUSES:
        return jsonify({'error': f'Invalid status. Must be one of: {", ".join(Task.STATUSES)}'}), 400

    assignee = request.args.get('assignee')
    if assignee and assignee != 'unassigned' and not assignee.isdigit():
        return jsonify({'error': 'Invalid assignee filter'}), 400

    query = task_service.build_task_query(
        g.current_tenant.id,
        user_id=current_user.id,
        status=status,
        assignee=assignee,
        ticket_id=request.args.get('ticket_id', type=int),
        contact_id=request.args.get('contact_id', type=int),
        company_id=request.args.get('company_id', type=int),
        my_tasks=request.args.get('my_tasks') == 'true',
        include_closed=request.args.get('include_closed', 'true') != 'false'
    )

    return jsonify({'tasks': [task.to_dict() for task in query.all()]})


@tasks_bp.route('', methods=['POST'])
@login_required
@require_tenant_access
def create_task():
    data = request.get_json() or {}

    try:
        task = task_service.create_task(g.current_tenant.id, data, created_by_id=current_user.id)
        return jsonify({'success': True, 'task': task.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating task: {e}")
        return jsonify({'error': 'Failed to create task'}), 500


@tasks_bp.route('/<int:task_id>')
@login_required
@require_tenant_access
def get_task(task_id):
    task, error = _tenant_task(task_id)
    if error:
        return error

    return jsonify({'task': task.to_dict(include_notes=True)})


@tasks_bp.route('/<int:task_id>', methods=['PATCH'])
@login_required
@require_tenant_access
def update_task(task_id):
    """Partial update; moving into or out of done stamps or clears completed_at"""
    task, error = _tenant_task(task_id)
    if error:
        return error

    try:
        task = task_service.update_task(task, request.get_json() or {}, changed_by_id=current_user.id)
        return jsonify({'success': True, 'task': task.to_dict()})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating task {task_id}: {e}")
        return jsonify({'error': 'Failed to update task'}), 500


@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@login_required
@require_tenant_access
def delete_task(task_id):
    task, error = _tenant_task(task_id)
    if error:
        return error

    try:
        task_service.delete_task(task)
        return jsonify({'success': True})
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting task {task_id}: {e}")
        return jsonify({'error': 'Failed to delete task'}), 500


# ========== NOTES ==========

@tasks_bp.route('/<int:task_id>/notes', methods=['POST'])
@login_required
@require_tenant_access
def add_note(task_id):
    task, error = _tenant_task(task_id)
    if error:
        return error

    data = request.get_json() or {}
    try:
        note = task_service.add_note(task, data.get('content'), author_id=current_user.id)
        return jsonify({'success': True, 'note': note.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


# ========== SUBTASKS ==========

def _task_subtask(task_id, subtask_id):
    """Returns (subtask, error_response)"""
    task, error = _tenant_task(task_id)
    if error:
        return None, error

    subtask = Subtask.query.filter_by(id=subtask_id, task_id=task.id).first()
    if not subtask:
        return None, (jsonify({'error': 'Subtask not found'}), 404)

    return subtask, None


@tasks_bp.route('/<int:task_id>/subtasks', methods=['POST'])
@login_required
@require_tenant_access
def add_subtask(task_id):
    task, error = _tenant_task(task_id)
    if error:
        return error

    data = request.get_json() or {}
    try:
        subtask = task_service.add_subtask(task, data.get('title'))
        return jsonify({'success': True, 'subtask': subtask.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@tasks_bp.route('/<int:task_id>/subtasks/<int:subtask_id>', methods=['PATCH'])
@login_required
@require_tenant_access
def update_subtask(task_id, subtask_id):
    subtask, error = _task_subtask(task_id, subtask_id)
    if error:
        return error

    try:
        subtask = task_service.update_subtask(subtask, request.get_json() or {})
        return jsonify({'success': True, 'subtask': subtask.to_dict()})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@tasks_bp.route('/<int:task_id>/subtasks/<int:subtask_id>', methods=['DELETE'])
@login_required
@require_tenant_access
def delete_subtask(task_id, subtask_id):
    subtask, error = _task_subtask(task_id, subtask_id)
    if error:
        return error

    task_service.delete_subtask(subtask)
    return jsonify({'success': True})


# ========== BULK ==========

@tasks_bp.route('/bulk', methods=['POST'])
@login_required
@require_tenant_access
def bulk_action():
    """
    Apply one action to several tasks

    Body: task_ids, action (update_status, update_priority, assign_to,
    set_due_date, delete, archive), data
    """
    data = request.get_json() or {}
    task_ids = data.get('task_ids')

    if not task_ids or not isinstance(task_ids, list):
        return jsonify({'error': 'task_ids must be a non-empty list'}), 400
    if not data.get('action'):
        return jsonify({'error': 'Action is required'}), 400

    try:
        count = task_service.bulk_action(
            g.current_tenant.id, task_ids, data['action'], data.get('data'), changed_by_id=current_user.id
        )
        return jsonify({'success': True, 'action': data['action'], 'count': count})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in bulk task {data.get('action')}: {e}")
        return jsonify({'error': 'Failed to perform bulk operation'}), 500


# ========== REMINDERS ==========

@tasks_bp.route('/reminders')
@login_required
@require_tenant_access
def reminders():
    """The current user's open tasks that are overdue or due within a week"""
    return jsonify(task_service.get_reminders(g.current_tenant.id, current_user.id))


@tasks_bp.route('/reminders', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def send_reminders():
    """Create reminder notifications for tasks overdue or due by tomorrow"""
    try:
        result = task_service.send_reminders(g.current_tenant.id)
        return jsonify(dict(result, success=True))
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error sending task reminders for tenant {g.current_tenant.id}: {e}")
        return jsonify({'error': 'Failed to create reminders'}), 500
