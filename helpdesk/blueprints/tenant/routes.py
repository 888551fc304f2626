from flask import request, session, g, jsonify, current_app
from flask_login import login_required, current_user
from helpdesk import db
from helpdesk.blueprints.tenant import tenant_bp
from helpdesk.services import tenant_service, ticket_service, notification_service
from helpdesk.utils.security_decorators import require_tenant_access, require_tenant_role


@tenant_bp.route('/')
@login_required
def home():
    """Dashboard payload: the agent, their workspaces and current workspace metrics"""
    tenants = current_user.get_tenants()

    # If no current tenant is selected, select the first one
    if tenants and (not g.current_tenant or not current_user.has_tenant_access(g.current_tenant.id)):
        session['current_tenant_id'] = tenants[0].id
        g.current_tenant = tenants[0]

    data = {
        'user': current_user.to_dict(),
        'tenants': [t.to_dict() for t in tenants],
        'current_tenant': None,
        'role': None,
        'metrics': None,
        'unread_notifications': 0,
    }

    if g.current_tenant and tenants:
        data['current_tenant'] = g.current_tenant.to_dict()
        data['role'] = current_user.get_role_in_tenant(g.current_tenant.id)
        data['metrics'] = ticket_service.get_ticket_metrics(g.current_tenant.id)
        data['unread_notifications'] = notification_service.unread_count(g.current_tenant.id, current_user.id)

    return jsonify(data)


@tenant_bp.route('/switch/<int:tenant_id>', methods=['POST'])
@login_required
def switch_tenant(tenant_id):
    """Switch to a different tenant"""
    # Verify user has access to this tenant
    if not current_user.has_tenant_access(tenant_id):
        return jsonify({'error': 'You do not have access to this workspace'}), 403

    session['current_tenant_id'] = tenant_id
    return jsonify({'success': True, 'current_tenant_id': tenant_id})


@tenant_bp.route('/create', methods=['POST'])
@login_required
def create():
    """Create a new workspace owned by the current user"""
    data = request.get_json() or {}

    try:
        tenant = tenant_service.create_workspace(
            current_user,
            data.get('name'),
            slug=data.get('slug'),
            timezone=data.get('timezone') or 'UTC',
            description=data.get('description')
        )
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating workspace: {e}")
        return jsonify({'error': 'Failed to create workspace'}), 500

    session['current_tenant_id'] = tenant.id
    return jsonify({'success': True, 'tenant': tenant.to_dict()}), 201


@tenant_bp.route('/settings', methods=['GET'])
@login_required
@require_tenant_access
def get_settings():
    return jsonify({'tenant': g.current_tenant.to_dict()})


@tenant_bp.route('/settings', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_settings():
    """Update workspace name, timezone and support details"""
    data = request.get_json() or {}

    try:
        tenant = tenant_service.update_settings(g.current_tenant, data)
        return jsonify({'success': True, 'tenant': tenant.to_dict()})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating workspace settings: {e}")
        return jsonify({'error': 'Failed to update settings'}), 500
