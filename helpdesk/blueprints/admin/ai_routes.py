"""
Admin endpoints for the AI layer (settings, agent API key, action review, usage)
and for the workspace's installed apps
"""
from flask import request, jsonify, g, current_app
from flask_login import login_required, current_user
from helpdesk import db
from helpdesk.blueprints.admin import admin_bp
from helpdesk.models.audit_log import AuditLog
from helpdesk.services import ai_agent_service, ai_usage_service, app_manager, app_registry
from helpdesk.utils.encryption import get_encryption_service
from helpdesk.utils.security_decorators import require_tenant_access, require_tenant_role

AI_SETTINGS_FLAGS = ['is_enabled', 'summary_enabled', 'reply_enabled', 'categorize_enabled']
ENTITY_TYPES = ['ticket', 'reply', 'note', 'task']


# ========== AI SETTINGS ==========

@admin_bp.route('/ai-settings')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def get_ai_settings():
    settings = ai_agent_service.get_or_create_ai_settings(g.current_tenant.id)
    data = settings.to_dict()
    data['default_model'] = current_app.config.get('AI_DEFAULT_MODEL')
    return jsonify({'settings': data})


@admin_bp.route('/ai-settings', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_ai_settings():
    """
    Partial update of the AI assist settings

    anthropic_api_key is stored encrypted and never returned; an empty
    value clears it so the application-wide key is used again.
    """
    settings = ai_agent_service.get_or_create_ai_settings(g.current_tenant.id)
    data = request.get_json() or {}

    for field in AI_SETTINGS_FLAGS:
        if field in data:
            setattr(settings, field, bool(data[field]))
    if 'model' in data:
        settings.model = (data['model'] or '').strip() or None

    if 'anthropic_api_key' in data:
        raw_key = (data['anthropic_api_key'] or '').strip()
        settings.anthropic_api_key_encrypted = get_encryption_service().encrypt(raw_key) if raw_key else None

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating AI settings for tenant {g.current_tenant.id}: {e}")
        return jsonify({'error': 'Failed to update AI settings'}), 500

    AuditLog.log_event(
        'ai_settings_updated', tenant_id=g.current_tenant.id, user_id=current_user.id,
        resource_type='ai_settings', resource_id=settings.id,
        details={'fields': sorted(k for k in data if k != 'anthropic_api_key'),
                 'api_key_changed': 'anthropic_api_key' in data}
    )
    return jsonify({'success': True, 'settings': settings.to_dict()})


@admin_bp.route('/ai-settings/api-key', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def rotate_api_key():
    """Issue a new AI agent API key; the raw key is only returned here"""
    raw_key = ai_agent_service.rotate_agent_api_key(g.current_tenant.id)

    AuditLog.log_event(
        'api_key_rotated', tenant_id=g.current_tenant.id, user_id=current_user.id,
        resource_type='ai_settings', ip_address=request.remote_addr
    )
    return jsonify({'success': True, 'api_key': raw_key, 'prefix': raw_key[:12]}), 201


@admin_bp.route('/ai-settings/api-key', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def revoke_api_key():
    ai_agent_service.revoke_agent_api_key(g.current_tenant.id)

    AuditLog.log_event(
        'api_key_revoked', tenant_id=g.current_tenant.id, user_id=current_user.id,
        resource_type='ai_settings', ip_address=request.remote_addr
    )
    return jsonify({'success': True})


# ========== CONFIDENCE CONFIG ==========

@admin_bp.route('/ai-confidence')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def get_confidence_config():
    config = ai_agent_service.get_or_create_confidence_config(g.current_tenant.id)
    return jsonify({'config': config.to_dict()})


@admin_bp.route('/ai-confidence', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_confidence_config():
    try:
        config = ai_agent_service.update_confidence_config(
            g.current_tenant.id, request.get_json() or {}, updated_by_id=current_user.id
        )
        return jsonify({'success': True, 'config': config.to_dict()})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


# ========== AI ACTIONS ==========

@admin_bp.route('/ai-actions')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_ai_actions():
    entity_type = request.args.get('entity_type')
    if entity_type and entity_type not in ENTITY_TYPES:
        return jsonify({'error': f'Invalid entity_type. Must be one of: {", ".join(ENTITY_TYPES)}'}), 400

    actions = ai_agent_service.get_actions(
        g.current_tenant.id,
        pending_only=request.args.get('pending', '').lower() in ('1', 'true', 'yes'),
        entity_type=entity_type,
        limit=current_app.config.get('AI_ACTIONS_PER_PAGE', 50)
    )
    return jsonify({'actions': [a.to_dict() for a in actions]})


@admin_bp.route('/ai-actions/stats')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def ai_action_stats():
    return jsonify(ai_agent_service.get_action_stats(g.current_tenant.id))


@admin_bp.route('/ai-actions/<int:action_id>/approve', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def approve_ai_action(action_id):
    try:
        log = ai_agent_service.approve_action(g.current_tenant.id, action_id, current_user.id)
    except ValueError as e:
        db.session.rollback()
        status = 404 if str(e) == 'Action not found' else 400
        return jsonify({'error': str(e)}), status

    current_app.logger.info(f"User {current_user.id} approved AI action {action_id}")
    return jsonify({'success': True, 'action': log.to_dict()})


@admin_bp.route('/ai-actions/<int:action_id>/reject', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def reject_ai_action(action_id):
    """Reject an AI action; rejected tickets are closed"""
    data = request.get_json() or {}
    reason = (data.get('reason') or '').strip() or None

    try:
        log = ai_agent_service.reject_action(g.current_tenant.id, action_id, current_user.id, reason=reason)
    except ValueError as e:
        db.session.rollback()
        status = 404 if str(e) == 'Action not found' else 400
        return jsonify({'error': str(e)}), status

    current_app.logger.info(f"User {current_user.id} rejected AI action {action_id}")
    return jsonify({'success': True, 'action': log.to_dict()})


# ========== AI USAGE ==========

@admin_bp.route('/ai-usage')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def ai_usage():
    days = request.args.get('days', 30, type=int)
    if days < 1 or days > 365:
        return jsonify({'error': 'days must be between 1 and 365'}), 400
    return jsonify(ai_usage_service.get_usage_stats(g.current_tenant.id, days=days))


# ========== APPS ==========

@admin_bp.route('/apps')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_apps():
    """Every registry app with this workspace's install state"""
    return jsonify({
        'apps': app_manager.get_app_status(g.current_tenant.id),
        'categories': app_registry.CATEGORIES
    })


@admin_bp.route('/apps/<app_id>')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def get_app(app_id):
    manifest = app_registry.get_app(app_id)
    if not manifest:
        return jsonify({'error': 'App not found'}), 404

    installed = next((a for a in app_manager.get_installed_apps(g.current_tenant.id) if a.app_id == app_id), None)
    return jsonify({'app': app_manager.app_with_status(manifest, installed)})


@admin_bp.route('/apps/<app_id>/install', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def install_app(app_id):
    if not app_registry.get_app(app_id):
        return jsonify({'error': 'App not found'}), 404

    data = request.get_json(silent=True) or {}
    config = data.get('config')
    if config is not None and not isinstance(config, dict):
        return jsonify({'error': 'Config must be an object'}), 400

    try:
        installed = app_manager.install_app(
            g.current_tenant.id, app_id, installed_by_id=current_user.id, config=config
        )
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error installing app {app_id} for tenant {g.current_tenant.id}: {e}")
        return jsonify({'error': 'Failed to install app'}), 500

    return jsonify({'success': True, 'app': installed.to_dict()})


@admin_bp.route('/apps/<app_id>/uninstall', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def uninstall_app(app_id):
    if not app_manager.uninstall_app(g.current_tenant.id, app_id):
        return jsonify({'error': 'App is not installed'}), 404
    return jsonify({'success': True})


@admin_bp.route('/apps/<app_id>/enable', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def enable_app(app_id):
    try:
        installed = app_manager.set_app_enabled(g.current_tenant.id, app_id, True)
        return jsonify({'success': True, 'app': installed.to_dict()})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/apps/<app_id>/disable', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def disable_app(app_id):
    try:
        installed = app_manager.set_app_enabled(g.current_tenant.id, app_id, False)
        return jsonify({'success': True, 'app': installed.to_dict()})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/apps/<app_id>/config', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_app_config(app_id):
    data = request.get_json() or {}
    try:
        installed = app_manager.update_app_config(g.current_tenant.id, app_id, data.get('config'))
        return jsonify({'success': True, 'app': installed.to_dict()})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
