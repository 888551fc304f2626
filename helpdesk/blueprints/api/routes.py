"""
Small JSON endpoints shared by the agent workspace: notifications, canned
responses, app slots, the CSRF token and the public banner
"""
from flask import request, jsonify, g
from flask_login import login_required, current_user
from flask_wtf.csrf import generate_csrf
from helpdesk.blueprints.api import api_bp
from helpdesk.models.top_banner import TopBanner
from helpdesk.services import app_manager, canned_response_service, notification_service
from helpdesk.utils.security_decorators import require_tenant_access, get_portal_tenant


@api_bp.route('/csrf-token')
def csrf_token():
    """Token for JSON clients; send it back in the X-CSRFToken header"""
    return jsonify({'csrf_token': generate_csrf()})


# ========== NOTIFICATIONS ==========

@api_bp.route('/notifications')
@login_required
@require_tenant_access
def list_notifications():
    unread_only = request.args.get('unread', '').lower() in ('1', 'true', 'yes')
    notifications = notification_service.list_for_user(
        g.current_tenant.id, current_user.id, unread_only=unread_only
    )
    return jsonify({
        'notifications': [n.to_dict() for n in notifications],
        'unread_count': notification_service.unread_count(g.current_tenant.id, current_user.id)
    })


@api_bp.route('/notifications/count')
@login_required
@require_tenant_access
def notification_count():
    return jsonify({'unread_count': notification_service.unread_count(g.current_tenant.id, current_user.id)})


@api_bp.route('/notifications/mark-read', methods=['POST'])
@login_required
@require_tenant_access
def mark_notifications_read():
    """Mark the given ids read, or everything when no ids are sent"""
    data = request.get_json() or {}
    ids = data.get('ids')
    if ids is not None and (not isinstance(ids, list) or not all(isinstance(i, int) for i in ids)):
        return jsonify({'error': 'ids must be a list of notification ids'}), 400

    updated = notification_service.mark_read(g.current_tenant.id, current_user.id, ids)
    return jsonify({'success': True, 'updated': updated})


# ========== CANNED RESPONSES ==========

@api_bp.route('/canned-responses')
@login_required
@require_tenant_access
def canned_responses():
    """Responses this agent may insert, grouped by folder"""
    return jsonify({'folders': canned_response_service.get_visible_grouped(g.current_tenant.id, current_user.id)})


# ========== APPS ==========

@api_bp.route('/apps/installed')
@login_required
@require_tenant_access
def installed_apps():
    apps = app_manager.get_installed_apps(g.current_tenant.id)
    return jsonify({'apps': [a.to_dict() for a in apps]})


@api_bp.route('/apps/slot/<slot>')
@login_required
@require_tenant_access
def slot_apps(slot):
    """Enabled apps that render into a UI slot"""
    try:
        return jsonify({'slot': slot, 'apps': app_manager.get_slot_apps(g.current_tenant.id, slot)})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400


# ========== PUBLIC BANNER ==========

@api_bp.route('/banner/<tenant_slug>')
def public_banner(tenant_slug):
    """The workspace banner, only while it is enabled"""
    tenant = get_portal_tenant(tenant_slug)
    banner = TopBanner.query.filter_by(tenant_id=tenant.id).first()
    if not banner or not banner.is_enabled:
        return jsonify({'banner': None})
    return jsonify({'banner': banner.to_dict()})
