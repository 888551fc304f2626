"""
Security decorators for access control
"""
from functools import wraps
from flask import g, abort, session, jsonify, request
from flask_login import current_user
from helpdesk import db


def require_tenant_access(f):
    """
    Decorator to ensure user has access to the current tenant
    Must be used after @login_required
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Check if current tenant is set
        if not g.current_tenant:
            abort(403, description="No tenant selected")

        # Verify user has access to current tenant
        if not current_user.has_tenant_access(g.current_tenant.id):
            abort(403, description="You do not have access to this workspace")

        return f(*args, **kwargs)

    return decorated_function


def require_tenant_role(*allowed_roles):
    """
    Decorator to ensure user has specific role in current tenant
    Usage: @require_tenant_role('owner', 'admin')
    Must be used after @login_required and @require_tenant_access
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not g.current_tenant:
                abort(403, description="No tenant selected")

            user_role = current_user.get_role_in_tenant(g.current_tenant.id)

            if user_role not in allowed_roles:
                abort(403, description=f"This action requires {' or '.join(allowed_roles)} role")

            return f(*args, **kwargs)

        return decorated_function

    return decorator


# ========== CUSTOMER PORTAL ==========

PORTAL_SESSION_KEY = 'portal_contact_id'


def get_portal_tenant(tenant_slug):
    """Active tenant addressed by a portal/help-center URL, or 404"""
    from helpdesk.models.tenant import Tenant
    tenant = Tenant.query.filter_by(slug=tenant_slug, is_active=True).first()
    if not tenant:
        abort(404, description="Support site not found")
    return tenant


def get_portal_contact(tenant_id=None):
    """Return the signed-in portal Contact (optionally only if it belongs to tenant_id), or None"""
    from helpdesk.models.contact import Contact
    contact_id = session.get(PORTAL_SESSION_KEY)
    if not contact_id:
        return None
    contact = db.session.get(Contact, contact_id)
    if contact and tenant_id is not None and contact.tenant_id != tenant_id:
        return None
    return contact


def portal_login_required(f):
    """
    Decorator for customer portal routes under /portal/<tenant_slug>/.
    Loads g.portal_tenant and g.portal_contact; agents' Flask-Login session is not consulted.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant = get_portal_tenant(kwargs.get('tenant_slug'))
        contact = get_portal_contact(tenant.id)
        if not contact:
            return jsonify({'error': 'Unauthorized'}), 401
        g.portal_tenant = tenant
        g.portal_contact = contact
        return f(*args, **kwargs)

    return decorated_function


# ========== AI AGENT API ==========

def require_ai_api_key(f):
    """
    Decorator for the AI agent API.
    Expects `Authorization: Bearer <key>`; the key identifies the tenant.
    Sets g.current_tenant and g.ai_settings.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from helpdesk.models.ai_settings import AISettings

        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return jsonify({'error': 'Missing or invalid Authorization header'}), 401

        raw_key = auth_header[len('Bearer '):].strip()
        if not raw_key:
            return jsonify({'error': 'Missing or invalid Authorization header'}), 401

        settings = AISettings.query.filter_by(agent_api_key_digest=AISettings.digest_key(raw_key)).first()
        if not settings or not settings.tenant or not settings.tenant.is_active:
            return jsonify({'error': 'Invalid API key'}), 401

        g.current_tenant = settings.tenant
        g.ai_settings = settings
        return f(*args, **kwargs)

    return decorated_function
