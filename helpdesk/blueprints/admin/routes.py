from flask import request, jsonify, g, current_app
from flask_login import login_required, current_user
from helpdesk import db
from helpdesk.blueprints.admin import admin_bp
from helpdesk.models.audit_log import AuditLog
from helpdesk.models.automation import Automation
from helpdesk.models.group import Group
from helpdesk.models.sla_policy import SLAPolicy
from helpdesk.models.tag import Tag, ticket_tags
from helpdesk.models.tenant import TenantMembership
from helpdesk.models.ticket import Ticket
from helpdesk.models.top_banner import TopBanner
from helpdesk.models.user import User
from helpdesk.services import automation_engine, sla_service, tenant_service
from helpdesk.services.knowledge_base_service import unique_slug
from helpdesk.utils.input_validators import validate_email, validate_hex_color, validate_password_strength
from helpdesk.utils.security_decorators import require_tenant_access, require_tenant_role


def _tenant_record(model, record_id):
    """Load a tenant-scoped record; returns (record, error_response)"""
    record = db.get_or_404(model, record_id)

    # Verify tenant access
    if record.tenant_id != g.current_tenant.id:
        return None, (jsonify({'error': 'Access denied'}), 403)

    return record, None


# ========== TAGS ==========

@admin_bp.route('/tags')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_tags():
    tags = Tag.query.filter_by(tenant_id=g.current_tenant.id).order_by(Tag.name.asc()).all()
    return jsonify({'tags': [t.to_dict() for t in tags]})


def _tag_name_taken(name, exclude_id=None):
    query = Tag.query.filter(Tag.tenant_id == g.current_tenant.id, db.func.lower(Tag.name) == name.lower())
    if exclude_id:
        query = query.filter(Tag.id != exclude_id)
    return query.first() is not None


@admin_bp.route('/tags', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_tag():
    data = request.get_json() or {}
    name = (data.get('name') or '').strip()

    if not name:
        return jsonify({'error': 'Tag name is required'}), 400
    if _tag_name_taken(name):
        return jsonify({'error': 'A tag with this name already exists'}), 400

    color = data.get('color') or '#6C757D'
    is_valid, error = validate_hex_color(color)
    if not is_valid:
        return jsonify({'error': error}), 400

    tag = Tag(tenant_id=g.current_tenant.id, name=name, color=color)
    db.session.add(tag)
    db.session.commit()
    return jsonify({'success': True, 'tag': tag.to_dict()}), 201


@admin_bp.route('/tags/<int:tag_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_tag(tag_id):
    tag, error = _tenant_record(Tag, tag_id)
    if error:
        return error

    data = request.get_json() or {}
    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            return jsonify({'error': 'Tag name is required'}), 400
        if _tag_name_taken(name, exclude_id=tag.id):
            return jsonify({'error': 'A tag with this name already exists'}), 400
        tag.name = name
    if 'color' in data:
        is_valid, error_message = validate_hex_color(data['color'])
        if not is_valid:
            return jsonify({'error': error_message}), 400
        tag.color = data['color']

    db.session.commit()
    return jsonify({'success': True, 'tag': tag.to_dict()})


@admin_bp.route('/tags/<int:tag_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_tag(tag_id):
    tag, error = _tenant_record(Tag, tag_id)
    if error:
        return error

    try:
        db.session.execute(ticket_tags.delete().where(ticket_tags.c.tag_id == tag.id))
        db.session.delete(tag)
        db.session.commit()
        return jsonify({'success': True})
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting tag {tag_id}: {e}")
        return jsonify({'error': 'Failed to delete tag'}), 500


# ========== AUTOMATIONS ==========

@admin_bp.route('/automations')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_automations():
    query = Automation.query.filter_by(tenant_id=g.current_tenant.id)
    trigger = request.args.get('trigger')
    if trigger:
        query = query.filter_by(trigger=trigger)

    automations = query.order_by(Automation.priority.asc(), Automation.id.asc()).all()
    return jsonify({'automations': [a.to_dict() for a in automations]})


@admin_bp.route('/automations', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_automation():
    """Create an automation; it runs after the existing ones"""
    data = request.get_json() or {}

    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Name is required'}), 400

    trigger = data.get('trigger', automation_engine.TRIGGER_TICKET_CREATED)
    if trigger not in Automation.TRIGGERS:
        return jsonify({'error': f'Invalid trigger. Must be one of: {", ".join(Automation.TRIGGERS)}'}), 400

    conditions = data.get('conditions') or []
    actions = data.get('actions') or []
    is_valid, error = automation_engine.validate_rules(conditions, actions)
    if not is_valid:
        return jsonify({'error': error}), 400

    try:
        automation = Automation(
            tenant_id=g.current_tenant.id,
            name=name,
            description=data.get('description'),
            trigger=trigger,
            is_active=bool(data.get('is_active', True)),
            priority=automation_engine.next_priority(g.current_tenant.id),
            created_by_id=current_user.id
        )
        automation.set_conditions(conditions)
        automation.set_actions(actions)

        db.session.add(automation)
        db.session.commit()
        return jsonify({'success': True, 'automation': automation.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating automation: {e}")
        return jsonify({'error': 'Failed to create automation'}), 500


@admin_bp.route('/automations/<int:automation_id>')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def get_automation(automation_id):
    automation, error = _tenant_record(Automation, automation_id)
    if error:
        return error
    return jsonify({'automation': automation.to_dict()})


@admin_bp.route('/automations/<int:automation_id>', methods=['PUT', 'PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_automation(automation_id):
    automation, error = _tenant_record(Automation, automation_id)
    if error:
        return error

    data = request.get_json() or {}

    if 'name' in data:
        if not data['name'] or not data['name'].strip():
            return jsonify({'error': 'Name is required'}), 400
        automation.name = data['name'].strip()
    if 'description' in data:
        automation.description = data['description']
    if 'trigger' in data:
        if data['trigger'] not in Automation.TRIGGERS:
            return jsonify({'error': f'Invalid trigger. Must be one of: {", ".join(Automation.TRIGGERS)}'}), 400
        automation.trigger = data['trigger']
    if 'is_active' in data:
        automation.is_active = bool(data['is_active'])

    if 'conditions' in data or 'actions' in data:
        conditions = data.get('conditions', automation.get_conditions())
        actions = data.get('actions', automation.get_actions())
        is_valid, error_message = automation_engine.validate_rules(conditions, actions)
        if not is_valid:
            return jsonify({'error': error_message}), 400
        automation.set_conditions(conditions)
        automation.set_actions(actions)

    db.session.commit()
    return jsonify({'success': True, 'automation': automation.to_dict()})


@admin_bp.route('/automations/<int:automation_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_automation(automation_id):
    automation, error = _tenant_record(Automation, automation_id)
    if error:
        return error

    db.session.delete(automation)
    db.session.commit()
    return jsonify({'success': True})


@admin_bp.route('/automations/<int:automation_id>/toggle', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def toggle_automation(automation_id):
    automation, error = _tenant_record(Automation, automation_id)
    if error:
        return error

    automation.is_active = not automation.is_active
    db.session.commit()
    return jsonify({'success': True, 'is_active': automation.is_active})


@admin_bp.route('/automations/reorder', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def reorder_automations():
    """Set execution order from a list of automation ids (first runs first)"""
    data = request.get_json() or {}
    ids = data.get('automation_ids')

    if not isinstance(ids, list) or not ids:
        return jsonify({'error': 'automation_ids must be a non-empty list'}), 400

    automations = {
        a.id: a for a in Automation.query.filter(
            Automation.tenant_id == g.current_tenant.id,
            Automation.id.in_(ids)
        ).all()
    }
    if len(automations) != len(set(ids)):
        return jsonify({'error': 'Automation not found'}), 404

    for position, automation_id in enumerate(ids):
        automations[automation_id].priority = position

    db.session.commit()
    return jsonify({'success': True})


# ========== SLA POLICIES ==========

@admin_bp.route('/sla-policies')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_sla_policies():
    policies = SLAPolicy.query.filter_by(tenant_id=g.current_tenant.id).order_by(
        SLAPolicy.is_default.desc(), SLAPolicy.created_at.asc()
    ).all()
    return jsonify({'policies': [p.to_dict() for p in policies]})


@admin_bp.route('/sla-policies', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_sla_policy():
    data = request.get_json() or {}

    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Policy name is required'}), 400

    targets = data.get('targets') or []
    is_valid, error = sla_service.validate_targets(targets)
    if not is_valid:
        return jsonify({'error': error}), 400

    try:
        policy = sla_service.create_policy(
            g.current_tenant.id,
            name,
            description=data.get('description'),
            targets=targets,
            is_default=bool(data.get('is_default', False)),
            is_active=bool(data.get('is_active', True))
        )
        return jsonify({'success': True, 'policy': policy.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating SLA policy: {e}")
        return jsonify({'error': 'Failed to create SLA policy'}), 500


@admin_bp.route('/sla-policies/<int:policy_id>')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def get_sla_policy(policy_id):
    policy, error = _tenant_record(SLAPolicy, policy_id)
    if error:
        return error
    return jsonify({'policy': policy.to_dict()})


@admin_bp.route('/sla-policies/<int:policy_id>', methods=['PUT'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_sla_policy(policy_id):
    """Update policy fields; targets are upserted by priority"""
    policy, error = _tenant_record(SLAPolicy, policy_id)
    if error:
        return error

    data = request.get_json() or {}

    if 'name' in data and not (data['name'] or '').strip():
        return jsonify({'error': 'Policy name is required'}), 400
    if 'targets' in data:
        is_valid, error_message = sla_service.validate_targets(data['targets'])
        if not is_valid:
            return jsonify({'error': error_message}), 400

    try:
        policy = sla_service.update_policy(policy, data)
        return jsonify({'success': True, 'policy': policy.to_dict()})
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating SLA policy {policy_id}: {e}")
        return jsonify({'error': 'Failed to update SLA policy'}), 500


@admin_bp.route('/sla-policies/<int:policy_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def toggle_sla_policy(policy_id):
    policy, error = _tenant_record(SLAPolicy, policy_id)
    if error:
        return error

    policy.is_active = not policy.is_active
    db.session.commit()
    return jsonify({'success': True, 'is_active': policy.is_active})


@admin_bp.route('/sla-policies/<int:policy_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_sla_policy(policy_id):
    """Delete a policy; tickets keep their computed due dates"""
    policy, error = _tenant_record(SLAPolicy, policy_id)
    if error:
        return error

    Ticket.query.filter_by(sla_policy_id=policy.id).update({'sla_policy_id': None}, synchronize_session=False)
    db.session.delete(policy)
    db.session.commit()
    return jsonify({'success': True})


# ========== GROUPS ==========

@admin_bp.route('/groups')
@login_required
@require_tenant_access
def list_groups():
    """Groups are readable by every agent (ticket routing); changes need admin"""
    groups = Group.query.filter_by(tenant_id=g.current_tenant.id).order_by(Group.name.asc()).all()
    return jsonify({'groups': [grp.to_dict() for grp in groups]})


@admin_bp.route('/groups', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_group():
    data = request.get_json() or {}
    name = (data.get('name') or '').strip()

    if not name:
        return jsonify({'error': 'Group name is required'}), 400

    color = data.get('color') or '#6C757D'
    is_valid, error = validate_hex_color(color)
    if not is_valid:
        return jsonify({'error': error}), 400

    group = Group(
        tenant_id=g.current_tenant.id,
        name=name,
        slug=unique_slug(Group, g.current_tenant.id, name),
        description=data.get('description'),
        color=color
    )
    db.session.add(group)
    db.session.commit()
    return jsonify({'success': True, 'group': group.to_dict()}), 201


@admin_bp.route('/groups/<int:group_id>')
@login_required
@require_tenant_access
def get_group(group_id):
    group, error = _tenant_record(Group, group_id)
    if error:
        return error
    return jsonify({'group': group.to_dict(include_members=True)})


@admin_bp.route('/groups/<int:group_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_group(group_id):
    group, error = _tenant_record(Group, group_id)
    if error:
        return error

    data = request.get_json() or {}
    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            return jsonify({'error': 'Group name is required'}), 400
        group.name = name
        group.slug = unique_slug(Group, group.tenant_id, name, exclude_id=group.id)
    if 'description' in data:
        group.description = data['description']
    if 'color' in data:
        is_valid, error_message = validate_hex_color(data['color'])
        if not is_valid:
            return jsonify({'error': error_message}), 400
        group.color = data['color']

    db.session.commit()
    return jsonify({'success': True, 'group': group.to_dict()})


@admin_bp.route('/groups/<int:group_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_group(group_id):
    group, error = _tenant_record(Group, group_id)
    if error:
        return error

    Ticket.query.filter_by(group_id=group.id).update({'group_id': None}, synchronize_session=False)
    db.session.delete(group)
    db.session.commit()
    return jsonify({'success': True})


@admin_bp.route('/groups/<int:group_id>/members', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def add_group_member(group_id):
    group, error = _tenant_record(Group, group_id)
    if error:
        return error

    data = request.get_json() or {}
    user = db.session.get(User, data.get('user_id')) if data.get('user_id') else None
    if not user or not user.has_tenant_access(g.current_tenant.id):
        return jsonify({'error': 'Agent is not a member of this workspace'}), 400

    group.add_member(user)
    db.session.commit()
    return jsonify({'success': True, 'group': group.to_dict(include_members=True)}), 201


@admin_bp.route('/groups/<int:group_id>/members/<int:user_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def remove_group_member(group_id, user_id):
    group, error = _tenant_record(Group, group_id)
    if error:
        return error

    user = db.session.get(User, user_id)
    if not user or not group.remove_member(user):
        return jsonify({'error': 'Agent is not in this group'}), 404

    db.session.commit()
    return jsonify({'success': True})


# ========== AGENTS ==========

@admin_bp.route('/agents')
@login_required
@require_tenant_access
def list_agents():
    """Workspace members with their roles (inactive members included for admins)"""
    query = TenantMembership.query.filter_by(tenant_id=g.current_tenant.id)
    if not current_user.is_tenant_admin(g.current_tenant.id):
        query = query.filter_by(is_active=True)

    memberships = query.order_by(TenantMembership.joined_at.asc()).all()
    return jsonify({'agents': [
        dict(m.user.to_dict(), role=m.role, membership_active=m.is_active,
             joined_at=m.joined_at.isoformat() if m.joined_at else None)
        for m in memberships
    ]})


@admin_bp.route('/agents', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def invite_agent():
    """Add an agent to the workspace, creating the account if needed"""
    data = request.get_json() or {}

    is_valid, email = validate_email(data.get('email'))
    if not is_valid:
        return jsonify({'error': email}), 400

    role = data.get('role', 'agent')
    if role == 'owner' and current_user.get_role_in_tenant(g.current_tenant.id) != 'owner':
        return jsonify({'error': 'Only owners can change the owner role'}), 403

    password = data.get('password')
    if password:
        is_valid, error = validate_password_strength(password)
        if not is_valid:
            return jsonify({'error': error}), 400

    try:
        user, membership = tenant_service.invite_agent(
            g.current_tenant,
            email,
            role=role,
            first_name=data.get('first_name'),
            last_name=data.get('last_name'),
            password=password
        )
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    AuditLog.log_event(
        'agent_invited', tenant_id=g.current_tenant.id, user_id=current_user.id,
        resource_type='user', resource_id=user.id, details={'email': email, 'role': role},
        ip_address=request.remote_addr
    )
    current_app.logger.info(f"User {current_user.id} added {user.id} to tenant {g.current_tenant.id} as {role}")

    return jsonify({'success': True, 'agent': dict(user.to_dict(), role=membership.role)}), 201


def _membership_for(user_id):
    membership = TenantMembership.query.filter_by(tenant_id=g.current_tenant.id, user_id=user_id).first()
    if not membership:
        return None, (jsonify({'error': 'Agent not found'}), 404)
    return membership, None


@admin_bp.route('/agents/<int:user_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_agent(user_id):
    """Change an agent's role or active flag"""
    membership, error = _membership_for(user_id)
    if error:
        return error

    data = request.get_json() or {}
    acting_role = current_user.get_role_in_tenant(g.current_tenant.id)

    try:
        membership = tenant_service.update_membership(membership, data, acting_role)
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    AuditLog.log_event(
        'agent_updated', tenant_id=g.current_tenant.id, user_id=current_user.id,
        resource_type='user', resource_id=user_id,
        details={'role': membership.role, 'is_active': membership.is_active}
    )
    return jsonify({'success': True, 'role': membership.role, 'is_active': membership.is_active})


@admin_bp.route('/agents/<int:user_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def deactivate_agent(user_id):
    """Deactivate an agent's membership; their tickets and messages are kept"""
    membership, error = _membership_for(user_id)
    if error:
        return error

    if user_id == current_user.id:
        return jsonify({'error': 'You cannot deactivate yourself'}), 400

    acting_role = current_user.get_role_in_tenant(g.current_tenant.id)
    try:
        tenant_service.update_membership(membership, {'is_active': False}, acting_role)
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    AuditLog.log_event(
        'agent_deactivated', tenant_id=g.current_tenant.id, user_id=current_user.id,
        resource_type='user', resource_id=user_id
    )
    return jsonify({'success': True})


# ========== TOP BANNER ==========

BANNER_COLOR_FIELDS = ['background_color', 'text_color']


def get_or_create_banner(tenant_id):
    banner = TopBanner.query.filter_by(tenant_id=tenant_id).first()
    if not banner:
        banner = TopBanner(tenant_id=tenant_id, **TopBanner.DEFAULTS)
        db.session.add(banner)
        db.session.commit()
    return banner


@admin_bp.route('/banner')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def get_banner():
    return jsonify({'banner': get_or_create_banner(g.current_tenant.id).to_dict()})


@admin_bp.route('/banner', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_banner():
    banner = get_or_create_banner(g.current_tenant.id)
    data = request.get_json() or {}

    for field in BANNER_COLOR_FIELDS:
        if field in data:
            is_valid, error = validate_hex_color(data[field])
            if not is_valid:
                db.session.rollback()
                return jsonify({'error': error}), 400
            setattr(banner, field, data[field])

    for field in ('message', 'link_text', 'link_url'):
        if field in data:
            setattr(banner, field, data[field] or '')
    for field in ('is_enabled', 'dismissible'):
        if field in data:
            setattr(banner, field, bool(data[field]))

    if banner.is_enabled and not banner.message.strip():
        db.session.rollback()
        return jsonify({'error': 'An enabled banner needs a message'}), 400

    db.session.commit()
    return jsonify({'success': True, 'banner': banner.to_dict()})


# ========== AUDIT LOG ==========

@admin_bp.route('/audit-log')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def audit_log():
    limit = min(request.args.get('limit', 100, type=int), 500)
    logs = AuditLog.get_recent_for_tenant(
        g.current_tenant.id, limit=limit, event_type=request.args.get('event_type')
    )
    return jsonify({'events': [log.to_dict() for log in logs]})
