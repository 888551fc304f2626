"""
Workspace (tenant) creation and membership management
"""
from helpdesk import db
from helpdesk.models.tenant import Tenant, TenantMembership
from helpdesk.models.user import User
from helpdesk.services import sla_service
from helpdesk.services.knowledge_base_service import slugify
from helpdesk.utils.timezone_utils import is_valid_timezone


def unique_tenant_slug(name):
    base = slugify(name)
    slug = base
    suffix = 2
    while Tenant.query.filter_by(slug=slug).first():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def create_workspace(owner, name, slug=None, timezone='UTC', description=None):
    """
    Create a tenant with `owner` as its owner and a default SLA policy

    Args:
        owner: User who becomes the owner
        name: Workspace name
        slug: Optional URL slug (derived from the name when empty)
        timezone: IANA timezone used for business hours

    Returns:
        Tenant
    """
    if not name or not name.strip():
        raise ValueError("Workspace name is required")
    if not is_valid_timezone(timezone):
        raise ValueError(f"Invalid timezone: {timezone}")

    if slug:
        slug = slugify(slug)
        if Tenant.query.filter_by(slug=slug).first():
            raise ValueError("That workspace URL is already taken")
    else:
        slug = unique_tenant_slug(name)

    tenant = Tenant(
        name=name.strip(),
        slug=slug,
        description=description,
        timezone=timezone
    )
    db.session.add(tenant)
    db.session.flush()  # Get tenant ID

    membership = TenantMembership(
        tenant_id=tenant.id,
        user_id=owner.id,
        role='owner'
    )
    db.session.add(membership)
    db.session.commit()

    sla_service.create_policy(tenant.id, 'Default SLA', description='Applied to new tickets', is_default=True)

    return tenant


def update_settings(tenant, data):
    if 'name' in data:
        if not data['name'] or not data['name'].strip():
            raise ValueError("Workspace name is required")
        tenant.name = data['name'].strip()
    if 'timezone' in data:
        if not is_valid_timezone(data['timezone']):
            raise ValueError(f"Invalid timezone: {data['timezone']}")
        tenant.timezone = data['timezone']
    for field in ('description', 'support_email', 'logo_url'):
        if field in data:
            setattr(tenant, field, data[field] or None)

    db.session.commit()
    return tenant


# ========== AGENTS ==========

def invite_agent(tenant, email, role='agent', first_name=None, last_name=None, password=None):
    """
    Add an agent to a workspace, creating the user if the email is new.
    A previously deactivated membership is reactivated.

    Returns:
        tuple: (user, membership)
    """
    if role not in TenantMembership.ROLES:
        raise ValueError(f"Invalid role: {role}")

    user = User.query.filter_by(email=email).first()
    if not user:
        if not password:
            raise ValueError("Password is required for a new agent")
        user = User(email=email, first_name=first_name, last_name=last_name)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()

    membership = TenantMembership.query.filter_by(tenant_id=tenant.id, user_id=user.id).first()
    if membership and membership.is_active:
        raise ValueError("This user is already a member of the workspace")

    if membership:
        membership.is_active = True
        membership.role = role
    else:
        membership = TenantMembership(tenant_id=tenant.id, user_id=user.id, role=role)
        db.session.add(membership)

    db.session.commit()
    return user, membership


def _owner_count(tenant_id):
    return TenantMembership.query.filter_by(tenant_id=tenant_id, role='owner', is_active=True).count()


def update_membership(membership, data, acting_role):
    """
    Change an agent's role or active flag

    Only owners may grant or remove the owner role, and the last owner
    cannot be demoted or deactivated.
    """
    new_role = data.get('role', membership.role)
    new_active = bool(data.get('is_active', membership.is_active))

    if new_role not in TenantMembership.ROLES:
        raise ValueError(f"Invalid role: {new_role}")

    if (new_role == 'owner' or membership.role == 'owner') and new_role != membership.role and acting_role != 'owner':
        raise ValueError("Only owners can change the owner role")

    losing_owner = membership.role == 'owner' and (new_role != 'owner' or not new_active)
    if losing_owner and _owner_count(membership.tenant_id) <= 1:
        raise ValueError("A workspace needs at least one owner")

    membership.role = new_role
    membership.is_active = new_active
    db.session.commit()
    return membership
