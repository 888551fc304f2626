"""
SLA Service
Policies, per-priority targets, and due-date calculation for tickets
"""
from datetime import datetime, timedelta
from flask import current_app
from helpdesk import db
from helpdesk.models.sla_policy import SLAPolicy, SLATarget
from helpdesk.utils.timezone_utils import convert_utc_to_user_tz, convert_user_tz_to_utc, to_naive_utc


# Applied when a policy is created without explicit targets
DEFAULT_TARGETS = [
    {'priority': 'urgent', 'first_response_minutes': 60, 'resolution_minutes': 240,
     'operational_hours': 'calendar', 'escalation_enabled': True},
    {'priority': 'high', 'first_response_minutes': 240, 'resolution_minutes': 480,
     'operational_hours': 'business', 'escalation_enabled': True},
    {'priority': 'medium', 'first_response_minutes': 480, 'resolution_minutes': 2880,
     'operational_hours': 'business', 'escalation_enabled': True},
    {'priority': 'low', 'first_response_minutes': 1440, 'resolution_minutes': 7200,
     'operational_hours': 'business', 'escalation_enabled': False},
]

# Used when the tenant has no active policy (hours)
FALLBACK_FIRST_RESPONSE_HOURS = {
    'urgent': 1,
    'high': 4,
    'medium': 24,
    'low': 48
}

FALLBACK_RESOLUTION_HOURS = {
    'urgent': 4,
    'high': 24,
    'medium': 72,
    'low': 168
}

PRIORITIES = ['low', 'medium', 'high', 'urgent']
OPERATIONAL_HOURS = ['calendar', 'business']


# ========== POLICIES ==========

def validate_targets(targets):
    """
    Validate a list of target dicts from a request body

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(targets, list):
        return False, 'Targets must be a list'

    for target in targets:
        if not isinstance(target, dict):
            return False, 'Each target must be an object'
        if target.get('priority') not in PRIORITIES:
            return False, f"Invalid target priority: {target.get('priority')}"
        for key in ('first_response_minutes', 'resolution_minutes'):
            if key in target:
                value = target[key]
                if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                    return False, f'{key} must be a positive integer'
        if 'operational_hours' in target and target['operational_hours'] not in OPERATIONAL_HOURS:
            return False, 'operational_hours must be calendar or business'

    return True, None


def upsert_targets(policy, targets):
    """Create or update targets on a policy, keyed by priority"""
    defaults = {t['priority']: t for t in DEFAULT_TARGETS}

    for data in targets:
        priority = data['priority']
        target = SLATarget.query.filter_by(policy_id=policy.id, priority=priority).first()
        if not target:
            base = defaults[priority]
            target = SLATarget(
                policy_id=policy.id,
                priority=priority,
                first_response_minutes=base['first_response_minutes'],
                resolution_minutes=base['resolution_minutes'],
                operational_hours=base['operational_hours'],
                escalation_enabled=base['escalation_enabled']
            )
            db.session.add(target)

        for key in ('first_response_minutes', 'resolution_minutes', 'operational_hours', 'escalation_enabled'):
            if key in data:
                setattr(target, key, data[key])


def create_policy(tenant_id, name, description=None, targets=None, is_default=False, is_active=True):
    """
    Create an SLA policy

    Args:
        tenant_id: Owning tenant
        name: Policy name
        description: Optional description
        targets: Optional list of target dicts; defaults are used when empty
        is_default: Make this the policy applied to new tickets

    Returns:
        SLAPolicy: The created policy
    """
    policy = SLAPolicy(
        tenant_id=tenant_id,
        name=name,
        description=description,
        is_active=is_active,
        is_default=is_default
    )
    db.session.add(policy)
    db.session.flush()

    if is_default:
        _clear_other_defaults(policy)

    # Every priority gets a target; explicit ones override the defaults
    upsert_targets(policy, DEFAULT_TARGETS)
    if targets:
        upsert_targets(policy, targets)

    db.session.commit()
    return policy


def update_policy(policy, data):
    """Partial update of a policy and its targets"""
    if 'name' in data:
        policy.name = data['name']
    if 'description' in data:
        policy.description = data['description']
    if 'is_active' in data:
        policy.is_active = bool(data['is_active'])
    if 'is_default' in data:
        policy.is_default = bool(data['is_default'])
        if policy.is_default:
            _clear_other_defaults(policy)
    if 'targets' in data:
        upsert_targets(policy, data['targets'])

    policy.updated_at = datetime.utcnow()
    db.session.commit()
    return policy


def _clear_other_defaults(policy):
    SLAPolicy.query.filter(
        SLAPolicy.tenant_id == policy.tenant_id,
        SLAPolicy.id != policy.id,
        SLAPolicy.is_default == True
    ).update({'is_default': False}, synchronize_session=False)


def get_active_policy(tenant_id):
    """Active default policy, else the oldest active policy, else None"""
    base = SLAPolicy.query.filter_by(tenant_id=tenant_id, is_active=True)
    return (base.filter_by(is_default=True).first()
            or base.order_by(SLAPolicy.created_at.asc(), SLAPolicy.id.asc()).first())


# ========== DUE DATES ==========

def add_business_minutes(start, minutes, tz_name='UTC', start_hour=9, end_hour=17, business_days=(0, 1, 2, 3, 4)):
    """
    Add working minutes to a naive-UTC datetime

    Only time inside [start_hour, end_hour) on business_days, in the tenant's
    timezone, counts towards the total.

    Returns:
        datetime: Naive UTC due date
    """
    if not business_days or end_hour <= start_hour:
        return start + timedelta(minutes=minutes)

    current = convert_utc_to_user_tz(start, tz_name).replace(tzinfo=None)
    remaining = float(minutes)

    while remaining > 0:
        day_start = current.replace(hour=start_hour, minute=0, second=0, microsecond=0)
        day_end = current.replace(hour=end_hour, minute=0, second=0, microsecond=0)

        if current.weekday() not in business_days or current >= day_end:
            current = (current + timedelta(days=1)).replace(hour=start_hour, minute=0, second=0, microsecond=0)
            continue

        if current < day_start:
            current = day_start

        available = (day_end - current).total_seconds() / 60
        if remaining <= available:
            current = current + timedelta(minutes=remaining)
            remaining = 0
        else:
            remaining -= available
            current = (current + timedelta(days=1)).replace(hour=start_hour, minute=0, second=0, microsecond=0)

    return to_naive_utc(convert_user_tz_to_utc(current, tz_name))


def _add_target_minutes(start, minutes, operational_hours, tenant):
    if operational_hours == 'business':
        cfg = current_app.config
        return add_business_minutes(
            start,
            minutes,
            tz_name=tenant.timezone if tenant and tenant.timezone else 'UTC',
            start_hour=cfg.get('BUSINESS_HOURS_START', 9),
            end_hour=cfg.get('BUSINESS_HOURS_END', 17),
            business_days=cfg.get('BUSINESS_DAYS', (0, 1, 2, 3, 4))
        )
    return start + timedelta(minutes=minutes)


def calculate_first_response_due(priority, start=None):
    """Fallback first response deadline when no policy applies"""
    start = start or datetime.utcnow()
    return start + timedelta(hours=FALLBACK_FIRST_RESPONSE_HOURS.get(priority, 24))


def calculate_resolution_due(priority, start=None):
    """Fallback resolution deadline when no policy applies"""
    start = start or datetime.utcnow()
    return start + timedelta(hours=FALLBACK_RESOLUTION_HOURS.get(priority, 72))


def apply_sla(ticket):
    """
    Set sla_policy_id and both due dates on a ticket from its priority.
    Deadlines are measured from ticket creation, so a priority change recomputes
    them against the original start. Does not commit.
    """
    start = ticket.created_at or datetime.utcnow()
    policy = get_active_policy(ticket.tenant_id)
    target = policy.get_target(ticket.priority) if policy else None

    if target:
        tenant = ticket.tenant
        ticket.sla_policy_id = policy.id
        ticket.first_response_due_at = _add_target_minutes(
            start, target.first_response_minutes, target.operational_hours, tenant)
        ticket.resolution_due_at = _add_target_minutes(
            start, target.resolution_minutes, target.operational_hours, tenant)
    else:
        ticket.sla_policy_id = None
        ticket.first_response_due_at = calculate_first_response_due(ticket.priority, start)
        ticket.resolution_due_at = calculate_resolution_due(ticket.priority, start)

    return ticket
