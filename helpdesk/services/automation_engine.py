"""
Automation Engine
Evaluates a tenant's automation rules against ticket events and applies their actions.

Conditions are ANDed; an empty condition list always matches. Automations run in
ascending priority order and each one sees the changes made by the ones before it.
Actions are applied directly and never re-trigger automations.
"""
import logging
from datetime import datetime
from helpdesk import db
from helpdesk.models.automation import Automation
from helpdesk.models.ticket import Ticket
from helpdesk.models.tag import Tag
from helpdesk.models.group import Group
from helpdesk.models.user import User

logger = logging.getLogger(__name__)


TRIGGER_TICKET_CREATED = 'ticket_created'
TRIGGER_TICKET_UPDATED = 'ticket_updated'

CONDITION_FIELDS = ['status', 'priority', 'assignee_id', 'group_id', 'subject', 'description', 'source', 'contact_id']

# Compare the current ticket against the snapshot taken before the change
CHANGE_FIELDS = {
    'status_changed': 'status',
    'priority_changed': 'priority',
    'assignee_changed': 'assignee_id',
}

OPERATORS = ['equals', 'not_equals', 'contains', 'not_contains', 'starts_with', 'ends_with', 'is_empty', 'is_not_empty']

ACTION_TYPES = ['set_status', 'set_priority', 'assign_agent', 'assign_group', 'add_tag', 'remove_tag', 'add_note']


def _as_text(value):
    return '' if value is None else str(value)


# ========== CONDITIONS ==========

def evaluate_condition(condition, ticket, previous=None):
    """
    Evaluate one {"field", "operator", "value"} condition against a ticket

    Args:
        condition: Condition dict
        ticket: Ticket in its current state
        previous: Ticket.snapshot() taken before the change, or None on creation

    Returns:
        bool
    """
    field = condition.get('field')
    operator = condition.get('operator', 'equals')
    value = condition.get('value')

    if field in CHANGE_FIELDS:
        # No snapshot means the ticket was just created, which counts as a change.
        # Operator and value are ignored; pair with a plain condition for "changed to X".
        attr = CHANGE_FIELDS[field]
        if previous is None:
            return True
        return previous.get(attr) != getattr(ticket, attr)

    if field not in CONDITION_FIELDS:
        logger.warning(f"Unknown automation condition field: {field}")
        return False

    current = _as_text(getattr(ticket, field)).strip().lower()
    expected = _as_text(value).strip().lower()

    if operator == 'equals':
        return current == expected
    if operator == 'not_equals':
        return current != expected
    if operator == 'contains':
        return expected in current
    if operator == 'not_contains':
        return expected not in current
    if operator == 'starts_with':
        return current.startswith(expected)
    if operator == 'ends_with':
        return current.endswith(expected)
    if operator == 'is_empty':
        return current == ''
    if operator == 'is_not_empty':
        return current != ''

    logger.warning(f"Unknown automation operator: {operator}")
    return False


def evaluate_conditions(conditions, ticket, previous=None):
    """All conditions must match (AND). An empty list matches."""
    return all(evaluate_condition(condition, ticket, previous) for condition in conditions)


# ========== ACTIONS ==========

def execute_action(action, ticket):
    """
    Apply one {"type", "value"} action to a ticket

    Returns:
        str: Human-readable description of what was done, or None if skipped
    """
    from helpdesk.services import ticket_service, sla_service

    action_type = (action.get('type') or '').lower()
    value = action.get('value')

    if action_type == 'set_status':
        status = _as_text(value).lower()
        if status not in Ticket.STATUSES:
            raise ValueError(f"Invalid status: {value}")
        ticket_service.change_status(ticket.id, status, reason='Automation')
        return f"Set status to {status}"

    if action_type == 'set_priority':
        priority = _as_text(value).lower()
        if priority not in Ticket.PRIORITIES:
            raise ValueError(f"Invalid priority: {value}")
        if ticket.priority != priority:
            ticket.priority = priority
            sla_service.apply_sla(ticket)
            ticket.updated_at = datetime.utcnow()
        return f"Set priority to {priority}"

    if action_type == 'assign_agent':
        if not value:
            ticket.assignee_id = None
            return "Assigned to Unassigned"
        agent = db.session.get(User, int(value))
        if not agent:
            raise ValueError(f"Agent {value} not found")
        ticket_service.assign_ticket(ticket.id, agent.id)
        return f"Assigned to {agent.full_name}"

    if action_type == 'assign_group':
        if not value:
            ticket.group_id = None
            return "Assigned to group None"
        group = Group.query.filter_by(id=int(value), tenant_id=ticket.tenant_id).first()
        if not group:
            raise ValueError(f"Group {value} not found")
        ticket.group_id = group.id
        return f"Assigned to group {group.name}"

    if action_type == 'add_tag':
        name = _as_text(value).strip()
        if not name:
            raise ValueError("Tag name is required")
        tag = Tag.query.filter(Tag.tenant_id == ticket.tenant_id, db.func.lower(Tag.name) == name.lower()).first()
        if not tag:
            tag = Tag(tenant_id=ticket.tenant_id, name=name)
            db.session.add(tag)
        if tag not in ticket.tags:
            ticket.tags.append(tag)
        return f'Added tag "{name}"'

    if action_type == 'remove_tag':
        name = _as_text(value).strip()
        for tag in list(ticket.tags):
            if tag.name.lower() == name.lower():
                ticket.tags.remove(tag)
        return f'Removed tag "{name}"'

    if action_type == 'add_note':
        if not value:
            raise ValueError("Note text is required")
        ticket_service.add_message(
            ticket.id,
            _as_text(value),
            author_type='system',
            is_internal=True,
            author_name='Automation'
        )
        return "Added internal note"

    logger.warning(f"Unknown automation action type: {action_type}")
    return None


def execute_actions(actions, ticket, automation_name=None):
    """Run actions in order; a failing action is logged and the rest still run"""
    executed = []
    for action in actions:
        try:
            description = execute_action(action, ticket)
            if description:
                executed.append(description)
        except Exception as e:
            logger.error(f"Automation {automation_name!r}: action {action.get('type')} failed on "
                         f"{ticket.ticket_number}: {e}")
    return executed


# ========== RUNNER ==========

def run_automations(trigger, ticket, previous=None):
    """
    Run every active automation for the tenant and trigger against a ticket

    Args:
        trigger: ticket_created or ticket_updated
        ticket: The ticket the event is about
        previous: Ticket.snapshot() from before the update (ticket_updated only)

    Returns:
        dict: {'executed_count': number of actions applied,
              'actions': ["<automation>: <description>", ...]}
    """
    result = {'executed_count': 0, 'actions': []}

    try:
        automations = Automation.query.filter_by(
            tenant_id=ticket.tenant_id,
            trigger=trigger,
            is_active=True
        ).order_by(Automation.priority.asc(), Automation.id.asc()).all()

        for automation in automations:
            if not evaluate_conditions(automation.get_conditions(), ticket, previous):
                continue

            executed = execute_actions(automation.get_actions(), ticket, automation.name)

            automation.run_count = (automation.run_count or 0) + 1
            automation.last_run_at = datetime.utcnow()
            result['actions'].extend(f"{automation.name}: {description}" for description in executed)
            logger.info(f"Automation {automation.name!r} ran on {ticket.ticket_number} ({len(executed)} actions)")

        result['executed_count'] = len(result['actions'])
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error running {trigger} automations for ticket {ticket.id}: {e}")

    return result


def next_priority(tenant_id):
    """Priority for a newly created automation (runs after the existing ones)"""
    current_max = db.session.query(db.func.max(Automation.priority)).filter(Automation.tenant_id == tenant_id).scalar()
    return (current_max if current_max is not None else -1) + 1


def validate_rules(conditions, actions):
    """
    Validate condition/action lists from a request body

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(conditions, list):
        return False, 'Conditions must be a list'
    if not isinstance(actions, list) or len(actions) == 0:
        return False, 'At least one action is required'

    for condition in conditions:
        if not isinstance(condition, dict) or not condition.get('field'):
            return False, 'Each condition needs a field'
        field = condition['field']
        if field not in CONDITION_FIELDS and field not in CHANGE_FIELDS:
            return False, f"Unknown condition field: {field}"
        if field in CONDITION_FIELDS and condition.get('operator', 'equals') not in OPERATORS:
            return False, f"Unknown operator: {condition.get('operator')}"

    for action in actions:
        if not isinstance(action, dict) or (action.get('type') or '').lower() not in ACTION_TYPES:
            return False, f"Unknown action type: {action.get('type') if isinstance(action, dict) else action}"

    return True, None
