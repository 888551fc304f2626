"""
AI Agent Service
Tickets, replies and tasks created by the AI agent, confidence-based approval,
and the audit trail reviewed by admins.
"""
import json
import logging
import secrets
import time
from datetime import datetime
from helpdesk import db
from helpdesk.models.ai_action_log import AIActionLog
from helpdesk.models.ai_settings import AISettings, AIConfidenceConfig
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.models.task import Task
from helpdesk.models.tenant import TenantMembership
from helpdesk.models.user import User
from helpdesk.services import notification_service, task_service, ticket_service

logger = logging.getLogger(__name__)

AI_USER_EMAIL = 'ai-agent@helpdesk.system'
API_KEY_PREFIX = 'hdk_'

THRESHOLD_FIELDS = ['task_auto_approve', 'task_draft', 'note_auto_approve']

AI_TASK_FIELDS = ('title', 'description', 'priority', 'due_date', 'assignee_id', 'ticket_id', 'contact_id', 'company_id')


# ========== CONFIG ==========

def get_or_create_confidence_config(tenant_id):
    """Tenant's approval thresholds, created with defaults on first read"""
    config = AIConfidenceConfig.query.filter_by(tenant_id=tenant_id).first()
    if not config:
        config = AIConfidenceConfig(tenant_id=tenant_id, **AIConfidenceConfig.DEFAULTS)
        db.session.add(config)
        db.session.commit()
    return config


def update_confidence_config(tenant_id, data, updated_by_id=None):
    """
    Partial update of the approval thresholds

    Raises:
        ValueError: If a threshold is outside [0, 1]
    """
    config = get_or_create_confidence_config(tenant_id)

    for field in THRESHOLD_FIELDS:
        if field in data:
            value = data[field]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
                raise ValueError(f"{field} must be between 0 and 1")
            setattr(config, field, float(value))

    for field in ('auto_approve_enabled', 'require_approval_for_new'):
        if field in data:
            setattr(config, field, bool(data[field]))

    config.updated_by_id = updated_by_id
    db.session.commit()
    return config


def determine_approval_status(tenant_id, confidence, entity_type):
    """
    Decide whether an AI action needs human review

    Args:
        confidence: Float in [0, 1]
        entity_type: 'ticket' and 'task' use the task threshold, 'reply'/'note' the note threshold

    Returns:
        str: 'auto_approved' or 'pending'
    """
    config = get_or_create_confidence_config(tenant_id)

    if not config.auto_approve_enabled:
        return 'pending'

    threshold = config.task_auto_approve if entity_type in ('ticket', 'task') else config.note_auto_approve
    return 'auto_approved' if confidence >= threshold else 'pending'


# ========== AI USER / API KEY ==========

def get_or_create_ai_user(tenant):
    """System user that authors AI actions, with an agent membership in the tenant"""
    user = User.query.filter_by(email=AI_USER_EMAIL).first()
    if not user:
        user = User(
            email=AI_USER_EMAIL,
            first_name='AI',
            last_name='Agent',
            title='AI Assistant',
            is_ai_agent=True
        )
        user.set_password(secrets.token_urlsafe(32))
        db.session.add(user)
        db.session.flush()

    if not TenantMembership.query.filter_by(tenant_id=tenant.id, user_id=user.id).first():
        db.session.add(TenantMembership(tenant_id=tenant.id, user_id=user.id, role='agent'))

    db.session.commit()
    return user


def get_or_create_ai_settings(tenant_id):
    settings = AISettings.query.filter_by(tenant_id=tenant_id).first()
    if not settings:
        settings = AISettings(tenant_id=tenant_id)
        db.session.add(settings)
        db.session.commit()
    return settings


def rotate_agent_api_key(tenant_id):
    """
    Issue a new AI agent API key for the tenant, replacing any previous one

    Returns:
        str: The raw key. Only its digest is stored, so it is shown once.
    """
    settings = get_or_create_ai_settings(tenant_id)
    raw_key = API_KEY_PREFIX + secrets.token_urlsafe(32)

    settings.agent_api_key_digest = AISettings.digest_key(raw_key)
    settings.agent_api_key_prefix = raw_key[:12]
    db.session.commit()

    logger.info(f"Rotated AI agent API key for tenant {tenant_id}")
    return raw_key


def revoke_agent_api_key(tenant_id):
    settings = get_or_create_ai_settings(tenant_id)
    settings.agent_api_key_digest = None
    settings.agent_api_key_prefix = None
    db.session.commit()


# ========== ACTION LOG ==========

def log_ai_action(tenant_id, action, entity_type, ai_user_id, approval_status, **kwargs):
    """Write one AIActionLog row (committed)"""
    log = AIActionLog(
        tenant_id=tenant_id,
        action=action,
        entity_type=entity_type,
        entity_id=kwargs.get('entity_id'),
        ticket_id=kwargs.get('ticket_id'),
        ai_user_id=ai_user_id,
        ai_model=kwargs.get('ai_model'),
        ai_reasoning=kwargs.get('ai_reasoning'),
        ai_confidence=kwargs.get('ai_confidence'),
        input_context=json.dumps(kwargs['input_context'], default=str) if kwargs.get('input_context') else None,
        output_data=json.dumps(kwargs['output_data'], default=str) if kwargs.get('output_data') else None,
        approval_status=approval_status,
        duration_ms=kwargs.get('duration_ms'),
        success=kwargs.get('success', True),
        error_message=kwargs.get('error_message')
    )
    db.session.add(log)
    db.session.commit()
    return log


def _log_failure(tenant, action, entity_type, data, started, error):
    db.session.rollback()
    try:
        ai_user = get_or_create_ai_user(tenant)
        log_ai_action(
            tenant.id, action, entity_type, ai_user.id, 'failed',
            ai_model=data.get('ai_model'),
            ai_reasoning=data.get('ai_reasoning'),
            ai_confidence=data.get('ai_confidence'),
            input_context=data,
            duration_ms=int((time.time() - started) * 1000),
            success=False,
            error_message=str(error)
        )
    except Exception as e:
        db.session.rollback()
        logger.error(f"Could not record failed AI action {action}: {e}")


# ========== AI ACTIONS ==========

def create_ai_ticket(tenant, data):
    """
    Create a ticket on behalf of the AI agent

    Args:
        tenant: Tenant the API key belongs to
        data: Validated dict with subject, description, priority, contact_email,
            contact_name, assignee_id, group_id, ai_reasoning, ai_confidence,
            ai_model, ai_context

    Returns:
        tuple: (ticket, action_log)
    """
    started = time.time()
    try:
        ai_user = get_or_create_ai_user(tenant)
        approval_status = determine_approval_status(tenant.id, data['ai_confidence'], 'ticket')

        ticket = ticket_service.create_ticket(
            tenant.id,
            data['subject'],
            data.get('description') or '',
            priority=data.get('priority') or 'medium',
            source='ai',
            contact_email=data.get('contact_email'),
            contact_name=data.get('contact_name'),
            assignee_id=data.get('assignee_id'),
            group_id=data.get('group_id'),
            ai_generated=True,
            approval_status=approval_status,
            created_by_id=ai_user.id
        )

        log = log_ai_action(
            tenant.id, 'create_ticket', 'ticket', ai_user.id, approval_status,
            entity_id=ticket.id,
            ticket_id=ticket.id,
            ai_model=data.get('ai_model'),
            ai_reasoning=data.get('ai_reasoning'),
            ai_confidence=data['ai_confidence'],
            input_context=data,
            output_data={'ticket_id': ticket.id, 'ticket_number': ticket.ticket_number, 'subject': ticket.subject},
            duration_ms=int((time.time() - started) * 1000)
        )
        return ticket, log
    except ValueError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"AI ticket creation failed for tenant {tenant.id}: {e}")
        _log_failure(tenant, 'create_ticket', 'ticket', data, started, e)
        raise


def create_ai_reply(tenant, ticket, data):
    """
    Add a reply (or internal note) authored by the AI agent

    A public reply that is still pending approval is hidden from the portal.

    Returns:
        tuple: (message, action_log)
    """
    started = time.time()
    internal = bool(data.get('internal', False))
    entity_type = 'note' if internal else 'reply'
    action = 'create_note' if internal else 'create_reply'

    try:
        ai_user = get_or_create_ai_user(tenant)
        approval_status = determine_approval_status(tenant.id, data['ai_confidence'], entity_type)

        message = ticket_service.add_message(
            ticket.id,
            data['body'],
            author_id=ai_user.id,
            author_type='ai',
            is_internal=internal,
            approval_status=approval_status
        )

        log = log_ai_action(
            tenant.id, action, entity_type, ai_user.id, approval_status,
            entity_id=message.id,
            ticket_id=ticket.id,
            ai_model=data.get('ai_model'),
            ai_reasoning=data.get('ai_reasoning'),
            ai_confidence=data['ai_confidence'],
            input_context=data,
            output_data={'message_id': message.id, 'ticket_id': ticket.id, 'internal': internal},
            duration_ms=int((time.time() - started) * 1000)
        )
        return message, log
    except ValueError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"AI reply creation failed on ticket {ticket.id}: {e}")
        _log_failure(tenant, action, entity_type, data, started, e)
        raise


def create_ai_task(tenant, data):
    """
    Create a follow-up task on behalf of the AI agent

    Below the tenant's task_draft threshold a pending task is created
    unassigned; the requested assignee is applied when the action is approved.

    Args:
        data: Validated dict with title, description, priority, due_date,
            assignee_id, ticket_id, contact_id, company_id, ai_reasoning,
            ai_confidence, ai_model, ai_context

    Returns:
        tuple: (task, action_log)
    """
    started = time.time()
    try:
        ai_user = get_or_create_ai_user(tenant)
        config = get_or_create_confidence_config(tenant.id)
        approval_status = determine_approval_status(tenant.id, data['ai_confidence'], 'task')

        fields = {key: data[key] for key in AI_TASK_FIELDS if data.get(key) is not None}
        held_assignee_id = None
        if approval_status == 'pending' and data['ai_confidence'] < config.task_draft and fields.get('assignee_id'):
            held_assignee_id = fields.pop('assignee_id')
            ticket_service._ensure_member(tenant.id, held_assignee_id)

        task = task_service.create_task(
            tenant.id, fields, created_by_id=ai_user.id,
            ai_generated=True,
            ai_reasoning=data.get('ai_reasoning'),
            ai_confidence=data['ai_confidence'],
            approval_status=approval_status
        )

        log = log_ai_action(
            tenant.id, 'create_task', 'task', ai_user.id, approval_status,
            entity_id=task.id,
            ticket_id=task.ticket_id,
            ai_model=data.get('ai_model'),
            ai_reasoning=data.get('ai_reasoning'),
            ai_confidence=data['ai_confidence'],
            input_context=data,
            output_data={'task_id': task.id, 'title': task.title, 'held_assignee_id': held_assignee_id},
            duration_ms=int((time.time() - started) * 1000)
        )
        return task, log
    except ValueError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"AI task creation failed for tenant {tenant.id}: {e}")
        _log_failure(tenant, 'create_task', 'task', data, started, e)
        raise


def _get_action(tenant_id, action_id):

    log = AIActionLog.query.filter_by(id=action_id, tenant_id=tenant_id).first()
    if not log:
        raise ValueError("Action not found")
    if log.approval_status != 'pending':
        raise ValueError("Action has already been reviewed")
    return log


def _target_entity(log):
    if not log.entity_id:
        return None
    if log.entity_type == 'ticket':
        return db.session.get(Ticket, log.entity_id)
    if log.entity_type in ('reply', 'note'):
        return db.session.get(TicketMessage, log.entity_id)
    if log.entity_type == 'task':
        return db.session.get(Task, log.entity_id)
    return None


def _release_held_assignee(task, log, approved_by_id):
    """Assign a low-confidence AI task to the agent it was meant for"""
    assignee_id = log.get_output_data().get('held_assignee_id')
    if not assignee_id or task.assignee_id:
        return

    user = db.session.get(User, assignee_id)
    if not user or not user.has_tenant_access(task.tenant_id):
        logger.info(f"Held assignee {assignee_id} for task {task.id} is no longer a member; leaving it unassigned")
        return

    task.assignee_id = assignee_id
    notification_service.notify(
        task.tenant_id, assignee_id, 'task_assigned',
        f'Task "{task.title}" was assigned to you',
        ticket_id=task.ticket_id, task_id=task.id, actor_id=approved_by_id
    )


def approve_action(tenant_id, action_id, approved_by_id):
    """Approve a pending AI action and the ticket, message or task it produced"""
    log = _get_action(tenant_id, action_id)

    log.approval_status = 'approved'
    log.approved_by_id = approved_by_id
    log.approved_at = datetime.utcnow()

    entity = _target_entity(log)
    if entity is not None:
        entity.approval_status = 'approved'
        if log.entity_type == 'task':
            _release_held_assignee(entity, log, approved_by_id)

    db.session.commit()
    return log


def reject_action(tenant_id, action_id, rejected_by_id, reason=None):
    """
    Reject an AI action. A rejected ticket is closed and a rejected task
    cancelled; a rejected reply or note is marked rejected and stays hidden
    from customers.
    """
    log = _get_action(tenant_id, action_id)

    log.approval_status = 'rejected'
    log.approved_by_id = rejected_by_id
    log.approved_at = datetime.utcnow()
    log.rejection_reason = reason

    entity = _target_entity(log)
    if entity is not None:
        entity.approval_status = 'rejected'
        if log.entity_type == 'task':
            entity.set_status('cancelled')

    db.session.commit()

    if log.entity_type == 'ticket' and entity is not None:
        ticket_service.change_status(entity.id, 'closed', changed_by_id=rejected_by_id,
                                     reason=f"AI ticket rejected: {reason}" if reason else "AI ticket rejected")

    return log


def get_actions(tenant_id, pending_only=False, entity_type=None, limit=50):
    query = AIActionLog.query.filter_by(tenant_id=tenant_id)
    if pending_only:
        query = query.filter_by(approval_status='pending')
    if entity_type:
        query = query.filter_by(entity_type=entity_type)
    return query.order_by(AIActionLog.created_at.desc(), AIActionLog.id.desc()).limit(limit).all()


def get_action_stats(tenant_id):
    """
    Counts by approval status for the tenant

    Failed actions never produced anything to review, so they are counted
    separately and left out of the total and the approval rate.

    Returns:
        dict: total, pending, approved, rejected, auto_approved, failed, approval_rate (percent)
    """
    counts = dict(
        db.session.query(AIActionLog.approval_status, db.func.count(AIActionLog.id))
        .filter(AIActionLog.tenant_id == tenant_id)
        .group_by(AIActionLog.approval_status)
        .all()
    )

    failed = counts.pop('failed', 0)
    total = sum(counts.values())
    approved = counts.get('approved', 0)
    auto_approved = counts.get('auto_approved', 0)

    return {
        'total': total,
        'pending': counts.get('pending', 0),
        'approved': approved,
        'rejected': counts.get('rejected', 0),
        'auto_approved': auto_approved,
        'failed': failed,
        'approval_rate': round((approved + auto_approved) / total * 100, 1) if total else 0.0
    }
