"""
In-app notifications for agents
"""
from helpdesk import db
from helpdesk.models.notification import Notification
from helpdesk.models.user import User


def notify(tenant_id, user_id, type, title, body=None, ticket_id=None, actor_id=None, task_id=None):
    """
    Queue a notification for an agent. Does not commit; the caller's
    transaction (ticket create/assign/reply) commits it.

    Nothing is created when the recipient is the actor or an AI agent user.

    Returns:
        Notification or None
    """
    if not user_id or user_id == actor_id:
        return None

    user = db.session.get(User, user_id)
    if not user or user.is_ai_agent or not user.is_active:
        return None

    notification = Notification(
        tenant_id=tenant_id,
        user_id=user_id,
        type=type,
        title=title,
        body=body,
        ticket_id=ticket_id,
        task_id=task_id
    )
    db.session.add(notification)
    return notification


def list_for_user(tenant_id, user_id, unread_only=False, limit=50):
    query = Notification.query.filter_by(tenant_id=tenant_id, user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(tenant_id, user_id):
    return Notification.query.filter_by(tenant_id=tenant_id, user_id=user_id, is_read=False).count()


def mark_read(tenant_id, user_id, notification_ids=None):
    """
    Mark notifications read. With no ids, marks all of the user's notifications.

    Returns:
        int: Number of notifications updated
    """
    query = Notification.query.filter_by(tenant_id=tenant_id, user_id=user_id, is_read=False)
    if notification_ids is not None:
        query = query.filter(Notification.id.in_(notification_ids))

    updated = query.update({'is_read': True}, synchronize_session=False)
    db.session.commit()
    return updated
