from datetime import datetime
from helpdesk import db


class Notification(db.Model):
    """In-app notification for an agent"""
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    type = db.Column(db.String(50), nullable=False)  # ticket_assigned, customer_reply, ai_action_pending, task_reminder
    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text)
    ticket_id = db.Column(db.Integer, db.ForeignKey('tickets.id', ondelete='CASCADE'))
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), index=True)

    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = db.relationship('User', backref=db.backref('notifications', lazy='dynamic', cascade='all, delete-orphan'))
    ticket = db.relationship('Ticket', backref=db.backref('notifications', lazy='dynamic', cascade='all, delete-orphan'))
    task = db.relationship('Task', backref=db.backref('notifications', lazy='dynamic', cascade='all, delete-orphan'))

    def __repr__(self):
        return f'<Notification {self.type} user_id={self.user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'body': self.body,
            'ticket_id': self.ticket_id,
            'ticket_number': self.ticket.ticket_number if self.ticket else None,
            'task_id': self.task_id,
            'is_read': self.is_read,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
