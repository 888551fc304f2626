from datetime import datetime
from helpdesk import db


class TimeEntry(db.Model):
    """Time an agent logged against a ticket or a task"""
    __tablename__ = 'time_entries'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    # Exactly one of ticket_id / task_id is set
    ticket_id = db.Column(db.Integer, db.ForeignKey('tickets.id', ondelete='CASCADE'), index=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    description = db.Column(db.Text)
    duration_minutes = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    is_billable = db.Column(db.Boolean, default=True, nullable=False)
    hourly_rate = db.Column(db.Float)
    started_at = db.Column(db.DateTime)
    ended_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    ticket = db.relationship('Ticket', backref=db.backref('time_entries', lazy='dynamic', cascade='all, delete-orphan'))
    task = db.relationship('Task', backref=db.backref('time_entries', lazy='dynamic', cascade='all, delete-orphan'))
    user = db.relationship('User')

    def __repr__(self):
        return f'<TimeEntry {self.duration_minutes}m user_id={self.user_id}>'

    @property
    def amount(self):
        """Billable value of the entry, or None when it is not billable or has no rate"""
        if not self.is_billable or self.hourly_rate is None:
            return None
        return round(self.duration_minutes / 60 * self.hourly_rate, 2)

    def to_dict(self):
        return {
            'id': self.id,
            'ticket_id': self.ticket_id,
            'task_id': self.task_id,
            'user_id': self.user_id,
            'user_name': self.user.full_name if self.user else None,
            'description': self.description,
            'duration_minutes': self.duration_minutes,
            'date': self.date.isoformat() if self.date else None,
            'is_billable': self.is_billable,
            'hourly_rate': self.hourly_rate,
            'amount': self.amount,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
