"""
Task model: follow-up work for agents, optionally linked to a ticket,
contact or company, with notes and a subtask checklist
"""
from helpdesk import db
from datetime import datetime


class Task(db.Model):
    __tablename__ = 'tasks'

    STATUSES = ['todo', 'in_progress', 'waiting', 'done', 'cancelled']
    CLOSED_STATUSES = ['done', 'cancelled']
    PRIORITIES = ['low', 'medium', 'high', 'urgent']
    RECURRENCES = ['daily', 'weekly', 'monthly', 'yearly']

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='todo', index=True)  # todo, in_progress, waiting, done, cancelled
    priority = db.Column(db.String(20), nullable=False, default='medium')  # low, medium, high, urgent
    due_date = db.Column(db.DateTime, index=True)
    completed_at = db.Column(db.DateTime)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    # Stored for the UI; nothing schedules new occurrences
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    recurrence = db.Column(db.String(20))

    assignee_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    ticket_id = db.Column(db.Integer, db.ForeignKey('tickets.id', ondelete='SET NULL'), index=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contacts.id', ondelete='SET NULL'), index=True)
    company_id = db.Column(db.Integer, db.ForeignKey('companies.id', ondelete='SET NULL'), index=True)

    # AI agent
    ai_generated = db.Column(db.Boolean, default=False, nullable=False)
    ai_reasoning = db.Column(db.Text)
    ai_confidence = db.Column(db.Float)
    approval_status = db.Column(db.String(20))  # pending, approved, auto_approved, rejected (AI tasks only)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('tasks', lazy='dynamic'))
    assignee = db.relationship('User', foreign_keys=[assignee_id], backref=db.backref('assigned_tasks', lazy='dynamic'))
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    ticket = db.relationship('Ticket', backref=db.backref('tasks', lazy='dynamic'))
    contact = db.relationship('Contact', backref=db.backref('tasks', lazy='dynamic'))
    company = db.relationship('Company', backref=db.backref('tasks', lazy='dynamic'))

    notes = db.relationship('TaskNote', back_populates='task', lazy='dynamic',
                            cascade='all, delete-orphan', order_by='TaskNote.created_at.desc()')
    subtasks = db.relationship('Subtask', back_populates='task', cascade='all, delete-orphan',
                               order_by='Subtask.sort_order')

    def __repr__(self):
        return f'<Task {self.id}: {self.title}>'

    def set_status(self, status):
        """Change status, stamping completed_at on entering done and clearing it on leaving"""
        if status == 'done' and self.status != 'done':
            self.completed_at = datetime.utcnow()
        elif status != 'done' and self.status == 'done':
            self.completed_at = None
        self.status = status

    @property
    def is_overdue(self):
        if self.due_date and self.status not in self.CLOSED_STATUSES:
            return datetime.utcnow() > self.due_date
        return False

    def to_dict(self, include_notes=False):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'sort_order': self.sort_order,
            'is_recurring': self.is_recurring,
            'recurrence': self.recurrence,
            'assignee_id': self.assignee_id,
            'assignee_name': self.assignee.full_name if self.assignee else None,
            'created_by': self.created_by.full_name if self.created_by else None,
            'ticket_id': self.ticket_id,
            'ticket': {'id': self.ticket.id, 'ticket_number': self.ticket.ticket_number,
                       'subject': self.ticket.subject} if self.ticket else None,
            'contact_id': self.contact_id,
            'company_id': self.company_id,
            'ai_generated': self.ai_generated,
            'ai_reasoning': self.ai_reasoning,
            'ai_confidence': self.ai_confidence,
            'approval_status': self.approval_status,
            'subtasks': [subtask.to_dict() for subtask in self.subtasks],
            'note_count': self.notes.count(),
            'is_overdue': self.is_overdue,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_notes:
            data['notes'] = [note.to_dict() for note in self.notes]
        return data


class TaskNote(db.Model):
    """Free-text note on a task"""
    __tablename__ = 'task_notes'

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    task = db.relationship('Task', back_populates='notes')
    author = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'task_id': self.task_id,
            'content': self.content,
            'author_id': self.author_id,
            'author_name': self.author.full_name if self.author else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Subtask(db.Model):
    """Checklist item on a task"""
    __tablename__ = 'subtasks'

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    is_completed = db.Column(db.Boolean, default=False, nullable=False)
    completed_at = db.Column(db.DateTime)
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    task = db.relationship('Task', back_populates='subtasks')

    def to_dict(self):
        return {
            'id': self.id,
            'task_id': self.task_id,
            'title': self.title,
            'is_completed': self.is_completed,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'sort_order': self.sort_order,
        }
