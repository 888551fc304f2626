"""
Automation rules: when a ticket event fires, match conditions and apply actions
"""
from datetime import datetime
from helpdesk import db
import json


class Automation(db.Model):
    __tablename__ = 'automations'

    TRIGGERS = ['ticket_created', 'ticket_updated']

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    trigger = db.Column(db.String(50), nullable=False, default='ticket_created')  # ticket_created, ticket_updated

    # JSON lists: [{"field", "operator", "value"}] and [{"type", "value"}]
    conditions = db.Column(db.Text, nullable=False, default='[]')
    actions = db.Column(db.Text, nullable=False, default='[]')

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    priority = db.Column(db.Integer, default=0, nullable=False)  # Lower runs first

    # Stats
    run_count = db.Column(db.Integer, default=0, nullable=False)
    last_run_at = db.Column(db.DateTime)

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('automations', lazy='dynamic', cascade='all, delete-orphan'))
    created_by = db.relationship('User', foreign_keys=[created_by_id])

    __table_args__ = (
        db.Index('idx_automation_tenant_trigger', 'tenant_id', 'trigger', 'is_active'),
    )

    def __repr__(self):
        return f'<Automation {self.name} ({self.trigger})>'

    def get_conditions(self):
        """Parse and return conditions as a list"""
        try:
            return json.loads(self.conditions) if self.conditions else []
        except json.JSONDecodeError:
            return []

    def set_conditions(self, conditions):
        self.conditions = json.dumps(conditions or [])

    def get_actions(self):
        """Parse and return actions as a list"""
        try:
            return json.loads(self.actions) if self.actions else []
        except json.JSONDecodeError:
            return []

    def set_actions(self, actions):
        self.actions = json.dumps(actions or [])

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'trigger': self.trigger,
            'conditions': self.get_conditions(),
            'actions': self.get_actions(),
            'is_active': self.is_active,
            'priority': self.priority,
            'run_count': self.run_count,
            'last_run_at': self.last_run_at.isoformat() if self.last_run_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
