"""
SLA policies and their per-priority targets
"""
from datetime import datetime
from helpdesk import db


class SLAPolicy(db.Model):
    __tablename__ = 'sla_policies'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_default = db.Column(db.Boolean, default=False, nullable=False)  # Applied to new tickets first

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('sla_policies', lazy='dynamic', cascade='all, delete-orphan'))
    targets = db.relationship('SLATarget', back_populates='policy', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<SLAPolicy {self.name}>'

    def get_target(self, priority):
        return self.targets.filter_by(priority=priority).first()

    def to_dict(self):
        order = {'urgent': 0, 'high': 1, 'medium': 2, 'low': 3}
        targets = sorted(self.targets.all(), key=lambda t: order.get(t.priority, 99))
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'is_active': self.is_active,
            'is_default': self.is_default,
            'targets': [t.to_dict() for t in targets],
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class SLATarget(db.Model):
    __tablename__ = 'sla_targets'

    id = db.Column(db.Integer, primary_key=True)
    policy_id = db.Column(db.Integer, db.ForeignKey('sla_policies.id', ondelete='CASCADE'), nullable=False, index=True)
    priority = db.Column(db.String(20), nullable=False)  # low, medium, high, urgent
    first_response_minutes = db.Column(db.Integer, nullable=False)
    resolution_minutes = db.Column(db.Integer, nullable=False)
    operational_hours = db.Column(db.String(20), nullable=False, default='business')  # calendar, business
    escalation_enabled = db.Column(db.Boolean, default=True, nullable=False)

    policy = db.relationship('SLAPolicy', back_populates='targets')

    __table_args__ = (
        db.UniqueConstraint('policy_id', 'priority', name='unique_sla_target_priority'),
    )

    def __repr__(self):
        return f'<SLATarget {self.priority} policy_id={self.policy_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'priority': self.priority,
            'first_response_minutes': self.first_response_minutes,
            'resolution_minutes': self.resolution_minutes,
            'operational_hours': self.operational_hours,
            'escalation_enabled': self.escalation_enabled,
        }
