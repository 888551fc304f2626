from datetime import datetime
from helpdesk import db
from helpdesk.utils.timezone_utils import get_timezone_offset


class Tenant(db.Model):
    """A support workspace. Every ticket, contact and setting hangs off one tenant."""
    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False, index=True)  # /portal/<slug>, /help/<slug>
    description = db.Column(db.Text)

    logo_url = db.Column(db.String(255))
    timezone = db.Column(db.String(50), default='UTC', nullable=False)  # SLA business hours
    support_email = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    memberships = db.relationship('TenantMembership', back_populates='tenant', lazy='dynamic', cascade='all, delete-orphan')
    groups = db.relationship('Group', back_populates='tenant', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Tenant {self.slug}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'logo_url': self.logo_url,
            'support_email': self.support_email,
            'timezone': self.timezone,
            'utc_offset': get_timezone_offset(self.timezone),
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class TenantMembership(db.Model):
    """An agent's seat in a workspace"""
    __tablename__ = 'tenant_memberships'
    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'user_id', name='unique_tenant_user'),
    )

    ROLES = ['owner', 'admin', 'agent']

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    role = db.Column(db.String(50), nullable=False, default='agent')
    is_active = db.Column(db.Boolean, default=True, nullable=False)  # False once the agent is removed

    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', back_populates='memberships')
    user = db.relationship('User', back_populates='tenant_memberships')

    def __repr__(self):
        return f'<TenantMembership {self.tenant_id}:{self.user_id} {self.role}>'
