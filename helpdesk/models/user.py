from datetime import datetime, timedelta
from flask_login import UserMixin
from helpdesk import db, bcrypt, login_manager


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


class User(UserMixin, db.Model):
    """Agent account. Customers are Contacts, not Users."""
    __tablename__ = 'users'

    ADMIN_ROLES = ('owner', 'admin')

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(80))
    last_name = db.Column(db.String(80))
    title = db.Column(db.String(100))  # Support Engineer, Team Lead, ...
    avatar_url = db.Column(db.String(255))

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_ai_agent = db.Column(db.Boolean, default=False, nullable=False)  # authors AI agent actions; cannot sign in
    locked_until = db.Column(db.DateTime)
    last_login_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant_memberships = db.relationship('TenantMembership', back_populates='user', lazy='dynamic',
                                         cascade='all, delete-orphan')

    def __repr__(self):
        return f'<User {self.id} {self.email}>'

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def full_name(self):
        """First and last name, falling back to the mailbox part of the email"""
        name = ' '.join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email.split('@')[0]

    def is_account_locked(self):
        return bool(self.locked_until and self.locked_until > datetime.utcnow())

    def lock_account(self, minutes=15):
        """Refuse sign-in for `minutes`; cleared by the next successful login"""
        self.locked_until = datetime.utcnow() + timedelta(minutes=minutes)
        db.session.commit()

    # ---- workspace membership ----

    def get_tenants(self):
        from helpdesk.models.tenant import Tenant, TenantMembership
        return (Tenant.query.join(TenantMembership)
                .filter(TenantMembership.user_id == self.id, TenantMembership.is_active == True)  # noqa: E712
                .order_by(TenantMembership.joined_at.asc())
                .all())

    def get_membership(self, tenant_id):
        """Active membership in the tenant, or None"""
        return self.tenant_memberships.filter_by(tenant_id=tenant_id, is_active=True).first()

    def has_tenant_access(self, tenant_id):
        return self.get_membership(tenant_id) is not None

    def get_role_in_tenant(self, tenant_id):
        membership = self.get_membership(tenant_id)
        return membership.role if membership else None

    def is_tenant_admin(self, tenant_id):
        return self.get_role_in_tenant(tenant_id) in self.ADMIN_ROLES

    def to_dict(self, tenant_id=None):
        data = {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'title': self.title,
            'avatar_url': self.avatar_url,
            'is_active': self.is_active,
            'is_ai_agent': self.is_ai_agent,
            'last_login_at': self.last_login_at.isoformat() if self.last_login_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if tenant_id:
            data['role'] = self.get_role_in_tenant(tenant_id)
        return data
