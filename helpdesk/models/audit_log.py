"""
Security audit trail: sign-in attempts, agent role changes, AI key rotation
"""
import json
from datetime import datetime, timedelta
from helpdesk import db


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    # Null for sign-in attempts, which happen before a workspace is chosen
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)

    event_type = db.Column(db.String(50), nullable=False, index=True)  # login_attempt, agent_updated, api_key_rotated, ...
    event_status = db.Column(db.String(20), nullable=False, default='success')  # success, failure, denied
    resource_type = db.Column(db.String(50))
    resource_id = db.Column(db.Integer, index=True)

    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    details = db.Column(db.Text)  # JSON object
    error_message = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = db.relationship('User', foreign_keys=[user_id])
    tenant = db.relationship('Tenant', foreign_keys=[tenant_id])

    LOGIN_EVENT = 'login_attempt'

    def __repr__(self):
        return f'<AuditLog {self.event_type}/{self.event_status} {self.created_at}>'

    @property
    def details_dict(self):
        try:
            return json.loads(self.details) if self.details else {}
        except json.JSONDecodeError:
            return {}

    @classmethod
    def log_event(cls, event_type, tenant_id=None, user_id=None, status='success', resource_type=None,
                  resource_id=None, details=None, error=None, ip_address=None, user_agent=None):
        """Write one event and commit it straight away"""
        entry = cls(
            event_type=event_type,
            event_status=status,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=json.dumps(details) if details else None,
            error_message=error,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.add(entry)
        db.session.commit()
        return entry

    @classmethod
    def log_login_attempt(cls, email, success=True, ip_address=None, user_agent=None, error_message=None):
        """Record a sign-in; unknown emails are logged without a user_id"""
        from helpdesk.models.user import User
        user = User.query.filter_by(email=email).first()

        details = {'email': email}
        if user is None:
            details['reason'] = 'Unknown email'

        return cls.log_event(
            cls.LOGIN_EVENT,
            user_id=user.id if user else None,
            status='success' if success else 'failure',
            details=details,
            error=error_message,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def failed_logins_since(cls, user_id, since):
        return cls.query.filter(
            cls.user_id == user_id,
            cls.event_type == cls.LOGIN_EVENT,
            cls.event_status == 'failure',
            cls.created_at >= since,
        ).count()

    @classmethod
    def should_lock_account(cls, user_id, threshold=5, window_minutes=15):
        """True once `threshold` sign-ins have failed inside the window"""
        since = datetime.utcnow() - timedelta(minutes=window_minutes)
        return cls.failed_logins_since(user_id, since) >= threshold

    @classmethod
    def get_recent_for_tenant(cls, tenant_id, limit=100, event_type=None):
        query = cls.query.filter_by(tenant_id=tenant_id)
        if event_type:
            query = query.filter_by(event_type=event_type)
        return query.order_by(cls.created_at.desc()).limit(limit).all()

    def to_dict(self):
        return {
            'id': self.id,
            'event_type': self.event_type,
            'event_status': self.event_status,
            'user_id': self.user_id,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'ip_address': self.ip_address,
            'details': self.details_dict,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
