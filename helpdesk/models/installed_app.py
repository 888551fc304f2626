"""
Installed App Model
Tracks which registry apps are installed (and enabled) for each tenant
"""
from datetime import datetime
from helpdesk import db
import json


class InstalledApp(db.Model):
    """Model for per-tenant app install/enable state"""

    __tablename__ = 'installed_apps'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    app_id = db.Column(db.String(100), nullable=False)  # Key in the app registry
    is_enabled = db.Column(db.Boolean, default=True, nullable=False)
    config = db.Column(db.Text)  # JSON app settings
    installed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    installed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = db.relationship('Tenant', backref=db.backref('installed_apps', lazy='dynamic', cascade='all, delete-orphan'))

    # Unique constraint
    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'app_id', name='uq_tenant_app'),
    )

    def __repr__(self):
        return f'<InstalledApp {self.app_id} for Tenant {self.tenant_id}: {"enabled" if self.is_enabled else "disabled"}>'

    def get_config(self):
        """Parse and return config as dict"""
        if self.config:
            try:
                return json.loads(self.config)
            except json.JSONDecodeError:
                return {}
        return {}

    def set_config(self, config_dict):
        self.config = json.dumps(config_dict or {})

    def to_dict(self):
        return {
            'app_id': self.app_id,
            'is_enabled': self.is_enabled,
            'config': self.get_config(),
            'installed_at': self.installed_at.isoformat() if self.installed_at else None,
        }
