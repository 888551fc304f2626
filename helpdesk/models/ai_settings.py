"""
Per-tenant AI configuration: assist features and the AI agent approval thresholds
"""
from datetime import datetime
import hashlib
from helpdesk import db


class AISettings(db.Model):
    __tablename__ = 'ai_settings'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, unique=True)

    is_enabled = db.Column(db.Boolean, default=False, nullable=False)
    model = db.Column(db.String(100))  # Falls back to AI_DEFAULT_MODEL

    # Assist features
    summary_enabled = db.Column(db.Boolean, default=True, nullable=False)
    reply_enabled = db.Column(db.Boolean, default=True, nullable=False)
    categorize_enabled = db.Column(db.Boolean, default=True, nullable=False)

    # Tenant-supplied Anthropic key (Fernet encrypted); the app-wide key is used when empty
    anthropic_api_key_encrypted = db.Column(db.Text)

    # AI agent API key: only the sha256 digest is stored, prefix kept for display
    agent_api_key_digest = db.Column(db.String(64), index=True)
    agent_api_key_prefix = db.Column(db.String(12))

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('ai_settings', uselist=False, cascade='all, delete-orphan'))

    def __repr__(self):
        return f'<AISettings tenant_id={self.tenant_id} enabled={self.is_enabled}>'

    @staticmethod
    def digest_key(raw_key):
        return hashlib.sha256(raw_key.encode('utf-8')).hexdigest()

    def to_dict(self):
        return {
            'is_enabled': self.is_enabled,
            'model': self.model,
            'summary_enabled': self.summary_enabled,
            'reply_enabled': self.reply_enabled,
            'categorize_enabled': self.categorize_enabled,
            'has_anthropic_api_key': bool(self.anthropic_api_key_encrypted),
            'agent_api_key_prefix': self.agent_api_key_prefix,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class AIConfidenceConfig(db.Model):
    __tablename__ = 'ai_confidence_configs'

    DEFAULTS = {
        'task_auto_approve': 0.85,
        'task_draft': 0.5,
        'note_auto_approve': 0.9,
        'auto_approve_enabled': False,
        'require_approval_for_new': True,
    }

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, unique=True)

    task_auto_approve = db.Column(db.Float, nullable=False, default=0.85)  # Tickets and tasks
    task_draft = db.Column(db.Float, nullable=False, default=0.5)  # AI tasks below this stay unassigned until approved
    note_auto_approve = db.Column(db.Float, nullable=False, default=0.9)  # Replies and notes
    auto_approve_enabled = db.Column(db.Boolean, nullable=False, default=False)
    require_approval_for_new = db.Column(db.Boolean, nullable=False, default=True)

    updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('ai_confidence_config', uselist=False, cascade='all, delete-orphan'))

    def __repr__(self):
        return f'<AIConfidenceConfig tenant_id={self.tenant_id}>'

    def to_dict(self):
        return {
            'task_auto_approve': self.task_auto_approve,
            'task_draft': self.task_draft,
            'note_auto_approve': self.note_auto_approve,
            'auto_approve_enabled': self.auto_approve_enabled,
            'require_approval_for_new': self.require_approval_for_new,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
