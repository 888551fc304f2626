from datetime import datetime
from helpdesk import db


class TopBanner(db.Model):
    """Announcement banner shown across the agent workspace (one per tenant)"""
    __tablename__ = 'top_banners'

    DEFAULTS = {
        'is_enabled': False,
        'message': 'Welcome to our support center!',
        'link_text': 'Learn more',
        'link_url': '',
        'background_color': '#EFF6FF',
        'text_color': '#344054',
        'dismissible': True,
    }

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, unique=True)
    is_enabled = db.Column(db.Boolean, default=False, nullable=False)
    message = db.Column(db.Text, nullable=False, default='')
    link_text = db.Column(db.String(100))
    link_url = db.Column(db.String(500))
    background_color = db.Column(db.String(7), default='#EFF6FF')
    text_color = db.Column(db.String(7), default='#344054')
    dismissible = db.Column(db.Boolean, default=True, nullable=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('top_banner', uselist=False, cascade='all, delete-orphan'))

    def __repr__(self):
        return f'<TopBanner tenant_id={self.tenant_id} enabled={self.is_enabled}>'

    def to_dict(self):
        return {
            'is_enabled': self.is_enabled,
            'message': self.message,
            'link_text': self.link_text,
            'link_url': self.link_url,
            'background_color': self.background_color,
            'text_color': self.text_color,
            'dismissible': self.dismissible,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
