from datetime import datetime
from helpdesk import db


class CannedResponseFolder(db.Model):
    """Folder grouping reusable replies"""
    __tablename__ = 'canned_response_folders'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    folder_type = db.Column(db.String(20), nullable=False, default='general')  # general, personal
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'))  # Set for personal folders

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('canned_response_folders', lazy='dynamic', cascade='all, delete-orphan'))
    owner = db.relationship('User', foreign_keys=[owner_id])
    responses = db.relationship('CannedResponse', back_populates='folder', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<CannedResponseFolder {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'folder_type': self.folder_type,
            'owner_id': self.owner_id,
            'response_count': self.responses.count(),
        }


class CannedResponse(db.Model):
    """Reusable reply template"""
    __tablename__ = 'canned_responses'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    folder_id = db.Column(db.Integer, db.ForeignKey('canned_response_folders.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    visibility = db.Column(db.String(20), nullable=False, default='all')  # all, myself
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'))  # Set when visibility is myself

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    folder = db.relationship('CannedResponseFolder', back_populates='responses')
    owner = db.relationship('User', foreign_keys=[owner_id])

    def __repr__(self):
        return f'<CannedResponse {self.title}>'

    def to_dict(self):
        return {
            'id': self.id,
            'folder_id': self.folder_id,
            'title': self.title,
            'content': self.content,
            'visibility': self.visibility,
            'owner_id': self.owner_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
