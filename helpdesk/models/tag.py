from datetime import datetime
from helpdesk import db


# Ticket-Tag many-to-many
ticket_tags = db.Table('ticket_tags',
    db.Column('ticket_id', db.Integer, db.ForeignKey('tickets.id', ondelete='CASCADE'), primary_key=True),
    db.Column('tag_id', db.Integer, db.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
    db.Column('created_at', db.DateTime, default=datetime.utcnow)
)


class Tag(db.Model):
    """Label that can be attached to tickets"""
    __tablename__ = 'tags'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(7), default='#6C757D')

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('tags', lazy='dynamic', cascade='all, delete-orphan'))

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'name', name='unique_tag_name_per_tenant'),
    )

    def __repr__(self):
        return f'<Tag {self.name}>'

    def to_dict(self, include_count=True):
        data = {
            'id': self.id,
            'name': self.name,
            'color': self.color,
        }
        if include_count:
            data['ticket_count'] = self.tickets.count()
        return data
