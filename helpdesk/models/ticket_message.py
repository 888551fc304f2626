"""
TicketMessage model for replies, internal notes and system events on a ticket
"""
from helpdesk import db
from datetime import datetime


class TicketMessage(db.Model):
    __tablename__ = 'ticket_messages'

    AUTHOR_TYPES = ['agent', 'contact', 'system', 'ai']

    # Primary Key
    id = db.Column(db.Integer, primary_key=True)

    # Foreign Keys
    ticket_id = db.Column(db.Integer, db.ForeignKey('tickets.id'), nullable=False, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey('users.id'))  # Agent or AI user
    contact_author_id = db.Column(db.Integer, db.ForeignKey('contacts.id'))  # Customer reply

    # Message Properties
    author_type = db.Column(db.String(20), nullable=False, default='agent')  # agent, contact, system, ai
    author_name = db.Column(db.String(200))  # Overrides the derived name ("Automation")
    body = db.Column(db.Text, nullable=False)

    # Visibility & Type
    is_internal = db.Column(db.Boolean, nullable=False, default=False)  # True = internal note
    is_resolution = db.Column(db.Boolean, nullable=False, default=False)  # Marks ticket as resolved

    # AI messages only: pending replies stay hidden from the customer until approved
    approval_status = db.Column(db.String(20))  # pending, approved, auto_approved, rejected

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    ticket = db.relationship('Ticket', back_populates='messages')
    author = db.relationship('User', backref=db.backref('ticket_messages', lazy='dynamic'))
    contact_author = db.relationship('Contact', backref=db.backref('ticket_messages', lazy='dynamic'))

    def __repr__(self):
        return f'<TicketMessage {self.id} on Ticket {self.ticket_id}>'

    @property
    def author_display_name(self):
        """Get author name"""
        if self.author_name:
            return self.author_name
        if self.author:
            return self.author.full_name
        if self.contact_author:
            return self.contact_author.display_name
        if self.author_type == 'system':
            return 'System'
        if self.author_type == 'ai':
            return 'AI Agent'
        return 'Unknown'

    def to_dict(self):
        return {
            'id': self.id,
            'ticket_id': self.ticket_id,
            'author_type': self.author_type,
            'author_id': self.author_id,
            'contact_author_id': self.contact_author_id,
            'author_name': self.author_display_name,
            'body': self.body,
            'is_internal': self.is_internal,
            'is_resolution': self.is_resolution,
            'approval_status': self.approval_status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def to_portal_dict(self):
        return {
            'id': self.id,
            'author_type': self.author_type,
            'author_name': self.author_display_name,
            'body': self.body,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
