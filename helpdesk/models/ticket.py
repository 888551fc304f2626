"""
Ticket model for support ticketing system
"""
from helpdesk import db
from datetime import datetime
from sqlalchemy import Index


class Ticket(db.Model):
    __tablename__ = 'tickets'

    STATUSES = ['new', 'open', 'pending', 'on_hold', 'resolved', 'closed']
    OPEN_STATUSES = ['new', 'open', 'pending', 'on_hold']
    PRIORITIES = ['low', 'medium', 'high', 'urgent']
    SOURCES = ['web', 'portal', 'email', 'api', 'phone', 'chat', 'ai']

    # Primary Key
    id = db.Column(db.Integer, primary_key=True)

    # Multi-tenancy
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    # Ticket Identifier
    ticket_number = db.Column(db.String(50), nullable=False, index=True)  # e.g., TKT-00001

    # Core Content
    subject = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False, default='')

    # Status & Priority
    status = db.Column(db.String(50), nullable=False, default='new', index=True)  # new, open, pending, on_hold, resolved, closed
    priority = db.Column(db.String(20), nullable=False, default='medium')  # low, medium, high, urgent

    # Categorization
    category = db.Column(db.String(100))  # Technical Support, Billing, Feature Request, etc.
    source = db.Column(db.String(50), default='web')  # web, portal, email, api, phone, chat, ai

    # Relationships - Foreign Keys
    contact_id = db.Column(db.Integer, db.ForeignKey('contacts.id'), index=True)  # Customer who submitted
    company_id = db.Column(db.Integer, db.ForeignKey('companies.id'), index=True)
    assignee_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)  # Assigned agent
    group_id = db.Column(db.Integer, db.ForeignKey('groups.id'), index=True)  # Routing group
    merged_into_id = db.Column(db.Integer, db.ForeignKey('tickets.id'))

    # AI agent
    ai_generated = db.Column(db.Boolean, default=False, nullable=False)
    approval_status = db.Column(db.String(20))  # pending, approved, auto_approved, rejected (AI tickets only)

    # SLA Tracking
    sla_policy_id = db.Column(db.Integer, db.ForeignKey('sla_policies.id'))
    first_response_at = db.Column(db.DateTime)  # When first reply was sent
    first_response_due_at = db.Column(db.DateTime)  # SLA deadline for first response
    resolution_due_at = db.Column(db.DateTime)  # SLA deadline for resolution
    resolved_at = db.Column(db.DateTime)  # When marked as resolved
    closed_at = db.Column(db.DateTime)  # When closed

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_activity_at = db.Column(db.DateTime, default=datetime.utcnow)  # Any message/update

    # Relationships
    tenant = db.relationship('Tenant', backref=db.backref('tickets', lazy='dynamic'))
    contact = db.relationship('Contact', foreign_keys=[contact_id], backref=db.backref('tickets', lazy='dynamic'))
    company = db.relationship('Company', foreign_keys=[company_id], backref=db.backref('tickets', lazy='dynamic'))
    assignee = db.relationship('User', foreign_keys=[assignee_id], backref=db.backref('assigned_tickets', lazy='dynamic'))
    group = db.relationship('Group', foreign_keys=[group_id], backref=db.backref('tickets', lazy='dynamic'))
    merged_into = db.relationship('Ticket', remote_side=[id], backref='merged_tickets', uselist=False)
    sla_policy = db.relationship('SLAPolicy', foreign_keys=[sla_policy_id])
    tags = db.relationship('Tag', secondary='ticket_tags', order_by='Tag.name',
                           backref=db.backref('tickets', lazy='dynamic'))

    messages = db.relationship('TicketMessage', back_populates='ticket', lazy='dynamic', cascade='all, delete-orphan', order_by='TicketMessage.created_at')
    status_history = db.relationship('TicketStatusHistory', back_populates='ticket', lazy='dynamic', cascade='all, delete-orphan', order_by='TicketStatusHistory.created_at.desc()')

    # Table constraints
    __table_args__ = (
        Index('idx_tenant_ticket_number', 'tenant_id', 'ticket_number', unique=True),
        Index('idx_tenant_status', 'tenant_id', 'status'),
        Index('idx_tenant_created', 'tenant_id', 'created_at'),
    )

    def __repr__(self):
        return f'<Ticket {self.ticket_number}: {self.subject}>'

    @property
    def is_overdue(self):
        """Check if ticket is overdue based on resolution SLA"""
        if self.resolution_due_at and self.status not in ['resolved', 'closed']:
            return datetime.utcnow() > self.resolution_due_at
        return False

    @property
    def is_awaiting_first_response(self):
        """Check if ticket needs first response"""
        return not self.first_response_at and self.status not in ['resolved', 'closed']

    @property
    def first_response_breached(self):
        if not self.first_response_due_at:
            return False
        responded = self.first_response_at or datetime.utcnow()
        return responded > self.first_response_due_at

    @property
    def message_count(self):
        """Total number of messages"""
        return self.messages.count()

    def public_messages(self):
        """Messages a customer is allowed to see"""
        from helpdesk.models.ticket_message import TicketMessage
        return self.messages.filter(
            TicketMessage.is_internal == False,
            db.or_(TicketMessage.approval_status.is_(None),
                   TicketMessage.approval_status.in_(['approved', 'auto_approved']))
        ).all()

    def snapshot(self):
        """Fields automation conditions can compare against a later state"""
        return {
            'status': self.status,
            'priority': self.priority,
            'assignee_id': self.assignee_id,
            'group_id': self.group_id,
            'subject': self.subject,
            'description': self.description,
            'source': self.source,
            'contact_id': self.contact_id,
        }

    def to_summary_dict(self):
        return {
            'id': self.id,
            'ticket_number': self.ticket_number,
            'subject': self.subject,
            'status': self.status,
            'priority': self.priority,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'ticket_number': self.ticket_number,
            'subject': self.subject,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'category': self.category,
            'source': self.source,
            'contact_id': self.contact_id,
            'contact': {'id': self.contact.id, 'name': self.contact.name, 'email': self.contact.email} if self.contact else None,
            'company_id': self.company_id,
            'assignee_id': self.assignee_id,
            'assignee_name': self.assignee.full_name if self.assignee else None,
            'group_id': self.group_id,
            'group_name': self.group.name if self.group else None,
            'merged_into_id': self.merged_into_id,
            'tags': [tag.to_dict(include_count=False) for tag in self.tags],
            'ai_generated': self.ai_generated,
            'approval_status': self.approval_status,
            'sla_policy_id': self.sla_policy_id,
            'first_response_due_at': self.first_response_due_at.isoformat() if self.first_response_due_at else None,
            'resolution_due_at': self.resolution_due_at.isoformat() if self.resolution_due_at else None,
            'first_response_at': self.first_response_at.isoformat() if self.first_response_at else None,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'is_overdue': self.is_overdue,
            'message_count': self.message_count,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'last_activity_at': self.last_activity_at.isoformat() if self.last_activity_at else None,
        }

    def to_portal_dict(self):
        """What the customer sees on the portal"""
        return {
            'id': self.id,
            'ticket_number': self.ticket_number,
            'subject': self.subject,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'message_count': len(self.public_messages()),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
