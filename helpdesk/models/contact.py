from datetime import datetime
from helpdesk import db, bcrypt


class Contact(db.Model):
    """Contact model - the customers who raise tickets (and may sign in to the portal)"""
    __tablename__ = 'contacts'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey('companies.id'), index=True)  # Optional

    # Personal Information
    name = db.Column(db.String(200))
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(50))
    title = db.Column(db.String(200))

    # Social
    twitter = db.Column(db.String(100))
    facebook = db.Column(db.String(200))
    avatar_url = db.Column(db.String(500))

    # Metadata
    notes = db.Column(db.Text)

    # Customer portal
    password_hash = db.Column(db.String(255))  # Null until the contact registers on the portal
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    last_login_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tenant = db.relationship('Tenant', backref=db.backref('contacts', lazy='dynamic'))
    company = db.relationship('Company', back_populates='contacts')

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'email', name='unique_contact_email_per_tenant'),
    )

    def __repr__(self):
        return f'<Contact {self.email}>'

    @property
    def display_name(self):
        """Name if known, otherwise the email address"""
        return self.name or self.email

    @property
    def has_portal_account(self):
        return self.password_hash is not None

    def set_password(self, password):
        """Hash and set the portal password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        if not self.password_hash:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    def recent_tickets(self, limit=6):
        from helpdesk.models.ticket import Ticket
        return self.tickets.order_by(Ticket.created_at.desc()).limit(limit).all()

    def to_dict(self, include_tickets=False):
        """Convert contact to dictionary"""
        data = {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'company_id': self.company_id,
            'name': self.name,
            'display_name': self.display_name,
            'email': self.email,
            'phone': self.phone,
            'title': self.title,
            'twitter': self.twitter,
            'facebook': self.facebook,
            'avatar_url': self.avatar_url,
            'notes': self.notes,
            'has_portal_account': self.has_portal_account,
            'is_verified': self.is_verified,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'company_name': self.company.name if self.company else None
        }
        if include_tickets:
            data['recent_tickets'] = [t.to_summary_dict() for t in self.recent_tickets()]
        return data

    def to_portal_dict(self):
        """Profile fields a customer may see about themselves"""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'is_verified': self.is_verified,
            'company_name': self.company.name if self.company else None,
        }
