from datetime import datetime
from helpdesk import db


class Company(db.Model):
    """An organization that customers belong to; new contacts are matched to it by email domain"""
    __tablename__ = 'companies'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    domain = db.Column(db.String(255), index=True)  # acme.com
    website = db.Column(db.String(500))
    industry = db.Column(db.String(100))
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = db.relationship('Tenant', backref=db.backref('companies', lazy='dynamic'))
    contacts = db.relationship('Contact', back_populates='company', lazy='dynamic')
    # tickets: backref from Ticket.company

    def __repr__(self):
        return f'<Company {self.id} {self.domain or self.name}>'

    def to_dict(self):
        data = {
            column: getattr(self, column)
            for column in ('id', 'tenant_id', 'name', 'domain', 'website', 'industry', 'notes')
        }
        data.update(
            created_at=self.created_at.isoformat() if self.created_at else None,
            updated_at=self.updated_at.isoformat() if self.updated_at else None,
            contact_count=self.contacts.count(),
            ticket_count=self.tickets.count(),
        )
        return data
