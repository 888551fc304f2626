from helpdesk import db


class Counter(db.Model):
    """Per-tenant monotonic counter (ticket numbers)"""
    __tablename__ = 'counters'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)  # ticket_number
    value = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'name', name='unique_counter_per_tenant'),
    )

    def __repr__(self):
        return f'<Counter {self.name}={self.value} tenant_id={self.tenant_id}>'
