from datetime import datetime
from helpdesk import db


class AIUsage(db.Model):
    """One row per LLM call made by the assist features"""
    __tablename__ = 'ai_usage'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    provider = db.Column(db.String(50), nullable=False, default='anthropic')
    model = db.Column(db.String(100), nullable=False)
    feature = db.Column(db.String(50), nullable=False, index=True)  # summary, suggested_reply, categorize

    input_tokens = db.Column(db.Integer, default=0, nullable=False)
    output_tokens = db.Column(db.Integer, default=0, nullable=False)
    total_tokens = db.Column(db.Integer, default=0, nullable=False)

    # USD
    input_cost = db.Column(db.Float, default=0.0, nullable=False)
    output_cost = db.Column(db.Float, default=0.0, nullable=False)
    total_cost = db.Column(db.Float, default=0.0, nullable=False)

    ticket_id = db.Column(db.Integer, db.ForeignKey('tickets.id', ondelete='SET NULL'))
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    response_time_ms = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f'<AIUsage {self.feature} {self.model} {self.total_tokens} tokens>'

    def to_dict(self):
        return {
            'id': self.id,
            'provider': self.provider,
            'model': self.model,
            'feature': self.feature,
            'input_tokens': self.input_tokens,
            'output_tokens': self.output_tokens,
            'total_tokens': self.total_tokens,
            'total_cost': round(self.total_cost, 6),
            'ticket_id': self.ticket_id,
            'user_id': self.user_id,
            'response_time_ms': self.response_time_ms,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
