"""
Audit trail for actions taken by the AI agent, with their approval state
"""
from datetime import datetime
from helpdesk import db
import json


class AIActionLog(db.Model):
    __tablename__ = 'ai_action_logs'

    APPROVAL_STATUSES = ['pending', 'approved', 'auto_approved', 'rejected', 'failed']

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    action = db.Column(db.String(50), nullable=False)  # create_ticket, create_reply, create_note, create_task
    entity_type = db.Column(db.String(50), nullable=False)  # ticket, reply, note, task
    entity_id = db.Column(db.Integer, index=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey('tickets.id', ondelete='SET NULL'), index=True)

    ai_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    ai_model = db.Column(db.String(100))
    ai_reasoning = db.Column(db.Text)
    ai_confidence = db.Column(db.Float)

    input_context = db.Column(db.Text)  # JSON
    output_data = db.Column(db.Text)  # JSON

    approval_status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    approved_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)

    duration_ms = db.Column(db.Integer)
    success = db.Column(db.Boolean, default=True, nullable=False)
    error_message = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    ai_user = db.relationship('User', foreign_keys=[ai_user_id])
    approved_by = db.relationship('User', foreign_keys=[approved_by_id])
    ticket = db.relationship('Ticket', foreign_keys=[ticket_id])

    def __repr__(self):
        return f'<AIActionLog {self.action} {self.entity_type}:{self.entity_id} {self.approval_status}>'

    def get_input_context(self):
        if self.input_context:
            try:
                return json.loads(self.input_context)
            except json.JSONDecodeError:
                return {}
        return {}

    def get_output_data(self):
        if self.output_data:
            try:
                return json.loads(self.output_data)
            except json.JSONDecodeError:
                return {}
        return {}

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'ticket_id': self.ticket_id,
            'ticket_number': self.ticket.ticket_number if self.ticket else None,
            'ai_model': self.ai_model,
            'ai_reasoning': self.ai_reasoning,
            'ai_confidence': self.ai_confidence,
            'input_context': self.get_input_context(),
            'output_data': self.get_output_data(),
            'approval_status': self.approval_status,
            'approved_by': self.approved_by.full_name if self.approved_by else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'rejection_reason': self.rejection_reason,
            'duration_ms': self.duration_ms,
            'success': self.success,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
