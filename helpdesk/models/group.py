"""
Agent groups. Tickets can be routed to a group instead of (or as well as) an agent.
"""
from datetime import datetime
from helpdesk import db


class Group(db.Model):
    """Group of agents within a tenant (Billing, Tier 2, ...)"""
    __tablename__ = 'groups'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    # Display settings
    color = db.Column(db.String(7), default='#6C757D')  # Hex color code

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = db.relationship('Tenant', back_populates='groups')
    memberships = db.relationship('GroupMembership', back_populates='group',
                                  cascade='all, delete-orphan', lazy='dynamic')

    # Unique constraint: one slug per tenant
    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'slug', name='unique_group_slug_per_tenant'),
    )

    def __repr__(self):
        return f'<Group {self.name}>'

    def get_members(self):
        """Get all users in this group"""
        from helpdesk.models.user import User
        return User.query.join(GroupMembership).filter(
            GroupMembership.group_id == self.id
        ).all()

    def add_member(self, user):
        """
        Add a user to this group

        Args:
            user: User object to add

        Returns:
            GroupMembership object (existing one if already a member)
        """
        existing = GroupMembership.query.filter_by(group_id=self.id, user_id=user.id).first()
        if existing:
            return existing

        membership = GroupMembership(group_id=self.id, user_id=user.id)
        db.session.add(membership)
        return membership

    def remove_member(self, user):
        """Remove a user from this group. Returns True if a membership was removed."""
        membership = GroupMembership.query.filter_by(group_id=self.id, user_id=user.id).first()
        if membership:
            db.session.delete(membership)
            return True
        return False

    def to_dict(self, include_members=False):
        data = {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'color': self.color,
            'member_count': self.memberships.count(),
            'ticket_count': self.tickets.count(),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_members:
            data['members'] = [{'id': u.id, 'full_name': u.full_name, 'email': u.email} for u in self.get_members()]
        return data


class GroupMembership(db.Model):
    """User membership in an agent group"""
    __tablename__ = 'group_memberships'

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('groups.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    group = db.relationship('Group', back_populates='memberships')
    user = db.relationship('User', backref=db.backref('group_memberships', lazy='dynamic'))

    __table_args__ = (
        db.UniqueConstraint('group_id', 'user_id', name='uq_group_user_membership'),
    )

    def __repr__(self):
        return f'<GroupMembership user_id={self.user_id} group_id={self.group_id}>'
