"""
Knowledge base categories and articles (published on the public help center)
"""
from datetime import datetime
from helpdesk import db


class KBCategory(db.Model):
    __tablename__ = 'kb_categories'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('kb_categories.id'))

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    icon = db.Column(db.String(50))
    is_published = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = db.relationship('Tenant', backref=db.backref('kb_categories', lazy='dynamic', cascade='all, delete-orphan'))
    parent = db.relationship('KBCategory', remote_side=[id], backref=db.backref('children', lazy='dynamic'))
    articles = db.relationship('KBArticle', back_populates='category', lazy='dynamic')

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'slug', name='unique_kb_category_slug'),
    )

    def __repr__(self):
        return f'<KBCategory {self.name}>'

    @property
    def published_article_count(self):
        return self.articles.filter_by(status='published').count()

    def to_dict(self):
        return {
            'id': self.id,
            'parent_id': self.parent_id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'icon': self.icon,
            'is_published': self.is_published,
            'sort_order': self.sort_order,
            'article_count': self.articles.count(),
            'published_article_count': self.published_article_count,
        }

    def to_public_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'icon': self.icon,
            'article_count': self.published_article_count,
        }


class KBArticle(db.Model):
    __tablename__ = 'kb_articles'

    STATUSES = ['draft', 'published', 'archived']

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey('kb_categories.id'), nullable=False, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False, default='')
    excerpt = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='draft')  # draft, published, archived

    # SEO
    meta_title = db.Column(db.String(255))
    meta_description = db.Column(db.Text)

    sort_order = db.Column(db.Integer, default=0, nullable=False)

    # Engagement
    view_count = db.Column(db.Integer, default=0, nullable=False)
    helpful_count = db.Column(db.Integer, default=0, nullable=False)
    not_helpful_count = db.Column(db.Integer, default=0, nullable=False)

    published_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    category = db.relationship('KBCategory', back_populates='articles')
    author = db.relationship('User', foreign_keys=[author_id])

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'slug', name='unique_kb_article_slug'),
        db.Index('idx_kb_article_tenant_status', 'tenant_id', 'status'),
    )

    def __repr__(self):
        return f'<KBArticle {self.title}>'

    def to_dict(self):
        return {
            'id': self.id,
            'category_id': self.category_id,
            'category_name': self.category.name if self.category else None,
            'author_id': self.author_id,
            'author_name': self.author.full_name if self.author else None,
            'title': self.title,
            'slug': self.slug,
            'content': self.content,
            'excerpt': self.excerpt,
            'status': self.status,
            'meta_title': self.meta_title,
            'meta_description': self.meta_description,
            'sort_order': self.sort_order,
            'view_count': self.view_count,
            'helpful_count': self.helpful_count,
            'not_helpful_count': self.not_helpful_count,
            'published_at': self.published_at.isoformat() if self.published_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_public_dict(self, include_content=True):
        data = {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'excerpt': self.excerpt,
            'category': {'name': self.category.name, 'slug': self.category.slug} if self.category else None,
            'meta_title': self.meta_title or self.title,
            'meta_description': self.meta_description or self.excerpt,
            'published_at': self.published_at.isoformat() if self.published_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_content:
            data['content'] = self.content
        return data
