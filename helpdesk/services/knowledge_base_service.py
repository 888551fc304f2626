"""
Knowledge Base Service
Categories and articles for the public help center
"""
import re
from datetime import datetime
from helpdesk import db
from helpdesk.models.knowledge_base import KBCategory, KBArticle
from helpdesk.utils.input_validators import sanitize_sql_like_pattern


def slugify(text):
    """Lowercase, runs of non-alphanumerics become '-', edge dashes trimmed"""
    slug = re.sub(r'[^a-z0-9]+', '-', (text or '').lower()).strip('-')
    return slug or 'untitled'


def unique_slug(model, tenant_id, text, exclude_id=None):
    """
    Slug for `text` that is free within the tenant, e.g. 'billing', 'billing-2'

    Args:
        model: KBCategory or KBArticle
        exclude_id: Row being renamed (its own slug doesn't count as taken)
    """
    base = slugify(text)
    slug = base
    suffix = 2

    while True:
        query = model.query.filter_by(tenant_id=tenant_id, slug=slug)
        if exclude_id is not None:
            query = query.filter(model.id != exclude_id)
        if not query.first():
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


# ========== CATEGORIES ==========

def list_categories(tenant_id):
    return KBCategory.query.filter_by(tenant_id=tenant_id).order_by(
        KBCategory.sort_order.asc(), KBCategory.name.asc()
    ).all()


def create_category(tenant_id, name, description=None, icon=None, parent_id=None, is_published=True):
    if not name or not name.strip():
        raise ValueError("Name is required")

    if parent_id and not KBCategory.query.filter_by(id=parent_id, tenant_id=tenant_id).first():
        raise ValueError("Parent category not found")

    max_order = db.session.query(db.func.max(KBCategory.sort_order)).filter_by(tenant_id=tenant_id).scalar()

    category = KBCategory(
        tenant_id=tenant_id,
        name=name.strip(),
        slug=unique_slug(KBCategory, tenant_id, name),
        description=description,
        icon=icon,
        parent_id=parent_id,
        is_published=is_published,
        sort_order=(max_order or 0) + 1
    )
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category, data):
    if 'name' in data:
        if not data['name'] or not data['name'].strip():
            raise ValueError("Name is required")
        category.name = data['name'].strip()
        category.slug = unique_slug(KBCategory, category.tenant_id, category.name, exclude_id=category.id)
    for field in ('description', 'icon'):
        if field in data:
            setattr(category, field, data[field])
    if 'is_published' in data:
        category.is_published = bool(data['is_published'])
    if 'sort_order' in data:
        category.sort_order = int(data['sort_order'])
    if 'parent_id' in data:
        parent_id = data['parent_id'] or None
        if parent_id == category.id:
            raise ValueError("A category cannot be its own parent")
        if parent_id and not KBCategory.query.filter_by(id=parent_id, tenant_id=category.tenant_id).first():
            raise ValueError("Parent category not found")
        category.parent_id = parent_id

    db.session.commit()
    return category


def delete_category(category):
    """Only empty categories (no articles, no subcategories) can be deleted"""
    if category.articles.count() > 0:
        raise ValueError("Cannot delete a category that still has articles")
    if category.children.count() > 0:
        raise ValueError("Cannot delete a category that has subcategories")

    db.session.delete(category)
    db.session.commit()


# ========== ARTICLES ==========

def list_articles(tenant_id, category_id=None, status=None):
    query = KBArticle.query.filter_by(tenant_id=tenant_id)
    if category_id:
        query = query.filter_by(category_id=category_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(KBArticle.sort_order.asc(), KBArticle.created_at.desc()).all()


def _set_status(article, status):
    if status not in KBArticle.STATUSES:
        raise ValueError(f"Invalid status: {status}")
    article.status = status
    # First publish only
    if status == 'published' and not article.published_at:
        article.published_at = datetime.utcnow()


def create_article(tenant_id, category_id, title, content='', author_id=None, **kwargs):
    """
    Create an article at the end of its category's sort order

    Args:
        kwargs: excerpt, status, meta_title, meta_description
    """
    if not title or not title.strip():
        raise ValueError("Title is required")

    category = KBCategory.query.filter_by(id=category_id, tenant_id=tenant_id).first()
    if not category:
        raise ValueError("Category not found")

    max_order = db.session.query(db.func.max(KBArticle.sort_order)).filter_by(
        tenant_id=tenant_id, category_id=category.id
    ).scalar()

    article = KBArticle(
        tenant_id=tenant_id,
        category_id=category.id,
        author_id=author_id,
        title=title.strip(),
        slug=unique_slug(KBArticle, tenant_id, title),
        content=content or '',
        excerpt=kwargs.get('excerpt'),
        meta_title=kwargs.get('meta_title'),
        meta_description=kwargs.get('meta_description'),
        sort_order=(max_order or 0) + 1
    )
    _set_status(article, kwargs.get('status') or 'draft')

    db.session.add(article)
    db.session.commit()
    return article


def update_article(article, data):
    if 'title' in data:
        if not data['title'] or not data['title'].strip():
            raise ValueError("Title is required")
        article.title = data['title'].strip()
        article.slug = unique_slug(KBArticle, article.tenant_id, article.title, exclude_id=article.id)
    if 'category_id' in data:
        category = KBCategory.query.filter_by(id=data['category_id'], tenant_id=article.tenant_id).first()
        if not category:
            raise ValueError("Category not found")
        article.category_id = category.id
    for field in ('content', 'excerpt', 'meta_title', 'meta_description'):
        if field in data:
            setattr(article, field, data[field])
    if 'sort_order' in data:
        article.sort_order = int(data['sort_order'])
    if 'status' in data:
        _set_status(article, data['status'])

    db.session.commit()
    return article


def delete_article(article):
    db.session.delete(article)
    db.session.commit()


# ========== HELP CENTER ==========

def public_categories(tenant_id):
    return KBCategory.query.filter_by(tenant_id=tenant_id, is_published=True).order_by(
        KBCategory.sort_order.asc(), KBCategory.name.asc()
    ).all()


def published_articles(tenant_id, category_id=None):
    query = KBArticle.query.join(KBCategory).filter(
        KBArticle.tenant_id == tenant_id,
        KBArticle.status == 'published',
        KBCategory.is_published == True
    )
    if category_id:
        query = query.filter(KBArticle.category_id == category_id)
    return query.order_by(KBArticle.sort_order.asc(), KBArticle.published_at.desc())


def get_published_article(tenant_id, slug):
    return published_articles(tenant_id).filter(KBArticle.slug == slug).first()


def record_view(article):
    """Increment view_count in the database (not read-modify-write)"""
    KBArticle.query.filter_by(id=article.id).update(
        {'view_count': KBArticle.view_count + 1}, synchronize_session=False
    )
    db.session.commit()
    db.session.refresh(article)
    return article


def record_feedback(article, helpful):
    column = KBArticle.helpful_count if helpful else KBArticle.not_helpful_count
    KBArticle.query.filter_by(id=article.id).update({column.key: column + 1}, synchronize_session=False)
    db.session.commit()
    db.session.refresh(article)
    return article


def search_articles(tenant_id, query_text, limit=20):
    """Search published articles by title, excerpt and content"""
    pattern = f'%{sanitize_sql_like_pattern(query_text)}%'
    return published_articles(tenant_id).filter(
        db.or_(
            KBArticle.title.ilike(pattern, escape='\\'),
            KBArticle.excerpt.ilike(pattern, escape='\\'),
            KBArticle.content.ilike(pattern, escape='\\')
        )
    ).limit(limit).all()
