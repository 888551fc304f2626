"""
Public help center: published knowledge base content for a workspace addressed by slug
"""
from flask import request, jsonify, session
from helpdesk import limiter
from helpdesk.blueprints.help_center import help_center_bp
from helpdesk.models.knowledge_base import KBCategory
from helpdesk.services import knowledge_base_service
from helpdesk.utils.security_decorators import get_portal_tenant

FEEDBACK_SESSION_KEY = 'kb_feedback'


@help_center_bp.route('/<tenant_slug>/categories')
def categories(tenant_slug):
    """Published categories with their published article counts"""
    tenant = get_portal_tenant(tenant_slug)
    return jsonify({
        'tenant': {'name': tenant.name, 'slug': tenant.slug, 'logo_url': tenant.logo_url},
        'categories': [c.to_public_dict() for c in knowledge_base_service.public_categories(tenant.id)]
    })


@help_center_bp.route('/<tenant_slug>/categories/<slug>')
def category(tenant_slug, slug):
    tenant = get_portal_tenant(tenant_slug)
    kb_category = KBCategory.query.filter_by(tenant_id=tenant.id, slug=slug, is_published=True).first()
    if not kb_category:
        return jsonify({'error': 'Category not found'}), 404

    articles = knowledge_base_service.published_articles(tenant.id, category_id=kb_category.id).all()
    subcategories = kb_category.children.filter_by(is_published=True).order_by(KBCategory.sort_order.asc()).all()

    return jsonify({
        'category': kb_category.to_public_dict(),
        'subcategories': [c.to_public_dict() for c in subcategories],
        'articles': [a.to_public_dict(include_content=False) for a in articles]
    })


@help_center_bp.route('/<tenant_slug>/articles/<slug>')
def article(tenant_slug, slug):
    """A published article; each request counts as a view"""
    tenant = get_portal_tenant(tenant_slug)
    kb_article = knowledge_base_service.get_published_article(tenant.id, slug)
    if not kb_article:
        return jsonify({'error': 'Article not found'}), 404

    knowledge_base_service.record_view(kb_article)

    related = knowledge_base_service.published_articles(tenant.id, category_id=kb_article.category_id).limit(6).all()

    return jsonify({
        'article': kb_article.to_public_dict(),
        'category': kb_article.category.to_public_dict(),
        'related': [a.to_public_dict(include_content=False) for a in related if a.id != kb_article.id][:5]
    })


@help_center_bp.route('/<tenant_slug>/search')
def search(tenant_slug):
    tenant = get_portal_tenant(tenant_slug)
    q = request.args.get('q', '').strip()

    if len(q) < 2:
        return jsonify({'query': q, 'articles': []})

    results = knowledge_base_service.search_articles(tenant.id, q)
    return jsonify({'query': q, 'articles': [a.to_public_dict(include_content=False) for a in results]})


@help_center_bp.route('/<tenant_slug>/articles/<slug>/feedback', methods=['POST'])
@limiter.limit("30 per hour")
def feedback(tenant_slug, slug):
    """Helpful / not helpful vote; one vote per article per browser session"""
    tenant = get_portal_tenant(tenant_slug)
    kb_article = knowledge_base_service.get_published_article(tenant.id, slug)
    if not kb_article:
        return jsonify({'error': 'Article not found'}), 404

    data = request.get_json() or {}
    if not isinstance(data.get('helpful'), bool):
        return jsonify({'error': 'helpful must be true or false'}), 400

    voted = session.get(FEEDBACK_SESSION_KEY, [])
    if kb_article.id in voted:
        return jsonify({'error': 'You have already rated this article'}), 400

    knowledge_base_service.record_feedback(kb_article, data['helpful'])
    session[FEEDBACK_SESSION_KEY] = voted + [kb_article.id]

    return jsonify({
        'success': True,
        'helpful_count': kb_article.helpful_count,
        'not_helpful_count': kb_article.not_helpful_count
    })
