"""
Admin management of agent-facing content: canned responses and the knowledge base
"""
from flask import request, jsonify, g, current_app
from flask_login import login_required, current_user
from helpdesk import db
from helpdesk.blueprints.admin import admin_bp
from helpdesk.blueprints.admin.routes import _tenant_record
from helpdesk.models.canned_response import CannedResponseFolder, CannedResponse
from helpdesk.models.knowledge_base import KBCategory, KBArticle
from helpdesk.services import canned_response_service, knowledge_base_service
from helpdesk.utils.security_decorators import require_tenant_access, require_tenant_role


# ========== CANNED RESPONSE FOLDERS ==========

@admin_bp.route('/canned-responses/folders')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_folders():
    folders = CannedResponseFolder.query.filter_by(tenant_id=g.current_tenant.id).order_by(
        CannedResponseFolder.name.asc()
    ).all()
    return jsonify({'folders': [f.to_dict() for f in folders]})


@admin_bp.route('/canned-responses/folders', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_folder():
    data = request.get_json() or {}
    try:
        folder = canned_response_service.create_folder(
            g.current_tenant.id,
            data.get('name'),
            folder_type=data.get('folder_type', 'general'),
            owner_id=current_user.id
        )
        return jsonify({'success': True, 'folder': folder.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/canned-responses/folders/<int:folder_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_folder(folder_id):
    folder, error = _tenant_record(CannedResponseFolder, folder_id)
    if error:
        return error

    try:
        folder = canned_response_service.update_folder(folder, request.get_json() or {})
        return jsonify({'success': True, 'folder': folder.to_dict()})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/canned-responses/folders/<int:folder_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_folder(folder_id):
    """Delete a folder together with its responses"""
    folder, error = _tenant_record(CannedResponseFolder, folder_id)
    if error:
        return error

    canned_response_service.delete_folder(folder)
    return jsonify({'success': True})


# ========== CANNED RESPONSES ==========

@admin_bp.route('/canned-responses')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_canned_responses():
    query = CannedResponse.query.filter_by(tenant_id=g.current_tenant.id)
    folder_id = request.args.get('folder_id', type=int)
    if folder_id:
        query = query.filter_by(folder_id=folder_id)

    responses = query.order_by(CannedResponse.title.asc()).all()
    return jsonify({'responses': [r.to_dict() for r in responses]})


@admin_bp.route('/canned-responses', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_canned_response():
    data = request.get_json() or {}
    try:
        response = canned_response_service.create_response(
            g.current_tenant.id,
            data.get('folder_id'),
            data.get('title'),
            data.get('content'),
            visibility=data.get('visibility', 'all'),
            created_by_id=current_user.id
        )
        return jsonify({'success': True, 'response': response.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/canned-responses/<int:response_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_canned_response(response_id):
    response, error = _tenant_record(CannedResponse, response_id)
    if error:
        return error

    try:
        response = canned_response_service.update_response(
            response, request.get_json() or {}, updated_by_id=current_user.id
        )
        return jsonify({'success': True, 'response': response.to_dict()})
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/canned-responses/<int:response_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_canned_response(response_id):
    response, error = _tenant_record(CannedResponse, response_id)
    if error:
        return error

    canned_response_service.delete_response(response)
    return jsonify({'success': True})


# ========== KNOWLEDGE BASE CATEGORIES ==========

@admin_bp.route('/kb/categories')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_kb_categories():
    categories = knowledge_base_service.list_categories(g.current_tenant.id)
    return jsonify({'categories': [c.to_dict() for c in categories]})


@admin_bp.route('/kb/categories', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_kb_category():
    data = request.get_json() or {}
    try:
        category = knowledge_base_service.create_category(
            g.current_tenant.id,
            data.get('name'),
            description=data.get('description'),
            icon=data.get('icon'),
            parent_id=data.get('parent_id'),
            is_published=bool(data.get('is_published', True))
        )
        return jsonify({'success': True, 'category': category.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/kb/categories/<int:category_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_kb_category(category_id):
    category, error = _tenant_record(KBCategory, category_id)
    if error:
        return error

    try:
        category = knowledge_base_service.update_category(category, request.get_json() or {})
        return jsonify({'success': True, 'category': category.to_dict()})
    except (ValueError, TypeError) as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/kb/categories/<int:category_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_kb_category(category_id):
    category, error = _tenant_record(KBCategory, category_id)
    if error:
        return error

    try:
        knowledge_base_service.delete_category(category)
        return jsonify({'success': True})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400


# ========== KNOWLEDGE BASE ARTICLES ==========

@admin_bp.route('/kb/articles')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def list_kb_articles():
    status = request.args.get('status')
    if status and status not in KBArticle.STATUSES:
        return jsonify({'error': f'Invalid status. Must be one of: {", ".join(KBArticle.STATUSES)}'}), 400

    articles = knowledge_base_service.list_articles(
        g.current_tenant.id,
        category_id=request.args.get('category_id', type=int),
        status=status
    )
    return jsonify({'articles': [a.to_dict() for a in articles]})


@admin_bp.route('/kb/articles/<int:article_id>')
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def get_kb_article(article_id):
    article, error = _tenant_record(KBArticle, article_id)
    if error:
        return error
    return jsonify({'article': article.to_dict()})


@admin_bp.route('/kb/articles', methods=['POST'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def create_kb_article():
    data = request.get_json() or {}
    try:
        article = knowledge_base_service.create_article(
            g.current_tenant.id,
            data.get('category_id'),
            data.get('title'),
            content=data.get('content', ''),
            author_id=current_user.id,
            excerpt=data.get('excerpt'),
            status=data.get('status'),
            meta_title=data.get('meta_title'),
            meta_description=data.get('meta_description')
        )
        return jsonify({'success': True, 'article': article.to_dict()}), 201
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating KB article: {e}")
        return jsonify({'error': 'Failed to create article'}), 500


@admin_bp.route('/kb/articles/<int:article_id>', methods=['PATCH'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def update_kb_article(article_id):
    article, error = _tenant_record(KBArticle, article_id)
    if error:
        return error

    try:
        article = knowledge_base_service.update_article(article, request.get_json() or {})
        return jsonify({'success': True, 'article': article.to_dict()})
    except (ValueError, TypeError) as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/kb/articles/<int:article_id>', methods=['DELETE'])
@login_required
@require_tenant_access
@require_tenant_role('owner', 'admin')
def delete_kb_article(article_id):
    article, error = _tenant_record(KBArticle, article_id)
    if error:
        return error

    knowledge_base_service.delete_article(article)
    return jsonify({'success': True})
