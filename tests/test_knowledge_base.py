"""
Tests for knowledge base administration and the public help center
"""
import pytest
from helpdesk.models.knowledge_base import KBArticle
from helpdesk.services import knowledge_base_service as kb

HELP = '/help/test-workspace'


@pytest.fixture
def category(test_tenant):
    return kb.create_category(test_tenant.id, 'Getting Started')


@pytest.fixture
def article(test_tenant, category):
    return kb.create_article(test_tenant.id, category.id, 'Reset your password',
                             content='Click "Forgot password" on the sign-in page.',
                             excerpt='How to reset a password', status='published')


class TestSlugs:

    def test_slugify(self):
        assert kb.slugify('Billing & Payments!') == 'billing-payments'
        assert kb.slugify('  --Hello  World--  ') == 'hello-world'
        assert kb.slugify('???') == 'untitled'

    def test_unique_within_tenant(self, test_tenant, test_tenant_2):
        first = kb.create_category(test_tenant.id, 'Billing')
        second = kb.create_category(test_tenant.id, 'Billing')
        other = kb.create_category(test_tenant_2.id, 'Billing')

        assert first.slug == 'billing'
        assert second.slug == 'billing-2'
        assert other.slug == 'billing'

    def test_rename_keeps_own_slug(self, test_tenant, category):
        kb.update_category(category, {'name': 'Getting started'})

        assert category.slug == 'getting-started'


class TestArticles:

    def test_publish_sets_published_at_once(self, test_tenant, category):
        draft = kb.create_article(test_tenant.id, category.id, 'Draft article')
        assert draft.status == 'draft'
        assert draft.published_at is None

        kb.update_article(draft, {'status': 'published'})
        first_published = draft.published_at
        assert first_published is not None

        kb.update_article(draft, {'status': 'archived'})
        kb.update_article(draft, {'status': 'published'})
        assert draft.published_at == first_published

    def test_invalid_status(self, test_tenant, category):
        with pytest.raises(ValueError):
            kb.create_article(test_tenant.id, category.id, 'Bad', status='live')

    def test_category_must_belong_to_tenant(self, test_tenant_2, category):
        with pytest.raises(ValueError, match='Category not found'):
            kb.create_article(test_tenant_2.id, category.id, 'Sneaky')


class TestKBAdminRoutes:

    def test_create_category_and_article(self, auth_client):
        response = auth_client.post('/admin/kb/categories', json={'name': 'Billing'})
        assert response.status_code == 201
        category_id = response.get_json()['category']['id']

        response = auth_client.post('/admin/kb/articles', json={
            'category_id': category_id, 'title': 'Update card details', 'content': 'Go to billing.',
            'status': 'published'
        })
        assert response.status_code == 201
        assert response.get_json()['article']['slug'] == 'update-card-details'

        articles = auth_client.get(f'/admin/kb/articles?category_id={category_id}').get_json()['articles']
        assert [a['title'] for a in articles] == ['Update card details']

    def test_list_rejects_unknown_status(self, auth_client):
        assert auth_client.get('/admin/kb/articles?status=live').status_code == 400

    def test_cannot_delete_category_with_articles(self, auth_client, category, article):
        response = auth_client.delete(f'/admin/kb/categories/{category.id}')

        assert response.status_code == 400

    def test_delete_article_then_category(self, auth_client, category, article):
        assert auth_client.delete(f'/admin/kb/articles/{article.id}').status_code == 200
        assert auth_client.delete(f'/admin/kb/categories/{category.id}').status_code == 200

    def test_foreign_article_denied(self, auth_client, test_tenant_2):
        foreign_category = kb.create_category(test_tenant_2.id, 'Theirs')
        foreign = kb.create_article(test_tenant_2.id, foreign_category.id, 'Private')

        assert auth_client.get(f'/admin/kb/articles/{foreign.id}').status_code == 403
        assert auth_client.patch(f'/admin/kb/articles/{foreign.id}', json={'title': 'Mine'}).status_code == 403

    def test_agents_cannot_edit_kb(self, client, test_tenant, test_agent):
        client.login(test_agent, test_tenant.id)

        assert client.post('/admin/kb/categories', json={'name': 'Nope'}).status_code == 403


class TestHelpCenter:

    def test_categories_show_published_counts(self, client, test_tenant, category, article):
        kb.create_article(test_tenant.id, category.id, 'Unfinished draft')

        data = client.get(f'{HELP}/categories').get_json()

        assert data['tenant']['slug'] == 'test-workspace'
        assert [(c['slug'], c['article_count']) for c in data['categories']] == [('getting-started', 1)]

    def test_unpublished_category_is_hidden(self, client, test_tenant, category, article):
        kb.update_category(category, {'is_published': False})

        assert client.get(f'{HELP}/categories').get_json()['categories'] == []
        assert client.get(f'{HELP}/categories/{category.slug}').status_code == 404
        assert client.get(f'{HELP}/articles/{article.slug}').status_code == 404

    def test_article_view_counts(self, client, article, db_session):
        response = client.get(f'{HELP}/articles/{article.slug}')

        assert response.status_code == 200
        assert response.get_json()['article']['content'].startswith('Click')
        client.get(f'{HELP}/articles/{article.slug}')
        db_session.expire_all()
        assert db_session.get(KBArticle, article.id).view_count == 2

    def test_draft_article_not_found(self, client, test_tenant, category):
        draft = kb.create_article(test_tenant.id, category.id, 'Secret draft')

        assert client.get(f'{HELP}/articles/{draft.slug}').status_code == 404

    def test_search(self, client, article):
        assert client.get(f'{HELP}/search?q=p').get_json()['articles'] == []

        results = client.get(f'{HELP}/search?q=forgot').get_json()['articles']
        assert [a['slug'] for a in results] == [article.slug]

    def test_search_is_scoped_to_workspace(self, client, test_tenant_2, article):
        foreign_category = kb.create_category(test_tenant_2.id, 'Theirs')
        kb.create_article(test_tenant_2.id, foreign_category.id, 'Forgot username', status='published')

        results = client.get(f'{HELP}/search?q=forgot').get_json()['articles']

        assert [a['slug'] for a in results] == [article.slug]

    def test_feedback_once_per_session(self, client, article):
        response = client.post(f'{HELP}/articles/{article.slug}/feedback', json={'helpful': True})
        assert response.status_code == 200
        assert response.get_json()['helpful_count'] == 1

        response = client.post(f'{HELP}/articles/{article.slug}/feedback', json={'helpful': False})
        assert response.status_code == 400

    def test_feedback_requires_boolean(self, client, article):
        response = client.post(f'{HELP}/articles/{article.slug}/feedback', json={'helpful': 'yes'})

        assert response.status_code == 400
