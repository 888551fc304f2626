"""
Tests for AI assist (summaries, replies, categorization), usage tracking
and the AI agent API with its approval workflow
"""
from types import SimpleNamespace
import pytest
from helpdesk import db
from helpdesk.models.ai_action_log import AIActionLog
from helpdesk.models.ai_settings import AISettings
from helpdesk.models.notification import Notification
from helpdesk.models.tag import Tag
from helpdesk.models.task import Task
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.services import ai_agent_service
from helpdesk.services.ai_service import AIService, AIDisabledError, extract_json, get_ai_service_for_tenant
from helpdesk.services.ai_usage_service import calculate_cost, get_usage_stats

AGENT_API = '/api/ai-agent'


class FakeMessages:

    def __init__(self, text):
        self.text = text
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(
            content=[SimpleNamespace(text=self.text)],
            usage=SimpleNamespace(input_tokens=1000, output_tokens=200)
        )


class FakeAnthropic:
    """Stands in for anthropic.Anthropic; returns a fixed completion"""

    def __init__(self, text='  A short answer.  '):
        self.messages = FakeMessages(text)


@pytest.fixture
def ai_settings(db_session, test_tenant):
    settings = AISettings(tenant_id=test_tenant.id, is_enabled=True)
    db_session.add(settings)
    db_session.commit()
    return settings


@pytest.fixture
def api_key(test_tenant):
    return ai_agent_service.rotate_agent_api_key(test_tenant.id)


def _headers(key):
    return {'Authorization': f'Bearer {key}'}


def _ai_fields(confidence=0.95):
    return {'ai_reasoning': 'Customer reported an outage by email', 'ai_confidence': confidence,
            'ai_model': 'claude-haiku-4-5-20251001'}


# ========== AI ASSIST ==========

class TestAIService:

    def test_requires_enabled_settings(self, test_tenant):
        with pytest.raises(AIDisabledError):
            get_ai_service_for_tenant(test_tenant, client=FakeAnthropic())

    def test_requires_api_key(self, test_tenant, ai_settings):
        with pytest.raises(AIDisabledError, match='No Anthropic API key'):
            get_ai_service_for_tenant(test_tenant)

    def test_summary_tracks_usage(self, test_tenant, ai_settings, test_ticket, test_user):
        fake = FakeAnthropic()
        ai = get_ai_service_for_tenant(test_tenant, client=fake)

        summary = ai.summarize_ticket(test_ticket, user_id=test_user.id)

        assert summary == 'A short answer.'
        call = fake.messages.calls[0]
        assert call['model'] == 'claude-haiku-4-5-20251001'
        assert 'Cannot log in' in call['messages'][0]['content']

        stats = get_usage_stats(test_tenant.id, days=7)
        assert stats['stats']['total_requests'] == 1
        assert stats['stats']['total_tokens'] == 1200
        assert stats['stats']['total_cost'] == pytest.approx(0.002)
        assert stats['feature_usage'][0]['feature'] == 'summary'
        assert stats['recent_usage'][0]['ticket_id'] == test_ticket.id

    def test_tenant_model_override(self, test_tenant, ai_settings, db_session):
        ai_settings.model = 'claude-sonnet-4-5-20250929'
        db_session.commit()

        assert get_ai_service_for_tenant(test_tenant, client=FakeAnthropic()).model == 'claude-sonnet-4-5-20250929'

    def test_pending_ai_messages_are_left_out_of_prompts(self, test_tenant, ai_settings, test_ticket):
        from helpdesk.services import ticket_service
        ticket_service.add_message(test_ticket.id, 'Unreviewed draft', author_type='ai', approval_status='pending')
        fake = FakeAnthropic()

        get_ai_service_for_tenant(test_tenant, client=fake).suggest_reply(test_ticket, tone='shouty')

        call = fake.messages.calls[0]
        assert 'Unreviewed draft' not in call['messages'][0]['content']
        assert 'professional' in call['system']

    def test_categorize_filters_suggestions(self, test_tenant, ai_settings, test_ticket, db_session):
        db_session.add(Tag(tenant_id=test_tenant.id, name='Login'))
        db_session.commit()
        fake = FakeAnthropic('```json\n{"priority": "critical", "suggested_tags": ["login", "made-up"], '
                             '"category": "Technical Support", "sentiment": "angry", "reasoning": "Locked out"}\n```')

        result = get_ai_service_for_tenant(test_tenant, client=fake).categorize_ticket(test_ticket)

        assert result['priority'] == 'medium'
        assert result['suggested_tags'] == ['Login']
        assert result['sentiment'] == 'neutral'
        assert result['category'] == 'Technical Support'

    def test_categorize_rejects_unreadable_response(self, test_tenant, ai_settings, test_ticket):
        ai = get_ai_service_for_tenant(test_tenant, client=FakeAnthropic('I think it is urgent'))

        with pytest.raises(ValueError):
            ai.categorize_ticket(test_ticket)


def test_extract_json_plain_and_fenced():
    assert extract_json('{"a": 1}') == {'a': 1}
    assert extract_json('Here:\n```\n{"a": 2}\n```') == {'a': 2}


def test_calculate_cost():
    assert calculate_cost('anthropic', 'claude-sonnet-4-5-20250929', 1_000_000, 1_000_000) == (3.0, 15.0)
    # Unknown models use the default pricing
    assert calculate_cost('anthropic', 'some-new-model', 2_000_000, 0) == (2.0, 0.0)


class TestAssistRoutes:

    def test_disabled_workspace(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/ai/summary')

        assert response.status_code == 400

    def test_invalid_tone(self, auth_client, test_ticket, ai_settings):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/ai/suggest-reply', json={'tone': 'shouty'})

        assert response.status_code == 400

    def test_summary_route(self, auth_client, test_tenant, test_ticket, ai_settings, monkeypatch):
        monkeypatch.setattr('helpdesk.blueprints.support.routes.get_ai_service_for_tenant',
                            lambda tenant: AIService(tenant.id, client=FakeAnthropic('Login issue.')))

        response = auth_client.post(f'/support/tickets/{test_ticket.id}/ai/summary')

        assert response.status_code == 200
        assert response.get_json()['summary'] == 'Login issue.'

    def test_feature_flag_off(self, auth_client, test_ticket, ai_settings, db_session, monkeypatch):
        ai_settings.summary_enabled = False
        db_session.commit()
        monkeypatch.setattr('helpdesk.blueprints.support.routes.get_ai_service_for_tenant',
                            lambda tenant: AIService(tenant.id, client=FakeAnthropic()))

        response = auth_client.post(f'/support/tickets/{test_ticket.id}/ai/summary')

        assert response.status_code == 400
        assert 'turned off' in response.get_json()['error']


# ========== AI AGENT API ==========

class TestAgentAPIAuth:

    def test_missing_header(self, client, test_tenant):
        assert client.get(f'{AGENT_API}/tickets').status_code == 401

    def test_unknown_key(self, client, api_key):
        assert client.get(f'{AGENT_API}/tickets', headers=_headers('hdk_not-a-real-key')).status_code == 401

    def test_rotated_key_replaces_old_one(self, client, test_tenant, api_key):
        new_key = ai_agent_service.rotate_agent_api_key(test_tenant.id)

        assert client.get(f'{AGENT_API}/tickets', headers=_headers(api_key)).status_code == 401
        assert client.get(f'{AGENT_API}/tickets', headers=_headers(new_key)).status_code == 200

    def test_only_digest_is_stored(self, test_tenant, api_key):
        settings = AISettings.query.filter_by(tenant_id=test_tenant.id).first()

        assert api_key.startswith('hdk_')
        assert settings.agent_api_key_digest == AISettings.digest_key(api_key)
        assert settings.agent_api_key_prefix == api_key[:12]


class TestAgentTickets:

    def test_create_pending_ticket(self, client, test_tenant, api_key):
        response = client.post(f'{AGENT_API}/tickets', headers=_headers(api_key), json=dict(
            _ai_fields(), subject='Site is down', description='Reported via email', priority='urgent',
            contact_email='ops@acme.com', contact_name='Ops Team'
        ))

        assert response.status_code == 201
        data = response.get_json()
        assert data['approvalStatus'] == 'pending'
        assert data['statusMessage'] == 'Ticket created, pending approval'
        ticket = db.session.get(Ticket, data['ticket']['id'])
        assert ticket.ai_generated is True
        assert ticket.source == 'ai'
        assert ticket.contact.email == 'ops@acme.com'
        assert ticket.status_history.first().changed_by.is_ai_agent

    def test_auto_approve_above_threshold(self, client, test_tenant, api_key):
        ai_agent_service.update_confidence_config(test_tenant.id, {'auto_approve_enabled': True})

        high = client.post(f'{AGENT_API}/tickets', headers=_headers(api_key),
                           json=dict(_ai_fields(0.9), subject='Confident')).get_json()
        low = client.post(f'{AGENT_API}/tickets', headers=_headers(api_key),
                          json=dict(_ai_fields(0.6), subject='Unsure')).get_json()

        assert high['approvalStatus'] == 'auto_approved'
        assert high['statusMessage'] == 'Ticket created and auto-approved'
        assert low['approvalStatus'] == 'pending'

    @pytest.mark.parametrize('payload', [
        {'subject': 'No reasoning', 'ai_confidence': 0.9},
        {'subject': 'Bad confidence', 'ai_reasoning': 'x', 'ai_confidence': 1.5},
        {'subject': 'Bool confidence', 'ai_reasoning': 'x', 'ai_confidence': True},
        {'ai_reasoning': 'x', 'ai_confidence': 0.9},
    ])
    def test_validation(self, client, api_key, payload):
        response = client.post(f'{AGENT_API}/tickets', headers=_headers(api_key), json=payload)

        assert response.status_code == 400

    def test_list_only_ai_tickets(self, client, api_key, test_ticket):
        client.post(f'{AGENT_API}/tickets', headers=_headers(api_key), json=dict(_ai_fields(), subject='From AI'))

        tickets = client.get(f'{AGENT_API}/tickets', headers=_headers(api_key)).get_json()['tickets']

        assert [t['subject'] for t in tickets] == ['From AI']


class TestAgentReplies:

    def test_reply_and_note(self, client, api_key, test_ticket):
        reply = client.post(f'{AGENT_API}/ticket-replies', headers=_headers(api_key), json=dict(
            _ai_fields(), ticket_id=test_ticket.id, body='Try resetting your password.'
        ))
        note = client.post(f'{AGENT_API}/ticket-replies', headers=_headers(api_key), json=dict(
            _ai_fields(), ticket_id=test_ticket.id, body='Likely SSO misconfiguration', internal=True
        ))

        assert reply.status_code == 201
        assert reply.get_json()['statusMessage'] == 'Reply created, pending approval'
        assert note.get_json()['statusMessage'] == 'Internal note created, pending approval'

        actions = {log.action for log in AIActionLog.query.all()}
        assert actions == {'create_reply', 'create_note'}

        replies = client.get(f'{AGENT_API}/ticket-replies?ticket_id={test_ticket.id}',
                             headers=_headers(api_key)).get_json()['replies']
        assert len(replies) == 2

    def test_foreign_ticket_not_found(self, client, api_key, test_tenant_2):
        from helpdesk.services import ticket_service
        foreign = ticket_service.create_ticket(test_tenant_2.id, 'Theirs')

        response = client.post(f'{AGENT_API}/ticket-replies', headers=_headers(api_key),
                               json=dict(_ai_fields(), ticket_id=foreign.id, body='Hello'))

        assert response.status_code == 404

    def test_pending_reply_does_not_count_as_first_response(self, client, api_key, test_ticket):
        client.post(f'{AGENT_API}/ticket-replies', headers=_headers(api_key),
                    json=dict(_ai_fields(), ticket_id=test_ticket.id, body='Hello'))

        assert db.session.get(Ticket, test_ticket.id).first_response_at is None


class TestAgentTasks:

    def test_create_task_uses_task_threshold(self, client, test_tenant, test_ticket, api_key):
        ai_agent_service.update_confidence_config(test_tenant.id, {
            'auto_approve_enabled': True, 'task_auto_approve': 0.85, 'note_auto_approve': 0.95
        })

        response = client.post(f'{AGENT_API}/tasks', headers=_headers(api_key), json=dict(
            _ai_fields(0.9), title='Call the customer back', ticket_id=test_ticket.id, due_date='2030-01-15'
        ))

        assert response.status_code == 201
        data = response.get_json()
        assert data['approvalStatus'] == 'auto_approved'
        assert data['statusMessage'] == 'Task created and auto-approved'
        task = db.session.get(Task, data['task']['id'])
        assert task.ai_generated is True
        assert task.ticket_id == test_ticket.id
        assert task.created_by.is_ai_agent
        assert task.due_date.year == 2030
        log = db.session.get(AIActionLog, data['actionLogId'])
        assert (log.action, log.entity_type, log.ticket_id) == ('create_task', 'task', test_ticket.id)

    def test_low_confidence_task_waits_for_approval_to_be_assigned(self, client, auth_client, test_tenant,
                                                                   test_agent, api_key):
        unsure = client.post(f'{AGENT_API}/tasks', headers=_headers(api_key), json=dict(
            _ai_fields(0.3), title='Maybe refund', assignee_id=test_agent.id
        )).get_json()
        likely = client.post(f'{AGENT_API}/tasks', headers=_headers(api_key), json=dict(
            _ai_fields(0.7), title='Send invoice copy', assignee_id=test_agent.id
        )).get_json()

        assert unsure['approvalStatus'] == 'pending'
        assert unsure['task']['assignee_id'] is None
        assert likely['task']['assignee_id'] == test_agent.id

        response = auth_client.post(f"/admin/ai-actions/{unsure['actionLogId']}/approve")

        assert response.status_code == 200
        task = db.session.get(Task, unsure['task']['id'])
        assert task.assignee_id == test_agent.id
        assert task.approval_status == 'approved'
        assert Notification.query.filter_by(user_id=test_agent.id, type='task_assigned').count() == 2

    def test_reject_task_cancels_it(self, auth_client, test_tenant):
        task, log = ai_agent_service.create_ai_task(test_tenant, dict(_ai_fields(), title='Wrong idea'))

        auth_client.post(f'/admin/ai-actions/{log.id}/reject', json={'reason': 'Not needed'})

        task = db.session.get(Task, task.id)
        assert task.status == 'cancelled'
        assert task.approval_status == 'rejected'

    @pytest.mark.parametrize('payload', [
        {'ai_reasoning': 'x', 'ai_confidence': 0.9},
        {'title': 'No reasoning', 'ai_confidence': 0.9},
        {'title': 'Bad date', 'ai_reasoning': 'x', 'ai_confidence': 0.9, 'due_date': 'next tuesday'},
        {'title': 'Bad priority', 'ai_reasoning': 'x', 'ai_confidence': 0.9, 'priority': 'asap'},
    ])
    def test_validation(self, client, api_key, payload):
        response = client.post(f'{AGENT_API}/tasks', headers=_headers(api_key), json=payload)

        assert response.status_code == 400

    def test_foreign_ticket_rejected(self, client, api_key, test_tenant_2):
        from helpdesk.services import ticket_service
        foreign = ticket_service.create_ticket(test_tenant_2.id, 'Theirs')

        response = client.post(f'{AGENT_API}/tasks', headers=_headers(api_key),
                               json=dict(_ai_fields(), title='Follow up', ticket_id=foreign.id))

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Ticket not found'
        assert Task.query.count() == 0

    def test_list_only_ai_tasks(self, client, test_tenant, test_ticket, api_key):
        from helpdesk.services import task_service
        task_service.create_task(test_tenant.id, {'title': 'Written by a human'})
        ai_agent_service.create_ai_task(test_tenant, dict(_ai_fields(), title='On ticket', ticket_id=test_ticket.id))
        ai_agent_service.create_ai_task(test_tenant, dict(_ai_fields(), title='Standalone'))

        data = client.get(f'{AGENT_API}/tasks?ticket_id={test_ticket.id}', headers=_headers(api_key)).get_json()

        assert data['count'] == 1
        assert [t['title'] for t in data['tasks']] == ['On ticket']


# ========== APPROVAL WORKFLOW ==========


class TestApprovals:

    def _ai_ticket(self, test_tenant, subject='Needs review'):
        return ai_agent_service.create_ai_ticket(test_tenant, dict(_ai_fields(), subject=subject))

    def test_approve_ticket(self, auth_client, test_tenant):
        ticket, log = self._ai_ticket(test_tenant)

        response = auth_client.post(f'/admin/ai-actions/{log.id}/approve')

        assert response.status_code == 200
        assert response.get_json()['action']['approved_by'] == 'Test User'
        assert db.session.get(Ticket, ticket.id).approval_status == 'approved'

        # Reviewing twice is refused
        assert auth_client.post(f'/admin/ai-actions/{log.id}/approve').status_code == 400

    def test_reject_ticket_closes_it(self, auth_client, test_tenant):
        ticket, log = self._ai_ticket(test_tenant)

        response = auth_client.post(f'/admin/ai-actions/{log.id}/reject', json={'reason': 'Duplicate'})

        assert response.status_code == 200
        assert response.get_json()['action']['rejection_reason'] == 'Duplicate'
        ticket = db.session.get(Ticket, ticket.id)
        assert ticket.approval_status == 'rejected'
        assert ticket.status == 'closed'

    def test_reject_reply_keeps_it_hidden(self, auth_client, test_tenant, test_ticket):
        message, log = ai_agent_service.create_ai_reply(
            test_tenant, test_ticket, dict(_ai_fields(), body='Wrong answer')
        )

        auth_client.post(f'/admin/ai-actions/{log.id}/reject')

        assert db.session.get(TicketMessage, message.id).approval_status == 'rejected'

    def test_foreign_action_not_found(self, auth_client, test_tenant_2):
        _, log = ai_agent_service.create_ai_ticket(test_tenant_2, dict(_ai_fields(), subject='Theirs'))

        assert auth_client.post(f'/admin/ai-actions/{log.id}/approve').status_code == 404

    def test_list_and_stats(self, auth_client, test_tenant):
        _, first = self._ai_ticket(test_tenant, 'First')
        self._ai_ticket(test_tenant, 'Second')
        ai_agent_service.approve_action(test_tenant.id, first.id, None)

        pending = auth_client.get('/admin/ai-actions?pending=true').get_json()['actions']
        assert [a['output_data']['subject'] for a in pending] == ['Second']

        stats = auth_client.get('/admin/ai-actions/stats').get_json()
        assert stats['total'] == 2
        assert stats['pending'] == 1
        assert stats['approved'] == 1
        assert stats['approval_rate'] == 50.0

        assert auth_client.get('/admin/ai-actions?entity_type=bogus').status_code == 400

    def test_failed_action_is_not_awaiting_review(self, auth_client, test_tenant, monkeypatch):
        def broken_create(*args, **kwargs):
            raise RuntimeError('database went away')

        monkeypatch.setattr(ai_agent_service.ticket_service, 'create_ticket', broken_create)
        with pytest.raises(RuntimeError):
            self._ai_ticket(test_tenant, 'Never created')

        log = AIActionLog.query.filter_by(tenant_id=test_tenant.id).one()
        assert log.approval_status == 'failed'
        assert log.success is False
        assert log.error_message == 'database went away'

        assert auth_client.get('/admin/ai-actions?pending=true').get_json()['actions'] == []
        response = auth_client.post(f'/admin/ai-actions/{log.id}/approve')
        assert response.status_code == 400
        assert 'already been reviewed' in response.get_json()['error']

        stats = auth_client.get('/admin/ai-actions/stats').get_json()
        assert stats['failed'] == 1
        assert stats['pending'] == 0
        assert stats['total'] == 0
        assert stats['approval_rate'] == 0.0


    def test_agents_cannot_review(self, client, test_tenant, test_agent):
        _, log = self._ai_ticket(test_tenant)
        client.login(test_agent, test_tenant.id)

        assert client.post(f'/admin/ai-actions/{log.id}/approve').status_code == 403


# ========== ADMIN AI SETTINGS ==========

class TestAISettingsAdmin:

    def test_confidence_defaults_and_update(self, auth_client):
        config = auth_client.get('/admin/ai-confidence').get_json()['config']
        assert config['task_auto_approve'] == 0.85
        assert config['auto_approve_enabled'] is False

        response = auth_client.patch('/admin/ai-confidence', json={'note_auto_approve': 0.75})
        assert response.get_json()['config']['note_auto_approve'] == 0.75

        assert auth_client.patch('/admin/ai-confidence', json={'task_draft': 2}).status_code == 400

    def test_settings_never_return_stored_key(self, auth_client, test_tenant):
        response = auth_client.patch('/admin/ai-settings', json={
            'is_enabled': True, 'anthropic_api_key': 'sk-ant-secret'
        })

        settings = response.get_json()['settings']
        assert settings['is_enabled'] is True
        assert settings['has_anthropic_api_key'] is True
        assert 'sk-ant-secret' not in response.get_data(as_text=True)

        stored = AISettings.query.filter_by(tenant_id=test_tenant.id).first()
        assert stored.anthropic_api_key_encrypted != 'sk-ant-secret'

    def test_stored_key_builds_client(self, auth_client, test_tenant):
        auth_client.patch('/admin/ai-settings', json={'is_enabled': True, 'anthropic_api_key': 'sk-ant-secret'})

        ai = get_ai_service_for_tenant(test_tenant)

        assert ai.client.api_key == 'sk-ant-secret'

    def test_rotate_and_revoke_api_key(self, auth_client, client):
        response = auth_client.post('/admin/ai-settings/api-key')
        assert response.status_code == 201
        raw_key = response.get_json()['api_key']

        assert auth_client.get('/admin/ai-settings').get_json()['settings']['agent_api_key_prefix'] == raw_key[:12]

        auth_client.delete('/admin/ai-settings/api-key')
        auth_client.logout()
        assert client.get(f'{AGENT_API}/tickets', headers=_headers(raw_key)).status_code == 401

    def test_usage_days_bounds(self, auth_client):
        assert auth_client.get('/admin/ai-usage?days=0').status_code == 400
        assert auth_client.get('/admin/ai-usage?days=7').get_json()['stats']['total_requests'] == 0
