"""
Tests for workspace administration: tags, groups, agents, banner and audit log
"""
from helpdesk.models.tag import Tag
from helpdesk.models.tenant import TenantMembership
from helpdesk.models.ticket import Ticket
from helpdesk.services import ticket_service


class TestTags:

    def test_create_and_list(self, auth_client):
        response = auth_client.post('/admin/tags', json={'name': 'VIP', 'color': '#FF0000'})
        assert response.status_code == 201

        tags = auth_client.get('/admin/tags').get_json()['tags']
        assert [(t['name'], t['color'], t['ticket_count']) for t in tags] == [('VIP', '#FF0000', 0)]

    def test_duplicate_name_is_case_insensitive(self, auth_client):
        auth_client.post('/admin/tags', json={'name': 'Billing'})

        response = auth_client.post('/admin/tags', json={'name': 'billing'})

        assert response.status_code == 400

    def test_invalid_color(self, auth_client):
        assert auth_client.post('/admin/tags', json={'name': 'x', 'color': 'red'}).status_code == 400

    def test_delete_removes_tag_from_tickets(self, auth_client, test_tenant, test_ticket, db_session):
        tag = Tag(tenant_id=test_tenant.id, name='legacy')
        db_session.add(tag)
        db_session.commit()
        ticket_service.add_tag(test_ticket, tag.id)

        response = auth_client.delete(f'/admin/tags/{tag.id}')

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(Ticket, test_ticket.id).tags == []


class TestGroups:

    def test_group_lifecycle(self, auth_client, test_agent, db_session):
        response = auth_client.post('/admin/groups', json={'name': 'Tier 2'})
        assert response.status_code == 201
        group = response.get_json()['group']
        assert group['slug'] == 'tier-2'

        response = auth_client.post(f"/admin/groups/{group['id']}/members", json={'user_id': test_agent.id})
        assert response.status_code == 201
        assert [m['id'] for m in response.get_json()['group']['members']] == [test_agent.id]

        response = auth_client.delete(f"/admin/groups/{group['id']}/members/{test_agent.id}")
        assert response.status_code == 200

        response = auth_client.delete(f"/admin/groups/{group['id']}/members/{test_agent.id}")
        assert response.status_code == 404

    def test_delete_group_unroutes_tickets(self, auth_client, test_tenant, db_session):
        group_id = auth_client.post('/admin/groups', json={'name': 'Billing'}).get_json()['group']['id']
        ticket = ticket_service.create_ticket(test_tenant.id, 'Refund', group_id=group_id)

        assert auth_client.delete(f'/admin/groups/{group_id}').status_code == 200

        db_session.expire_all()
        assert db_session.get(Ticket, ticket.id).group_id is None

    def test_agents_can_read_groups_but_not_change_them(self, client, test_tenant, test_agent):
        client.login(test_agent, test_tenant.id)

        assert client.get('/admin/groups').status_code == 200
        assert client.post('/admin/groups', json={'name': 'Mine'}).status_code == 403


class TestAgents:

    def test_invite_new_agent(self, auth_client, test_tenant):
        response = auth_client.post('/admin/agents', json={
            'email': 'New.Agent@Example.com', 'password': 'Str0ng!Pass', 'role': 'admin', 'first_name': 'New'
        })

        assert response.status_code == 201
        agent = response.get_json()['agent']
        assert agent['email'] == 'new.agent@example.com'
        assert agent['role'] == 'admin'

        emails = [a['email'] for a in auth_client.get('/admin/agents').get_json()['agents']]
        assert 'new.agent@example.com' in emails

    def test_invite_existing_member_rejected(self, auth_client, test_agent):
        response = auth_client.post('/admin/agents', json={'email': test_agent.email})

        assert response.status_code == 400

    def test_invite_new_user_requires_password(self, auth_client):
        response = auth_client.post('/admin/agents', json={'email': 'nobody@example.com'})

        assert response.status_code == 400

    def test_admin_cannot_grant_owner(self, client, test_tenant, test_agent, db_session):
        membership = TenantMembership.query.filter_by(tenant_id=test_tenant.id, user_id=test_agent.id).first()
        membership.role = 'admin'
        db_session.commit()
        client.login(test_agent, test_tenant.id)

        response = client.post('/admin/agents', json={'email': 'x@example.com', 'password': 'Str0ng!Pass', 'role': 'owner'})

        assert response.status_code == 403

    def test_last_owner_cannot_be_demoted(self, auth_client, test_user):
        response = auth_client.patch(f'/admin/agents/{test_user.id}', json={'role': 'agent'})

        assert response.status_code == 400

    def test_change_role(self, auth_client, test_agent):
        response = auth_client.patch(f'/admin/agents/{test_agent.id}', json={'role': 'admin'})

        assert response.status_code == 200
        assert response.get_json()['role'] == 'admin'

    def test_deactivate_agent(self, auth_client, test_tenant, test_agent):
        response = auth_client.delete(f'/admin/agents/{test_agent.id}')

        assert response.status_code == 200
        assert not test_agent.has_tenant_access(test_tenant.id)

    def test_cannot_deactivate_self(self, auth_client, test_user):
        assert auth_client.delete(f'/admin/agents/{test_user.id}').status_code == 400

    def test_reinvite_reactivates_membership(self, auth_client, test_tenant, test_agent):
        auth_client.delete(f'/admin/agents/{test_agent.id}')

        response = auth_client.post('/admin/agents', json={'email': test_agent.email})

        assert response.status_code == 201
        assert test_agent.has_tenant_access(test_tenant.id)


class TestBanner:

    def test_defaults_then_enable(self, auth_client, client):
        banner = auth_client.get('/admin/banner').get_json()['banner']
        assert banner['is_enabled'] is False
        assert banner['message'] == 'Welcome to our support center!'

        assert client.get('/api/banner/test-workspace').get_json()['banner'] is None

        response = auth_client.patch('/admin/banner', json={'is_enabled': True, 'message': 'Scheduled maintenance'})
        assert response.status_code == 200

        public = client.get('/api/banner/test-workspace').get_json()['banner']
        assert public['message'] == 'Scheduled maintenance'

    def test_enabled_banner_needs_message(self, auth_client):
        response = auth_client.patch('/admin/banner', json={'is_enabled': True, 'message': '  '})

        assert response.status_code == 400
        assert auth_client.get('/admin/banner').get_json()['banner']['is_enabled'] is False

    def test_invalid_color(self, auth_client):
        assert auth_client.patch('/admin/banner', json={'text_color': 'blue'}).status_code == 400


class TestAuditLog:

    def test_admin_actions_are_recorded(self, auth_client, test_agent):
        auth_client.patch(f'/admin/agents/{test_agent.id}', json={'role': 'admin'})

        events = auth_client.get('/admin/audit-log?event_type=agent_updated').get_json()['events']

        assert len(events) == 1
        assert events[0]['resource_id'] == test_agent.id
        assert events[0]['details'] == {'role': 'admin', 'is_active': True}
