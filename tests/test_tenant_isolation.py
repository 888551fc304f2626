"""
Tests for tenant isolation security
Ensures agents cannot reach records that belong to other workspaces
"""
from helpdesk.models.ticket import Ticket
from helpdesk.models.group import Group
from helpdesk.models.tag import Tag
from helpdesk.services import ticket_service


class TestTenantIsolation:
    """Test suite for tenant isolation vulnerabilities"""

    def _other_ticket(self, test_tenant_2):
        return ticket_service.create_ticket(
            test_tenant_2.id, 'Other workspace ticket', 'Secret', contact_email='them@other.com'
        )

    def test_cannot_read_other_tenant_ticket(self, auth_client, test_tenant_2):
        ticket = self._other_ticket(test_tenant_2)

        response = auth_client.get(f'/support/tickets/{ticket.id}')

        assert response.status_code == 403

    def test_cannot_update_other_tenant_ticket(self, auth_client, test_tenant_2, db_session):
        ticket = self._other_ticket(test_tenant_2)

        response = auth_client.patch(f'/support/tickets/{ticket.id}', json={'priority': 'urgent'})

        assert response.status_code == 403
        assert db_session.get(Ticket, ticket.id).priority == 'medium'

    def test_cannot_delete_other_tenant_ticket(self, auth_client, test_tenant_2, db_session):
        ticket = self._other_ticket(test_tenant_2)
        ticket_id = ticket.id

        response = auth_client.delete(f'/support/tickets/{ticket_id}')

        assert response.status_code == 403
        assert db_session.get(Ticket, ticket_id) is not None

    def test_cannot_merge_into_other_tenant_ticket(self, auth_client, test_ticket, test_tenant_2):
        other = self._other_ticket(test_tenant_2)

        response = auth_client.post(f'/support/tickets/{test_ticket.id}/merge',
                                    json={'target_ticket_id': other.id})

        assert response.status_code == 403
        assert test_ticket.merged_into_id is None

    def test_ticket_list_only_shows_own_tenant(self, auth_client, test_ticket, test_tenant_2):
        self._other_ticket(test_tenant_2)

        data = auth_client.get('/support/tickets').get_json()

        assert data['total'] == 1
        assert data['tickets'][0]['id'] == test_ticket.id

    def test_cannot_switch_to_foreign_tenant(self, auth_client, test_tenant_2):
        response = auth_client.post(f'/tenant/switch/{test_tenant_2.id}')

        assert response.status_code == 403

    def test_forged_session_tenant_is_rejected(self, client, test_user, test_tenant, test_tenant_2):
        """A tenant id placed in the session still requires membership"""
        client.login(test_user, test_tenant_2.id)

        response = client.get('/support/tickets')

        assert response.status_code == 403

    def test_cannot_assign_agent_from_other_tenant(self, auth_client, test_ticket, test_user_2, test_tenant_2):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/assign',
                                    json={'assignee_id': test_user_2.id})

        assert response.status_code == 400
        assert test_ticket.assignee_id is None

    def test_cannot_add_foreign_user_to_group(self, auth_client, test_tenant, test_user_2, test_tenant_2, db_session):
        group = Group(tenant_id=test_tenant.id, name='Tier 2', slug='tier-2')
        db_session.add(group)
        db_session.commit()

        response = auth_client.post(f'/admin/groups/{group.id}/members', json={'user_id': test_user_2.id})

        assert response.status_code == 400
        assert test_user_2.id not in [u.id for u in group.get_members()]

    def test_cannot_tag_ticket_with_foreign_tag(self, auth_client, test_ticket, test_tenant_2, db_session):
        foreign_tag = Tag(tenant_id=test_tenant_2.id, name='vip')
        db_session.add(foreign_tag)
        db_session.commit()

        response = auth_client.post(f'/support/tickets/{test_ticket.id}/tags', json={'tag_id': foreign_tag.id})

        assert response.status_code == 400
        assert test_ticket.tags == []

    def test_bulk_update_ignores_foreign_tickets(self, auth_client, test_ticket, test_tenant_2, db_session):
        other = self._other_ticket(test_tenant_2)

        response = auth_client.post('/support/tickets/bulk', json={
            'ticket_ids': [test_ticket.id, other.id],
            'updates': {'priority': 'high'}
        })

        assert response.status_code == 200
        assert response.get_json()['updated'] == 1
        assert db_session.get(Ticket, other.id).priority == 'medium'
