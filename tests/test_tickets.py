"""
Tests for ticket lifecycle: numbering, status changes, replies, merging, tags and views
"""
from datetime import datetime, timedelta
import pytest
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.models.tag import Tag
from helpdesk.services import ticket_service


class TestTicketNumbering:

    def test_numbers_are_sequential_per_tenant(self, test_tenant, test_tenant_2):
        first = ticket_service.create_ticket(test_tenant.id, 'First')
        second = ticket_service.create_ticket(test_tenant.id, 'Second')
        other = ticket_service.create_ticket(test_tenant_2.id, 'Elsewhere')

        assert first.ticket_number == 'TKT-00001'
        assert second.ticket_number == 'TKT-00002'
        assert other.ticket_number == 'TKT-00001'

    def test_counter_catches_up_with_imported_tickets(self, test_tenant, db_session):
        db_session.add(Ticket(tenant_id=test_tenant.id, ticket_number='TKT-00041', subject='Imported'))
        db_session.commit()

        ticket = ticket_service.create_ticket(test_tenant.id, 'After import')

        assert ticket.ticket_number == 'TKT-00042'

    def test_invalid_priority_rejected(self, test_tenant):
        with pytest.raises(ValueError, match='Invalid priority'):
            ticket_service.create_ticket(test_tenant.id, 'Bad', priority='critical')


class TestTicketRoutes:

    def test_create_ticket(self, auth_client, test_tenant):
        response = auth_client.post('/support/tickets', json={
            'subject': '  Printer on fire ',
            'description': 'Smoke everywhere',
            'priority': 'urgent',
            'contact_email': 'Reporter@Example.com'
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['ticket_number'] == 'TKT-00001'
        assert data['ticket']['subject'] == 'Printer on fire'
        assert data['ticket']['status'] == 'new'
        assert data['ticket']['contact']['email'] == 'reporter@example.com'
        assert data['ticket']['first_response_due_at'] is not None

    def test_create_ticket_requires_subject(self, auth_client):
        response = auth_client.post('/support/tickets', json={'subject': '   '})

        assert response.status_code == 400

    def test_ticket_detail_has_messages_and_history(self, auth_client, test_ticket):
        auth_client.post(f'/support/tickets/{test_ticket.id}/messages', json={'body': 'Looking into it'})

        data = auth_client.get(f'/support/tickets/{test_ticket.id}').get_json()['ticket']

        assert [m['body'] for m in data['messages']] == ['Looking into it']
        assert data['status_history'][-1]['to_status'] == 'new'
        assert data['status_history'][-1]['from_status'] is None

    def test_update_priority_recomputes_due_dates(self, auth_client, test_ticket):
        before = test_ticket.resolution_due_at

        response = auth_client.patch(f'/support/tickets/{test_ticket.id}', json={'priority': 'urgent'})

        assert response.status_code == 200
        assert response.get_json()['ticket']['priority'] == 'urgent'
        assert test_ticket.resolution_due_at < before

    def test_update_rejects_invalid_status(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/status', json={'status': 'archived'})

        assert response.status_code == 400
        assert test_ticket.status == 'new'

    def test_rejected_update_changes_nothing(self, auth_client, test_ticket):
        response = auth_client.patch(f'/support/tickets/{test_ticket.id}',
                                     json={'priority': 'urgent', 'status': 'bogus'})

        assert response.status_code == 400
        assert test_ticket.priority == 'medium'
        assert test_ticket.status == 'new'

    def test_update_with_foreign_assignee_changes_nothing(self, auth_client, test_ticket, test_user_2):
        response = auth_client.patch(f'/support/tickets/{test_ticket.id}',
                                     json={'subject': 'Renamed', 'assignee_id': test_user_2.id})

        assert response.status_code == 400
        assert test_ticket.subject == 'Cannot log in'
        assert test_ticket.assignee_id is None

    def test_delete_ticket(self, auth_client, test_ticket, db_session):
        ticket_id = test_ticket.id

        response = auth_client.delete(f'/support/tickets/{ticket_id}')

        assert response.status_code == 200
        assert db_session.get(Ticket, ticket_id) is None
        assert TicketMessage.query.filter_by(ticket_id=ticket_id).count() == 0

    def test_metrics(self, auth_client, test_ticket):
        data = auth_client.get('/support/metrics').get_json()

        assert data['open_count'] == 1
        assert data['unassigned_count'] == 1
        assert data['status_counts'] == {'new': 1}


class TestTicketStatus:

    def test_assigning_new_ticket_opens_it(self, auth_client, test_ticket, test_agent):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/assign',
                                    json={'assignee_id': test_agent.id})

        assert response.status_code == 200
        assert response.get_json()['status'] == 'open'
        assert test_ticket.assignee_id == test_agent.id

    def test_unassign(self, auth_client, test_ticket, test_agent):
        ticket_service.assign_ticket(test_ticket.id, test_agent.id)

        response = auth_client.post(f'/support/tickets/{test_ticket.id}/assign', json={'assignee_id': None})

        assert response.status_code == 200
        assert test_ticket.assignee_id is None

    def test_status_change_records_history(self, test_ticket, test_user):
        ticket_service.change_status(test_ticket.id, 'pending', changed_by_id=test_user.id, reason='Waiting on customer')

        latest = [h for h in test_ticket.status_history if h.to_status == 'pending']
        assert len(latest) == 1
        assert latest[0].from_status == 'new'
        assert latest[0].reason == 'Waiting on customer'

    def test_same_status_is_not_recorded(self, test_ticket):
        ticket_service.change_status(test_ticket.id, 'new')

        assert test_ticket.status_history.count() == 1

    def test_resolve_then_reopen_clears_timestamps(self, test_ticket):
        ticket_service.change_status(test_ticket.id, 'resolved')
        assert test_ticket.resolved_at is not None

        ticket_service.change_status(test_ticket.id, 'open')
        assert test_ticket.resolved_at is None
        assert test_ticket.closed_at is None

    def test_closing_sets_resolved_and_closed(self, test_ticket):
        ticket_service.change_status(test_ticket.id, 'closed')

        assert test_ticket.closed_at is not None
        assert test_ticket.resolved_at is not None


class TestTicketMessages:

    def test_public_agent_reply_sets_first_response(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/messages', json={'body': 'Hi there'})

        assert response.status_code == 201
        assert test_ticket.first_response_at is not None

    def test_internal_note_does_not_count_as_response(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/messages',
                                    json={'body': 'Escalate?', 'is_internal': True})

        assert response.status_code == 201
        assert response.get_json()['message']['is_internal'] is True
        assert test_ticket.first_response_at is None

    def test_resolution_reply_resolves_ticket(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/messages',
                                    json={'body': 'Fixed it', 'is_resolution': True})

        assert response.status_code == 201
        assert response.get_json()['ticket_status'] == 'resolved'

    def test_empty_body_rejected(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/messages', json={'body': ''})

        assert response.status_code == 400


class TestTicketMerge:

    def test_merge_closes_source_and_notes_target(self, auth_client, test_tenant, test_ticket):
        target = ticket_service.create_ticket(test_tenant.id, 'Original report')

        response = auth_client.post(f'/support/tickets/{test_ticket.id}/merge',
                                    json={'target_ticket_id': target.id})

        assert response.status_code == 200
        assert response.get_json()['target_ticket_number'] == target.ticket_number
        assert test_ticket.status == 'closed'
        assert test_ticket.merged_into_id == target.id

        notes = target.messages.all()
        assert len(notes) == 1
        assert notes[0].author_type == 'system'
        assert notes[0].is_internal
        assert test_ticket.ticket_number in notes[0].body

    def test_cannot_merge_into_self(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/merge',
                                    json={'target_ticket_id': test_ticket.id})

        assert response.status_code == 400

    def test_merge_target_must_exist(self, auth_client, test_ticket):
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/merge', json={'target_ticket_id': 9999})

        assert response.status_code == 404


class TestTicketTags:

    def test_add_and_remove_tag(self, auth_client, test_tenant, test_ticket, db_session):
        tag = Tag(tenant_id=test_tenant.id, name='billing')
        db_session.add(tag)
        db_session.commit()

        response = auth_client.post(f'/support/tickets/{test_ticket.id}/tags', json={'tag_id': tag.id})
        assert response.status_code == 201
        assert [t.name for t in test_ticket.tags] == ['billing']

        # Adding twice is rejected
        response = auth_client.post(f'/support/tickets/{test_ticket.id}/tags', json={'tag_id': tag.id})
        assert response.status_code == 400

        response = auth_client.delete(f'/support/tickets/{test_ticket.id}/tags/{tag.id}')
        assert response.status_code == 200
        assert test_ticket.tags == []

    def test_remove_missing_tag(self, auth_client, test_tenant, test_ticket, db_session):
        tag = Tag(tenant_id=test_tenant.id, name='unused')
        db_session.add(tag)
        db_session.commit()

        response = auth_client.delete(f'/support/tickets/{test_ticket.id}/tags/{tag.id}')

        assert response.status_code == 404


class TestTicketViews:

    def _ids(self, client, query):
        return {t['id'] for t in client.get(f'/support/tickets?{query}').get_json()['tickets']}

    def test_views(self, auth_client, test_tenant, test_user, test_ticket):
        mine = ticket_service.create_ticket(test_tenant.id, 'Mine', assignee_id=test_user.id)
        pending = ticket_service.create_ticket(test_tenant.id, 'Waiting', status='pending')
        done = ticket_service.create_ticket(test_tenant.id, 'Done', status='resolved')

        assert self._ids(auth_client, 'view=my') == {mine.id}
        assert self._ids(auth_client, 'view=unassigned') == {test_ticket.id, pending.id}
        assert self._ids(auth_client, 'view=pending') == {pending.id}
        assert self._ids(auth_client, 'view=resolved') == {done.id}
        assert self._ids(auth_client, 'view=open') == {test_ticket.id, mine.id}

    def test_overdue_view(self, auth_client, test_tenant, test_ticket, db_session):
        late = ticket_service.create_ticket(test_tenant.id, 'Late')
        late.resolution_due_at = datetime.utcnow() - timedelta(hours=1)
        db_session.commit()

        assert self._ids(auth_client, 'view=overdue') == {late.id}

    def test_search_and_filters(self, auth_client, test_tenant, test_ticket):
        other = ticket_service.create_ticket(test_tenant.id, 'Refund request', priority='high')

        assert self._ids(auth_client, 'search=refund') == {other.id}
        assert self._ids(auth_client, f'search={test_ticket.ticket_number}') == {test_ticket.id}
        assert self._ids(auth_client, 'priority=high') == {other.id}
        assert self._ids(auth_client, 'assignee=unassigned') == {test_ticket.id, other.id}

    def test_invalid_view_rejected(self, auth_client):
        response = auth_client.get('/support/tickets?view=everything')

        assert response.status_code == 400

    def test_bulk_update_requires_changes(self, auth_client, test_ticket):
        response = auth_client.post('/support/tickets/bulk', json={'ticket_ids': [test_ticket.id], 'updates': {}})

        assert response.status_code == 400

    def test_bulk_status_change(self, auth_client, test_tenant, test_ticket):
        other = ticket_service.create_ticket(test_tenant.id, 'Another')

        response = auth_client.post('/support/tickets/bulk', json={
            'ticket_ids': [test_ticket.id, other.id],
            'updates': {'status': 'pending'}
        })

        assert response.get_json()['updated'] == 2
        assert test_ticket.status == 'pending'
        assert other.status == 'pending'

    def test_bulk_update_is_all_or_nothing(self, auth_client, test_tenant, test_ticket, test_user_2):
        other = ticket_service.create_ticket(test_tenant.id, 'Another')

        response = auth_client.post('/support/tickets/bulk', json={
            'ticket_ids': [test_ticket.id, other.id],
            'updates': {'priority': 'urgent', 'assignee_id': test_user_2.id}
        })

        assert response.status_code == 400
        assert test_ticket.priority == 'medium'
        assert other.priority == 'medium'
        assert test_ticket.assignee_id is None

    def test_bulk_update_rejects_invalid_status(self, test_tenant, test_ticket):
        with pytest.raises(ValueError, match='Invalid status'):
            ticket_service.bulk_update(test_tenant.id, [test_ticket.id], {'priority': 'low', 'status': 'archived'})

        assert test_ticket.priority == 'medium'
