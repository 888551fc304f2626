"""
Tests for tasks: CRUD, notes, subtasks, bulk actions and reminders
"""
from datetime import datetime, timedelta
import pytest
from helpdesk import db
from helpdesk.models.notification import Notification
from helpdesk.models.task import Task, TaskNote, Subtask
from helpdesk.services import task_service, ticket_service


def _task(tenant, title='Call back', **fields):
    return task_service.create_task(tenant.id, dict(fields, title=title))


class TestTaskRoutes:

    def test_create_and_get(self, auth_client, test_ticket, test_agent):
        response = auth_client.post('/tasks', json={
            'title': '  Send replacement part ', 'priority': 'high', 'due_date': '2030-03-01',
            'ticket_id': test_ticket.id, 'assignee_id': test_agent.id
        })

        assert response.status_code == 201
        task = response.get_json()['task']
        assert task['title'] == 'Send replacement part'
        assert task['status'] == 'todo'
        assert task['ticket']['ticket_number'] == test_ticket.ticket_number
        assert task['created_by'] == 'Test User'

        detail = auth_client.get(f"/tasks/{task['id']}").get_json()['task']
        assert detail['notes'] == []
        assert Notification.query.filter_by(user_id=test_agent.id, task_id=task['id']).count() == 1

    @pytest.mark.parametrize('payload, error', [
        ({}, 'Title is required'),
        ({'title': '   '}, 'Title is required'),
        ({'title': 'x', 'status': 'someday'}, 'Invalid status: someday'),
        ({'title': 'x', 'priority': 'asap'}, 'Invalid priority: asap'),
        ({'title': 'x', 'recurrence': 'hourly'}, 'Invalid recurrence: hourly'),
    ])
    def test_create_validation(self, auth_client, payload, error):
        response = auth_client.post('/tasks', json=payload)

        assert response.status_code == 400
        assert response.get_json()['error'] == error

    def test_foreign_links_rejected(self, auth_client, test_user_2, test_tenant_2):
        foreign_ticket = ticket_service.create_ticket(test_tenant_2.id, 'Theirs')

        assert auth_client.post('/tasks', json={'title': 'x', 'ticket_id': foreign_ticket.id}).status_code == 400
        assert auth_client.post('/tasks', json={'title': 'x', 'assignee_id': test_user_2.id}).status_code == 400
        assert Task.query.count() == 0

    def test_done_stamps_completed_at(self, auth_client, test_tenant):
        task = _task(test_tenant)

        done = auth_client.patch(f'/tasks/{task.id}', json={'status': 'done'}).get_json()['task']
        assert done['completed_at'] is not None

        reopened = auth_client.patch(f'/tasks/{task.id}', json={'status': 'in_progress'}).get_json()['task']
        assert reopened['completed_at'] is None

    def test_rejected_update_changes_nothing(self, auth_client, test_tenant):
        task = _task(test_tenant)

        response = auth_client.patch(f'/tasks/{task.id}', json={'priority': 'urgent', 'status': 'someday'})

        assert response.status_code == 400
        task = db.session.get(Task, task.id)
        assert task.priority == 'medium'
        assert task.status == 'todo'

    def test_list_filters(self, auth_client, test_tenant, test_user, test_ticket):
        _task(test_tenant, 'Mine', assignee_id=test_user.id, due_date='2030-01-02')
        _task(test_tenant, 'On ticket', ticket_id=test_ticket.id, due_date='2030-01-01')
        _task(test_tenant, 'Finished', status='done')
        _task(test_tenant, 'Someday')

        def titles(query=''):
            return [t['title'] for t in auth_client.get(f'/tasks{query}').get_json()['tasks']]

        assert titles() == ['On ticket', 'Mine', 'Finished', 'Someday']
        assert titles('?my_tasks=true') == ['Mine']
        assert titles(f'?ticket_id={test_ticket.id}') == ['On ticket']
        assert titles('?status=done') == ['Finished']
        assert titles('?include_closed=false&assignee=unassigned') == ['On ticket', 'Someday']
        assert auth_client.get('/tasks?status=someday').status_code == 400

    def test_foreign_task_denied(self, auth_client, test_tenant_2):
        foreign = _task(test_tenant_2, 'Theirs')

        assert auth_client.get(f'/tasks/{foreign.id}').status_code == 403
        assert auth_client.patch(f'/tasks/{foreign.id}', json={'title': 'Mine now'}).status_code == 403
        assert auth_client.delete(f'/tasks/{foreign.id}').status_code == 403

    def test_delete_removes_notes_and_subtasks(self, auth_client, test_tenant, test_user):
        task = _task(test_tenant)
        task_service.add_note(task, 'Left a voicemail', author_id=test_user.id)
        task_service.add_subtask(task, 'Dial')

        assert auth_client.delete(f'/tasks/{task.id}').status_code == 200
        assert TaskNote.query.count() == 0
        assert Subtask.query.count() == 0

    def test_deleting_ticket_keeps_its_tasks(self, test_tenant, test_ticket):
        task = _task(test_tenant, ticket_id=test_ticket.id)

        ticket_service.delete_ticket(test_ticket)

        assert db.session.get(Task, task.id).ticket_id is None


class TestNotesAndSubtasks:

    def test_add_note(self, auth_client, test_tenant):
        task = _task(test_tenant)

        response = auth_client.post(f'/tasks/{task.id}/notes', json={'content': 'Customer prefers mornings'})

        assert response.status_code == 201
        assert response.get_json()['note']['author_name'] == 'Test User'
        assert auth_client.post(f'/tasks/{task.id}/notes', json={'content': ' '}).status_code == 400

    def test_subtasks_append_in_order(self, auth_client, test_tenant):
        task = _task(test_tenant)

        first = auth_client.post(f'/tasks/{task.id}/subtasks', json={'title': 'Order part'}).get_json()['subtask']
        second = auth_client.post(f'/tasks/{task.id}/subtasks', json={'title': 'Ship part'}).get_json()['subtask']

        assert (first['sort_order'], second['sort_order']) == (0, 1)
        assert auth_client.post(f'/tasks/{task.id}/subtasks', json={}).status_code == 400

    def test_complete_and_reopen_subtask(self, auth_client, test_tenant):
        task = _task(test_tenant)
        subtask = task_service.add_subtask(task, 'Order part')
        url = f'/tasks/{task.id}/subtasks/{subtask.id}'

        done = auth_client.patch(url, json={'is_completed': True}).get_json()['subtask']
        assert done['is_completed'] is True
        assert done['completed_at'] is not None

        undone = auth_client.patch(url, json={'is_completed': False}).get_json()['subtask']
        assert undone['completed_at'] is None

        assert auth_client.delete(url).status_code == 200
        assert db.session.get(Subtask, subtask.id) is None

    def test_subtask_of_another_task_not_found(self, auth_client, test_tenant):
        task = _task(test_tenant)
        other = _task(test_tenant, 'Other')
        subtask = task_service.add_subtask(other, 'Not yours')

        assert auth_client.patch(f'/tasks/{task.id}/subtasks/{subtask.id}', json={'title': 'x'}).status_code == 404


class TestBulkActions:

    def test_update_status_and_archive(self, auth_client, test_tenant):
        first, second = _task(test_tenant, 'One'), _task(test_tenant, 'Two')

        response = auth_client.post('/tasks/bulk', json={
            'task_ids': [first.id, second.id], 'action': 'update_status', 'data': {'status': 'done'}
        })
        assert response.get_json() == {'success': True, 'action': 'update_status', 'count': 2}
        assert db.session.get(Task, first.id).completed_at is not None

        auth_client.post('/tasks/bulk', json={'task_ids': [first.id], 'action': 'archive'})
        task = db.session.get(Task, first.id)
        assert task.status == 'cancelled'
        assert task.completed_at is None

    def test_assign_and_due_date(self, auth_client, test_tenant, test_agent):
        task = _task(test_tenant)

        auth_client.post('/tasks/bulk', json={'task_ids': [task.id], 'action': 'assign_to',
                                              'data': {'assignee_id': test_agent.id}})
        auth_client.post('/tasks/bulk', json={'task_ids': [task.id], 'action': 'set_due_date',
                                              'data': {'due_date': '2030-05-01T09:00:00Z'}})

        task = db.session.get(Task, task.id)
        assert task.assignee_id == test_agent.id
        assert task.due_date == datetime(2030, 5, 1, 9, 0)

    def test_delete_ignores_foreign_ids(self, auth_client, test_tenant, test_tenant_2):
        mine, theirs = _task(test_tenant), _task(test_tenant_2, 'Theirs')

        response = auth_client.post('/tasks/bulk', json={'task_ids': [mine.id, theirs.id], 'action': 'delete'})

        assert response.get_json()['count'] == 1
        assert db.session.get(Task, theirs.id) is not None

    @pytest.mark.parametrize('payload', [
        {'task_ids': [], 'action': 'delete'},
        {'task_ids': [1]},
        {'task_ids': [1], 'action': 'explode'},
        {'task_ids': [1], 'action': 'update_status'},
        {'task_ids': [1], 'action': 'update_priority', 'data': {'priority': 'asap'}},
    ])
    def test_validation(self, auth_client, payload):
        assert auth_client.post('/tasks/bulk', json=payload).status_code == 400

    def test_invalid_value_changes_nothing(self, auth_client, test_tenant, test_user_2):
        task = _task(test_tenant)

        response = auth_client.post('/tasks/bulk', json={'task_ids': [task.id], 'action': 'assign_to',
                                                         'data': {'assignee_id': test_user_2.id}})

        assert response.status_code == 400
        assert db.session.get(Task, task.id).assignee_id is None


class TestReminders:

    def _due(self, tenant, user, title, delta, **fields):
        return _task(tenant, title, assignee_id=user.id,
                     due_date=(datetime.utcnow() + delta).isoformat(), **fields)

    def test_buckets(self, auth_client, test_tenant, test_user):
        now = datetime.utcnow()
        end_of_today = now.replace(hour=23, minute=59, second=0, microsecond=0)
        self._due(test_tenant, test_user, 'Late', timedelta(hours=-2))
        self._due(test_tenant, test_user, 'Later today', end_of_today - now)
        self._due(test_tenant, test_user, 'Tomorrow', end_of_today - now + timedelta(hours=12))
        self._due(test_tenant, test_user, 'Next week', timedelta(days=5))
        self._due(test_tenant, test_user, 'Next month', timedelta(days=30))
        self._due(test_tenant, test_user, 'Done already', timedelta(hours=-2), status='done')

        data = auth_client.get('/tasks/reminders').get_json()

        assert [t['title'] for t in data['overdue']] == ['Late']
        assert [t['title'] for t in data['due_tomorrow']] == ['Tomorrow']
        assert [t['title'] for t in data['due_this_week']] == ['Next week']
        assert data['summary']['total'] == 4
        # Seconds before midnight "later today" may already be overdue
        assert data['summary']['due_today'] + data['summary']['overdue'] == 2

    def test_send_once_per_day(self, auth_client, test_tenant, test_agent):
        self._due(test_tenant, test_agent, 'Late', timedelta(hours=-2))
        self._due(test_tenant, test_agent, 'Next week', timedelta(days=5))

        first = auth_client.post('/tasks/reminders').get_json()
        second = auth_client.post('/tasks/reminders').get_json()

        assert first['notifications_created'] == 1
        assert second['notifications_created'] == 0
        reminder = Notification.query.filter_by(user_id=test_agent.id, type='task_reminder').one()
        assert reminder.title == 'Task overdue'

    def test_only_admins_send(self, client, test_tenant, test_agent):
        client.login(test_agent, test_tenant.id)

        assert client.post('/tasks/reminders').status_code == 403
        assert client.get('/tasks/reminders').status_code == 200
