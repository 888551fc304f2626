"""
Tests for the automation engine and automation admin endpoints
"""
from helpdesk.models.automation import Automation
from helpdesk.models.group import Group
from helpdesk.models.ticket import Ticket
from helpdesk.services import automation_engine, ticket_service


def _automation(db_session, tenant, name, conditions, actions, trigger='ticket_created', priority=0, is_active=True):
    automation = Automation(tenant_id=tenant.id, name=name, trigger=trigger, priority=priority, is_active=is_active)
    automation.set_conditions(conditions)
    automation.set_actions(actions)
    db_session.add(automation)
    db_session.commit()
    return automation


class TestConditions:

    def _ticket(self, **fields):
        defaults = {'subject': 'Refund for order 42', 'description': '', 'status': 'new',
                    'priority': 'medium', 'source': 'email'}
        defaults.update(fields)
        return Ticket(**defaults)

    def test_operators(self):
        ticket = self._ticket()

        assert automation_engine.evaluate_condition({'field': 'subject', 'operator': 'contains', 'value': 'REFUND'}, ticket)
        assert automation_engine.evaluate_condition({'field': 'subject', 'operator': 'starts_with', 'value': 'refund'}, ticket)
        assert automation_engine.evaluate_condition({'field': 'subject', 'operator': 'ends_with', 'value': '42'}, ticket)
        assert automation_engine.evaluate_condition({'field': 'source', 'operator': 'equals', 'value': 'email'}, ticket)
        assert automation_engine.evaluate_condition({'field': 'priority', 'operator': 'not_equals', 'value': 'low'}, ticket)
        assert automation_engine.evaluate_condition({'field': 'description', 'operator': 'is_empty'}, ticket)
        assert automation_engine.evaluate_condition({'field': 'assignee_id', 'operator': 'is_empty'}, ticket)
        assert not automation_engine.evaluate_condition({'field': 'subject', 'operator': 'not_contains', 'value': 'order'}, ticket)

    def test_unknown_field_or_operator_never_matches(self):
        ticket = self._ticket()

        assert not automation_engine.evaluate_condition({'field': 'mood', 'value': 'angry'}, ticket)
        assert not automation_engine.evaluate_condition({'field': 'subject', 'operator': 'sounds_like', 'value': 'x'}, ticket)

    def test_empty_conditions_match(self):
        assert automation_engine.evaluate_conditions([], self._ticket())

    def test_change_conditions_compare_with_previous_state(self):
        ticket = self._ticket(status='resolved')
        condition = {'field': 'status_changed'}

        assert automation_engine.evaluate_condition(condition, ticket, {'status': 'open'})
        assert not automation_engine.evaluate_condition(condition, ticket, {'status': 'resolved'})
        # A new ticket has no previous state, so every change condition matches
        assert automation_engine.evaluate_condition(condition, ticket, None)
        assert automation_engine.evaluate_condition({'field': 'assignee_changed'}, ticket, None)

    def test_change_conditions_ignore_value(self):
        ticket = self._ticket(status='resolved')

        assert automation_engine.evaluate_condition({'field': 'status_changed', 'value': 'closed'},
                                                    ticket, {'status': 'open'})
        assert automation_engine.evaluate_conditions(
            [{'field': 'status_changed'}, {'field': 'status', 'value': 'resolved'}], ticket, {'status': 'open'})
        assert not automation_engine.evaluate_conditions(
            [{'field': 'status_changed'}, {'field': 'status', 'value': 'closed'}], ticket, {'status': 'open'})


class TestRunAutomations:

    def test_created_trigger_applies_actions(self, test_tenant, db_session):
        group = Group(tenant_id=test_tenant.id, name='Billing', slug='billing')
        db_session.add(group)
        db_session.commit()
        automation = _automation(db_session, test_tenant, 'Billing router',
                                 [{'field': 'subject', 'operator': 'contains', 'value': 'invoice'}],
                                 [{'type': 'set_priority', 'value': 'high'},
                                  {'type': 'assign_group', 'value': group.id},
                                  {'type': 'add_tag', 'value': 'billing'}])

        ticket = ticket_service.create_ticket(test_tenant.id, 'Wrong invoice amount')
        other = ticket_service.create_ticket(test_tenant.id, 'Password reset')

        assert ticket.priority == 'high'
        assert ticket.group_id == group.id
        assert [t.name for t in ticket.tags] == ['billing']
        assert other.priority == 'medium'
        assert automation.run_count == 1

    def test_later_automations_see_earlier_changes(self, test_tenant, db_session):
        _automation(db_session, test_tenant, 'Second', [{'field': 'priority', 'value': 'urgent'}],
                    [{'type': 'add_tag', 'value': 'escalated'}], priority=1)
        _automation(db_session, test_tenant, 'First', [{'field': 'subject', 'operator': 'contains', 'value': 'outage'}],
                    [{'type': 'set_priority', 'value': 'urgent'}], priority=0)

        ticket = ticket_service.create_ticket(test_tenant.id, 'Full outage')

        assert ticket.priority == 'urgent'
        assert [t.name for t in ticket.tags] == ['escalated']

    def test_inactive_automation_is_skipped(self, test_tenant, db_session):
        _automation(db_session, test_tenant, 'Off', [], [{'type': 'set_priority', 'value': 'low'}], is_active=False)

        ticket = ticket_service.create_ticket(test_tenant.id, 'Anything')

        assert ticket.priority == 'medium'

    def test_failing_action_does_not_stop_the_rest(self, test_tenant, db_session):
        _automation(db_session, test_tenant, 'Partly broken', [],
                    [{'type': 'assign_agent', 'value': 9999}, {'type': 'add_tag', 'value': 'triaged'}])

        ticket = ticket_service.create_ticket(test_tenant.id, 'Hello')

        assert ticket.assignee_id is None
        assert [t.name for t in ticket.tags] == ['triaged']

    def test_updated_trigger_on_status_change(self, test_tenant, test_ticket, db_session):
        _automation(db_session, test_tenant, 'Resolution note',
                    [{'field': 'status_changed'}, {'field': 'status', 'value': 'resolved'}],
                    [{'type': 'add_note', 'value': 'Send satisfaction survey'}], trigger='ticket_updated')

        ticket, result = ticket_service.update_ticket(test_ticket, {'status': 'resolved'})

        assert result['executed_count'] == 1
        assert result['actions'] == ['Resolution note: Added internal note']
        notes = ticket.messages.all()
        assert len(notes) == 1
        assert notes[0].is_internal
        assert notes[0].author_type == 'system'

    def test_update_without_changes_does_not_run(self, test_tenant, test_ticket, db_session):
        automation = _automation(db_session, test_tenant, 'Any update', [],
                                 [{'type': 'add_tag', 'value': 'touched'}], trigger='ticket_updated')

        ticket, result = ticket_service.update_ticket(test_ticket, {'priority': 'medium'})

        assert result is None
        assert automation.run_count == 0

    def test_status_changed_matches_on_create(self, test_tenant, db_session):
        _automation(db_session, test_tenant, 'New ticket bump', [{'field': 'status_changed'}],
                    [{'type': 'set_priority', 'value': 'high'}])

        ticket = ticket_service.create_ticket(test_tenant.id, 'Printer on fire')

        assert ticket.priority == 'high'

    def test_executed_count_counts_actions(self, test_tenant, test_ticket, db_session):
        _automation(db_session, test_tenant, 'Escalate', [{'field': 'priority', 'value': 'urgent'}],
                    [{'type': 'add_tag', 'value': 'escalated'}, {'type': 'add_note', 'value': 'Page the on-call'}],
                    trigger='ticket_updated')

        ticket, result = ticket_service.update_ticket(test_ticket, {'priority': 'urgent'})

        assert result['executed_count'] == 2
        assert result['actions'] == ['Escalate: Added tag "escalated"', 'Escalate: Added internal note']

    def test_assign_agent_action_opens_ticket(self, test_tenant, test_agent, db_session):
        _automation(db_session, test_tenant, 'Round robin', [], [{'type': 'assign_agent', 'value': test_agent.id}])

        ticket = ticket_service.create_ticket(test_tenant.id, 'Needs an owner')

        assert ticket.assignee_id == test_agent.id
        assert ticket.status == 'open'


class TestAutomationRoutes:

    def _create(self, client, name, **extra):
        payload = {'name': name, 'conditions': [], 'actions': [{'type': 'add_tag', 'value': name}]}
        payload.update(extra)
        return client.post('/admin/automations', json=payload)

    def test_create_appends_to_order(self, auth_client):
        first = self._create(auth_client, 'one').get_json()['automation']
        second = self._create(auth_client, 'two').get_json()['automation']

        assert first['priority'] == 0
        assert second['priority'] == 1
        assert first['trigger'] == 'ticket_created'

    def test_create_validates_rules(self, auth_client):
        assert self._create(auth_client, 'bad', actions=[]).status_code == 400
        assert self._create(auth_client, 'bad', actions=[{'type': 'delete_everything'}]).status_code == 400
        assert self._create(auth_client, 'bad', conditions=[{'field': 'mood'}]).status_code == 400
        assert self._create(auth_client, 'bad', trigger='ticket_deleted').status_code == 400
        assert auth_client.post('/admin/automations', json={'actions': [{'type': 'add_tag', 'value': 'x'}]}).status_code == 400

    def test_reorder(self, auth_client):
        first = self._create(auth_client, 'one').get_json()['automation']['id']
        second = self._create(auth_client, 'two').get_json()['automation']['id']

        response = auth_client.post('/admin/automations/reorder', json={'automation_ids': [second, first]})
        assert response.status_code == 200

        names = [a['name'] for a in auth_client.get('/admin/automations').get_json()['automations']]
        assert names == ['two', 'one']

    def test_reorder_rejects_foreign_ids(self, auth_client, test_tenant_2, db_session):
        foreign = _automation(db_session, test_tenant_2, 'theirs', [], [{'type': 'add_tag', 'value': 'x'}])
        mine = self._create(auth_client, 'mine').get_json()['automation']['id']

        response = auth_client.post('/admin/automations/reorder', json={'automation_ids': [mine, foreign.id]})

        assert response.status_code == 404

    def test_toggle_update_delete(self, auth_client, db_session):
        automation_id = self._create(auth_client, 'one').get_json()['automation']['id']

        response = auth_client.post(f'/admin/automations/{automation_id}/toggle')
        assert response.get_json()['is_active'] is False

        response = auth_client.patch(f'/admin/automations/{automation_id}', json={'name': 'renamed'})
        assert response.get_json()['automation']['name'] == 'renamed'

        response = auth_client.delete(f'/admin/automations/{automation_id}')
        assert response.status_code == 200
        assert db_session.get(Automation, automation_id) is None

    def test_foreign_automation_is_denied(self, auth_client, test_tenant_2, db_session):
        foreign = _automation(db_session, test_tenant_2, 'theirs', [], [{'type': 'add_tag', 'value': 'x'}])

        assert auth_client.get(f'/admin/automations/{foreign.id}').status_code == 403

    def test_agents_cannot_manage_automations(self, client, test_tenant, test_agent):
        client.login(test_agent, test_tenant.id)

        assert client.get('/admin/automations').status_code == 403
