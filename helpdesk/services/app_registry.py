"""
App Registry
Static in-memory catalogue of the apps a workspace can install. Each app
declares the UI slots it fills; apps register when this module is imported.
"""

SLOTS = [
    'ticket-detail-sidebar',
    'ticket-toolbar',
    'compose-toolbar',
    'dashboard-widget',
    'settings-menu',
    'contact-sidebar',
]

CATEGORIES = ['ai', 'productivity', 'integrations', 'customization', 'reporting', 'feedback', 'self-service']

APP_REGISTRY = {}


def register_app(manifest):
    """
    Add an app manifest to the registry (replaces an existing id)

    Args:
        manifest: Dict with id, name, description, icon, version, category,
            is_premium, monthly_price, slots, permissions
    """
    unknown = [slot for slot in manifest['slots'] if slot not in SLOTS]
    if unknown:
        raise ValueError(f"Unknown slots for {manifest['id']}: {', '.join(unknown)}")
    if manifest['category'] not in CATEGORIES:
        raise ValueError(f"Unknown category for {manifest['id']}: {manifest['category']}")

    APP_REGISTRY[manifest['id']] = manifest
    return manifest


def get_app(app_id):
    return APP_REGISTRY.get(app_id)


def get_all_apps():
    return list(APP_REGISTRY.values())


def get_apps_for_slot(slot):
    return [app for app in APP_REGISTRY.values() if slot in app['slots']]


# ========== BUILT-IN APPS ==========

register_app({
    'id': 'ai-assist',
    'name': 'AI Assist',
    'description': 'Claude-powered ticket summaries and suggested replies',
    'icon': '🤖',
    'version': '1.0.0',
    'category': 'ai',
    'is_premium': True,
    'monthly_price': 10,
    'slots': ['ticket-detail-sidebar', 'compose-toolbar'],
    'permissions': ['read:tickets', 'write:tickets'],
})

register_app({
    'id': 'quick-notes',
    'name': 'Quick Notes',
    'description': 'A simple scratchpad for agents to jot down quick notes while working on tickets',
    'icon': '📝',
    'version': '1.0.0',
    'category': 'productivity',
    'is_premium': False,
    'monthly_price': 0,
    'slots': ['ticket-detail-sidebar'],
    'permissions': ['read:tickets'],
})

register_app({
    'id': 'slack-integration',
    'name': 'Slack',
    'description': 'Send ticket notifications to Slack channels and create tickets from Slack messages',
    'icon': '💬',
    'version': '2.1.0',
    'category': 'integrations',
    'is_premium': False,
    'monthly_price': 0,
    'slots': ['settings-menu'],
    'permissions': ['read:tickets', 'notifications'],
})

register_app({
    'id': 'time-tracker',
    'name': 'Time Tracker',
    'description': 'Track time spent on tickets with one-click timers and detailed reports',
    'icon': '⏱️',
    'version': '1.3.0',
    'category': 'productivity',
    'is_premium': True,
    'monthly_price': 5,
    'slots': ['ticket-toolbar', 'ticket-detail-sidebar'],
    'permissions': ['read:tickets', 'write:time-entries'],
})

register_app({
    'id': 'csat-survey',
    'name': 'CSAT Surveys',
    'description': 'Automatically send customer satisfaction surveys after ticket resolution',
    'icon': '⭐',
    'version': '1.0.0',
    'category': 'feedback',
    'is_premium': False,
    'monthly_price': 0,
    'slots': ['dashboard-widget', 'settings-menu'],
    'permissions': ['read:tickets', 'send:emails'],
})

register_app({
    'id': 'ticket-insights',
    'name': 'Ticket Insights',
    'description': 'AI-powered analytics showing ticket trends, sentiment analysis, and predictions',
    'icon': '📊',
    'version': '1.5.0',
    'category': 'reporting',
    'is_premium': True,
    'monthly_price': 15,
    'slots': ['dashboard-widget', 'ticket-detail-sidebar'],
    'permissions': ['read:tickets', 'read:analytics'],
})

register_app({
    'id': 'knowledge-suggester',
    'name': 'Knowledge Suggester',
    'description': 'Automatically suggest relevant knowledge base articles based on ticket content',
    'icon': '📚',
    'version': '1.2.0',
    'category': 'self-service',
    'is_premium': False,
    'monthly_price': 0,
    'slots': ['ticket-detail-sidebar'],
    'permissions': ['read:tickets', 'read:knowledge-base'],
})

register_app({
    'id': 'custom-fields',
    'name': 'Custom Fields',
    'description': 'Add custom fields to tickets, contacts, and companies with advanced field types',
    'icon': '🏷️',
    'version': '2.0.0',
    'category': 'customization',
    'is_premium': True,
    'monthly_price': 8,
    'slots': ['ticket-detail-sidebar', 'contact-sidebar', 'settings-menu'],
    'permissions': ['write:custom-fields', 'read:tickets'],
})

register_app({
    'id': 'auto-assign',
    'name': 'Auto Assign',
    'description': 'Automatically assign tickets based on rules, workload, and agent skills',
    'icon': '🎯',
    'version': '1.1.0',
    'category': 'productivity',
    'is_premium': False,
    'monthly_price': 0,
    'slots': ['settings-menu'],
    'permissions': ['write:tickets', 'read:agents'],
})

register_app({
    'id': 'sla-monitor',
    'name': 'SLA Monitor',
    'description': 'Real-time SLA breach alerts and compliance tracking with escalation workflows',
    'icon': '⏰',
    'version': '1.4.0',
    'category': 'reporting',
    'is_premium': True,
    'monthly_price': 10,
    'slots': ['dashboard-widget', 'ticket-toolbar'],
    'permissions': ['read:tickets', 'read:sla', 'notifications'],
})

register_app({
    'id': 'merge-tickets',
    'name': 'Merge Tickets',
    'description': 'Easily merge duplicate tickets and link related issues together',
    'icon': '🔗',
    'version': '1.0.0',
    'category': 'productivity',
    'is_premium': False,
    'monthly_price': 0,
    'slots': ['ticket-toolbar'],
    'permissions': ['write:tickets', 'read:tickets'],
})

register_app({
    'id': 'zendesk-import',
    'name': 'Zendesk Importer',
    'description': 'One-click migration from Zendesk including tickets, users, and knowledge base',
    'icon': '📥',
    'version': '1.0.0',
    'category': 'integrations',
    'is_premium': True,
    'monthly_price': 25,
    'slots': ['settings-menu'],
    'permissions': ['write:tickets', 'write:contacts', 'write:knowledge-base'],
})
