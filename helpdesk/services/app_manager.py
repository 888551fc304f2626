"""
App Manager Service
Handles installing, enabling and configuring registry apps per workspace
"""
from helpdesk import db
from helpdesk.models.installed_app import InstalledApp
from helpdesk.services import app_registry


def _require_registered(app_id):
    manifest = app_registry.get_app(app_id)
    if not manifest:
        raise ValueError("App not found")
    return manifest


def _get_installed(tenant_id, app_id):
    return InstalledApp.query.filter_by(tenant_id=tenant_id, app_id=app_id).first()


def install_app(tenant_id, app_id, installed_by_id=None, config=None):
    """
    Install an app for a workspace. Installing an installed app returns
    the existing record unchanged.

    Args:
        tenant_id: ID of the tenant/workspace
        app_id: Registry id of the app
        installed_by_id: Installing user
        config: Optional initial config dict

    Returns:
        InstalledApp
    """
    _require_registered(app_id)

    installed = _get_installed(tenant_id, app_id)
    if installed:
        return installed

    installed = InstalledApp(
        tenant_id=tenant_id,
        app_id=app_id,
        is_enabled=True,
        installed_by_id=installed_by_id
    )
    installed.set_config(config)
    db.session.add(installed)
    db.session.commit()
    return installed


def uninstall_app(tenant_id, app_id):
    """
    Remove an app and its config from a workspace

    Returns:
        Boolean indicating whether anything was removed
    """
    installed = _get_installed(tenant_id, app_id)
    if not installed:
        return False

    db.session.delete(installed)
    db.session.commit()
    return True


def set_app_enabled(tenant_id, app_id, enabled):
    """
    Enable or disable an installed app
    Note: Disabling hides the app but preserves its config

    Raises:
        ValueError: If the app is not installed
    """
    installed = _get_installed(tenant_id, app_id)
    if not installed:
        raise ValueError("App is not installed")

    installed.is_enabled = enabled
    db.session.commit()
    return installed


def update_app_config(tenant_id, app_id, config):
    installed = _get_installed(tenant_id, app_id)
    if not installed:
        raise ValueError("App is not installed")
    if not isinstance(config, dict):
        raise ValueError("Config must be an object")

    installed.set_config(config)
    db.session.commit()
    return installed


def get_installed_apps(tenant_id, enabled_only=False):
    query = InstalledApp.query.filter_by(tenant_id=tenant_id)
    if enabled_only:
        query = query.filter_by(is_enabled=True)
    return query.order_by(InstalledApp.installed_at.asc()).all()


def app_with_status(manifest, installed=None):
    """Registry manifest merged with a workspace's install state"""
    return dict(
        manifest,
        is_installed=installed is not None,
        is_enabled=installed.is_enabled if installed else False,
        config=installed.get_config() if installed else {},
        installed_at=installed.installed_at.isoformat() if installed else None
    )


def get_app_status(tenant_id):
    """
    Get every registry app with its install state for a workspace

    Returns:
        List of manifest dicts with is_installed, is_enabled and config
    """
    installed = {app.app_id: app for app in get_installed_apps(tenant_id)}
    return [app_with_status(manifest, installed.get(manifest['id'])) for manifest in app_registry.get_all_apps()]


def get_slot_apps(tenant_id, slot):
    """
    Apps filling a UI slot that are installed and enabled for the workspace

    Raises:
        ValueError: If the slot name is unknown
    """
    if slot not in app_registry.SLOTS:
        raise ValueError(f"Unknown slot: {slot}")

    enabled = {app.app_id: app for app in get_installed_apps(tenant_id, enabled_only=True)}
    return [
        app_with_status(manifest, enabled[manifest['id']])
        for manifest in app_registry.get_apps_for_slot(slot)
        if manifest['id'] in enabled
    ]
