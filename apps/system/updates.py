"""
Application version tracking with a simulated update feed
"""
import logging
import os
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

logger = logging.getLogger(__name__)

DEFAULT_VERSION = '1.0.0'

SETTINGS_CACHE_KEY = 'system:update_settings'
HISTORY_CACHE_KEY = 'system:update_history'
AVAILABLE_CACHE_KEY = 'system:available_updates'

DEFAULT_SETTINGS = {
    'auto_update_enabled': False,
    'update_channel': 'stable',
}


class UpdateError(Exception):
    pass


def get_current_version():
    path = getattr(settings, 'VERSION_FILE', None)
    if path and os.path.isfile(path):
        with open(path, encoding='utf8') as fh:
            version = fh.read().strip()
        if version:
            return version
    return DEFAULT_VERSION


def _write_version(version):
    with open(settings.VERSION_FILE, 'w', encoding='utf8') as fh:
        fh.write(f"{version}\n")


def parse_version(version):
    parts = version.split('.')
    try:
        numbers = [int(part) for part in parts[:3]]
    except ValueError:
        raise UpdateError(f"Invalid version: {version}")
    return tuple(numbers + [0] * (3 - len(numbers)))


def check_for_updates():
    """
    Updates offered for the current version

    The feed is simulated: a patch and a minor release are always offered,
    a major release only while the major version is below 2.
    """
    major, minor, patch = parse_version(get_current_version())
    today = timezone.localdate()

    updates = [
        {
            'version': f"{major}.{minor}.{patch + 1}",
            'type': 'patch',
            'size': '2.5 MB',
            'released_at': today - timedelta(days=5),
            'description': "Bug fixes and security improvements",
        },
        {
            'version': f"{major}.{minor + 1}.0",
            'type': 'minor',
            'size': '15.8 MB',
            'released_at': today - timedelta(days=15),
            'description': "New features and improvements",
        },
    ]
    if major < 2:
        updates.append({
            'version': f"{major + 1}.0.0",
            'type': 'major',
            'size': '45.2 MB',
            'released_at': today - timedelta(days=30),
            'description': "Major version with breaking changes",
        })

    cache.set(AVAILABLE_CACHE_KEY, updates, None)
    return updates


def get_available_updates():
    return cache.get(AVAILABLE_CACHE_KEY) or []


def get_update_history():
    return cache.get(HISTORY_CACHE_KEY) or []


def install_update(version, user=None):
    available = get_available_updates()
    update = next((u for u in available if u['version'] == version), None)
    if update is None:
        raise UpdateError(f"Update {version} is not available")

    previous_version = get_current_version()
    _write_version(version)

    entry = {
        'version': version,
        'type': update['type'],
        'installed_at': timezone.now(),
        'installed_by': user.get_username() if user is not None else None,
        'status': 'success',
        'previous_version': previous_version,
    }
    history = get_update_history()
    history.insert(0, entry)
    cache.set(HISTORY_CACHE_KEY, history, None)
    cache.set(AVAILABLE_CACHE_KEY, [u for u in available if u['version'] != version], None)

    logger.info(f"Updated from {previous_version} to {version}")
    return entry


def rollback_update(version=None, user=None):
    """
    Revert the latest successful update

    Updates are undone newest first; naming an older version is refused
    while a later install is still in place.
    """
    history = get_update_history()
    entry = next((h for h in history if h['status'] == 'success'), None)
    if entry is None:
        raise UpdateError("There is no installed update to roll back")
    if version is not None and entry['version'] != version:
        raise UpdateError(
            f"Only the latest update ({entry['version']}) can be rolled back, not {version}"
        )

    _write_version(entry['previous_version'])
    entry['status'] = 'rolled_back'
    entry['rolled_back_at'] = timezone.now()
    entry['rolled_back_by'] = user.get_username() if user is not None else None
    cache.set(HISTORY_CACHE_KEY, history, None)

    logger.warning(f"Rolled back {entry['version']} to {entry['previous_version']}")
    return entry


def get_update_settings():
    return {**DEFAULT_SETTINGS, **(cache.get(SETTINGS_CACHE_KEY) or {})}


def update_update_settings(**changes):
    unknown = set(changes) - set(DEFAULT_SETTINGS)
    if unknown:
        raise UpdateError(f"Unknown update settings: {', '.join(sorted(unknown))}")

    current = get_update_settings()
    current.update(changes)
    cache.set(SETTINGS_CACHE_KEY, current, None)
    return current
