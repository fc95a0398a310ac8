"""
System health checks used by the console, the JSON endpoint and the
system_health management command
"""
import importlib
import logging
import os
import uuid

import redis
from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connection

from tasks.config import TASK_CONFIG

logger = logging.getLogger(__name__)

LARGE_LOG_BYTES = 100 * 1024 * 1024

REQUIRED_MODULES = ['django', 'celery', 'redis', 'widget_tweaks', 'formtools', 'PIL']


def check_database():
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError as e:
        return {'status': False, 'message': "Database connection failed", 'error': str(e)}

    return {
        'status': True,
        'message': f"Connected ({connection.vendor})",
        'details': {'vendor': connection.vendor, 'name': str(connection.settings_dict['NAME'])},
    }


def check_cache():
    key = f"system_health_test_{uuid.uuid4().hex}"
    cache.set(key, 'test_value', 60)
    working = cache.get(key) == 'test_value'
    cache.delete(key)

    return {
        'status': working,
        'message': "Cache is working" if working else "Cache test failed",
        'details': {'backend': settings.CACHES['default']['BACKEND']},
    }


def _storage_paths():
    return {
        'storage': settings.STORAGE_DIR,
        'logs': settings.LOG_DIR,
        'backups': settings.BACKUP_ROOT,
        'media': settings.MEDIA_ROOT,
    }


def check_storage():
    issues = []
    for name, path in _storage_paths().items():
        if not os.path.exists(path):
            issues.append(f"{name} directory does not exist")
        elif not os.access(path, os.W_OK):
            issues.append(f"{name} directory is not writable")

    return {
        'status': not issues,
        'message': "All storage paths are writable" if not issues else "Storage issues detected",
        'issues': issues,
    }


def check_permissions():
    issues = []
    paths = [
        os.path.dirname(settings.VERSION_FILE),
        os.path.dirname(settings.MAINTENANCE_FLAG_FILE),
        settings.LOG_DIR,
    ]
    for path in paths:
        test_file = os.path.join(path, f"permission_test_{uuid.uuid4().hex}.tmp")
        try:
            with open(test_file, 'w') as fh:
                fh.write('test')
            os.remove(test_file)
        except OSError:
            issues.append(f"Cannot write to {path}")

    return {
        'status': not issues,
        'message': "File permissions are correct" if not issues else "Permission issues detected",
        'issues': issues,
    }


def check_queue():
    if getattr(settings, 'CELERY_TASK_ALWAYS_EAGER', False):
        return {'status': True, 'message': "Tasks run eagerly", 'details': {'eager': True}}

    try:
        client = redis.from_url(TASK_CONFIG['BROKER_URL'])
        client.ping()
        waiting = client.llen(TASK_CONFIG['DEFAULT_QUEUE'])
    except redis.RedisError as e:
        return {'status': False, 'message': "Queue broker is unreachable", 'error': str(e)}

    return {
        'status': True,
        'message': "Queue broker is reachable",
        'details': {'waiting': waiting},
    }


def check_logs():
    issues = []
    log_dir = settings.LOG_DIR

    if not os.path.isdir(log_dir):
        issues.append("Logs directory does not exist")
    elif not os.access(log_dir, os.W_OK):
        issues.append("Logs directory is not writable")
    else:
        large_files = [
            entry.name for entry in os.scandir(log_dir)
            if entry.is_file() and entry.stat().st_size > LARGE_LOG_BYTES
        ]
        if large_files:
            issues.append(f"Large log files detected: {', '.join(large_files)}")

    return {
        'status': not issues,
        'message': "Logging system is healthy" if not issues else "Logging issues detected",
        'issues': issues,
    }


def check_dependencies():
    issues = []
    for module in REQUIRED_MODULES:
        try:
            importlib.import_module(module)
        except ImportError:
            issues.append(f"Required package missing: {module}")

    if not settings.SECRET_KEY:
        issues.append("SECRET_KEY is not set")

    return {
        'status': not issues,
        'message': "All dependencies are satisfied" if not issues else "Dependency issues detected",
        'issues': issues,
    }


CHECKS = {
    'database': check_database,
    'cache': check_cache,
    'storage': check_storage,
    'queue': check_queue,
    'logs': check_logs,
    'permissions': check_permissions,
    'dependencies': check_dependencies,
}


def overall_status(passing, total):
    if passing == total:
        return 'healthy'
    if passing >= total * 0.8:
        return 'warning'
    return 'critical'


def get_system_health():
    checks = {name: check() for name, check in CHECKS.items()}
    passing = sum(1 for result in checks.values() if result['status'])
    total = len(checks)

    status = overall_status(passing, total)
    if status != 'healthy':
        failed = [name for name, result in checks.items() if not result['status']]
        logger.warning(f"System health {status}: failing checks {', '.join(failed)}")

    return {
        'checks': checks,
        'passing': passing,
        'total': total,
        'percentage': round(passing / total * 100) if total else 0,
        'status': status,
    }
