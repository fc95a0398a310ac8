"""
Maintenance mode flag, scheduled windows and housekeeping tasks
"""
import json
import logging
import os
import uuid

from django.conf import settings
from django.contrib.sessions.models import Session
from django.core.cache import cache
from django.db import connection
from django.utils import timezone

from . import logs

logger = logging.getLogger(__name__)

SCHEDULE_CACHE_KEY = 'system:maintenance_schedule'

MAINTENANCE_TASKS = ['clear_cache', 'clear_sessions', 'clear_logs', 'optimize_db', 'purge_queue']


class MaintenanceError(Exception):
    pass


def flag_file():
    return settings.MAINTENANCE_FLAG_FILE


def is_maintenance_mode():
    return os.path.isfile(flag_file())


def get_maintenance_info():
    """Contents of the flag file, or None when the site is up"""
    if not is_maintenance_mode():
        return None

    try:
        with open(flag_file(), encoding='utf8') as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        logger.warning(f"Unreadable maintenance flag file: {e}")
        data = {}

    return {
        'message': data.get('message'),
        'allow': data.get('allow') or [],
        'time': data.get('time'),
        'retry': data.get('retry'),
    }


def enable_maintenance(message=None, allow=None, retry=None):
    if retry is not None and retry < 0:
        raise MaintenanceError("Retry-After must be a positive number of seconds")

    data = {
        'message': message,
        'allow': list(allow or []),
        'time': int(timezone.now().timestamp()),
        'retry': retry,
    }
    os.makedirs(os.path.dirname(flag_file()), exist_ok=True)
    with open(flag_file(), 'w', encoding='utf8') as fh:
        json.dump(data, fh)

    logger.warning(f"Maintenance mode enabled: {message or 'no message'}")
    return data


def disable_maintenance():
    if not is_maintenance_mode():
        raise MaintenanceError("The application is not in maintenance mode")

    os.remove(flag_file())
    logger.warning("Maintenance mode disabled")


# ---------------------------------------------------------------------------
# Scheduled windows
# ---------------------------------------------------------------------------

def get_scheduled_maintenance():
    return cache.get(SCHEDULE_CACHE_KEY) or []


def schedule_maintenance(start, end, message=''):
    if end <= start:
        raise MaintenanceError("The maintenance window must end after it starts")
    if start < timezone.now():
        raise MaintenanceError("The maintenance window cannot start in the past")

    window = {
        'id': uuid.uuid4().hex,
        'start': start,
        'end': end,
        'message': message,
        'created_at': timezone.now(),
    }
    schedule = get_scheduled_maintenance()
    schedule.append(window)
    schedule.sort(key=lambda w: w['start'])
    cache.set(SCHEDULE_CACHE_KEY, schedule, None)

    logger.info(f"Maintenance scheduled from {start} to {end}")
    return window


def cancel_scheduled_maintenance(window_id):
    schedule = get_scheduled_maintenance()
    remaining = [w for w in schedule if w['id'] != window_id]
    if len(remaining) == len(schedule):
        raise MaintenanceError("Scheduled maintenance not found")

    cache.set(SCHEDULE_CACHE_KEY, remaining, None)


# ---------------------------------------------------------------------------
# Housekeeping tasks
# ---------------------------------------------------------------------------

def clear_cache():
    cache.clear()
    return {'status': True, 'message': "All caches cleared successfully"}


def clear_sessions():
    count, _ = Session.objects.all().delete()
    return {'status': True, 'message': f"Cleared {count} sessions", 'sessions_cleared': count}


def clear_logs():
    cleared = logs.clear_all_logs()
    return {'status': True, 'message': f"Cleared {cleared} log files", 'files_cleared': cleared}


def optimize_database():
    vendor = connection.vendor
    tables = connection.introspection.table_names()

    with connection.cursor() as cursor:
        if vendor == 'mysql':
            for table in tables:
                cursor.execute(f"OPTIMIZE TABLE `{table}`")
        elif vendor == 'postgresql':
            cursor.execute("ANALYZE")
        elif vendor == 'sqlite':
            cursor.execute("PRAGMA optimize")
        else:
            return {'status': False, 'message': f"Optimization is not supported for {vendor}"}

    return {
        'status': True,
        'message': f"Optimized {len(tables)} database tables",
        'tables_optimized': len(tables),
    }


def purge_queue():
    from celery_app import app

    purged = app.control.purge()
    return {'status': True, 'message': f"Purged {purged} queued tasks", 'tasks_purged': purged}


def run_maintenance_tasks(tasks):
    """
    Run the named housekeeping tasks

    Returns: dict of task name -> {'status': bool, 'message': str, ...}
    """
    handlers = {
        'clear_cache': clear_cache,
        'clear_sessions': clear_sessions,
        'clear_logs': clear_logs,
        'optimize_db': optimize_database,
        'purge_queue': purge_queue,
    }

    results = {}
    for task in tasks:
        handler = handlers.get(task)
        if handler is None:
            results[task] = {'status': False, 'message': "Unknown task"}
            continue

        try:
            results[task] = handler()
        except Exception as e:
            logger.exception(f"Maintenance task {task} failed")
            results[task] = {'status': False, 'message': str(e)}
        else:
            logger.info(f"Maintenance task {task}: {results[task]['message']}")

    return results
