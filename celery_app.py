"""
Celery application for the back office.

Named celery_app.py so it does not shadow the celery package.
"""
import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backoffice.settings')

app = Celery('backoffice_background_tasks')

# CELERY_* Django settings, see tasks/config.py
app.config_from_object('django.conf:settings', namespace='CELERY')

# Task modules live in the top-level ``tasks`` package.
app.autodiscover_tasks(['tasks'], related_name='system_tasks')
app.autodiscover_tasks(['tasks'], related_name='finance_tasks')

app.conf.beat_schedule = {
    # honours the auto-backup switch in the backup settings
    'scheduled-backup': {
        'task': 'system.scheduled_backup',
        'schedule': crontab(hour=2, minute=0),
    },
    'cleanup-old-backups': {
        'task': 'system.cleanup_old_backups',
        'schedule': crontab(hour=3, minute=30),
    },
    'system-health-check': {
        'task': 'system.health_check',
        'schedule': crontab(minute=0),
    },
}
