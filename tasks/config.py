"""
Broker and worker settings for the back-office task runner.

Read from the environment only; this module is imported by
backoffice.settings before Django is configured.
"""
import logging
import os

logger = logging.getLogger(__name__)


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


ENV_TYPE = os.environ.get('ENV_TYPE', 'STANDARD').upper()

BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/1')

# Queue the health check measures
DEFAULT_QUEUE = os.environ.get('CELERY_DEFAULT_QUEUE', 'celery')

TASK_CONFIG = {
    'ENV_TYPE': ENV_TYPE,
    'BROKER_URL': BROKER_URL,
    'RESULT_BACKEND': RESULT_BACKEND,
    'DEFAULT_QUEUE': DEFAULT_QUEUE,
    # tests and single-process installs run tasks inline
    'ALWAYS_EAGER': _env_flag('CELERY_ALWAYS_EAGER'),
    'TASK_TRACK_STARTED': True,
    'TASK_TIME_LIMIT': int(os.environ.get('CELERY_TASK_TIME_LIMIT', 30 * 60)),
    'WORKER_CONCURRENCY': int(os.environ.get('CELERY_WORKER_CONCURRENCY', 4)),
    'TASK_SERIALIZER': 'json',
    'RESULT_SERIALIZER': 'json',
    'ACCEPT_CONTENT': ['json'],
    'TIMEZONE': 'UTC',
}

logger.debug("Task broker %s (%s), results in %s", BROKER_URL, ENV_TYPE, RESULT_BACKEND)
