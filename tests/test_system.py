import datetime
import os
import time
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.urls import reverse
from django.utils import timezone

from apps.system import backups, health, logs, maintenance, updates

LOG_LINES = """\
[2031-03-01 08:00:00] production.INFO: apps.finance Invoice created: INV-203103-0001
[2031-03-01 09:15:00] production.ERROR: django.request Internal Server Error: /finance/
Traceback (most recent call last):
  File "views.py", line 10, in get
ZeroDivisionError: division by zero
[2031-03-02 10:30:00] production.WARNING: apps.system Backup cleanup removed 2 file(s)
"""


def write_backup(storage, name, age_days=0):
    root = storage / 'backups'
    root.mkdir(exist_ok=True)
    path = root / name
    path.write_text('-- dump\n')
    stamp = time.time() - age_days * 86400
    os.utime(path, (stamp, stamp))
    return path


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------

@pytest.mark.parametrize('size, expected', [
    (0, '0 B'),
    (500, '500 B'),
    (1536, '1.5 KB'),
    (5 * 1024 * 1024, '5 MB'),
])
def test_format_bytes(size, expected):
    assert backups.format_bytes(size) == expected


def test_backup_type_from_filename():
    assert backups.backup_type('backoffice_db_2031-01-01-02-00-00.sql') == 'database'
    assert backups.backup_type('backoffice_full_2031-01-01-02-00-00.zip') == 'full'
    assert backups.backup_type('notes.zip') == 'unknown'


@pytest.mark.django_db
def test_database_backup(storage, curriculum):
    backup = backups.create_backup('db')

    assert backup['type'] == 'database'
    assert backup['age_days'] == 0
    dump = (storage / 'backups' / backup['name']).read_text()
    assert 'CAM-P' in dump
    assert [b['name'] for b in backups.list_backups()] == [backup['name']]


def test_unknown_backup_type(storage):
    with pytest.raises(backups.BackupError):
        backups.create_backup('everything')


def test_backup_path_cannot_escape_backup_root(storage):
    write_backup(storage, 'backoffice_db_2031-01-01-02-00-00.sql')

    with pytest.raises(backups.BackupError):
        backups.get_backup_path('../version.txt')
    with pytest.raises(backups.BackupError):
        backups.get_backup_path('missing.sql')


def test_cleanup_old_backups(storage):
    write_backup(storage, 'backoffice_db_old.sql', age_days=40)
    write_backup(storage, 'backoffice_db_new.sql', age_days=2)

    deleted = backups.cleanup_old_backups(30)

    assert deleted == ['backoffice_db_old.sql']
    assert [b['name'] for b in backups.list_backups()] == ['backoffice_db_new.sql']


def test_backup_stats(storage):
    write_backup(storage, 'backoffice_db_a.sql', age_days=1)
    write_backup(storage, 'backoffice_full_b.zip')

    stats = backups.get_backup_stats()

    assert stats['total'] == 2
    assert stats['latest']['name'] == 'backoffice_full_b.zip'
    assert stats['by_type'] == {'database': 1, 'files': 0, 'full': 1}


def test_backup_settings_are_cached():
    assert backups.get_backup_settings()['retention_days'] == 30

    backups.update_backup_settings(retention_days=7, auto_backup_enabled=True)

    assert backups.get_backup_settings() == {
        'auto_backup_enabled': True,
        'backup_schedule': 'daily',
        'retention_days': 7,
    }
    with pytest.raises(backups.BackupError):
        backups.update_backup_settings(compression='gzip')


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------

def test_parse_log_lines_keeps_tracebacks_with_their_entry():
    entries = logs.parse_log_lines(LOG_LINES.splitlines(keepends=True))

    assert [e['level'] for e in entries] == ['info', 'error', 'warning']
    assert entries[1]['environment'] == 'production'
    assert entries[1]['context'].startswith('Traceback (most recent call last):\n')
    assert 'ZeroDivisionError' in entries[1]['context']
    assert entries[0]['context'] == ''


def test_read_log_filters(storage):
    (storage / 'logs' / 'backoffice.log').write_text(LOG_LINES)

    entries = logs.read_log('backoffice.log')
    assert [e['date'] for e in entries] == ['2031-03-02', '2031-03-01', '2031-03-01']

    assert [e['level'] for e in logs.read_log('backoffice.log', level='ERROR')] == ['error']
    assert len(logs.read_log('backoffice.log', search='zerodivision')) == 1
    assert len(logs.read_log('backoffice.log', date=datetime.date(2031, 3, 1))) == 2


def test_log_files_outside_log_dir_are_refused(storage):
    (storage / 'notes.txt').write_text('secret')

    with pytest.raises(logs.LogFileError):
        logs.read_log('../notes.txt')
    with pytest.raises(logs.LogFileError):
        logs.read_log('missing.log')


def test_clear_and_delete_logs(storage):
    (storage / 'logs' / 'backoffice.log').write_text(LOG_LINES)
    (storage / 'logs' / 'celery.log').write_text(LOG_LINES)

    assert logs.clear_all_logs() == 2
    assert (storage / 'logs' / 'backoffice.log').read_text() == ''

    logs.delete_log('celery.log')
    assert [f['name'] for f in logs.list_log_files()] == ['backoffice.log']


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

def test_maintenance_flag(storage):
    assert maintenance.get_maintenance_info() is None

    maintenance.enable_maintenance(message='Upgrading', allow=['10.0.0.1'], retry=120)

    info = maintenance.get_maintenance_info()
    assert info['message'] == 'Upgrading'
    assert info['allow'] == ['10.0.0.1']
    assert info['retry'] == 120

    maintenance.disable_maintenance()
    assert not maintenance.is_maintenance_mode()

    with pytest.raises(maintenance.MaintenanceError):
        maintenance.disable_maintenance()


def test_negative_retry_is_rejected(storage):
    with pytest.raises(maintenance.MaintenanceError):
        maintenance.enable_maintenance(retry=-1)
    assert not maintenance.is_maintenance_mode()


@pytest.mark.django_db
def test_maintenance_middleware_returns_503(client, storage):
    maintenance.enable_maintenance(message='Back soon', retry=300)

    response = client.get('/')

    assert response.status_code == 503
    assert response['Retry-After'] == '300'
    assert b'Back soon' in response.content


@pytest.mark.django_db
def test_maintenance_middleware_exemptions(client, storage, admin_user):
    maintenance.enable_maintenance(allow=['10.9.8.7'])

    assert client.get(reverse('login')).status_code == 200
    assert client.get('/', REMOTE_ADDR='10.9.8.7').status_code == 302

    client.force_login(admin_user)
    assert client.get(reverse('system:maintenance')).status_code == 200


def test_schedule_maintenance():
    start = timezone.now() + datetime.timedelta(days=1)

    window = maintenance.schedule_maintenance(start, start + datetime.timedelta(hours=2), 'Upgrade')

    assert maintenance.get_scheduled_maintenance() == [window]

    maintenance.cancel_scheduled_maintenance(window['id'])
    assert maintenance.get_scheduled_maintenance() == []

    with pytest.raises(maintenance.MaintenanceError):
        maintenance.cancel_scheduled_maintenance(window['id'])


def test_schedule_maintenance_validation():
    start = timezone.now() + datetime.timedelta(days=1)

    with pytest.raises(maintenance.MaintenanceError):
        maintenance.schedule_maintenance(start, start)
    with pytest.raises(maintenance.MaintenanceError):
        maintenance.schedule_maintenance(
            timezone.now() - datetime.timedelta(hours=1), start
        )


@pytest.mark.django_db
def test_run_maintenance_tasks():
    results = maintenance.run_maintenance_tasks(['clear_cache', 'clear_sessions', 'reboot'])

    assert results['clear_cache']['status'] is True
    assert results['clear_sessions']['sessions_cleared'] == 0
    assert results['reboot'] == {'status': False, 'message': 'Unknown task'}


def test_failing_maintenance_task_is_reported(monkeypatch):
    def broken():
        raise RuntimeError('cache server down')

    monkeypatch.setattr(maintenance, 'clear_cache', broken)

    results = maintenance.run_maintenance_tasks(['clear_cache'])

    assert results['clear_cache'] == {'status': False, 'message': 'cache server down'}


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

def test_parse_version():
    assert updates.parse_version('1.2.3') == (1, 2, 3)
    assert updates.parse_version('2') == (2, 0, 0)
    with pytest.raises(updates.UpdateError):
        updates.parse_version('one.two')


def test_check_for_updates(storage):
    offered = [u['version'] for u in updates.check_for_updates()]

    assert offered == ['1.0.1', '1.1.0', '2.0.0']
    assert updates.get_available_updates() == updates.check_for_updates()


def test_no_major_update_from_version_two(storage):
    (storage / 'version.txt').write_text('2.3.1\n')

    assert [u['type'] for u in updates.check_for_updates()] == ['patch', 'minor']


@pytest.mark.django_db
def test_install_and_roll_back_update(storage, admin_user):
    updates.check_for_updates()

    entry = updates.install_update('1.1.0', user=admin_user)

    assert updates.get_current_version() == '1.1.0'
    assert entry['previous_version'] == '1.0.0'
    assert entry['installed_by'] == 'admin'
    assert '1.1.0' not in [u['version'] for u in updates.get_available_updates()]

    updates.rollback_update(user=admin_user)

    assert updates.get_current_version() == '1.0.0'
    assert updates.get_update_history()[0]['status'] == 'rolled_back'
    with pytest.raises(updates.UpdateError):
        updates.rollback_update()


@pytest.mark.django_db
def test_only_latest_update_can_be_rolled_back(storage, admin_user):
    updates.check_for_updates()
    updates.install_update('1.0.1', user=admin_user)
    updates.install_update('1.1.0', user=admin_user)

    with pytest.raises(updates.UpdateError):
        updates.rollback_update('1.0.1', user=admin_user)
    assert updates.get_current_version() == '1.1.0'

    updates.rollback_update('1.1.0', user=admin_user)
    updates.rollback_update('1.0.1', user=admin_user)

    assert updates.get_current_version() == '1.0.0'
    assert [h['status'] for h in updates.get_update_history()] == ['rolled_back', 'rolled_back']


def test_install_unavailable_update(storage):
    with pytest.raises(updates.UpdateError):
        updates.install_update('9.9.9')
    assert updates.get_current_version() == '1.0.0'


def test_missing_version_file_defaults(settings, tmp_path):
    settings.VERSION_FILE = str(tmp_path / 'absent.txt')

    assert updates.get_current_version() == updates.DEFAULT_VERSION


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@pytest.mark.parametrize('passing, status', [
    (7, 'healthy'),
    (6, 'warning'),
    (5, 'critical'),
    (0, 'critical'),
])
def test_overall_status(passing, status):
    assert health.overall_status(passing, 7) == status


def test_queue_check_passes_when_eager(settings):
    settings.CELERY_TASK_ALWAYS_EAGER = True

    assert health.check_queue()['status'] is True


@pytest.mark.django_db
def test_system_health_report(storage):
    report = health.get_system_health()

    assert report['total'] == len(health.CHECKS)
    assert report['checks']['database']['status'] is True
    assert report['checks']['cache']['status'] is True
    assert report['percentage'] == round(report['passing'] / report['total'] * 100)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_create_backup_task(storage):
    from tasks.system_tasks import create_backup_task

    write_backup(storage, 'backoffice_db_ancient.sql', age_days=90)

    result = create_backup_task.delay('db').get()

    assert result['success'] is True
    assert result['cleaned'] == 1
    assert [b['name'] for b in backups.list_backups()] == [result['backup']]


def test_scheduled_backup_respects_switch(storage):
    from tasks.system_tasks import scheduled_backup_task

    assert scheduled_backup_task.delay().get()['skipped'] is True


def test_default_cache_is_shared_between_processes():
    from backoffice import settings as project_settings

    backend = project_settings.CACHES['default']['BACKEND']

    assert backend == 'django.core.cache.backends.redis.RedisCache'


def test_system_alert_goes_to_admins(settings, mailoutbox):
    from tasks.system_tasks import send_system_alert_task

    settings.ADMINS = [('Admin', 'ops@school.test')]

    result = send_system_alert_task.delay('backup_failed', error='disk full').get()

    assert result['success'] is True
    assert mailoutbox[0].to == ['ops@school.test']
    assert 'disk full' in mailoutbox[0].body


def test_system_alert_without_admins(settings, mailoutbox):
    from tasks.system_tasks import send_system_alert_task

    settings.ADMINS = []

    result = send_system_alert_task.delay('backup_failed').get()

    assert result['reason'] == 'no_admin_emails'
    assert mailoutbox == []


# ---------------------------------------------------------------------------
# Management commands
# ---------------------------------------------------------------------------

def test_maintenance_command(storage):
    out = StringIO()

    call_command('maintenance', 'on', '--message', 'Upgrading', '--retry', '60', stdout=out)
    assert maintenance.get_maintenance_info()['retry'] == 60

    call_command('maintenance', 'status', stdout=out)
    assert 'Message: Upgrading' in out.getvalue()

    call_command('maintenance', 'off', stdout=out)
    with pytest.raises(CommandError):
        call_command('maintenance', 'off', stdout=out)


@pytest.mark.django_db
def test_backup_command(storage):
    out = StringIO()

    call_command('backup', '--type', 'db', stdout=out)

    assert 'Backup created' in out.getvalue()
    assert backups.get_backup_stats()['by_type']['database'] == 1


@pytest.mark.django_db
def test_system_health_command(storage):
    out = StringIO()

    call_command('system_health', stdout=out)

    assert 'Status:' in out.getvalue()


# ---------------------------------------------------------------------------
# Console views
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_system_console_is_admin_only(client, teacher_user):
    client.force_login(teacher_user)

    response = client.get(reverse('system:dashboard'))

    assert response.status_code == 302
    assert response.url == reverse('home')


@pytest.mark.django_db
def test_maintenance_view_toggles_flag(client, storage, admin_user):
    client.force_login(admin_user)

    client.post(reverse('system:maintenance'), {'action': 'enable', 'message': 'Patching', 'allow': ''})
    assert maintenance.get_maintenance_info()['message'] == 'Patching'

    client.post(reverse('system:maintenance'), {'action': 'disable'})
    assert not maintenance.is_maintenance_mode()


@pytest.mark.django_db
def test_health_endpoint(client, storage, admin_user):
    client.force_login(admin_user)

    response = client.get(reverse('system:health'))

    assert response.status_code in (200, 503)
    assert set(response.json()['checks']) == set(health.CHECKS)
