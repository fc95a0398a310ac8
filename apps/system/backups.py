"""
Database and file backups kept under settings.BACKUP_ROOT
"""
import logging
import os
import subprocess
import zipfile
from datetime import datetime, timezone as dt_timezone

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from django.utils import timezone

logger = logging.getLogger(__name__)

SETTINGS_CACHE_KEY = 'system:backup_settings'

DEFAULT_SETTINGS = {
    'auto_backup_enabled': False,
    'backup_schedule': 'daily',
    'retention_days': 30,
}

BACKUP_TYPES = (
    ('_db_', 'database'),
    ('_files_', 'files'),
    ('_full_', 'full'),
)

SKIPPED_DIRS = {'__pycache__', '.git', 'node_modules'}


class BackupError(Exception):
    pass


def format_bytes(size, precision=2):
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    size = float(size)
    index = 0
    while size > 1024 and index < len(units) - 1:
        size /= 1024
        index += 1
    return f"{round(size, precision):g} {units[index]}"


def backup_root():
    root = settings.BACKUP_ROOT
    os.makedirs(root, exist_ok=True)
    return root


def _backup_filename(kind, extension):
    name = getattr(settings, 'BACKUP_NAME', 'backoffice')
    stamp = timezone.localtime().strftime('%Y-%m-%d-%H-%M-%S')
    return f"{name}_{kind}_{stamp}.{extension}"


def backup_type(filename):
    for marker, kind in BACKUP_TYPES:
        if marker in filename:
            return kind
    return 'unknown'


# ---------------------------------------------------------------------------
# Creating backups
# ---------------------------------------------------------------------------

def _dump_database(path):
    db = connection.settings_dict
    vendor = connection.vendor

    if vendor == 'sqlite':
        connection.ensure_connection()
        with open(path, 'w', encoding='utf8') as fh:
            for line in connection.connection.iterdump():
                fh.write(f"{line}\n")
        return

    env = os.environ.copy()
    if vendor == 'mysql':
        command = [
            'mysqldump', '--single-transaction', '--routines', '--triggers',
            f"--user={db['USER']}",
        ]
        if db.get('HOST'):
            command.append(f"--host={db['HOST']}")
        if db.get('PORT'):
            command.append(f"--port={db['PORT']}")
        command.append(db['NAME'])
        env['MYSQL_PWD'] = db.get('PASSWORD') or ''
    elif vendor == 'postgresql':
        command = ['pg_dump', '--no-owner']
        if db.get('HOST'):
            command += ['--host', db['HOST']]
        if db.get('PORT'):
            command += ['--port', str(db['PORT'])]
        if db.get('USER'):
            command += ['--username', db['USER']]
        command.append(db['NAME'])
        env['PGPASSWORD'] = db.get('PASSWORD') or ''
    else:
        raise BackupError(f"Database backups are not supported for {vendor}")

    with open(path, 'w', encoding='utf8') as fh:
        subprocess.run(command, stdout=fh, stderr=subprocess.PIPE, env=env, check=True, text=True)


def _add_directory(archive, directory, arcname):
    skipped = {os.path.realpath(backup_root())}
    for current, dirs, files in os.walk(directory):
        dirs[:] = [
            d for d in dirs
            if d not in SKIPPED_DIRS and os.path.realpath(os.path.join(current, d)) not in skipped
        ]
        for filename in files:
            full_path = os.path.join(current, filename)
            relative = os.path.relpath(full_path, directory)
            archive.write(full_path, os.path.join(arcname, relative))


def _write_files_archive(archive, include_media=True, include_logs=False):
    for source in getattr(settings, 'BACKUP_SOURCE_DIRS', []):
        path = os.path.join(settings.BASE_DIR, source)
        if os.path.isdir(path):
            _add_directory(archive, path, source)

    if include_media and os.path.isdir(settings.MEDIA_ROOT):
        _add_directory(archive, settings.MEDIA_ROOT, 'media')

    if include_logs and os.path.isdir(settings.LOG_DIR):
        _add_directory(archive, settings.LOG_DIR, 'logs')


def create_database_backup():
    """
    Dump the default database to {name}_db_{timestamp}.sql

    Returns: backup info dict
    Raises: BackupError if the dump fails
    """
    path = os.path.join(backup_root(), _backup_filename('db', 'sql'))
    try:
        _dump_database(path)
    except (OSError, subprocess.CalledProcessError) as e:
        if os.path.exists(path):
            os.remove(path)
        detail = getattr(e, 'stderr', None) or str(e)
        logger.error(f"Database backup failed: {detail}")
        raise BackupError(f"Database backup failed: {detail}") from e

    logger.info(f"Database backup created: {os.path.basename(path)}")
    return get_backup_info(os.path.basename(path))


def create_files_backup(include_media=True, include_logs=False):
    """Zip the source directories (and optionally uploads and logs)"""
    path = os.path.join(backup_root(), _backup_filename('files', 'zip'))
    try:
        with zipfile.ZipFile(path, 'w', zipfile.ZIP_DEFLATED) as archive:
            _write_files_archive(archive, include_media=include_media, include_logs=include_logs)
    except OSError as e:
        if os.path.exists(path):
            os.remove(path)
        logger.error(f"Files backup failed: {e}")
        raise BackupError(f"Files backup failed: {e}") from e

    logger.info(f"Files backup created: {os.path.basename(path)}")
    return get_backup_info(os.path.basename(path))


def create_full_backup(include_logs=False):
    """Database dump and files in a single archive"""
    path = os.path.join(backup_root(), _backup_filename('full', 'zip'))
    dump_path = f"{path}.sql.tmp"
    try:
        _dump_database(dump_path)
        with zipfile.ZipFile(path, 'w', zipfile.ZIP_DEFLATED) as archive:
            archive.write(dump_path, 'database.sql')
            _write_files_archive(archive, include_media=True, include_logs=include_logs)
    except (OSError, subprocess.CalledProcessError) as e:
        if os.path.exists(path):
            os.remove(path)
        logger.error(f"Full backup failed: {e}")
        raise BackupError(f"Full backup failed: {e}") from e
    finally:
        if os.path.exists(dump_path):
            os.remove(dump_path)

    logger.info(f"Full backup created: {os.path.basename(path)}")
    return get_backup_info(os.path.basename(path))


def create_backup(kind='full', include_logs=False):
    creators = {
        'db': create_database_backup,
        'files': lambda: create_files_backup(include_logs=include_logs),
        'full': lambda: create_full_backup(include_logs=include_logs),
    }
    if kind not in creators:
        raise BackupError(f"Unknown backup type: {kind}")
    return creators[kind]()


# ---------------------------------------------------------------------------
# Listing and housekeeping
# ---------------------------------------------------------------------------

def get_backup_path(filename):
    """Absolute path of a backup file; refuses anything outside the backup root"""
    root = os.path.realpath(backup_root())
    path = os.path.realpath(os.path.join(root, filename))
    if os.path.dirname(path) != root or not os.path.isfile(path):
        raise BackupError(f"Backup not found: {filename}")
    return path


def get_backup_info(filename):
    path = get_backup_path(filename)
    stat = os.stat(path)
    created = datetime.fromtimestamp(stat.st_mtime, tz=dt_timezone.utc)
    return {
        'name': filename,
        'type': backup_type(filename),
        'size': stat.st_size,
        'size_human': format_bytes(stat.st_size),
        'created_at': created,
        'age_days': (timezone.now() - created).days,
    }


def list_backups():
    """Backups newest first"""
    backups = [
        get_backup_info(entry.name)
        for entry in os.scandir(backup_root())
        if entry.is_file() and entry.name.endswith(('.sql', '.zip'))
    ]
    return sorted(backups, key=lambda b: b['created_at'], reverse=True)


def get_backup_stats(backups=None):
    backups = list_backups() if backups is None else backups
    total_size = sum(b['size'] for b in backups)
    by_type = {kind: 0 for _, kind in BACKUP_TYPES}
    for backup in backups:
        by_type[backup['type']] = by_type.get(backup['type'], 0) + 1

    return {
        'total': len(backups),
        'total_size': total_size,
        'total_size_human': format_bytes(total_size),
        'latest': backups[0] if backups else None,
        'by_type': by_type,
    }


def delete_backup(filename):
    path = get_backup_path(filename)
    os.remove(path)
    logger.info(f"Backup deleted: {filename}")


def cleanup_old_backups(retention_days=None):
    """
    Delete backups older than retention_days

    Returns: list of deleted file names
    """
    if retention_days is None:
        retention_days = get_backup_settings()['retention_days']

    deleted = []
    for backup in list_backups():
        if backup['age_days'] > retention_days:
            delete_backup(backup['name'])
            deleted.append(backup['name'])

    logger.info(f"Backup cleanup removed {len(deleted)} file(s) older than {retention_days} days")
    return deleted


def get_backup_settings():
    return {**DEFAULT_SETTINGS, **(cache.get(SETTINGS_CACHE_KEY) or {})}


def update_backup_settings(**changes):
    unknown = set(changes) - set(DEFAULT_SETTINGS)
    if unknown:
        raise BackupError(f"Unknown backup settings: {', '.join(sorted(unknown))}")

    current = get_backup_settings()
    current.update(changes)
    cache.set(SETTINGS_CACHE_KEY, current, None)
    return current
