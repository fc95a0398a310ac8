"""
Read and prune the application log files in settings.LOG_DIR
"""
import logging
import os
import re
from datetime import datetime, timezone as dt_timezone

from django.conf import settings

from .backups import format_bytes

logger = logging.getLogger(__name__)

LOG_PATTERN = re.compile(r'^\[(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})\] (\w+)\.(\w+): (.+)')

MAX_LINES = 1000

LEVELS = ['debug', 'info', 'warning', 'error', 'critical']


class LogFileError(Exception):
    pass


def log_dir():
    return settings.LOG_DIR


def list_log_files():
    if not os.path.isdir(log_dir()):
        return []

    files = []
    for entry in os.scandir(log_dir()):
        if entry.is_file() and entry.name.endswith('.log'):
            stat = entry.stat()
            files.append({
                'name': entry.name,
                'size': stat.st_size,
                'size_human': format_bytes(stat.st_size),
                'modified_at': datetime.fromtimestamp(stat.st_mtime, tz=dt_timezone.utc),
            })
    return sorted(files, key=lambda f: f['modified_at'], reverse=True)


def get_log_path(name):
    root = os.path.realpath(log_dir())
    path = os.path.realpath(os.path.join(root, name))
    if not name.endswith('.log') or os.path.dirname(path) != root or not os.path.isfile(path):
        raise LogFileError(f"Log file not found: {name}")
    return path


def parse_log_lines(lines):
    """
    Group raw lines into entries

    Lines that do not start a new entry (tracebacks and so on) are
    appended to the context of the entry before them.
    """
    entries = []
    for line in lines:
        line = line.rstrip('\n')
        match = LOG_PATTERN.match(line)
        if match:
            timestamp, environment, level, message = match.groups()
            entries.append({
                'timestamp': timestamp,
                'date': timestamp[:10],
                'environment': environment,
                'level': level.lower(),
                'message': message,
                'context': '',
            })
        elif entries and line:
            entries[-1]['context'] += f"{line}\n"
    return entries


def read_log(name, level=None, search=None, date=None, max_lines=MAX_LINES):
    """Entries of one log file, newest first"""
    path = get_log_path(name)
    with open(path, encoding='utf8', errors='replace') as fh:
        entries = parse_log_lines(fh)

    if level:
        entries = [e for e in entries if e['level'] == level.lower()]
    if search:
        needle = search.lower()
        entries = [
            e for e in entries
            if needle in e['message'].lower() or needle in e['context'].lower()
        ]
    if date:
        date = str(date)
        entries = [e for e in entries if e['date'] == date]

    entries.reverse()
    return entries[:max_lines]


def clear_log(name):
    path = get_log_path(name)
    with open(path, 'w', encoding='utf8'):
        pass
    logger.info(f"Log file cleared: {name}")


def delete_log(name):
    path = get_log_path(name)
    os.remove(path)
    logger.info(f"Log file deleted: {name}")


def clear_all_logs():
    """Truncate every log file; returns how many were cleared"""
    files = list_log_files()
    for log_file in files:
        clear_log(log_file['name'])
    return len(files)
