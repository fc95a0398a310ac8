"""
System-level background tasks.

Cross-cutting jobs that keep the back office healthy: admin alerts,
scheduled backups, backup retention and health monitoring. They are not
tied to a domain model and are safe to retry.

Design principles:
- Explicit task names for Celery stability
- Controlled retries (no retry storms)
- Loud logging
"""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from tasks.base import BaseTask

logger = logging.getLogger("system.tasks")


# ---------------------------------------------------------------------------
# SYSTEM ALERT TASK
# ---------------------------------------------------------------------------

@shared_task(
    bind=True,
    name="system.send_alert",
    autoretry_for=(Exception,),
    retry_backoff=300,          # 5 minutes base backoff
    retry_backoff_max=1800,     # max 30 minutes
    retry_kwargs={"max_retries": 3},
)
def send_system_alert_task(
    self,
    alert_type: str,
    sender: str | None = None,
    instance_id: str | None = None,
    error: str | None = None,
):
    """
    Send a system-level alert email to site administrators.

    Used for failed background jobs and critical health checks.
    """
    task_id = self.request.id
    timestamp = timezone.now()

    logger.info(
        "[%s] Preparing system alert",
        task_id,
        extra={
            "alert_type": alert_type,
            "sender": sender,
            "instance_id": instance_id,
        },
    )

    school_name = getattr(settings, "SCHOOL_NAME", "School Back Office")
    site_url = getattr(settings, "SITE_URL", "N/A")
    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None)

    admins = getattr(settings, "ADMINS", [])
    admin_emails = [email for _, email in admins if email]

    if not admin_emails:
        logger.warning(
            "[%s] No ADMINS configured; system alert will not be emailed",
            task_id,
        )
        return {
            "success": False,
            "reason": "no_admin_emails",
            "alert_type": alert_type,
        }

    subject = f"[{school_name}] System Alert: {alert_type}"

    message = f"""
SYSTEM ALERT

Type: {alert_type}
Time: {timestamp.strftime('%Y-%m-%d %H:%M:%S')}
Sender: {sender or 'Unknown'}
Instance ID: {instance_id or 'N/A'}

Error Details:
{error or 'No error details provided'}

Environment: {"Development" if settings.DEBUG else "Production"}
Site URL: {site_url}

This message was generated automatically by the system task runner.
"""

    send_mail(
        subject=subject,
        message=message.strip(),
        from_email=from_email,
        recipient_list=admin_emails,
        fail_silently=False,
    )

    logger.info(
        "[%s] System alert sent successfully",
        task_id,
        extra={
            "alert_type": alert_type,
            "recipients": len(admin_emails),
        },
    )

    return {
        "success": True,
        "alert_type": alert_type,
        "sent_to": admin_emails,
        "sent_at": timestamp.isoformat(),
    }


# ---------------------------------------------------------------------------
# BACKUP TASKS
# ---------------------------------------------------------------------------

@shared_task(
    bind=True,
    base=BaseTask,
    name="system.create_backup",
)
def create_backup_task(self, backup_type: str = "full", include_logs: bool = False):
    """
    Create a backup and apply the retention policy.

    A failed backup is reported to the admins instead of being retried.
    """
    from apps.system.backups import BackupError, cleanup_old_backups, create_backup

    self.log_progress(f"Starting {backup_type} backup", 0)

    try:
        backup = create_backup(backup_type, include_logs=include_logs)
    except BackupError as exc:
        logger.error("Backup failed", extra={"backup_type": backup_type}, exc_info=exc)
        send_system_alert_task.delay(
            alert_type="backup_failed",
            sender="system.create_backup",
            error=str(exc),
        )
        return {"success": False, "backup_type": backup_type, "error": str(exc)}

    self.log_progress(f"Backup {backup['name']} written ({backup['size_human']})", 80)

    deleted = cleanup_old_backups()

    self.log_progress("Backup finished", 100)

    return {
        "success": True,
        "backup": backup["name"],
        "size": backup["size"],
        "cleaned": len(deleted),
    }


@shared_task(
    bind=True,
    base=BaseTask,
    name="system.cleanup_old_backups",
    autoretry_for=(OSError,),
    retry_backoff=600,          # 10 minutes
    retry_kwargs={"max_retries": 2},
)
def cleanup_old_backups_task(self, retention_days: int | None = None):
    """
    Delete backups older than the retention period.

    Uses the cached backup settings when no period is given.
    """
    from apps.system.backups import cleanup_old_backups, get_backup_settings

    if retention_days is None:
        retention_days = get_backup_settings()["retention_days"]

    self.log_progress(f"Removing backups older than {retention_days} days", 0)
    deleted = cleanup_old_backups(retention_days)
    self.log_progress(f"Removed {len(deleted)} backup(s)", 100)

    return {
        "success": True,
        "cleaned": len(deleted),
        "retention_days": retention_days,
        "deleted": deleted,
    }


@shared_task(name="system.scheduled_backup")
def scheduled_backup_task():
    """Beat entry point; honours the auto-backup switch"""
    from apps.system.backups import get_backup_settings

    backup_settings = get_backup_settings()
    if not backup_settings["auto_backup_enabled"]:
        logger.info("Automatic backups are disabled; skipping")
        return {"success": True, "skipped": True}

    create_backup_task.delay("full")
    return {"success": True, "skipped": False, "schedule": backup_settings["backup_schedule"]}


# ---------------------------------------------------------------------------
# HEALTH MONITOR
# ---------------------------------------------------------------------------

@shared_task(name="system.health_check")
def system_health_check_task():
    """
    Run the system health checks and alert admins when critical.
    """
    from apps.system.health import get_system_health

    report = get_system_health()

    logger.info(
        "System health: %s (%s/%s checks passing)",
        report["status"],
        report["passing"],
        report["total"],
    )

    if report["status"] == "critical":
        failed = {
            name: result.get("error") or "; ".join(result.get("issues", [])) or result["message"]
            for name, result in report["checks"].items()
            if not result["status"]
        }
        send_system_alert_task.delay(
            alert_type="health_critical",
            sender="system.health_check",
            error="\n".join(f"{name}: {detail}" for name, detail in failed.items()),
        )

    return {
        "status": report["status"],
        "passing": report["passing"],
        "total": report["total"],
    }
