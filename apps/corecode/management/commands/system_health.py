import logging

from django.core.management.base import BaseCommand

from apps.system.health import get_system_health

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Run the system health checks'

    def add_arguments(self, parser):
        parser.add_argument(
            '--alert',
            action='store_true',
            help='Email the admins when the status is critical'
        )

    def handle(self, *args, **options):
        report = get_system_health()

        self.stdout.write("🩺 System Health Check")
        self.stdout.write("-" * 50)

        for name, result in report['checks'].items():
            icon = "✅" if result['status'] else "❌"
            self.stdout.write(f"{icon} {name:<14} {result['message']}")
            for issue in result.get('issues', []):
                self.stdout.write(f"     - {issue}")
            if result.get('error'):
                self.stdout.write(f"     - {result['error']}")

        self.stdout.write("-" * 50)
        summary = f"Status: {report['status'].upper()} ({report['passing']}/{report['total']} checks passing)"

        if report['status'] == 'healthy':
            self.stdout.write(self.style.SUCCESS(summary))
        elif report['status'] == 'warning':
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.ERROR(summary))

            if options['alert']:
                from tasks.system_tasks import send_system_alert_task

                failed = [name for name, result in report['checks'].items() if not result['status']]
                send_system_alert_task.delay(
                    alert_type='health_critical',
                    sender='system_health command',
                    error=f"Failing checks: {', '.join(failed)}",
                )
                self.stdout.write("📧 Alert queued for administrators")
