from datetime import datetime, timezone as dt_timezone

from django.core.management.base import BaseCommand, CommandError

from apps.system.maintenance import (
    MaintenanceError,
    disable_maintenance,
    enable_maintenance,
    get_maintenance_info,
)


class Command(BaseCommand):
    help = 'Put the site into maintenance mode, bring it back up or show the status'

    def add_arguments(self, parser):
        parser.add_argument('action', choices=['on', 'off', 'status'])
        parser.add_argument('--message', default=None, help='Message shown to visitors')
        parser.add_argument(
            '--allow',
            nargs='*',
            default=[],
            help='IP addresses that can still use the site'
        )
        parser.add_argument('--retry', type=int, default=None, help='Retry-After header in seconds')

    def handle(self, *args, **options):
        action = options['action']

        try:
            if action == 'on':
                enable_maintenance(
                    message=options['message'],
                    allow=options['allow'],
                    retry=options['retry'],
                )
                self.stdout.write(self.style.WARNING("🚧 Application is now in maintenance mode"))
            elif action == 'off':
                disable_maintenance()
                self.stdout.write(self.style.SUCCESS("✅ Application is now live"))
            else:
                self.print_status()
        except MaintenanceError as e:
            raise CommandError(str(e))

    def print_status(self):
        info = get_maintenance_info()
        if info is None:
            self.stdout.write("✅ Application is live")
            return

        self.stdout.write("🚧 Application is in maintenance mode")
        if info['time']:
            since = datetime.fromtimestamp(info['time'], tz=dt_timezone.utc)
            self.stdout.write(f"   Since: {since:%Y-%m-%d %H:%M:%S} UTC")
        if info['message']:
            self.stdout.write(f"   Message: {info['message']}")
        if info['allow']:
            self.stdout.write(f"   Allowed IPs: {', '.join(info['allow'])}")
        if info['retry']:
            self.stdout.write(f"   Retry-After: {info['retry']}s")
