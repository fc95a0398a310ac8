from django.core.management.base import BaseCommand, CommandError

from apps.system.backups import BackupError, cleanup_old_backups, create_backup


class Command(BaseCommand):
    help = 'Create a backup of the database and/or files'

    def add_arguments(self, parser):
        parser.add_argument(
            '--type',
            choices=['db', 'files', 'full'],
            default='full',
            help='What to back up'
        )
        parser.add_argument(
            '--include-logs',
            action='store_true',
            help='Add the log directory to file backups'
        )
        parser.add_argument(
            '--cleanup',
            action='store_true',
            help='Delete old backups afterwards'
        )
        parser.add_argument(
            '--retention-days',
            type=int,
            default=None,
            help='Age in days after which backups are removed (with --cleanup)'
        )

    def handle(self, *args, **options):
        self.stdout.write(f"💾 Creating {options['type']} backup...")

        try:
            backup = create_backup(options['type'], include_logs=options['include_logs'])
        except BackupError as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.SUCCESS(f"Backup created: {backup['name']} ({backup['size_human']})"))

        if options['cleanup']:
            deleted = cleanup_old_backups(options['retention_days'])
            self.stdout.write(f"🧹 Removed {len(deleted)} old backup(s)")
            for name in deleted:
                self.stdout.write(f"   - {name}")
