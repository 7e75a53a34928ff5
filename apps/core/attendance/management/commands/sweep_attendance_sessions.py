from django.core.management.base import BaseCommand

from apps.core.attendance.services import sweep_expired_sessions


class Command(BaseCommand):
    help = 'Mark attendance sessions whose timer has run out as inactive.'

    def add_arguments(self, parser):
        parser.add_argument('--class-id', default=None, help='Only sweep sessions for this class.')

    def handle(self, *args, **options):
        swept = sweep_expired_sessions(class_id=options['class_id'])
        self.stdout.write(self.style.SUCCESS(f'Swept {swept} expired attendance session(s).'))
