from django.contrib.auth.models import User
from django.core.management.base import BaseCommand, CommandError

from core import alerts, ledger
from core.exceptions import NotFoundError


class Command(BaseCommand):
    help = 'Удаляет прочитанные уведомления старше срока хранения.'

    def add_arguments(self, parser):
        parser.add_argument('--user', type=int, dest='user_id', help='id пользователя (по умолчанию все)')

    def handle(self, *args, **options):
        if options['user_id'] is not None:
            try:
                users = [ledger.get_user(options['user_id'])]
            except NotFoundError as exc:
                raise CommandError(str(exc)) from exc
        else:
            users = User.objects.filter(budget_alerts__is_read=True).distinct()

        deleted = sum(alerts.cleanup_old_alerts(user) for user in users)
        self.stdout.write(self.style.SUCCESS(f'Удалено уведомлений: {deleted}'))
