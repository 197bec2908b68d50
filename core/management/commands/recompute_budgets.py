from django.core.management.base import BaseCommand, CommandError

from core import engine, ledger, services
from core.exceptions import BudgetValidationError, NotFoundError, RecomputationFailure
from core.models import Budget


class Command(BaseCommand):
    help = 'Пересчитывает израсходованные суммы бюджетов за месяц по журналу транзакций.'

    def add_arguments(self, parser):
        parser.add_argument('--year', type=int, required=True)
        parser.add_argument('--month', type=int, required=True)
        target = parser.add_mutually_exclusive_group(required=True)
        target.add_argument('--user', type=int, dest='user_id', help='id пользователя')
        target.add_argument('--all-users', action='store_true', help='все пользователи с бюджетами за месяц')

    def handle(self, *args, **options):
        year, month = options['year'], options['month']
        try:
            services.validate_period(year, month)
            if options['all_users']:
                user_ids = (
                    Budget.objects.filter(year=year, month=month)
                    .order_by().values_list('user_id', flat=True).distinct()
                )
            else:
                user_ids = [ledger.get_user(options['user_id']).pk]

            updated = 0
            for user_id in user_ids:
                updated += len(engine.update_spent_amounts(user_id, year, month))
        except BudgetValidationError as exc:
            raise CommandError(exc.messages[0]) from exc
        except (NotFoundError, RecomputationFailure) as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(f'Обновлено бюджетов за {year}-{month:02d}: {updated}'))
