# core/tests.py
"""
Тесты бюджетов и уведомлений.
Покрывают модели, расчёт израсходованных сумм, пересчёт при изменении
транзакций, правило уведомлений, представления и команды.
"""

from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth.models import User
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError, IntegrityError, transaction
from django.test import Client, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from . import aggregation, alerts, engine, services
from .exceptions import (
    CategoryTypeMismatchError,
    DuplicateBudgetError,
    InvalidAmountError,
    InvalidPeriodError,
    NotFoundError,
    RecomputationFailure,
)
from .models import Budget, BudgetAlert, Category, Transaction

OCTOBER = date(2025, 10, 10)


class UserModelMixin:
    """Миксин для создания тестового пользователя и категорий."""
    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.client = Client()
        self.client.login(username='testuser', password='testpass123')
        self.food = Category.objects.create(name='Еда', type=Category.EXPENSE, user=self.user)
        self.transport = Category.objects.create(name='Транспорт', type=Category.EXPENSE, user=self.user)
        self.salary = Category.objects.create(name='ЗП', type=Category.INCOME, user=self.user)

    def spend(self, amount, category=None, day=OCTOBER, user=None):
        return Transaction.objects.create(
            user=user or self.user,
            amount=Decimal(amount),
            category=category or self.food,
            date=day,
        )

    def reload(self, budget):
        budget.refresh_from_db()
        return budget


class BudgetModelTest(UserModelMixin, TestCase):
    """Тесты модели Budget: производные значения."""

    def setUp(self):
        super().setUp()
        self.budget = Budget.objects.create(
            user=self.user, planned_amount=Decimal('100.00'), year=2025, month=10,
        )

    def test_new_budget_has_zero_spent(self):
        self.assertEqual(self.budget.spent_amount, Decimal('0.00'))
        self.assertTrue(self.budget.is_general)
        self.assertEqual(self.budget.period, '2025-10')
        self.assertEqual(str(self.budget), 'Общий бюджет — 100.00 (2025-10)')

    def test_derived_values(self):
        aggregation.store_spent_amount(self.budget, Decimal('95.00'))
        self.assertEqual(self.budget.remaining_amount, Decimal('5.00'))
        self.assertEqual(self.budget.spent_percentage, Decimal('95.00'))
        self.assertTrue(self.budget.is_near_limit(90))
        self.assertFalse(self.budget.is_over_budget)

    def test_over_budget_means_strictly_greater(self):
        aggregation.store_spent_amount(self.budget, Decimal('100.00'))
        self.assertFalse(self.budget.is_over_budget)
        aggregation.store_spent_amount(self.budget, Decimal('100.01'))
        self.assertTrue(self.budget.is_over_budget)
        self.assertEqual(self.budget.remaining_amount, Decimal('-0.01'))

    def test_zero_planned_amount_gives_zero_percentage(self):
        budget = Budget(planned_amount=Decimal('0.00'), spent_amount=Decimal('5.00'), year=2025, month=10)
        self.assertEqual(budget.spent_percentage, Decimal('0.00'))

    def test_near_limit_threshold_is_rounded_to_cents(self):
        budget = Budget(planned_amount=Decimal('33.33'), spent_amount=Decimal('29.99'), year=2025, month=10)
        self.assertFalse(budget.is_near_limit(90))
        budget.spent_amount = Decimal('30.00')
        self.assertTrue(budget.is_near_limit(90))

    def test_save_does_not_persist_spent_amount(self):
        self.budget.spent_amount = Decimal('50.00')
        self.budget.planned_amount = Decimal('120.00')
        self.budget.save()
        self.reload(self.budget)
        self.assertEqual(self.budget.spent_amount, Decimal('0.00'))
        self.assertEqual(self.budget.planned_amount, Decimal('120.00'))

    def test_store_spent_amount_persists(self):
        aggregation.store_spent_amount(self.budget, Decimal('42.50'))
        self.assertEqual(self.reload(self.budget).spent_amount, Decimal('42.50'))


class AggregationTest(UserModelMixin, TestCase):
    """Расчёт израсходованной суммы по журналу."""

    def setUp(self):
        super().setUp()
        self.spend('40.10')
        self.spend('9.90')
        self.spend('25.00', self.transport)
        self.spend('1000.00', self.salary)
        self.spend('500.00', day=date(2025, 11, 1))
        self.spend('0.10', day=date(2025, 10, 31))
        self.spend('0.20', day=date(2025, 10, 1))

        other = User.objects.create_user(username='other', password='pass')
        other_food = Category.objects.create(name='Еда', type=Category.EXPENSE, user=other)
        self.spend('77.00', other_food, user=other)

    def test_general_sums_all_expense_categories(self):
        self.assertEqual(aggregation.compute_spent(self.user, 2025, 10), Decimal('75.30'))

    def test_category_sum(self):
        self.assertEqual(aggregation.compute_spent(self.user, 2025, 10, self.food.id), Decimal('50.30'))
        self.assertEqual(aggregation.compute_spent(self.user, 2025, 10, self.transport.id), Decimal('25.00'))

    def test_income_category_is_ignored(self):
        self.assertEqual(aggregation.compute_spent(self.user, 2025, 10, self.salary.id), Decimal('0.00'))

    def test_other_month(self):
        self.assertEqual(aggregation.compute_spent(self.user, 2025, 11), Decimal('500.00'))
        self.assertEqual(aggregation.compute_spent(self.user, 2025, 12), Decimal('0.00'))

    def test_repeated_calls_return_same_value(self):
        first = aggregation.compute_spent(self.user, 2025, 10)
        self.assertEqual(aggregation.compute_spent(self.user, 2025, 10), first)

    def test_ledger_error_becomes_recomputation_failure(self):
        with mock.patch('core.ledger.list_expense_transactions', side_effect=DatabaseError('down')):
            with self.assertRaises(RecomputationFailure):
                aggregation.compute_spent(self.user, 2025, 10)


class BudgetServiceTest(UserModelMixin, TestCase):
    """Создание, изменение и поиск бюджетов."""

    def test_create_general_budget_reflects_prior_spending(self):
        self.spend('30.00')
        self.spend('12.50', self.transport)
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.assertIsNone(budget.category)
        self.assertEqual(budget.spent_amount, Decimal('42.50'))
        self.assertEqual(self.reload(budget).spent_amount, Decimal('42.50'))

    def test_create_category_budget_counts_only_its_category(self):
        self.spend('30.00')
        self.spend('12.50', self.transport)
        budget = services.create_category_budget(self.user, self.food.id, '200', 2025, 10)
        self.assertEqual(budget.category, self.food)
        self.assertEqual(budget.planned_amount, Decimal('200.00'))
        self.assertEqual(self.reload(budget).spent_amount, Decimal('30.00'))

    def test_second_general_budget_is_rejected(self):
        services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        with self.assertRaises(DuplicateBudgetError):
            services.create_general_budget(self.user, Decimal('300.00'), 2025, 10)
        self.assertEqual(Budget.objects.filter(user=self.user).count(), 1)

    def test_second_category_budget_is_rejected(self):
        services.create_category_budget(self.user, self.food.id, Decimal('100.00'), 2025, 10)
        with self.assertRaises(DuplicateBudgetError):
            services.create_category_budget(self.user, self.food.id, Decimal('50.00'), 2025, 10)

    def test_general_and_category_budgets_coexist(self):
        services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        services.create_category_budget(self.user, self.food.id, Decimal('50.00'), 2025, 10)
        services.create_category_budget(self.user, self.transport.id, Decimal('50.00'), 2025, 10)
        services.create_general_budget(self.user, Decimal('100.00'), 2025, 11)
        self.assertEqual(len(services.find_budgets_by_period(self.user, 2025, 10)), 3)

    def test_invalid_amount(self):
        for amount in (Decimal('0'), Decimal('-5.00'), 'abc', None, '0.001'):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmountError):
                    services.create_general_budget(self.user, amount, 2025, 10)
        self.assertFalse(Budget.objects.exists())

    def test_invalid_period(self):
        for year, month in ((2019, 5), (2051, 5), (2025, 0), (2025, 13)):
            with self.subTest(year=year, month=month):
                with self.assertRaises(InvalidPeriodError):
                    services.create_general_budget(self.user, Decimal('10.00'), year, month)

    def test_income_category_is_rejected(self):
        with self.assertRaises(CategoryTypeMismatchError):
            services.create_category_budget(self.user, self.salary.id, Decimal('100.00'), 2025, 10)
        self.assertFalse(Budget.objects.exists())

    def test_foreign_category_is_not_found(self):
        other = User.objects.create_user(username='other', password='pass')
        other_food = Category.objects.create(name='Еда', type=Category.EXPENSE, user=other)
        with self.assertRaises(NotFoundError):
            services.create_category_budget(self.user, other_food.id, Decimal('100.00'), 2025, 10)

    def test_get_budget_checks_owner(self):
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        other = User.objects.create_user(username='other', password='pass')
        self.assertEqual(services.get_budget(self.user, budget.id), budget)
        with self.assertRaises(NotFoundError):
            services.get_budget(other, budget.id)
        with self.assertRaises(NotFoundError):
            services.get_budget(self.user, budget.id + 1000)

    def test_update_planned_amount_keeps_spent(self):
        self.spend('30.00')
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        services.update_planned_amount(self.user, budget.id, Decimal('250.00'))
        self.reload(budget)
        self.assertEqual(budget.planned_amount, Decimal('250.00'))
        self.assertEqual(budget.spent_amount, Decimal('30.00'))

    def test_update_planned_amount_rejects_non_positive(self):
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        with self.assertRaises(InvalidAmountError):
            services.update_planned_amount(self.user, budget.id, Decimal('0.00'))
        self.assertEqual(self.reload(budget).planned_amount, Decimal('100.00'))

    def test_lowering_plan_can_raise_alert(self):
        self.spend('60.00')
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.assertFalse(BudgetAlert.objects.exists())
        services.update_planned_amount(self.user, budget.id, Decimal('50.00'))
        self.assertEqual(
            list(BudgetAlert.objects.values_list('kind', flat=True)), [BudgetAlert.EXCEEDED],
        )

    def test_delete_budget_keeps_transactions(self):
        tx = self.spend('95.00')
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.assertEqual(BudgetAlert.objects.filter(budget=budget).count(), 1)
        services.delete_budget(self.user, budget.id)
        self.assertFalse(Budget.objects.filter(pk=budget.pk).exists())
        self.assertFalse(BudgetAlert.objects.exists())
        self.assertTrue(Transaction.objects.filter(pk=tx.pk).exists())

    def test_find_general_budget(self):
        self.assertIsNone(services.find_general_budget(self.user, 2025, 10))
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        services.create_category_budget(self.user, self.food.id, Decimal('50.00'), 2025, 10)
        self.assertEqual(services.find_general_budget(self.user, 2025, 10), budget)

    def test_find_current_month_budgets(self):
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.assertEqual(services.find_current_month_budgets(self.user, today=OCTOBER), [budget])
        self.assertEqual(services.find_current_month_budgets(self.user, today=date(2025, 9, 1)), [])

    def test_budget_vs_actual(self):
        self.spend('120.00')
        services.create_category_budget(self.user, self.food.id, Decimal('100.00'), 2025, 10)
        rows = services.get_budget_vs_actual(self.user, 2025, 10)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['category_name'], 'Еда')
        self.assertEqual(rows[0]['difference'], Decimal('-20.00'))
        self.assertTrue(rows[0]['is_over_budget'])

    def test_ledger_failure_on_create_keeps_zero(self):
        self.spend('30.00')
        with mock.patch('core.ledger.list_expense_transactions', side_effect=DatabaseError('down')):
            with self.assertLogs('core.services', level='ERROR'):
                budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.assertEqual(self.reload(budget).spent_amount, Decimal('0.00'))


class ConsistencyEngineTest(UserModelMixin, TestCase):
    """Пересчёт бюджетов при изменении транзакций."""

    def setUp(self):
        super().setUp()
        self.general = services.create_general_budget(self.user, Decimal('1000.00'), 2025, 10)
        self.food_budget = services.create_category_budget(self.user, self.food.id, Decimal('1000.00'), 2025, 10)
        self.transport_budget = services.create_category_budget(
            self.user, self.transport.id, Decimal('1000.00'), 2025, 10,
        )
        self.november = services.create_general_budget(self.user, Decimal('1000.00'), 2025, 11)

    def spent(self, budget):
        return self.reload(budget).spent_amount

    def test_expense_counts_in_general_and_category_budgets(self):
        self.spend('60.00')
        self.assertEqual(self.spent(self.general), Decimal('60.00'))
        self.assertEqual(self.spent(self.food_budget), Decimal('60.00'))
        self.assertEqual(self.spent(self.transport_budget), Decimal('0.00'))

    def test_income_does_not_change_budgets(self):
        self.spend('500.00', self.salary)
        self.assertEqual(self.spent(self.general), Decimal('0.00'))

    def test_delete_transaction(self):
        tx = self.spend('60.00')
        self.spend('15.00')
        tx.delete()
        self.assertEqual(self.spent(self.general), Decimal('15.00'))
        self.assertEqual(self.spent(self.food_budget), Decimal('15.00'))

    def test_edit_amount(self):
        tx = self.spend('60.00')
        tx.amount = Decimal('75.25')
        tx.save()
        self.assertEqual(self.spent(self.general), Decimal('75.25'))
        self.assertEqual(self.spent(self.food_budget), Decimal('75.25'))

    def test_edit_moves_transaction_to_other_month(self):
        tx = self.spend('60.00')
        tx.date = date(2025, 11, 3)
        tx.save()
        self.assertEqual(self.spent(self.general), Decimal('0.00'))
        self.assertEqual(self.spent(self.food_budget), Decimal('0.00'))
        self.assertEqual(self.spent(self.november), Decimal('60.00'))

    def test_edit_changes_category(self):
        tx = self.spend('60.00')
        tx.category = self.transport
        tx.save()
        self.assertEqual(self.spent(self.general), Decimal('60.00'))
        self.assertEqual(self.spent(self.food_budget), Decimal('0.00'))
        self.assertEqual(self.spent(self.transport_budget), Decimal('60.00'))

    def test_edit_expense_into_income(self):
        tx = self.spend('60.00')
        tx.category = self.salary
        tx.save()
        self.assertEqual(self.spent(self.general), Decimal('0.00'))

    def test_update_spent_amounts_is_idempotent(self):
        self.spend('950.00')
        self.assertEqual(BudgetAlert.objects.count(), 2)
        with mock.patch('core.aggregation.store_spent_amount') as store:
            self.assertEqual(engine.update_spent_amounts(self.user, 2025, 10), [])
            self.assertEqual(engine.update_spent_amounts(self.user, 2025, 10), [])
        store.assert_not_called()
        self.assertEqual(BudgetAlert.objects.count(), 2)

    def test_update_spent_amounts_repairs_drift(self):
        self.spend('60.00')
        Budget.objects.filter(pk=self.general.pk).update(spent_amount=Decimal('999.00'))
        changed = engine.update_spent_amounts(self.user, 2025, 10)
        self.assertEqual([b.pk for b in changed], [self.general.pk])
        self.assertEqual(self.spent(self.general), Decimal('60.00'))

    def test_ledger_failure_keeps_transaction_and_budgets(self):
        self.spend('60.00')
        with mock.patch('core.ledger.list_expense_transactions', side_effect=DatabaseError('down')):
            with self.assertLogs('core.engine', level='ERROR'):
                tx = self.spend('30.00')
        self.assertTrue(Transaction.objects.filter(pk=tx.pk).exists())
        self.assertEqual(self.spent(self.general), Decimal('60.00'))
        self.assertEqual(self.spent(self.food_budget), Decimal('60.00'))

        # Следующий успешный пересчёт исправляет суммы
        engine.on_expense_transaction_committed(self.user, 2025, 10)
        self.assertEqual(self.spent(self.general), Decimal('90.00'))

    def test_update_spent_amounts_raises_on_ledger_failure(self):
        self.spend('60.00')
        Budget.objects.filter(user=self.user).update(spent_amount=Decimal('1.00'))
        with mock.patch('core.ledger.list_expense_transactions', side_effect=DatabaseError('down')):
            with self.assertRaises(RecomputationFailure):
                engine.update_spent_amounts(self.user, 2025, 10)
        self.assertEqual(self.spent(self.general), Decimal('1.00'))
        self.assertEqual(self.spent(self.food_budget), Decimal('1.00'))

    def test_failed_write_rolls_back_whole_period(self):
        self.spend('60.00')
        Budget.objects.filter(user=self.user).update(spent_amount=Decimal('1.00'))
        real_store = aggregation.store_spent_amount
        calls = []

        def failing_store(budget, amount):
            calls.append(budget.pk)
            if len(calls) == 2:
                raise DatabaseError('write failed')
            real_store(budget, amount)

        with mock.patch('core.aggregation.store_spent_amount', side_effect=failing_store):
            with self.assertRaises(RecomputationFailure):
                engine.update_spent_amounts(self.user, 2025, 10)
        for budget in (self.general, self.food_budget, self.transport_budget):
            self.assertEqual(self.spent(budget), Decimal('1.00'))

    @override_settings(BUDGET_WARNING_THRESHOLD=40)
    def test_alert_error_does_not_break_transaction_save(self):
        with self.assertLogs('core.engine', level='ERROR'):
            tx = self.spend('45.00')
        self.assertTrue(Transaction.objects.filter(pk=tx.pk).exists())
        self.assertEqual(self.spent(self.general), Decimal('0.00'))
        self.assertEqual(self.spent(self.food_budget), Decimal('0.00'))
        self.assertFalse(BudgetAlert.objects.exists())

    def test_unexpected_error_is_reported_as_recomputation_failure(self):
        self.spend('60.00')
        Budget.objects.filter(user=self.user).update(spent_amount=Decimal('1.00'))
        self.reload(self.general)
        with mock.patch('core.alerts.evaluate_budget', side_effect=RuntimeError('boom')):
            with self.assertRaises(RecomputationFailure):
                engine.refresh_budget(self.general)
        self.assertEqual(self.general.spent_amount, Decimal('1.00'))
        self.assertEqual(self.spent(self.general), Decimal('1.00'))

    def test_edit_entry_point_recomputes_both_months(self):
        self.spend('10.00')
        self.spend('20.00', day=date(2025, 11, 2))
        Budget.objects.filter(user=self.user).update(spent_amount=Decimal('0.00'))
        engine.on_expense_transaction_edited(self.user, 2025, 10, 2025, 11)
        self.assertEqual(self.spent(self.general), Decimal('10.00'))
        self.assertEqual(self.spent(self.november), Decimal('20.00'))


class AlertPolicyTest(UserModelMixin, TestCase):
    """Правило создания уведомлений без дублей."""

    def setUp(self):
        super().setUp()
        self.budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)

    def alerts_of(self, kind, **filters):
        return BudgetAlert.objects.filter(budget=self.budget, kind=kind, **filters)

    def test_warning_created_once(self):
        self.spend('90.00')
        warnings = self.alerts_of(BudgetAlert.WARNING)
        self.assertEqual(warnings.count(), 1)
        alert = warnings.get()
        self.assertFalse(alert.is_read)
        self.assertEqual(alert.threshold_percentage, 90)
        self.assertEqual(alert.user, self.user)

        self.spend('5.00')
        self.assertEqual(self.reload(self.budget).spent_amount, Decimal('95.00'))
        self.assertEqual(self.alerts_of(BudgetAlert.WARNING).count(), 1)

    def test_below_threshold_creates_nothing(self):
        self.spend('89.99')
        self.assertFalse(BudgetAlert.objects.exists())

    def test_exceeded_leaves_warning_untouched(self):
        self.spend('95.00')
        warning = self.alerts_of(BudgetAlert.WARNING).get()
        self.spend('15.00')

        exceeded = self.alerts_of(BudgetAlert.EXCEEDED)
        self.assertEqual(exceeded.count(), 1)
        self.assertEqual(exceeded.get().threshold_percentage, 100)
        self.assertFalse(exceeded.get().is_read)

        warning.refresh_from_db()
        self.assertFalse(warning.is_read)
        self.assertEqual(self.alerts_of(BudgetAlert.WARNING).count(), 1)

        self.spend('20.00')
        self.assertEqual(self.alerts_of(BudgetAlert.EXCEEDED).count(), 1)

    def test_recrossing_after_read_notifies_again(self):
        self.spend('50.00')
        tx = self.spend('40.00')
        first = self.alerts_of(BudgetAlert.WARNING).get()
        alerts.mark_read(self.user, first.id)

        tx.delete()
        self.assertEqual(self.reload(self.budget).spent_amount, Decimal('50.00'))
        self.spend('42.00')

        self.assertEqual(self.alerts_of(BudgetAlert.WARNING).count(), 2)
        self.assertEqual(self.alerts_of(BudgetAlert.WARNING, is_read=False).count(), 1)

    def test_alerts_are_not_retracted(self):
        tx = self.spend('110.00')
        alert = self.alerts_of(BudgetAlert.EXCEEDED).get()
        message = alert.message

        tx.delete()
        self.assertEqual(self.reload(self.budget).spent_amount, Decimal('0.00'))
        alert.refresh_from_db()
        self.assertFalse(alert.is_read)
        self.assertEqual(alert.message, message)

    def test_general_budget_message(self):
        self.spend('110.00')
        message = self.alerts_of(BudgetAlert.EXCEEDED).get().message
        self.assertIn('общий бюджет', message)
        self.assertIn('10.00', message)
        self.assertIn('110.00', message)
        self.assertIn('2025-10', message)

    def test_category_budget_message(self):
        budget = services.create_category_budget(self.user, self.transport.id, Decimal('50.00'), 2025, 10)
        self.spend('45.00', self.transport)
        alert = BudgetAlert.objects.get(budget=budget)
        self.assertEqual(alert.kind, BudgetAlert.WARNING)
        self.assertIn('Транспорт', alert.message)
        self.assertIn('90.00%', alert.message)

    def test_alert_is_per_budget(self):
        food_budget = services.create_category_budget(self.user, self.food.id, Decimal('100.00'), 2025, 10)
        self.spend('95.00')
        self.assertEqual(BudgetAlert.objects.filter(budget=self.budget).count(), 1)
        self.assertEqual(BudgetAlert.objects.filter(budget=food_budget).count(), 1)

    def test_evaluate_budget_returns_none_for_duplicate(self):
        self.spend('95.00')
        self.reload(self.budget)
        self.assertIsNone(alerts.evaluate_budget(self.budget))


class AlertStoreTest(UserModelMixin, TestCase):
    """Хранение уведомлений: чтение, удаление, очистка."""

    def setUp(self):
        super().setUp()
        self.budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.other = User.objects.create_user(username='other', password='pass')

    def make_alert(self, kind=BudgetAlert.WARNING, threshold=90):
        return alerts.create_alert(self.budget, 'Тест', kind, threshold)

    def test_create_alert_validates_threshold(self):
        with self.assertRaises(ValidationError):
            self.make_alert(threshold=40)
        self.assertFalse(BudgetAlert.objects.exists())

    def test_mark_read(self):
        alert = self.make_alert()
        alerts.mark_read(self.user, alert.id)
        alert.refresh_from_db()
        self.assertTrue(alert.is_read)
        self.assertEqual(alerts.count_unread(self.user), 0)

    def test_foreign_alert_is_not_found(self):
        alert = self.make_alert()
        with self.assertRaises(NotFoundError):
            alerts.mark_read(self.other, alert.id)
        with self.assertRaises(NotFoundError):
            alerts.delete_alert(self.other, alert.id)
        self.assertTrue(BudgetAlert.objects.filter(pk=alert.pk).exists())

    def test_mark_all_read(self):
        self.make_alert()
        self.make_alert(BudgetAlert.EXCEEDED, 100)
        self.assertEqual(alerts.count_unread(self.user), 2)
        self.assertEqual(alerts.mark_all_read(self.user), 2)
        self.assertEqual(alerts.list_unread(self.user), [])
        self.assertEqual(len(alerts.list_alerts(self.user)), 2)

    def test_list_newest_first(self):
        older = self.make_alert()
        BudgetAlert.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(days=1))
        newer = self.make_alert(BudgetAlert.EXCEEDED, 100)
        self.assertEqual([a.pk for a in alerts.list_alerts(self.user)], [newer.pk, older.pk])

    def test_delete(self):
        alert = self.make_alert()
        alerts.delete_alert(self.user, alert.id)
        self.assertFalse(BudgetAlert.objects.exists())

    def test_second_unread_alert_of_same_kind_is_rejected(self):
        first = self.make_alert()
        self.assertIsNone(self.make_alert())
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                BudgetAlert.objects.create(
                    budget=self.budget, user=self.user, message='Дубль', kind=BudgetAlert.WARNING,
                )
        self.assertEqual(BudgetAlert.objects.filter(kind=BudgetAlert.WARNING).count(), 1)

        # После прочтения допускается новое уведомление того же типа
        alerts.mark_read(self.user, first.id)
        self.assertIsNotNone(self.make_alert())
        self.assertEqual(alerts.count_unread(self.user), 1)

    @override_settings(BUDGET_WARNING_THRESHOLD=40)
    def test_warning_threshold_out_of_range(self):
        with self.assertRaises(ImproperlyConfigured):
            alerts.warning_threshold()

    def test_cleanup_removes_only_old_read_alerts(self):
        old_read = self.make_alert()
        alerts.mark_read(self.user, old_read.id)
        recent_read = self.make_alert()
        alerts.mark_read(self.user, recent_read.id)
        old_unread = self.make_alert()
        long_ago = timezone.now() - timedelta(days=31)
        BudgetAlert.objects.filter(pk__in=[old_read.pk, old_unread.pk]).update(created_at=long_ago)

        self.assertEqual(alerts.cleanup_old_alerts(self.user), 1)
        remaining = set(BudgetAlert.objects.values_list('pk', flat=True))
        self.assertEqual(remaining, {old_unread.pk, recent_read.pk})


class ViewsTest(UserModelMixin, TestCase):
    """Тесты JSON-представлений."""

    def create(self, **data):
        payload = {'planned_amount': '100.00', 'year': 2025, 'month': 10}
        payload.update(data)
        return self.client.post(reverse('budget_list'), payload)

    def test_login_required(self):
        response = Client().get(reverse('budget_list'))
        self.assertEqual(response.status_code, 302)

    def test_create_general_budget(self):
        self.spend('30.00')
        response = self.create()
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertTrue(data['is_general'])
        self.assertEqual(data['spent_amount'], '30.00')
        self.assertEqual(data['remaining_amount'], '70.00')
        self.assertEqual(data['period'], '2025-10')

    def test_create_duplicate_returns_conflict(self):
        self.create()
        response = self.create()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['code'], 'duplicate_budget')

    def test_create_for_income_category(self):
        response = self.create(category_id=self.salary.id)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'category_type_mismatch')

    def test_create_with_invalid_form(self):
        response = self.create(month=13)
        self.assertEqual(response.status_code, 400)
        self.assertIn('month', response.json()['errors'])

    def test_create_with_zero_amount(self):
        response = self.create(planned_amount='0')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'invalid_amount')

    def test_list_by_period(self):
        self.create()
        self.create(month=11)
        all_budgets = self.client.get(reverse('budget_list')).json()['budgets']
        october = self.client.get(reverse('budget_list'), {'year': 2025, 'month': 10}).json()['budgets']
        self.assertEqual(len(all_budgets), 2)
        self.assertEqual([b['month'] for b in october], [10])

    def test_detail_update_and_delete(self):
        budget_id = self.create().json()['id']
        url = reverse('budget_detail', kwargs={'pk': budget_id})

        self.assertEqual(self.client.get(url).json()['planned_amount'], '100.00')
        response = self.client.post(url, {'planned_amount': '150.00'})
        self.assertEqual(response.json()['planned_amount'], '150.00')

        self.assertEqual(self.client.delete(url).status_code, 200)
        self.assertEqual(self.client.get(url).status_code, 404)

    def test_foreign_budget_is_not_found(self):
        other = User.objects.create_user(username='other', password='pass')
        budget = services.create_general_budget(other, Decimal('100.00'), 2025, 10)
        response = self.client.get(reverse('budget_detail', kwargs={'pk': budget.pk}))
        self.assertEqual(response.status_code, 404)

    def test_general_budget_lookup(self):
        url = reverse('budget_general', kwargs={'year': 2025, 'month': 10})
        self.assertFalse(self.client.get(url).json()['found'])
        self.create()
        self.assertTrue(self.client.get(url).json()['found'])

    def test_summary(self):
        self.spend('120.00')
        self.create(category_id=self.food.id)
        rows = self.client.get(reverse('budget_summary', kwargs={'year': 2025, 'month': 10})).json()['summary']
        self.assertEqual(rows[0]['difference'], '-20.00')
        self.assertTrue(rows[0]['is_over_budget'])

    def test_recompute(self):
        budget_id = self.create().json()['id']
        self.spend('10.00')
        Budget.objects.filter(pk=budget_id).update(spent_amount=Decimal('0.00'))
        response = self.client.post(reverse('budget_recompute', kwargs={'year': 2025, 'month': 10}))
        self.assertEqual(response.json()['updated'], [budget_id])

    def test_recompute_invalid_period(self):
        response = self.client.post(reverse('budget_recompute', kwargs={'year': 2019, 'month': 10}))
        self.assertEqual(response.status_code, 400)

    def test_alert_endpoints(self):
        self.create()
        self.spend('95.00')
        self.assertEqual(self.client.get(reverse('alert_unread_count')).json(), {'count': 1, 'has_unread': True})

        alert_id = self.client.get(reverse('alert_unread')).json()['alerts'][0]['id']
        response = self.client.post(reverse('alert_mark_read', kwargs={'pk': alert_id}))
        self.assertTrue(response.json()['is_read'])
        self.assertEqual(self.client.get(reverse('alert_unread')).json()['alerts'], [])
        self.assertEqual(len(self.client.get(reverse('alert_list')).json()['alerts']), 1)

        self.assertEqual(self.client.post(reverse('alert_mark_all_read')).json()['marked'], 0)
        self.assertEqual(self.client.post(reverse('alert_cleanup')).json()['deleted'], 0)

        response = self.client.post(reverse('alert_delete', kwargs={'pk': alert_id}))
        self.assertEqual(response.json()['deleted'], alert_id)
        response = self.client.post(reverse('alert_delete', kwargs={'pk': alert_id}))
        self.assertEqual(response.status_code, 404)


class CommandsTest(UserModelMixin, TestCase):
    """Тесты management-команд."""

    def test_recompute_budgets_for_user(self):
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.spend('10.00')
        Budget.objects.filter(pk=budget.pk).update(spent_amount=Decimal('0.00'))
        out = StringIO()
        call_command('recompute_budgets', '--user', str(self.user.pk), '--year', '2025', '--month', '10', stdout=out)
        self.assertIn('Обновлено бюджетов за 2025-10: 1', out.getvalue())
        self.assertEqual(self.reload(budget).spent_amount, Decimal('10.00'))

    def test_recompute_budgets_for_all_users(self):
        budget = services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.spend('10.00')
        Budget.objects.filter(pk=budget.pk).update(spent_amount=Decimal('0.00'))
        call_command('recompute_budgets', '--all-users', '--year', '2025', '--month', '10', stdout=StringIO())
        self.assertEqual(self.reload(budget).spent_amount, Decimal('10.00'))

    def test_recompute_budgets_unknown_user(self):
        with self.assertRaises(CommandError):
            call_command('recompute_budgets', '--user', '9999', '--year', '2025', '--month', '10')

    def test_recompute_budgets_invalid_period(self):
        with self.assertRaises(CommandError):
            call_command('recompute_budgets', '--user', str(self.user.pk), '--year', '2025', '--month', '13')

    def test_cleanup_alerts(self):
        services.create_general_budget(self.user, Decimal('100.00'), 2025, 10)
        self.spend('95.00')
        BudgetAlert.objects.update(is_read=True, created_at=timezone.now() - timedelta(days=45))
        call_command('cleanup_alerts', stdout=StringIO())
        self.assertFalse(BudgetAlert.objects.exists())
