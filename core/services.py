# core/services.py
"""
Модуль бизнес-логики бюджетов.

Содержит создание, изменение, удаление и поиск месячных бюджетов.
Израсходованная сумма здесь не задаётся: её считает core.aggregation
через core.engine.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.utils import timezone

from . import alerts, engine, ledger
from .exceptions import (
    CategoryTypeMismatchError,
    DuplicateBudgetError,
    InvalidAmountError,
    InvalidPeriodError,
    NotFoundError,
    RecomputationFailure,
)
from .models import CENT, MAX_BUDGET_YEAR, MIN_BUDGET_YEAR, Budget

logger = logging.getLogger(__name__)


def validate_planned_amount(planned_amount):
    """
    Приводит плановую сумму к Decimal.

    Raises:
        InvalidAmountError: сумма не задана, не число или не больше нуля
    """
    if planned_amount is None:
        raise InvalidAmountError()
    try:
        amount = Decimal(str(planned_amount))
    except InvalidOperation:
        raise InvalidAmountError()
    if not amount.is_finite():
        raise InvalidAmountError()
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise InvalidAmountError()
    return amount


def validate_period(year, month):
    if not isinstance(year, int) or not MIN_BUDGET_YEAR <= year <= MAX_BUDGET_YEAR:
        raise InvalidPeriodError(f'Год должен быть от {MIN_BUDGET_YEAR} до {MAX_BUDGET_YEAR}.')
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidPeriodError('Месяц должен быть от 1 до 12.')


def _create_budget(user, category, planned_amount, year, month):
    try:
        with transaction.atomic():
            budget = Budget.objects.create(
                user=user,
                category=category,
                planned_amount=planned_amount,
                year=year,
                month=month,
            )
    except IntegrityError:
        raise DuplicateBudgetError()

    # Сразу учитываем расходы, уже внесённые в этом месяце
    try:
        engine.refresh_budget(budget)
    except RecomputationFailure:
        logger.exception("Initial spent amount for budget %s was not computed", budget.pk)
    return budget


def create_general_budget(user, planned_amount, year, month):
    """
    Создаёт общий бюджет на месяц (все категории расходов).

    Args:
        user (User): Пользователь
        planned_amount (Decimal | str | int): Лимит
        year (int): Год
        month (int): Месяц

    Returns:
        Budget
    """
    logger.info("Creating general budget for user %s for %s-%s", user.pk, year, month)
    planned_amount = validate_planned_amount(planned_amount)
    validate_period(year, month)

    if Budget.objects.filter(user=user, category__isnull=True, year=year, month=month).exists():
        raise DuplicateBudgetError(f'Общий бюджет на {year}-{month:02d} уже существует.')

    budget = _create_budget(user, None, planned_amount, year, month)
    logger.info("Created general budget %s", budget.pk)
    return budget


def create_category_budget(user, category_id, planned_amount, year, month):
    """
    Создаёт бюджет по категории расходов.

    Raises:
        NotFoundError: категории нет или она чужая
        CategoryTypeMismatchError: категория не расходная
        DuplicateBudgetError: бюджет на эту категорию и месяц уже есть
    """
    logger.info(
        "Creating budget for user %s, category %s for %s-%s", user.pk, category_id, year, month,
    )
    category = ledger.get_category(user, category_id)
    planned_amount = validate_planned_amount(planned_amount)
    validate_period(year, month)

    if not category.is_expense:
        raise CategoryTypeMismatchError()

    if Budget.objects.filter(user=user, category=category, year=year, month=month).exists():
        raise DuplicateBudgetError('Бюджет на эту категорию и период уже существует.')

    budget = _create_budget(user, category, planned_amount, year, month)
    logger.info("Created category budget %s", budget.pk)
    return budget


def get_budget(user, budget_id):
    budget = Budget.objects.filter(pk=budget_id, user=user).select_related('category').first()
    if budget is None:
        raise NotFoundError('Бюджет не найден.')
    return budget


def update_planned_amount(user, budget_id, planned_amount):
    """Меняет лимит бюджета; израсходованная сумма остаётся прежней."""
    budget = get_budget(user, budget_id)
    budget.planned_amount = validate_planned_amount(planned_amount)
    budget.save(update_fields=['planned_amount', 'updated_at'])
    logger.info("Updated planned amount of budget %s to %s", budget.pk, budget.planned_amount)

    # Новый лимит сам по себе может пересечь порог
    alerts.evaluate_budget(budget)
    return budget


def delete_budget(user, budget_id):
    """Удаляет бюджет вместе с его уведомлениями. Транзакции не затрагиваются."""
    budget = get_budget(user, budget_id)
    budget.delete()
    logger.info("Deleted budget %s", budget_id)


def list_budgets(user):
    return list(Budget.objects.filter(user=user).select_related('category'))


def find_budgets_by_period(user, year, month):
    validate_period(year, month)
    return list(
        Budget.objects.filter(user=user, year=year, month=month).select_related('category')
    )


def find_general_budget(user, year, month):
    """Общий бюджет за месяц или None."""
    validate_period(year, month)
    return Budget.objects.filter(user=user, category__isnull=True, year=year, month=month).first()


def find_current_month_budgets(user, today=None):
    today = today or timezone.localdate()
    return find_budgets_by_period(user, today.year, today.month)


def get_budget_vs_actual(user, year, month):
    """
    Сравнивает бюджеты месяца с фактическими расходами.

    Returns:
        list[dict]: Список словарей с ключами:
            - category_name
            - budget_amount
            - actual_amount
            - difference (budget - actual)
            - spent_percentage
            - is_over_budget (bool)
    """
    return [
        {
            'category_name': budget.category_name,
            'budget_amount': budget.planned_amount,
            'actual_amount': budget.spent_amount,
            'difference': budget.remaining_amount,
            'spent_percentage': budget.spent_percentage,
            'is_over_budget': budget.is_over_budget,
        }
        for budget in find_budgets_by_period(user, year, month)
    ]
