# core/aggregation.py
"""
Расчёт израсходованной суммы бюджета по журналу транзакций.

Общий бюджет учитывает все расходы месяца, в том числе уже учтённые в
бюджетах по категориям: суммы общего и категорийных бюджетов друг из
друга не вычитаются.
"""

import logging
from decimal import Decimal

from django.db import DatabaseError
from django.utils import timezone

from . import ledger
from .exceptions import RecomputationFailure
from .models import Budget

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def compute_spent(user, year, month, category_id=None):
    """
    Сумма расходов пользователя за месяц.

    Args:
        user (User | int): Пользователь
        year (int): Год
        month (int): Месяц
        category_id (int | None): Категория; None — все категории расходов

    Returns:
        Decimal: Точная сумма без округления через float

    Raises:
        RecomputationFailure: журнал транзакций недоступен
    """
    try:
        rows = ledger.list_expense_transactions(user, year, month)
    except DatabaseError as exc:
        raise RecomputationFailure(f"Ledger read failed for {year}-{month:02d}") from exc

    total = ZERO
    for row in rows:
        if category_id is not None and row['category_id'] != category_id:
            continue
        total += row['amount']
    return total


def compute_budget_spent(budget):
    return compute_spent(budget.user_id, budget.year, budget.month, budget.category_id)


def store_spent_amount(budget, amount):
    """Единственное место, где сохраняется spent_amount."""
    updated_at = timezone.now()
    Budget.objects.filter(pk=budget.pk).update(spent_amount=amount, updated_at=updated_at)
    logger.debug("Budget %s spent amount %s -> %s", budget.pk, budget.spent_amount, amount)
    budget.spent_amount = amount
    budget.updated_at = updated_at
