# core/engine.py
"""
Согласование бюджетов с журналом транзакций.

Точки входа on_expense_transaction_* вызываются после изменения расходной
транзакции (см. core/signals.py) и пересчитывают все бюджеты затронутых
месяцев. Их сбой только логируется: сама транзакция уже сохранена, а
устаревшая сумма исправится при следующем успешном пересчёте.
"""

import logging

from django.db import transaction

from . import aggregation, alerts
from .exceptions import RecomputationFailure
from .models import Budget

logger = logging.getLogger(__name__)


def _write_changed(fresh_amounts):
    changed = []
    for budget, amount in fresh_amounts:
        if budget.spent_amount == amount:
            continue
        aggregation.store_spent_amount(budget, amount)
        alerts.evaluate_budget(budget)
        changed.append(budget)
    return changed


def _recompute(load_budgets):
    """
    Считает новые суммы, затем записывает только отличающиеся и проверяет
    пороги. Всё выполняется в одной точке сохранения: при ошибке не
    меняется ни один бюджет.
    """
    snapshot = []
    try:
        with transaction.atomic():
            budgets = load_budgets()
            snapshot = [(budget, budget.spent_amount) for budget in budgets]
            fresh_amounts = [(budget, aggregation.compute_budget_spent(budget)) for budget in budgets]
            return budgets, _write_changed(fresh_amounts)
    except RecomputationFailure:
        _restore(snapshot)
        raise
    except Exception as exc:
        _restore(snapshot)
        raise RecomputationFailure(f"Budget recomputation failed: {exc!r}") from exc


def _restore(snapshot):
    # Откат в памяти вслед за откатом точки сохранения
    for budget, spent_amount in snapshot:
        budget.spent_amount = spent_amount


def refresh_budget(budget):
    """
    Пересчитывает один бюджет.

    Returns:
        bool: изменилась ли сохранённая сумма
    """
    _, changed = _recompute(lambda: [budget])
    return bool(changed)


def update_spent_amounts(user, year, month):
    """
    Пересчитывает все бюджеты пользователя за месяц.

    Повторный вызов без изменений в журнале ничего не пишет и уведомлений
    не создаёт.

    Args:
        user (User | int): Пользователь
        year (int): Год
        month (int): Месяц

    Returns:
        list[Budget]: бюджеты, сумма которых изменилась

    Raises:
        RecomputationFailure: ни один бюджет при этом не изменён
    """
    budgets, changed = _recompute(
        lambda: list(
            Budget.objects.filter(user=user, year=year, month=month).select_related('category')
        )
    )
    logger.info(
        "Recomputed %s budgets for %s-%02d, %s changed", len(budgets), year, month, len(changed),
    )
    return changed


def on_expense_transaction_committed(user, year, month):
    """Расходная транзакция создана или удалена."""
    try:
        update_spent_amounts(user, year, month)
    except RecomputationFailure:
        logger.exception("Failed to update budgets for %s-%02d", year, month)


def on_expense_transaction_edited(user, old_year, old_month, new_year, new_month):
    """Расходная транзакция изменена: пересчёт старого и, если он другой, нового месяца."""
    try:
        update_spent_amounts(user, old_year, old_month)
        if (old_year, old_month) != (new_year, new_month):
            update_spent_amounts(user, new_year, new_month)
    except RecomputationFailure:
        logger.exception(
            "Failed to update budgets for edited transaction %s-%02d -> %s-%02d",
            old_year, old_month, new_year, new_month,
        )
