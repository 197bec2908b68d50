# core/alerts.py
"""
Уведомления по бюджетам: хранение и правило создания без дублей.

Уведомление фиксирует момент пересечения порога. Пока у бюджета есть
непрочитанное уведомление того же типа, новое не создаётся. Когда расходы
снова опускаются ниже порога, уведомления не удаляются.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import NotFoundError
from .models import BudgetAlert

logger = logging.getLogger(__name__)

EXCEEDED_THRESHOLD = 100
MIN_WARNING_THRESHOLD = 50


def warning_threshold():
    threshold = getattr(settings, 'BUDGET_WARNING_THRESHOLD', 90)
    if not MIN_WARNING_THRESHOLD <= threshold <= EXCEEDED_THRESHOLD:
        raise ImproperlyConfigured(
            f"BUDGET_WARNING_THRESHOLD must be between {MIN_WARNING_THRESHOLD} and {EXCEEDED_THRESHOLD}, got {threshold}"
        )
    return threshold


def retention_days():
    return getattr(settings, 'BUDGET_ALERT_RETENTION_DAYS', 30)


def _budget_label(budget):
    if budget.is_general:
        return 'общий бюджет'
    return f"бюджет «{budget.category.name}»"


def build_warning_message(budget):
    return (
        f"Внимание! Вы приближаетесь к лимиту: {_budget_label(budget)}. "
        f"Израсходовано {budget.spent_percentage}% ({budget.spent_amount}) "
        f"из {budget.planned_amount} за {budget.period}."
    )


def build_exceeded_message(budget):
    return (
        f"Бюджет превышен: {_budget_label(budget)} на {budget.spent_amount - budget.planned_amount}. "
        f"Израсходовано {budget.spent_amount} из {budget.planned_amount} за {budget.period}."
    )


def has_unread_alert(budget, kind):
    return BudgetAlert.objects.filter(budget=budget, kind=kind, is_read=False).exists()


def create_alert(budget, message, kind, threshold):
    """
    Сохраняет уведомление; владелец берётся из бюджета.

    Второе непрочитанное уведомление того же типа не даёт создать
    ограничение uq_alert_budget_kind_unread. В этом случае возвращается None.

    Returns:
        BudgetAlert | None: созданное уведомление
    """
    alert = BudgetAlert(
        budget=budget,
        user_id=budget.user_id,
        message=message,
        kind=kind,
        threshold_percentage=threshold,
    )
    alert.full_clean(validate_constraints=False)
    try:
        with transaction.atomic():
            alert.save()
    except IntegrityError:
        logger.debug("Unread %s alert already exists for budget %s", kind, budget.pk)
        return None
    logger.info("Created %s alert %s for budget %s", kind, alert.pk, budget.pk)
    return alert


def evaluate_budget(budget):
    """
    Проверяет бюджет после записи израсходованной суммы.

    Returns:
        BudgetAlert | None: созданное уведомление, если оно понадобилось
    """
    if budget.is_over_budget:
        kind, threshold = BudgetAlert.EXCEEDED, EXCEEDED_THRESHOLD
    elif budget.is_near_limit(warning_threshold()):
        kind, threshold = BudgetAlert.WARNING, warning_threshold()
    else:
        return None

    if has_unread_alert(budget, kind):
        logger.debug("Unread %s alert already exists for budget %s", kind, budget.pk)
        return None

    if kind == BudgetAlert.EXCEEDED:
        message = build_exceeded_message(budget)
    else:
        message = build_warning_message(budget)
    return create_alert(budget, message, kind, threshold)


def get_alert(user, alert_id):
    alert = BudgetAlert.objects.filter(pk=alert_id, user=user).first()
    if alert is None:
        raise NotFoundError('Уведомление не найдено.')
    return alert


def list_alerts(user):
    return list(BudgetAlert.objects.filter(user=user).select_related('budget__category'))


def list_unread(user):
    return list(
        BudgetAlert.objects.filter(user=user, is_read=False).select_related('budget__category')
    )


def count_unread(user):
    return BudgetAlert.objects.filter(user=user, is_read=False).count()


def mark_read(user, alert_id):
    alert = get_alert(user, alert_id)
    if not alert.is_read:
        alert.is_read = True
        alert.save(update_fields=['is_read'])
    logger.info("Alert %s marked as read", alert.pk)
    return alert


def mark_all_read(user):
    count = BudgetAlert.objects.filter(user=user, is_read=False).update(is_read=True)
    logger.info("Marked %s alerts as read for user %s", count, getattr(user, 'pk', user))
    return count


def delete_alert(user, alert_id):
    alert = get_alert(user, alert_id)
    alert.delete()
    logger.info("Deleted alert %s", alert_id)


def cleanup_old_alerts(user, now=None):
    """
    Удаляет прочитанные уведомления старше срока хранения.

    Непрочитанные уведомления не удаляются независимо от возраста.

    Returns:
        int: Количество удалённых уведомлений
    """
    cutoff = (now or timezone.now()) - timedelta(days=retention_days())
    deleted, _ = BudgetAlert.objects.filter(
        user=user,
        is_read=True,
        created_at__lt=cutoff,
    ).delete()
    logger.info("Cleaned up %s old alerts for user %s", deleted, getattr(user, 'pk', user))
    return deleted
