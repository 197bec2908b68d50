# core/signals.py
"""
Пересчёт бюджетов при изменении транзакций.

Модель Transaction о бюджетах ничего не знает: здесь бюджеты подписаны
на её сохранение и удаление и вызывают только точки входа core.engine.

Массовые операции (QuerySet.update, bulk_create, bulk_update) сигналов
pre_save/post_save не отправляют. После них бюджеты нужно пересчитать
явно: engine.update_spent_amounts(user, year, month) или команда
manage.py recompute_budgets.
"""

from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from . import engine
from .models import Category, Transaction


@receiver(pre_save, sender=Transaction)
def remember_previous_state(sender, instance, raw=False, **kwargs):
    """Запоминает дату и тип транзакции до редактирования."""
    if raw or instance.pk is None:
        return
    previous = (
        Transaction.objects.filter(pk=instance.pk)
        .values('date', 'category__type')
        .first()
    )
    if previous is not None:
        instance._previous_ledger_state = (previous['date'], previous['category__type'])


@receiver(post_save, sender=Transaction)
def recompute_after_save(sender, instance, created, raw=False, **kwargs):
    if raw:
        return
    previous = instance.__dict__.pop('_previous_ledger_state', None)
    is_expense = instance.kind == Category.EXPENSE
    new_date = instance.date

    if created or previous is None:
        if is_expense:
            engine.on_expense_transaction_committed(instance.user_id, new_date.year, new_date.month)
        return

    old_date, old_type = previous
    if is_expense or old_type == Category.EXPENSE:
        engine.on_expense_transaction_edited(
            instance.user_id, old_date.year, old_date.month, new_date.year, new_date.month,
        )


@receiver(post_delete, sender=Transaction)
def recompute_after_delete(sender, instance, **kwargs):
    if instance.kind == Category.EXPENSE:
        engine.on_expense_transaction_committed(
            instance.user_id, instance.date.year, instance.date.month,
        )
