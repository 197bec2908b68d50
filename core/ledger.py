# core/ledger.py
"""
Чтение журнала транзакций для модуля бюджетов.

Бюджеты не обращаются к Transaction, Category и User напрямую: все
запросы к ним собраны здесь. Модуль только читает данные.
"""

from datetime import date

from dateutil.relativedelta import relativedelta
from django.contrib.auth.models import User

from .exceptions import NotFoundError
from .models import Category, Transaction


def month_bounds(year, month):
    """
    Первый и последний день месяца.

    Returns:
        tuple[date, date]
    """
    start_date = date(year, month, 1)
    end_date = start_date + relativedelta(months=1) - relativedelta(days=1)
    return start_date, end_date


def list_expense_transactions(user, year, month):
    """
    Расходные транзакции пользователя за месяц.

    Args:
        user (User | int): Пользователь или его id
        year (int): Год
        month (int): Месяц (1–12)

    Returns:
        list[dict]: [{'amount': Decimal, 'category_id': int}, ...]
    """
    start_date, end_date = month_bounds(year, month)
    return list(
        Transaction.objects.filter(
            user=user,
            category__type=Category.EXPENSE,
            date__range=[start_date, end_date],
        ).values('amount', 'category_id')
    )


def get_category(user, category_id):
    category = Category.objects.filter(pk=category_id, user=user).first()
    if category is None:
        raise NotFoundError('Категория не найдена.')
    return category


def get_user(user_id):
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise NotFoundError('Пользователь не найден.')
    return user
