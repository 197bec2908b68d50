from decimal import Decimal, ROUND_HALF_UP

from django.contrib.auth.models import User
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

MIN_BUDGET_YEAR = 2020
MAX_BUDGET_YEAR = 2050

CENT = Decimal('0.01')


class Category(models.Model):
    """Категория дохода или расхода. Привязана к пользователю."""
    INCOME = 'income'
    EXPENSE = 'expense'
    TYPE_CHOICES = [
        (INCOME, 'Доход'),
        (EXPENSE, 'Расход'),
    ]

    name = models.CharField('Название', max_length=100)
    type = models.CharField('Тип', max_length=10, choices=TYPE_CHOICES, default=EXPENSE)
    user = models.ForeignKey(User, on_delete=models.CASCADE, verbose_name='Пользователь')
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = 'Категория'
        verbose_name_plural = 'Категории'
        unique_together = ('name', 'user', 'type')

    def __str__(self):
        return f"{self.name} ({self.get_type_display()})"

    @property
    def is_expense(self):
        return self.type == self.EXPENSE


class Transaction(models.Model):
    """Финансовая транзакция: доход или расход (определяется типом категории)."""
    user = models.ForeignKey(User, on_delete=models.CASCADE)
    amount = models.DecimalField('Сумма', max_digits=12, decimal_places=2)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, verbose_name='Категория')
    description = models.CharField('Описание', max_length=255, blank=True)
    date = models.DateField('Дата', default=timezone.localdate)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Транзакция'
        verbose_name_plural = 'Транзакции'
        ordering = ['-date', '-created_at']

    def __str__(self):
        return f"{self.category} — {self.amount} ({self.date})"

    @property
    def kind(self):
        return self.category.type


class Budget(models.Model):
    """
    Месячный бюджет пользователя.

    Без категории — общий бюджет на все расходы месяца, с категорией —
    бюджет только по этой категории расходов. Поле spent_amount производное:
    его пишет только core.aggregation.store_spent_amount, обычный save()
    при обновлении его не трогает.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='budgets')
    category = models.ForeignKey(
        Category,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='budgets',
        verbose_name='Категория',
    )
    planned_amount = models.DecimalField(
        'Лимит', max_digits=12, decimal_places=2, validators=[MinValueValidator(CENT)],
    )
    spent_amount = models.DecimalField(
        'Израсходовано', max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False,
    )
    year = models.PositiveSmallIntegerField(
        'Год', validators=[MinValueValidator(MIN_BUDGET_YEAR), MaxValueValidator(MAX_BUDGET_YEAR)],
    )
    month = models.PositiveSmallIntegerField(
        'Месяц', validators=[MinValueValidator(1), MaxValueValidator(12)],
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Бюджет'
        verbose_name_plural = 'Бюджеты'
        ordering = ['-year', '-month', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'category', 'year', 'month'],
                condition=Q(category__isnull=False),
                name='uq_budget_user_category_period',
            ),
            models.UniqueConstraint(
                fields=['user', 'year', 'month'],
                condition=Q(category__isnull=True),
                name='uq_budget_user_general_period',
            ),
        ]

    def __str__(self):
        return f"{self.category_name} — {self.planned_amount} ({self.period})"

    def save(self, *args, **kwargs):
        if not self._state.adding and kwargs.get('update_fields') is None:
            kwargs['update_fields'] = [
                field.name for field in self._meta.concrete_fields
                if not field.primary_key and field.name != 'spent_amount'
            ]
        super().save(*args, **kwargs)

    @property
    def is_general(self):
        return self.category_id is None

    @property
    def category_name(self):
        return self.category.name if self.category_id else 'Общий бюджет'

    @property
    def period(self):
        return f"{self.year}-{self.month:02d}"

    @property
    def remaining_amount(self):
        return self.planned_amount - self.spent_amount

    @property
    def spent_percentage(self):
        if not self.planned_amount:
            return Decimal('0.00')
        percentage = self.spent_amount / self.planned_amount * 100
        return percentage.quantize(CENT, rounding=ROUND_HALF_UP)

    @property
    def is_over_budget(self):
        return self.spent_amount > self.planned_amount

    def is_near_limit(self, percentage):
        """Достигнут ли порог percentage% от лимита (порог округляется до копеек)."""
        threshold = (self.planned_amount * percentage / 100).quantize(CENT, rounding=ROUND_HALF_UP)
        return self.spent_amount >= threshold


class BudgetAlert(models.Model):
    """Уведомление о приближении к лимиту или превышении бюджета."""
    WARNING = 'warning'
    EXCEEDED = 'exceeded'
    KIND_CHOICES = [
        (WARNING, 'Предупреждение'),
        (EXCEEDED, 'Превышение'),
    ]

    budget = models.ForeignKey(Budget, on_delete=models.CASCADE, related_name='alerts')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='budget_alerts')
    message = models.TextField('Сообщение', max_length=1000)
    kind = models.CharField('Тип', max_length=10, choices=KIND_CHOICES, default=WARNING)
    threshold_percentage = models.PositiveSmallIntegerField(
        'Порог, %', default=90, validators=[MinValueValidator(50), MaxValueValidator(100)],
    )
    is_read = models.BooleanField('Прочитано', default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = 'Уведомление'
        verbose_name_plural = 'Уведомления'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='idx_alert_user_read'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['budget', 'kind'],
                condition=Q(is_read=False),
                name='uq_alert_budget_kind_unread',
            ),
        ]

    def __str__(self):
        return f"{self.get_kind_display()}: {self.budget_id} ({self.created_at:%Y-%m-%d})"
