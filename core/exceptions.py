# core/exceptions.py
"""
Ошибки бюджетов и уведомлений.

Ошибки валидации наследуют django ValidationError, поэтому формы и
представления обрабатывают их так же, как любые другие ошибки валидации.
NotFoundError наследует ObjectDoesNotExist: чужой объект и отсутствующий
объект неразличимы для вызывающего кода.
"""

from django.core.exceptions import ObjectDoesNotExist, ValidationError


class BudgetValidationError(ValidationError):
    default_message = 'Некорректные данные бюджета.'
    default_code = 'invalid_budget'

    def __init__(self, message=None):
        super().__init__(message or self.default_message, code=self.default_code)


class InvalidAmountError(BudgetValidationError):
    default_message = 'Плановая сумма должна быть больше нуля.'
    default_code = 'invalid_amount'


class InvalidPeriodError(BudgetValidationError):
    default_message = 'Некорректный период бюджета.'
    default_code = 'invalid_period'


class DuplicateBudgetError(BudgetValidationError):
    default_message = 'Бюджет на этот период уже существует.'
    default_code = 'duplicate_budget'


class CategoryTypeMismatchError(BudgetValidationError):
    default_message = 'Бюджет можно создать только для категории расходов.'
    default_code = 'category_type_mismatch'


class NotFoundError(ObjectDoesNotExist):
    pass


class RecomputationFailure(Exception):
    """Не удалось пересчитать израсходованные суммы (ошибка чтения или записи)."""
