# core/forms.py
from django import forms

from .models import MAX_BUDGET_YEAR, MIN_BUDGET_YEAR


class BudgetCreateForm(forms.Form):
    """Форма создания бюджета. Без категории создаётся общий бюджет."""
    category_id = forms.IntegerField(required=False)
    planned_amount = forms.DecimalField(max_digits=12, decimal_places=2)
    year = forms.IntegerField(min_value=MIN_BUDGET_YEAR, max_value=MAX_BUDGET_YEAR)
    month = forms.IntegerField(min_value=1, max_value=12)


class PlannedAmountForm(forms.Form):
    """Форма изменения лимита."""
    planned_amount = forms.DecimalField(max_digits=12, decimal_places=2)


class PeriodForm(forms.Form):
    """Фильтр по месяцу: оба поля либо заданы, либо пусты."""
    year = forms.IntegerField(required=False, min_value=MIN_BUDGET_YEAR, max_value=MAX_BUDGET_YEAR)
    month = forms.IntegerField(required=False, min_value=1, max_value=12)

    def clean(self):
        cleaned_data = super().clean()
        if (cleaned_data.get('year') is None) != (cleaned_data.get('month') is None):
            raise forms.ValidationError('Укажите год и месяц вместе.')
        return cleaned_data
