# core/views.py
"""
JSON-представления для бюджетов и уведомлений.

Вся логика в core.services и core.alerts; здесь только разбор запроса,
вызов сервиса и сериализация ответа.
"""

import logging
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from . import alerts, engine, services
from .exceptions import BudgetValidationError, DuplicateBudgetError, NotFoundError, RecomputationFailure
from .forms import BudgetCreateForm, PeriodForm, PlannedAmountForm

logger = logging.getLogger(__name__)


def budget_to_dict(budget):
    return {
        'id': budget.pk,
        'category_id': budget.category_id,
        'category_name': budget.category_name,
        'planned_amount': str(budget.planned_amount),
        'spent_amount': str(budget.spent_amount),
        'remaining_amount': str(budget.remaining_amount),
        'spent_percentage': str(budget.spent_percentage),
        'is_over_budget': budget.is_over_budget,
        'is_near_limit': budget.is_near_limit(alerts.warning_threshold()),
        'is_general': budget.is_general,
        'year': budget.year,
        'month': budget.month,
        'period': budget.period,
    }


def alert_to_dict(alert):
    return {
        'id': alert.pk,
        'budget_id': alert.budget_id,
        'message': alert.message,
        'kind': alert.kind,
        'threshold_percentage': alert.threshold_percentage,
        'is_read': alert.is_read,
        'created_at': alert.created_at.isoformat(),
    }


def _form_error(form):
    return JsonResponse({'errors': form.errors.get_json_data()}, status=400)


def handle_service_errors(view):
    """Переводит ошибки сервисов в HTTP-ответы."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except NotFoundError as exc:
            return JsonResponse({'error': str(exc)}, status=404)
        except DuplicateBudgetError as exc:
            return JsonResponse({'error': exc.messages[0], 'code': exc.code}, status=409)
        except BudgetValidationError as exc:
            return JsonResponse({'error': exc.messages[0], 'code': exc.code}, status=400)
        except RecomputationFailure:
            logger.exception("Budget recomputation failed")
            return JsonResponse({'error': 'Пересчёт бюджетов временно недоступен.'}, status=503)
    return wrapper


@login_required
@require_http_methods(['GET', 'POST'])
@handle_service_errors
def budget_list(request):
    """Список бюджетов (можно отфильтровать по ?year=&month=) и создание нового."""
    if request.method == 'POST':
        form = BudgetCreateForm(request.POST)
        if not form.is_valid():
            return _form_error(form)
        data = form.cleaned_data
        if data['category_id'] is None:
            budget = services.create_general_budget(
                request.user, data['planned_amount'], data['year'], data['month'],
            )
        else:
            budget = services.create_category_budget(
                request.user, data['category_id'], data['planned_amount'], data['year'], data['month'],
            )
        return JsonResponse(budget_to_dict(budget), status=201)

    form = PeriodForm(request.GET)
    if not form.is_valid():
        return _form_error(form)
    year, month = form.cleaned_data['year'], form.cleaned_data['month']
    if year is None:
        budgets = services.list_budgets(request.user)
    else:
        budgets = services.find_budgets_by_period(request.user, year, month)
    return JsonResponse({'budgets': [budget_to_dict(b) for b in budgets]})


@login_required
@require_http_methods(['GET', 'POST', 'DELETE'])
@handle_service_errors
def budget_detail(request, pk):
    """Просмотр, изменение лимита (POST) и удаление (DELETE) бюджета."""
    if request.method == 'DELETE':
        services.delete_budget(request.user, pk)
        return JsonResponse({'deleted': pk})

    if request.method == 'POST':
        form = PlannedAmountForm(request.POST)
        if not form.is_valid():
            return _form_error(form)
        budget = services.update_planned_amount(request.user, pk, form.cleaned_data['planned_amount'])
    else:
        budget = services.get_budget(request.user, pk)
    return JsonResponse(budget_to_dict(budget))


@login_required
@require_GET
@handle_service_errors
def general_budget(request, year, month):
    budget = services.find_general_budget(request.user, year, month)
    if budget is None:
        return JsonResponse({'found': False, 'year': year, 'month': month})
    return JsonResponse({'found': True, 'budget': budget_to_dict(budget)})


@login_required
@require_GET
def current_month_budgets(request):
    budgets = services.find_current_month_budgets(request.user)
    return JsonResponse({'budgets': [budget_to_dict(b) for b in budgets]})


@login_required
@require_GET
@handle_service_errors
def budget_summary(request, year, month):
    """Бюджеты месяца против фактических расходов."""
    rows = services.get_budget_vs_actual(request.user, year, month)
    summary = []
    for row in rows:
        summary.append({
            'category_name': row['category_name'],
            'budget_amount': str(row['budget_amount']),
            'actual_amount': str(row['actual_amount']),
            'difference': str(row['difference']),
            'spent_percentage': str(row['spent_percentage']),
            'is_over_budget': row['is_over_budget'],
        })
    return JsonResponse({'summary': summary})


@login_required
@require_POST
@handle_service_errors
def recompute_budgets(request, year, month):
    """Принудительный пересчёт израсходованных сумм за месяц."""
    services.validate_period(year, month)
    changed = engine.update_spent_amounts(request.user, year, month)
    return JsonResponse({'year': year, 'month': month, 'updated': [b.pk for b in changed]})


@login_required
@require_GET
def alert_list(request):
    return JsonResponse({'alerts': [alert_to_dict(a) for a in alerts.list_alerts(request.user)]})


@login_required
@require_GET
def unread_alerts(request):
    return JsonResponse({'alerts': [alert_to_dict(a) for a in alerts.list_unread(request.user)]})


@login_required
@require_GET
def unread_alert_count(request):
    count = alerts.count_unread(request.user)
    return JsonResponse({'count': count, 'has_unread': count > 0})


@login_required
@require_POST
@handle_service_errors
def alert_mark_read(request, pk):
    alert = alerts.mark_read(request.user, pk)
    return JsonResponse(alert_to_dict(alert))


@login_required
@require_POST
def alert_mark_all_read(request):
    return JsonResponse({'marked': alerts.mark_all_read(request.user)})


@login_required
@require_POST
@handle_service_errors
def alert_delete(request, pk):
    alerts.delete_alert(request.user, pk)
    return JsonResponse({'deleted': pk})


@login_required
@require_POST
def alert_cleanup(request):
    return JsonResponse({'deleted': alerts.cleanup_old_alerts(request.user)})
