# core/urls.py
from django.urls import path
from . import views

urlpatterns = [
    path('budgets/', views.budget_list, name='budget_list'),
    path('budgets/current/', views.current_month_budgets, name='budget_current'),
    path('budgets/<int:pk>/', views.budget_detail, name='budget_detail'),
    path('budgets/general/<int:year>/<int:month>/', views.general_budget, name='budget_general'),
    path('budgets/summary/<int:year>/<int:month>/', views.budget_summary, name='budget_summary'),
    path('budgets/recompute/<int:year>/<int:month>/', views.recompute_budgets, name='budget_recompute'),
    path('alerts/', views.alert_list, name='alert_list'),
    path('alerts/unread/', views.unread_alerts, name='alert_unread'),
    path('alerts/unread/count/', views.unread_alert_count, name='alert_unread_count'),
    path('alerts/read-all/', views.alert_mark_all_read, name='alert_mark_all_read'),
    path('alerts/cleanup/', views.alert_cleanup, name='alert_cleanup'),
    path('alerts/<int:pk>/read/', views.alert_mark_read, name='alert_mark_read'),
    path('alerts/<int:pk>/delete/', views.alert_delete, name='alert_delete'),
]
