from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'core'
    verbose_name = 'Личные финансы'

    def ready(self):
        # Подписка бюджетов на изменения транзакций
        from . import signals  # noqa: F401
