# ledger/apps.py
from django.apps import AppConfig
from django.conf import settings


class LedgerAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'ledger'
    verbose_name = 'Lending Ledger'

    def ready(self):
        from .config import LedgerSettings

        # Built once per process; everything downstream receives this object
        self.ledger_settings = LedgerSettings.from_django_settings(settings)
