# subledger/apps.py

from django.apps import AppConfig


class SubledgerConfig(AppConfig):
    name = "subledger"
    verbose_name = "Receivables & payables"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from subledger import posting_rules  # noqa: F401
