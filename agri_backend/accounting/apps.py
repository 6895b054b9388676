# accounting/apps.py

from django.apps import AppConfig


class AccountingConfig(AppConfig):
    name = "accounting"
    verbose_name = "Accounting"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        # Registers the posting rules owned by this app.
        from accounting.services import posting_rules  # noqa: F401
