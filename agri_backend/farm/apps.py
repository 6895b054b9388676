# farm/apps.py

from django.apps import AppConfig


class FarmConfig(AppConfig):
    name = "farm"
    verbose_name = "Farm operations"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from farm import posting_rules  # noqa: F401
