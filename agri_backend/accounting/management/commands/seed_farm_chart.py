# accounting/management/commands/seed_farm_chart.py

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from accounting.models.tenant import Tenant
from accounting.services.chart_seed import seed_farm_chart


class Command(BaseCommand):
    help = "Seed the standard farm chart of accounts for a tenant (creating the tenant if needed)"

    def add_arguments(self, parser):
        parser.add_argument("slug", help="Tenant slug")
        parser.add_argument("--name", default="", help="Tenant display name (used when creating)")
        parser.add_argument(
            "--no-create",
            action="store_true",
            help="Fail instead of creating a missing tenant",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        slug = (options["slug"] or "").strip().lower()
        if not slug:
            raise CommandError("Tenant slug is required.")

        tenant = Tenant.objects.filter(slug=slug).first()
        if tenant is None:
            if options["no_create"]:
                raise CommandError(f"Tenant {slug!r} does not exist.")
            tenant = Tenant.objects.create(slug=slug, name=(options["name"] or slug).strip())
            self.stdout.write(f"Created tenant {tenant.name} ({tenant.pk})")

        self.stdout.write(f"Seeding farm chart for {tenant.name}...")
        created, updated = seed_farm_chart(tenant=tenant)

        self.stdout.write(
            self.style.SUCCESS(f"Farm chart seeded ({created} new accounts, {updated} updated).")
        )
