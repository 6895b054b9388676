# accounting/tests/test_chart_seed.py

from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase

from accounting.models.account import Account
from accounting.models.tenant import Tenant
from accounting.services.chart_seed import FARM_CHART, seed_farm_chart


class ChartSeedTests(TestCase):
    def test_seed_is_idempotent_and_repairs_drift(self):
        tenant = Tenant.objects.create(slug="green-acres", name="Green Acres")

        self.assertEqual(seed_farm_chart(tenant=tenant), (len(FARM_CHART), 0))

        Account.objects.filter(tenant=tenant, code="CASH").update(name="Petty cash", is_active=False)
        self.assertEqual(seed_farm_chart(tenant=tenant), (0, 1))

        cash = Account.objects.get(tenant=tenant, code="CASH")
        self.assertEqual(cash.name, "Cash on Hand")
        self.assertTrue(cash.is_active)

    def test_seed_logs_counts_at_info(self):
        tenant = Tenant.objects.create(slug="green-acres", name="Green Acres")

        with self.assertLogs("accounting.services.chart_seed", level="INFO") as cm:
            seed_farm_chart(tenant=tenant)

        record = cm.records[0]
        self.assertEqual(record.getMessage(), "Farm chart seeded")
        self.assertEqual(record.accounts_created, len(FARM_CHART))
        self.assertEqual(record.accounts_updated, 0)
        self.assertEqual(record.tenant_id, str(tenant.pk))

    def test_command_creates_tenant_and_chart(self):
        out = StringIO()
        call_command("seed_farm_chart", "Canal-Farm", "--name", "Canal Farm", stdout=out)

        tenant = Tenant.objects.get(slug="canal-farm")
        self.assertEqual(tenant.name, "Canal Farm")
        self.assertEqual(Account.objects.filter(tenant=tenant).count(), len(FARM_CHART))
        self.assertIn("Farm chart seeded", out.getvalue())

    def test_command_no_create_rejects_unknown_tenant(self):
        with self.assertRaises(CommandError):
            call_command("seed_farm_chart", "nowhere", "--no-create", stdout=StringIO())
