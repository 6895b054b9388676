# farm/tests/test_farm_postings.py

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from django.test import TestCase

from accounting.models.allocation import AllocationRow
from accounting.models.ledger import LedgerEntry
from accounting.models.share_rule import ShareRule
from accounting.services import share_rule_service
from accounting.services.exceptions import (
    CropCycleClosedError,
    DocumentStateError,
    PostingDateOutOfRangeError,
    ShareRuleInUseError,
    ValidationFault,
)
from accounting.tests.factories import account_net, group_totals, make_crop_cycle, make_party, make_project, make_tenant
from farm.models import CropCycle, LandLeaseAccrual, MachineryCharge, OperationalTransaction, Party, Settlement
from farm.services.posting_service import (
    post_lease_accrual,
    post_machinery_charge,
    post_operational_transaction,
    post_settlement,
    reverse_lease_accrual,
    reverse_machinery_charge,
    reverse_operational_transaction,
    reverse_settlement,
)


class OperationalTransactionTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant()
        self.cycle = make_crop_cycle(self.tenant)
        self.hari = make_party(self.tenant, "Ali Hari", Party.HARI)
        self.landlord = make_party(self.tenant, "Sardar Landlord", Party.LANDLORD)
        self.project = make_project(self.tenant, self.cycle, party=self.hari)

    def _txn(self, classification, *, txn_type=OperationalTransaction.EXPENSE, amount="100.00", **kwargs):
        kwargs.setdefault("project", self.project)
        return OperationalTransaction.objects.create(
            tenant=self.tenant,
            crop_cycle=kwargs.pop("crop_cycle", self.cycle),
            transaction_date=kwargs.pop("transaction_date", date(2024, 5, 1)),
            transaction_type=txn_type,
            classification=classification,
            amount=Decimal(amount),
            **kwargs,
        )

    def test_shared_expense(self):
        group = post_operational_transaction(transaction=self._txn(OperationalTransaction.SHARED))

        self.assertEqual(account_net(self.tenant, "EXP_SHARED"), Decimal("100.00"))
        self.assertEqual(account_net(self.tenant, "CASH"), Decimal("-100.00"))
        self.assertEqual(group.crop_cycle_id, self.cycle.pk)

        row = AllocationRow.objects.get(posting_group=group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.POOL_SHARE)
        self.assertEqual(row.project_id, self.project.pk)
        self.assertEqual(row.party_id, self.hari.pk)
        self.assertEqual(row.rule_snapshot["classification"], OperationalTransaction.SHARED)

    def test_hari_only_expense_charges_project_hari(self):
        group = post_operational_transaction(transaction=self._txn(OperationalTransaction.HARI_ONLY))

        row = AllocationRow.objects.get(posting_group=group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.HARI_ONLY)
        self.assertEqual(row.party_id, self.hari.pk)
        self.assertEqual(account_net(self.tenant, "EXP_HARI_ONLY"), Decimal("100.00"))

    def test_landlord_only_expense(self):
        group = post_operational_transaction(
            transaction=self._txn(OperationalTransaction.LANDLORD_ONLY, landlord=self.landlord)
        )

        row = AllocationRow.objects.get(posting_group=group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.LANDLORD_ONLY)
        self.assertEqual(row.party_id, self.landlord.pk)

    def test_landlord_only_needs_a_landlord(self):
        with self.assertRaises(ValidationFault):
            post_operational_transaction(transaction=self._txn(OperationalTransaction.LANDLORD_ONLY))
        with self.assertRaises(ValidationFault):
            post_operational_transaction(
                transaction=self._txn(OperationalTransaction.LANDLORD_ONLY, landlord=self.hari)
            )

    def test_unattributed_overhead_still_reconciles(self):
        group = post_operational_transaction(
            transaction=self._txn(OperationalTransaction.FARM_OVERHEAD, project=None, amount="75.50")
        )

        row = AllocationRow.objects.get(posting_group=group)
        self.assertEqual(row.amount, Decimal("75.50"))
        self.assertIsNone(row.party_id)
        self.assertIsNone(row.project_id)
        self.assertEqual(account_net(self.tenant, "EXP_FARM_OVERHEAD"), Decimal("75.50"))

    def test_expense_without_project_rejected(self):
        with self.assertRaises(ValidationFault):
            post_operational_transaction(transaction=self._txn(OperationalTransaction.SHARED, project=None))

    def test_income_credits_project_revenue(self):
        group = post_operational_transaction(
            transaction=self._txn(OperationalTransaction.SHARED, txn_type=OperationalTransaction.INCOME)
        )

        self.assertEqual(account_net(self.tenant, "CASH"), Decimal("100.00"))
        self.assertEqual(account_net(self.tenant, "PROJECT_REVENUE"), Decimal("-100.00"))
        row = AllocationRow.objects.get(posting_group=group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.POOL_REVENUE)

    def test_closed_crop_cycle_rejects_posting(self):
        CropCycle.objects.filter(pk=self.cycle.pk).update(status=CropCycle.CLOSED)
        with self.assertRaises(CropCycleClosedError):
            post_operational_transaction(transaction=self._txn(OperationalTransaction.SHARED))

    def test_date_outside_crop_cycle_rejected(self):
        with self.assertRaises(PostingDateOutOfRangeError):
            post_operational_transaction(
                transaction=self._txn(OperationalTransaction.SHARED, transaction_date=date(2025, 1, 5))
            )

    def test_reversal_marks_document_and_nets_out(self):
        txn = self._txn(OperationalTransaction.SHARED)
        post_operational_transaction(transaction=txn)

        reversal = reverse_operational_transaction(transaction=txn, reversal_date=date(2024, 5, 2), reason="duplicate")

        txn.refresh_from_db()
        self.assertEqual(txn.status, OperationalTransaction.REVERSED)
        self.assertEqual(txn.reversal_posting_group_id, reversal.pk)
        self.assertEqual(account_net(self.tenant, "EXP_SHARED"), Decimal("0.00"))


class SettlementTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant()
        self.cycle = make_crop_cycle(self.tenant)
        self.hari = make_party(self.tenant, "Ali Hari", Party.HARI)
        self.landlord = make_party(self.tenant, "Sardar Landlord", Party.LANDLORD)
        self.project = make_project(self.tenant, self.cycle, party=self.hari)

    def _settlement(self, *, shares=(), share_rule=None, pool="1000.00"):
        return Settlement.objects.create(
            tenant=self.tenant,
            project=self.project,
            crop_cycle=self.cycle,
            settlement_date=date(2024, 11, 30),
            pool_amount=Decimal(pool),
            shares=list(shares),
            share_rule=share_rule,
        )

    def _control(self, group, code):
        return LedgerEntry.objects.get(posting_group=group, account__code=code)

    def test_inline_shares_credit_party_control_accounts(self):
        settlement = self._settlement(
            shares=[
                {"party_id": str(self.hari.pk), "percentage": "40"},
                {"party_id": str(self.landlord.pk), "percentage": "60"},
            ]
        )
        group = post_settlement(settlement=settlement)

        self.assertEqual(group_totals(group), (Decimal("1000.00"), Decimal("1000.00")))
        hari_line = self._control(group, "PARTY_CONTROL_HARI")
        self.assertEqual(hari_line.credit_amount, Decimal("400.00"))
        self.assertEqual(hari_line.party_id, self.hari.pk)
        self.assertEqual(self._control(group, "PARTY_CONTROL_LANDLORD").credit_amount, Decimal("600.00"))

        rows = AllocationRow.objects.filter(posting_group=group).order_by("amount")
        self.assertEqual([r.amount for r in rows], [Decimal("400.00"), Decimal("600.00")])
        self.assertEqual(rows[0].rule_snapshot["settlement_id"], str(settlement.pk))
        self.assertEqual(rows[0].rule_snapshot["role"], "HARI")

    def test_uneven_split_sums_exactly(self):
        settlement = self._settlement(
            pool="100.00",
            shares=[
                {"party_id": str(self.hari.pk), "percentage": "33.3333"},
                {"party_id": str(self.landlord.pk), "percentage": "66.6667"},
            ],
        )
        group = post_settlement(settlement=settlement)

        debit, credit = group_totals(group)
        self.assertEqual(debit, credit)
        self.assertEqual(self._control(group, "PARTY_CONTROL_HARI").credit_amount, Decimal("33.33"))
        self.assertEqual(self._control(group, "PARTY_CONTROL_LANDLORD").credit_amount, Decimal("66.67"))

    def test_settlement_by_share_rule(self):
        rule = share_rule_service.create_share_rule(
            tenant=self.tenant,
            name="Batai 50/50",
            applies_to=ShareRule.AppliesTo.CROP_CYCLE,
            crop_cycle=self.cycle,
            effective_from=date(2024, 1, 1),
            lines=[
                {"party_id": self.hari.pk, "percentage": "50", "role": "HARI"},
                {"party_id": self.landlord.pk, "percentage": "50", "role": "LANDLORD"},
            ],
        )
        group = post_settlement(settlement=self._settlement(share_rule=rule))

        self.assertEqual(self._control(group, "PARTY_CONTROL_HARI").credit_amount, Decimal("500.00"))
        snap = AllocationRow.objects.filter(posting_group=group).first().rule_snapshot
        self.assertEqual(snap["share_rule_version"], rule.version)
        self.assertEqual(snap["resolution_method"], "explicit")

        with self.assertRaises(ShareRuleInUseError):
            share_rule_service.update_share_rule(rule=rule, lines=[{"party_id": self.hari.pk, "percentage": "100"}])

    def test_settlement_resolves_rule_when_none_given(self):
        share_rule_service.create_share_rule(
            tenant=self.tenant,
            name="Batai",
            applies_to=ShareRule.AppliesTo.CROP_CYCLE,
            crop_cycle=self.cycle,
            effective_from=date(2024, 1, 1),
            lines=[
                {"party_id": self.hari.pk, "percentage": "25", "role": "HARI"},
                {"party_id": self.landlord.pk, "percentage": "75", "role": "LANDLORD"},
            ],
        )
        group = post_settlement(settlement=self._settlement())

        self.assertEqual(self._control(group, "PARTY_CONTROL_LANDLORD").credit_amount, Decimal("750.00"))

    def test_shares_and_rule_together_rejected(self):
        rule = share_rule_service.create_share_rule(
            tenant=self.tenant,
            name="Batai",
            applies_to=ShareRule.AppliesTo.CROP_CYCLE,
            crop_cycle=self.cycle,
            effective_from=date(2024, 1, 1),
            lines=[{"party_id": self.hari.pk, "percentage": "100", "role": "HARI"}],
        )
        settlement = self._settlement(
            share_rule=rule,
            shares=[{"party_id": str(self.hari.pk), "percentage": "100"}],
        )
        with self.assertRaises(ValidationFault):
            post_settlement(settlement=settlement)

    def test_unknown_share_party_rejected(self):
        settlement = self._settlement(shares=[{"party_id": str(uuid.uuid4()), "percentage": "100"}])
        with self.assertRaises(ValidationFault):
            post_settlement(settlement=settlement)

    def test_share_role_without_control_account_rejected(self):
        customer = make_party(self.tenant, "Grain Traders", Party.CUSTOMER)
        settlement = self._settlement(shares=[{"party_id": str(customer.pk), "percentage": "100"}])
        with self.assertRaises(ValidationFault):
            post_settlement(settlement=settlement)

    def test_reversing_settlement_negates_rows(self):
        settlement = self._settlement(
            shares=[
                {"party_id": str(self.hari.pk), "percentage": "40"},
                {"party_id": str(self.landlord.pk), "percentage": "60"},
            ]
        )
        post_settlement(settlement=settlement)

        reversal = reverse_settlement(settlement=settlement, reversal_date=date(2024, 11, 30))

        amounts = sorted(AllocationRow.objects.filter(posting_group=reversal).values_list("amount", flat=True))
        self.assertEqual(amounts, [Decimal("-600.00"), Decimal("-400.00")])
        self.assertEqual(account_net(self.tenant, "PARTY_CONTROL_HARI"), Decimal("0.00"))


class MachineryChargeTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant()
        self.cycle = make_crop_cycle(self.tenant)
        self.hari = make_party(self.tenant, "Ali Hari", Party.HARI)
        self.owner = make_party(self.tenant, "Sardar Landlord", Party.LANDLORD)
        self.project = make_project(self.tenant, self.cycle, party=self.hari)

    def _charge(self, amount="450.00", **kwargs):
        return MachineryCharge.objects.create(
            tenant=self.tenant,
            crop_cycle=kwargs.pop("crop_cycle", self.cycle),
            project=self.project,
            owner=self.owner,
            charge_date=kwargs.pop("charge_date", date(2024, 6, 15)),
            machine="Tractor MF-385",
            amount=Decimal(amount),
            **kwargs,
        )

    def test_charge_debits_project_cost_and_credits_recovery(self):
        charge = self._charge(usage_quantity=Decimal("6"), unit="hour", rate=Decimal("75.00"))

        group = post_machinery_charge(charge=charge)

        self.assertEqual(group_totals(group), (Decimal("450.00"), Decimal("450.00")))
        self.assertEqual(account_net(self.tenant, "EXP_MACHINERY"), Decimal("450.00"))
        self.assertEqual(account_net(self.tenant, "MACHINERY_RECOVERY"), Decimal("-450.00"))

        row = AllocationRow.objects.get(posting_group=group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.MACHINERY_CHARGE)
        self.assertEqual(row.amount, Decimal("450.00"))
        self.assertEqual(row.party_id, self.owner.pk)
        self.assertEqual(row.project_id, self.project.pk)
        self.assertEqual(row.rule_snapshot["pool_scope"], MachineryCharge.SHARED)
        self.assertEqual(row.rule_snapshot["usage_quantity"], "6.000")

        charge.refresh_from_db()
        self.assertEqual(charge.status, MachineryCharge.POSTED)
        self.assertEqual(post_machinery_charge(charge=charge).pk, group.pk)

    def test_amount_must_match_usage_times_rate(self):
        charge = self._charge(amount="400.00", usage_quantity=Decimal("6"), rate=Decimal("75.00"))
        with self.assertRaises(ValidationFault):
            post_machinery_charge(charge=charge)

    def test_project_outside_crop_cycle_rejected(self):
        other_cycle = make_crop_cycle(self.tenant, name="Rabi 2024")
        with self.assertRaises(ValidationFault):
            post_machinery_charge(charge=self._charge(crop_cycle=other_cycle))

    def test_reversal_nets_out_and_blocks_reposting(self):
        charge = self._charge()
        post_machinery_charge(charge=charge)

        reversal = reverse_machinery_charge(charge=charge, reversal_date=date(2024, 6, 20), reason="wrong field")

        charge.refresh_from_db()
        self.assertEqual(charge.status, MachineryCharge.REVERSED)
        self.assertEqual(charge.reversal_posting_group_id, reversal.pk)
        self.assertEqual(AllocationRow.objects.get(posting_group=reversal).amount, Decimal("-450.00"))
        self.assertEqual(account_net(self.tenant, "EXP_MACHINERY"), Decimal("0.00"))

        with self.assertRaises(DocumentStateError):
            post_machinery_charge(charge=charge)


class LandLeaseAccrualTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant()
        self.cycle = make_crop_cycle(self.tenant)
        self.hari = make_party(self.tenant, "Ali Hari", Party.HARI)
        self.landlord = make_party(self.tenant, "Sardar Landlord", Party.LANDLORD)
        self.project = make_project(self.tenant, self.cycle, party=self.hari)

    def _accrual(self, *, landlord=None, amount="1200.00", **kwargs):
        return LandLeaseAccrual.objects.create(
            tenant=self.tenant,
            project=self.project,
            landlord=landlord or self.landlord,
            period_start=kwargs.pop("period_start", date(2024, 4, 1)),
            period_end=kwargs.pop("period_end", date(2024, 6, 30)),
            accrual_date=kwargs.pop("accrual_date", date(2024, 6, 30)),
            amount=Decimal(amount),
            land_parcel="Square 14",
            **kwargs,
        )

    def test_accrual_owes_rent_to_landlord(self):
        group = post_lease_accrual(accrual=self._accrual())

        self.assertEqual(group.crop_cycle_id, self.cycle.pk)
        self.assertEqual(account_net(self.tenant, "EXP_LAND_LEASE"), Decimal("1200.00"))
        control = LedgerEntry.objects.get(posting_group=group, account__code="PARTY_CONTROL_LANDLORD")
        self.assertEqual(control.credit_amount, Decimal("1200.00"))
        self.assertEqual(control.party_id, self.landlord.pk)

        row = AllocationRow.objects.get(posting_group=group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.LEASE_RENT)
        self.assertEqual(row.party_id, self.landlord.pk)
        self.assertEqual(row.project_id, self.project.pk)
        self.assertEqual(row.rule_snapshot["period_start"], "2024-04-01")

    def test_rent_accrues_only_to_a_landlord(self):
        with self.assertRaises(ValidationFault):
            post_lease_accrual(accrual=self._accrual(landlord=self.hari))

    def test_inverted_period_rejected(self):
        with self.assertRaises(ValidationFault):
            post_lease_accrual(accrual=self._accrual(period_start=date(2024, 7, 1)))

    def test_accrual_date_outside_crop_cycle_rejected(self):
        with self.assertRaises(PostingDateOutOfRangeError):
            post_lease_accrual(accrual=self._accrual(accrual_date=date(2025, 1, 15)))

    def test_reversal_clears_landlord_balance(self):
        accrual = self._accrual()
        post_lease_accrual(accrual=accrual)

        reverse_lease_accrual(accrual=accrual, reversal_date=date(2024, 7, 1))

        accrual.refresh_from_db()
        self.assertEqual(accrual.status, LandLeaseAccrual.REVERSED)
        self.assertEqual(account_net(self.tenant, "PARTY_CONTROL_LANDLORD"), Decimal("0.00"))
        self.assertEqual(account_net(self.tenant, "EXP_LAND_LEASE"), Decimal("0.00"))
