# accounting/tests/test_allocation_calculator.py

from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.test import TestCase

from accounting.models.allocation import AllocationRow
from accounting.models.share_rule import ShareRule
from accounting.services import allocation_calculator, share_rule_service
from accounting.services.allocation_calculator import (
    FULL_PARTY,
    PROPORTIONAL_BY_QUANTITY,
    SHARED_BY_PERCENTAGE,
    SHARED_BY_RULE,
    AllocationInstruction,
    QuantityLine,
    split_by_weights,
)
from accounting.services.exceptions import ShareRuleError, ShareRuleInUseError, ValidationFault
from accounting.tests.factories import make_crop_cycle, make_party, make_project, make_tenant
from farm.models import Party

PROFIT_SHARE = AllocationRow.AllocationType.PROFIT_SHARE


class SplitByWeightsTests(TestCase):
    def test_pool_split_by_quantity(self):
        self.assertEqual(
            split_by_weights(Decimal("300.00"), [Decimal("10"), Decimal("20")]),
            [Decimal("100.00"), Decimal("200.00")],
        )

    def test_leftover_cents_go_to_largest_remainders_in_input_order(self):
        parts = split_by_weights(Decimal("100.00"), [Decimal("1"), Decimal("1"), Decimal("1")])
        self.assertEqual(parts, [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")])
        self.assertEqual(sum(parts), Decimal("100.00"))

    def test_tiny_pool_never_yields_a_negative_share(self):
        parts = split_by_weights(Decimal("0.04"), [Decimal("1")] * 6)

        self.assertEqual(parts, [Decimal("0.01")] * 4 + [Decimal("0.00")] * 2)
        self.assertTrue(all(p >= 0 for p in parts))
        self.assertEqual(sum(parts), Decimal("0.04"))

    def test_negative_pool_keeps_sign_on_every_share(self):
        parts = split_by_weights(Decimal("-10.00"), [Decimal("1"), Decimal("2")])
        self.assertEqual(parts, [Decimal("-3.33"), Decimal("-6.67")])

    def test_nan_weight_rejected(self):
        with self.assertRaises(ValidationFault):
            split_by_weights(Decimal("10.00"), [Decimal("1"), Decimal("NaN")])

    def test_zero_total_weight_rejected(self):
        with self.assertRaises(ValidationFault):
            split_by_weights(Decimal("10.00"), [Decimal("0"), Decimal("0")])


class AllocationCalculatorTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant()
        self.cycle = make_crop_cycle(self.tenant)
        self.hari = make_party(self.tenant, "Ali Hari", Party.HARI)
        self.landlord = make_party(self.tenant, "Sardar Landlord", Party.LANDLORD)
        self.project = make_project(self.tenant, self.cycle, party=self.hari)

    def _calc(self, **kwargs):
        return allocation_calculator.calculate(
            AllocationInstruction(allocation_type=PROFIT_SHARE, **kwargs),
            tenant=self.tenant,
            posting_date=date(2024, 6, 1),
        )

    def test_full_party_takes_whole_amount(self):
        rows = self._calc(mode=FULL_PARTY, amount=Decimal("300.00"), party_id=self.hari.pk)

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].amount, Decimal("300.00"))
        self.assertEqual(rows[0].rule_snapshot["percentage"], "100")

    def test_full_party_needs_a_target(self):
        with self.assertRaises(ValidationFault):
            self._calc(mode=FULL_PARTY, amount=Decimal("300.00"))

    def test_proportional_by_quantity_300_into_100_and_200(self):
        rows = self._calc(
            mode=PROPORTIONAL_BY_QUANTITY,
            amount=Decimal("300.00"),
            quantities=(QuantityLine(quantity=Decimal("10")), QuantityLine(quantity=Decimal("20"))),
        )

        self.assertEqual([r.amount for r in rows], [Decimal("100.00"), Decimal("200.00")])
        self.assertEqual(sum(r.amount for r in rows), Decimal("300.00"))
        self.assertEqual(rows[1].rule_snapshot["line_quantity"], "20")
        self.assertEqual(rows[1].rule_snapshot["total_quantity"], "30")

    def test_proportional_rejects_non_positive_quantity(self):
        with self.assertRaises(ValidationFault):
            self._calc(
                mode=PROPORTIONAL_BY_QUANTITY,
                amount=Decimal("300.00"),
                quantities=(QuantityLine(quantity=Decimal("10")), QuantityLine(quantity=Decimal("0"))),
            )

    def test_proportional_rejects_nan_quantity(self):
        with self.assertRaises(ValidationFault):
            self._calc(
                mode=PROPORTIONAL_BY_QUANTITY,
                amount=Decimal("300.00"),
                quantities=(QuantityLine(quantity=Decimal("10")), QuantityLine(quantity=Decimal("NaN"))),
            )

    def test_shared_by_percentage(self):
        rows = self._calc(
            mode=SHARED_BY_PERCENTAGE,
            amount=Decimal("1000.00"),
            shares=(
                {"party_id": str(self.hari.pk), "percentage": "40", "role": "HARI"},
                {"party_id": str(self.landlord.pk), "percentage": "60", "role": "LANDLORD"},
            ),
            with_control_accounts=True,
        )

        self.assertEqual([r.amount for r in rows], [Decimal("400.00"), Decimal("600.00")])
        self.assertEqual(rows[0].rule_snapshot["control_account_code"], "PARTY_CONTROL_HARI")
        self.assertEqual(rows[1].rule_snapshot["control_account_code"], "PARTY_CONTROL_LANDLORD")
        self.assertEqual(len(rows[0].rule_snapshot["shares"]), 2)

    def test_percentages_must_sum_to_hundred(self):
        with self.assertRaises(ShareRuleError):
            self._calc(
                mode=SHARED_BY_PERCENTAGE,
                amount=Decimal("1000.00"),
                shares=(
                    {"party_id": str(self.hari.pk), "percentage": "40"},
                    {"party_id": str(self.landlord.pk), "percentage": "50"},
                ),
            )

    def test_unknown_mode_rejected(self):
        with self.assertRaises(ValidationFault):
            self._calc(mode="EVENLY", amount=Decimal("10.00"), party_id=self.hari.pk)

    # --------------------------------------------------
    # Share rules
    # --------------------------------------------------

    def _rule(self, *, pct_hari="50", pct_landlord="50", effective_from=date(2024, 1, 1), **kwargs):
        return share_rule_service.create_share_rule(
            tenant=self.tenant,
            name="Batai",
            applies_to=kwargs.pop("applies_to", ShareRule.AppliesTo.CROP_CYCLE),
            crop_cycle=kwargs.pop("crop_cycle", self.cycle),
            effective_from=effective_from,
            lines=[
                {"party_id": self.hari.pk, "percentage": pct_hari, "role": "HARI"},
                {"party_id": self.landlord.pk, "percentage": pct_landlord, "role": "LANDLORD"},
            ],
            **kwargs,
        )

    def test_shared_by_rule_resolves_and_snapshots_version(self):
        rule = self._rule()
        rows = self._calc(
            mode=SHARED_BY_RULE,
            amount=Decimal("500.00"),
            crop_cycle_id=self.cycle.pk,
            with_control_accounts=True,
        )

        self.assertEqual([r.amount for r in rows], [Decimal("250.00"), Decimal("250.00")])
        snap = rows[0].rule_snapshot
        self.assertEqual(snap["mode"], SHARED_BY_RULE)
        self.assertEqual(snap["share_rule_id"], str(rule.pk))
        self.assertEqual(snap["share_rule_version"], 1)
        self.assertEqual(snap["resolution_method"], "resolved")

    def test_project_rule_beats_crop_cycle_rule(self):
        self._rule()
        project_rule = self._rule(
            applies_to=ShareRule.AppliesTo.PROJECT,
            project=self.project,
            crop_cycle=None,
            pct_hari="30",
            pct_landlord="70",
        )

        rows = self._calc(
            mode=SHARED_BY_RULE,
            amount=Decimal("100.00"),
            project_id=self.project.pk,
            crop_cycle_id=self.cycle.pk,
        )
        self.assertEqual(rows[0].rule_snapshot["share_rule_id"], str(project_rule.pk))
        self.assertEqual([r.amount for r in rows], [Decimal("30.00"), Decimal("70.00")])

    def test_no_rule_in_effect(self):
        self._rule(effective_from=date(2024, 7, 1))
        with self.assertRaises(ShareRuleError):
            self._calc(mode=SHARED_BY_RULE, amount=Decimal("100.00"), crop_cycle_id=self.cycle.pk)

    def test_overlapping_active_rules_rejected(self):
        self._rule()
        with self.assertRaises(ShareRuleError):
            self._rule(effective_from=date(2024, 3, 1))

    def test_versions_increment_per_scope(self):
        first = self._rule(effective_to=date(2024, 5, 31))
        second = self._rule(effective_from=date(2024, 6, 1))
        self.assertEqual((first.version, second.version), (1, 2))

    def test_rule_resolution_skips_sale_rules_unless_asked(self):
        sale_rule = self._rule(applies_to=ShareRule.AppliesTo.SALE, crop_cycle=None)
        self.assertIsNone(
            share_rule_service.resolve_share_rule(tenant=self.tenant, on_date=date(2024, 6, 1), crop_cycle=self.cycle)
        )
        resolved = share_rule_service.resolve_share_rule(
            tenant=self.tenant, on_date=date(2024, 6, 1), include_sale_rules=True
        )
        self.assertEqual(resolved.pk, sale_rule.pk)

    def test_rule_used_by_posting_is_frozen(self):
        from accounting.models.posting_group import PostingGroup
        from accounting.services import posting_engine
        from accounting.services.posting_engine import PostingLine

        rule = self._rule()
        posting_engine.post(
            tenant=self.tenant,
            source_type=PostingGroup.SourceType.SETTLEMENT,
            source_id="settle-1",
            posting_date=date(2024, 6, 1),
            lines=[
                PostingLine("PROFIT_DISTRIBUTION", debit=Decimal("100.00")),
                PostingLine("PARTY_CONTROL_HARI", credit=Decimal("50.00"), party_id=self.hari.pk),
                PostingLine("PARTY_CONTROL_LANDLORD", credit=Decimal("50.00"), party_id=self.landlord.pk),
            ],
            allocations=[
                AllocationInstruction(
                    mode=SHARED_BY_RULE,
                    amount=Decimal("100.00"),
                    allocation_type=PROFIT_SHARE,
                    share_rule_id=rule.pk,
                    with_control_accounts=True,
                )
            ],
        )

        with self.assertRaises(ShareRuleInUseError):
            share_rule_service.update_share_rule(rule=rule, name="Batai (edited)")

        row = AllocationRow.objects.filter(rule_snapshot__share_rule_id=str(rule.pk)).first()
        self.assertEqual(row.rule_snapshot["percentage"], "50.0000")
