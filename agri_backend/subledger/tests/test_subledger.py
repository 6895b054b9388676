# subledger/tests/test_subledger.py

from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.test import TestCase

from accounting.models.allocation import AllocationRow
from accounting.models.posting_group import PostingGroup
from accounting.services.exceptions import (
    ActiveAllocationsError,
    DocumentStateError,
    OverApplicationError,
    StateConflict,
    ValidationFault,
)
from accounting.tests.factories import (
    Ledger,
    account_net,
    make_invoice,
    make_item,
    make_party,
    make_payment,
    make_tenant,
)
from farm.models import Party
from inventory.models import StockBalance
from subledger.models import Invoice, Payment, PaymentAllocation
from subledger.services.aging_service import aging_report
from subledger.services.allocation_service import (
    apply_payment,
    invoice_open_balance,
    party_outstanding,
    payment_unapplied,
    unapply_payment,
)
from subledger.services.control_reconciliation_service import reconcile
from subledger.services.document_service import post_invoice, post_payment, reverse_invoice, reverse_payment


class PayablesTests(TestCase):
    """Goods receipt of 10 x 10.00 on 2024-01-10, due 2024-02-09."""

    def setUp(self):
        self.tenant = make_tenant()
        self.supplier = make_party(self.tenant, "Agro Supplies", Party.SUPPLIER)
        self.urea = make_item(self.tenant, "UREA")
        self.grn = make_invoice(
            self.tenant,
            ledger=Ledger.AP,
            party=self.supplier,
            invoice_date=date(2024, 1, 10),
            due_date=date(2024, 2, 9),
            reference="GRN-001",
            lines=[(self.urea, 10, "10.00")],
        )
        self.grn_group = post_invoice(invoice=self.grn)
        self.grn.refresh_from_db()

    def _pay(self, amount, *, on=date(2024, 1, 20), mode=Payment.FIFO, kind=Payment.PAYMENT):
        payment = make_payment(
            self.tenant,
            ledger=Ledger.AP,
            party=self.supplier,
            payment_date=on,
            amount=amount,
            apply_mode=mode,
            kind=kind,
        )
        post_payment(payment=payment)
        payment.refresh_from_db()
        return payment

    # --------------------------------------------------
    # Goods receipt
    # --------------------------------------------------

    def test_goods_receipt_posts_inventory_against_payable(self):
        self.assertEqual(self.grn.status, Invoice.POSTED)
        self.assertEqual(self.grn.amount, Decimal("100.00"))
        self.assertEqual(self.grn.posting_group_id, self.grn_group.pk)
        self.assertEqual(self.grn_group.source_type, PostingGroup.SourceType.GRN)

        self.assertEqual(account_net(self.tenant, "AP"), Decimal("-100.00"))
        self.assertEqual(account_net(self.tenant, "INVENTORY_INPUTS"), Decimal("100.00"))
        self.assertEqual(StockBalance.objects.get(item=self.urea).quantity, Decimal("10.000"))

        row = AllocationRow.objects.get(posting_group=self.grn_group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.INVENTORY_COST)
        self.assertEqual(row.amount, Decimal("100.00"))

    def test_reposting_returns_same_group(self):
        again = post_invoice(invoice=self.grn)

        self.assertEqual(again.pk, self.grn_group.pk)
        self.assertEqual(PostingGroup.objects.filter(source_type=PostingGroup.SourceType.GRN).count(), 1)
        self.assertEqual(StockBalance.objects.get(item=self.urea).quantity, Decimal("10.000"))

    def test_open_payable_after_receipt(self):
        self.assertEqual(invoice_open_balance(self.grn), Decimal("100.00"))
        self.assertEqual(
            party_outstanding(tenant=self.tenant, ledger=Ledger.AP, party=self.supplier), Decimal("100.00")
        )

    # --------------------------------------------------
    # Payments
    # --------------------------------------------------

    def test_fifo_payment_applies_on_post(self):
        payment = self._pay("40.00")

        self.assertEqual(account_net(self.tenant, "AP"), Decimal("-60.00"))
        self.assertEqual(account_net(self.tenant, "CASH"), Decimal("-40.00"))
        self.assertEqual(invoice_open_balance(self.grn), Decimal("60.00"))
        self.assertEqual(payment_unapplied(payment), Decimal("0.00"))

        allocation = PaymentAllocation.objects.get(payment=payment)
        self.assertEqual(allocation.invoice_id, self.grn.pk)
        self.assertEqual(allocation.allocation_date, date(2024, 1, 20))

        # Paying reduces the payable, so the party row is negative.
        row = AllocationRow.objects.get(posting_group=payment.posting_group)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.PARTY_BALANCE)
        self.assertEqual(row.amount, Decimal("-40.00"))

    def test_fifo_payment_above_outstanding_rejected(self):
        with self.assertRaises(OverApplicationError):
            self._pay("500.00")

        self.assertFalse(PostingGroup.objects.filter(source_type=PostingGroup.SourceType.PAYMENT).exists())
        self.assertTrue(issubclass(OverApplicationError, StateConflict))

    def test_manual_payment_stays_unapplied_until_applied(self):
        payment = self._pay("80.00", mode=Payment.MANUAL)
        self.assertEqual(payment_unapplied(payment), Decimal("80.00"))

        created = apply_payment(
            payment=payment,
            allocations=[{"invoice_id": str(self.grn.pk), "amount": "30.00"}],
            allocation_date=date(2024, 1, 25),
        )

        self.assertEqual(len(created), 1)
        self.assertEqual(payment_unapplied(payment), Decimal("50.00"))
        self.assertEqual(invoice_open_balance(self.grn), Decimal("70.00"))

    def test_manual_over_application_rejected(self):
        self._pay("40.00")
        payment = self._pay("80.00", mode=Payment.MANUAL)

        with self.assertRaises(OverApplicationError):
            apply_payment(
                payment=payment,
                allocations=[{"invoice_id": str(self.grn.pk), "amount": "70.00"}],
                allocation_date=date(2024, 1, 25),
            )
        self.assertFalse(PaymentAllocation.objects.filter(payment=payment).exists())

    def test_manual_allocation_beyond_payment_rejected(self):
        payment = self._pay("20.00", mode=Payment.MANUAL)
        with self.assertRaises(OverApplicationError):
            apply_payment(
                payment=payment,
                allocations=[{"invoice_id": str(self.grn.pk), "amount": "25.00"}],
                allocation_date=date(2024, 1, 25),
            )

    def test_allocation_cannot_precede_payment(self):
        payment = self._pay("20.00", mode=Payment.MANUAL)
        with self.assertRaises(ValidationFault):
            apply_payment(payment=payment, mode=Payment.FIFO, allocation_date=date(2024, 1, 19))

    def test_draft_payment_cannot_be_applied(self):
        payment = make_payment(
            self.tenant, ledger=Ledger.AP, party=self.supplier, payment_date=date(2024, 1, 20), amount="10.00"
        )
        with self.assertRaises(DocumentStateError):
            apply_payment(payment=payment, allocation_date=date(2024, 1, 20))

    def test_unapply_voids_rather_than_deletes(self):
        payment = self._pay("40.00")

        self.assertEqual(unapply_payment(payment=payment), 1)

        allocation = PaymentAllocation.objects.get(payment=payment)
        self.assertEqual(allocation.status, PaymentAllocation.VOID)
        self.assertIsNotNone(allocation.voided_at)
        self.assertEqual(invoice_open_balance(self.grn), Decimal("100.00"))
        self.assertEqual(payment_unapplied(payment), Decimal("40.00"))

    # --------------------------------------------------
    # Reversal guards
    # --------------------------------------------------

    def test_invoice_reversal_blocked_by_active_allocations(self):
        payment = self._pay("40.00")

        with self.assertRaises(ActiveAllocationsError):
            reverse_invoice(invoice=self.grn, reversal_date=date(2024, 1, 31))

        unapply_payment(payment=payment)
        reversal = reverse_invoice(invoice=self.grn, reversal_date=date(2024, 1, 31), reason="returned goods")

        self.grn.refresh_from_db()
        self.assertEqual(self.grn.status, Invoice.REVERSED)
        self.assertEqual(self.grn.reversal_posting_group_id, reversal.pk)
        self.assertEqual(StockBalance.objects.get(item=self.urea).quantity, Decimal("0.000"))

    def test_payment_reversal_blocked_until_unapplied(self):
        payment = self._pay("40.00")

        with self.assertRaises(ActiveAllocationsError):
            reverse_payment(payment=payment, reversal_date=date(2024, 1, 21))

        unapply_payment(payment=payment)
        reverse_payment(payment=payment, reversal_date=date(2024, 1, 21))
        self.assertEqual(account_net(self.tenant, "AP"), Decimal("-100.00"))

    def test_reversed_document_cannot_be_posted_again(self):
        reverse_invoice(invoice=self.grn, reversal_date=date(2024, 1, 31))
        with self.assertRaises(DocumentStateError):
            post_invoice(invoice=self.grn)

    # --------------------------------------------------
    # Aging
    # --------------------------------------------------

    def test_aging_respects_allocation_cutoff(self):
        self._pay("40.00")

        before = aging_report(tenant=self.tenant, ledger=Ledger.AP, as_of=date(2024, 1, 15))
        self.assertEqual(before["grand_total"], "100.00")
        self.assertEqual(before["totals"]["CURRENT"], "100.00")

        after = aging_report(tenant=self.tenant, ledger=Ledger.AP, as_of=date(2024, 3, 15))
        self.assertEqual(after["grand_total"], "60.00")
        self.assertEqual(after["totals"]["31_60"], "60.00")
        self.assertEqual(after["parties"][0]["party_name"], "Agro Supplies")

    def test_aging_excludes_invoices_posted_after_cutoff(self):
        report = aging_report(tenant=self.tenant, ledger=Ledger.AP, as_of=date(2024, 1, 9))
        self.assertEqual(report["parties"], [])
        self.assertEqual(report["grand_total"], "0.00")

    def test_aging_rejects_unknown_ledger(self):
        with self.assertRaises(ValidationFault):
            aging_report(tenant=self.tenant, ledger="GL", as_of=date(2024, 1, 15))

    # --------------------------------------------------
    # Control reconciliation
    # --------------------------------------------------

    def test_reconciles_after_fifo_payment(self):
        self._pay("40.00")

        data = reconcile(tenant=self.tenant, ledger=Ledger.AP, as_of=date(2024, 3, 15))
        self.assertTrue(data["reconciled"])
        self.assertEqual(data["subledger_open_total"], "60.00")
        self.assertEqual(data["gl_control_total"], "60.00")
        self.assertEqual(data["residual"], "0.00")

    def test_unapplied_payment_explains_the_delta(self):
        self._pay("40.00")
        manual = self._pay("25.00", on=date(2024, 2, 1), mode=Payment.MANUAL)

        data = reconcile(tenant=self.tenant, ledger=Ledger.AP, as_of=date(2024, 3, 15))
        self.assertEqual(data["subledger_open_total"], "60.00")
        self.assertEqual(data["gl_control_total"], "35.00")
        self.assertEqual(data["delta"], "25.00")
        self.assertEqual(data["unapplied_instrument_total"], "25.00")
        self.assertEqual(data["residual"], "0.00")
        self.assertTrue(data["reconciled"])
        self.assertEqual(data["unapplied_instruments"][0]["payment_id"], str(manual.pk))

    def test_reconciles_after_invoice_reversal(self):
        payment = self._pay("40.00")
        unapply_payment(payment=payment)
        reverse_invoice(invoice=self.grn, reversal_date=date(2024, 1, 31))

        data = reconcile(tenant=self.tenant, ledger=Ledger.AP, as_of=date(2024, 3, 15))
        self.assertEqual(data["subledger_open_total"], "0.00")
        self.assertEqual(data["gl_control_total"], "-40.00")
        self.assertEqual(data["unapplied_instrument_total"], "40.00")
        self.assertTrue(data["reconciled"])


class ReceivablesTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant()
        self.customer = make_party(self.tenant, "Grain Traders", Party.CUSTOMER)

    def _sale(self, amount="500.00", on=date(2024, 4, 1), lines=()):
        invoice = make_invoice(
            self.tenant,
            ledger=Ledger.AR,
            party=self.customer,
            invoice_date=on,
            amount=amount,
            lines=lines,
        )
        post_invoice(invoice=invoice)
        invoice.refresh_from_db()
        return invoice

    def test_sale_posts_receivable_and_revenue(self):
        invoice = self._sale()

        self.assertEqual(account_net(self.tenant, "AR"), Decimal("500.00"))
        self.assertEqual(account_net(self.tenant, "PROJECT_REVENUE"), Decimal("-500.00"))
        row = AllocationRow.objects.get(posting_group=invoice.posting_group)
        self.assertEqual(row.party_id, self.customer.pk)
        self.assertEqual(row.allocation_type, AllocationRow.AllocationType.PARTY_BALANCE)

    def test_sale_of_stock_books_cost_of_goods(self):
        supplier = make_party(self.tenant, "Agro Supplies", Party.SUPPLIER)
        urea = make_item(self.tenant, "UREA")
        grn = make_invoice(
            self.tenant, ledger=Ledger.AP, party=supplier, invoice_date=date(2024, 3, 1), lines=[(urea, 10, "10.00")]
        )
        post_invoice(invoice=grn)

        self._sale(amount=None, lines=[(urea, 4, "20.00")])

        self.assertEqual(account_net(self.tenant, "AR"), Decimal("80.00"))
        self.assertEqual(account_net(self.tenant, "COGS"), Decimal("40.00"))
        self.assertEqual(account_net(self.tenant, "INVENTORY_INPUTS"), Decimal("60.00"))
        self.assertEqual(StockBalance.objects.get(item=urea).quantity, Decimal("6.000"))

    def test_zero_amount_invoice_rejected(self):
        invoice = make_invoice(
            self.tenant,
            ledger=Ledger.AR,
            party=self.customer,
            invoice_date=date(2024, 4, 1),
            amount="0.00",
        )
        with self.assertRaises(ValidationFault):
            post_invoice(invoice=invoice)

    def test_receipt_and_credit_note_reduce_receivable(self):
        invoice = self._sale()
        receipt = make_payment(
            self.tenant, ledger=Ledger.AR, party=self.customer, payment_date=date(2024, 4, 10), amount="200.00"
        )
        post_payment(payment=receipt)
        note = make_payment(
            self.tenant,
            ledger=Ledger.AR,
            party=self.customer,
            payment_date=date(2024, 4, 12),
            amount="50.00",
            kind=Payment.CREDIT_NOTE,
        )
        post_payment(payment=note)

        self.assertEqual(account_net(self.tenant, "AR"), Decimal("250.00"))
        self.assertEqual(account_net(self.tenant, "PROJECT_REVENUE"), Decimal("-450.00"))
        self.assertEqual(invoice_open_balance(invoice), Decimal("250.00"))

        data = reconcile(tenant=self.tenant, ledger=Ledger.AR, as_of=date(2024, 4, 30))
        self.assertTrue(data["reconciled"])
        self.assertEqual(data["gl_control_total"], "250.00")

    def test_credit_note_rule_rejects_payment_kind_mismatch(self):
        from accounting.services import posting_rules

        payment = make_payment(
            self.tenant, ledger=Ledger.AR, party=self.customer, payment_date=date(2024, 4, 10), amount="10.00",
            apply_mode=Payment.MANUAL,
        )
        with self.assertRaises(ValidationFault):
            posting_rules.post_document(source_type=PostingGroup.SourceType.CREDIT_NOTE, document=payment)
