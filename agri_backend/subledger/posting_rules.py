# subledger/posting_rules.py

"""
POSTING RULES: AR / AP DOCUMENTS

SALE (AR invoice):
- Debit  AR                 (invoice amount, customer)
- Credit PROJECT_REVENUE    (invoice amount)
- item lines also: Debit COGS / Credit inventory account at WAC (SALE movement)
- Allocation FULL_PARTY to the customer

GRN (AP invoice / goods receipt):
- Debit  inventory account per line (qty x unit price, RECEIPT movement)
- Credit AP                 (invoice amount, supplier)
- Allocation PROPORTIONAL_BY_QUANTITY across lines

PAYMENT:
- IN  (AR): Debit CASH/BANK, Credit AR
- OUT (AP): Debit AP,        Credit CASH/BANK
- FIFO mode applies to open invoices on post and rejects amounts above the
  party's outstanding balance; MANUAL mode leaves it unapplied

CREDIT_NOTE:
- AR: Debit PROJECT_REVENUE, Credit AR
- AP: Debit AP,              Credit PURCHASE_RETURNS

Payments and credit notes reduce the party's control balance, so their
PARTY_BALANCE rows carry a negative amount.

Reversal of any of these is blocked while ACTIVE payment allocations
reference the document.
"""

from __future__ import annotations

from decimal import Decimal

from accounting.models.allocation import AllocationRow
from accounting.models.posting_group import PostingGroup
from accounting.services.account_catalog import (
    AP,
    AR,
    BANK,
    CASH,
    COGS,
    PROJECT_REVENUE,
    PURCHASE_RETURNS,
)
from accounting.services.allocation_calculator import (
    FULL_PARTY,
    PROPORTIONAL_BY_QUANTITY,
    AllocationInstruction,
    QuantityLine,
)
from accounting.services.exceptions import (
    ActiveAllocationsError,
    OverApplicationError,
    ValidationFault,
)
from accounting.services.posting_engine import PostingLine
from accounting.services.posting_rules import PostingRule, register
from inventory.models import StockMovement
from inventory.services import stock_service
from subledger.models import Invoice, Ledger, Payment, PaymentAllocation
from subledger.services import allocation_service

ZERO = Decimal("0.00")


def _assert_no_active_allocations(**lookup) -> None:
    if PaymentAllocation.objects.filter(status=PaymentAllocation.ACTIVE, **lookup).exists():
        raise ActiveAllocationsError("Unapply the document's ACTIVE payment allocations before reversing it.")


class _InvoiceRule(PostingRule):
    document_model = Invoice
    ledger = ""

    def posting_date_for(self, document):
        return document.invoice_date

    def _lines(self, document):
        return list(document.lines.select_related("item", "project").order_by("pk"))

    def validate(self, document) -> None:
        if document.ledger != self.ledger:
            raise ValidationFault(f"{self.source_type} posts {self.ledger} invoices only.")
        if document.amount is None or document.amount <= 0:
            raise ValidationFault("Invoice amount must be greater than zero.")
        lines = self._lines(document)
        if lines:
            total = sum((line.line_total for line in lines), ZERO)
            if total != document.amount:
                raise ValidationFault(f"Invoice amount {document.amount} does not equal its lines total {total}.")

    def assert_reversible(self, group) -> None:
        _assert_no_active_allocations(invoice__posting_group=group)

    def unwind_effects(self, original, reversal) -> None:
        stock_service.reverse_movements(original=original, reversal=reversal)


@register
class SaleRule(_InvoiceRule):
    source_type = PostingGroup.SourceType.SALE
    ledger = Ledger.AR

    def _stock_plan(self, document):
        stock_lines = [line for line in self._lines(document) if line.item_id]
        plan = stock_service.plan_outbound(
            tenant=document.tenant,
            lines=[(line.item, line.quantity) for line in stock_lines],
        )
        return plan

    def compute_lines(self, document, *, posting_date, catalog):
        out = [
            PostingLine(AR, debit=document.amount, party_id=document.party_id),
            PostingLine(PROJECT_REVENUE, credit=document.amount),
        ]
        for planned in self._stock_plan(document):
            if planned.value > 0:
                out.append(PostingLine(COGS, debit=planned.value))
                out.append(PostingLine(planned.item.inventory_account_code, credit=planned.value))
        return out

    def compute_allocations(self, document, *, posting_date):
        return [
            AllocationInstruction(
                mode=FULL_PARTY,
                amount=document.amount,
                allocation_type=AllocationRow.AllocationType.PARTY_BALANCE,
                party_id=document.party_id,
                project_id=document.project_id,
                pool_account_code=AR,
                snapshot={"ledger": Ledger.AR, "reference": document.reference},
            )
        ]

    def apply_effects(self, document, group) -> None:
        for planned in self._stock_plan(document):
            stock_service.issue(
                tenant=document.tenant,
                line=planned,
                posting_group=group,
                occurred_on=group.posting_date,
                movement_type=StockMovement.MovementType.SALE,
            )


@register
class GoodsReceiptRule(_InvoiceRule):
    source_type = PostingGroup.SourceType.GRN
    ledger = Ledger.AP

    def validate(self, document) -> None:
        super().validate(document)
        lines = self._lines(document)
        if not lines:
            raise ValidationFault("A goods receipt needs at least one line.")
        if any(line.item_id is None for line in lines):
            raise ValidationFault("Every goods receipt line must reference an inventory item.")

    def compute_lines(self, document, *, posting_date, catalog):
        out = [PostingLine(line.item.inventory_account_code, debit=line.line_total) for line in self._lines(document)]
        out.append(PostingLine(AP, credit=document.amount, party_id=document.party_id))
        return out

    def compute_allocations(self, document, *, posting_date):
        return [
            AllocationInstruction(
                mode=PROPORTIONAL_BY_QUANTITY,
                amount=document.amount,
                allocation_type=AllocationRow.AllocationType.INVENTORY_COST,
                party_id=document.party_id,
                project_id=document.project_id,
                quantities=tuple(
                    QuantityLine(quantity=line.quantity, project_id=line.project_id, ref=line.item_id)
                    for line in self._lines(document)
                ),
                pool_account_code=AP,
                snapshot={"ledger": Ledger.AP, "reference": document.reference},
            )
        ]

    def apply_effects(self, document, group) -> None:
        for line in self._lines(document):
            stock_service.receive(
                tenant=document.tenant,
                item=line.item,
                posting_group=group,
                quantity=line.quantity,
                value=line.line_total,
                occurred_on=group.posting_date,
            )


class _InstrumentRule(PostingRule):
    document_model = Payment
    kind = ""

    def posting_date_for(self, document):
        return document.payment_date

    def validate(self, document) -> None:
        if document.kind != self.kind:
            raise ValidationFault(f"{self.source_type} rule cannot post a {document.kind} document.")
        if document.amount is None or document.amount <= 0:
            raise ValidationFault("Amount must be greater than zero.")
        if document.ledger not in Ledger.values:
            raise ValidationFault(f"Unknown ledger {document.ledger!r}.")

        if document.apply_mode == Payment.FIFO:
            outstanding = allocation_service.party_outstanding(
                tenant=document.tenant,
                ledger=document.ledger,
                party=document.party_id,
                as_of=document.payment_date,
            )
            if document.amount > outstanding:
                raise OverApplicationError(
                    f"{document.kind} of {document.amount} exceeds the party's outstanding balance {outstanding}."
                )

    def compute_allocations(self, document, *, posting_date):
        control = AR if document.ledger == Ledger.AR else AP
        return [
            AllocationInstruction(
                mode=FULL_PARTY,
                amount=-document.amount,
                allocation_type=AllocationRow.AllocationType.PARTY_BALANCE,
                party_id=document.party_id,
                pool_account_code=control,
                snapshot={"ledger": document.ledger, "kind": document.kind, "reference": document.reference},
            )
        ]

    def apply_effects(self, document, group) -> None:
        if document.apply_mode == Payment.FIFO:
            allocation_service.apply_fifo(payment=document, allocation_date=group.posting_date)

    def assert_reversible(self, group) -> None:
        _assert_no_active_allocations(payment__posting_group=group)


@register
class PaymentRule(_InstrumentRule):
    source_type = PostingGroup.SourceType.PAYMENT
    kind = Payment.PAYMENT

    def compute_lines(self, document, *, posting_date, catalog):
        money = BANK if document.method == Payment.BANK else CASH
        if document.ledger == Ledger.AR:
            return [
                PostingLine(money, debit=document.amount),
                PostingLine(AR, credit=document.amount, party_id=document.party_id),
            ]
        return [
            PostingLine(AP, debit=document.amount, party_id=document.party_id),
            PostingLine(money, credit=document.amount),
        ]


@register
class CreditNoteRule(_InstrumentRule):
    source_type = PostingGroup.SourceType.CREDIT_NOTE
    kind = Payment.CREDIT_NOTE

    def compute_lines(self, document, *, posting_date, catalog):
        if document.ledger == Ledger.AR:
            return [
                PostingLine(PROJECT_REVENUE, debit=document.amount),
                PostingLine(AR, credit=document.amount, party_id=document.party_id),
            ]
        return [
            PostingLine(AP, debit=document.amount, party_id=document.party_id),
            PostingLine(PURCHASE_RETURNS, credit=document.amount),
        ]


def source_type_for_invoice(invoice: Invoice) -> str:
    return PostingGroup.SourceType.SALE if invoice.ledger == Ledger.AR else PostingGroup.SourceType.GRN


def source_type_for_payment(payment: Payment) -> str:
    if payment.kind == Payment.CREDIT_NOTE:
        return PostingGroup.SourceType.CREDIT_NOTE
    return PostingGroup.SourceType.PAYMENT
