# subledger/services/allocation_service.py

"""
PAYMENT APPLICATION SERVICE (AR + AP)

Links instruments (payments, credit notes) to open invoices.

RULES:
- open_balance(invoice, as_of) = amount - sum(ACTIVE allocations dated <= as_of)
- unapplied(payment, as_of)    = amount - sum(ACTIVE allocations dated <= as_of)
- an allocation never exceeds the invoice's open balance nor the
  instrument's unapplied amount (OverApplicationError)
- FIFO walks open invoices of the same party/ledger, oldest posting first
- allocations are voided (ACTIVE -> VOID), never deleted
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Q, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from accounting.models.document import PostableDocument
from accounting.models.posting_group import PostingGroup
from accounting.services.exceptions import DocumentStateError, OverApplicationError, ValidationFault
from accounting.services.period_lock import _to_date
from subledger.models import Invoice, Payment, PaymentAllocation

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def _q2(v) -> Decimal:
    return Decimal(v or ZERO).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _money(v) -> Decimal:
    try:
        amt = _q2(Decimal(str(v)))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationFault(f"Invalid amount: {v!r}") from exc
    if amt <= 0:
        raise ValidationFault("Allocation amount must be greater than zero.")
    return amt


def _active_allocations(*, as_of=None):
    q = Q(allocations__status=PaymentAllocation.ACTIVE)
    if as_of is not None:
        q &= Q(allocations__allocation_date__lte=as_of)
    return q


def _allocated_sum(qs) -> Decimal:
    return _q2(qs.aggregate(total=Coalesce(Sum("amount"), Value(ZERO)))["total"])


def invoice_open_balance(invoice: Invoice, *, as_of=None) -> Decimal:
    qs = PaymentAllocation.objects.filter(invoice=invoice, status=PaymentAllocation.ACTIVE)
    if as_of is not None:
        qs = qs.filter(allocation_date__lte=_to_date(as_of))
    return _q2(invoice.amount - _allocated_sum(qs))


def payment_unapplied(payment: Payment, *, as_of=None) -> Decimal:
    qs = PaymentAllocation.objects.filter(payment=payment, status=PaymentAllocation.ACTIVE)
    if as_of is not None:
        qs = qs.filter(allocation_date__lte=_to_date(as_of))
    return _q2(payment.amount - _allocated_sum(qs))


def open_invoices_qs(*, tenant, ledger, party=None, as_of=None):
    """
    Posted invoices whose posting group is still active, annotated with
    allocated / open_balance as of the date. Oldest posting first.
    """
    active_groups = PostingGroup.objects.for_tenant(tenant).active()
    qs = Invoice.objects.filter(
        tenant=tenant,
        ledger=ledger,
        status=PostableDocument.POSTED,
        posting_group__in=active_groups,
    )
    d = _to_date(as_of) if as_of is not None else None
    if d is not None:
        qs = qs.filter(posting_group__posting_date__lte=d)
    if party is not None:
        qs = qs.filter(party=party)

    return qs.annotate(
        allocated=Coalesce(Sum("allocations__amount", filter=_active_allocations(as_of=d)), Value(ZERO)),
    ).order_by("posting_group__posting_date", "created_at", "pk")


def party_outstanding(*, tenant, ledger, party, as_of=None) -> Decimal:
    total = ZERO
    for inv in open_invoices_qs(tenant=tenant, ledger=ledger, party=party, as_of=as_of):
        total += _q2(inv.amount - inv.allocated)
    return _q2(total)


def _lock_open_invoices(*, payment, allocation_date):
    ids = list(
        open_invoices_qs(tenant=payment.tenant, ledger=payment.ledger, party=payment.party_id, as_of=allocation_date)
        .values_list("pk", flat=True)
    )
    return list(
        Invoice.objects.select_for_update()
        .filter(pk__in=ids)
        .order_by("posting_group__posting_date", "created_at", "pk")
    )


def _create_allocation(*, payment, invoice, amount, allocation_date) -> PaymentAllocation:
    return PaymentAllocation.objects.create(
        tenant=payment.tenant,
        payment=payment,
        invoice=invoice,
        amount=amount,
        allocation_date=allocation_date,
    )


def apply_fifo(*, payment: Payment, allocation_date) -> list[PaymentAllocation]:
    """
    Apply whatever is unapplied on the payment to the party's oldest open
    invoices. Callers hold the transaction.
    """
    d = _to_date(allocation_date)
    remaining = payment_unapplied(payment)
    created: list[PaymentAllocation] = []

    for invoice in _lock_open_invoices(payment=payment, allocation_date=d):
        if remaining <= 0:
            break
        open_balance = invoice_open_balance(invoice)
        if open_balance <= 0:
            continue
        amount = min(open_balance, remaining)
        created.append(_create_allocation(payment=payment, invoice=invoice, amount=amount, allocation_date=d))
        remaining -= amount

    return created


def _apply_manual(*, payment: Payment, allocations, allocation_date) -> list[PaymentAllocation]:
    if not allocations:
        raise ValidationFault("MANUAL application needs at least one allocation.")

    d = _to_date(allocation_date)
    requested: dict = {}
    for item in allocations:
        invoice_id = item.get("invoice_id") if isinstance(item, dict) else None
        if not invoice_id:
            raise ValidationFault("Each allocation needs invoice_id and amount.")
        requested[str(invoice_id)] = requested.get(str(invoice_id), ZERO) + _money(item.get("amount"))

    invoices = {
        str(inv.pk): inv for inv in _lock_open_invoices(payment=payment, allocation_date=d) if str(inv.pk) in requested
    }
    missing = set(requested) - set(invoices)
    if missing:
        raise ValidationFault(
            "Invoices are not open for this party and ledger as of the allocation date: " + ", ".join(sorted(missing))
        )

    total = sum(requested.values(), ZERO)
    unapplied = payment_unapplied(payment)
    if total > unapplied:
        raise OverApplicationError(f"Allocating {total} exceeds the unapplied amount {unapplied}.")

    created = []
    for invoice_id, amount in requested.items():
        invoice = invoices[invoice_id]
        open_balance = invoice_open_balance(invoice)
        if amount > open_balance:
            raise OverApplicationError(
                f"Allocating {amount} exceeds invoice {invoice.reference or invoice.pk} open balance {open_balance}."
            )
        created.append(_create_allocation(payment=payment, invoice=invoice, amount=amount, allocation_date=d))
    return created


@transaction.atomic
def apply_payment(*, payment: Payment, mode: str | None = None, allocations=None, allocation_date=None) -> list[PaymentAllocation]:
    payment = Payment.objects.select_for_update().select_related("tenant").get(pk=payment.pk)
    if payment.status != PostableDocument.POSTED:
        raise DocumentStateError("Only posted payments can be applied.")

    d = _to_date(allocation_date) if allocation_date is not None else timezone.localdate()
    if d < payment.posting_date:
        raise ValidationFault("allocation_date cannot precede the payment's posting date.")

    mode = (mode or payment.apply_mode or Payment.FIFO).upper()
    if mode == Payment.FIFO:
        created = apply_fifo(payment=payment, allocation_date=d)
    elif mode == Payment.MANUAL:
        created = _apply_manual(payment=payment, allocations=allocations, allocation_date=d)
    else:
        raise ValidationFault(f"Unknown apply mode {mode!r}")

    logger.info(
        "Payment applied",
        extra={
            "tenant_id": str(payment.tenant_id),
            "payment_id": str(payment.pk),
            "mode": mode,
            "allocations": len(created),
            "amount": str(sum((a.amount for a in created), ZERO)),
        },
    )
    return created


@transaction.atomic
def unapply_payment(*, payment: Payment, allocation_ids=None) -> int:
    payment = Payment.objects.select_for_update().get(pk=payment.pk)
    qs = PaymentAllocation.objects.select_for_update().filter(payment=payment, status=PaymentAllocation.ACTIVE)
    if allocation_ids is not None:
        qs = qs.filter(pk__in=list(allocation_ids))

    voided = qs.update(status=PaymentAllocation.VOID, voided_at=timezone.now())
    logger.info(
        "Payment allocations voided",
        extra={"tenant_id": str(payment.tenant_id), "payment_id": str(payment.pk), "voided": voided},
    )
    return voided
