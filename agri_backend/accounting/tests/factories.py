# accounting/tests/factories.py

"""
Shared test fixtures: a seeded tenant plus the farm reference data the
posting rules need. Plain functions, no fixture framework.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.db.models import Sum

from accounting.models.ledger import LedgerEntry
from accounting.models.tenant import Tenant
from accounting.services.chart_seed import seed_farm_chart
from farm.models import CropCycle, Party, Project
from inventory.models import InventoryItem
from subledger.models import Invoice, InvoiceLine, Ledger, Payment

ZERO = Decimal("0.00")


def make_tenant(slug: str = "green-acres", name: str | None = None) -> Tenant:
    tenant = Tenant.objects.create(slug=slug, name=name or slug.replace("-", " ").title())
    seed_farm_chart(tenant=tenant)
    return tenant


def make_party(tenant, name: str, role: str = Party.HARI) -> Party:
    return Party.objects.create(tenant=tenant, name=name, role=role)


def make_crop_cycle(tenant, name: str = "Kharif 2024", start=date(2024, 1, 1), end=date(2024, 12, 31), status=None):
    return CropCycle.objects.create(
        tenant=tenant,
        name=name,
        start_date=start,
        end_date=end,
        status=status or CropCycle.OPEN,
    )


def make_project(tenant, crop_cycle, name: str = "Field 7", party=None) -> Project:
    return Project.objects.create(tenant=tenant, crop_cycle=crop_cycle, name=name, party=party)


def make_item(tenant, code: str = "UREA", item_type: str = InventoryItem.INPUT, name: str | None = None):
    return InventoryItem.objects.create(tenant=tenant, code=code, name=name or code.title(), item_type=item_type)


def make_invoice(
    tenant,
    *,
    ledger: str,
    party,
    invoice_date,
    amount=None,
    lines=(),
    due_date=None,
    reference: str = "",
    crop_cycle=None,
    project=None,
) -> Invoice:
    """
    lines: iterable of (item_or_None, quantity, unit_price).
    """
    invoice = Invoice.objects.create(
        tenant=tenant,
        ledger=ledger,
        party=party,
        invoice_date=invoice_date,
        due_date=due_date,
        reference=reference,
        crop_cycle=crop_cycle,
        project=project,
        amount=Decimal(str(amount)) if amount is not None else ZERO,
    )
    for item, quantity, unit_price in lines:
        InvoiceLine.objects.create(
            invoice=invoice,
            item=item,
            quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(unit_price)),
        )
    return invoice


def make_payment(
    tenant,
    *,
    ledger: str,
    party,
    payment_date,
    amount,
    kind: str = Payment.PAYMENT,
    apply_mode: str = Payment.FIFO,
    method: str = Payment.CASH,
    reference: str = "",
) -> Payment:
    return Payment.objects.create(
        tenant=tenant,
        ledger=ledger,
        party=party,
        payment_date=payment_date,
        amount=Decimal(str(amount)),
        kind=kind,
        apply_mode=apply_mode,
        method=method,
        reference=reference,
    )


def group_totals(group) -> tuple[Decimal, Decimal]:
    totals = LedgerEntry.objects.filter(posting_group=group).aggregate(d=Sum("debit_amount"), c=Sum("credit_amount"))
    return totals["d"] or ZERO, totals["c"] or ZERO


def account_net(tenant, code: str) -> Decimal:
    """Gross debit - credit over every posting (reversals included)."""
    totals = LedgerEntry.objects.filter(tenant=tenant, account__code=code).aggregate(
        d=Sum("debit_amount"), c=Sum("credit_amount")
    )
    return (totals["d"] or ZERO) - (totals["c"] or ZERO)


__all__ = [
    "Ledger",
    "make_tenant",
    "make_party",
    "make_crop_cycle",
    "make_project",
    "make_item",
    "make_invoice",
    "make_payment",
    "group_totals",
    "account_net",
]
