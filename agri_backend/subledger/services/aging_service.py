# subledger/services/aging_service.py

"""
AR / AP AGING

open_balance(as_of) = amount - sum(ACTIVE allocations dated <= as_of)

- only posted invoices whose posting group is active and dated <= as_of
- an allocation dated after as_of does not yet reduce the balance
- days = as_of - effective due date (due_date, else invoice_date)
"""

from __future__ import annotations

from decimal import Decimal

from accounting.services import aging
from accounting.services.exceptions import ValidationFault
from accounting.services.period_lock import _to_date
from subledger.models import Ledger
from subledger.services.allocation_service import open_invoices_qs

ZERO = Decimal("0.00")


def open_items(*, tenant, ledger, as_of, party=None, crop_cycle=None) -> list[dict]:
    d = _to_date(as_of)
    if ledger not in Ledger.values:
        raise ValidationFault(f"Unknown ledger {ledger!r}")

    qs = open_invoices_qs(tenant=tenant, ledger=ledger, party=party, as_of=d).select_related("party")
    if crop_cycle is not None:
        qs = qs.filter(crop_cycle=crop_cycle)

    items = []
    for inv in qs:
        open_balance = inv.amount - inv.allocated
        if open_balance <= 0:
            continue
        due = inv.effective_due_date
        days = (d - due).days
        items.append(
            {
                "invoice_id": str(inv.pk),
                "reference": inv.reference,
                "party_id": str(inv.party_id),
                "party_name": inv.party.name,
                "invoice_date": inv.invoice_date.isoformat(),
                "due_date": due.isoformat(),
                "days_overdue": max(days, 0),
                "bucket": aging.bucket_for(days),
                "amount": inv.amount,
                "open_balance": open_balance,
            }
        )
    return items


def aging_report(*, tenant, ledger, as_of, party=None, crop_cycle=None) -> dict:
    d = _to_date(as_of)
    items = open_items(tenant=tenant, ledger=ledger, as_of=d, party=party, crop_cycle=crop_cycle)

    parties: dict[str, dict] = {}
    grand = aging.empty_buckets()
    for item in items:
        entry = parties.setdefault(
            item["party_id"],
            {"party_id": item["party_id"], "party_name": item["party_name"], "buckets": aging.empty_buckets()},
        )
        entry["buckets"][item["bucket"]] += item["open_balance"]
        grand[item["bucket"]] += item["open_balance"]

    party_rows = []
    for entry in sorted(parties.values(), key=lambda p: p["party_name"]):
        total = sum(entry["buckets"].values(), ZERO)
        party_rows.append(
            {
                "party_id": entry["party_id"],
                "party_name": entry["party_name"],
                "buckets": aging.buckets_as_str(entry["buckets"]),
                "total": aging.money_str(total),
            }
        )

    return {
        "ledger": ledger,
        "as_of": d.isoformat(),
        "bucket_order": list(aging.BUCKETS),
        "parties": party_rows,
        "totals": aging.buckets_as_str(grand),
        "grand_total": aging.money_str(sum(grand.values(), ZERO)),
    }
