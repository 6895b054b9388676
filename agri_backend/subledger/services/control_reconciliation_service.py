# subledger/services/control_reconciliation_service.py

"""
CONTROL-ACCOUNT RECONCILIATION (AR / AP)

    delta    = subledger_open_total(as_of) - gl_control_total(as_of)
    residual = delta - unapplied_instrument_total(as_of)

residual must be zero (tolerance 0.01). Anything else is a data-integrity
fault: it is logged at WARNING and reported, never absorbed.

Signs: AR control is debit-normal (debit - credit), AP is credit-normal
(credit - debit), so both totals are positive for money owed.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db.models import Q, Sum, Value
from django.db.models.functions import Coalesce

from accounting.models.document import PostableDocument
from accounting.models.posting_group import PostingGroup
from accounting.services.account_catalog import LEDGER_CONTROL_CODES
from accounting.services.aging import money_str
from accounting.services.balance_service import get_account_code_net
from accounting.services.exceptions import ValidationFault
from accounting.services.period_lock import _to_date
from subledger.models import Ledger, Payment, PaymentAllocation
from subledger.services.aging_service import open_items

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TOLERANCE = Decimal("0.01")


def gl_control_total(*, tenant, ledger, as_of) -> Decimal:
    net = get_account_code_net(tenant=tenant, code=LEDGER_CONTROL_CODES[ledger], as_of=as_of)
    return net if ledger == Ledger.AR else -net


def unapplied_instruments(*, tenant, ledger, as_of) -> list[dict]:
    d = _to_date(as_of)
    active_groups = PostingGroup.objects.for_tenant(tenant).active()
    qs = (
        Payment.objects.filter(
            tenant=tenant,
            ledger=ledger,
            status=PostableDocument.POSTED,
            posting_group__in=active_groups,
            posting_group__posting_date__lte=d,
        )
        .annotate(
            applied=Coalesce(
                Sum(
                    "allocations__amount",
                    filter=Q(
                        allocations__status=PaymentAllocation.ACTIVE,
                        allocations__allocation_date__lte=d,
                    ),
                ),
                Value(ZERO),
            )
        )
        .order_by("posting_group__posting_date", "created_at")
    )

    out = []
    for p in qs:
        unapplied = p.amount - p.applied
        if unapplied > 0:
            out.append(
                {
                    "payment_id": str(p.pk),
                    "kind": p.kind,
                    "party_id": str(p.party_id),
                    "reference": p.reference,
                    "unapplied": unapplied,
                }
            )
    return out


def reconcile(*, tenant, ledger, as_of) -> dict:
    d = _to_date(as_of)
    if ledger not in Ledger.values:
        raise ValidationFault(f"Unknown ledger {ledger!r}")

    items = open_items(tenant=tenant, ledger=ledger, as_of=d)
    instruments = unapplied_instruments(tenant=tenant, ledger=ledger, as_of=d)

    subledger_open = sum((i["open_balance"] for i in items), ZERO)
    gl_control = gl_control_total(tenant=tenant, ledger=ledger, as_of=d)
    unapplied = sum((i["unapplied"] for i in instruments), ZERO)

    delta = subledger_open - gl_control
    residual = delta - unapplied
    reconciled = abs(residual) <= TOLERANCE

    if not reconciled:
        logger.warning(
            "Control reconciliation residual detected",
            extra={
                "tenant_id": str(tenant.pk),
                "ledger": ledger,
                "as_of": d.isoformat(),
                "residual": str(residual),
            },
        )

    return {
        "ledger": ledger,
        "as_of": d.isoformat(),
        "control_account_code": LEDGER_CONTROL_CODES[ledger],
        "subledger_open_total": money_str(subledger_open),
        "gl_control_total": money_str(gl_control),
        "delta": money_str(delta),
        "unapplied_instrument_total": money_str(unapplied),
        "residual": money_str(residual),
        "reconciled": reconciled,
        "open_items": [
            {**i, "amount": money_str(i["amount"]), "open_balance": money_str(i["open_balance"])} for i in items
        ],
        "unapplied_instruments": [{**i, "unapplied": money_str(i["unapplied"])} for i in instruments],
    }
