# accounting/services/allocation_calculator.py

"""
======================================================
PATH: accounting/services/allocation_calculator.py
======================================================
ALLOCATION CALCULATOR

Splits a posting's pool amount into AllocationRow amounts.

Modes:
- FULL_PARTY                one party/project bears 100%
- SHARED_BY_PERCENTAGE      inline percentages
- SHARED_BY_RULE            percentages of the versioned share rule
                            effective on the posting date
- PROPORTIONAL_BY_QUANTITY  pool_cost * q_i / sum(q)

Rounding (largest remainder):
- every share is floored to whole cents, then the cents still missing from
  the pool go one each to the shares with the largest remainders (ties in
  input order). Rows sum to the pool exactly and never change sign.

Pooling:
- rows check against pool_account_code in the posting engine; share rows
  built with control accounts check against their own control account

Snapshot:
- each row carries a JSON rule_snapshot of exactly what was applied
  (mode, percentages, ids, rule version, quantities). Snapshots are
  frozen; nothing here is ever recomputed for posted rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from accounting.models.share_rule import ShareRule
from accounting.services.account_catalog import ROLE_CONTROL_CODES
from accounting.services.exceptions import ShareRuleError, ValidationFault
from accounting.services.share_rule_service import (
    HUNDRED,
    ShareLineInput,
    resolve_share_rule,
    validate_percentages,
)

TWOPLACES = Decimal("0.01")

FULL_PARTY = "FULL_PARTY"
SHARED_BY_PERCENTAGE = "SHARED_BY_PERCENTAGE"
SHARED_BY_RULE = "SHARED_BY_RULE"
PROPORTIONAL_BY_QUANTITY = "PROPORTIONAL_BY_QUANTITY"

MODES = (FULL_PARTY, SHARED_BY_PERCENTAGE, SHARED_BY_RULE, PROPORTIONAL_BY_QUANTITY)


def _q2(v) -> Decimal:
    return Decimal(v).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _money(v) -> Decimal:
    try:
        amount = Decimal(str(v))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationFault(f"Invalid allocation amount: {v!r}") from exc
    if not amount.is_finite():
        raise ValidationFault(f"Invalid allocation amount: {v!r}")
    return _q2(amount)


def _quantity(v) -> Decimal:
    try:
        q = Decimal(str(v))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationFault(f"Invalid quantity: {v!r}") from exc
    if not q.is_finite():
        raise ValidationFault(f"Invalid quantity: {v!r}")
    if q <= 0:
        raise ValidationFault("Quantities must be greater than zero.")
    return q


def _json_safe(v):
    if v is None or isinstance(v, (bool, int, str)):
        return v
    if isinstance(v, (Decimal, date)):
        return str(v)
    if isinstance(v, dict):
        return {str(k): _json_safe(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_json_safe(x) for x in v]
    return str(v)


@dataclass(frozen=True)
class QuantityLine:
    quantity: Decimal
    project_id: object = None
    party_id: object = None
    ref: object = None


@dataclass(frozen=True)
class AllocationInstruction:
    mode: str
    amount: Decimal
    allocation_type: str
    party_id: object = None
    project_id: object = None
    shares: tuple = ()
    share_rule_id: object = None
    crop_cycle_id: object = None
    include_sale_rules: bool = False
    quantities: tuple = ()
    pool_account_code: str | None = None
    with_control_accounts: bool = False
    snapshot: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ComputedAllocation:
    allocation_type: str
    amount: Decimal
    party_id: object = None
    project_id: object = None
    rule_snapshot: dict = field(default_factory=dict)
    pool_account_code: str | None = None


def split_by_weights(pool: Decimal, weights: list[Decimal]) -> list[Decimal]:
    """
    Deterministic weighted split of pool into 2dp parts summing exactly to pool.
    """
    if not weights:
        raise ValidationFault("Nothing to split: no weights supplied.")
    try:
        weights = [Decimal(str(w)) for w in weights]
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationFault(f"Invalid split weights: {weights!r}") from exc
    if any(not w.is_finite() or w < 0 for w in weights):
        raise ValidationFault("Split weights must be finite and not negative.")
    total = sum(weights, Decimal("0"))
    if total <= 0:
        raise ValidationFault("Split weights must total more than zero.")

    pool = _money(pool)
    sign = -1 if pool < 0 else 1
    pool_cents = int(abs(pool) / TWOPLACES)

    # Integer arithmetic: weights scaled to whole numbers, exact floors and remainders.
    scale = 10 ** max(max(-w.as_tuple().exponent for w in weights), 0)
    units = [int(w * scale) for w in weights]
    total_units = sum(units)

    cents = [pool_cents * u // total_units for u in units]
    remainders = [pool_cents * u % total_units for u in units]

    by_remainder = sorted(range(len(units)), key=lambda i: (-remainders[i], i))
    for i in by_remainder[: pool_cents - sum(cents)]:
        cents[i] += 1

    return [(sign * Decimal(c) * TWOPLACES).quantize(TWOPLACES) for c in cents]


def _share_rows(ins: AllocationInstruction, pool: Decimal, lines: list[ShareLineInput], base_snapshot: dict):
    amounts = split_by_weights(pool, [line.percentage for line in lines])
    shares_snapshot = [
        {"party_id": line.party_id, "role": line.role, "percentage": line.percentage} for line in lines
    ]

    rows = []
    for line, amount in zip(lines, amounts):
        snap = {
            **base_snapshot,
            "pool_amount": pool,
            "party_id": line.party_id,
            "role": line.role,
            "percentage": line.percentage,
            "shares": shares_snapshot,
            **ins.snapshot,
        }
        if ins.with_control_accounts:
            code = ROLE_CONTROL_CODES.get((line.role or "").upper())
            if code is None:
                raise ValidationFault(f"Share line role {line.role!r} has no party-control account.")
            snap["control_account_code"] = code
        rows.append(
            ComputedAllocation(
                allocation_type=ins.allocation_type,
                amount=amount,
                party_id=line.party_id,
                project_id=ins.project_id,
                rule_snapshot=_json_safe(snap),
                pool_account_code=snap.get("control_account_code", ins.pool_account_code),
            )
        )
    return rows


def _resolve_rule(ins: AllocationInstruction, *, tenant, posting_date) -> ShareRule:
    if ins.share_rule_id is not None:
        rule = (
            ShareRule.objects.filter(tenant=tenant, pk=ins.share_rule_id, is_active=True)
            .prefetch_related("lines")
            .first()
        )
        if rule is None:
            raise ShareRuleError("Share rule not found (or inactive) for tenant.")
        if not rule.covers(posting_date):
            raise ShareRuleError(f"Share rule v{rule.version} is not effective on {posting_date}.")
        return rule

    rule = resolve_share_rule(
        tenant=tenant,
        on_date=posting_date,
        project=ins.project_id,
        crop_cycle=ins.crop_cycle_id,
        include_sale_rules=ins.include_sale_rules,
    )
    if rule is None:
        raise ShareRuleError(f"No active share rule covers {posting_date}.")
    return rule


def calculate(ins: AllocationInstruction, *, tenant, posting_date) -> list[ComputedAllocation]:
    if ins.mode not in MODES:
        raise ValidationFault(f"Unknown allocation mode: {ins.mode!r}")
    if not ins.allocation_type:
        raise ValidationFault("allocation_type is required.")

    pool = _money(ins.amount)

    if ins.mode == FULL_PARTY:
        if ins.party_id is None and ins.project_id is None:
            raise ValidationFault("FULL_PARTY allocation needs a party or a project.")
        snap = {"mode": FULL_PARTY, "percentage": HUNDRED, "party_id": ins.party_id, **ins.snapshot}
        return [
            ComputedAllocation(
                allocation_type=ins.allocation_type,
                amount=pool,
                party_id=ins.party_id,
                project_id=ins.project_id,
                rule_snapshot=_json_safe(snap),
                pool_account_code=ins.pool_account_code,
            )
        ]

    if ins.mode == SHARED_BY_PERCENTAGE:
        lines = validate_percentages(ins.shares)
        return _share_rows(ins, pool, lines, {"mode": SHARED_BY_PERCENTAGE})

    if ins.mode == SHARED_BY_RULE:
        rule = _resolve_rule(ins, tenant=tenant, posting_date=posting_date)
        lines = validate_percentages(
            [ShareLineInput(party_id=ln.party_id, percentage=ln.percentage, role=ln.role) for ln in rule.lines.all()]
        )
        base = {
            "mode": SHARED_BY_RULE,
            "resolution_method": "explicit" if ins.share_rule_id is not None else "resolved",
            "share_rule_id": rule.pk,
            "share_rule_name": rule.name,
            "share_rule_version": rule.version,
            "applies_to": rule.applies_to,
            "effective_from": rule.effective_from,
            "effective_to": rule.effective_to,
        }
        return _share_rows(ins, pool, lines, base)

    # PROPORTIONAL_BY_QUANTITY
    if not ins.quantities:
        raise ValidationFault("PROPORTIONAL_BY_QUANTITY needs at least one line.")
    quantities = []
    for line in ins.quantities:
        quantities.append(_quantity(line.quantity))

    total_qty = sum(quantities, Decimal("0"))
    amounts = split_by_weights(pool, quantities)

    rows = []
    for index, (line, q, amount) in enumerate(zip(ins.quantities, quantities, amounts)):
        snap = {
            "mode": PROPORTIONAL_BY_QUANTITY,
            "pool_amount": pool,
            "line_quantity": q,
            "total_quantity": total_qty,
            "line_ref": line.ref,
            "line_index": index,
            **ins.snapshot,
        }
        rows.append(
            ComputedAllocation(
                allocation_type=ins.allocation_type,
                amount=amount,
                party_id=line.party_id if line.party_id is not None else ins.party_id,
                project_id=line.project_id if line.project_id is not None else ins.project_id,
                rule_snapshot=_json_safe(snap),
                pool_account_code=ins.pool_account_code,
            )
        )
    return rows
