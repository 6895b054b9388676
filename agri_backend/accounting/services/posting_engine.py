# accounting/services/posting_engine.py

"""
======================================================
PATH: accounting/services/posting_engine.py
======================================================
POSTING ENGINE (ACCOUNTING CHOKE-POINT)

This module is the ONLY place allowed to:
- Create PostingGroup (non-reversal)
- Create LedgerEntry / AllocationRow for a posting
- Enforce sum(debit) == sum(credit), exact to 2dp
- Enforce idempotency per (tenant, source_type, source_id, idempotency_key)
- Enforce crop-cycle and period gates

Order of checks (nothing is written until all pass):
1. input validation                    -> ValidationFault
2. idempotent replay                   -> existing group returned
3. account resolution via catalog      -> AccountResolutionError
4. balance                             -> UnbalancedPostingError
5. allocation pool invariant           -> AllocationMismatchError
6. crop cycle gate                     -> CropCycleClosedError / PostingDateOutOfRangeError
7. period gate (auto-creates OPEN)     -> PeriodLockedError

Concurrency:
- the group insert runs in a savepoint; a unique-constraint collision means
  another writer won the same key. When the winner is visible it is returned.
  When it is not (SERIALIZABLE snapshot), the IntegrityError propagates and
  @retry_on_collision re-runs the whole post in a fresh transaction, where
  the idempotent lookup returns the winner.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Sum, Value
from django.db.models.functions import Coalesce

from accounting.models.account import Account
from accounting.models.allocation import AllocationRow
from accounting.models.ledger import LedgerEntry
from accounting.models.posting_group import PostingGroup
from accounting.services import allocation_calculator
from accounting.services.account_catalog import AccountCatalog
from accounting.services.exceptions import (
    AllocationMismatchError,
    CropCycleClosedError,
    PostingDateOutOfRangeError,
    UnbalancedPostingError,
    ValidationFault,
)
from accounting.services.period_lock import _to_date, assert_postable
from accounting.services.write_retry import retry_on_collision

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class PostingLine:
    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    party_id: object = None
    currency: str | None = None


def _money(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        amt = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationFault(f"Invalid money value: {value!r}") from exc

    if not amt.is_finite():
        raise ValidationFault(f"Invalid money value: {value!r}")
    if amt != amt.quantize(TWOPLACES):
        raise ValidationFault(f"Amounts carry at most 2 decimal places, got {value!r}")
    return amt.quantize(TWOPLACES)


def _normalize_lines(lines) -> list[PostingLine]:
    if not lines:
        raise ValidationFault("A posting must contain at least one line.")

    default_currency = getattr(settings, "ACCOUNTING_DEFAULT_CURRENCY", "GBP")
    normalized: list[PostingLine] = []
    for line in lines:
        if not isinstance(line, PostingLine):
            raise ValidationFault("Each posting line must be a PostingLine.")

        debit = _money(line.debit)
        credit = _money(line.credit)

        if debit < 0 or credit < 0:
            raise ValidationFault("Debit or credit cannot be negative")
        if debit > 0 and credit > 0:
            raise ValidationFault("A posting line cannot have both debit and credit")
        if debit == 0 and credit == 0:
            raise ValidationFault("A posting line must have either debit or credit")

        code = str(line.account_code or "").strip().upper()
        if not code:
            raise ValidationFault("Posting line missing account code")

        normalized.append(
            PostingLine(
                account_code=code,
                debit=debit,
                credit=credit,
                party_id=line.party_id,
                currency=(line.currency or default_currency).upper(),
            )
        )

    if not any(line.debit > 0 for line in normalized) or not any(line.credit > 0 for line in normalized):
        raise ValidationFault("A posting needs at least one debit line and one credit line.")
    return normalized


def _assert_balanced(lines: list[PostingLine]) -> None:
    total_debits = sum((line.debit for line in lines), ZERO)
    total_credits = sum((line.credit for line in lines), ZERO)
    if total_debits != total_credits:
        raise UnbalancedPostingError(
            f"Posting not balanced: debits={total_debits} credits={total_credits}"
        )


def _compute_allocations(allocations, *, tenant, posting_date) -> list[allocation_calculator.ComputedAllocation]:
    computed: list[allocation_calculator.ComputedAllocation] = []
    for item in allocations or ():
        if isinstance(item, allocation_calculator.ComputedAllocation):
            computed.append(item)
        elif isinstance(item, allocation_calculator.AllocationInstruction):
            computed.extend(allocation_calculator.calculate(item, tenant=tenant, posting_date=posting_date))
        else:
            raise ValidationFault("Allocations must be AllocationInstruction or ComputedAllocation.")
    return computed


def _assert_allocations_match(rows, lines: list[PostingLine], accounts) -> None:
    """
    Rows tagged with a pool account must sum to that account's movement in
    this posting, signed on the account's normal side: a debit-normal pool
    moves debit - credit, a credit-normal pool moves credit - debit.
    """
    pools: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for row in rows:
        if row.pool_account_code:
            pools[row.pool_account_code.strip().upper()] += row.amount

    account_types = {line.account_code: account.account_type for line, account in zip(lines, accounts)}
    for code, allocated in pools.items():
        if code not in account_types:
            raise AllocationMismatchError(f"Allocations reference pool {code}, which this posting does not touch.")
        net = sum((line.debit - line.credit for line in lines if line.account_code == code), ZERO)
        movement = net if account_types[code] in Account.DEBIT_NORMAL else -net
        if allocated != movement:
            raise AllocationMismatchError(
                f"Allocations on {code} total {allocated} but the posting moves it by {movement}."
            )


def assert_crop_cycle_open(crop_cycle, on_date) -> None:
    """
    Crop-cycle gate shared by posting and reversal.
    """
    if crop_cycle is None:
        return
    d = _to_date(on_date)
    if crop_cycle.is_closed:
        raise CropCycleClosedError(f"Crop cycle {crop_cycle.name} is closed.")
    if not crop_cycle.covers(d):
        raise PostingDateOutOfRangeError(
            f"{d} is outside crop cycle {crop_cycle.name} "
            f"({crop_cycle.start_date}..{crop_cycle.end_date or 'open'})."
        )


def assert_group_balanced(group: PostingGroup) -> None:
    """
    Re-aggregate persisted lines; any drift here is fatal.
    """
    totals = LedgerEntry.objects.filter(posting_group=group).aggregate(
        debits=Coalesce(Sum("debit_amount"), Value(ZERO)),
        credits=Coalesce(Sum("credit_amount"), Value(ZERO)),
    )
    if totals["debits"] != totals["credits"]:
        raise UnbalancedPostingError(
            f"Posting group {group.pk} persisted unbalanced: "
            f"debits={totals['debits']} credits={totals['credits']}"
        )


def find_existing(*, tenant, source_type, source_id, idempotency_key) -> PostingGroup | None:
    qs = PostingGroup.objects.filter(tenant=tenant, source_type=source_type, source_id=source_id)
    if idempotency_key is None:
        qs = qs.filter(idempotency_key__isnull=True)
    else:
        qs = qs.filter(idempotency_key=idempotency_key)
    return qs.first()


def _create_group(*, tenant, source_type, source_id, posting_date, idempotency_key, crop_cycle):
    try:
        with transaction.atomic():
            group = PostingGroup.objects.create(
                tenant=tenant,
                crop_cycle=crop_cycle,
                source_type=source_type,
                source_id=source_id,
                posting_date=posting_date,
                idempotency_key=idempotency_key,
            )
    except IntegrityError:
        winner = find_existing(
            tenant=tenant,
            source_type=source_type,
            source_id=source_id,
            idempotency_key=idempotency_key,
        )
        if winner is None:
            raise
        return winner, False
    return group, True


@retry_on_collision
@transaction.atomic
def post(
    *,
    tenant,
    source_type: str,
    source_id,
    posting_date,
    lines,
    allocations=(),
    idempotency_key: str | None = None,
    crop_cycle=None,
    catalog: AccountCatalog | None = None,
    on_posted=None,
) -> PostingGroup:
    """
    Post one balanced accounting event.

    on_posted(group) runs inside the same transaction, only when the group
    is newly created (never on idempotent replay), so secondary effects
    such as stock movements happen exactly once.
    """
    if tenant is None:
        raise ValidationFault("tenant is required")
    if source_type not in PostingGroup.SourceType.values or source_type == PostingGroup.SourceType.REVERSAL:
        raise ValidationFault(f"Invalid source_type for posting: {source_type!r}")

    source_id = str(source_id if source_id is not None else "").strip()
    if not source_id:
        raise ValidationFault("source_id is required")

    d = _to_date(posting_date)
    key = str(idempotency_key).strip() if idempotency_key is not None else None
    key = key or None

    existing = find_existing(tenant=tenant, source_type=source_type, source_id=source_id, idempotency_key=key)
    if existing is not None:
        logger.info(
            "Idempotent replay returned existing posting group",
            extra={"tenant_id": str(tenant.pk), "posting_group_id": str(existing.pk), "source_type": source_type},
        )
        return existing

    normalized = _normalize_lines(lines)

    catalog = catalog or AccountCatalog.for_tenant(tenant)
    if catalog.tenant_id != tenant.pk:
        raise ValidationFault("Account catalog belongs to another tenant.")
    accounts = [catalog.get(line.account_code) for line in normalized]

    _assert_balanced(normalized)

    rows = _compute_allocations(allocations, tenant=tenant, posting_date=d)
    _assert_allocations_match(rows, normalized, accounts)

    if crop_cycle is not None and crop_cycle.tenant_id != tenant.pk:
        raise ValidationFault("Crop cycle belongs to another tenant.")
    assert_crop_cycle_open(crop_cycle, d)
    assert_postable(tenant=tenant, posting_date=d)

    group, created = _create_group(
        tenant=tenant,
        source_type=source_type,
        source_id=source_id,
        posting_date=d,
        idempotency_key=key,
        crop_cycle=crop_cycle,
    )
    if not created:
        logger.info(
            "Concurrent poster won; returning its posting group",
            extra={"tenant_id": str(tenant.pk), "posting_group_id": str(group.pk)},
        )
        return group

    LedgerEntry.objects.bulk_create(
        [
            LedgerEntry(
                tenant=tenant,
                posting_group=group,
                account=account,
                party_id=line.party_id,
                debit_amount=line.debit,
                credit_amount=line.credit,
                currency=line.currency,
            )
            for account, line in zip(accounts, normalized)
        ]
    )
    AllocationRow.objects.bulk_create(
        [
            AllocationRow(
                tenant=tenant,
                posting_group=group,
                project_id=row.project_id,
                party_id=row.party_id,
                allocation_type=row.allocation_type,
                amount=row.amount,
                rule_snapshot=row.rule_snapshot,
            )
            for row in rows
        ]
    )

    assert_group_balanced(group)

    if on_posted is not None:
        on_posted(group)

    logger.info(
        "Posting group created",
        extra={
            "tenant_id": str(tenant.pk),
            "posting_group_id": str(group.pk),
            "source_type": source_type,
            "source_id": source_id,
            "posting_date": str(d),
            "lines": len(normalized),
            "allocations": len(rows),
        },
    )
    return group
