# accounting/services/reversal_service.py

"""
======================================================
PATH: accounting/services/reversal_service.py
======================================================
REVERSAL ENGINE

Corrections never edit a posting: they add a REVERSAL group that is the
exact inverse of the original.

Guarantees:
- every ledger entry mirrored with debit/credit swapped (same account,
  party, currency); every allocation row mirrored with the amount negated
  and the original snapshot extended with reversal_of / reversal_reason
- a group is reversed at most once; a reversal is never reversed
- idempotent on (group, reversal_date): a retry returns the same reversal
- a lost race on the reversal insert is retried in a fresh transaction
- guards: source-type rule (e.g. ACTIVE payment allocations), crop-cycle
  gate, period gate with the same-date exception
- the owning document (when the source type has one) is marked REVERSED
  whichever entry point reversed it

ANTI-CIRCULAR-IMPORT RULE:
- posting_rules imports this module; the rule registry is looked up lazily.
"""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction

from accounting.models.allocation import AllocationRow
from accounting.models.ledger import LedgerEntry
from accounting.models.posting_group import PostingGroup
from accounting.services.exceptions import (
    AlreadyReversedError,
    PostingGroupNotFound,
    ReversalNotAllowedError,
)
from accounting.services.period_lock import _to_date, assert_reversible_on
from accounting.services.posting_engine import assert_crop_cycle_open, assert_group_balanced
from accounting.services.write_retry import retry_on_collision

logger = logging.getLogger(__name__)


def _rule_for(source_type):
    from accounting.services.posting_rules import find_rule

    return find_rule(source_type)


def _mark_document(document, reversal) -> None:
    if document is not None and document.status != document.REVERSED:
        document.mark_reversed(reversal)


def _existing_reversal(*, tenant, original, reversal_date):
    existing = PostingGroup.objects.filter(tenant=tenant, reversal_of=original).first()
    if existing is None:
        return None
    if existing.posting_date == reversal_date:
        return existing
    raise AlreadyReversedError(
        f"Posting group {original.pk} was already reversed on {existing.posting_date}."
    )


@retry_on_collision
@transaction.atomic
def reverse(*, tenant, posting_group_id, reversal_date, reason: str = "") -> PostingGroup:
    """
    Reverse one posting group on reversal_date.
    """
    d = _to_date(reversal_date)

    source_type = (
        PostingGroup.objects.filter(tenant=tenant, pk=posting_group_id).values_list("source_type", flat=True).first()
    )
    if source_type is None:
        raise PostingGroupNotFound("Posting group not found for tenant.")

    # Document before group, the same lock order reverse_document uses.
    rule = _rule_for(source_type)
    document = rule.document_for(tenant=tenant, posting_group_id=posting_group_id) if rule is not None else None

    original = (
        PostingGroup.objects.select_for_update()
        .select_related("crop_cycle")
        .filter(tenant=tenant, pk=posting_group_id)
        .first()
    )
    if original is None:
        raise PostingGroupNotFound("Posting group not found for tenant.")

    if original.source_type == PostingGroup.SourceType.REVERSAL or original.reversal_of_id:
        raise ReversalNotAllowedError("A reversal cannot itself be reversed.")

    existing = _existing_reversal(tenant=tenant, original=original, reversal_date=d)
    if existing is not None:
        logger.info(
            "Idempotent reversal returned existing group",
            extra={"tenant_id": str(tenant.pk), "posting_group_id": str(original.pk)},
        )
        _mark_document(document, existing)
        return existing

    if rule is not None:
        rule.assert_reversible(original)

    assert_crop_cycle_open(original.crop_cycle, d)
    assert_reversible_on(tenant=tenant, reversal_date=d, original_date=original.posting_date)

    reason = (reason or "").strip()
    try:
        with transaction.atomic():
            reversal = PostingGroup.objects.create(
                tenant=tenant,
                crop_cycle=original.crop_cycle,
                source_type=PostingGroup.SourceType.REVERSAL,
                source_id=str(original.pk),
                posting_date=d,
                reversal_of=original,
                correction_reason=reason,
            )
    except IntegrityError:
        existing = _existing_reversal(tenant=tenant, original=original, reversal_date=d)
        if existing is None:
            raise
        _mark_document(document, existing)
        return existing

    LedgerEntry.objects.bulk_create(
        [
            LedgerEntry(
                tenant=tenant,
                posting_group=reversal,
                account_id=entry.account_id,
                party_id=entry.party_id,
                debit_amount=entry.credit_amount,
                credit_amount=entry.debit_amount,
                currency=entry.currency,
            )
            for entry in original.ledger_entries.all().order_by("created_at", "pk")
        ]
    )
    AllocationRow.objects.bulk_create(
        [
            AllocationRow(
                tenant=tenant,
                posting_group=reversal,
                project_id=row.project_id,
                party_id=row.party_id,
                allocation_type=row.allocation_type,
                amount=-row.amount,
                rule_snapshot={
                    **(row.rule_snapshot or {}),
                    "reversal_of": str(original.pk),
                    "reversal_reason": reason,
                },
            )
            for row in original.allocation_rows.all().order_by("created_at", "pk")
        ]
    )

    assert_group_balanced(reversal)

    if rule is not None:
        rule.unwind_effects(original, reversal)
    _mark_document(document, reversal)

    logger.info(
        "Posting group reversed",
        extra={
            "tenant_id": str(tenant.pk),
            "posting_group_id": str(original.pk),
            "reversal_id": str(reversal.pk),
            "reversal_date": str(d),
        },
    )
    return reversal
