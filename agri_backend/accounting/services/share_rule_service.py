# accounting/services/share_rule_service.py

"""
======================================================
PATH: accounting/services/share_rule_service.py
======================================================
SHARE RULE SERVICE

Versioned percentage splits for SHARED_BY_RULE allocations.

RULES:
- Lines must sum to 100 (tolerance 0.01); each line 0 < pct <= 100
- version = max(version) + 1 per (tenant, applies_to)
- Active rules of the same scope may not overlap in effective dates
- A rule frozen into any allocation snapshot is never edited; publish a
  new version instead
- Resolution order: SALE > PROJECT > CROP_CYCLE, highest version wins
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Max, Q

from accounting.models.allocation import AllocationRow
from accounting.models.share_rule import ShareRule, ShareRuleLine
from accounting.services.exceptions import ShareRuleError, ShareRuleInUseError
from accounting.services.period_lock import _to_date

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
PCT_TOLERANCE = Decimal("0.01")

RESOLUTION_ORDER = (
    ShareRule.AppliesTo.SALE,
    ShareRule.AppliesTo.PROJECT,
    ShareRule.AppliesTo.CROP_CYCLE,
)


@dataclass(frozen=True)
class ShareLineInput:
    party_id: object
    percentage: Decimal
    role: str = ""


def _pct(v) -> Decimal:
    try:
        return Decimal(str(v))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ShareRuleError(f"Invalid percentage: {v!r}") from exc


def _normalize_lines(lines) -> list[ShareLineInput]:
    out = []
    for line in lines or []:
        if isinstance(line, ShareLineInput):
            out.append(line)
            continue
        if "percentage" not in line or line.get("party_id") in (None, ""):
            raise ShareRuleError("Each share line needs party_id and percentage.")
        out.append(
            ShareLineInput(
                party_id=line["party_id"],
                percentage=_pct(line["percentage"]),
                role=(line.get("role") or "").strip().upper(),
            )
        )
    return out


def validate_percentages(lines) -> list[ShareLineInput]:
    normalized = _normalize_lines(lines)
    if not normalized:
        raise ShareRuleError("A share needs at least one line.")

    for line in normalized:
        if line.percentage <= 0 or line.percentage > HUNDRED:
            raise ShareRuleError(f"Share percentage must be in (0, 100], got {line.percentage}.")

    total = sum((line.percentage for line in normalized), Decimal("0"))
    if abs(total - HUNDRED) > PCT_TOLERANCE:
        raise ShareRuleError(f"Share percentages must sum to 100. Current sum: {total}")
    return normalized


def _scope_filter(*, applies_to, project_id, crop_cycle_id) -> Q:
    if applies_to == ShareRule.AppliesTo.PROJECT:
        return Q(project_id=project_id)
    if applies_to == ShareRule.AppliesTo.CROP_CYCLE:
        return Q(crop_cycle_id=crop_cycle_id)
    return Q()


def _assert_no_overlap(*, tenant, applies_to, project_id, crop_cycle_id, effective_from, effective_to, exclude_id=None):
    qs = ShareRule.objects.filter(tenant=tenant, applies_to=applies_to, is_active=True).filter(
        _scope_filter(applies_to=applies_to, project_id=project_id, crop_cycle_id=crop_cycle_id)
    )
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)

    # [a, b] overlaps [c, d] when a <= d and c <= b (open ends are infinite).
    qs = qs.filter(Q(effective_to__isnull=True) | Q(effective_to__gte=effective_from))
    if effective_to is not None:
        qs = qs.filter(effective_from__lte=effective_to)

    if qs.exists():
        raise ShareRuleError("Share rule effective dates overlap another active rule for the same scope.")


def is_rule_in_use(rule) -> bool:
    return AllocationRow.objects.filter(
        tenant_id=rule.tenant_id,
        rule_snapshot__share_rule_id=str(rule.pk),
    ).exists()


@transaction.atomic
def create_share_rule(
    *,
    tenant,
    name: str,
    applies_to: str,
    lines,
    effective_from,
    effective_to=None,
    project=None,
    crop_cycle=None,
    basis: str = ShareRule.Basis.MARGIN,
    is_active: bool = True,
) -> ShareRule:
    name = (name or "").strip()
    if not name:
        raise ShareRuleError("Share rule name is required.")
    if applies_to not in ShareRule.AppliesTo.values:
        raise ShareRuleError(f"Unknown applies_to: {applies_to!r}")
    if applies_to == ShareRule.AppliesTo.PROJECT and project is None:
        raise ShareRuleError("PROJECT share rules need a project.")

    start = _to_date(effective_from)
    end = _to_date(effective_to) if effective_to else None
    if end is not None and end < start:
        raise ShareRuleError("effective_to must be >= effective_from")

    normalized = validate_percentages(lines)

    project_id = getattr(project, "pk", project)
    crop_cycle_id = getattr(crop_cycle, "pk", crop_cycle)

    if is_active:
        _assert_no_overlap(
            tenant=tenant,
            applies_to=applies_to,
            project_id=project_id,
            crop_cycle_id=crop_cycle_id,
            effective_from=start,
            effective_to=end,
        )

    # Lock the scope's rows so concurrent creators compute distinct versions.
    list(ShareRule.objects.select_for_update().filter(tenant=tenant, applies_to=applies_to).values_list("pk", flat=True))
    max_version = (
        ShareRule.objects.filter(tenant=tenant, applies_to=applies_to).aggregate(v=Max("version"))["v"] or 0
    )

    rule = ShareRule.objects.create(
        tenant=tenant,
        name=name,
        applies_to=applies_to,
        basis=basis,
        project_id=project_id,
        crop_cycle_id=crop_cycle_id,
        effective_from=start,
        effective_to=end,
        version=max_version + 1,
        is_active=is_active,
    )
    ShareRuleLine.objects.bulk_create(
        [
            ShareRuleLine(rule=rule, party_id=line.party_id, role=line.role, percentage=line.percentage)
            for line in normalized
        ]
    )

    logger.info(
        "Share rule created",
        extra={"tenant_id": str(tenant.pk), "share_rule_id": str(rule.pk), "version": rule.version},
    )
    return rule


@transaction.atomic
def update_share_rule(*, rule, name=None, lines=None, effective_from=None, effective_to=None, is_active=None) -> ShareRule:
    rule = ShareRule.objects.select_for_update().get(pk=rule.pk)

    if is_rule_in_use(rule):
        raise ShareRuleInUseError(
            "Share rule is frozen into posted allocations; create a new version instead."
        )

    if name is not None:
        rule.name = name.strip()
    if effective_from is not None:
        rule.effective_from = _to_date(effective_from)
    if effective_to is not None:
        rule.effective_to = _to_date(effective_to)
    if is_active is not None:
        rule.is_active = bool(is_active)

    if rule.effective_to is not None and rule.effective_to < rule.effective_from:
        raise ShareRuleError("effective_to must be >= effective_from")

    if rule.is_active:
        _assert_no_overlap(
            tenant=rule.tenant,
            applies_to=rule.applies_to,
            project_id=rule.project_id,
            crop_cycle_id=rule.crop_cycle_id,
            effective_from=rule.effective_from,
            effective_to=rule.effective_to,
            exclude_id=rule.pk,
        )

    rule.save()

    if lines is not None:
        normalized = validate_percentages(lines)
        rule.lines.all().delete()
        ShareRuleLine.objects.bulk_create(
            [
                ShareRuleLine(rule=rule, party_id=line.party_id, role=line.role, percentage=line.percentage)
                for line in normalized
            ]
        )

    return rule


def resolve_share_rule(
    *,
    tenant,
    on_date,
    project=None,
    crop_cycle=None,
    include_sale_rules: bool = False,
) -> ShareRule | None:
    """
    Most specific active rule covering on_date, or None.
    """
    d = _to_date(on_date)
    project_id = getattr(project, "pk", project)
    crop_cycle_id = getattr(crop_cycle, "pk", crop_cycle)

    for applies_to in RESOLUTION_ORDER:
        if applies_to == ShareRule.AppliesTo.SALE and not include_sale_rules:
            continue
        if applies_to == ShareRule.AppliesTo.PROJECT and project_id is None:
            continue

        qs = ShareRule.objects.filter(
            tenant=tenant,
            applies_to=applies_to,
            is_active=True,
            effective_from__lte=d,
        ).filter(Q(effective_to__isnull=True) | Q(effective_to__gte=d))

        if applies_to == ShareRule.AppliesTo.PROJECT:
            qs = qs.filter(project_id=project_id)
        elif applies_to == ShareRule.AppliesTo.CROP_CYCLE:
            qs = qs.filter(Q(crop_cycle__isnull=True) | Q(crop_cycle_id=crop_cycle_id))

        rule = qs.prefetch_related("lines").order_by("-version").first()
        if rule is not None:
            return rule

    return None
