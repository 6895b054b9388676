# accounting/services/period_lock.py

"""
======================================================
PATH: accounting/services/period_lock.py
======================================================
PERIOD LOCK

Purpose:
- Resolve the accounting period covering a posting date (per tenant).
- Enforce period locks at the engine choke-point (post + reverse).
- Manage the period lifecycle: create / close / reopen, with an
  append-only PeriodEvent trail.

Policy:
- A date with no covering period is NOT a blocker: an OPEN monthly
  period ("YYYY-MM", clamped to any neighbouring periods) is created.
- CLOSED periods reject postings.
- Reversals dated on the original posting date are allowed into a
  CLOSED period (same-date exception). Crop-cycle gates still apply.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from accounting.models.period import AccountingPeriod, PeriodEvent
from accounting.services.exceptions import PeriodLockedError, PeriodStateError, ValidationFault
from accounting.services.write_retry import retry_on_collision

logger = logging.getLogger(__name__)


def _to_date(value) -> date:
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        parsed = parse_date(value.strip())
        if parsed is not None:
            return parsed
    raise ValidationFault(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def get_period_for_date(*, tenant, on_date) -> AccountingPeriod | None:
    d = _to_date(on_date)
    return (
        AccountingPeriod.objects.filter(
            tenant=tenant,
            period_start__lte=d,
            period_end__gte=d,
        )
        .order_by("period_start")
        .first()
    )


def _monthly_bounds(*, tenant, d: date) -> tuple[date, date]:
    month_start = d.replace(day=1)
    month_end = d.replace(day=calendar.monthrange(d.year, d.month)[1])

    # Clamp to neighbouring periods so the new one never overlaps.
    before = (
        AccountingPeriod.objects.filter(tenant=tenant, period_end__lt=d, period_end__gte=month_start)
        .order_by("-period_end")
        .first()
    )
    after = (
        AccountingPeriod.objects.filter(tenant=tenant, period_start__gt=d, period_start__lte=month_end)
        .order_by("period_start")
        .first()
    )

    start = before.period_end + timedelta(days=1) if before else month_start
    end = after.period_start - timedelta(days=1) if after else month_end
    return start, end


@retry_on_collision
def get_or_create_period_for_date(*, tenant, on_date) -> AccountingPeriod:
    d = _to_date(on_date)

    existing = get_period_for_date(tenant=tenant, on_date=d)
    if existing is not None:
        return existing

    start, end = _monthly_bounds(tenant=tenant, d=d)
    try:
        with transaction.atomic():
            period = AccountingPeriod.objects.create(
                tenant=tenant,
                name=f"{d:%Y-%m}",
                period_start=start,
                period_end=end,
                status=AccountingPeriod.OPEN,
            )
            PeriodEvent.objects.create(
                tenant=tenant,
                period=period,
                event_type=PeriodEvent.CREATED,
                notes="auto-created for posting date",
            )
    except IntegrityError:
        # A concurrent poster created the same period first. Under SERIALIZABLE
        # it is not visible here; the outer write retries in a fresh transaction.
        period = get_period_for_date(tenant=tenant, on_date=d)
        if period is None:
            raise
        return period

    logger.info(
        "Accounting period auto-created",
        extra={"tenant_id": str(tenant.pk), "period": period.name},
    )
    return period


def _resolve_period(*, tenant, on_date) -> AccountingPeriod | None:
    if getattr(settings, "ACCOUNTING_AUTO_CREATE_PERIODS", True):
        return get_or_create_period_for_date(tenant=tenant, on_date=on_date)
    return get_period_for_date(tenant=tenant, on_date=on_date)


def assert_postable(*, tenant, posting_date) -> AccountingPeriod | None:
    """
    Assert that posting_date does NOT fall inside a closed period.

    Raises:
        PeriodLockedError if the date is locked.
    """
    d = _to_date(posting_date)
    period = _resolve_period(tenant=tenant, on_date=d)

    if period is not None and period.is_closed:
        raise PeriodLockedError(
            f"Posting blocked: {d} falls inside closed period {period.name}."
        )
    return period


def assert_reversible_on(*, tenant, reversal_date, original_date) -> AccountingPeriod | None:
    """
    Period gate for reversals: same-date reversals bypass a CLOSED period.
    """
    d = _to_date(reversal_date)
    period = _resolve_period(tenant=tenant, on_date=d)

    if period is None or not period.is_closed:
        return period

    if d == _to_date(original_date):
        logger.info(
            "Same-date reversal allowed into closed period",
            extra={"tenant_id": str(tenant.pk), "period": period.name},
        )
        return period

    raise PeriodLockedError(
        f"Reversal blocked: {d} falls inside closed period {period.name}."
    )


@transaction.atomic
def create_period(*, tenant, period_start, period_end, name: str | None = None, actor: str = "") -> AccountingPeriod:
    start = _to_date(period_start)
    end = _to_date(period_end)
    if start > end:
        raise ValidationFault("period_start must be <= period_end")

    overlapping = AccountingPeriod.objects.select_for_update().filter(
        tenant=tenant,
        period_start__lte=end,
        period_end__gte=start,
    )
    if overlapping.exists():
        raise PeriodStateError(f"Period {start}..{end} overlaps an existing period.")

    period = AccountingPeriod.objects.create(
        tenant=tenant,
        name=(name or f"{start:%Y-%m}").strip(),
        period_start=start,
        period_end=end,
        status=AccountingPeriod.OPEN,
    )
    PeriodEvent.objects.create(tenant=tenant, period=period, event_type=PeriodEvent.CREATED, actor=actor)
    return period


@transaction.atomic
def close_period(*, tenant, period_id, actor: str = "", notes: str = "") -> AccountingPeriod:
    period = _lock_period(tenant=tenant, period_id=period_id)
    if period.is_closed:
        raise PeriodStateError(f"Period {period.name} is already closed.")

    period.status = AccountingPeriod.CLOSED
    period.closed_at = timezone.now()
    period.closed_by = actor or ""
    period.save(update_fields=["status", "closed_at", "closed_by", "updated_at"])
    PeriodEvent.objects.create(
        tenant=tenant, period=period, event_type=PeriodEvent.CLOSED, actor=actor, notes=notes
    )

    logger.info("Accounting period closed", extra={"tenant_id": str(tenant.pk), "period": period.name})
    return period


@transaction.atomic
def reopen_period(*, tenant, period_id, actor: str = "", notes: str = "") -> AccountingPeriod:
    period = _lock_period(tenant=tenant, period_id=period_id)
    if not period.is_closed:
        raise PeriodStateError(f"Period {period.name} is already open.")

    period.status = AccountingPeriod.OPEN
    period.closed_at = None
    period.closed_by = ""
    period.save(update_fields=["status", "closed_at", "closed_by", "updated_at"])
    PeriodEvent.objects.create(
        tenant=tenant, period=period, event_type=PeriodEvent.REOPENED, actor=actor, notes=notes
    )

    logger.info("Accounting period reopened", extra={"tenant_id": str(tenant.pk), "period": period.name})
    return period


def _lock_period(*, tenant, period_id) -> AccountingPeriod:
    try:
        return AccountingPeriod.objects.select_for_update().get(tenant=tenant, pk=period_id)
    except AccountingPeriod.DoesNotExist as exc:
        raise ValidationFault("Accounting period not found for tenant.") from exc
