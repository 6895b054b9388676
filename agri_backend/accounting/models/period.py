# accounting/models/period.py

"""
======================================================
PATH: accounting/models/period.py
======================================================
ACCOUNTING PERIOD + PERIOD EVENT MODELS

AccountingPeriod is a per-tenant calendar gate:
- OPEN periods accept postings and reversals
- CLOSED periods reject them (same-date reversal exception lives in the
  period lock service, not here)

PeriodEvent is the append-only audit trail of period transitions.
"""

from __future__ import annotations

import uuid

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

from accounting.models.tenant import Tenant


class AccountingPeriod(models.Model):
    OPEN = "OPEN"
    CLOSED = "CLOSED"

    STATUSES = [
        (OPEN, "Open"),
        (CLOSED, "Closed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.PROTECT,
        related_name="accounting_periods",
    )

    name = models.CharField(max_length=50)
    period_start = models.DateField()
    period_end = models.DateField()

    status = models.CharField(max_length=10, choices=STATUSES, default=OPEN)

    closed_at = models.DateTimeField(null=True, blank=True)
    closed_by = models.CharField(max_length=150, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["period_start"]
        indexes = [
            models.Index(fields=["tenant", "period_start", "period_end"]),
            models.Index(fields=["tenant", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(period_start__lte=F("period_end")),
                name="chk_period_start_before_end",
            ),
            models.UniqueConstraint(
                fields=["tenant", "period_start", "period_end"],
                name="uniq_period_tenant_range",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.status})"

    @property
    def is_closed(self) -> bool:
        return self.status == self.CLOSED

    def clean(self):
        self.name = (self.name or "").strip()
        if self.period_start and self.period_end and self.period_start > self.period_end:
            raise ValidationError("period_start must be <= period_end")


class PeriodEvent(models.Model):
    CREATED = "CREATED"
    CLOSED = "CLOSED"
    REOPENED = "REOPENED"

    EVENT_TYPES = [
        (CREATED, "Created"),
        (CLOSED, "Closed"),
        (REOPENED, "Reopened"),
    ]

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="+")
    period = models.ForeignKey(
        AccountingPeriod,
        on_delete=models.PROTECT,
        related_name="events",
    )
    event_type = models.CharField(max_length=10, choices=EVENT_TYPES)
    actor = models.CharField(max_length=150, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.event_type} {self.period_id}"

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError("PeriodEvent records are append-only")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("PeriodEvent records are append-only and cannot be deleted")
