# accounting/models/posting_group.py

"""
======================================================
PATH: accounting/models/posting_group.py
======================================================
POSTING GROUP MODEL

One atomic, balanced accounting event (header of ledger entries and
allocation rows).

Guarantees:
- Immutable once created (no updates, no deletes)
- Exactly one group per (tenant, source_type, source_id[, idempotency_key]),
  enforced by database constraints
- A group is reversed at most once; a reversal group is never reversed
- Corrections are expressed only as a new REVERSAL group

Scopes:
- active():     groups not targeted by any reversal (reversal groups included)
- reportable(): active() minus reversal groups, used for balance sums so a
                reversal never leaves a one-sided residue for an excluded
                original
"""

from __future__ import annotations

import uuid

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Exists, OuterRef, Q

from accounting.models.tenant import Tenant


class PostingGroupQuerySet(models.QuerySet):
    def for_tenant(self, tenant):
        return self.filter(tenant=tenant)

    def _reversed_marker(self):
        return Exists(
            PostingGroup.objects.filter(
                tenant_id=OuterRef("tenant_id"),
                reversal_of_id=OuterRef("pk"),
            )
        )

    def active(self):
        return self.filter(~self._reversed_marker())

    def reversed(self):
        return self.filter(self._reversed_marker())

    def reportable(self):
        return self.active().filter(reversal_of__isnull=True)


class PostingGroup(models.Model):
    class SourceType(models.TextChoices):
        SALE = "SALE", "Sale (AR invoice)"
        GRN = "GRN", "Goods receipt (AP invoice)"
        PAYMENT = "PAYMENT", "Payment"
        CREDIT_NOTE = "CREDIT_NOTE", "Credit note"
        STOCK_ISSUE = "STOCK_ISSUE", "Stock issue to crop"
        HARVEST = "HARVEST", "Harvest"
        OPERATIONAL = "OPERATIONAL", "Operational transaction"
        SETTLEMENT = "SETTLEMENT", "Settlement"
        MACHINERY_CHARGE = "MACHINERY_CHARGE", "Machinery charge"
        LAND_LEASE_ACCRUAL = "LAND_LEASE_ACCRUAL", "Land lease accrual"
        REVERSAL = "REVERSAL", "Reversal"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.PROTECT,
        related_name="posting_groups",
    )

    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="posting_groups",
    )

    source_type = models.CharField(max_length=20, choices=SourceType.choices)
    source_id = models.CharField(max_length=64)

    posting_date = models.DateField(help_text="Accounting effective date")

    idempotency_key = models.CharField(
        max_length=191,
        null=True,
        blank=True,
        help_text="Caller-supplied retry token",
    )

    reversal_of = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
    )

    correction_reason = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    objects = PostingGroupQuerySet.as_manager()

    class Meta:
        ordering = ["posting_date", "created_at"]
        indexes = [
            models.Index(fields=["tenant", "posting_date"]),
            models.Index(fields=["tenant", "source_type", "source_id"]),
            models.Index(fields=["tenant", "crop_cycle"]),
            models.Index(fields=["reversal_of"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "source_type", "source_id", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="uniq_posting_group_source_key",
            ),
            models.UniqueConstraint(
                fields=["tenant", "source_type", "source_id"],
                condition=Q(idempotency_key__isnull=True),
                name="uniq_posting_group_source",
            ),
            models.UniqueConstraint(
                fields=["reversal_of"],
                condition=Q(reversal_of__isnull=False),
                name="uniq_posting_group_single_reversal",
            ),
            models.CheckConstraint(
                condition=~Q(source_id=""),
                name="chk_posting_group_source_id_not_blank",
            ),
        ]

    def __str__(self):
        return f"PostingGroup {self.source_type}:{self.source_id} @ {self.posting_date}"

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def clean(self):
        self.source_id = str(self.source_id or "").strip()
        if self.idempotency_key is not None:
            self.idempotency_key = str(self.idempotency_key).strip() or None

        if self.source_type == self.SourceType.REVERSAL and not self.reversal_of_id:
            raise ValidationError("REVERSAL groups must reference the reversed group")
        if self.reversal_of_id and self.source_type != self.SourceType.REVERSAL:
            raise ValidationError("Only REVERSAL groups may reference a reversed group")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("PostingGroup records are immutable once created")

        # Uniqueness is left to the database so concurrent writers collide there.
        self.full_clean(validate_unique=False, validate_constraints=False)
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("PostingGroup records are immutable and cannot be deleted")
