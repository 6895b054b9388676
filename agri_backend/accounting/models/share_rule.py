# accounting/models/share_rule.py

"""
======================================================
PATH: accounting/models/share_rule.py
======================================================
SHARE RULE MODELS

Versioned percentage-split configuration consumed by the allocation
calculator (SHARED_BY_RULE).

Rules:
- Lines must sum to 100 (checked in share_rule_service)
- version increments per (tenant, applies_to)
- Scope: SALE rules are tenant-wide, PROJECT rules target one project,
  CROP_CYCLE rules target one crop cycle (or all when crop_cycle is empty)
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F, Q

from accounting.models.tenant import Tenant


class ShareRule(models.Model):
    class AppliesTo(models.TextChoices):
        SALE = "SALE", "Sale"
        PROJECT = "PROJECT", "Project"
        CROP_CYCLE = "CROP_CYCLE", "Crop cycle"

    class Basis(models.TextChoices):
        MARGIN = "MARGIN", "Margin"
        REVENUE = "REVENUE", "Revenue"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="share_rules")

    name = models.CharField(max_length=150)
    applies_to = models.CharField(max_length=20, choices=AppliesTo.choices)
    basis = models.CharField(max_length=20, choices=Basis.choices, default=Basis.MARGIN)

    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="share_rules",
    )
    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="share_rules",
    )

    effective_from = models.DateField()
    effective_to = models.DateField(null=True, blank=True)

    version = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["applies_to", "-version"]
        indexes = [
            models.Index(fields=["tenant", "applies_to", "is_active"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "applies_to", "version"],
                name="uniq_share_rule_version",
            ),
            models.CheckConstraint(
                condition=Q(effective_to__isnull=True) | Q(effective_to__gte=F("effective_from")),
                name="chk_share_rule_effective_range",
            ),
        ]

    def __str__(self):
        return f"{self.name} v{self.version} ({self.applies_to})"

    def covers(self, on_date) -> bool:
        if on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to


class ShareRuleLine(models.Model):
    rule = models.ForeignKey(ShareRule, on_delete=models.CASCADE, related_name="lines")
    party = models.ForeignKey("farm.Party", on_delete=models.PROTECT, related_name="+")
    role = models.CharField(max_length=20, blank=True, default="")
    percentage = models.DecimalField(max_digits=7, decimal_places=4)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(percentage__gt=0) & Q(percentage__lte=100),
                name="chk_share_rule_line_percentage",
            ),
        ]

    def __str__(self):
        return f"{self.party_id} {self.percentage}%"
