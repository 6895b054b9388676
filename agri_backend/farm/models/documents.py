# farm/models/documents.py

"""
FARM SOURCE DOCUMENTS

OperationalTransaction:
- cash income or expense against a project, classified for cost sharing
  (SHARED / HARI_ONLY / LANDLORD_ONLY / FARM_OVERHEAD)

Settlement:
- distributes a project's profit pool to the parties of a share
  (inline percentages or a versioned share rule) through the
  party-control accounts

MachineryCharge:
- machine work billed to a project by the machine's owner

LandLeaseAccrual:
- a lease period's rent owed to the landlord, accrued against a project
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from accounting.models.document import PostableDocument


class OperationalTransaction(PostableDocument):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    TYPES = [
        (INCOME, "Income"),
        (EXPENSE, "Expense"),
    ]

    SHARED = "SHARED"
    HARI_ONLY = "HARI_ONLY"
    LANDLORD_ONLY = "LANDLORD_ONLY"
    FARM_OVERHEAD = "FARM_OVERHEAD"

    CLASSIFICATIONS = [
        (SHARED, "Shared"),
        (HARI_ONLY, "Hari only"),
        (LANDLORD_ONLY, "Landlord only"),
        (FARM_OVERHEAD, "Farm overhead"),
    ]

    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        related_name="operational_transactions",
    )
    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="operational_transactions",
    )
    landlord = models.ForeignKey(
        "farm.Party",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
        help_text="Party charged for LANDLORD_ONLY and FARM_OVERHEAD costs",
    )

    transaction_date = models.DateField()
    transaction_type = models.CharField(max_length=10, choices=TYPES)
    classification = models.CharField(max_length=20, choices=CLASSIFICATIONS)
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-transaction_date", "-created_at"]
        indexes = [models.Index(fields=["tenant", "transaction_date"])]

    def __str__(self):
        return f"{self.transaction_type} {self.classification} {self.amount}"


class Settlement(PostableDocument):
    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        related_name="settlements",
    )
    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        related_name="settlements",
    )
    settlement_date = models.DateField()
    pool_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    share_rule = models.ForeignKey(
        "accounting.ShareRule",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="settlements",
    )
    shares = models.JSONField(
        default=list,
        blank=True,
        help_text='Inline split: [{"party_id": "...", "percentage": "60"}, ...]',
    )

    class Meta:
        ordering = ["-settlement_date", "-created_at"]

    def __str__(self):
        return f"Settlement {self.project_id} {self.pool_amount}"


class MachineryCharge(PostableDocument):
    """
    A machine owner's charge to a project for machine work (tractor
    hours, threshing, hauling). Usage and rate are optional; when both are
    given the amount must equal their product.
    """

    SHARED = "SHARED"
    HARI_ONLY = "HARI_ONLY"

    POOL_SCOPES = [
        (SHARED, "Shared"),
        (HARI_ONLY, "Hari only"),
    ]

    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        related_name="machinery_charges",
    )
    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        related_name="machinery_charges",
    )
    owner = models.ForeignKey(
        "farm.Party",
        on_delete=models.PROTECT,
        related_name="+",
        help_text="Party whose machine did the work",
    )

    charge_date = models.DateField()
    pool_scope = models.CharField(max_length=10, choices=POOL_SCOPES, default=SHARED)
    machine = models.CharField(max_length=100, blank=True, default="")
    usage_quantity = models.DecimalField(max_digits=12, decimal_places=3, null=True, blank=True)
    unit = models.CharField(max_length=20, blank=True, default="")
    rate = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    reference = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        ordering = ["-charge_date", "-created_at"]
        indexes = [models.Index(fields=["tenant", "charge_date"])]

    def __str__(self):
        return f"Machinery {self.machine or self.pk} {self.amount}"


class LandLeaseAccrual(PostableDocument):
    """Rent owed to a landlord for one lease period, accrued to a project."""

    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        related_name="lease_accruals",
    )
    landlord = models.ForeignKey(
        "farm.Party",
        on_delete=models.PROTECT,
        related_name="+",
    )

    period_start = models.DateField()
    period_end = models.DateField()
    accrual_date = models.DateField()
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    land_parcel = models.CharField(max_length=100, blank=True, default="")
    reference = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        ordering = ["-accrual_date", "-created_at"]
        indexes = [models.Index(fields=["tenant", "accrual_date"])]

    @property
    def crop_cycle(self):
        return self.project.crop_cycle

    def __str__(self):
        return f"Lease {self.landlord_id} {self.period_start}..{self.period_end}"
