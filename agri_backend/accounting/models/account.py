# accounting/models/account.py

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q

from accounting.models.tenant import Tenant


class Account(models.Model):
    """
    A single ledger account in a tenant's chart.

    Guarantees:
    - Account codes are unique per tenant
    - Code + name are normalized (trimmed, code upper-cased)
    - The chart is supplied externally; the ledger only reads it
    """

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"

    ACCOUNT_TYPES = [
        (ASSET, "Asset"),
        (LIABILITY, "Liability"),
        (EQUITY, "Equity"),
        (REVENUE, "Revenue"),
        (EXPENSE, "Expense"),
    ]

    # Balance grows with debits; every other type grows with credits.
    DEBIT_NORMAL = (ASSET, EXPENSE)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.PROTECT,
        related_name="accounts",
    )

    code = models.CharField(max_length=50)
    name = models.CharField(max_length=150)

    account_type = models.CharField(
        max_length=20,
        choices=ACCOUNT_TYPES,
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["code"]
        indexes = [
            models.Index(fields=["tenant", "code"]),
            models.Index(fields=["tenant", "account_type"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "code"],
                name="uniq_account_tenant_code",
            ),
            models.CheckConstraint(
                condition=~Q(code=""),
                name="chk_account_code_not_blank",
            ),
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"

    def clean(self):
        self.code = (self.code or "").strip().upper()
        self.name = (self.name or "").strip()

    def save(self, *args, **kwargs):
        self.clean()
        return super().save(*args, **kwargs)
