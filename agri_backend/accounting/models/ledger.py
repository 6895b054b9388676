# accounting/models/ledger.py

"""
======================================================
PATH: accounting/models/ledger.py
======================================================
LEDGER ENTRY MODEL

Single debit or credit line against one account within a PostingGroup.

Guarantees:
- Immutable once created (no updates, no deletes)
- debit_amount >= 0 and credit_amount >= 0, exactly one of them non-zero
- Reporting uses posting_group.posting_date as the accounting timeline
- party is an optional attribution for control-account lines
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from accounting.models.account import Account
from accounting.models.posting_group import PostingGroup
from accounting.models.tenant import Tenant


def _default_currency():
    return getattr(settings, "ACCOUNTING_DEFAULT_CURRENCY", "GBP")


class LedgerEntry(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="+")

    posting_group = models.ForeignKey(
        PostingGroup,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )

    party = models.ForeignKey(
        "farm.Party",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
    )

    debit_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    credit_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    currency = models.CharField(max_length=3, default=_default_currency)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Ledger Entry"
        verbose_name_plural = "Ledger Entries"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["tenant", "account"]),
            models.Index(fields=["posting_group"]),
            models.Index(fields=["tenant", "party"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(debit_amount__gte=0) & Q(credit_amount__gte=0),
                name="chk_ledger_amounts_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(debit_amount=0) | Q(credit_amount=0),
                name="chk_ledger_single_side",
            ),
        ]

    def __str__(self):
        side = f"Dr {self.debit_amount}" if self.debit_amount else f"Cr {self.credit_amount}"
        return f"{side} → {self.account}"

    def clean(self):
        if self.debit_amount is None or self.credit_amount is None:
            raise ValidationError("Ledger amounts are required")
        if self.debit_amount < 0 or self.credit_amount < 0:
            raise ValidationError("Ledger amounts must be >= 0")
        if self.debit_amount > 0 and self.credit_amount > 0:
            raise ValidationError("A ledger entry cannot be both debit and credit")
        if self.debit_amount == 0 and self.credit_amount == 0:
            raise ValidationError("A ledger entry must carry a non-zero amount")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("LedgerEntry records are immutable and cannot be modified")

        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("LedgerEntry records are immutable and cannot be deleted")
