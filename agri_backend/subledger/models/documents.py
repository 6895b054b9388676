# subledger/models/documents.py

"""
SUBLEDGER DOCUMENTS (AR + AP)

Invoice:
- AR invoices (sales) debit the AR control account
- AP invoices (goods receipts) credit the AP control account
- amount is the face amount; when lines exist it equals their total

Payment:
- kind PAYMENT settles cash (AR: money IN, AP: money OUT)
- kind CREDIT_NOTE settles without cash
- both are "instruments": until allocated to invoices they are unapplied

PaymentAllocation:
- links an instrument to an invoice for an amount on allocation_date
- ACTIVE rows reduce the invoice's open balance; VOID rows are history
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q

from accounting.models.document import PostableDocument
from accounting.models.tenant import Tenant

TWOPLACES = Decimal("0.01")


class Ledger(models.TextChoices):
    AR = "AR", "Accounts receivable"
    AP = "AP", "Accounts payable"


class Invoice(PostableDocument):
    ledger = models.CharField(max_length=2, choices=Ledger.choices)

    party = models.ForeignKey("farm.Party", on_delete=models.PROTECT, related_name="invoices")
    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="invoices",
    )
    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="invoices",
    )

    reference = models.CharField(max_length=100, blank=True, default="")
    invoice_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)

    amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["invoice_date", "created_at"]
        indexes = [
            models.Index(fields=["tenant", "ledger", "status"]),
            models.Index(fields=["tenant", "party"]),
        ]

    def __str__(self):
        return f"{self.ledger} invoice {self.reference or self.id} {self.amount}"

    @property
    def effective_due_date(self):
        return self.due_date or self.invoice_date or self.posting_date


class InvoiceLine(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey(
        "inventory.InventoryItem",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    description = models.CharField(max_length=255, blank=True, default="")
    quantity = models.DecimalField(
        max_digits=18,
        decimal_places=3,
        validators=[MinValueValidator(Decimal("0.001"))],
    )
    unit_price = models.DecimalField(max_digits=14, decimal_places=4)

    class Meta:
        ordering = ["id"]

    @property
    def line_total(self) -> Decimal:
        return (self.quantity * self.unit_price).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class Payment(PostableDocument):
    PAYMENT = "PAYMENT"
    CREDIT_NOTE = "CREDIT_NOTE"

    KINDS = [
        (PAYMENT, "Payment"),
        (CREDIT_NOTE, "Credit note"),
    ]

    CASH = "CASH"
    BANK = "BANK"

    METHODS = [
        (CASH, "Cash"),
        (BANK, "Bank"),
    ]

    FIFO = "FIFO"
    MANUAL = "MANUAL"

    APPLY_MODES = [
        (FIFO, "Apply oldest first on post"),
        (MANUAL, "Leave unapplied until applied explicitly"),
    ]

    ledger = models.CharField(max_length=2, choices=Ledger.choices)
    kind = models.CharField(max_length=12, choices=KINDS, default=PAYMENT)

    party = models.ForeignKey("farm.Party", on_delete=models.PROTECT, related_name="payments")
    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
    )

    reference = models.CharField(max_length=100, blank=True, default="")
    payment_date = models.DateField()
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    method = models.CharField(max_length=10, choices=METHODS, default=CASH)
    apply_mode = models.CharField(max_length=10, choices=APPLY_MODES, default=FIFO)

    class Meta:
        ordering = ["payment_date", "created_at"]
        indexes = [
            models.Index(fields=["tenant", "ledger", "status"]),
            models.Index(fields=["tenant", "party"]),
        ]

    def __str__(self):
        return f"{self.ledger} {self.kind} {self.reference or self.id} {self.amount}"

    @property
    def direction(self) -> str:
        return "IN" if self.ledger == Ledger.AR else "OUT"


class PaymentAllocation(models.Model):
    ACTIVE = "ACTIVE"
    VOID = "VOID"

    STATUSES = [
        (ACTIVE, "Active"),
        (VOID, "Void"),
    ]

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="+")
    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="allocations")
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="allocations")

    amount = models.DecimalField(max_digits=14, decimal_places=2)
    allocation_date = models.DateField()

    status = models.CharField(max_length=10, choices=STATUSES, default=ACTIVE)
    voided_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["allocation_date", "created_at"]
        indexes = [
            models.Index(fields=["tenant", "status", "allocation_date"]),
            models.Index(fields=["invoice", "status"]),
            models.Index(fields=["payment", "status"]),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="chk_payment_allocation_positive"),
        ]

    def __str__(self):
        return f"{self.status} {self.amount} {self.payment_id} → {self.invoice_id}"

    def delete(self, *args, **kwargs):
        raise ValidationError("Allocations are voided, never deleted")
