# subledger/models/__init__.py

"""
SUBLEDGER MODELS PACKAGE EXPORTS (imports-only)
"""

from subledger.models.documents import Invoice, InvoiceLine, Ledger, Payment, PaymentAllocation

__all__ = [
    "Ledger",
    "Invoice",
    "InvoiceLine",
    "Payment",
    "PaymentAllocation",
]
