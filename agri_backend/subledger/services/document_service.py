# subledger/services/document_service.py

"""
AR / AP DOCUMENT POSTING (APPLICATION SERVICE)

Posting is idempotent per document; the posting group handles are
written back to the document and surfaced unchanged to API consumers.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import transaction

from accounting.models.document import PostableDocument
from accounting.services import posting_rules
from subledger.models import Invoice, Payment
from subledger.posting_rules import source_type_for_invoice, source_type_for_payment


@transaction.atomic
def post_invoice(*, invoice: Invoice, posting_date=None):
    invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)

    # Face amount follows the lines while the invoice is still a draft.
    lines = list(invoice.lines.all())
    if invoice.status == PostableDocument.DRAFT and lines:
        total = sum((line.line_total for line in lines), Decimal("0.00"))
        if total != invoice.amount:
            invoice.amount = total
            invoice.save(update_fields=["amount", "updated_at"])

    return posting_rules.post_document(
        source_type=source_type_for_invoice(invoice),
        document=invoice,
        posting_date=posting_date,
    )


def reverse_invoice(*, invoice: Invoice, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=invoice, reversal_date=reversal_date, reason=reason)


def post_payment(*, payment: Payment, posting_date=None):
    return posting_rules.post_document(
        source_type=source_type_for_payment(payment),
        document=payment,
        posting_date=posting_date,
    )


def reverse_payment(*, payment: Payment, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=payment, reversal_date=reversal_date, reason=reason)
