# accounting/services/posting_rules.py

"""
POSTING RULES: REGISTRY + DOCUMENT ADAPTER (AUTHORITATIVE)

Defines HOW a source document maps to accounting intent.

A PostingRule, per source type:
- computes balanced PostingLines from the document
- computes allocation instructions (the calculator does the math)
- applies secondary effects once the group exists (stock, payment apply)
- guards and unwinds those effects on reversal
- names its document model, so a reversal reached from any entry point
  (document service or the posting-group API) marks the document REVERSED

Rules live with their documents (farm / inventory / subledger) and are
registered from each AppConfig.ready().

THIS MODULE DOES NOT:
- Enforce debit == credit math (the engine does)
- Write ledger rows directly
"""

from __future__ import annotations

import logging

from django.db import transaction

from accounting.models.document import PostableDocument
from accounting.models.posting_group import PostingGroup
from accounting.services import posting_engine, reversal_service
from accounting.services.account_catalog import AccountCatalog
from accounting.services.exceptions import DocumentStateError, ValidationFault
from accounting.services.write_retry import retry_on_collision

logger = logging.getLogger(__name__)


class PostingRule:
    source_type: str = ""
    document_model = None

    def validate(self, document) -> None:
        """Raise ValidationFault / StateConflict before anything is computed."""

    def posting_date_for(self, document):
        return document.posting_date

    def crop_cycle_for(self, document):
        return getattr(document, "crop_cycle", None)

    def idempotency_key_for(self, document) -> str:
        return f"{self.source_type}:{document.pk}:POST"

    def compute_lines(self, document, *, posting_date, catalog) -> list[posting_engine.PostingLine]:
        raise NotImplementedError

    def compute_allocations(self, document, *, posting_date) -> list:
        return []

    def apply_effects(self, document, group) -> None:
        pass

    def assert_reversible(self, group) -> None:
        pass

    def unwind_effects(self, original, reversal) -> None:
        pass

    def document_for(self, *, tenant, posting_group_id):
        """Lock and return the document posted as posting_group_id, if any."""
        if self.document_model is None:
            return None
        return (
            self.document_model.objects.select_for_update()
            .filter(tenant=tenant, posting_group_id=posting_group_id)
            .first()
        )


_REGISTRY: dict[str, PostingRule] = {}


def register(rule_cls):
    source_type = rule_cls.source_type
    if source_type not in PostingGroup.SourceType.values or source_type == PostingGroup.SourceType.REVERSAL:
        raise ValueError(f"Cannot register a posting rule for {source_type!r}")
    _REGISTRY[source_type] = rule_cls()
    return rule_cls


def find_rule(source_type) -> PostingRule | None:
    return _REGISTRY.get(source_type)


def get_rule(source_type) -> PostingRule:
    rule = find_rule(source_type)
    if rule is None:
        raise ValidationFault(f"No posting rule registered for {source_type!r}")
    return rule


def registered_source_types() -> list[str]:
    return sorted(_REGISTRY)


def _lock_document(document):
    if not isinstance(document, PostableDocument):
        raise ValidationFault("Only postable documents can be posted.")
    return type(document).objects.select_for_update().select_related("tenant").get(pk=document.pk)


@retry_on_collision
@transaction.atomic
def post_document(*, source_type: str, document, posting_date=None, catalog: AccountCatalog | None = None) -> PostingGroup:
    """
    POST DOCUMENT → ACCOUNTING

    Idempotent: a POSTED document returns its posting group unchanged.
    """
    rule = get_rule(source_type)
    document = _lock_document(document)

    if document.status == PostableDocument.REVERSED:
        raise DocumentStateError("Document has been reversed and cannot be posted again.")
    if document.status == PostableDocument.POSTED and document.posting_group_id:
        return document.posting_group

    rule.validate(document)

    tenant = document.tenant
    d = posting_date or rule.posting_date_for(document)
    catalog = catalog or AccountCatalog.for_tenant(tenant)

    group = posting_engine.post(
        tenant=tenant,
        source_type=rule.source_type,
        source_id=document.pk,
        posting_date=d,
        idempotency_key=rule.idempotency_key_for(document),
        lines=rule.compute_lines(document, posting_date=d, catalog=catalog),
        allocations=rule.compute_allocations(document, posting_date=d),
        crop_cycle=rule.crop_cycle_for(document),
        catalog=catalog,
        on_posted=lambda g: rule.apply_effects(document, g),
    )

    document.mark_posted(group)
    logger.info(
        "Document posted",
        extra={"source_type": source_type, "document_id": str(document.pk), "posting_group_id": str(group.pk)},
    )
    return group


@retry_on_collision
@transaction.atomic
def reverse_document(*, document, reversal_date, reason: str = "") -> PostingGroup:
    """
    REVERSE DOCUMENT → ACCOUNTING

    Same-date retries return the existing reversal.
    """
    document = _lock_document(document)
    if not document.posting_group_id or document.status == PostableDocument.DRAFT:
        raise DocumentStateError("Only posted documents can be reversed.")

    reversal = reversal_service.reverse(
        tenant=document.tenant,
        posting_group_id=document.posting_group_id,
        reversal_date=reversal_date,
        reason=reason,
    )

    document.refresh_from_db()
    if document.status != PostableDocument.REVERSED:
        document.mark_reversed(reversal)
    return reversal
