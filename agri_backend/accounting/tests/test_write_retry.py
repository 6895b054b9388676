# accounting/tests/test_write_retry.py

"""
Lost write races: the loser must end up with the winner's group, never a
500. These run outside a wrapping test transaction so that each attempt
commits or rolls back for real.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest import mock

from django.db import IntegrityError, OperationalError, transaction
from django.test import TransactionTestCase

from accounting.models.ledger import LedgerEntry
from accounting.models.posting_group import PostingGroup
from accounting.services import posting_engine, reversal_service
from accounting.services.posting_engine import PostingLine
from accounting.services.write_retry import is_write_collision
from accounting.tests.factories import make_tenant

OPERATIONAL = PostingGroup.SourceType.OPERATIONAL


class _SerializationFailure(Exception):
    sqlstate = "40001"


def _serialization_error():
    exc = OperationalError("could not serialize access due to concurrent update")
    exc.__cause__ = _SerializationFailure()
    return exc


def _hidden_for(calls: int, real):
    """Lookup that misses the first `calls` times, like a stale snapshot."""
    seen = {"n": 0}

    def lookup(**kwargs):
        seen["n"] += 1
        if seen["n"] <= calls:
            return None
        return real(**kwargs)

    return lookup


class WriteRetryTests(TransactionTestCase):
    def setUp(self):
        self.tenant = make_tenant()

    def _post(self, source_id="doc-1"):
        return posting_engine.post(
            tenant=self.tenant,
            source_type=OPERATIONAL,
            source_id=source_id,
            posting_date=date(2024, 3, 10),
            idempotency_key="k1",
            lines=[
                PostingLine("EXP_SHARED", debit=Decimal("100.00")),
                PostingLine("CASH", credit=Decimal("100.00")),
            ],
        )

    def test_lost_insert_race_returns_winner(self):
        winner = self._post()

        lookup = _hidden_for(2, posting_engine.find_existing)
        with mock.patch.object(posting_engine, "find_existing", side_effect=lookup) as patched:
            group = self._post()

        self.assertEqual(group.pk, winner.pk)
        self.assertEqual(patched.call_count, 3)
        self.assertEqual(PostingGroup.objects.count(), 1)
        self.assertEqual(LedgerEntry.objects.count(), 2)

    def test_collision_inside_caller_transaction_propagates(self):
        self._post()

        lookup = _hidden_for(2, posting_engine.find_existing)
        with mock.patch.object(posting_engine, "find_existing", side_effect=lookup):
            with self.assertRaises(IntegrityError):
                with transaction.atomic():
                    self._post()

        self.assertEqual(PostingGroup.objects.count(), 1)

    def test_serialization_failure_is_retried(self):
        with mock.patch.object(
            posting_engine, "assert_postable", side_effect=[_serialization_error(), None]
        ) as patched:
            group = self._post()

        self.assertEqual(patched.call_count, 2)
        self.assertEqual(PostingGroup.objects.filter(pk=group.pk).count(), 1)
        self.assertEqual(LedgerEntry.objects.filter(posting_group=group).count(), 2)

    def test_other_operational_errors_are_not_retried(self):
        with mock.patch.object(
            posting_engine, "assert_postable", side_effect=OperationalError("disk I/O error")
        ) as patched:
            with self.assertRaises(OperationalError):
                self._post()

        self.assertEqual(patched.call_count, 1)
        self.assertFalse(PostingGroup.objects.exists())

    def test_lost_reversal_race_returns_winner(self):
        original = self._post()
        winner = reversal_service.reverse(
            tenant=self.tenant, posting_group_id=original.pk, reversal_date=date(2024, 3, 20)
        )

        lookup = _hidden_for(2, reversal_service._existing_reversal)
        with mock.patch.object(reversal_service, "_existing_reversal", side_effect=lookup):
            reversal = reversal_service.reverse(
                tenant=self.tenant, posting_group_id=original.pk, reversal_date=date(2024, 3, 20)
            )

        self.assertEqual(reversal.pk, winner.pk)
        self.assertEqual(PostingGroup.objects.filter(reversal_of=original).count(), 1)


class CollisionClassificationTests(TransactionTestCase):
    def test_classifies_by_sqlstate(self):
        unique = IntegrityError("duplicate key value")
        unique.__cause__ = type("UniqueViolation", (Exception,), {"sqlstate": "23505"})()
        fk = IntegrityError("foreign key violation")
        fk.__cause__ = type("ForeignKeyViolation", (Exception,), {"sqlstate": "23503"})()

        self.assertTrue(is_write_collision(unique))
        self.assertFalse(is_write_collision(fk))
        self.assertTrue(is_write_collision(_serialization_error()))
        self.assertFalse(is_write_collision(OperationalError("connection refused")))
