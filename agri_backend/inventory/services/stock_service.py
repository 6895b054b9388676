# inventory/services/stock_service.py

"""
STOCK SERVICE (WEIGHTED AVERAGE COST)

Purpose:
- The ONLY writer of StockBalance.
- Every change produces a matching, immutable StockMovement linked to the
  posting group that caused it.
- Outbound cost is planned from the locked balance BEFORE the ledger lines
  are built, so ledger value and movement value are identical.

Valuation:
- wac = value / quantity after each movement
- issuing the whole on-hand quantity takes the whole remaining value, so no
  rounding residue is ever stranded on an empty balance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction

from accounting.services.exceptions import InsufficientStockError, ValidationFault
from inventory.models import StockBalance, StockMovement

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
SIXPLACES = Decimal("0.000001")
ZERO_QTY = Decimal("0")


def _q2(v) -> Decimal:
    return Decimal(v).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _q6(v) -> Decimal:
    return Decimal(v).quantize(SIXPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OutboundLine:
    item: object
    quantity: Decimal
    value: Decimal

    @property
    def unit_cost(self) -> Decimal:
        return _q6(self.value / self.quantity)


def lock_balance(*, tenant, item) -> StockBalance:
    balance, _ = StockBalance.objects.select_for_update().get_or_create(tenant=tenant, item=item)
    return balance


def plan_outbound(*, tenant, lines) -> list[OutboundLine]:
    """
    Cost a sequence of (item, quantity) withdrawals at WAC, in order.

    Locks each balance row for the rest of the transaction. Raises
    InsufficientStockError if any line exceeds what is left on hand.
    """
    running: dict = {}
    plan: list[OutboundLine] = []

    for item, quantity in lines:
        q = Decimal(str(quantity))
        if q <= 0:
            raise ValidationFault("Issued quantity must be greater than zero.")

        if item.pk not in running:
            balance = lock_balance(tenant=tenant, item=item)
            running[item.pk] = (balance.quantity, balance.value)
        on_hand, value = running[item.pk]

        if q > on_hand:
            raise InsufficientStockError(
                f"Insufficient stock for {item.code}: requested {q}, on hand {on_hand}."
            )

        out_value = value if q == on_hand else _q2(value * q / on_hand)
        running[item.pk] = (on_hand - q, value - out_value)
        plan.append(OutboundLine(item=item, quantity=q, value=out_value))

    return plan


@transaction.atomic
def apply_movement(
    *,
    tenant,
    item,
    posting_group,
    movement_type: str,
    qty_delta,
    value_delta,
    occurred_on,
    reversal_of=None,
) -> StockMovement:
    qty_delta = Decimal(str(qty_delta))
    value_delta = _q2(value_delta)
    if qty_delta == 0:
        raise ValidationFault("Stock movement quantity cannot be zero.")

    balance = lock_balance(tenant=tenant, item=item)
    new_qty = balance.quantity + qty_delta
    new_value = balance.value + value_delta

    if new_qty < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {item.code}: movement {qty_delta}, on hand {balance.quantity}."
        )
    if new_value < 0 or (new_qty == 0 and new_value != 0):
        raise InsufficientStockError(
            f"Stock value for {item.code} would be left at {new_value} with nothing on hand."
        )

    balance.quantity = new_qty
    balance.value = new_value
    balance.wac = _q6(new_value / new_qty) if new_qty else Decimal("0")
    balance.save(update_fields=["quantity", "value", "wac", "updated_at"])

    movement = StockMovement.objects.create(
        tenant=tenant,
        posting_group=posting_group,
        item=item,
        movement_type=movement_type,
        qty_delta=qty_delta,
        value_delta=value_delta,
        unit_cost_snapshot=_q6(abs(value_delta) / abs(qty_delta)),
        occurred_on=occurred_on,
        reversal_of=reversal_of,
    )

    logger.debug(
        "Stock movement applied",
        extra={
            "tenant_id": str(tenant.pk),
            "item": item.code,
            "movement_type": movement_type,
            "qty_delta": str(qty_delta),
            "value_delta": str(value_delta),
        },
    )
    return movement


def receive(*, tenant, item, posting_group, quantity, value, occurred_on, movement_type=StockMovement.MovementType.RECEIPT):
    return apply_movement(
        tenant=tenant,
        item=item,
        posting_group=posting_group,
        movement_type=movement_type,
        qty_delta=quantity,
        value_delta=value,
        occurred_on=occurred_on,
    )


def issue(*, tenant, line: OutboundLine, posting_group, occurred_on, movement_type=StockMovement.MovementType.ISSUE):
    return apply_movement(
        tenant=tenant,
        item=line.item,
        posting_group=posting_group,
        movement_type=movement_type,
        qty_delta=-line.quantity,
        value_delta=-line.value,
        occurred_on=occurred_on,
    )


@transaction.atomic
def reverse_movements(*, original, reversal) -> list[StockMovement]:
    """
    Negate every movement of the original posting group.

    Inbound restorations run first so a group that both issued and
    received the same item never dips below zero mid-way.
    """
    movements = list(
        StockMovement.objects.filter(posting_group=original).select_related("item").order_by("created_at", "pk")
    )
    movements.sort(key=lambda m: m.qty_delta)

    return [
        apply_movement(
            tenant=reversal.tenant,
            item=m.item,
            posting_group=reversal,
            movement_type=StockMovement.MovementType.REVERSAL,
            qty_delta=-m.qty_delta,
            value_delta=-m.value_delta,
            occurred_on=reversal.posting_date,
            reversal_of=m,
        )
        for m in movements
    ]
