from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from app.errors import NotFoundError, ValidationError
from app.models import OrderStatus
from app.services.inventory_store import InventoryStore
from app.services.records import OrderLineRecord, OrderRecord

logger = logging.getLogger('restock.fulfillment')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class FulfillmentSummary:
    eligible_lines: int
    fulfilled_lines: int
    status: OrderStatus | None
    quantity_gaps: dict[int, int]


def derive_status(lines: Iterable[OrderLineRecord]) -> OrderStatus | None:
    """
    Order status from the current line flags only.

    Lines that do not need ordering are ignored. Returns None when no line
    needs ordering, in which case the stored status is left alone.
    """
    eligible = [line for line in lines if line.needs_ordering]
    if not eligible:
        return None
    fulfilled_count = sum(1 for line in eligible if line.fulfilled)
    if fulfilled_count == 0:
        return OrderStatus.PENDING
    if fulfilled_count < len(eligible):
        return OrderStatus.IN_PROGRESS
    return OrderStatus.COMPLETED


def _refresh_status(store: InventoryStore, order_id: int, now: datetime) -> OrderRecord:
    # Always re-read the full line set; a cached copy could resurrect a superseded status.
    order = store.get_order(order_id)
    status = derive_status(order.lines)
    if status is not None and status != order.status:
        logger.info('Order %s status %s -> %s', order.order_number, order.status.value, status.value)
    if status is not None:
        store.set_order_status(order_id, status, now)
        order = store.get_order(order_id)
    return order


def toggle_fulfilled(
    store: InventoryStore,
    *,
    order_id: int,
    line_id: int,
    actor: str | None,
    now: datetime | None = None,
) -> OrderRecord:
    now = now or _now()
    order = store.get_order(order_id)
    line = order.line(line_id)
    if line is None:
        raise NotFoundError('Order line not found', order_id=order_id, line_id=line_id)

    fulfilled = not line.fulfilled
    clean_actor = (actor or '').strip()
    if fulfilled and not clean_actor:
        raise ValidationError('Fulfilling a line requires the name of who fulfilled it', order_id=order_id, line_id=line_id)
    store.set_line_fulfillment(
        order_id,
        line_id,
        fulfilled=fulfilled,
        actor=clean_actor if fulfilled else None,
        timestamp=now if fulfilled else None,
    )
    return _refresh_status(store, order_id, now)


def set_status_manually(
    store: InventoryStore,
    *,
    order_id: int,
    status: OrderStatus | str,
    now: datetime | None = None,
) -> OrderRecord:
    """Write status without touching lines. The next toggle recomputes and may overwrite it."""
    try:
        new_status = OrderStatus(status)
    except ValueError as exc:
        raise ValidationError(f'Unknown order status: {status}', status=str(status)) from exc
    order = store.get_order(order_id)
    store.set_order_status(order_id, new_status, now or _now())
    logger.info('Order %s status manually set to %s', order.order_number, new_status.value)
    return store.get_order(order_id)


def clear_all_fulfillment(store: InventoryStore, *, order_id: int, now: datetime | None = None) -> OrderRecord:
    now = now or _now()
    order = store.get_order(order_id)
    for line in order.lines:
        if line.fulfilled or line.fulfilled_by is not None or line.fulfilled_at is not None:
            store.set_line_fulfillment(order_id, line.id, fulfilled=False, actor=None, timestamp=None)
    return _refresh_status(store, order_id, now)


def sort_lines_for_display(lines: Sequence[OrderLineRecord]) -> list[OrderLineRecord]:
    """Unfulfilled lines keep their original order; fulfilled lines follow, earliest first."""
    unfulfilled = [line for line in lines if not line.fulfilled]
    fulfilled = sorted(
        (line for line in lines if line.fulfilled),
        key=lambda line: (line.fulfilled_at is None, line.fulfilled_at or datetime.min.replace(tzinfo=timezone.utc)),
    )
    return unfulfilled + fulfilled


def fulfillment_summary(order: OrderRecord) -> FulfillmentSummary:
    eligible = [line for line in order.lines if line.needs_ordering]
    return FulfillmentSummary(
        eligible_lines=len(eligible),
        fulfilled_lines=sum(1 for line in eligible if line.fulfilled),
        status=derive_status(order.lines),
        quantity_gaps={line.id: line.quantity_gap for line in eligible if line.quantity_gap is not None},
    )
