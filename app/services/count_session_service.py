from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from app.errors import EmptySubmission, NotFoundError, ValidationError
from app.services.inventory_store import InventoryStore
from app.services.records import CatalogItem, OrderDraft, OrderLineDraft, OrderRecord

logger = logging.getLogger('restock.counting')


@dataclass(frozen=True)
class CountEntry:
    item_id: int
    counted_quantity: int = 0
    flagged_for_order: bool = False


@dataclass(frozen=True)
class CountInput:
    product_id: int
    counted_quantity: int | None = None
    flagged_for_order: bool | None = None


def needs_ordering(item: CatalogItem, entry: CountEntry) -> bool:
    if item.checkbox_only:
        return entry.flagged_for_order
    return entry.counted_quantity < item.minimum_threshold


class CountingSession:
    """
    In-progress count for one location.

    The session is the only owner of its entries; build_order reads a copy of
    them so nothing is counted twice or dropped between reads.
    """

    def __init__(self, location_id: int, catalog: Iterable[CatalogItem]) -> None:
        self.location_id = location_id
        self._items: dict[int, CatalogItem] = {item.id: item for item in catalog if item.is_countable}
        self._entries: dict[int, CountEntry] = {}

    @property
    def items(self) -> list[CatalogItem]:
        return sorted(self._items.values(), key=lambda item: (item.sort_order, item.id))

    def item(self, item_id: int) -> CatalogItem:
        item = self._items.get(item_id)
        if item is None:
            raise NotFoundError('Product is not available for counting', product_id=item_id)
        return item

    def entry(self, item_id: int) -> CountEntry | None:
        return self._entries.get(item_id)

    def set_quantity(self, item_id: int, quantity: int) -> CountEntry:
        item = self.item(item_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError('Quantity must be a whole number', product_id=item_id)
        if quantity < 0:
            raise ValidationError(f'Quantity cannot be negative for {item.name}', product_id=item_id)

        current = self._entries.get(item_id, CountEntry(item_id=item_id))
        if item.checkbox_only:
            updated = replace(current, counted_quantity=quantity)
        else:
            updated = replace(
                current,
                counted_quantity=quantity,
                flagged_for_order=quantity < item.minimum_threshold,
            )
        self._entries[item_id] = updated
        return updated

    def set_flag(self, item_id: int, flagged: bool) -> CountEntry:
        self.item(item_id)
        current = self._entries.get(item_id, CountEntry(item_id=item_id))
        updated = replace(current, flagged_for_order=bool(flagged))
        self._entries[item_id] = updated
        return updated

    def entries(self) -> list[CountEntry]:
        return [self._entries[item.id] for item in self.items if item.id in self._entries]


def session_from_inputs(
    catalog: Iterable[CatalogItem],
    *,
    location_id: int,
    rows: Sequence[CountInput],
) -> CountingSession:
    session = CountingSession(location_id, catalog)
    seen: set[int] = set()
    for row in rows:
        if row.product_id in seen:
            raise ValidationError('Product counted more than once', product_id=row.product_id)
        seen.add(row.product_id)
        if row.counted_quantity is None and row.flagged_for_order is None:
            raise ValidationError('Count row needs a quantity or a flag', product_id=row.product_id)
        if row.counted_quantity is not None:
            session.set_quantity(row.product_id, row.counted_quantity)
        if row.flagged_for_order is not None:
            session.set_flag(row.product_id, row.flagged_for_order)
    return session


def preview_rows(session: CountingSession) -> list[dict]:
    """
    One row per counted item. `included` is what build_order would submit;
    `needs_ordering` is the threshold rule the line would snapshot.
    """
    rows: list[dict] = []
    for entry in session.entries():
        item = session.item(entry.item_id)
        rows.append(
            {
                'product_id': item.id,
                'name': item.name,
                'unit': item.unit,
                'checkbox_only': item.checkbox_only,
                'minimum_threshold': item.minimum_threshold,
                'counted_quantity': entry.counted_quantity,
                'flagged_for_order': entry.flagged_for_order,
                'included': entry.flagged_for_order,
                'needs_ordering': needs_ordering(item, entry),
            }
        )
    return rows


def build_order(
    *,
    location_id: int | None,
    submitted_by: str | None,
    note: str | None,
    session: CountingSession,
) -> OrderDraft:
    if location_id is None:
        raise ValidationError('Location is required')
    if session.location_id != location_id:
        raise ValidationError('Counting session belongs to a different location', location_id=location_id)
    clean_submitter = (submitted_by or '').strip()
    if not clean_submitter:
        raise ValidationError('Submitter name is required')

    flagged = [entry for entry in session.entries() if entry.flagged_for_order]
    if not flagged:
        raise EmptySubmission(location_id=location_id)

    lines = []
    for entry in flagged:
        item = session.item(entry.item_id)
        lines.append(
            OrderLineDraft(
                product_id=item.id,
                item_name=item.name,
                unit=item.unit,
                counted_quantity=entry.counted_quantity,
                minimum_threshold=item.minimum_threshold,
                checkbox_only=item.checkbox_only,
                needs_ordering=needs_ordering(item, entry),
                supplier_name=item.supplier_name,
                category_names=item.category_names,
            )
        )

    return OrderDraft(
        location_id=location_id,
        submitted_by=clean_submitter,
        note=note.strip() if note and note.strip() else None,
        lines=tuple(lines),
    )


def submit_order(store: InventoryStore, draft: OrderDraft) -> OrderRecord:
    if not store.location_exists(draft.location_id):
        raise NotFoundError('Location not found', location_id=draft.location_id)
    order = store.create_order(draft)
    logger.info(
        'Order %s created for location %s by %s with %d lines (%d need ordering)',
        order.order_number,
        order.location_id,
        order.submitted_by,
        len(order.lines),
        sum(1 for line in order.lines if line.needs_ordering),
    )
    return order
