from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.errors import ValidationError
from app.models import OrderStatus


@dataclass(frozen=True)
class RankedMember:
    id: int
    name: str
    sort_order: int


@dataclass(frozen=True)
class CatalogItem:
    id: int
    name: str
    unit: str
    minimum_threshold: int
    checkbox_only: bool
    hidden: bool = False
    deleted_at: datetime | None = None
    sort_order: int = 0
    supplier_name: str | None = None
    # Primary category first.
    category_names: tuple[str, ...] = ()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_countable(self) -> bool:
        return not self.hidden and self.deleted_at is None

    @property
    def category_name(self) -> str | None:
        return self.category_names[0] if self.category_names else None


@dataclass(frozen=True)
class OrderLineDraft:
    product_id: int
    item_name: str
    unit: str
    counted_quantity: int
    minimum_threshold: int
    checkbox_only: bool
    needs_ordering: bool
    supplier_name: str | None = None
    category_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class OrderDraft:
    location_id: int
    submitted_by: str
    note: str | None
    lines: tuple[OrderLineDraft, ...]


@dataclass(frozen=True)
class OrderLineRecord:
    id: int
    order_id: int
    product_id: int | None
    item_name_snapshot: str
    unit_snapshot: str
    counted_quantity_snapshot: int
    minimum_threshold_snapshot: int
    checkbox_only_snapshot: bool
    needs_ordering: bool
    fulfilled: bool = False
    fulfilled_by: str | None = None
    fulfilled_at: datetime | None = None
    supplier_name_snapshot: str | None = None
    category_names_snapshot: tuple[str, ...] = ()

    @property
    def quantity_gap(self) -> int | None:
        """How far below threshold the count was; None for presence-only lines."""
        if self.checkbox_only_snapshot:
            return None
        return max(self.minimum_threshold_snapshot - self.counted_quantity_snapshot, 0)


@dataclass(frozen=True)
class OrderRecord:
    id: int
    order_number: str
    location_id: int
    submitted_by: str
    note: str | None
    status: OrderStatus
    archived: bool
    created_at: datetime
    updated_at: datetime
    lines: tuple[OrderLineRecord, ...] = field(default_factory=tuple)

    def line(self, line_id: int) -> OrderLineRecord | None:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None


_REQUIRED_INT = ('id', 'order_id', 'counted_quantity_snapshot', 'minimum_threshold_snapshot')
_REQUIRED_BOOL = ('checkbox_only_snapshot', 'needs_ordering', 'fulfilled')
_REQUIRED_STR = ('item_name_snapshot', 'unit_snapshot')


def _require(row: Mapping[str, Any], key: str) -> Any:
    if key not in row or row[key] is None:
        raise ValidationError(f'Order line is missing {key}', field=key)
    return row[key]


def parse_order_line(row: Mapping[str, Any]) -> OrderLineRecord:
    """
    Convert a raw order_lines row into an OrderLineRecord.

    Snapshot fields are never defaulted: a missing or mistyped field means the
    row cannot be trusted as history, so it fails with ValidationError.
    """
    values: dict[str, Any] = {}
    for key in _REQUIRED_INT:
        value = _require(row, key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f'Order line field {key} must be an integer', field=key)
        values[key] = value
    for key in _REQUIRED_BOOL:
        value = _require(row, key)
        if not isinstance(value, bool):
            raise ValidationError(f'Order line field {key} must be a boolean', field=key)
        values[key] = value
    for key in _REQUIRED_STR:
        value = _require(row, key)
        if not isinstance(value, str):
            raise ValidationError(f'Order line field {key} must be text', field=key)
        values[key] = value

    if values['counted_quantity_snapshot'] < 0:
        raise ValidationError('Order line counted quantity cannot be negative', field='counted_quantity_snapshot')

    category_names = row.get('category_names_snapshot')
    if category_names is None:
        category_names = ()
    if not isinstance(category_names, (list, tuple)):
        raise ValidationError('Order line category names must be a list', field='category_names_snapshot')

    fulfilled_at = row.get('fulfilled_at')
    if values['fulfilled'] and fulfilled_at is None:
        raise ValidationError('Fulfilled order line is missing fulfilled_at', field='fulfilled_at')

    return OrderLineRecord(
        product_id=row.get('product_id'),
        fulfilled_by=row.get('fulfilled_by'),
        fulfilled_at=fulfilled_at,
        supplier_name_snapshot=row.get('supplier_name_snapshot'),
        category_names_snapshot=tuple(str(name) for name in category_names),
        **values,
    )
