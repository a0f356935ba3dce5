from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from app.models import OrderStatus
from app.services.records import CatalogItem, OrderDraft, OrderRecord, RankedMember


class Collection(str, Enum):
    PRODUCTS = 'products'
    CATEGORIES = 'categories'
    SUPPLIERS = 'suppliers'
    LOCATIONS = 'locations'


@dataclass(frozen=True)
class PurgeResult:
    product_id: int
    product_name: str
    order_lines_deleted: int
    category_links_deleted: int
    supplier_links_deleted: int
    affected_order_ids: tuple[int, ...] = ()


class InventoryStore(Protocol):
    """
    Persistence boundary for the restock services.

    Implementations raise NotFoundError for missing rows and TransientStoreError
    when the backend call fails. create_order is all-or-nothing.
    """

    def list_catalog(self, *, include_deleted: bool = False) -> list[CatalogItem]: ...

    def get_catalog_item(self, product_id: int) -> CatalogItem: ...

    def location_exists(self, location_id: int) -> bool: ...

    def list_members(self, collection: Collection, *, lock: bool = False) -> list[RankedMember]: ...

    def set_rank(self, collection: Collection, member_id: int, rank: int) -> None: ...

    def create_order(self, draft: OrderDraft) -> OrderRecord: ...

    def get_order(self, order_id: int) -> OrderRecord: ...

    def list_orders(self, *, location_id: int | None = None, include_archived: bool = False) -> list[OrderRecord]: ...

    def set_line_fulfillment(
        self,
        order_id: int,
        line_id: int,
        *,
        fulfilled: bool,
        actor: str | None,
        timestamp: datetime | None,
    ) -> None: ...

    def set_order_status(self, order_id: int, status: OrderStatus, updated_at: datetime) -> None: ...

    def set_order_archived(self, order_id: int, archived: bool, updated_at: datetime) -> None: ...

    def soft_delete_product(self, product_id: int, deleted_at: datetime) -> None: ...

    def restore_product(self, product_id: int) -> None: ...

    def purge_product(self, product_id: int) -> PurgeResult: ...
