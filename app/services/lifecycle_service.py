from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.errors import ValidationError
from app.services.fulfillment_service import derive_status
from app.services.inventory_store import Collection, InventoryStore, PurgeResult
from app.services.positional_service import renumber
from app.services.records import CatalogItem, OrderRecord
from app.services.sort_utils import next_rank

logger = logging.getLogger('restock.lifecycle')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def archive_order(store: InventoryStore, *, order_id: int, now: datetime | None = None) -> OrderRecord:
    store.get_order(order_id)
    store.set_order_archived(order_id, True, now or _now())
    return store.get_order(order_id)


def unarchive_order(store: InventoryStore, *, order_id: int, now: datetime | None = None) -> OrderRecord:
    store.get_order(order_id)
    store.set_order_archived(order_id, False, now or _now())
    return store.get_order(order_id)


def soft_delete_product(store: InventoryStore, *, product_id: int, now: datetime | None = None) -> CatalogItem:
    item = store.get_catalog_item(product_id)
    if item.is_deleted:
        raise ValidationError('Product is already deleted', product_id=product_id)
    store.soft_delete_product(product_id, now or _now())
    logger.info('Product %s (%s) soft deleted', product_id, item.name)
    return store.get_catalog_item(product_id)


def restore_product(store: InventoryStore, *, product_id: int) -> CatalogItem:
    item = store.get_catalog_item(product_id)
    if not item.is_deleted:
        raise ValidationError('Product is not deleted', product_id=product_id)
    # Ranks of live products may have been renumbered since; rejoin at the end.
    rank = next_rank(member.sort_order for member in store.list_members(Collection.PRODUCTS))
    store.restore_product(product_id)
    store.set_rank(Collection.PRODUCTS, product_id, rank)
    logger.info('Product %s (%s) restored at rank %d', product_id, item.name, rank)
    return store.get_catalog_item(product_id)


def purge_product(store: InventoryStore, *, product_id: int, confirm_history_loss: bool) -> PurgeResult:
    """
    Permanently delete a product.

    Unlike soft delete this destroys history: every order line that snapshots
    the product is deleted along with its category and supplier links.
    """
    if not confirm_history_loss:
        raise ValidationError(
            'Permanent delete removes this product from past orders; confirm history loss to continue',
            product_id=product_id,
        )
    result = store.purge_product(product_id)
    renumber(store, Collection.PRODUCTS)
    now = _now()
    for order_id in result.affected_order_ids:
        status = derive_status(store.get_order(order_id).lines)
        if status is not None:
            store.set_order_status(order_id, status, now)
    logger.warning(
        'Product %s (%s) purged; %d order lines destroyed',
        result.product_id,
        result.product_name,
        result.order_lines_deleted,
    )
    return result
