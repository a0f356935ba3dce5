from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import NotFoundError, RestockError, TransientStoreError
from app.models import (
    Category,
    Location,
    Order,
    OrderLine,
    OrderStatus,
    Product,
    ProductCategory,
    ProductSupplier,
    Supplier,
)
from app.services.inventory_store import Collection, PurgeResult
from app.services.records import CatalogItem, OrderDraft, OrderRecord, RankedMember, parse_order_line

logger = logging.getLogger('restock.store')

_MODELS = {
    Collection.PRODUCTS: Product,
    Collection.CATEGORIES: Category,
    Collection.SUPPLIERS: Supplier,
    Collection.LOCATIONS: Location,
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@contextmanager
def translate_errors(db: Session, action: str) -> Iterator[None]:
    try:
        yield
    except RestockError:
        raise
    except SQLAlchemyError as exc:
        # Discard the failed transaction so the next read sees committed truth.
        db.rollback()
        logger.warning('Store call %s failed: %s', action, exc)
        raise TransientStoreError(f'Store call failed: {action}', action=action) from exc


class SqlInventoryStore:
    """InventoryStore backed by the relational database through a SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _guard(self, action: str):
        return translate_errors(self.db, action)

    def _associations(self, product_ids: list[int]) -> tuple[dict[int, str], dict[int, list[str]]]:
        if not product_ids:
            return {}, {}
        supplier_rows = self.db.execute(
            select(ProductSupplier.product_id, Supplier.name)
            .join(Supplier, Supplier.id == ProductSupplier.supplier_id)
            .where(ProductSupplier.product_id.in_(product_ids))
            .order_by(ProductSupplier.is_primary.desc(), Supplier.sort_order.asc(), Supplier.id.asc())
        ).all()
        supplier_by_product: dict[int, str] = {}
        for row in supplier_rows:
            supplier_by_product.setdefault(row.product_id, row.name)

        category_rows = self.db.execute(
            select(ProductCategory.product_id, Category.name)
            .join(Category, Category.id == ProductCategory.category_id)
            .where(ProductCategory.product_id.in_(product_ids))
            .order_by(ProductCategory.is_primary.desc(), Category.sort_order.asc(), Category.id.asc())
        ).all()
        categories_by_product: dict[int, list[str]] = {}
        for row in category_rows:
            categories_by_product.setdefault(row.product_id, []).append(row.name)
        return supplier_by_product, categories_by_product

    def _catalog_items(self, products: list[Product]) -> list[CatalogItem]:
        supplier_by_product, categories_by_product = self._associations([p.id for p in products])
        return [
            CatalogItem(
                id=product.id,
                name=product.name,
                unit=product.unit,
                minimum_threshold=product.minimum_threshold,
                checkbox_only=product.checkbox_only,
                hidden=product.hidden,
                deleted_at=product.deleted_at,
                sort_order=product.sort_order,
                supplier_name=supplier_by_product.get(product.id),
                category_names=tuple(categories_by_product.get(product.id, [])),
            )
            for product in products
        ]

    def list_catalog(self, *, include_deleted: bool = False) -> list[CatalogItem]:
        with self._guard('list_catalog'):
            query = select(Product).order_by(Product.sort_order.asc(), Product.id.asc())
            if not include_deleted:
                query = query.where(Product.deleted_at.is_(None))
            products = self.db.execute(query.execution_options(populate_existing=True)).scalars().all()
            return self._catalog_items(list(products))

    def get_catalog_item(self, product_id: int) -> CatalogItem:
        with self._guard('get_catalog_item'):
            product = self.db.execute(
                select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if not product:
                raise NotFoundError('Product not found', product_id=product_id)
            return self._catalog_items([product])[0]

    def location_exists(self, location_id: int) -> bool:
        with self._guard('location_exists'):
            return self.db.execute(select(Location.id).where(Location.id == location_id)).scalar_one_or_none() is not None

    def list_members(self, collection: Collection, *, lock: bool = False) -> list[RankedMember]:
        model = _MODELS[collection]
        with self._guard('list_members'):
            query = select(model.id, model.name, model.sort_order).order_by(model.sort_order.asc(), model.id.asc())
            if collection == Collection.PRODUCTS:
                query = query.where(Product.deleted_at.is_(None))
            if lock:
                query = query.with_for_update()
            return [RankedMember(id=row.id, name=row.name, sort_order=row.sort_order) for row in self.db.execute(query).all()]

    def set_rank(self, collection: Collection, member_id: int, rank: int) -> None:
        model = _MODELS[collection]
        with self._guard('set_rank'):
            result = self.db.execute(
                update(model).where(model.id == member_id).values(sort_order=rank, updated_at=_now())
            )
            if result.rowcount == 0:
                raise NotFoundError(f'{collection.value} member not found', member_id=member_id)

    def _order_number(self, now: datetime) -> str:
        stamp = int(now.timestamp() * 1000)
        while True:
            candidate = f'{settings.order_number_prefix}-{stamp}'
            taken = self.db.execute(select(Order.id).where(Order.order_number == candidate)).first()
            if not taken:
                return candidate
            stamp += 1

    def create_order(self, draft: OrderDraft) -> OrderRecord:
        now = _now()
        try:
            order = Order(
                order_number=self._order_number(now),
                location_id=draft.location_id,
                submitted_by=draft.submitted_by,
                note=draft.note,
                status=OrderStatus.PENDING,
                archived=False,
                created_at=now,
                updated_at=now,
            )
            self.db.add(order)
            self.db.flush()
            self.db.add_all(
                [
                    OrderLine(
                        order_id=order.id,
                        product_id=line.product_id,
                        item_name_snapshot=line.item_name,
                        unit_snapshot=line.unit,
                        supplier_name_snapshot=line.supplier_name,
                        category_names_snapshot=list(line.category_names),
                        counted_quantity_snapshot=line.counted_quantity,
                        minimum_threshold_snapshot=line.minimum_threshold,
                        checkbox_only_snapshot=line.checkbox_only,
                        needs_ordering=line.needs_ordering,
                        fulfilled=False,
                    )
                    for line in draft.lines
                ]
            )
            self.db.flush()
            order_id = order.id
        except SQLAlchemyError as exc:
            # Header and lines share one transaction; nothing partial survives.
            self.db.rollback()
            logger.warning('Order creation for location %s failed: %s', draft.location_id, exc)
            raise TransientStoreError('Order was not saved', location_id=draft.location_id) from exc
        return self.get_order(order_id)

    def _records(self, order_rows: list) -> list[OrderRecord]:
        order_ids = [row.id for row in order_rows]
        lines_by_order: dict[int, list] = {order_id: [] for order_id in order_ids}
        if order_ids:
            line_rows = self.db.execute(
                select(OrderLine.__table__).where(OrderLine.order_id.in_(order_ids)).order_by(OrderLine.id.asc())
            ).mappings().all()
            for line_row in line_rows:
                lines_by_order[line_row['order_id']].append(parse_order_line(line_row))
        return [
            OrderRecord(
                id=row.id,
                order_number=row.order_number,
                location_id=row.location_id,
                submitted_by=row.submitted_by,
                note=row.note,
                status=OrderStatus(row.status),
                archived=row.archived,
                created_at=row.created_at,
                updated_at=row.updated_at,
                lines=tuple(lines_by_order[row.id]),
            )
            for row in order_rows
        ]

    def get_order(self, order_id: int) -> OrderRecord:
        with self._guard('get_order'):
            row = self.db.execute(select(Order.__table__).where(Order.id == order_id)).one_or_none()
            if not row:
                raise NotFoundError('Order not found', order_id=order_id)
            return self._records([row])[0]

    def list_orders(self, *, location_id: int | None = None, include_archived: bool = False) -> list[OrderRecord]:
        with self._guard('list_orders'):
            query = select(Order.__table__).order_by(Order.created_at.desc(), Order.id.desc()).limit(settings.order_list_limit)
            if location_id is not None:
                query = query.where(Order.location_id == location_id)
            if not include_archived:
                query = query.where(Order.archived.is_(False))
            return self._records(list(self.db.execute(query).all()))

    def set_line_fulfillment(
        self,
        order_id: int,
        line_id: int,
        *,
        fulfilled: bool,
        actor: str | None,
        timestamp: datetime | None,
    ) -> None:
        with self._guard('set_line_fulfillment'):
            result = self.db.execute(
                update(OrderLine)
                .where(OrderLine.id == line_id, OrderLine.order_id == order_id)
                .values(fulfilled=fulfilled, fulfilled_by=actor, fulfilled_at=timestamp)
            )
            if result.rowcount == 0:
                raise NotFoundError('Order line not found', order_id=order_id, line_id=line_id)

    def _update_order(self, order_id: int, **values) -> None:
        result = self.db.execute(update(Order).where(Order.id == order_id).values(**values))
        if result.rowcount == 0:
            raise NotFoundError('Order not found', order_id=order_id)

    def set_order_status(self, order_id: int, status: OrderStatus, updated_at: datetime) -> None:
        with self._guard('set_order_status'):
            self._update_order(order_id, status=status, updated_at=updated_at)

    def set_order_archived(self, order_id: int, archived: bool, updated_at: datetime) -> None:
        with self._guard('set_order_archived'):
            self._update_order(order_id, archived=archived, updated_at=updated_at)

    def _update_product(self, product_id: int, **values) -> None:
        result = self.db.execute(update(Product).where(Product.id == product_id).values(updated_at=_now(), **values))
        if result.rowcount == 0:
            raise NotFoundError('Product not found', product_id=product_id)

    def soft_delete_product(self, product_id: int, deleted_at: datetime) -> None:
        with self._guard('soft_delete_product'):
            self._update_product(product_id, deleted_at=deleted_at)

    def restore_product(self, product_id: int) -> None:
        with self._guard('restore_product'):
            self._update_product(product_id, deleted_at=None)

    def purge_product(self, product_id: int) -> PurgeResult:
        with self._guard('purge_product'):
            product = self.db.execute(select(Product.id, Product.name).where(Product.id == product_id)).one_or_none()
            if not product:
                raise NotFoundError('Product not found', product_id=product_id)

            affected_order_ids = tuple(
                order_id
                for order_id, in self.db.execute(
                    select(OrderLine.order_id).where(OrderLine.product_id == product_id).distinct()
                ).all()
            )
            lines_deleted = self.db.execute(delete(OrderLine).where(OrderLine.product_id == product_id)).rowcount
            categories_deleted = self.db.execute(
                delete(ProductCategory).where(ProductCategory.product_id == product_id)
            ).rowcount
            suppliers_deleted = self.db.execute(
                delete(ProductSupplier).where(ProductSupplier.product_id == product_id)
            ).rowcount
            self.db.execute(delete(Product).where(Product.id == product_id))
            self.db.expire_all()
            return PurgeResult(
                product_id=product.id,
                product_name=product.name,
                order_lines_deleted=lines_deleted,
                category_links_deleted=categories_deleted,
                supplier_links_deleted=suppliers_deleted,
                affected_order_ids=tuple(sorted(affected_order_ids)),
            )
