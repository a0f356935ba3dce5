from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import Category, Location, Order, Product, ProductCategory, ProductSupplier, Supplier
from app.services.inventory_store import Collection
from app.services.positional_service import renumber
from app.services.sort_utils import next_rank
from app.services.sql_inventory_store import SqlInventoryStore, translate_errors

_MODELS = {
    Collection.CATEGORIES: Category,
    Collection.SUPPLIERS: Supplier,
    Collection.LOCATIONS: Location,
}

_LABELS = {
    Collection.LOCATIONS: 'Location',
    Collection.CATEGORIES: 'Category',
    Collection.SUPPLIERS: 'Supplier',
}

_UPDATABLE_MEMBER_FIELDS = {
    Collection.LOCATIONS: {'name', 'address'},
    Collection.CATEGORIES: {'name', 'color'},
    Collection.SUPPLIERS: {'name', 'contact_info', 'email', 'phone'},
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _clean_name(name: str | None, *, label: str) -> str:
    clean = (name or '').strip()
    if not clean:
        raise ValidationError(f'{label} name is required')
    return clean


def _optional_text(value: str | None) -> str | None:
    return value.strip() if value and value.strip() else None


def _next_position(db: Session, model) -> int:
    query = select(model.sort_order)
    if model is Product:
        query = query.where(Product.deleted_at.is_(None))
    return next_rank(db.execute(query).scalars().all())


def _validate_threshold(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('Minimum threshold must be a whole number')
    if value < 0:
        raise ValidationError('Minimum threshold cannot be negative')
    return value


def create_location(db: Session, *, name: str, address: str | None = None) -> Location:
    with translate_errors(db, 'create_location'):
        now = _now()
        location = Location(
            name=_clean_name(name, label='Location'),
            address=_optional_text(address),
            sort_order=_next_position(db, Location),
            created_at=now,
            updated_at=now,
        )
        db.add(location)
        db.flush()
        return location


def create_category(db: Session, *, name: str, color: str | None = None) -> Category:
    with translate_errors(db, 'create_category'):
        now = _now()
        category = Category(
            name=_clean_name(name, label='Category'),
            color=_optional_text(color),
            sort_order=_next_position(db, Category),
            created_at=now,
            updated_at=now,
        )
        db.add(category)
        db.flush()
        return category


def create_supplier(
    db: Session,
    *,
    name: str,
    contact_info: str | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> Supplier:
    with translate_errors(db, 'create_supplier'):
        now = _now()
        supplier = Supplier(
            name=_clean_name(name, label='Supplier'),
            contact_info=_optional_text(contact_info),
            email=_optional_text(email),
            phone=_optional_text(phone),
            sort_order=_next_position(db, Supplier),
            created_at=now,
            updated_at=now,
        )
        db.add(supplier)
        db.flush()
        return supplier


def update_member(db: Session, *, collection: Collection, member_id: int, fields: dict):
    """
    Edit a location, category or supplier in place. Rank is untouched.

    Order lines keep the supplier and category names they snapshotted.
    """
    model = _MODELS.get(collection)
    if model is None:
        raise ValidationError('Products are edited through the product update', collection=collection.value)
    unknown = set(fields) - _UPDATABLE_MEMBER_FIELDS[collection]
    if unknown:
        raise ValidationError('Unknown fields', collection=collection.value, fields=sorted(unknown))

    with translate_errors(db, 'update_member'):
        member = db.execute(select(model).where(model.id == member_id)).scalar_one_or_none()
        if not member:
            raise NotFoundError(f'{collection.value} member not found', member_id=member_id)

        label = _LABELS[collection]
        for key, value in fields.items():
            if key == 'name':
                member.name = _clean_name(value, label=label)
            else:
                setattr(member, key, _optional_text(value))
        member.updated_at = _now()
        db.flush()
        return member


def _ensure_ids_exist(db: Session, model, ids: Sequence[int], *, label: str) -> None:
    if not ids:
        return
    found = {row[0] for row in db.execute(select(model.id).where(model.id.in_(ids))).all()}
    missing = sorted(set(ids) - found)
    if missing:
        raise NotFoundError(f'{label} not found', ids=missing)


def _replace_categories(db: Session, *, product_id: int, category_ids: Sequence[int], primary_id: int | None) -> None:
    ids = list(dict.fromkeys(category_ids))
    _ensure_ids_exist(db, Category, ids, label='Category')
    if primary_id is not None and primary_id not in ids:
        raise ValidationError('Primary category must be one of the selected categories')
    primary = primary_id if primary_id is not None else (ids[0] if ids else None)
    db.execute(delete(ProductCategory).where(ProductCategory.product_id == product_id))
    db.add_all(
        [ProductCategory(product_id=product_id, category_id=cid, is_primary=(cid == primary)) for cid in ids]
    )


def _replace_suppliers(db: Session, *, product_id: int, supplier_ids: Sequence[int], primary_id: int | None) -> None:
    ids = list(dict.fromkeys(supplier_ids))
    _ensure_ids_exist(db, Supplier, ids, label='Supplier')
    if primary_id is not None and primary_id not in ids:
        raise ValidationError('Primary supplier must be one of the selected suppliers')
    primary = primary_id if primary_id is not None else (ids[0] if ids else None)
    db.execute(delete(ProductSupplier).where(ProductSupplier.product_id == product_id))
    db.add_all(
        [ProductSupplier(product_id=product_id, supplier_id=sid, is_primary=(sid == primary)) for sid in ids]
    )


def create_product(
    db: Session,
    *,
    name: str,
    unit: str = '',
    minimum_threshold: int = 0,
    checkbox_only: bool = False,
    hidden: bool = False,
    description: str | None = None,
    cost: Decimal | None = None,
    category_ids: Sequence[int] = (),
    supplier_ids: Sequence[int] = (),
    primary_category_id: int | None = None,
    primary_supplier_id: int | None = None,
) -> Product:
    with translate_errors(db, 'create_product'):
        now = _now()
        product = Product(
            name=_clean_name(name, label='Product'),
            unit=(unit or '').strip(),
            minimum_threshold=_validate_threshold(minimum_threshold),
            checkbox_only=checkbox_only,
            hidden=hidden,
            description=_optional_text(description),
            cost=cost,
            sort_order=_next_position(db, Product),
            created_at=now,
            updated_at=now,
        )
        db.add(product)
        db.flush()
        _replace_categories(db, product_id=product.id, category_ids=category_ids, primary_id=primary_category_id)
        _replace_suppliers(db, product_id=product.id, supplier_ids=supplier_ids, primary_id=primary_supplier_id)
        db.flush()
        return product


_UPDATABLE_PRODUCT_FIELDS = {'name', 'unit', 'minimum_threshold', 'checkbox_only', 'hidden', 'description', 'cost'}


def update_product(
    db: Session,
    *,
    product_id: int,
    fields: dict,
    category_ids: Sequence[int] | None = None,
    supplier_ids: Sequence[int] | None = None,
    primary_category_id: int | None = None,
    primary_supplier_id: int | None = None,
) -> Product:
    """Edit catalog fields. Existing order lines keep their snapshots."""
    unknown = set(fields) - _UPDATABLE_PRODUCT_FIELDS
    if unknown:
        raise ValidationError('Unknown product fields', fields=sorted(unknown))

    with translate_errors(db, 'update_product'):
        product = db.execute(select(Product).where(Product.id == product_id)).scalar_one_or_none()
        if not product:
            raise NotFoundError('Product not found', product_id=product_id)

        if 'name' in fields:
            product.name = _clean_name(fields['name'], label='Product')
        if 'unit' in fields:
            product.unit = (fields['unit'] or '').strip()
        if 'minimum_threshold' in fields:
            product.minimum_threshold = _validate_threshold(fields['minimum_threshold'])
        if 'checkbox_only' in fields:
            product.checkbox_only = bool(fields['checkbox_only'])
        if 'hidden' in fields:
            product.hidden = bool(fields['hidden'])
        if 'description' in fields:
            product.description = _optional_text(fields['description'])
        if 'cost' in fields:
            product.cost = fields['cost']
        product.updated_at = _now()

        if category_ids is not None:
            _replace_categories(db, product_id=product_id, category_ids=category_ids, primary_id=primary_category_id)
        if supplier_ids is not None:
            _replace_suppliers(db, product_id=product_id, supplier_ids=supplier_ids, primary_id=primary_supplier_id)
        db.flush()
        return product


def delete_member(db: Session, *, collection: Collection, member_id: int) -> int:
    """Delete a category, supplier or location and close the rank gap it leaves."""
    model = _MODELS.get(collection)
    if model is None:
        raise ValidationError('Products are removed with soft delete or purge', collection=collection.value)

    with translate_errors(db, 'delete_member'):
        exists = db.execute(select(model.id).where(model.id == member_id)).scalar_one_or_none()
        if not exists:
            raise NotFoundError(f'{collection.value} member not found', member_id=member_id)

        if model is Location:
            has_orders = db.execute(select(Order.id).where(Order.location_id == member_id).limit(1)).first()
            if has_orders:
                raise ConflictError('Location has orders and cannot be deleted', location_id=member_id)
        elif model is Category:
            db.execute(delete(ProductCategory).where(ProductCategory.category_id == member_id))
        elif model is Supplier:
            db.execute(delete(ProductSupplier).where(ProductSupplier.supplier_id == member_id))

        db.execute(delete(model).where(model.id == member_id))
        db.flush()
    renumber(SqlInventoryStore(db), collection)
    return member_id


def list_collection(db: Session, *, collection: Collection) -> list[dict]:
    if collection == Collection.PRODUCTS:
        return [
            {
                'id': item.id,
                'name': item.name,
                'unit': item.unit,
                'minimum_threshold': item.minimum_threshold,
                'checkbox_only': item.checkbox_only,
                'hidden': item.hidden,
                'sort_order': item.sort_order,
                'supplier_name': item.supplier_name,
                'category_names': list(item.category_names),
            }
            for item in SqlInventoryStore(db).list_catalog()
        ]
    return [
        {'id': member.id, 'name': member.name, 'sort_order': member.sort_order}
        for member in SqlInventoryStore(db).list_members(collection)
    ]
