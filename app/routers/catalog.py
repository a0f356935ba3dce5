from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_actor, get_client_ip, get_store, http_error
from app.errors import RestockError
from app.schemas import (
    AutoSortBody,
    BulkAssignBody,
    MemberCreateBody,
    MemberUpdateBody,
    ProductCreateBody,
    ProductUpdateBody,
    ReorderBody,
)
from app.services.audit_service import log_audit
from app.services.catalog_service import (
    create_category,
    create_location,
    create_product,
    create_supplier,
    delete_member,
    list_collection,
    update_member,
    update_product,
)
from app.services.inventory_store import Collection
from app.services.lifecycle_service import purge_product, restore_product, soft_delete_product
from app.services.positional_service import auto_sort_products, bulk_assign, parse_collection, reorder
from app.services.records import CatalogItem, RankedMember
from app.services.sql_inventory_store import SqlInventoryStore

router = APIRouter(prefix='/catalog', tags=['catalog'])


def _members_payload(members: list[RankedMember]) -> list[dict]:
    return [{'id': m.id, 'name': m.name, 'sort_order': m.sort_order} for m in members]


def _item_payload(item: CatalogItem) -> dict:
    return {
        'id': item.id,
        'name': item.name,
        'unit': item.unit,
        'minimum_threshold': item.minimum_threshold,
        'checkbox_only': item.checkbox_only,
        'hidden': item.hidden,
        'deleted_at': item.deleted_at,
        'sort_order': item.sort_order,
        'supplier_name': item.supplier_name,
        'category_names': list(item.category_names),
    }


def _collection_or_400(value: str) -> Collection:
    try:
        return parse_collection(value)
    except RestockError as exc:
        raise http_error(exc) from exc


@router.get('/{collection}')
def list_members_route(collection: str, db: Session = Depends(get_db)):
    try:
        return list_collection(db, collection=_collection_or_400(collection))
    except RestockError as exc:
        raise http_error(exc) from exc


@router.post('/products', status_code=201)
def create_product_route(
    body: ProductCreateBody,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        product = create_product(db, **body.model_dump())
        item = store.get_catalog_item(product.id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='PRODUCT_CREATED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'product_id': item.id, 'name': item.name},
    )
    db.commit()
    return _item_payload(item)


@router.post('/products/auto-sort')
def auto_sort_route(
    body: AutoSortBody,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        members = auto_sort_products(store, body.field)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='PRODUCTS_AUTO_SORTED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'field': body.field, 'count': len(members)},
    )
    db.commit()
    return _members_payload(members)


@router.patch('/products/{product_id}')
def update_product_route(
    product_id: int,
    body: ProductUpdateBody,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    data = body.model_dump(exclude_unset=True)
    associations = {
        key: data.pop(key)
        for key in ('category_ids', 'supplier_ids', 'primary_category_id', 'primary_supplier_id')
        if key in data
    }
    try:
        update_product(db, product_id=product_id, fields=data, **associations)
        item = store.get_catalog_item(product_id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='PRODUCT_UPDATED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'product_id': product_id, 'fields': sorted(data)},
    )
    db.commit()
    return _item_payload(item)


@router.post('/products/{product_id}/soft-delete')
def soft_delete_route(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        item = soft_delete_product(store, product_id=product_id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='PRODUCT_SOFT_DELETED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'product_id': product_id, 'name': item.name},
    )
    db.commit()
    return _item_payload(item)


@router.post('/products/{product_id}/restore')
def restore_route(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        item = restore_product(store, product_id=product_id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='PRODUCT_RESTORED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'product_id': product_id, 'sort_order': item.sort_order},
    )
    db.commit()
    return _item_payload(item)


@router.delete('/products/{product_id}')
def purge_route(
    product_id: int,
    request: Request,
    confirm_history_loss: bool = False,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        result = purge_product(store, product_id=product_id, confirm_history_loss=confirm_history_loss)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='PRODUCT_PURGED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={
            'product_id': result.product_id,
            'name': result.product_name,
            'order_lines_deleted': result.order_lines_deleted,
            'affected_order_ids': list(result.affected_order_ids),
        },
    )
    db.commit()
    return {
        'product_id': result.product_id,
        'product_name': result.product_name,
        'history_destroyed': True,
        'order_lines_deleted': result.order_lines_deleted,
        'category_links_deleted': result.category_links_deleted,
        'supplier_links_deleted': result.supplier_links_deleted,
        'affected_order_ids': list(result.affected_order_ids),
    }


@router.post('/{collection}', status_code=201)
def create_member_route(
    collection: str,
    body: MemberCreateBody,
    request: Request,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
):
    target = _collection_or_400(collection)
    try:
        if target == Collection.LOCATIONS:
            member = create_location(db, name=body.name, address=body.address)
        elif target == Collection.CATEGORIES:
            member = create_category(db, name=body.name, color=body.color)
        elif target == Collection.SUPPLIERS:
            member = create_supplier(
                db,
                name=body.name,
                contact_info=body.contact_info,
                email=body.email,
                phone=body.phone,
            )
        else:
            raise HTTPException(status_code=400, detail='Use /catalog/products to create products')
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action=f'{target.name}_MEMBER_CREATED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'id': member.id, 'name': member.name},
    )
    db.commit()
    return {'id': member.id, 'name': member.name, 'sort_order': member.sort_order}


@router.patch('/{collection}/{member_id}')
def update_member_route(
    collection: str,
    member_id: int,
    body: MemberUpdateBody,
    request: Request,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
):
    target = _collection_or_400(collection)
    fields = body.model_dump(exclude_unset=True)
    try:
        member = update_member(db, collection=target, member_id=member_id, fields=fields)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action=f'{target.name}_MEMBER_UPDATED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'id': member_id, 'fields': sorted(fields)},
    )
    db.commit()
    return {'id': member.id, 'name': member.name, 'sort_order': member.sort_order}


@router.post('/{collection}/reorder')
def reorder_route(
    collection: str,
    body: ReorderBody,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    target = _collection_or_400(collection)
    try:
        members = reorder(store, target, body.from_index, body.to_index)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action=f'{target.name}_REORDERED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'from_index': body.from_index, 'to_index': body.to_index},
    )
    db.commit()
    return _members_payload(members)


@router.post('/{collection}/bulk-assign')
def bulk_assign_route(
    collection: str,
    body: BulkAssignBody,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    target = _collection_or_400(collection)
    try:
        members = bulk_assign(store, target, body.ordered_ids)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action=f'{target.name}_BULK_ASSIGNED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'count': len(members)},
    )
    db.commit()
    return _members_payload(members)


@router.delete('/{collection}/{member_id}')
def delete_member_route(
    collection: str,
    member_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
):
    target = _collection_or_400(collection)
    try:
        delete_member(db, collection=target, member_id=member_id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action=f'{target.name}_MEMBER_DELETED',
        order_id=None,
        ip=get_client_ip(request),
        metadata={'id': member_id},
    )
    db.commit()
    return {'id': member_id, 'deleted': True}
