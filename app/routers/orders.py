from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.dependencies import get_actor, get_client_ip, get_store, http_error
from app.errors import RestockError, ValidationError
from app.models import Location
from app.schemas import CountPreviewBody, CountRowBody, OrderStatusBody, OrderSubmitBody
from app.services.audit_service import log_audit
from app.services.count_session_service import (
    CountInput,
    CountingSession,
    build_order,
    preview_rows,
    session_from_inputs,
    submit_order,
)
from app.services.fulfillment_service import (
    clear_all_fulfillment,
    fulfillment_summary,
    set_status_manually,
    sort_lines_for_display,
    toggle_fulfilled,
)
from app.services.lifecycle_service import archive_order, unarchive_order
from app.services.notification_service import send_order_submitted_stub
from app.services.records import OrderLineRecord, OrderRecord
from app.services.sql_inventory_store import SqlInventoryStore

logger = logging.getLogger('restock.api')

router = APIRouter(prefix='/orders', tags=['orders'])


def _line_payload(line: OrderLineRecord) -> dict:
    return {
        'id': line.id,
        'product_id': line.product_id,
        'item_name': line.item_name_snapshot,
        'unit': line.unit_snapshot,
        'supplier_name': line.supplier_name_snapshot,
        'category_names': list(line.category_names_snapshot),
        'counted_quantity': line.counted_quantity_snapshot,
        'minimum_threshold': line.minimum_threshold_snapshot,
        'checkbox_only': line.checkbox_only_snapshot,
        'needs_ordering': line.needs_ordering,
        'quantity_gap': line.quantity_gap,
        'fulfilled': line.fulfilled,
        'fulfilled_by': line.fulfilled_by,
        'fulfilled_at': line.fulfilled_at,
    }


def order_payload(order: OrderRecord, *, include_lines: bool = True) -> dict:
    summary = fulfillment_summary(order)
    payload = {
        'id': order.id,
        'order_number': order.order_number,
        'location_id': order.location_id,
        'submitted_by': order.submitted_by,
        'note': order.note,
        'status': order.status.value,
        'archived': order.archived,
        'created_at': order.created_at,
        'updated_at': order.updated_at,
        'eligible_lines': summary.eligible_lines,
        'fulfilled_lines': summary.fulfilled_lines,
    }
    if include_lines:
        payload['lines'] = [_line_payload(line) for line in sort_lines_for_display(order.lines)]
    return payload


def _session(store: SqlInventoryStore, location_id: int, entries: list[CountRowBody]) -> CountingSession:
    return session_from_inputs(
        store.list_catalog(),
        location_id=location_id,
        rows=[
            CountInput(
                product_id=row.product_id,
                counted_quantity=row.counted_quantity,
                flagged_for_order=row.flagged_for_order,
            )
            for row in entries
        ],
    )


@router.post('/preview')
def preview_route(body: CountPreviewBody, store: SqlInventoryStore = Depends(get_store)):
    try:
        session = _session(store, body.location_id, body.entries)
    except RestockError as exc:
        raise http_error(exc) from exc
    rows = preview_rows(session)
    return {
        'location_id': body.location_id,
        'rows': rows,
        'to_order': sum(1 for row in rows if row['included']),
    }


@router.post('', status_code=201)
def submit_order_route(
    body: OrderSubmitBody,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
):
    ip = get_client_ip(request)
    try:
        if body.location_id is None:
            raise ValidationError('Location is required')
        draft = build_order(
            location_id=body.location_id,
            submitted_by=body.submitted_by,
            note=body.note,
            session=_session(store, body.location_id, body.entries),
        )
        order = submit_order(store, draft)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=order.submitted_by,
        action='ORDER_SUBMITTED',
        order_id=order.id,
        ip=ip,
        metadata={'order_number': order.order_number, 'lines': len(order.lines)},
    )
    db.commit()

    notification = None
    if settings.notify_on_order_submit:
        location = db.get(Location, order.location_id)
        try:
            notification = send_order_submitted_stub(
                db,
                order=order,
                location_name=location.name if location else f'Location {order.location_id}',
                ip=ip,
            )
            db.commit()
        except SQLAlchemyError:
            # The order is already committed; a lost notification is reported, not fatal.
            db.rollback()
            logger.exception('Order %s saved but notification failed', order.order_number)

    payload = order_payload(order)
    payload['notification_sent'] = notification is not None
    return payload


@router.get('')
def list_orders_route(
    location_id: int | None = None,
    include_archived: bool = False,
    store: SqlInventoryStore = Depends(get_store),
):
    try:
        orders = store.list_orders(location_id=location_id, include_archived=include_archived)
    except RestockError as exc:
        raise http_error(exc) from exc
    return [order_payload(order, include_lines=False) for order in orders]


@router.get('/{order_id}')
def get_order_route(order_id: int, store: SqlInventoryStore = Depends(get_store)):
    try:
        order = store.get_order(order_id)
    except RestockError as exc:
        raise http_error(exc) from exc
    payload = order_payload(order)
    payload['quantity_gaps'] = fulfillment_summary(order).quantity_gaps
    return payload


@router.post('/{order_id}/lines/{line_id}/toggle')
def toggle_line_route(
    order_id: int,
    line_id: int,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        order = toggle_fulfilled(store, order_id=order_id, line_id=line_id, actor=actor)
    except RestockError as exc:
        raise http_error(exc) from exc

    line = order.line(line_id)
    log_audit(
        db,
        actor_name=actor,
        action='ORDER_LINE_FULFILLED' if line and line.fulfilled else 'ORDER_LINE_UNFULFILLED',
        order_id=order_id,
        ip=get_client_ip(request),
        metadata={'line_id': line_id, 'status': order.status.value},
    )
    db.commit()
    return order_payload(order)


@router.post('/{order_id}/status')
def set_status_route(
    order_id: int,
    body: OrderStatusBody,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        order = set_status_manually(store, order_id=order_id, status=body.status)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='ORDER_STATUS_SET',
        order_id=order_id,
        ip=get_client_ip(request),
        metadata={'status': order.status.value},
    )
    db.commit()
    return order_payload(order)


@router.post('/{order_id}/clear-fulfillment')
def clear_fulfillment_route(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        order = clear_all_fulfillment(store, order_id=order_id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='ORDER_FULFILLMENT_CLEARED',
        order_id=order_id,
        ip=get_client_ip(request),
        metadata={'status': order.status.value},
    )
    db.commit()
    return order_payload(order)


@router.post('/{order_id}/archive')
def archive_route(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        order = archive_order(store, order_id=order_id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='ORDER_ARCHIVED',
        order_id=order_id,
        ip=get_client_ip(request),
    )
    db.commit()
    return order_payload(order, include_lines=False)


@router.post('/{order_id}/unarchive')
def unarchive_route(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlInventoryStore = Depends(get_store),
    actor: str | None = Depends(get_actor),
):
    try:
        order = unarchive_order(store, order_id=order_id)
    except RestockError as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_name=actor,
        action='ORDER_UNARCHIVED',
        order_id=order_id,
        ip=get_client_ip(request),
    )
    db.commit()
    return order_payload(order, include_lines=False)
