from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.services.audit_service import log_audit
from app.services.records import OrderRecord

logger = logging.getLogger('restock.notifications')


def send_order_submitted_stub(
    db: Session,
    *,
    order: OrderRecord,
    location_name: str,
    ip: str | None,
) -> dict:
    to_order = [line for line in order.lines if line.needs_ordering]
    payload = {
        'order_number': order.order_number,
        'location_name': location_name,
        'submitted_by': order.submitted_by,
        'lines_to_order': len(to_order),
        'counted_lines': len(order.lines),
        'suppliers': sorted({line.supplier_name_snapshot or 'Unknown Supplier' for line in to_order}),
        'report_type': 'ORDER_SUBMITTED',
        'status': 'STUB_SENT',
    }
    log_audit(
        db,
        actor_name=order.submitted_by,
        action='ORDER_NOTIFICATION_STUB_SENT',
        order_id=order.id,
        ip=ip,
        metadata=payload,
    )
    logger.info('Order %s notification recorded for %s', order.order_number, location_name)
    return payload
