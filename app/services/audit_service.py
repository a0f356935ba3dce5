from __future__ import annotations

from sqlalchemy.orm import Session

from app.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor_name: str | None,
    action: str,
    order_id: int | None,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_name=actor_name,
            action=action,
            order_id=order_id,
            ip=ip,
            meta=metadata or {},
        )
    )
