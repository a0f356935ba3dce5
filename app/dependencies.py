from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import (
    ConflictError,
    NotFoundError,
    RankPersistenceError,
    RestockError,
    TransientStoreError,
    ValidationError,
)
from app.services.sql_inventory_store import SqlInventoryStore

ACTOR_HEADER = 'x-actor'


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_actor(request: Request) -> str | None:
    actor = request.headers.get(ACTOR_HEADER, '').strip()
    return actor or None


def get_store(db: Session = Depends(get_db)) -> SqlInventoryStore:
    return SqlInventoryStore(db)


def http_error(exc: RestockError) -> HTTPException:
    detail = exc.as_dict()
    if isinstance(exc, RankPersistenceError):
        detail['authoritative'] = [
            {'id': member.id, 'name': member.name, 'sort_order': member.sort_order} for member in exc.authoritative
        ]
    if isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, TransientStoreError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=detail)
