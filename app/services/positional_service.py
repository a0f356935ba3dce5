from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from enum import Enum

from app.errors import NotFoundError, RankPersistenceError, TransientStoreError, ValidationError
from app.services.inventory_store import Collection, InventoryStore
from app.services.records import CatalogItem, RankedMember
from app.services.sort_utils import auto_sort_key, splice_move

logger = logging.getLogger('restock.positional')


class AutoSortField(str, Enum):
    NAME = 'name'
    SUPPLIER = 'supplier'
    CATEGORY = 'category'


def parse_collection(value: str | Collection) -> Collection:
    try:
        return Collection(value)
    except ValueError as exc:
        raise ValidationError(f'Unknown collection: {value}', collection=str(value)) from exc


def reorder(store: InventoryStore, collection: Collection, from_index: int, to_index: int) -> list[RankedMember]:
    """Move one member with list-splice semantics and renumber the whole collection."""
    members = store.list_members(collection, lock=True)
    moved = splice_move(members, from_index, to_index)
    return _persist_ranks(store, collection, moved)


def bulk_assign(store: InventoryStore, collection: Collection, ordered_ids: Sequence[int]) -> list[RankedMember]:
    members = store.list_members(collection, lock=True)
    by_id = {member.id: member for member in members}
    ids = list(ordered_ids)

    if len(ids) != len(set(ids)):
        raise ValidationError('Ordering contains duplicate ids', collection=collection.value)
    unknown = sorted(set(ids) - set(by_id))
    if unknown:
        raise ValidationError('Ordering contains unknown ids', collection=collection.value, unknown_ids=unknown)
    missing = sorted(set(by_id) - set(ids))
    if missing:
        raise ValidationError('Ordering must list every member', collection=collection.value, missing_ids=missing)

    return _persist_ranks(store, collection, [by_id[member_id] for member_id in ids])


def renumber(store: InventoryStore, collection: Collection) -> list[RankedMember]:
    """Close rank gaps without changing the relative order."""
    members = store.list_members(collection, lock=True)
    return _persist_ranks(store, collection, members)


def auto_sort_products(store: InventoryStore, field: str | AutoSortField) -> list[RankedMember]:
    try:
        sort_field = AutoSortField(field)
    except ValueError as exc:
        raise ValidationError(f'Unknown sort field: {field}', field=str(field)) from exc

    def _key(item: CatalogItem) -> tuple:
        if sort_field == AutoSortField.SUPPLIER:
            return auto_sort_key(item.supplier_name, item.name)
        if sort_field == AutoSortField.CATEGORY:
            return auto_sort_key(item.category_name, item.name)
        return auto_sort_key(item.name, item.name)

    ordered = sorted(store.list_catalog(), key=_key)
    return bulk_assign(store, Collection.PRODUCTS, [item.id for item in ordered])


def _persist_ranks(store: InventoryStore, collection: Collection, ordered: list[RankedMember]) -> list[RankedMember]:
    result: list[RankedMember] = []
    written = 0
    try:
        for idx, member in enumerate(ordered):
            if member.sort_order != idx:
                store.set_rank(collection, member.id, idx)
                written += 1
            result.append(replace(member, sort_order=idx))
    except (TransientStoreError, NotFoundError) as exc:
        logger.warning(
            'Rank rewrite for %s failed after %d writes; reloading collection: %s',
            collection.value,
            written,
            exc,
        )
        authoritative = store.list_members(collection)
        raise RankPersistenceError(
            f'Could not save the new {collection.value} order',
            authoritative=authoritative,
            collection=collection.value,
            written=written,
        ) from exc

    logger.info('Renumbered %s: %d of %d ranks changed', collection.value, written, len(result))
    return result
