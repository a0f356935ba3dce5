from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

from app.errors import ValidationError

T = TypeVar('T')


def sort_text(value: str | None) -> tuple[str, str]:
    # Letters compare case-insensitively, case only breaks ties; missing names sort first.
    text = value or ''
    return (text.casefold(), text)


def auto_sort_key(primary: str | None, name: str | None) -> tuple[tuple[str, str], tuple[str, str]]:
    return (sort_text(primary), sort_text(name))


def splice_move(items: Sequence[T], from_index: int, to_index: int) -> list[T]:
    size = len(items)
    if not 0 <= from_index < size:
        raise ValidationError(f'from_index must be between 0 and {size - 1}', from_index=from_index)
    if not 0 <= to_index < size:
        raise ValidationError(f'to_index must be between 0 and {size - 1}', to_index=to_index)
    moved = list(items)
    item = moved.pop(from_index)
    moved.insert(to_index, item)
    return moved


def next_rank(ranks: Iterable[int]) -> int:
    current = list(ranks)
    return max(current) + 1 if current else 0
