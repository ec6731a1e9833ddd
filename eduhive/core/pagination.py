"""Offset pages for the admin review queue."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

MAX_PAGE_SIZE = 200


class Page(BaseModel, Generic[T]):
    items: list[T]
    limit: int
    offset: int
    total: int
    next_offset: int | None = None  # None on the last page

    @classmethod
    def build(cls, items: list[T], limit: int, offset: int, total: int) -> "Page[T]":
        end = offset + len(items)
        return cls(items=items, limit=limit, offset=offset, total=total, next_offset=end if end < total else None)


def paginate(limit: int, offset: int, max_limit: int = MAX_PAGE_SIZE) -> tuple[int, int]:
    """Clamp limit/offset; return (limit, offset)."""
    return max(1, min(limit, max_limit)), max(0, offset)
