from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    """One page of results plus pagination metadata."""

    items: List[T]
    pagination: PaginationMeta


def build_page(items: List[T], page: int, limit: int, total: int) -> dict:
    return {
        "items": items,
        "pagination": PaginationMeta(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit if limit else 0,
        ),
    }
