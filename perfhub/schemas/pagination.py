from typing import Callable, Generic, TypeVar
from pydantic import BaseModel
from sqlalchemy.orm import Query

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination metadata"""
    total: int
    limit: int
    offset: int
    has_more: bool

    @property
    def page(self) -> int:
        """Calculate current page number (1-indexed)"""
        if self.limit == 0:
            return 1
        return (self.offset // self.limit) + 1

    @property
    def total_pages(self) -> int:
        """Calculate total number of pages"""
        if self.limit == 0:
            return 1
        return (self.total + self.limit - 1) // self.limit


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper"""
    items: list[T]
    pagination: PaginationMeta


def paginate(
    query: Query,
    *,
    limit: int,
    offset: int,
    include_pagination: bool,
    to_out: Callable,
    order_by=None,
):
    """
    Apply offset/limit to an already-filtered query.

    Returns a bare list, or a PaginatedResponse when include_pagination is set.
    """
    # Get total count before pagination
    total = query.count()

    if order_by is not None:
        query = query.order_by(order_by)
    items = [to_out(row) for row in query.offset(offset).limit(limit).all()]

    if include_pagination:
        return PaginatedResponse(
            items=items,
            pagination=PaginationMeta(
                total=total,
                limit=limit,
                offset=offset,
                has_more=(offset + len(items) < total),
            ),
        )
    return items
