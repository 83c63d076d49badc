"""Reusable pagination and sorting for list endpoints."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workhive.db.guard import storage_guard

T = TypeVar("T")


class PaginationParams:
    """Inject as a FastAPI dependency for any list endpoint."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number"),
        page_size: int = Query(20, ge=1, le=100, description="Items per page"),
        sort_by: str | None = Query(None, description="Column to sort by"),
        sort_order: str = Query("desc", pattern="^(asc|desc)$", description="asc or desc"),
    ):
        self.page = page
        self.page_size = page_size
        self.sort_by = sort_by
        self.sort_order = sort_order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def total_pages(self, total: int) -> int:
        return max(1, -(-total // self.page_size))


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int


async def paginate(
    db: AsyncSession,
    query: Select,
    params: PaginationParams,
    sortable: dict[str, Any] | None = None,
) -> tuple[list[Any], int]:
    """Apply pagination to a query and return (items, total_count).

    ``sortable`` maps the public ``sort_by`` names to columns; unknown names
    keep the query's own ordering.
    """
    with storage_guard("paginated listing"):
        count_q = select(func.count()).select_from(query.order_by(None).subquery())
        total = (await db.execute(count_q)).scalar() or 0

        col = (sortable or {}).get(params.sort_by) if params.sort_by else None
        if col is not None:
            query = query.order_by(None).order_by(
                col.asc() if params.sort_order == "asc" else col.desc()
            )

        query = query.offset(params.offset).limit(params.page_size)
        result = await db.execute(query)
    return list(result.scalars().all()), total
