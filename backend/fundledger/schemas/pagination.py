# backend/fundledger/schemas/pagination.py
"""
Page-based pagination for list endpoints.

Ledger history and snapshot lists are paged by page number:

    GET /portfolios/1/cash-flow/history?page=2&limit=20

    {
        "items": [...],
        "pagination": {
            "total": 45, "page": 2, "limit": 20,
            "total_pages": 3, "has_next": true, "has_previous": true
        }
    }
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field, computed_field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """
    Pagination metadata with derived navigation fields.

    Attributes:
        total: Items matching the query
        page: Current page (1-indexed)
        limit: Items per page
    """

    total: int = Field(..., ge=0, description="Total number of items matching query")
    page: int = Field(..., ge=1, description="Current page number (1-indexed)")
    limit: int = Field(..., ge=1, description="Maximum items per page")

    @computed_field
    @property
    def total_pages(self) -> int:
        if self.total <= 0:
            return 1
        return (self.total + self.limit - 1) // self.limit

    @computed_field
    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @computed_field
    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @classmethod
    def create(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        return cls(total=total, page=page, limit=limit)


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Generic paginated response wrapper.

    Example:
        class CashFlowListResponse(PaginatedResponse[CashFlowResponse]):
            pass
    """

    items: list[T] = Field(..., description="Items of the current page")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")
