"""Pagination utilities for list endpoints."""

from dataclasses import dataclass

from fastapi import Query
from sqlalchemy.orm import Query as SQLAlchemyQuery

from helpdesk.core.config import settings
from helpdesk.core.errors import ValidationError


# Pagination limits
DEFAULT_PAGE = 1
DEFAULT_LIMIT = settings.DEFAULT_PAGE_SIZE
MAX_LIMIT = settings.MAX_PAGE_SIZE


@dataclass
class PaginationParams:
    """Pagination parameters from query string (limit already clamped)."""
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def clamp_limit(limit: int | None) -> int:
    """Clamp a requested page size to [1, MAX_LIMIT]."""
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


def get_pagination(
    page: int = Query(DEFAULT_PAGE, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(DEFAULT_LIMIT, description=f"Items per page (clamped to {MAX_LIMIT})"),
) -> PaginationParams:
    """
    Pagination dependency.

    Oversized limits are clamped rather than rejected.

    Usage:
        @router.get("/items")
        def list_items(pagination: PaginationParams = Depends(get_pagination)):
            ...
    """
    return PaginationParams(page=page, limit=clamp_limit(limit))


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit > 0 else 0


def paginate_query(query: SQLAlchemyQuery, pagination: PaginationParams) -> tuple[list, int]:
    """
    Apply pagination to a SQLAlchemy query.

    Returns:
        (items, total_count)

    Raises:
        ValidationError: page lies beyond the last page (page 1 is always valid)
    """
    total = query.count()
    pages = total_pages(total, pagination.limit)
    if pagination.page > max(pages, 1):
        raise ValidationError(
            f"Page {pagination.page} is out of range (total pages: {pages})"
        )
    items = query.offset(pagination.offset).limit(pagination.limit).all()
    return items, total
