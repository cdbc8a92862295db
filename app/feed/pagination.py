"""Page-number pagination over a composed SELECT."""

import math
from collections.abc import Callable
from typing import Any

from sqlalchemy import Row, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ValidationError


def page_meta(total: int, page: int, limit: int) -> dict[str, Any]:
    """Build the paging fields that accompany a page of results.

    Args:
        total: Number of rows the full query produces
        page: 1-based page number
        limit: Page size

    Returns:
        Dict with totalDocs, limit, page, totalPages, pagingCounter,
        hasPrevPage, hasNextPage, prevPage and nextPage
    """
    total_pages = math.ceil(total / limit) or 1
    has_prev = page > 1
    has_next = page < total_pages
    return {
        "totalDocs": total,
        "limit": limit,
        "page": page,
        "totalPages": total_pages,
        "pagingCounter": (page - 1) * limit + 1,
        "hasPrevPage": has_prev,
        "hasNextPage": has_next,
        "prevPage": page - 1 if has_prev else None,
        "nextPage": page + 1 if has_next else None,
    }


async def paginate(
    db: AsyncSession,
    stmt: Select,
    page: int,
    limit: int,
    project: Callable[[Row], dict[str, Any]],
    max_limit: int | None = None,
) -> dict[str, Any]:
    """
    Run a composed query one page at a time.

    Pagination is applied after every stage already on ``stmt``; the total is
    counted over the same statement without its ordering.

    Args:
        db: Database session
        stmt: Fully composed SELECT (filters, sort, joins)
        page: 1-based page number
        limit: Page size
        project: Maps a result row to its output dict
        max_limit: Upper bound for ``limit``

    Returns:
        Dict with ``docs`` plus the fields from page_meta()

    Raises:
        ValidationError: If page or limit is below 1
    """
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1:
        raise ValidationError("limit must be 1 or greater")
    if max_limit is not None:
        limit = min(limit, max_limit)

    total = await db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    result = await db.execute(stmt.limit(limit).offset((page - 1) * limit))

    return {"docs": [project(row) for row in result.all()], **page_meta(total or 0, page, limit)}
