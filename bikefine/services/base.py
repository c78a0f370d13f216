import math
from typing import Any, Dict

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


async def count(db: AsyncSession, query: Select) -> int:
    result = await db.execute(select(func.count()).select_from(query.order_by(None).subquery()))
    return result.scalar() or 0


async def paginate(db: AsyncSession, query: Select, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    """
    Run a list query one page at a time.

    Args:
        - query (Select): An ordered ORM select.
        - page (int): 1-based page number.
        - limit (int): Page size.

    Returns:
        - dict: ``data`` (ORM rows), ``total``, ``page``, ``limit`` and ``totalPages``.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    total = await count(db, query)

    offset = (page - 1) * limit
    result = await db.execute(query.offset(offset).limit(limit))
    rows = result.scalars().all()

    return {
        "data": list(rows),
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


def contains(column, term: str):
    """Case-insensitive substring match"""
    return func.lower(column).contains(term.lower(), autoescape=True)
