import math
from typing import Optional

from sqlalchemy.orm import Query

from .config import settings
from .exceptions import BadRequestError


def normalize_page_params(page: Optional[int], limit: Optional[int]) -> tuple:
    """Apply defaults and bounds to page/limit query values."""
    page = 1 if page is None else page
    limit = settings.DEFAULT_PAGE_SIZE if limit is None else limit

    if page < 1 or limit < 1:
        raise BadRequestError("page and limit must be positive integers.")

    return page, min(limit, settings.MAX_PAGE_SIZE)


def paginate(query: Query, page: Optional[int] = None, limit: Optional[int] = None) -> dict:
    """Run a query one page at a time.

    Returns the page in the shape the API clients expect: the rows under
    ``docs`` plus total/next/previous bookkeeping.
    """
    page, limit = normalize_page_params(page, limit)

    total_docs = query.order_by(None).count()
    docs = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total_docs / limit) if total_docs else 1

    return {
        "docs": docs,
        "total_docs": total_docs,
        "limit": limit,
        "page": page,
        "total_pages": total_pages,
        "has_prev_page": page > 1,
        "has_next_page": page < total_pages,
        "prev_page": page - 1 if page > 1 else None,
        "next_page": page + 1 if page < total_pages else None,
    }


def empty_page(limit: Optional[int] = None) -> dict:
    """Page returned when the caller has nothing to list yet."""
    return {
        "docs": [],
        "total_docs": 0,
        "limit": limit or settings.DEFAULT_PAGE_SIZE,
        "page": 1,
        "total_pages": 1,
        "has_prev_page": False,
        "has_next_page": False,
        "prev_page": None,
        "next_page": None,
    }
