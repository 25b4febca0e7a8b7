"""
Page-number pagination for list endpoints.

Responses look like:
    {"count": 45, "next": "http://.../?page=3", "previous": "http://.../?page=1", "results": [...]}
"""

from typing import Any, Callable, Dict, List, Sequence, TypeVar

from fastapi import HTTPException, Query, Request

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

T = TypeVar("T")


class PageParams:
    """Query parameters `page` (1-based) and `page_size`."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number, starting at 1"),
        page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"),
    ):
        self.page = page
        self.page_size = page_size


def paginate(
    request: Request,
    items: Sequence[T],
    params: PageParams,
    serialize: Callable[[T], Any],
) -> Dict[str, Any]:
    count = len(items)
    start = (params.page - 1) * params.page_size
    if start >= count and params.page > 1:
        raise HTTPException(
            status_code=404,
            detail={"error": "NotFound", "detail": "Invalid page.", "status_code": 404},
        )

    end = start + params.page_size
    results: List[Any] = [serialize(item) for item in items[start:end]]

    next_url = None
    if end < count:
        next_url = str(request.url.include_query_params(page=params.page + 1))
    previous_url = None
    if params.page > 1:
        previous_url = str(request.url.include_query_params(page=params.page - 1))

    return {"count": count, "next": next_url, "previous": previous_url, "results": results}


__all__ = ["DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE", "PageParams", "paginate"]
