"""Bulk retrieval of limit/offset paged queries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from modsync.schemas.page import PAGE_LIMIT_MAX, Pagination

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from modsync.schemas.page import Page

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def fetch_all_results(
    query: Callable[[Pagination], Awaitable[Page[T]]],
    limit: int = PAGE_LIMIT_MAX,
) -> list[T]:
    """Run ``query`` page by page until a short page signals the end of the data.

    Offsets advance by ``limit`` starting at 0. A failing page propagates its
    exception straight away and whatever was accumulated is discarded.
    """
    if limit <= 0:
        msg = f"Page limit must be positive, got {limit}"
        raise ValueError(msg)

    results: list[T] = []
    pagination = Pagination(limit=limit, offset=0)
    while True:
        page = await query(pagination)
        results.extend(page.data)
        if page.result_count < page.result_limit or not page.data:
            break
        pagination = pagination.next()

    logger.debug("Fetched %d results in pages of %d", len(results), limit)
    return results
