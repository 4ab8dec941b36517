"""
Cursor pagination over listing APIs.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any, NamedTuple

from .retry import RetryPolicy


class Page(NamedTuple):
    items: list[Any]
    next_cursor: str | None = None


def fetch_all_pages(
    fetch_page: Callable[[str | None], Page],
    *,
    retry: RetryPolicy | None = None,
    on_page: Callable[[int, int], None] | None = None,
) -> list[Any]:
    """Follow ``next_cursor`` until the source stops returning one.

    The first request is made with ``cursor=None``. An empty string cursor
    counts as absent. With ``retry``, each page request is retried on its own.
    """
    items: list[Any] = []
    cursor: str | None = None
    page_no = 0
    while True:
        request = functools.partial(fetch_page, cursor)
        page = retry.call(request) if retry else request()
        items.extend(page.items)
        page_no += 1
        if on_page:
            on_page(page_no, len(items))
        cursor = page.next_cursor or None
        if not cursor:
            return items
