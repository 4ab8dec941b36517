"""
Attach reporter identity (Slack profile) to every message.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

from .logs import log_event
from .models import UNKNOWN_AUTHOR, AuthorInfo, Message
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

UserLookup = Callable[[str], AuthorInfo | None]

PROGRESS_EVERY = 10


def distinct_authors(messages: Iterable[Message]) -> list[str]:
    seen: dict[str, None] = {}
    for msg in messages:
        if msg.user:
            seen.setdefault(msg.user, None)
    return list(seen)


def resolve_authors(
    user_ids: list[str],
    lookup_user: UserLookup,
    *,
    retry: RetryPolicy | None = None,
    max_workers: int = 1,
) -> dict[str, AuthorInfo]:
    """Look up each id once. Failures map to ``UNKNOWN_AUTHOR``; ``None`` is left out."""

    def lookup(user_id: str) -> AuthorInfo | None:
        try:
            if retry:
                return retry.call(lambda: lookup_user(user_id))
            return lookup_user(user_id)
        except Exception as e:
            log_event(logger, "user_lookup_failed", logging.WARNING, user=user_id, error=str(e))
            return UNKNOWN_AUTHOR

    if max_workers > 1 and len(user_ids) > 1:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(user_ids))) as executor:
            results = list(executor.map(lookup, user_ids))
    else:
        results = [lookup(u) for u in user_ids]

    authors: dict[str, AuthorInfo] = {}
    for done, (user_id, info) in enumerate(zip(user_ids, results), start=1):
        if done % PROGRESS_EVERY == 0:
            log_event(logger, "users_progress", done=done, total=len(user_ids))
        if info is not None:
            authors[user_id] = info
    return authors


def enrich_with_authors(
    messages: list[Message],
    lookup_user: UserLookup,
    *,
    retry: RetryPolicy | None = None,
    max_workers: int = 1,
) -> list[Message]:
    """Return copies of ``messages`` carrying ``author_info``, same order and length."""
    user_ids = distinct_authors(messages)
    log_event(logger, "users_lookup", count=len(user_ids))
    authors = resolve_authors(user_ids, lookup_user, retry=retry, max_workers=max_workers)

    return [
        dataclasses.replace(msg, author_info=authors[msg.user])
        if msg.user and msg.user in authors
        else msg
        for msg in messages
    ]
