"""
Thread reconstruction: pull every reply of every threaded message, merge
them into the message collection and stamp resolution timing on the root.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

from .formatting import elapsed_minutes, format_timestamp
from .logs import log_event
from .models import Message
from .pagination import Page, fetch_all_pages
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ReplySource = Callable[[str, str | None], Page]

PROGRESS_EVERY = 10


def _has_thread(msg: Message) -> bool:
    return bool(msg.thread_ts) and msg.reply_count > 0


def fetch_thread_replies(
    thread_ts: str, fetch_replies: ReplySource, retry: RetryPolicy | None = None
) -> list[Message]:
    """All replies of one thread, without the root the API echoes back."""

    def page(cursor: str | None) -> Page:
        p = fetch_replies(thread_ts, cursor)
        items = list(p.items)
        if items and items[0].ts == thread_ts:
            items = items[1:]
        return Page(items, p.next_cursor)

    return fetch_all_pages(page, retry=retry)


def apply_resolution(parent: Message, replies: list[Message], tz_name: str | None = "UTC") -> None:
    ordered = sorted(replies, key=lambda m: m.sort_key)
    first_ts = parent.ts
    last_ts = ordered[-1].ts

    parent.has_resolution = True
    parent.resolution_time_minutes = elapsed_minutes(first_ts, last_ts)
    parent.first_ts = first_ts
    parent.resolution_ts = last_ts
    parent.reply_count_actual = len(replies)
    parent.first_time_formatted = format_timestamp(first_ts, tz_name)
    parent.resolution_time_formatted = format_timestamp(last_ts, tz_name)


def reconstruct_threads(
    messages: Iterable[Message],
    fetch_replies: ReplySource,
    *,
    retry: RetryPolicy | None = None,
    max_workers: int = 1,
    tz_name: str | None = "UTC",
) -> list[Message]:
    """Return top-level messages plus every fetched reply, keyed by ``ts``.

    A thread whose replies cannot be fetched is logged and skipped; it adds
    no replies and its root gets no resolution data.
    """
    arena: dict[str, Message] = {}
    for msg in messages:
        arena.setdefault(msg.ts, msg)

    threaded = [m for m in arena.values() if _has_thread(m)]
    log_event(logger, "threads_found", count=len(threaded))

    def fetch(msg: Message) -> list[Message] | None:
        thread_ts = msg.thread_ts or ""
        try:
            return fetch_thread_replies(thread_ts, fetch_replies, retry)
        except Exception as e:
            logger.warning("Replies fetch failed for thread %s", thread_ts, exc_info=True)
            log_event(
                logger, "thread_fetch_error", logging.WARNING, thread_ts=thread_ts, error=str(e)
            )
            return None

    if max_workers > 1 and len(threaded) > 1:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(threaded))) as executor:
            results = list(executor.map(fetch, threaded))
    else:
        results = [fetch(m) for m in threaded]

    processed = 0
    for msg, replies in zip(threaded, results):
        processed += 1
        if processed % PROGRESS_EVERY == 0:
            log_event(logger, "threads_progress", done=processed, total=len(threaded))
        if not replies:
            continue

        thread_ts = msg.thread_ts or ""
        for reply in replies:
            reply.is_reply = True
            reply.parent_ts = thread_ts
            arena[reply.ts] = reply

        parent = arena.get(thread_ts)
        if parent is None:
            log_event(logger, "thread_root_missing", logging.WARNING, thread_ts=thread_ts)
            continue
        apply_resolution(parent, replies, tz_name)

    log_event(logger, "threads_merged", total_messages=len(arena))
    return list(arena.values())
