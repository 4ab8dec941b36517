"""
Transcript rendering and timestamp helpers.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from .models import Message, author_name

REPLY_INDENT = "    "
THREAD_SEPARATOR = "---"


def get_tz(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def format_timestamp(ts: str | float, tz_name: str | None = "UTC") -> str:
    """Slack ``ts`` (epoch seconds) -> ``YYYY-MM-DD HH:MM:SS`` in ``tz_name``."""
    dt = datetime.fromtimestamp(float(ts), tz=get_tz(tz_name))
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def elapsed_minutes(start_ts: str, end_ts: str) -> int:
    # Half-up rounding: 30s counts as one minute
    return int(math.floor((float(end_ts) - float(start_ts)) / 60 + 0.5))


def _thread_info(msg: Message) -> str:
    return (
        f"\n{REPLY_INDENT}[THREAD INFO] Started: {msg.first_time_formatted}"
        f" | Resolved: {msg.resolution_time_formatted}"
        f" | Resolution Time: {msg.resolution_time_minutes} minutes"
        f" | Replies: {msg.reply_count_actual}"
    )


def _line(msg: Message, tz_name: str | None) -> str:
    return f"[{format_timestamp(msg.ts, tz_name)}] {author_name(msg)}: {msg.text or ''}"


def format_messages(messages: Iterable[Message], tz_name: str | None = "UTC") -> str:
    """Render enriched messages as the transcript handed to the LLM.

    Top-level messages come in timestamp order. A thread root is followed by
    its resolution summary, its replies (indented, timestamp order) and a
    ``---`` separator. Replies whose root is not in the collection are left out.
    """
    threads: dict[str, list[Message]] = {}
    standalone: list[Message] = []

    for msg in messages:
        if msg.thread_ts and msg.thread_ts != msg.ts:
            threads.setdefault(msg.thread_ts, []).append(msg)
        elif not msg.is_reply:
            standalone.append(msg)

    standalone.sort(key=lambda m: m.sort_key)
    for replies in threads.values():
        replies.sort(key=lambda m: m.sort_key)

    parts: list[str] = []
    for msg in standalone:
        info = _thread_info(msg) if msg.has_resolution else ""
        parts.append(f"{_line(msg, tz_name)}{info}\n\n")

        replies = threads.get(msg.ts)
        if replies:
            for reply in replies:
                parts.append(f"{REPLY_INDENT}↳ {_line(reply, tz_name)}\n\n")
            parts.append(f"{THREAD_SEPARATOR}\n\n")

    return "".join(parts)
