"""
Message and author records shared by the pipeline stages.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class AuthorInfo:
    real_name: str = "Unknown"
    display_name: str = "Unknown"
    is_bot: bool = False
    title: str = ""
    email: str = ""

    @classmethod
    def from_slack_user(cls, user: dict[str, Any]) -> AuthorInfo:
        profile = user.get("profile") or {}
        return cls(
            real_name=user.get("real_name") or "Unknown",
            display_name=profile.get("display_name") or "Unknown",
            is_bot=bool(user.get("is_bot")),
            title=profile.get("title") or "",
            email=profile.get("email") or "",
        )


# Used when a profile lookup fails.
UNKNOWN_AUTHOR = AuthorInfo()


@dataclass
class Message:
    ts: str
    thread_ts: str | None = None
    text: str | None = None
    user: str | None = None
    reply_count: int = 0

    is_reply: bool = False
    parent_ts: str | None = None

    # Set only on a thread root that received at least one reply
    has_resolution: bool = False
    resolution_time_minutes: int | None = None
    first_ts: str | None = None
    resolution_ts: str | None = None
    reply_count_actual: int | None = None
    first_time_formatted: str | None = None
    resolution_time_formatted: str | None = None

    author_info: AuthorInfo | None = None

    @classmethod
    def from_slack(cls, data: dict[str, Any]) -> Message:
        try:
            reply_count = int(data.get("reply_count") or 0)
        except (TypeError, ValueError):
            reply_count = 0
        return cls(
            ts=str(data["ts"]),
            thread_ts=data.get("thread_ts") or None,
            text=data.get("text"),
            user=data.get("user") or None,
            reply_count=reply_count,
        )

    @property
    def ts_float(self) -> float:
        return float(self.ts)

    @property
    def sort_key(self) -> tuple[float, str]:
        return (self.ts_float, self.ts)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def author_name(msg: Message) -> str:
    return (msg.author_info.real_name if msg.author_info else "") or "Unknown User"
