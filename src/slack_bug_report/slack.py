"""
Minimal Slack Web API adapter (history, replies, users) over slack_sdk.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from .models import AuthorInfo, Message
from .pagination import Page

# Slack error codes that no amount of retrying will fix
PERMANENT_ERRORS = frozenset(
    {
        "invalid_auth",
        "not_authed",
        "account_inactive",
        "token_revoked",
        "channel_not_found",
        "not_in_channel",
        "missing_scope",
        "user_not_found",
    }
)


def is_retryable_slack_error(exc: BaseException) -> bool:
    if isinstance(exc, SlackApiError):
        error = exc.response.get("error") if exc.response is not None else None
        return error not in PERMANENT_ERRORS
    return True


def _to_page(response: Any) -> Page:
    raw = response.get("messages") or []
    items = [Message.from_slack(m) for m in raw if isinstance(m, dict) and m.get("ts")]
    cursor = (response.get("response_metadata") or {}).get("next_cursor") or None
    return Page(items, cursor)


class SlackClient:
    def __init__(
        self,
        token: str,
        channel_id: str,
        history_page_size: int = 100,
        replies_page_size: int = 1000,
        web_client: Any | None = None,
    ) -> None:
        self.channel_id = channel_id
        self.history_page_size = history_page_size
        self.replies_page_size = replies_page_size
        self.web = web_client if web_client is not None else WebClient(token=token)

    # ----- Page sources -----
    def history_source(self, oldest: str, latest: str) -> Callable[[str | None], Page]:
        def fetch_page(cursor: str | None) -> Page:
            params: dict[str, Any] = {
                "channel": self.channel_id,
                "oldest": oldest,
                "latest": latest,
                "limit": self.history_page_size,
                "inclusive": True,
            }
            if cursor:
                params["cursor"] = cursor
            return _to_page(self.web.conversations_history(**params))

        return fetch_page

    def replies_source(self) -> Callable[[str, str | None], Page]:
        def fetch_page(thread_ts: str, cursor: str | None) -> Page:
            params: dict[str, Any] = {
                "channel": self.channel_id,
                "ts": thread_ts,
                "limit": self.replies_page_size,
            }
            if cursor:
                params["cursor"] = cursor
            return _to_page(self.web.conversations_replies(**params))

        return fetch_page

    # ----- Users -----
    def lookup_user(self, user_id: str) -> AuthorInfo | None:
        response = self.web.users_info(user=user_id)
        user = response.get("user")
        if not user:
            return None
        return AuthorInfo.from_slack_user(user)
