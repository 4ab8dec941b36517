"""
Configuration helpers and defaults.

Centralize tunables to avoid magic numbers in code/tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from .formatting import get_tz

BEDROCK_DEFAULT_MODEL = "anthropic.claude-3-haiku-20240307-v1:0"
OPENAI_DEFAULT_MODEL = "deepseek-chat"


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None else default


@dataclass(frozen=True)
class Settings:
    slack_bot_token: str | None
    slack_channel_id: str | None
    slack_start_date: str | None
    slack_end_date: str | None
    report_timezone: str
    history_page_size: int
    replies_page_size: int
    slack_max_retries: int
    slack_retry_delay_seconds: float
    max_workers: int
    llm_provider: str
    llm_model: str
    llm_base_url: str | None
    llm_api_key: str | None
    llm_max_output_tokens: int
    llm_max_input_chars: int
    llm_max_retries: int
    llm_retry_delay_seconds: float
    output_dir: str
    artifact_bucket: str | None
    artifact_prefix: str


def load_settings() -> Settings:
    """Load settings from environment with safe defaults for local tests."""

    provider = (_env("LLM_PROVIDER", "openai") or "openai").lower()
    default_model = BEDROCK_DEFAULT_MODEL if provider == "bedrock" else OPENAI_DEFAULT_MODEL

    return Settings(
        slack_bot_token=_env("SLACK_BOT_TOKEN"),
        slack_channel_id=_env("SLACK_CHANNEL_ID"),
        slack_start_date=_env("SLACK_START_DATE") or None,
        slack_end_date=_env("SLACK_END_DATE") or None,
        report_timezone=_env("REPORT_TIMEZONE", "UTC") or "UTC",
        history_page_size=int(_env("HISTORY_PAGE_SIZE", "100") or 100),
        replies_page_size=int(_env("REPLIES_PAGE_SIZE", "1000") or 1000),
        slack_max_retries=int(_env("SLACK_MAX_RETRIES", "3") or 3),
        slack_retry_delay_seconds=float(_env("SLACK_RETRY_DELAY_SECONDS", "1.0") or 1.0),
        max_workers=max(1, int(_env("MAX_WORKERS", "1") or 1)),
        llm_provider=provider,
        llm_model=_env("LLM_MODEL", default_model) or default_model,
        llm_base_url=_env("LLM_BASE_URL", "https://api.deepseek.com/v1") or None,
        llm_api_key=_env("LLM_API_KEY") or _env("DEEPSEEK_API_KEY"),
        llm_max_output_tokens=int(_env("LLM_MAX_OUTPUT_TOKENS", "8192") or 8192),
        llm_max_input_chars=int(_env("LLM_MAX_INPUT_CHARS", "400000") or 400000),
        llm_max_retries=int(_env("LLM_MAX_RETRIES", "3") or 3),
        llm_retry_delay_seconds=float(_env("LLM_RETRY_DELAY_SECONDS", "2.0") or 2.0),
        output_dir=_env("OUTPUT_DIR") or os.path.join(os.getcwd(), "results"),
        artifact_bucket=_env("ARTIFACT_BUCKET") or None,
        artifact_prefix=(_env("ARTIFACT_PREFIX", "") or "").strip("/"),
    )


def missing_settings(settings: Settings, analyze: bool = True) -> list[str]:
    missing: list[str] = []
    if not settings.slack_bot_token:
        missing.append("SLACK_BOT_TOKEN")
    if not settings.slack_channel_id:
        missing.append("SLACK_CHANNEL_ID")
    if analyze and settings.llm_provider == "openai" and not settings.llm_api_key:
        missing.append("LLM_API_KEY")
    return missing


def resolve_date_range(settings: Settings, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return the half-open window (start, end) to fetch, timezone-aware.

    Explicit SLACK_START_DATE/SLACK_END_DATE win (the end day is included in
    full). With only a start date the window runs through today; with only
    an end date it starts on the first day of that month. Without either,
    the previous calendar month: first day 00:00 up to the first day of the
    current month.
    """
    tz = get_tz(settings.report_timezone)
    now = now.astimezone(tz) if now else datetime.now(tz)

    if settings.slack_start_date or settings.slack_end_date:
        if settings.slack_end_date:
            last_day = date.fromisoformat(settings.slack_end_date)
        else:
            last_day = now.date()
        if settings.slack_start_date:
            start_day = date.fromisoformat(settings.slack_start_date)
        else:
            start_day = last_day.replace(day=1)
        end_day = last_day + timedelta(days=1)
        start = datetime(start_day.year, start_day.month, start_day.day, tzinfo=tz)
        end = datetime(end_day.year, end_day.month, end_day.day, tzinfo=tz)
        if end <= start:
            raise ValueError(
                f"end date {last_day.isoformat()} is before start date {start_day.isoformat()}"
            )
        return start, end

    end = datetime(now.year, now.month, 1, tzinfo=tz)
    prev = end - timedelta(days=1)
    start = datetime(prev.year, prev.month, 1, tzinfo=tz)
    return start, end


def to_slack_ts(dt: datetime) -> str:
    return f"{dt.timestamp():.6f}"


def slack_bounds(start: datetime, end: datetime) -> tuple[str, str]:
    """`oldest`/`latest` for an inclusive history query over [start, end)."""
    # Slack ts has microsecond precision; the last microsecond before `end`
    # keeps the upper bound exclusive.
    return to_slack_ts(start), to_slack_ts(end - timedelta(microseconds=1))
