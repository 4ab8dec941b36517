"""
Pipeline entry points: CLI (`slack-bug-report`) and scheduled AWS Lambda.

history -> threads -> authors -> transcript -> artifacts -> LLM report
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import time
from datetime import date
from typing import Any

from . import llm
from .artifacts import save_artifact
from .config import Settings, load_settings, missing_settings, resolve_date_range, slack_bounds
from .formatting import format_messages
from .logs import configure_logging, log_event
from .models import Message
from .pagination import fetch_all_pages
from .retry import RetryPolicy
from .slack import SlackClient, is_retryable_slack_error
from .threads import reconstruct_threads
from .users import enrich_with_authors

logger = logging.getLogger(__name__)


def _response(status: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, ensure_ascii=False),
    }


def _slack_retry(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.slack_max_retries,
        initial_delay=settings.slack_retry_delay_seconds,
        retry_if=is_retryable_slack_error,
    )


def collect_messages(
    slack: SlackClient, settings: Settings, retry: RetryPolicy | None = None
) -> list[Message]:
    """Fetch history for the configured window, then replies and authors.

    History failures propagate; thread and user failures are absorbed.
    """
    retry = retry or _slack_retry(settings)
    start, end = resolve_date_range(settings)
    oldest, latest = slack_bounds(start, end)
    log_event(
        logger,
        "history_fetch",
        channel=settings.slack_channel_id,
        start=start.isoformat(),
        end=end.isoformat(),
        oldest=oldest,
        latest=latest,
    )

    top_level = fetch_all_pages(
        slack.history_source(oldest, latest),
        retry=retry,
        on_page=lambda page_no, total: log_event(
            logger, "history_page", page=page_no, messages=total
        ),
    )
    log_event(logger, "history_fetch_ok", messages=len(top_level))

    merged = reconstruct_threads(
        top_level,
        slack.replies_source(),
        retry=retry,
        max_workers=settings.max_workers,
        tz_name=settings.report_timezone,
    )
    return enrich_with_authors(merged, slack.lookup_user, max_workers=settings.max_workers)


def run(
    settings: Settings,
    analyze: bool = True,
    slack: SlackClient | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    start_ts = time.time()
    missing = missing_settings(settings, analyze)
    if missing:
        log_event(logger, "config_error_missing", logging.ERROR, missing=missing)
        return {"result": "error", "error": f"missing configuration: {', '.join(missing)}"}

    slack = slack or SlackClient(
        settings.slack_bot_token or "",
        settings.slack_channel_id or "",
        history_page_size=settings.history_page_size,
        replies_page_size=settings.replies_page_size,
    )

    try:
        messages = collect_messages(slack, settings)
    except Exception as e:
        logger.exception("Slack fetch failed")
        log_event(logger, "slack_fetch_error", logging.ERROR, error=str(e))
        return {"result": "error", "error": f"slack fetch failed: {e}"}

    if not messages:
        log_event(logger, "no_messages", channel=settings.slack_channel_id)
        return {"result": "no_messages", "messages": 0}

    transcript = format_messages(messages, settings.report_timezone)
    date_str = (today or date.today()).isoformat()
    artifacts = [
        save_artifact(settings, "raw-messages", f"raw-slack-messages-{date_str}.txt", transcript),
        save_artifact(
            settings,
            "raw-messages",
            f"slack-messages-{date_str}.json",
            json.dumps([m.to_dict() for m in messages], ensure_ascii=False, indent=2),
        ),
    ]
    log_event(logger, "transcript_saved", messages=len(messages), location=artifacts[0])

    if not analyze:
        log_event(logger, "analysis_skipped")
        return {"result": "ok", "messages": len(messages), "artifacts": artifacts}

    def save_batches(conversation: list[dict[str, str]]) -> None:
        nonlocal segments
        segments = len(conversation) - 1
        artifacts.append(
            save_artifact(
                settings,
                "conversation-batches",
                f"conversation-batches-{date_str}.json",
                json.dumps(conversation, ensure_ascii=False, indent=2),
            )
        )

    segments = 0
    report = llm.analyze_messages(transcript, settings, on_conversation=save_batches)
    artifacts.append(
        save_artifact(settings, "final-reports", f"final_report-{date_str}.md", report)
    )

    log_event(
        logger,
        "ok",
        messages=len(messages),
        segments=segments,
        ms_total=int((time.time() - start_ts) * 1000),
    )
    return {"result": "ok", "messages": len(messages), "artifacts": artifacts}


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="slack-bug-report",
        description="Fetch a Slack bug channel and generate an LLM bug analysis report.",
    )
    parser.add_argument(
        "--no-analysis",
        "-na",
        dest="analyze",
        action="store_false",
        help="Skip AI analysis, just fetch messages",
    )
    parser.add_argument("--start-date", help="YYYY-MM-DD (overrides SLACK_START_DATE)")
    parser.add_argument("--end-date", help="YYYY-MM-DD (overrides SLACK_END_DATE)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging()
    settings = load_settings()
    if args.start_date or args.end_date:
        settings = dataclasses.replace(
            settings,
            slack_start_date=args.start_date or settings.slack_start_date,
            slack_end_date=args.end_date or settings.slack_end_date,
        )
    try:
        result = run(settings, analyze=args.analyze)
    except Exception:
        logger.exception("Unhandled error")
        return 1
    print(json.dumps(result, ensure_ascii=False))
    return 1 if result.get("result") == "error" else 0


def lambda_handler(event: dict[str, Any] | None, context: Any) -> dict[str, Any]:
    configure_logging()
    event = event or {}
    settings = load_settings()
    if event.get("start_date") or event.get("end_date"):
        settings = dataclasses.replace(
            settings,
            slack_start_date=event.get("start_date") or settings.slack_start_date,
            slack_end_date=event.get("end_date") or settings.slack_end_date,
        )
    log_event(logger, "invoked", rid=getattr(context, "aws_request_id", None))
    result = run(settings, analyze=_flag(event.get("analyze"), True))
    return _response(500 if result.get("result") == "error" else 200, result)
