"""
Persist run artifacts (transcript, merged messages, LLM request, report).

Writes to OUTPUT_DIR, or to S3 when ARTIFACT_BUCKET is configured.
"""

from __future__ import annotations

import importlib
from pathlib import Path

from .config import Settings


def _boto3():
    # Allow tests to monkeypatch module-level `boto3` symbol.
    return globals().get("boto3") or importlib.import_module("boto3")


def save_artifact(settings: Settings, subdir: str, filename: str, body: str) -> str:
    """Store ``body`` as ``<subdir>/<filename>`` and return its location."""
    if settings.artifact_bucket:
        key = "/".join(p for p in (settings.artifact_prefix, subdir, filename) if p)
        s3 = _boto3().client("s3")
        s3.put_object(
            Bucket=settings.artifact_bucket,
            Key=key,
            Body=body.encode("utf-8"),
            ContentType=_content_type(filename),
        )
        return f"s3://{settings.artifact_bucket}/{key}"

    directory = Path(settings.output_dir) / subdir
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(body, encoding="utf-8")
    return str(path)


def _content_type(filename: str) -> str:
    if filename.endswith(".json"):
        return "application/json"
    if filename.endswith(".md"):
        return "text/markdown; charset=utf-8"
    return "text/plain; charset=utf-8"
