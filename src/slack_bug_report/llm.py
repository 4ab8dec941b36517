"""
LLM wrapper for the bug-report analysis.

Providers:
- openai:  OpenAI-compatible chat completions (DeepSeek by default).
- bedrock: Anthropic Messages API on Bedrock (anthropic_version=bedrock-2023-05-31).
"""

from __future__ import annotations

import importlib
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from .config import Settings
from .logs import log_event
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# HTTP statuses that mean the request itself is wrong
PERMANENT_STATUSES = frozenset({400, 401, 403, 404, 422})

ANALYSIS_PROMPT = """Anda adalah seorang analis bug profesional. Tugas Anda adalah membaca dan menganalisis pesan-pesan dari channel bug report Slack (yang akan diberikan dalam beberapa bagian). Gabungkan seluruh informasi dari semua bagian untuk menghasilkan satu laporan akhir yang komprehensif, terstruktur, dan mudah dipahami dalam format markdown.

Laporan akhir harus memuat:

1. **Ringkasan Eksekutif**
   Sajikan highlight temuan utama, statistik penting, dan insight paling menonjol dari seluruh laporan.

2. **Daftar & Analisis Bug**
   - Rincikan semua bug yang dilaporkan: siapa pelapor, waktu, status penyelesaian.
   - Identifikasi bug yang paling sering muncul dan paling berdampak.
   - Kelompokkan bug berdasarkan kategori (UI, backend, database, API, keamanan, performa, dll).

3. **Statistik Pelapor**
   - Urutkan pelapor bug terbanyak (top 5), jumlah dan jenis bug yang mereka laporkan.
   - Evaluasi kualitas laporan dari masing-masing pelapor (apakah detail atau tidak).

4. **Statistik Command & Solusi**
   - Daftar command/perintah yang digunakan untuk memperbaiki bug, seberapa sering digunakan, dan efektivitasnya.
   - Siapa yang paling sering memberikan solusi.

5. **Waktu Penyelesaian**
   - Hitung rata-rata waktu penyelesaian bug (dalam menit).
   - Sebutkan bug yang paling cepat dan paling lama diselesaikan, serta faktor yang mempengaruhi kecepatan penyelesaian.
   - Siapa yang paling cepat dalam menyelesaikan bug.

6. **Tren & Pola**
   - Temukan pola kemunculan bug (misal: hari/waktu tertentu, setelah deployment, dsb).
   - Area yang perlu perhatian atau pengujian lebih lanjut.
   - Analisis tren bug yang meningkat atau menurun, serta korelasi antar bug.

7. **Rekomendasi**
   - Berikan saran untuk meningkatkan proses pelaporan dan penyelesaian bug.
   - Rekomendasikan langkah pencegahan agar bug serupa tidak terulang.

**Catatan Penting:** Abaikan pesan "No purchase data found" karena itu bukan bug dan tidak perlu dianalisis.

Format laporan harus rapi, profesional, dan mudah dibaca. Gunakan tabel, bullet, dan deskripsi visualisasi jika relevan. Pastikan membaca seluruh bagian pesan sebelum menyusun laporan akhir."""


def _boto3():
    # Allow tests to monkeypatch module-level `boto3` symbol.
    return globals().get("boto3") or importlib.import_module("boto3")


def _openai():
    # Same for `openai`.
    return globals().get("openai") or importlib.import_module("openai")


# ----- Request building -----


def split_transcript(transcript: str, max_chars: int) -> list[str]:
    """Pack blank-line separated blocks into segments of at most ``max_chars``.

    Joining the segments gives back the transcript unchanged. A block longer
    than ``max_chars`` is cut into fixed-size slices.
    """
    if max_chars <= 0 or len(transcript) <= max_chars:
        return [transcript]

    pieces = [p + "\n\n" for p in transcript.split("\n\n")]
    pieces[-1] = pieces[-1][:-2]

    segments: list[str] = []
    current = ""
    for piece in pieces:
        if not piece:
            continue
        while len(piece) > max_chars:
            if current:
                segments.append(current)
                current = ""
            segments.append(piece[:max_chars])
            piece = piece[max_chars:]
        if len(current) + len(piece) > max_chars:
            segments.append(current)
            current = ""
        current += piece
    if current:
        segments.append(current)
    return segments


def build_conversation(
    transcript: str, instructions: str = ANALYSIS_PROMPT, max_chars: int = 0
) -> list[dict[str, str]]:
    segments = split_transcript(transcript, max_chars)
    conversation = [{"role": "system", "content": instructions}]
    for i, segment in enumerate(segments, start=1):
        conversation.append(
            {"role": "user", "content": f"Bagian {i} dari {len(segments)}:\n\n{segment}"}
        )
    return conversation


# ----- Providers -----


def _invoke_openai(settings: Settings, conversation: list[dict[str, str]]) -> str:
    kwargs: dict[str, Any] = {"api_key": settings.llm_api_key}
    if settings.llm_base_url:
        kwargs["base_url"] = settings.llm_base_url
    client = _openai().OpenAI(**kwargs)
    resp = client.chat.completions.create(
        model=settings.llm_model,
        messages=conversation,
        temperature=0,
        max_tokens=settings.llm_max_output_tokens,
    )
    return resp.choices[0].message.content or ""


def _invoke_bedrock(settings: Settings, conversation: list[dict[str, str]]) -> str:
    system = "\n\n".join(m["content"] for m in conversation if m["role"] == "system")
    # Messages API requires alternating roles: one user turn, one block per segment
    blocks = [{"type": "text", "text": m["content"]} for m in conversation if m["role"] == "user"]
    body: dict[str, Any] = {
        "anthropic_version": "bedrock-2023-05-31",
        "max_tokens": settings.llm_max_output_tokens,
        "temperature": 0,
        "messages": [{"role": "user", "content": blocks}],
    }
    if system:
        body["system"] = system
    client = _boto3().client("bedrock-runtime")
    resp = client.invoke_model(
        modelId=settings.llm_model,
        body=json.dumps(body),
        accept="application/json",
        contentType="application/json",
    )
    data = json.loads(resp["body"].read())
    return "".join(c.get("text", "") for c in data.get("content") or [] if isinstance(c, dict))


def complete(settings: Settings, conversation: list[dict[str, str]]) -> str:
    if settings.llm_provider == "openai":
        return _invoke_openai(settings, conversation)
    if settings.llm_provider == "bedrock":
        return _invoke_bedrock(settings, conversation)
    raise ValueError(f"unknown LLM_PROVIDER: {settings.llm_provider}")


def is_retryable_llm_error(exc: BaseException) -> bool:
    if isinstance(exc, ValueError):
        return False
    status = getattr(exc, "status_code", None)
    if status is None:
        # botocore ClientError
        response = getattr(exc, "response", None)
        if isinstance(response, dict):
            status = (response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
    return status not in PERMANENT_STATUSES


def default_retry(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.llm_max_retries,
        initial_delay=settings.llm_retry_delay_seconds,
        retry_if=is_retryable_llm_error,
    )


# ----- Public API -----


def submit_conversation(
    conversation: list[dict[str, str]],
    settings: Settings,
    *,
    retry: RetryPolicy | None = None,
) -> str:
    """Run the request with retries; on final failure return an error text."""
    policy = retry or default_retry(settings)
    try:
        t0 = time.time()
        out = policy.call(lambda: complete(settings, conversation))
        log_event(
            logger,
            "llm_ok",
            provider=settings.llm_provider,
            model=settings.llm_model,
            segments=sum(1 for m in conversation if m["role"] == "user"),
            prompt_chars=sum(len(m["content"]) for m in conversation),
            out_chars=len(out),
            ms=int((time.time() - t0) * 1000),
        )
        return out
    except Exception as e:
        logger.exception("LLM failed after retries: %s", e)
        log_event(logger, "llm_failed", logging.ERROR, error=str(e))
        return f"Error analyzing messages: {str(e) or 'Unknown error occurred'}"


def analyze_messages(
    transcript: str,
    settings: Settings,
    instructions: str = ANALYSIS_PROMPT,
    *,
    retry: RetryPolicy | None = None,
    on_conversation: Callable[[list[dict[str, str]]], None] | None = None,
) -> str:
    """Build the segmented request and submit it.

    `on_conversation` sees the request before it is sent (used to persist it).
    """
    conversation = build_conversation(transcript, instructions, settings.llm_max_input_chars)
    if on_conversation:
        on_conversation(conversation)
    return submit_conversation(conversation, settings, retry=retry)
