"""
Slack bug-report analyzer (batch, one channel per run)

Where: CLI / scheduled Lambda, reading one Slack channel over a date range.
What:  Fetch history + thread replies, attach reporter identity, measure
       thread resolution time, render a transcript, ask an LLM for a report.
Why:   Monthly bug-channel review without reading every thread by hand.
"""

__all__ = [
    "artifacts",
    "config",
    "formatting",
    "handler",
    "llm",
    "logs",
    "models",
    "pagination",
    "retry",
    "slack",
    "threads",
    "users",
]
