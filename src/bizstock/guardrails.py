"""Constraint checks for externally generated event summaries.

Summaries are produced elsewhere; this module only decides whether one may
be shown: 150-250 characters, facts only, no numbers absent from the source.
"""

from __future__ import annotations

import logging
import re

from bizstock.models import NormalizedEvent, SummaryCheck

logger = logging.getLogger(__name__)

SUMMARY_MIN_LENGTH = 150
SUMMARY_MAX_LENGTH = 250

FORBIDDEN_WORDS: tuple[str, ...] = (
    # advice
    "買い", "売り", "推奨", "おすすめ", "お勧め",
    # price targets
    "目標株価", "予想株価", "株価は", "値上がり", "値下がり",
    # speculation
    "だろう", "でしょう", "かもしれない", "見込み", "予想される", "と思われる", "と考えられる",
)

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?%?")


def check_forbidden_words(text: str) -> list[str]:
    return [word for word in FORBIDDEN_WORDS if word in text]


def check_numeric_consistency(event: NormalizedEvent, summary: str) -> list[str]:
    """List numbers in *summary* that do not appear in the event's title or excerpt."""
    source_numbers = set(_NUMBER_RE.findall(f"{event.title} {event.excerpt or ''}"))
    return [
        f"number {num} not found in source"
        for num in _NUMBER_RE.findall(summary)
        if num not in source_numbers
    ]


def validate_summary(summary: str, event: NormalizedEvent) -> SummaryCheck:
    text = summary.strip()
    warnings: list[str] = []

    if len(text) < SUMMARY_MIN_LENGTH:
        warnings.append(f"summary too short (< {SUMMARY_MIN_LENGTH} chars)")
    elif len(text) > SUMMARY_MAX_LENGTH:
        warnings.append(f"summary too long (> {SUMMARY_MAX_LENGTH} chars)")

    forbidden = check_forbidden_words(text)
    if forbidden:
        warnings.append(f"forbidden words: {', '.join(forbidden)}")
        logger.warning("Rejected summary for %s: %s", event.id, ", ".join(forbidden))

    warnings.extend(check_numeric_consistency(event, text))
    return SummaryCheck(ok=not forbidden, warnings=warnings, forbidden_words=forbidden)
