"""Push-notification text for clusters and digests.

Format: ``🚨 7203 トヨタ｜生産計画を更新 影響:強〔出典:EDINET/PR TIMES〕``, at
most 90 grapheme clusters. The headline is shortened first; a company name
that leaves no room for it is replaced by the ticker.
"""

from __future__ import annotations

from datetime import datetime

import regex

from bizstock.cluster import generate_idempotency_key
from bizstock.models import JST, ClusteredEvent, DigestKind, ImpactLevel, Notification

MAX_NOTIFICATION_LENGTH = 90

_IMPACT_EMOJI: dict[ImpactLevel, str] = {
    ImpactLevel.STRONG: "\U0001f6a8",
    ImpactLevel.MEDIUM: "\u26a0\ufe0f",
    ImpactLevel.WEAK: "\u2139\ufe0f",
}

_IMPACT_LABEL: dict[ImpactLevel, str] = {
    ImpactLevel.STRONG: "強",
    ImpactLevel.MEDIUM: "中",
    ImpactLevel.WEAK: "弱",
}

# Extended grapheme cluster (UAX #29)
_GRAPHEME_RE = regex.compile(r"\X")


def split_graphemes(text: str) -> list[str]:
    """Split *text* into user-perceived characters."""
    return _GRAPHEME_RE.findall(text)


def grapheme_length(text: str) -> int:
    return len(split_graphemes(text))


def truncate_graphemes(text: str, max_length: int) -> str:
    graphemes = split_graphemes(text)
    if len(graphemes) <= max_length:
        return text
    return "".join(graphemes[: max(0, max_length)])


def _prefix(level: ImpactLevel, ticker: str, company: str) -> str:
    return f"{_IMPACT_EMOJI[level]} {ticker} {company}｜"


def format_notification(
    cluster: ClusteredEvent,
    company_name: str | None = None,
    impact: ImpactLevel | None = None,
    version: int = 1,
) -> Notification:
    """Format *cluster* as a push line.

    *impact* overrides the cluster's base impact, e.g. with a personal impact.
    """
    level = impact or cluster.impact
    ticker = cluster.primary_ticker or "????"
    sources = cluster.sources[:2]

    prefix = _prefix(level, ticker, company_name or ticker)
    suffix = f" 影響:{_IMPACT_LABEL[level]}〔出典:{'/'.join(sources)}〕"
    if grapheme_length(prefix) + grapheme_length(suffix) >= MAX_NOTIFICATION_LENGTH:
        prefix = _prefix(level, ticker, ticker)
    available = MAX_NOTIFICATION_LENGTH - grapheme_length(prefix) - grapheme_length(suffix)
    headline = truncate_graphemes(cluster.title, available)

    return Notification(
        # long source names can still overflow; cut the line as a last resort
        message=truncate_graphemes(f"{prefix}{headline}{suffix}", MAX_NOTIFICATION_LENGTH),
        ticker=ticker,
        impact=level,
        idempotency_key=generate_idempotency_key(cluster, version),
        sources=sources,
    )


def format_digest_notification(event_count: int, kind: DigestKind) -> str:
    if kind == DigestKind.MORNING:
        return f"🌅 おはようございます: {event_count}件のイベント"
    label = "昼" if kind == DigestKind.MIDDAY else "引け後"
    return f"📋 {label}のダイジェスト: {event_count}件の新着イベント"


def format_no_activity(as_of: datetime) -> str:
    """Single quiet-day line, with the time shown in JST."""
    return f"本日は保有銘柄の新規開示なし（{as_of.astimezone(JST):%H:%M}時点）"
