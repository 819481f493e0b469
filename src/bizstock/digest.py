"""Scheduled digests (08:30 morning, 12:15 midday, 15:45 closing) and their Markdown."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from bizstock.models import Digest, DigestKind, PersonalizedEvent, UserProfile
from bizstock.notify import format_no_activity
from bizstock.personalize import is_unread
from bizstock.rank import MORNING_DIGEST_RANKING, rank_events

logger = logging.getLogger(__name__)

_MORNING_LOOKBACK = timedelta(hours=24)

_TITLES: dict[DigestKind, str] = {
    DigestKind.MORNING: "今日の市場見通しと保有銘柄の動き",
    DigestKind.MIDDAY: "昼のダイジェスト",
    DigestKind.CLOSING: "引け後のダイジェスト",
}


def _group_by_watchlist(
    events: list[PersonalizedEvent],
    watchlist: list[str],
) -> dict[str, list[PersonalizedEvent]]:
    """Watched ticker → events, in watchlist order, empty tickers dropped.

    An event mentioning several watched tickers is listed under each.
    """
    grouped: dict[str, list[PersonalizedEvent]] = {ticker: [] for ticker in watchlist}
    for event in events:
        for ticker in event.all_tickers:
            if ticker in grouped:
                grouped[ticker].append(event)
    return {ticker: items for ticker, items in grouped.items() if items}


def build_digest(
    kind: DigestKind,
    events: list[PersonalizedEvent],
    profile: UserProfile,
    reference_time: datetime,
) -> Digest:
    """Assemble a digest from already personalized events.

    Morning covers the 24 hours before *reference_time*; midday and closing
    cover whatever has not been read yet.
    """
    if kind == DigestKind.MORNING:
        since = reference_time - _MORNING_LOOKBACK
        selected = [e for e in events if since <= e.published_at <= reference_time]
    else:
        selected = [e for e in events if is_unread(e, profile)]

    ranked = rank_events(selected, MORNING_DIGEST_RANKING, reference_time=reference_time)
    digest = Digest(
        kind=kind,
        title=_TITLES[kind],
        events_by_ticker=_group_by_watchlist(ranked, profile.watchlist),
        total_events=len(ranked),
        generated_at=reference_time,
    )
    logger.info(
        "Built %s digest for %s: %d events across %d tickers",
        kind,
        profile.user_id,
        digest.total_events,
        len(digest.events_by_ticker),
    )
    return digest


def render_digest_markdown(digest: Digest) -> str:
    lines = [f"# {digest.title}", ""]
    if not digest.events_by_ticker:
        lines.append(format_no_activity(digest.generated_at))
        return "\n".join(lines) + "\n"

    for ticker, events in digest.events_by_ticker.items():
        lines.append(f"## {ticker}")
        lines.append("")
        for event in events:
            sources = "/".join(event.sources)
            lines.append(
                f"- **{event.title}** ({event.personal_impact}, {event.relevance_score}pt) "
                f"〔出典:{sources}〕"
            )
            lines.append(f"  - _{event.score_reason}_")
        lines.append("")

    lines.append(f"---\n_{digest.total_events} events as of {digest.generated_at:%Y-%m-%d %H:%M %Z}_")
    return "\n".join(lines) + "\n"
