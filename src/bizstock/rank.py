"""Weighted ranking of personalized events.

The reference time is always passed in; nothing here reads the clock.
"""

from __future__ import annotations

import heapq
import logging
from datetime import datetime
from typing import Any

from bizstock.models import IMPACT_SCORE, ImpactLevel, PersonalizedEvent, RankingConfig

logger = logging.getLogger(__name__)

# ── Presets ────────────────────────────────────────────────────────────────
DEFAULT_RANKING_CONFIG = RankingConfig(
    relevance_weight=0.5,
    recency_weight=0.3,
    impact_weight=0.2,
    multi_source_boost=1.15,
)


def create_ranking_config(**overrides: Any) -> RankingConfig:
    """Return the default config with *overrides* applied."""
    return RankingConfig(**{**DEFAULT_RANKING_CONFIG.model_dump(), **overrides})


# Summary read once a day: who it concerns matters more than how fresh it is.
MORNING_DIGEST_RANKING = create_ranking_config(
    relevance_weight=0.6, recency_weight=0.2, impact_weight=0.2
)
LIVE_FEED_RANKING = create_ranking_config(
    relevance_weight=0.3, recency_weight=0.5, impact_weight=0.2
)
# Alert-only contexts
IMPACT_FIRST_RANKING = create_ranking_config(
    relevance_weight=0.3, recency_weight=0.2, impact_weight=0.5, multi_source_boost=1.3
)

RANKING_PRESETS: dict[str, RankingConfig] = {
    "default": DEFAULT_RANKING_CONFIG,
    "morning_digest": MORNING_DIGEST_RANKING,
    "live_feed": LIVE_FEED_RANKING,
    "impact_first": IMPACT_FIRST_RANKING,
}

# (upper bound in hours, score); a deliberate staircase, not linear decay
_RECENCY_STEPS: list[tuple[float, int]] = [
    (1, 100),
    (6, 90),
    (24, 70),
    (48, 40),
    (168, 20),
]


def calculate_recency_score(published_at: datetime, reference_time: datetime) -> int:
    age_hours = (reference_time - published_at).total_seconds() / 3600
    if age_hours < 0:  # clock skew between feeds
        return 100
    for limit, value in _RECENCY_STEPS:
        if age_hours < limit:
            return value
    return 0


def calculate_ranking_score(
    event: PersonalizedEvent,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    *,
    reference_time: datetime,
) -> float:
    recency = calculate_recency_score(event.published_at, reference_time)
    composite = (
        event.relevance_score * config.relevance_weight
        + recency * config.recency_weight
        + IMPACT_SCORE[event.personal_impact] * config.impact_weight
    )
    if len(event.sources) >= 2:
        composite *= config.multi_source_boost
    return min(100.0, max(0.0, composite))


def rank_events(
    events: list[PersonalizedEvent],
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    *,
    reference_time: datetime,
) -> list[PersonalizedEvent]:
    """Sort descending by composite score. Equal scores keep input order."""
    ranked = sorted(
        events,
        key=lambda e: calculate_ranking_score(e, config, reference_time=reference_time),
        reverse=True,
    )
    logger.debug("Ranked %d events", len(ranked))
    return ranked


def rank_events_with_tier_priority(
    events: list[PersonalizedEvent],
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    *,
    reference_time: datetime,
) -> list[PersonalizedEvent]:
    """Rank base-impact ``strong`` events ahead of everything else."""
    strong = [e for e in events if e.impact == ImpactLevel.STRONG]
    rest = [e for e in events if e.impact != ImpactLevel.STRONG]
    return [
        *rank_events(strong, config, reference_time=reference_time),
        *rank_events(rest, config, reference_time=reference_time),
    ]


def group_and_rank_by_ticker(
    events: list[PersonalizedEvent],
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    *,
    reference_time: datetime,
) -> dict[str, list[PersonalizedEvent]]:
    """Primary ticker → ranked events, tickers in order of first appearance."""
    grouped: dict[str, list[PersonalizedEvent]] = {}
    for event in events:
        grouped.setdefault(event.primary_ticker, []).append(event)
    return {
        ticker: rank_events(items, config, reference_time=reference_time)
        for ticker, items in grouped.items()
    }


def get_top_events(
    events: list[PersonalizedEvent],
    limit: int,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    *,
    reference_time: datetime,
) -> list[PersonalizedEvent]:
    """Same result as ``rank_events(...)[:limit]`` without a full sort."""
    if limit <= 0:
        return []
    return heapq.nlargest(
        limit,
        events,
        key=lambda e: calculate_ranking_score(e, config, reference_time=reference_time),
    )
