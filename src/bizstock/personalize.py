"""User-specific relevance scoring and read tracking."""

from __future__ import annotations

import logging
import math

from bizstock.models import (
    IMPACT_SCORE,
    ClusteredEvent,
    EventCategory,
    ImpactLevel,
    PersonalizedEvent,
    UserProfile,
)

logger = logging.getLogger(__name__)

# ── Weights (tuneable) ─────────────────────────────────────────────────────
DEFAULT_CATEGORY_WEIGHTS: dict[EventCategory, float] = {
    EventCategory.UPWARD_REVISION: 1.5,
    EventCategory.CAPITAL_POLICY: 1.4,
    EventCategory.EARNINGS: 1.3,
    EventCategory.GUIDANCE: 1.2,
    EventCategory.PARTNERSHIP: 1.1,
    EventCategory.ORDER_WIN: 1.0,
    EventCategory.NEW_PRODUCT: 0.9,
    EventCategory.INCIDENT: 1.4,
    EventCategory.REGULATION: 1.2,
    EventCategory.OTHER: 0.5,
}

_W_WATCHLIST_MATCH = 30.0
_W_POSITION_MAX = 20.0
_W_CATEGORY = 15.0
_W_IMPACT = 0.2
_W_MULTI_SOURCE = 10.0

# Contributions below these are scored but left out of the reason text
_POSITION_REASON_MIN = 5.0
_CATEGORY_REASON_MIN = 2.0

_WEAK_UPGRADE_SCORE = 70
_MEDIUM_UPGRADE_SCORE = 85
_CRITICAL_CATEGORY_WEIGHT = 1.4


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def category_weight(category: EventCategory, profile: UserProfile) -> float:
    """User override if set, else the default table."""
    override = profile.category_weights.get(category)
    if override is not None:
        return override
    return DEFAULT_CATEGORY_WEIGHTS[category]


def calculate_relevance_score(
    cluster: ClusteredEvent,
    profile: UserProfile,
) -> tuple[int, str]:
    """Score 0-100 for *profile* and the reasons behind it.

    Contributions, in order: watchlist match, position weight, category
    preference, base impact, multiple sources. The reason text lists them in
    the same order.
    """
    watched = set(profile.watchlist)
    matched = [t for t in cluster.all_tickers if t in watched]
    if not matched:
        return 0, "no matching ticker"

    score = _W_WATCHLIST_MATCH
    reasons = [f"watchlist match: {', '.join(matched)}"]

    if profile.positions:
        total = sum(profile.positions.values())
        if total > 0:
            held = sum(profile.positions.get(t, 0) for t in matched)
            fraction = held / total
            boost = fraction * _W_POSITION_MAX
            score += boost
            if boost > _POSITION_REASON_MIN:
                reasons.append(f"position weight: {fraction * 100:.0f}% (+{boost:.0f}pt)")

    weight = category_weight(cluster.category, profile)
    category_boost = (weight - 1.0) * _W_CATEGORY
    score += category_boost
    if abs(category_boost) > _CATEGORY_REASON_MIN:
        reasons.append(f"category: {cluster.category} ({category_boost:+.0f}pt)")

    impact_boost = IMPACT_SCORE[cluster.impact] * _W_IMPACT
    score += impact_boost
    reasons.append(f"impact: {cluster.impact} (+{impact_boost:.0f}pt)")

    if len(cluster.sources) >= 2:
        score += _W_MULTI_SOURCE
        reasons.append(f"multiple sources: {len(cluster.sources)} (+{_W_MULTI_SOURCE:.0f}pt)")

    clamped = min(100.0, max(0.0, score))
    return _round_half_up(clamped), "; ".join(reasons)


def determine_personal_impact(
    cluster: ClusteredEvent,
    profile: UserProfile,
    relevance_score: int,
) -> ImpactLevel:
    """Upgrade-only adjustment of the base impact."""
    base = cluster.impact
    if base == ImpactLevel.STRONG:
        return base
    if base == ImpactLevel.WEAK:
        if relevance_score >= _WEAK_UPGRADE_SCORE:
            return ImpactLevel.MEDIUM
        return base
    if relevance_score >= _MEDIUM_UPGRADE_SCORE:
        return ImpactLevel.STRONG
    if category_weight(cluster.category, profile) >= _CRITICAL_CATEGORY_WEIGHT:
        return ImpactLevel.STRONG
    return base


def personalize_event(cluster: ClusteredEvent, profile: UserProfile) -> PersonalizedEvent:
    score, reason = calculate_relevance_score(cluster, profile)
    return PersonalizedEvent(
        **{name: getattr(cluster, name) for name in ClusteredEvent.model_fields},
        relevance_score=score,
        personal_impact=determine_personal_impact(cluster, profile, score),
        score_reason=reason,
    )


def personalize_events(
    clusters: list[ClusteredEvent],
    profile: UserProfile,
) -> list[PersonalizedEvent]:
    """Personalize every cluster and drop the ones scoring 0."""
    personalized = [personalize_event(c, profile) for c in clusters]
    relevant = [e for e in personalized if e.relevance_score > 0]
    logger.info(
        "Personalized %d clusters for %s: %d relevant",
        len(clusters),
        profile.user_id,
        len(relevant),
    )
    return relevant


# ── Read tracking ──────────────────────────────────────────────────────────


def is_unread(event: ClusteredEvent, profile: UserProfile) -> bool:
    """Unread unless the cluster id or any member id was marked read."""
    if event.cluster_id in profile.read_ids:
        return False
    return not any(e.id in profile.read_ids for e in event.events)


def filter_unread_events(
    events: list[PersonalizedEvent],
    profile: UserProfile,
) -> list[PersonalizedEvent]:
    return [e for e in events if is_unread(e, profile)]


def mark_events_as_read(profile: UserProfile, ids: list[str]) -> None:
    """Add cluster or event ids to the profile's read set."""
    profile.read_ids.update(ids)


def reset_read_events(profile: UserProfile) -> None:
    """Daily rollover: forget everything read so far."""
    profile.read_ids.clear()


def create_user_profile(
    user_id: str,
    watchlist: list[str],
    positions: dict[str, float] | None = None,
    category_weights: dict[EventCategory, float] | None = None,
) -> UserProfile:
    return UserProfile(
        user_id=user_id,
        watchlist=list(watchlist),
        positions=positions,
        category_weights=category_weights or {},
    )
