"""Cluster normalized events into disclosures by ticker, time window and headline.

Clustering is a greedy single pass anchored on the newest unassigned event.
Headline similarity is not transitive: if A~B and B~C the three still end up
together when B is the anchor, even though A and C may not be similar. That
is an accepted approximation of connected components, not something to fix
here.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timedelta

from bizstock.models import (
    TIER_ORDER,
    ClusteredEvent,
    ClusteringConfig,
    ImpactLevel,
    NormalizedEvent,
    SourceTier,
)

logger = logging.getLogger(__name__)

DEFAULT_CLUSTERING_CONFIG = ClusteringConfig()

_MAX_SOURCES = 2

# Stripped before comparing headlines
_SIMILARITY_STRIP_RE = re.compile(r"[\s、。！？｜]")


# ── Headline similarity ────────────────────────────────────────────────────


def _similarity_text(text: str) -> str:
    return _SIMILARITY_STRIP_RE.sub("", text.lower())


def _bigrams(text: str) -> set[str]:
    return {text[i : i + 2] for i in range(len(text) - 1)}


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of character bigrams, in [0, 1].

    Strings shorter than two characters have no bigrams; an empty union
    scores 0.
    """
    bigrams1 = _bigrams(_similarity_text(text1))
    bigrams2 = _bigrams(_similarity_text(text2))
    union = bigrams1 | bigrams2
    if not union:
        return 0.0
    return len(bigrams1 & bigrams2) / len(union)


# ── Cluster construction ───────────────────────────────────────────────────


def _tier_counts(events: list[NormalizedEvent]) -> dict[SourceTier, int]:
    counts = {tier: 0 for tier in SourceTier}
    for event in events:
        counts[event.tier] += 1
    return counts


def determine_impact(events: list[NormalizedEvent]) -> ImpactLevel:
    """Impact from source-tier composition alone."""
    counts = _tier_counts(events)
    if counts[SourceTier.A] > 0 or counts[SourceTier.B] >= 2:
        return ImpactLevel.STRONG
    if counts[SourceTier.B] == 1:
        return ImpactLevel.MEDIUM
    return ImpactLevel.WEAK


def generate_cluster_id(
    events: list[NormalizedEvent],
    primary_ticker: str,
    published_at: datetime,
) -> str:
    """Deterministic id: ``{ticker}_{epoch_ms}_{hash of sorted member ids}``."""
    member_ids = "|".join(sorted(e.id for e in events))
    digest = hashlib.sha1(member_ids.encode("utf-8")).hexdigest()[:10]
    timestamp = int(published_at.timestamp() * 1000)
    return f"{primary_ticker or 'unknown'}_{timestamp}_{digest}"


def _member_sort_key(event: NormalizedEvent) -> tuple[int, float]:
    return (TIER_ORDER[event.tier], -event.published_at.timestamp())


def build_cluster(events: list[NormalizedEvent]) -> ClusteredEvent:
    """Build a cluster from its members (duplicates by id are dropped)."""
    unique: dict[str, NormalizedEvent] = {}
    for event in events:
        unique.setdefault(event.id, event)
    members = sorted(unique.values(), key=_member_sort_key)
    top = members[0]

    primary_ticker = top.ticker_codes[0] if top.ticker_codes else ""
    all_tickers = sorted({code for e in members for code in e.ticker_codes})
    published_at = min(e.published_at for e in members)

    sources: list[str] = []
    for event in members:
        if event.source_name not in sources:
            sources.append(event.source_name)

    return ClusteredEvent(
        cluster_id=generate_cluster_id(members, primary_ticker, published_at),
        events=members,
        primary_ticker=primary_ticker,
        all_tickers=all_tickers,
        title=top.title,
        impact=determine_impact(members),
        category=top.category,
        published_at=published_at,
        sources=sources[:_MAX_SOURCES],
    )


def _find_similar(
    anchor: NormalizedEvent,
    candidates: list[NormalizedEvent],
    assigned: set[str],
    config: ClusteringConfig,
) -> list[NormalizedEvent]:
    window = timedelta(minutes=config.time_window_minutes)
    anchor_tickers = set(anchor.ticker_codes)
    similar: list[NormalizedEvent] = []
    for event in candidates:
        if event.id in assigned or event.id == anchor.id:
            continue
        if abs(anchor.published_at - event.published_at) > window:
            continue
        if not anchor_tickers.intersection(event.ticker_codes):
            continue
        if calculate_similarity(anchor.title, event.title) >= config.similarity_threshold:
            similar.append(event)
    return similar


def cluster_events(
    events: list[NormalizedEvent],
    config: ClusteringConfig = DEFAULT_CLUSTERING_CONFIG,
) -> list[ClusteredEvent]:
    """Group events describing the same disclosure, newest anchor first."""
    if not events:
        return []

    ordered = sorted(events, key=lambda e: e.published_at, reverse=True)
    assigned: set[str] = set()
    clusters: list[ClusteredEvent] = []

    for anchor in ordered:
        if anchor.id in assigned:
            continue
        similar = _find_similar(anchor, ordered, assigned, config)
        clusters.append(build_cluster([anchor, *similar]))
        assigned.add(anchor.id)
        assigned.update(e.id for e in similar)

    logger.info("Clustered %d events into %d clusters", len(events), len(clusters))
    return clusters


# ── Delivery ───────────────────────────────────────────────────────────────


def should_deliver(cluster: ClusteredEvent) -> bool:
    """Deliverable when backed by a tier-A source or two tier-B sources."""
    counts = _tier_counts(cluster.events)
    return counts[SourceTier.A] > 0 or counts[SourceTier.B] >= 2


def filter_deliverable_clusters(clusters: list[ClusteredEvent]) -> list[ClusteredEvent]:
    return [c for c in clusters if should_deliver(c)]


def generate_idempotency_key(cluster: ClusteredEvent, version: int = 1) -> str:
    """Key for push delivery; an impact change yields a new key."""
    return f"{cluster.cluster_id}:{cluster.impact}:{version}"


# ── Cooldown ───────────────────────────────────────────────────────────────


def _cooldown_pass(
    clusters: list[ClusteredEvent],
    window: timedelta,
) -> list[ClusteredEvent]:
    ordered = sorted(clusters, key=lambda c: c.published_at, reverse=True)
    processed: set[int] = set()
    result: list[ClusteredEvent] = []

    for i, anchor in enumerate(ordered):
        if i in processed:
            continue
        processed.add(i)
        # without a ticker there is nothing tying two clusters together
        if not anchor.primary_ticker:
            result.append(anchor)
            continue
        mergeable: list[ClusteredEvent] = []
        for j, other in enumerate(ordered):
            if j in processed:
                continue
            if (
                other.primary_ticker == anchor.primary_ticker
                and other.category == anchor.category
                and abs(anchor.published_at - other.published_at) <= window
            ):
                mergeable.append(other)
                processed.add(j)

        if mergeable:
            members = [e for c in (anchor, *mergeable) for e in c.events]
            result.append(build_cluster(members))
        else:
            result.append(anchor)
    return result


def apply_cooldown(
    clusters: list[ClusteredEvent],
    cooldown_minutes: float = DEFAULT_CLUSTERING_CONFIG.cooldown_minutes,
) -> list[ClusteredEvent]:
    """Collapse same-ticker, same-category clusters within the cooldown window.

    Passes repeat until stable because a merged cluster takes the earliest
    member time and may then reach a cluster it could not reach before.
    Prior-cycle clusters can be passed in alongside new ones.
    """
    if not clusters:
        return []

    window = timedelta(minutes=cooldown_minutes)
    current = list(clusters)
    while True:
        merged = _cooldown_pass(current, window)
        if len(merged) == len(current):
            break
        current = merged

    if len(current) != len(clusters):
        logger.info("Cooldown merged %d clusters into %d", len(clusters), len(current))
    return current
