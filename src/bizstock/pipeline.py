"""Pipeline orchestration: normalize → cluster → cooldown → personalize → rank."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from bizstock.cluster import DEFAULT_CLUSTERING_CONFIG, apply_cooldown, cluster_events
from bizstock.lexicon import DEFAULT_LEXICON, Lexicon
from bizstock.models import (
    ClusteredEvent,
    ClusteringConfig,
    PersonalizedEvent,
    RankingConfig,
    RawRecord,
    UserProfile,
)
from bizstock.normalize import normalize_all
from bizstock.personalize import filter_unread_events, personalize_events
from bizstock.rank import DEFAULT_RANKING_CONFIG, rank_events

logger = logging.getLogger(__name__)


class RecordFormatError(Exception):
    """Raised when a records file is not a JSON array of objects."""


class ProfileError(Exception):
    """Raised when a user profile file is missing or invalid."""


class FeedResult(BaseModel):
    clusters: list[ClusteredEvent] = Field(default_factory=list)
    events: list[PersonalizedEvent] = Field(default_factory=list)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ── Loaders ────────────────────────────────────────────────────────────────


def load_raw_records(path: Path) -> list[RawRecord]:
    """Read a JSON array of records. Invalid records are skipped, not fatal."""
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RecordFormatError(f"Cannot read records from {path}: {exc}") from exc
    if not isinstance(data, list):
        raise RecordFormatError(f"{path} must contain a JSON array of records")

    records: list[RawRecord] = []
    for index, item in enumerate(data):
        try:
            records.append(RawRecord.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "Skipping record #%d in %s: %d validation errors",
                index,
                path,
                exc.error_count(),
            )
    logger.info("Loaded %d/%d records from %s", len(records), len(data), path)
    return records


def load_profile(path: Path) -> UserProfile:
    """Read a user profile from YAML (``user_id``, ``watchlist``, ``positions`` …)."""
    if not path.exists():
        raise ProfileError(f"Profile not found: {path}")
    try:
        with open(path, encoding="utf-8") as fh:
            cfg = yaml.safe_load(fh) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        raise ProfileError(f"Cannot read profile {path}: {exc}") from exc
    try:
        return UserProfile.model_validate(cfg)
    except ValidationError as exc:
        raise ProfileError(f"Invalid profile {path}: {exc}") from exc


# ── Run ────────────────────────────────────────────────────────────────────


def run_feed(
    records: list[RawRecord],
    profile: UserProfile,
    reference_time: datetime,
    *,
    clustering: ClusteringConfig = DEFAULT_CLUSTERING_CONFIG,
    ranking: RankingConfig = DEFAULT_RANKING_CONFIG,
    lexicon: Lexicon = DEFAULT_LEXICON,
    prior_clusters: list[ClusteredEvent] | None = None,
) -> FeedResult:
    """Run one ingestion cycle for *profile*.

    *prior_clusters* are clusters from earlier cycles that should take part
    in the cooldown merge.
    """
    logger.info("=== bizstock feed start [user=%s] ===", profile.user_id)

    # ── 1. Normalize ──────────────────────────────────────────────────
    normalized = normalize_all(records, lexicon)

    # ── 2. Cluster + cooldown ─────────────────────────────────────────
    clusters = cluster_events(normalized, clustering)
    clusters = apply_cooldown([*(prior_clusters or []), *clusters], clustering.cooldown_minutes)

    # ── 3. Personalize + unread ───────────────────────────────────────
    personalized = personalize_events(clusters, profile)
    unread = filter_unread_events(personalized, profile)

    # ── 4. Rank ───────────────────────────────────────────────────────
    ranked = rank_events(unread, ranking, reference_time=reference_time)

    logger.info(
        "=== bizstock feed done [user=%s]: %d records → %d clusters → %d events ===",
        profile.user_id,
        len(records),
        len(clusters),
        len(ranked),
    )
    return FeedResult(clusters=clusters, events=ranked)
