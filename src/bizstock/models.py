"""Domain models used across the pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceTier(StrEnum):
    """Trust tier of a feed. Declaration order is trust order."""

    A = "A"  # primary: EDINET, company IR
    B = "B"  # semi-primary: PR wires, IR RSS
    C = "C"  # news headlines


class EventCategory(StrEnum):
    """Event categories. Declaration order is the classification order."""

    UPWARD_REVISION = "upward_revision"
    CAPITAL_POLICY = "capital_policy"
    PARTNERSHIP = "partnership"
    INCIDENT = "incident"
    REGULATION = "regulation"
    EARNINGS = "earnings"
    GUIDANCE = "guidance"
    NEW_PRODUCT = "new_product"
    ORDER_WIN = "order_win"
    OTHER = "other"


class ImpactLevel(StrEnum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"


TIER_ORDER: dict[SourceTier, int] = {SourceTier.A: 0, SourceTier.B: 1, SourceTier.C: 2}

# Ordinal scale: weak < medium < strong
IMPACT_ORDER: dict[ImpactLevel, int] = {
    ImpactLevel.WEAK: 0,
    ImpactLevel.MEDIUM: 1,
    ImpactLevel.STRONG: 2,
}

IMPACT_SCORE: dict[ImpactLevel, int] = {
    ImpactLevel.STRONG: 100,
    ImpactLevel.MEDIUM: 60,
    ImpactLevel.WEAK: 30,
}


# Feeds publish in Japan time; timestamps without an offset are read as JST.
JST = ZoneInfo("Asia/Tokyo")


def assume_jst(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=JST)


# ── Pipeline records ───────────────────────────────────────────────────────


class RawRecord(BaseModel):
    """A disclosure as fetched from an external feed."""

    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    tier: SourceTier
    title: str = ""
    url: str = ""
    published_at: datetime
    fetched_at: datetime
    ticker_codes: list[str] = Field(default_factory=list)
    excerpt: str | None = None

    @field_validator("published_at", "fetched_at")
    @classmethod
    def aware_times(cls, value: datetime) -> datetime:
        return assume_jst(value)


class NormalizedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    tier: SourceTier
    title: str
    url: str
    published_at: datetime
    fetched_at: datetime
    ticker_codes: list[str] = Field(default_factory=list)  # validated, sorted
    category: EventCategory = EventCategory.OTHER
    source_name: str = ""
    excerpt: str | None = None

    @field_validator("published_at", "fetched_at")
    @classmethod
    def aware_times(cls, value: datetime) -> datetime:
        return assume_jst(value)


class ClusteredEvent(BaseModel):
    """One real-world disclosure reported by one or more feeds."""

    model_config = ConfigDict(frozen=True)

    cluster_id: str
    events: list[NormalizedEvent]  # tier A→C, then newest first
    primary_ticker: str = ""
    all_tickers: list[str] = Field(default_factory=list)
    title: str = ""
    impact: ImpactLevel
    category: EventCategory = EventCategory.OTHER
    published_at: datetime  # earliest member
    sources: list[str] = Field(default_factory=list)  # at most two


class PersonalizedEvent(ClusteredEvent):
    relevance_score: int = 0
    personal_impact: ImpactLevel
    score_reason: str = ""


class UserProfile(BaseModel):
    """Watchlist and reading state of one user.

    ``read_ids`` holds cluster ids and member event ids. It only grows through
    explicit mark-as-read calls and is single-writer.
    """

    user_id: str
    watchlist: list[str] = Field(default_factory=list)
    positions: dict[str, float] | None = None  # ticker → position size
    category_weights: dict[EventCategory, float] = Field(default_factory=dict)
    read_ids: set[str] = Field(default_factory=set)


# ── Tuning knobs ───────────────────────────────────────────────────────────


class ClusteringConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_window_minutes: float = 30
    similarity_threshold: float = 0.7
    cooldown_minutes: float = 30


class RankingConfig(BaseModel):
    """Weights for the composite ranking score. Weights need not sum to 1."""

    model_config = ConfigDict(frozen=True)

    relevance_weight: float = 0.5
    recency_weight: float = 0.3
    impact_weight: float = 0.2
    multi_source_boost: float = 1.15


# ── Outputs for presentation collaborators ─────────────────────────────────


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    ticker: str
    impact: ImpactLevel
    idempotency_key: str
    sources: list[str] = Field(default_factory=list)


class DigestKind(StrEnum):
    MORNING = "morning"  # 08:30
    MIDDAY = "midday"  # 12:15
    CLOSING = "closing"  # 15:45


class Digest(BaseModel):
    kind: DigestKind
    title: str
    events_by_ticker: dict[str, list[PersonalizedEvent]] = Field(default_factory=dict)
    total_events: int = 0
    generated_at: datetime


class SummaryCheck(BaseModel):
    ok: bool
    warnings: list[str] = Field(default_factory=list)
    forbidden_words: list[str] = Field(default_factory=list)
