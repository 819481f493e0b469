"""Unit tests for digest assembly and Markdown rendering."""

from datetime import UTC, datetime, timedelta

from bizstock.cluster import build_cluster
from bizstock.digest import build_digest, render_digest_markdown
from bizstock.models import (
    DigestKind,
    EventCategory,
    NormalizedEvent,
    PersonalizedEvent,
    SourceTier,
    UserProfile,
)
from bizstock.personalize import create_user_profile, mark_events_as_read, personalize_event

_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


def _profile() -> UserProfile:
    return create_user_profile("u1", ["7203", "6758"])


def _make(event_id: str, tickers: list[str], hours_ago: float) -> PersonalizedEvent:
    published = _NOW - timedelta(hours=hours_ago)
    event = NormalizedEvent(
        id=event_id,
        tier=SourceTier.A,
        title=f"決算短信 {event_id}",
        url=f"https://example.com/{event_id}",
        published_at=published,
        fetched_at=published,
        ticker_codes=tickers,
        category=EventCategory.EARNINGS,
        source_name="EDINET",
    )
    return personalize_event(build_cluster([event]), _profile())


def _ids(events: list[PersonalizedEvent]) -> set[str]:
    return {e.events[0].id for e in events}


class TestBuildDigest:
    def test_morning_covers_last_day(self) -> None:
        events = [
            _make("toyota", ["7203"], hours_ago=2),
            _make("sony-old", ["6758"], hours_ago=30),
            _make("both", ["6758", "7203"], hours_ago=1),
        ]
        digest = build_digest(DigestKind.MORNING, events, _profile(), _NOW)
        assert digest.title == "今日の市場見通しと保有銘柄の動き"
        assert digest.total_events == 2
        assert list(digest.events_by_ticker) == ["7203", "6758"]
        assert _ids(digest.events_by_ticker["7203"]) == {"toyota", "both"}
        assert _ids(digest.events_by_ticker["6758"]) == {"both"}
        assert digest.generated_at == _NOW

    def test_midday_keeps_unread(self) -> None:
        toyota = _make("toyota", ["7203"], hours_ago=2)
        sony = _make("sony-old", ["6758"], hours_ago=30)
        profile = _profile()
        mark_events_as_read(profile, [toyota.cluster_id])
        digest = build_digest(DigestKind.MIDDAY, [toyota, sony], profile, _NOW)
        assert digest.title == "昼のダイジェスト"
        assert digest.total_events == 1
        assert list(digest.events_by_ticker) == ["6758"]

    def test_ranked_within_ticker(self) -> None:
        fresh = _make("fresh", ["7203"], hours_ago=0.5)
        older = _make("older", ["7203"], hours_ago=20)
        digest = build_digest(DigestKind.CLOSING, [older, fresh], _profile(), _NOW)
        assert [e.events[0].id for e in digest.events_by_ticker["7203"]] == ["fresh", "older"]

    def test_empty(self) -> None:
        digest = build_digest(DigestKind.CLOSING, [], _profile(), _NOW)
        assert digest.events_by_ticker == {}
        assert digest.total_events == 0


class TestRenderMarkdown:
    def test_sections(self) -> None:
        event = _make("toyota", ["7203"], hours_ago=2)
        digest = build_digest(DigestKind.MORNING, [event], _profile(), _NOW)
        md = render_digest_markdown(digest)
        assert md.startswith("# 今日の市場見通しと保有銘柄の動き\n\n## 7203\n")
        assert (
            f"- **決算短信 toyota** (strong, {event.relevance_score}pt) 〔出典:EDINET〕" in md
        )
        assert f"  - _{event.score_reason}_" in md
        assert "## 6758" not in md
        assert md.endswith("_1 events as of 2025-01-15 12:00 UTC_\n")

    def test_quiet_day(self) -> None:
        digest = build_digest(DigestKind.CLOSING, [], _profile(), _NOW)
        md = render_digest_markdown(digest)
        assert md == "# 引け後のダイジェスト\n\n本日は保有銘柄の新規開示なし（21:00時点）\n"
