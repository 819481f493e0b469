"""End-to-end tests for the pipeline, loaders and CLI."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from bizstock import config
from bizstock.__main__ import main
from bizstock.cluster import should_deliver
from bizstock.models import EventCategory, ImpactLevel, RawRecord, SourceTier
from bizstock.personalize import create_user_profile, mark_events_as_read
from bizstock.pipeline import (
    ProfileError,
    RecordFormatError,
    load_profile,
    load_raw_records,
    run_feed,
)

_T = datetime(2025, 1, 15, 9, 0, tzinfo=UTC)
_NOW = _T + timedelta(hours=1)
_PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _toyota_records() -> list[dict[str, Any]]:
    def record(record_id: str, tier: str, source: str, title: str, minutes: int) -> dict[str, Any]:
        published = (_T + timedelta(minutes=minutes)).isoformat()
        return {
            "id": record_id,
            "source": source,
            "tier": tier,
            "title": title,
            "url": f"https://example.com/{record_id}?utm_source=feed",
            "published_at": published,
            "fetched_at": published,
            "ticker_codes": ["7203"],
        }

    return [
        record("r1", "A", "EDINET", "トヨタ自動車｜業績予想の上方修正", 0),
        record("r2", "B", "prtimes", "トヨタ自動車、業績予想の上方修正", 10),
        record("r3", "B", "company_ir", "トヨタ自動車 業績予想の上方修正", 20),
    ]


def _write_records(tmp_path: Path, records: Any) -> Path:
    path = tmp_path / "records.json"
    path.write_text(json.dumps(records, ensure_ascii=False), encoding="utf-8")
    return path


def _write_profile(tmp_path: Path, text: str = "user_id: u1\nwatchlist: ['7203']\n") -> Path:
    path = tmp_path / "profile.yml"
    path.write_text(text, encoding="utf-8")
    return path


class TestRunFeed:
    def test_toyota_scenario(self) -> None:
        records = [RawRecord.model_validate(r) for r in _toyota_records()]
        profile = create_user_profile("u1", ["7203"])
        result = run_feed(records, profile, _NOW)

        assert len(result.clusters) == 1
        cluster = result.clusters[0]
        assert len(cluster.events) == 3
        assert cluster.impact == ImpactLevel.STRONG
        assert cluster.category == EventCategory.UPWARD_REVISION
        assert should_deliver(cluster) is True
        assert cluster.sources == ["EDINET", "会社IR"]

        [event] = result.events
        # 30 watchlist + 7.5 category + 20 impact + 10 sources
        assert event.relevance_score == 68
        assert event.personal_impact == ImpactLevel.STRONG
        assert all("utm_source" not in e.url for e in event.events)

    def test_unwatched_user_gets_nothing(self) -> None:
        records = [RawRecord.model_validate(r) for r in _toyota_records()]
        result = run_feed(records, create_user_profile("u2", ["6758"]), _NOW)
        assert len(result.clusters) == 1
        assert result.events == []

    def test_read_clusters_hidden(self) -> None:
        records = [RawRecord.model_validate(r) for r in _toyota_records()]
        profile = create_user_profile("u1", ["7203"])
        mark_events_as_read(profile, ["r2"])
        assert run_feed(records, profile, _NOW).events == []

    def test_prior_clusters_merge(self) -> None:
        first, *rest = [RawRecord.model_validate(r) for r in _toyota_records()]
        profile = create_user_profile("u1", ["7203"])
        earlier = run_feed([first], profile, _NOW)
        later = run_feed(rest, profile, _NOW, prior_clusters=earlier.clusters)
        assert len(later.clusters) == 1
        assert {e.id for e in later.clusters[0].events} == {"r1", "r2", "r3"}

    def test_personalized_prior_events_merge(self) -> None:
        first, *rest = [RawRecord.model_validate(r) for r in _toyota_records()]
        profile = create_user_profile("u1", ["7203"])
        earlier = run_feed([first], profile, _NOW)

        carried = run_feed([], profile, _NOW, prior_clusters=earlier.events)
        # 30 watchlist + 7.5 category + 20 impact, single source
        assert [e.relevance_score for e in carried.events] == [58]

        later = run_feed(rest, profile, _NOW, prior_clusters=earlier.events)
        assert [len(c.events) for c in later.clusters] == [3]
        assert later.events[0].relevance_score == 68

    def test_naive_timestamps_read_as_jst(self, tmp_path: Path) -> None:
        data = _toyota_records()
        # 09:10 UTC written as Japan wall-clock time without an offset
        data[1]["published_at"] = data[1]["fetched_at"] = "2025-01-15T18:10:00"
        records = load_raw_records(_write_records(tmp_path, data))
        assert records[1].published_at == _T + timedelta(minutes=10)

        result = run_feed(records, create_user_profile("u1", ["7203"]), _NOW)
        assert [len(c.events) for c in result.clusters] == [3]
        assert result.events[0].relevance_score == 68

    def test_empty(self) -> None:
        result = run_feed([], create_user_profile("u1", ["7203"]), _NOW)
        assert result.clusters == []
        assert result.events == []


class TestLoaders:
    def test_load_records(self, tmp_path: Path) -> None:
        records = load_raw_records(_write_records(tmp_path, _toyota_records()))
        assert [r.id for r in records] == ["r1", "r2", "r3"]
        assert records[0].tier == SourceTier.A

    def test_invalid_record_skipped(self, tmp_path: Path) -> None:
        data = [*_toyota_records(), {"id": "bad", "tier": "Z"}]
        assert len(load_raw_records(_write_records(tmp_path, data))) == 3

    def test_not_an_array(self, tmp_path: Path) -> None:
        with pytest.raises(RecordFormatError):
            load_raw_records(_write_records(tmp_path, {"id": "r1"}))

    def test_unreadable_records(self, tmp_path: Path) -> None:
        path = tmp_path / "records.json"
        path.write_text("[not json", encoding="utf-8")
        with pytest.raises(RecordFormatError):
            load_raw_records(path)
        with pytest.raises(RecordFormatError):
            load_raw_records(tmp_path / "missing.json")
        path.write_bytes(b"[\xff\xfe]")
        with pytest.raises(RecordFormatError):
            load_raw_records(path)

    def test_load_profile(self, tmp_path: Path) -> None:
        profile = load_profile(_write_profile(tmp_path))
        assert profile.user_id == "u1"
        assert profile.watchlist == ["7203"]

    def test_example_profile(self) -> None:
        profile = load_profile(_PROJECT_ROOT / "config" / "profiles" / "example.yml")
        assert profile.category_weights[EventCategory.EARNINGS] == 1.4
        assert profile.positions == {"7203": 300, "6758": 100}

    def test_profile_errors(self, tmp_path: Path) -> None:
        with pytest.raises(ProfileError):
            load_profile(tmp_path / "missing.yml")
        with pytest.raises(ProfileError):
            load_profile(_write_profile(tmp_path, "watchlist: ['7203']\n"))
        with pytest.raises(ProfileError):
            load_profile(_write_profile(tmp_path, "user_id: [unclosed\n"))
        bad_bytes = tmp_path / "latin1.yml"
        bad_bytes.write_bytes(b"user_id: \xff\n")
        with pytest.raises(ProfileError):
            load_profile(bad_bytes)


class TestCli:
    def _args(self, tmp_path: Path, *extra: str) -> list[str]:
        return [
            "--records",
            str(_write_records(tmp_path, _toyota_records())),
            "--profile",
            str(_write_profile(tmp_path)),
            "--now",
            _NOW.isoformat(),
            *extra,
        ]

    def test_feed(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["feed", *self._args(tmp_path)])
        out = capsys.readouterr().out.splitlines()
        assert out == ["🚨 7203 7203｜トヨタ自動車｜業績予想の上方修正 影響:強〔出典:EDINET/会社IR〕"]

    def test_feed_only_new(
        self,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(config, "DB_BASE", tmp_path / "db")
        main(["feed", *self._args(tmp_path, "--only-new")])
        assert len(capsys.readouterr().out.splitlines()) == 1
        main(["feed", *self._args(tmp_path, "--only-new")])
        assert capsys.readouterr().out == ""
        assert config.ledger_path("u1").exists()

    def test_digest(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["digest", "--kind", "closing", *self._args(tmp_path)])
        out = capsys.readouterr().out
        assert out.startswith("# 引け後のダイジェスト\n\n## 7203\n")
        assert "(strong, 68pt)" in out

    def test_bad_profile_exits(self, tmp_path: Path) -> None:
        args = self._args(tmp_path)
        args[args.index("--profile") + 1] = str(tmp_path / "missing.yml")
        with pytest.raises(SystemExit) as exc_info:
            main(["feed", *args])
        assert exc_info.value.code == 1

    def test_malformed_profile_exits(self, tmp_path: Path) -> None:
        args = self._args(tmp_path)
        _write_profile(tmp_path, "user_id: [unclosed\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["feed", *args])
        assert exc_info.value.code == 1

    def test_naive_now_read_as_jst(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        args = self._args(tmp_path)
        # 08:30 UTC on the next day: inside the 24h window only when read as JST
        args[args.index("--now") + 1] = "2025-01-16T17:30:00"
        main(["digest", "--kind", "morning", *args])
        assert "(strong, 68pt)" in capsys.readouterr().out

    def test_no_command(self) -> None:
        with pytest.raises(SystemExit):
            main([])
