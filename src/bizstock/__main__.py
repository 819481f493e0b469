"""CLI entry-point: ``python -m bizstock feed`` / ``python -m bizstock digest``."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from bizstock import config
from bizstock.dedupe import select_undelivered
from bizstock.digest import build_digest, render_digest_markdown
from bizstock.lexicon import load_lexicon
from bizstock.models import DigestKind, assume_jst
from bizstock.notify import format_notification
from bizstock.pipeline import (
    ProfileError,
    RecordFormatError,
    load_profile,
    load_raw_records,
    run_feed,
    setup_logging,
)
from bizstock.rank import RANKING_PRESETS
from bizstock.store import DeliveryStore

logger = logging.getLogger(__name__)


def _parse_now(value: str | None) -> datetime:
    """``--now`` as an aware datetime (JST when no offset); the wall clock when omitted."""
    if value is None:
        return datetime.now(UTC)
    return assume_jst(datetime.fromisoformat(value))


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--records", type=Path, required=True, help="JSON array of raw records.")
    parser.add_argument("--profile", type=Path, required=True, help="User profile YAML.")
    parser.add_argument("--now", default=None, help="Reference time (ISO-8601, default: now).")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="bizstock",
        description="Rank corporate disclosures for a watchlist.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── feed ──────────────────────────────────────────────────────────
    feed_parser = sub.add_parser("feed", help="Print the ranked feed.")
    _add_common(feed_parser)
    feed_parser.add_argument(
        "--preset",
        choices=sorted(RANKING_PRESETS),
        default=config.DEFAULT_PRESET,
        help=f"Ranking preset (default: {config.DEFAULT_PRESET}).",
    )
    feed_parser.add_argument("--limit", type=int, default=20, help="Max events shown.")
    feed_parser.add_argument(
        "--only-new",
        action="store_true",
        help="Print only deliverable events not pushed before, and record them.",
    )

    # ── digest ────────────────────────────────────────────────────────
    digest_parser = sub.add_parser("digest", help="Print a Markdown digest.")
    _add_common(digest_parser)
    digest_parser.add_argument(
        "--kind",
        choices=[k.value for k in DigestKind],
        default=DigestKind.MORNING.value,
    )

    args = parser.parse_args(argv)
    if args.command not in ("feed", "digest"):
        parser.print_help()
        sys.exit(1)

    setup_logging(config.LOG_LEVEL)
    try:
        records = load_raw_records(args.records)
        profile = load_profile(args.profile)
    except (RecordFormatError, ProfileError) as exc:
        logger.error("%s", exc)
        sys.exit(1)

    now = _parse_now(args.now)
    lexicon = load_lexicon(config.LEXICON_PATH)

    if args.command == "feed":
        result = run_feed(
            records,
            profile,
            now,
            clustering=config.clustering_config(),
            ranking=RANKING_PRESETS[args.preset],
            lexicon=lexicon,
        )
        shown = result.events[: args.limit]
        store: DeliveryStore | None = None
        if args.only_new:
            store = DeliveryStore(config.ledger_path(profile.user_id))
            pending = {c.cluster_id for c, _ in select_undelivered(shown, store)}
            shown = [e for e in shown if e.cluster_id in pending]
        for event in shown:
            note = format_notification(event, impact=event.personal_impact)
            print(note.message)
            if store is not None:
                store.mark_delivered(note.idempotency_key, now)
    else:
        result = run_feed(
            records, profile, now, clustering=config.clustering_config(), lexicon=lexicon
        )
        digest = build_digest(DigestKind(args.kind), result.events, profile, now)
        print(render_digest_markdown(digest), end="")


if __name__ == "__main__":
    main()
