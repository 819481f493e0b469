"""SQLite-backed delivery ledger, so idempotency survives process restarts."""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS deliveries (
    idempotency_key TEXT PRIMARY KEY,
    delivered_at    TEXT NOT NULL
);
"""


class DeliveryStore:
    """Append-only set of delivered idempotency keys."""

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._init_db()

    # ── public ──────────────────────────────────────────────────────────

    def has_been_delivered(self, key: str) -> bool:
        con = self._connect()
        try:
            cur = con.execute(
                "SELECT 1 FROM deliveries WHERE idempotency_key = ?", (key,)
            )
            return cur.fetchone() is not None
        finally:
            con.close()

    def mark_delivered(self, key: str, delivered_at: datetime | None = None) -> None:
        """Record *key*; marking an already delivered key is a no-op."""
        stamp = (delivered_at or datetime.now(UTC)).isoformat()
        con = self._connect()
        try:
            con.execute(
                "INSERT OR IGNORE INTO deliveries (idempotency_key, delivered_at) VALUES (?, ?)",
                (key, stamp),
            )
            con.commit()
        finally:
            con.close()

    def delivered_keys(self) -> set[str]:
        con = self._connect()
        try:
            cur = con.execute("SELECT idempotency_key FROM deliveries")
            return {row[0] for row in cur.fetchall()}
        finally:
            con.close()

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._db_path))

    def _init_db(self) -> None:
        con = self._connect()
        con.executescript(_SCHEMA)
        con.close()
        logger.debug("Delivery store ready at %s", self._db_path)
