"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from bizstock.models import ClusteringConfig

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]
LEXICON_PATH: Path = Path(
    os.getenv("BIZSTOCK_LEXICON_PATH", str(PROJECT_ROOT / "config" / "lexicon.yml"))
)
DB_BASE: Path = Path(os.getenv("BIZSTOCK_DB_DIR", str(PROJECT_ROOT / "var")))

# ── Clustering ─────────────────────────────────────────────────────────────
TIME_WINDOW_MINUTES: float = float(os.getenv("BIZSTOCK_TIME_WINDOW_MINUTES", "30"))
SIMILARITY_THRESHOLD: float = float(os.getenv("BIZSTOCK_SIMILARITY_THRESHOLD", "0.7"))
COOLDOWN_MINUTES: float = float(os.getenv("BIZSTOCK_COOLDOWN_MINUTES", "30"))

# ── Ranking / logging ──────────────────────────────────────────────────────
DEFAULT_PRESET: str = os.getenv("BIZSTOCK_PRESET", "live_feed")
LOG_LEVEL: str = os.getenv("BIZSTOCK_LOG_LEVEL", "INFO")


def clustering_config() -> ClusteringConfig:
    """Clustering knobs from the environment. Values are not range-checked."""
    return ClusteringConfig(
        time_window_minutes=TIME_WINDOW_MINUTES,
        similarity_threshold=SIMILARITY_THRESHOLD,
        cooldown_minutes=COOLDOWN_MINUTES,
    )


def ledger_path(user_id: str) -> Path:
    """SQLite file holding delivered idempotency keys for *user_id*."""
    return DB_BASE / f"deliveries-{user_id}.sqlite3"
