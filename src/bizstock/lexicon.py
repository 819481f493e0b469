"""Lookup tables for normalization: company names, category keywords, source names."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from bizstock.models import EventCategory

logger = logging.getLogger(__name__)

# ── Built-in tables ────────────────────────────────────────────────────────
_CATEGORY_KEYWORDS: dict[EventCategory, list[str]] = {
    EventCategory.UPWARD_REVISION: ["上方修正", "業績予想の修正", "増益", "上振れ"],
    EventCategory.CAPITAL_POLICY: ["自己株式", "株式分割", "増資", "減資", "株式併合", "資本提携"],
    EventCategory.PARTNERSHIP: ["業務提携", "資本提携", "合弁", "協業", "連携"],
    EventCategory.INCIDENT: ["事故", "不祥事", "リコール", "流出", "情報漏洩"],
    EventCategory.REGULATION: ["行政処分", "業務改善命令", "課徴金", "規制"],
    EventCategory.EARNINGS: ["決算", "業績", "財務諸表", "四半期", "期末", "有価証券報告書"],
    EventCategory.GUIDANCE: ["業績予想", "通期予想", "見通し", "業績見込み"],
    EventCategory.NEW_PRODUCT: ["新製品", "新商品", "発売", "リリース"],
    EventCategory.ORDER_WIN: ["受注", "契約", "取引開始"],
    EventCategory.OTHER: [],
}

# Subsidiary / alias → listed parent
_COMPANY_TICKERS: dict[str, str] = {
    "トヨタ自動車": "7203",
    "トヨタ": "7203",
    "TOYOTA": "7203",
}

_SOURCE_NAMES: dict[str, str] = {
    "EDINET": "EDINET",
    "tdnet": "TDnet",
    "prtimes": "PR TIMES",
    "company_ir": "会社IR",
}


class Lexicon(BaseModel):
    """Immutable set of lookup tables, injected wherever text is interpreted."""

    model_config = ConfigDict(frozen=True)

    company_tickers: dict[str, str] = Field(default_factory=dict)
    category_keywords: dict[EventCategory, list[str]] = Field(default_factory=dict)
    source_names: dict[str, str] = Field(default_factory=dict)

    def iter_category_keywords(self) -> Iterator[tuple[EventCategory, list[str]]]:
        """Yield (category, keywords) in ``EventCategory`` declaration order.

        The order of the underlying mapping is ignored, so the first matching
        category is the same however the table was built.
        """
        for category in EventCategory:
            keywords = self.category_keywords.get(category)
            if keywords:
                yield category, keywords


DEFAULT_LEXICON = Lexicon(
    company_tickers=_COMPANY_TICKERS,
    category_keywords=_CATEGORY_KEYWORDS,
    source_names=_SOURCE_NAMES,
)


def _str_map(section: Any, name: str) -> dict[str, str]:
    if not isinstance(section, dict):
        logger.warning("Section '%s' is not a mapping, ignoring", name)
        return {}
    return {str(k): str(v) for k, v in section.items()}


def load_lexicon(path: str | Path, base: Lexicon = DEFAULT_LEXICON) -> Lexicon:
    """Load ``companies`` / ``categories`` / ``sources`` from YAML over *base*.

    Entries in the file extend or replace entries in *base*. A category listed
    in the file replaces that category's whole keyword list.
    """
    p = Path(path)
    if not p.exists():
        logger.warning("Lexicon file not found, using defaults: %s", p)
        return base

    try:
        with open(p, encoding="utf-8") as fh:
            cfg: Any = yaml.safe_load(fh) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning("Cannot read lexicon %s, using defaults: %s", p, exc)
        return base
    if not isinstance(cfg, dict):
        logger.warning("Lexicon %s is not a mapping, using defaults", p)
        return base

    companies = dict(base.company_tickers)
    if "companies" in cfg:
        companies.update(_str_map(cfg["companies"], "companies"))

    sources = dict(base.source_names)
    if "sources" in cfg:
        sources.update(_str_map(cfg["sources"], "sources"))

    categories = {cat: list(kws) for cat, kws in base.category_keywords.items()}
    section = cfg.get("categories") or {}
    if not isinstance(section, dict):
        logger.warning("Section 'categories' is not a mapping, ignoring")
        section = {}
    for name, keywords in section.items():
        try:
            category = EventCategory(name)
        except ValueError:
            logger.warning("Unknown category '%s' in %s, skipping", name, p)
            continue
        if keywords is not None and not isinstance(keywords, list):
            logger.warning("Keywords for '%s' in %s are not a list, skipping", name, p)
            continue
        categories[category] = [str(kw) for kw in keywords or []]

    logger.debug(
        "Loaded lexicon from %s: %d companies, %d sources",
        p,
        len(companies),
        len(sources),
    )
    return Lexicon(
        company_tickers=companies,
        category_keywords=categories,
        source_names=sources,
    )
