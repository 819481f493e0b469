"""Turn raw feed records into canonical events.

Every function here is pure. Malformed input degrades to a safe value (the
URL unchanged, no ticker, ``other``) so one bad record never stops a batch.
"""

from __future__ import annotations

import re
import unicodedata
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bizstock.lexicon import DEFAULT_LEXICON, Lexicon
from bizstock.models import EventCategory, NormalizedEvent, RawRecord

# Looser than the 90-char push limit, which notify.py enforces.
_MAX_TITLE_LENGTH = 200

_TRACKING_PARAMS: frozenset[str] = frozenset(
    {
        "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
        "ref", "fbclid", "gclid",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"[^0-9]")


def normalize_title(title: str) -> str:
    """Drop control characters, collapse whitespace runs, trim, cap length."""
    cleaned = "".join(
        ch for ch in title if ch.isspace() or unicodedata.category(ch) != "Cc"
    )
    collapsed = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return collapsed[:_MAX_TITLE_LENGTH].rstrip()


def normalize_url(url: str) -> str:
    """Strip tracking parameters and fragment and force https.

    Anything that does not parse as an absolute URL is returned unchanged.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url

    scheme = "https" if parts.scheme.lower() == "http" else parts.scheme.lower()
    query = urlencode(
        [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key not in _TRACKING_PARAMS
        ]
    )
    return urlunsplit((scheme, parts.netloc, parts.path or "/", query, ""))


def normalize_ticker(code: str) -> str | None:
    """Return a 4-digit code in [1000, 9999], or ``None``."""
    cleaned = _NON_DIGIT_RE.sub("", code)[:4]
    if len(cleaned) != 4:
        return None
    if not 1000 <= int(cleaned) <= 9999:
        return None
    return cleaned


def resolve_tickers(
    codes: list[str],
    text: str,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> list[str]:
    """Validate declared codes and add tickers of company names found in *text*."""
    resolved: set[str] = set()
    for code in codes:
        normalized = normalize_ticker(code)
        if normalized:
            resolved.add(normalized)

    text_folded = text.casefold()
    for company, ticker in lexicon.company_tickers.items():
        if company.casefold() in text_folded:
            normalized = normalize_ticker(ticker)
            if normalized:
                resolved.add(normalized)

    return sorted(resolved)


def classify_category(
    title: str,
    excerpt: str | None = None,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> EventCategory:
    """Return the first category (in declaration order) with a keyword hit."""
    text = f"{title} {excerpt or ''}".lower()
    for category, keywords in lexicon.iter_category_keywords():
        if any(kw.lower() in text for kw in keywords):
            return category
    return EventCategory.OTHER


def source_display_name(source: str, lexicon: Lexicon = DEFAULT_LEXICON) -> str:
    return lexicon.source_names.get(source, source)


def normalize(record: RawRecord, lexicon: Lexicon = DEFAULT_LEXICON) -> NormalizedEvent:
    context = f"{record.title} {record.excerpt or ''}"
    return NormalizedEvent(
        id=record.id,
        tier=record.tier,
        title=normalize_title(record.title),
        url=normalize_url(record.url),
        published_at=record.published_at,
        fetched_at=record.fetched_at,
        ticker_codes=resolve_tickers(record.ticker_codes, context, lexicon),
        category=classify_category(record.title, record.excerpt, lexicon),
        source_name=source_display_name(record.source, lexicon),
        excerpt=record.excerpt,
    )


def normalize_all(
    records: list[RawRecord],
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> list[NormalizedEvent]:
    return [normalize(record, lexicon) for record in records]
