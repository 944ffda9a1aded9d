"""Citation relevance filtering for provider grounding sources."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from .schemas import Citation

_LOGGER = logging.getLogger("filmcritic.citations")

MAX_CITATIONS = 5

_DENY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        # search engines
        r"^https?://(www\.)?google\.",
        r"^https?://(www\.)?bing\.",
        r"^https?://(www\.)?yahoo\.",
        r"^https?://(www\.)?duckduckgo\.",
        r"^https?://(www\.)?search\.",
        r"^https?://(\w+\.)?wikipedia\.org/wiki/list_of",
        # social media permalinks
        r"facebook\.com/.*/posts/",
        r"(twitter|x)\.com/.*/status/",
        r"instagram\.com/p/",
        r"tiktok\.com/@",
        r"pinterest\.com/pin/",
        r"reddit\.com/r/.*/comments/",
        # bare numeric movie-database pages
        r"/movies?/\d+/?$",
        # shopping
        r"amazon\.[a-z.]+/.*/dp/",
        r"ebay\.[a-z.]+/itm/",
        r"walmart\.com/ip/",
        # aggregators
        r"news\.google\.com",
        r"news\.yahoo\.com",
        # listing pages
        r"/search\?",
        r"/results\?",
        r"/category/",
        r"/tag/",
        r"/archive/",
    )
)

_ALLOW_KEYWORDS: tuple[str, ...] = (
    "imdb",
    "rottentomatoes",
    "metacritic",
    "boxofficemojo",
    "the-numbers",
    "variety",
    "hollywood",
    "deadline",
    "indiewire",
    "screendaily",
    "entertainment",
    "film",
    "movie",
    "cinema",
    "review",
    "critic",
    "analysis",
    "interview",
    "behind",
    "scenes",
    "production",
    "director",
    "actor",
    "actress",
    "cast",
    "crew",
    "budget",
    "box office",
    "awards",
    "festival",
    "premiere",
)


def normalize_uri(uri: str) -> str:
    """Return the deduplication key for a citation uri."""
    cleaned = uri.strip()
    parts = urlsplit(cleaned)
    if not parts.scheme or not parts.netloc:
        return cleaned.lower().rstrip("/")
    host = parts.netloc.lower().removeprefix("www.")
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), host, path, parts.query, ""))


def is_denied(citation: Citation) -> bool:
    url = citation.uri.lower()
    return any(pattern.search(url) for pattern in _DENY_PATTERNS)


def has_allow_signal(citation: Citation) -> bool:
    url = citation.uri.lower()
    title = (citation.title or "").lower()
    return any(keyword in url or keyword in title for keyword in _ALLOW_KEYWORDS)


def merge_citations(*groups: Iterable[Citation]) -> list[Citation]:
    """Concatenate citation groups, keeping the first entry per normalized uri."""
    seen: set[str] = set()
    merged: list[Citation] = []
    for group in groups:
        for citation in group:
            key = normalize_uri(citation.uri)
            if not key or key in seen:
                continue
            seen.add(key)
            merged.append(citation)
    return merged


def filter_citations(citations: Iterable[Citation]) -> list[Citation]:
    kept: list[Citation] = []
    for citation in merge_citations(citations):
        if is_denied(citation) or not has_allow_signal(citation):
            _LOGGER.debug("Dropping citation %s", citation.uri)
            continue
        kept.append(citation)
        if len(kept) == MAX_CITATIONS:
            break
    return kept


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _web_citation(web: Any) -> Citation | None:
    uri = _field(web, "uri")
    if not isinstance(uri, str) or not uri.strip():
        return None
    title = _field(web, "title")
    return Citation(uri=uri, title=title if isinstance(title, str) and title else uri)


def extract_grounding_citations(response: Any) -> list[Citation]:
    """Read grounding sources from a provider response or its grounding metadata.

    Accepts the raw metadata mapping, a response object exposing
    ``candidates[0].grounding_metadata``, or a LiteLLM response carrying
    ``vertex_ai_grounding_metadata``. Missing or odd shapes give an empty list.
    """
    metadata = _grounding_metadata(response)
    if metadata is None:
        return []

    citations: list[Citation] = []
    attribution = _field(metadata, "groundingAttribution") or _field(
        metadata, "grounding_attribution"
    )
    if attribution is not None:
        for web in _field(attribution, "web") or ():
            citation = _web_citation(web)
            if citation is not None:
                citations.append(citation)

    if not citations:
        chunks = _field(metadata, "groundingChunks") or _field(metadata, "grounding_chunks") or ()
        for chunk in chunks:
            web = _field(chunk, "web")
            citation = _web_citation(web) if web is not None else None
            if citation is not None:
                citations.append(citation)
    return citations


def _grounding_metadata(response: Any) -> Any:
    if response is None:
        return None
    for name in ("groundingChunks", "grounding_chunks", "groundingAttribution"):
        if _field(response, name) is not None:
            return response

    vertex = _field(response, "vertex_ai_grounding_metadata")
    if vertex:
        return vertex[0] if isinstance(vertex, list) else vertex

    candidates = _field(response, "candidates")
    if candidates:
        first = candidates[0]
        return _field(first, "groundingMetadata") or _field(first, "grounding_metadata")
    return None
