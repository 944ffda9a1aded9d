from __future__ import annotations

from types import SimpleNamespace

import pytest

from filmcritic.citations import (
    MAX_CITATIONS,
    extract_grounding_citations,
    filter_citations,
    merge_citations,
    normalize_uri,
)
from filmcritic.schemas import Citation


def _uris(citations: list[Citation]) -> list[str]:
    return [citation.uri for citation in citations]


def test_filter_drops_social_posts_and_keeps_movie_database() -> None:
    kept = filter_citations(
        [
            Citation(uri="https://facebook.com/x/posts/1"),
            Citation(uri="https://imdb.com/title/tt123"),
        ]
    )

    assert _uris(kept) == ["https://imdb.com/title/tt123"]


@pytest.mark.parametrize(
    "uri",
    [
        "https://www.google.com/search?q=dune+review",
        "https://duckduckgo.com/?q=film",
        "https://twitter.com/critic/status/12345",
        "https://x.com/critic/status/12345",
        "https://www.reddit.com/r/movies/comments/abc/review",
        "https://www.amazon.com/Dune-Blu-ray/dp/B0000",
        "https://example-film-blog.com/category/reviews",
        "https://example-film-blog.com/tag/horror",
        "https://www.themoviedb.org/movie/438631",
        "https://news.google.com/articles/film",
    ],
)
def test_filter_denies_low_value_pages_even_with_allow_signals(uri: str) -> None:
    assert filter_citations([Citation(uri=uri, title="Film review")]) == []


def test_filter_excludes_unknown_sources_by_default() -> None:
    assert filter_citations([Citation(uri="https://example.com/page", title="Home")]) == []


def test_filter_allows_on_title_keywords() -> None:
    citation = Citation(uri="https://example.com/p/991", title="Box Office weekend report")

    assert filter_citations([citation]) == [citation]


def test_filter_caps_and_preserves_order() -> None:
    citations = [Citation(uri=f"https://variety.com/review-{index}") for index in range(8)]

    kept = filter_citations(citations)

    assert len(kept) == MAX_CITATIONS
    assert kept == citations[:MAX_CITATIONS]


def test_filter_deduplicates_by_normalized_uri() -> None:
    kept = filter_citations(
        [
            Citation(uri="https://www.variety.com/review/", title="first"),
            Citation(uri="HTTPS://variety.com/review", title="second"),
        ]
    )

    assert [citation.title for citation in kept] == ["first"]


def test_normalize_uri() -> None:
    assert normalize_uri(" https://WWW.Example.com/a/b/?x=1#frag ") == "https://example.com/a/b?x=1"
    assert normalize_uri("not a url/") == "not a url"


def test_merge_keeps_first_occurrence_across_groups() -> None:
    merged = merge_citations(
        [Citation(uri="https://a.com/x", title="one")],
        [Citation(uri="https://a.com/x/", title="two"), Citation(uri="https://b.com")],
    )

    assert [citation.title for citation in merged] == ["one", None]


def test_extract_from_grounding_chunks_mapping() -> None:
    metadata = {
        "groundingChunks": [
            {"web": {"uri": "https://variety.com/a", "title": "Variety"}},
            {"retrievedContext": {"uri": "gs://bucket/doc"}},
            {"web": {"uri": "https://deadline.com/b"}},
        ]
    }

    citations = extract_grounding_citations(metadata)

    assert citations == [
        Citation(uri="https://variety.com/a", title="Variety"),
        Citation(uri="https://deadline.com/b", title="https://deadline.com/b"),
    ]


def test_extract_prefers_grounding_attribution() -> None:
    metadata = {
        "groundingAttribution": {"web": [{"uri": "https://indiewire.com/c", "title": "IndieWire"}]},
        "groundingChunks": [{"web": {"uri": "https://variety.com/a"}}],
    }

    assert _uris(extract_grounding_citations(metadata)) == ["https://indiewire.com/c"]


def test_extract_from_response_objects() -> None:
    chunk = SimpleNamespace(web=SimpleNamespace(uri="https://variety.com/a", title="Variety"))
    candidate = SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=[chunk]))
    response = SimpleNamespace(candidates=[candidate])

    assert _uris(extract_grounding_citations(response)) == ["https://variety.com/a"]


def test_extract_from_litellm_vertex_metadata() -> None:
    response = SimpleNamespace(
        vertex_ai_grounding_metadata=[{"groundingChunks": [{"web": {"uri": "https://imdb.com/title/tt1"}}]}]
    )

    assert _uris(extract_grounding_citations(response)) == ["https://imdb.com/title/tt1"]


@pytest.mark.parametrize("response", [None, {}, SimpleNamespace(), {"candidates": []}])
def test_extract_handles_missing_metadata(response: object) -> None:
    assert extract_grounding_citations(response) == []
