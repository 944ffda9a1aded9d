from __future__ import annotations

import json

import pytest

from filmcritic.decoder import (
    decode_final_report,
    decode_financials,
    decode_social_snippets,
    parse_budget,
)
from filmcritic.schemas import Citation


def test_financials_from_json_payload() -> None:
    payload = {
        "budget": 25000000,
        "currency": "usd",
        "duration": "18 months",
        "sources": [
            {"uri": "https://www.boxofficemojo.com/title/tt0001", "title": "Box Office Mojo"},
            "https://twitter.com/someone/status/1",
        ],
    }

    estimate = decode_financials(json.dumps(payload))

    assert estimate.budget == 25_000_000
    assert estimate.currency == "USD"
    assert estimate.production_duration == "18 months"
    assert [source.uri for source in estimate.sources] == [
        "https://www.boxofficemojo.com/title/tt0001"
    ]


def test_financials_from_fenced_json_with_phrase_budget() -> None:
    text = '```json\n{"budget": "$10-15 million", "currency": null, "production_duration": "2 years"}\n```'

    estimate = decode_financials(text)

    assert estimate.budget == pytest.approx(12_500_000)
    assert estimate.currency == "USD"
    assert estimate.production_duration == "2 years"


def test_financials_repair_sloppy_json() -> None:
    estimate = decode_financials('Here you go: {"budget": 5000000, "currency": "EUR", "duration": "9 months",}')

    assert estimate.budget == 5_000_000
    assert estimate.currency == "EUR"
    assert estimate.production_duration == "9 months"


def test_financials_from_labelled_lines() -> None:
    estimate = decode_financials("**Estimated Budget:** ₹50 crore\nDuration: 14 months\n")

    assert estimate.budget == pytest.approx(500_000_000)
    assert estimate.currency == "INR"
    assert estimate.production_duration == "14 months"


def test_financials_default_currency_only_with_budget() -> None:
    assert decode_financials("Budget: 3.5 million").currency == "USD"

    empty = decode_financials("No figures were published.")
    assert empty.budget is None
    assert empty.currency is None
    assert empty.production_duration is None
    assert empty.sources == []


def test_financials_merge_caller_citations_with_payload_sources() -> None:
    estimate = decode_financials(
        '{"budget": 1000000, "sources": [{"url": "https://variety.com/budget-story"}]}',
        citations=[
            Citation(uri="https://www.variety.com/budget-story/", title="Variety"),
            Citation(uri="https://deadline.com/film-interview"),
        ],
    )

    assert [source.uri for source in estimate.sources] == [
        "https://www.variety.com/budget-story/",
        "https://deadline.com/film-interview",
    ]


@pytest.mark.parametrize(
    ("value", "amount", "currency"),
    [
        (2_000_000, 2_000_000.0, None),
        ("between 20 to 30 million USD", 25_000_000.0, "USD"),
        ("40 crore", 400_000_000.0, "INR"),
        ("£750k", 750_000.0, "GBP"),
        ("1,200,000", 1_200_000.0, None),
        ("undisclosed", None, None),
        (None, None, None),
        (0, None, None),
    ],
)
def test_parse_budget(value: object, amount: float | None, currency: str | None) -> None:
    parsed_amount, parsed_currency = parse_budget(value)

    assert parsed_amount == (pytest.approx(amount) if amount is not None else None)
    assert parsed_currency == currency


def test_social_snippets_from_sentinel_blocks() -> None:
    snippets = decode_social_snippets(
        "---TWITTER POST START---\nShort take #film\n---TWITTER POST END---\n"
        "---LINKEDIN POST START---\nLonger take.\n\nSecond paragraph.\n---LINKEDIN POST END---"
    )

    assert snippets.short_form_post == "Short take #film"
    assert snippets.long_form_post == "Longer take.\n\nSecond paragraph."


def test_social_snippets_from_labelled_section() -> None:
    snippets = decode_social_snippets(
        "**SOCIAL SNIPPETS:**\nLinkedIn: A longer post\nover two lines.\nTwitter: Quick hit"
    )

    assert snippets.short_form_post == "Quick hit"
    assert snippets.long_form_post == "A longer post\nover two lines."


def test_social_snippets_absent() -> None:
    snippets = decode_social_snippets("Nothing to share.")

    assert snippets.short_form_post is None
    assert snippets.long_form_post is None


def test_final_report_splits_report_suggestions_and_social() -> None:
    report = decode_final_report(
        "Preamble the model added.\n"
        "**FINAL REPORT:**\nThe film works.\n\nIt could be shorter.\n---\n"
        "Overall Improvement Opportunities:\n- Sharper edit\n- Bigger finale\n\n"
        "---TWITTER POST START---\nTweet text\n---TWITTER POST END---\n"
    )

    assert report.report_text == "The film works.\n\nIt could be shorter."
    assert report.overall_suggestions == ["Sharper edit", "Bigger finale"]
    assert report.social_snippets.short_form_post == "Tweet text"
    assert report.social_snippets.long_form_post is None


def test_final_report_without_markers_is_plain_text() -> None:
    report = decode_final_report("Just a verdict.")

    assert report.report_text == "Just a verdict."
    assert report.overall_suggestions is None
    assert report.social_snippets.short_form_post is None
