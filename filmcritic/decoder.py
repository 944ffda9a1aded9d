"""Decode free-form model answers into typed records.

Every decoder here is an ordered strip-and-extract pipeline: each step looks
for one kind of marker, records what it found and removes the matched text
from the working string before the next step runs. Nothing in this module
raises on malformed model output; a marker that is missing or unreadable
leaves its field as ``None``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from json_repair import repair_json
from pydantic import BaseModel, ConfigDict, ValidationError

from .citations import filter_citations, merge_citations
from .classifier import ErrorKind
from .schemas import (
    MAX_SCORE,
    Citation,
    FinalReport,
    FinancialEstimate,
    NarrativeShape,
    ParsedAnalysis,
    PlotPoint,
    SocialSnippets,
    Suggestions,
    clamp,
)

_LOGGER = logging.getLogger("filmcritic.decoder")

_FLAGS = re.IGNORECASE | re.MULTILINE
_NUMBER = r"[-+]?(?:\d+(?:\.\d+)?|\.\d+)"
_OUT_OF_MAX = rf"\s*/\s*{int(MAX_SCORE)}(?:\.0+)?(?!\.?\d)(?!/)"


def _label_line(label: str) -> re.Pattern[str]:
    """Whole line ``Label: value``, tolerating list markers and markdown emphasis."""
    return re.compile(
        rf"^[ \t>*_-]*{label}[ \t*_]*:[ \t*_]*(?P<value>\S[^\n]*?)[ \t*_]*$\n?",
        _FLAGS,
    )


# -----------------------------------------------------------------------------
# Working text
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class _Working:
    text: str
    stripped: bool = False

    def remove(self, pattern: re.Pattern[str]) -> None:
        text, count = pattern.subn("", self.text)
        if count:
            self.text = text
            self.stripped = True

    def cut(self, start: int, end: int) -> None:
        self.text = self.text[:start] + self.text[end:]
        self.stripped = True

    def result(self) -> str:
        text = self.text
        if self.stripped:
            text = re.sub(r"[ \t]+$", "", text, flags=re.MULTILINE)
            text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()


def _strip_emphasis(value: str) -> str:
    return value.strip().strip("*_").strip()


# -----------------------------------------------------------------------------
# Step 1: narrative shape block
# -----------------------------------------------------------------------------

_SHAPE_BLOCK = re.compile(
    r"-{3}\s*VONNEGUT STORY SHAPE START\s*-{3}(?P<body>.*?)-{3}\s*VONNEGUT STORY SHAPE END\s*-{3}[ \t]*\n?",
    re.IGNORECASE | re.DOTALL,
)
_SHAPE_NAME = _label_line(r"Vonnegut Shape")
_SHAPE_JUSTIFICATION = re.compile(
    r"^[ \t>*_-]*Shape Justification[ \t*_]*:[ \t*_]*(?P<value>.*?)(?=^[ \t>*_-]*Plot Points[ \t*_]*:|\Z)",
    _FLAGS | re.DOTALL,
)
_PLOT_POINTS = re.compile(
    r"Plot Points[ \t*_]*:\s*\[(?P<value>.*)\]",
    _FLAGS | re.DOTALL,
)
_PLOT_POINT = re.compile(
    rf"\(\s*(?P<time>{_NUMBER})\s*,\s*(?P<fortune>{_NUMBER})\s*,\s*"
    r"(?P<quote>['\"])(?P<description>.*?)(?P=quote)\s*\)",
    re.DOTALL,
)


def parse_plot_points(text: str) -> list[PlotPoint]:
    points: list[PlotPoint] = []
    for match in _PLOT_POINT.finditer(text):
        description = " ".join(match.group("description").split())
        if not description:
            continue
        points.append(
            PlotPoint(
                time=float(match.group("time")),
                fortune=float(match.group("fortune")),
                description=description,
            )
        )
    return points


def _parse_shape_block(body: str) -> NarrativeShape | None:
    name_match = _SHAPE_NAME.search(body)
    justification_match = _SHAPE_JUSTIFICATION.search(body)
    points_match = _PLOT_POINTS.search(body)
    if name_match is None or justification_match is None or points_match is None:
        _LOGGER.debug("Narrative shape block is missing a name, justification or point list.")
        return None

    justification = _strip_emphasis(justification_match.group("value"))
    points_text = points_match.group("value")
    points = parse_plot_points(points_text)
    if not points:
        _LOGGER.warning(
            "%s: narrative shape point list yielded no points: %r",
            ErrorKind.INVALID_RESPONSE_FORMAT.value,
            points_text.strip()[:200],
        )
        return None
    if not justification:
        return None
    return NarrativeShape(
        name=_strip_emphasis(name_match.group("value")),
        justification=justification,
        plot_points=points,
    )


def _extract_narrative_shape(work: _Working) -> NarrativeShape | None:
    match = _SHAPE_BLOCK.search(work.text)
    if match is None:
        return None
    shape = _parse_shape_block(match.group("body"))
    work.remove(_SHAPE_BLOCK)
    return shape


# -----------------------------------------------------------------------------
# Step 2: labelled single-line fields
# -----------------------------------------------------------------------------

_DIRECTOR = _label_line(r"Director")
_MAIN_CAST = _label_line(r"Main Cast")


def split_cast(value: str) -> list[str]:
    return [name for name in (_strip_emphasis(part) for part in value.split(",")) if name]


def _extract_line(work: _Working, pattern: re.Pattern[str]) -> str | None:
    match = pattern.search(work.text)
    if match is None:
        return None
    work.remove(pattern)
    return _strip_emphasis(match.group("value")) or None


def _fill_line(work: _Working, pattern: re.Pattern[str], current: str | None) -> str | None:
    """Strip any further ``pattern`` lines, keeping ``current`` when already set."""
    found = _extract_line(work, pattern)
    return current if current is not None else found


# -----------------------------------------------------------------------------
# Step 3: score
# -----------------------------------------------------------------------------

_SCORE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"\**[ \t]*Suggested[ \t]+Score[ \t]*\**[ \t]*:[ \t]*\**[ \t]*(?P<value>{_NUMBER}){_OUT_OF_MAX}\**",
        re.IGNORECASE,
    ),
    re.compile(
        rf"\**[ \t]*Score[ \t]*\**[ \t]*:[ \t]*\**[ \t]*(?P<value>{_NUMBER}){_OUT_OF_MAX}\**",
        re.IGNORECASE,
    ),
    re.compile(rf"(?<![\w.])(?P<value>{_NUMBER}){_OUT_OF_MAX}"),
)


def parse_score(text: str) -> float | None:
    for pattern in _SCORE_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        try:
            value = float(match.group("value"))
        except ValueError:
            continue
        return clamp(value, 0.0, MAX_SCORE)
    return None


def _extract_score(work: _Working) -> float | None:
    score = parse_score(work.text)
    if score is None:
        return None
    # Every score-looking fragment goes, so a second pass over the body finds none.
    for pattern in _SCORE_PATTERNS:
        work.remove(pattern)
    return score


# -----------------------------------------------------------------------------
# Step 4: suggestions
# -----------------------------------------------------------------------------

_SUGGESTIONS_HEADING = re.compile(
    r"^[ \t>#*_-]*Potential Enhancements[ \t*_]*:[ \t*_]*",
    _FLAGS,
)
_OVERALL_SUGGESTIONS_HEADING = re.compile(
    r"^[ \t>#*_-]*Overall Improvement Opportunities[ \t*_]*:[ \t*_]*",
    _FLAGS,
)
_SECTION_BOUNDARY = re.compile(
    r"^[ \t]*(?:-{3,}|#{1,6}[ \t]|\*\*[^*\n]+\*\*[ \t]*:?[ \t]*$)",
    re.MULTILINE,
)
_BULLET = re.compile(r"^(?:[-•*+]|\d+[.)])\s+")


def parse_suggestions(section: str | None) -> Suggestions | None:
    """List form when every non-empty line is a bullet or numbered item."""
    if section is None:
        return None
    cleaned = section.strip()
    if not cleaned:
        return None
    lines = [line.strip() for line in cleaned.splitlines() if line.strip()]
    if all(_BULLET.match(line) for line in lines):
        return [_BULLET.sub("", line, count=1).strip() for line in lines]
    return cleaned


def _extract_section(work: _Working, heading: re.Pattern[str]) -> str | None:
    """Remove every section under ``heading``; return the first one's text."""
    first: str | None = None
    while True:
        match = heading.search(work.text)
        if match is None:
            return first
        boundary = _SECTION_BOUNDARY.search(work.text, match.end())
        end = boundary.start() if boundary is not None else len(work.text)
        if first is None:
            first = work.text[match.end() : end]
        work.cut(match.start(), end)


# -----------------------------------------------------------------------------
# Analysis decoder
# -----------------------------------------------------------------------------


def decode(raw_text: str, *, citations: Iterable[Citation] = ()) -> ParsedAnalysis:
    """Decode one layer analysis answer.

    ``citations`` come from the provider's grounding metadata rather than the
    text and are passed through the relevance filter.
    """
    work = _Working(raw_text if isinstance(raw_text, str) else "")
    narrative_shape = _extract_narrative_shape(work)
    director = _extract_line(work, _DIRECTOR)
    cast_value = _extract_line(work, _MAIN_CAST)
    score = _extract_score(work)
    if score is not None:
        # A score cut from the front of a line can leave a label at its start.
        director = _fill_line(work, _DIRECTOR, director)
        cast_value = _fill_line(work, _MAIN_CAST, cast_value)
    cast = split_cast(cast_value) if cast_value else None
    suggestions = parse_suggestions(_extract_section(work, _SUGGESTIONS_HEADING))
    return ParsedAnalysis(
        body_text=work.result(),
        director=director,
        cast=cast or None,
        score=score,
        suggestions=suggestions,
        narrative_shape=narrative_shape,
        citations=filter_citations(citations),
    )


# -----------------------------------------------------------------------------
# Financial estimate
# -----------------------------------------------------------------------------

_CODE_FENCE = re.compile(r"^```[\w-]*[ \t]*\n?(?P<body>.*?)\n?[ \t]*```$", re.DOTALL)
_BUDGET_LINE = _label_line(r"(?:Estimated[ \t]+)?(?:Production[ \t]+)?Budget")
_CURRENCY_LINE = _label_line(r"Currency")
_DURATION_LINE = _label_line(r"(?:Production[ \t]+|Approximate[ \t]+)?Duration")
_AMOUNT = re.compile(
    r"(?P<low>\d[\d,]*(?:\.\d+)?)"
    r"(?:\s*(?:-|–|to)\s*\D{0,2}?(?P<high>\d[\d,]*(?:\.\d+)?))?"
    r"\s*(?P<scale>million|billion|thousand|crore|lakh|bn|mn|m|b|k)?\b",
    re.IGNORECASE,
)
_SCALES = {
    "thousand": 1e3,
    "k": 1e3,
    "lakh": 1e5,
    "million": 1e6,
    "mn": 1e6,
    "m": 1e6,
    "crore": 1e7,
    "billion": 1e9,
    "bn": 1e9,
    "b": 1e9,
}
_CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "₹": "INR", "¥": "JPY"}
_CURRENCY_CODE = re.compile(
    r"\b(USD|EUR|GBP|INR|JPY|CNY|KRW|CAD|AUD|Rs)\b\.?",
    re.IGNORECASE,
)
_DEFAULT_CURRENCY = "USD"


class _FinancialPayload(BaseModel):
    budget: float | str | None = None
    currency: str | None = None
    duration: str | None = None
    production_duration: str | None = None
    sources: list[Any] | None = None

    model_config = ConfigDict(extra="ignore")

    def citations(self) -> list[Citation]:
        found: list[Citation] = []
        for source in self.sources or ():
            if isinstance(source, str):
                source = {"uri": source}
            if not isinstance(source, dict):
                continue
            uri = source.get("uri") or source.get("url")
            if not isinstance(uri, str) or not uri.strip():
                continue
            title = source.get("title")
            found.append(Citation(uri=uri.strip(), title=title if isinstance(title, str) else None))
        return found


def _detect_currency(text: str) -> str | None:
    for symbol, code in _CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    match = _CURRENCY_CODE.search(text)
    if match:
        code = match.group(1).upper()
        return "INR" if code == "RS" else code
    if re.search(r"\b(crore|lakh)\b", text, re.IGNORECASE):
        return "INR"
    return None


def parse_budget(value: Any) -> tuple[float | None, str | None]:
    """Return ``(amount, currency)`` from a number or a phrase like "$10-15 million"."""
    if isinstance(value, bool) or value is None:
        return None, None
    if isinstance(value, (int, float)):
        return (float(value), None) if value > 0 else (None, None)
    text = str(value).strip()
    match = _AMOUNT.search(text)
    if match is None:
        return None, _detect_currency(text)
    try:
        low = float(match.group("low").replace(",", ""))
        high_text = match.group("high")
        high = float(high_text.replace(",", "")) if high_text else low
    except ValueError:
        return None, _detect_currency(text)
    scale = _SCALES.get((match.group("scale") or "").lower(), 1.0)
    amount = (low + high) / 2 * scale
    return (amount if amount > 0 else None), _detect_currency(text)


def _unfence(text: str) -> str:
    stripped = text.strip()
    match = _CODE_FENCE.match(stripped)
    return match.group("body").strip() if match else stripped


def _json_object(text: str) -> dict[str, Any] | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1:
        return None
    candidate = text[start : end + 1] if end > start else text[start:]
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        _LOGGER.debug("Financial payload is not valid JSON; attempting repair.")
        parsed = repair_json(candidate, return_objects=True)
    return parsed if isinstance(parsed, dict) else None


def _financial_payload(text: str) -> _FinancialPayload | None:
    data = _json_object(text)
    if data is None:
        return None
    try:
        return _FinancialPayload.model_validate(data)
    except ValidationError as exc:
        _LOGGER.warning("Ignoring malformed financial payload: %s", exc)
        return None


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = _strip_emphasis(value)
    if not cleaned or cleaned.lower() in {"null", "none", "n/a", "unknown"}:
        return None
    return cleaned


def decode_financials(raw_text: str, *, citations: Iterable[Citation] = ()) -> FinancialEstimate:
    text = _unfence(raw_text if isinstance(raw_text, str) else "")
    payload = _financial_payload(text)

    budget: float | None = None
    currency: str | None = None
    duration: str | None = None
    sources: list[Citation] = []
    if payload is not None:
        budget, currency = parse_budget(payload.budget)
        currency = _optional_text(payload.currency) or currency
        duration = _optional_text(payload.duration or payload.production_duration)
        sources = payload.citations()

    work = _Working(text)
    if budget is None:
        line = _extract_line(work, _BUDGET_LINE)
        if line is not None:
            budget, line_currency = parse_budget(line)
            currency = currency or line_currency
    if currency is None:
        currency = _optional_text(_extract_line(work, _CURRENCY_LINE))
    if duration is None:
        duration = _optional_text(_extract_line(work, _DURATION_LINE))

    if budget is not None and currency is None:
        currency = _DEFAULT_CURRENCY
    return FinancialEstimate(
        budget=budget,
        currency=currency.upper() if currency and len(currency) <= 4 else currency,
        production_duration=duration,
        sources=filter_citations(merge_citations(citations, sources)),
    )


# -----------------------------------------------------------------------------
# Social snippets and final report
# -----------------------------------------------------------------------------


def _sentinel_block(name: str) -> re.Pattern[str]:
    return re.compile(
        rf"-{{3}}\s*{name} START\s*-{{3}}(?P<body>.*?)-{{3}}\s*{name} END\s*-{{3}}[ \t]*\n?",
        re.IGNORECASE | re.DOTALL,
    )


_TWITTER_BLOCK = _sentinel_block("TWITTER POST")
_LINKEDIN_BLOCK = _sentinel_block("LINKEDIN POST")
_SOCIAL_HEADING = re.compile(r"\*{0,2}[ \t]*SOCIAL SNIPPETS[ \t]*\*{0,2}[ \t]*:[ \t]*\*{0,2}", re.I)
_REPORT_HEADING = re.compile(r"\*{0,2}[ \t]*FINAL REPORT[ \t]*\*{0,2}[ \t]*:[ \t]*\*{0,2}", re.I)
_TWITTER_LINE = _label_line(r"Twitter")
_LINKEDIN_LABEL = re.compile(
    r"^[ \t>*_-]*LinkedIn[ \t*_]*:[ \t*_]*(?P<value>.*?)(?=^[ \t>*_-]*Twitter[ \t*_]*:|\Z)",
    _FLAGS | re.DOTALL,
)


def _take_block(work: _Working, pattern: re.Pattern[str]) -> str | None:
    match = pattern.search(work.text)
    if match is None:
        return None
    work.remove(pattern)
    return match.group("body").strip() or None


def _extract_social(work: _Working) -> SocialSnippets:
    short_form = _take_block(work, _TWITTER_BLOCK)
    long_form = _take_block(work, _LINKEDIN_BLOCK)

    heading = _SOCIAL_HEADING.search(work.text)
    if heading is not None:
        section = work.text[heading.end() :]
        work.cut(heading.start(), len(work.text))
        if short_form is None:
            match = _TWITTER_LINE.search(section)
            short_form = _strip_emphasis(match.group("value")) if match else None
        if long_form is None:
            match = _LINKEDIN_LABEL.search(section)
            long_form = match.group("value").strip() if match else None

    return SocialSnippets(short_form_post=short_form or None, long_form_post=long_form or None)


def decode_social_snippets(raw_text: str) -> SocialSnippets:
    return _extract_social(_Working(raw_text if isinstance(raw_text, str) else ""))


def decode_final_report(raw_text: str) -> FinalReport:
    work = _Working(raw_text if isinstance(raw_text, str) else "")
    social = _extract_social(work)

    heading = _REPORT_HEADING.search(work.text)
    if heading is not None:
        work.cut(0, heading.end())

    overall: str | None = None
    matches = list(_OVERALL_SUGGESTIONS_HEADING.finditer(work.text))
    if matches:
        last = matches[-1]
        overall = work.text[last.end() :]
        work.cut(last.start(), len(work.text))

    report_text = re.sub(r"-{3,}\s*$", "", work.result()).strip()
    return FinalReport(
        report_text=report_text,
        social_snippets=social,
        overall_suggestions=parse_suggestions(overall),
    )
