from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .classifier import ErrorKind

MAX_SCORE = 10.0

ModelCategory = Literal["premium", "standard", "basic", "legacy"]
Suggestions = str | list[str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# -----------------------------------------------------------------------------
# Model catalog and validation
# -----------------------------------------------------------------------------


class ModelCandidate(_Frozen):
    id: str
    display_name: str
    category: ModelCategory = "standard"
    is_deprecated: bool = False
    description: str = ""


class DiscoveryPattern(_Frozen):
    pattern: str
    priority: int
    description: str = ""

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid discovery pattern {value!r}: {exc}") from exc
        return value


class RemoteModel(BaseModel):
    """One entry of the provider's model listing."""

    name: str
    display_name: str | None = Field(default=None, alias="displayName")
    supported_generation_methods: list[str] = Field(
        default_factory=list, alias="supportedGenerationMethods"
    )

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @property
    def model_id(self) -> str:
        return self.name.removeprefix("models/")


class ValidationResult(_Frozen):
    model_id: str
    is_valid: bool
    response_time_ms: float | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    checked_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())


# -----------------------------------------------------------------------------
# Decoded responses
# -----------------------------------------------------------------------------


class Citation(_Frozen):
    uri: str
    title: str | None = None


class PlotPoint(_Frozen):
    time: float
    fortune: float
    description: str

    @field_validator("time")
    @classmethod
    def _clamp_time(cls, value: float) -> float:
        return clamp(value, 0.0, 1.0)

    @field_validator("fortune")
    @classmethod
    def _clamp_fortune(cls, value: float) -> float:
        return clamp(value, -1.0, 1.0)


class NarrativeShape(_Frozen):
    name: str
    justification: str
    plot_points: list[PlotPoint] = Field(min_length=1)


class ParsedAnalysis(_Frozen):
    body_text: str
    director: str | None = None
    cast: list[str] | None = None
    score: float | None = Field(default=None, ge=0.0, le=MAX_SCORE)
    suggestions: Suggestions | None = None
    narrative_shape: NarrativeShape | None = None
    citations: list[Citation] = Field(default_factory=list)


class FinancialEstimate(_Frozen):
    budget: float | None = None
    currency: str | None = None
    production_duration: str | None = None
    sources: list[Citation] = Field(default_factory=list)


class SocialSnippets(_Frozen):
    short_form_post: str | None = None
    long_form_post: str | None = None


class FinalReport(_Frozen):
    report_text: str
    social_snippets: SocialSnippets = Field(default_factory=SocialSnippets)
    overall_suggestions: Suggestions | None = None
