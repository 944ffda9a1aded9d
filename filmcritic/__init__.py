from __future__ import annotations

from .citations import (
    MAX_CITATIONS,
    extract_grounding_citations,
    filter_citations,
    merge_citations,
    normalize_uri,
)
from .classifier import ErrorKind, classify, rejects_credential, user_message
from .config import (
    DEFAULT_CATALOG,
    ModelCatalog,
    ResolverSettings,
    load_catalog,
    load_from_env,
    load_settings,
)
from .decoder import decode, decode_final_report, decode_financials, decode_social_snippets
from .errors import FilmCriticError, InvalidConfigError, ProviderError, ProviderNotAvailableError
from .logging_utils import configure_logging as _configure_logging
from .resolver import ModelResolver, ModelService, ResolutionState, SelectionStore, get_resolver
from .schemas import (
    MAX_SCORE,
    Citation,
    DiscoveryPattern,
    FinalReport,
    FinancialEstimate,
    ModelCandidate,
    NarrativeShape,
    ParsedAnalysis,
    PlotPoint,
    RemoteModel,
    SocialSnippets,
    ValidationResult,
)

__all__ = [
    "DEFAULT_CATALOG",
    "MAX_CITATIONS",
    "MAX_SCORE",
    "Citation",
    "DiscoveryPattern",
    "ErrorKind",
    "FilmCriticError",
    "FinalReport",
    "FinancialEstimate",
    "InvalidConfigError",
    "ModelCandidate",
    "ModelCatalog",
    "ModelResolver",
    "ModelService",
    "NarrativeShape",
    "ParsedAnalysis",
    "PlotPoint",
    "ProviderError",
    "ProviderNotAvailableError",
    "RemoteModel",
    "ResolutionState",
    "ResolverSettings",
    "SelectionStore",
    "SocialSnippets",
    "ValidationResult",
    "classify",
    "decode",
    "decode_final_report",
    "decode_financials",
    "decode_social_snippets",
    "extract_grounding_citations",
    "filter_citations",
    "get_resolver",
    "load_catalog",
    "load_from_env",
    "load_settings",
    "merge_citations",
    "normalize_uri",
    "rejects_credential",
    "user_message",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
