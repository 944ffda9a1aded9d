from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidConfigError
from .schemas import DiscoveryPattern, ModelCandidate

_LOGGER = logging.getLogger("filmcritic.config")

CATALOG_PATH_ENV = "FILMCRITIC_CATALOG_PATH"
STORE_PATH_ENV = "FILMCRITIC_STORE_PATH"
DEFAULT_API_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_PROBE_TIMEOUT_S = 30.0
UNMATCHED_PRIORITY = 999


class ModelCatalog(BaseModel):
    """Static, process-wide description of the models we know about."""

    version: str = "1"
    preferred: str
    fallback: str
    legacy: str
    models: tuple[ModelCandidate, ...]
    model_priority: tuple[str, ...] = ()
    discovery_patterns: tuple[DiscoveryPattern, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    @model_validator(mode="after")
    def _defaults_are_known(self) -> "ModelCatalog":
        known = {model.id for model in self.models}
        missing = [
            model_id
            for model_id in (self.preferred, self.fallback, self.legacy, *self.model_priority)
            if model_id not in known
        ]
        if missing:
            raise ValueError(f"catalog references unknown models: {', '.join(missing)}")
        return self

    def ids(self) -> frozenset[str]:
        return frozenset(model.id for model in self.models)

    def get(self, model_id: str) -> ModelCandidate | None:
        for model in self.models:
            if model.id == model_id:
                return model
        return None


class ResolverSettings(BaseModel):
    preferred_model: str
    fallback_model: str
    legacy_model: str
    model_priority: tuple[str, ...] = ()
    discovery_patterns: tuple[DiscoveryPattern, ...] = ()
    discovery_enabled: bool = True
    probe_timeout_s: float = Field(default=DEFAULT_PROBE_TIMEOUT_S, gt=0)
    test_prompt: str = 'Say "test" and nothing else.'
    expected_response: str = "test"
    required_generation_method: str = "generateContent"
    api_base_url: str = DEFAULT_API_BASE_URL

    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())


DEFAULT_CATALOG = ModelCatalog(
    version="2025.10",
    preferred="gemini-2.5-flash",
    fallback="gemini-2.0-flash",
    legacy="gemini-1.5-flash",
    models=(
        ModelCandidate(
            id="gemini-2.5-pro",
            display_name="Gemini 2.5 Pro",
            category="premium",
            description="Deepest reasoning; slower and more quota hungry.",
        ),
        ModelCandidate(
            id="gemini-2.5-flash",
            display_name="Gemini 2.5 Flash",
            category="standard",
            description="Recommended default for film analysis.",
        ),
        ModelCandidate(
            id="gemini-2.0-flash",
            display_name="Gemini 2.0 Flash",
            category="standard",
        ),
        ModelCandidate(
            id="gemini-2.5-flash-lite",
            display_name="Gemini 2.5 Flash-Lite",
            category="basic",
        ),
        ModelCandidate(
            id="gemini-1.5-flash",
            display_name="Gemini 1.5 Flash",
            category="legacy",
        ),
        ModelCandidate(
            id="gemini-1.5-pro",
            display_name="Gemini 1.5 Pro",
            category="legacy",
            is_deprecated=True,
        ),
    ),
    model_priority=(
        "gemini-2.5-flash",
        "gemini-2.0-flash",
        "gemini-2.5-pro",
        "gemini-2.5-flash-lite",
        "gemini-1.5-flash",
    ),
    discovery_patterns=(
        DiscoveryPattern(pattern=r"gemini-2\.5-flash", priority=1),
        DiscoveryPattern(pattern=r"gemini-2\.5-pro", priority=2),
        DiscoveryPattern(pattern=r"gemini-2\.0-flash", priority=3),
        DiscoveryPattern(pattern=r"gemini-.*-flash", priority=4),
        DiscoveryPattern(pattern=r"gemini-.*-pro", priority=5),
        DiscoveryPattern(pattern=r"gemini", priority=9),
    ),
)


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    value = environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        parsed = float(value)
    except ValueError:
        _LOGGER.warning("Ignoring non-numeric %s=%r.", name, value)
        return default
    return parsed if parsed > 0 else default


def _env_str(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "").strip()
    return value or None


def load_catalog(path: Path | None = None) -> ModelCatalog:
    if path is None:
        return DEFAULT_CATALOG
    try:
        return ModelCatalog.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise InvalidConfigError(f"Cannot read model catalog {path}: {exc}") from exc
    except ValidationError as exc:
        raise InvalidConfigError(f"Invalid model catalog {path}: {exc}") from exc


def load_settings(
    catalog: ModelCatalog = DEFAULT_CATALOG,
    environ: Mapping[str, str] | None = None,
) -> ResolverSettings:
    env = os.environ if environ is None else environ
    return ResolverSettings(
        preferred_model=_env_str(env, "FILMCRITIC_PREFERRED_MODEL") or catalog.preferred,
        fallback_model=_env_str(env, "FILMCRITIC_FALLBACK_MODEL") or catalog.fallback,
        legacy_model=_env_str(env, "FILMCRITIC_LEGACY_MODEL") or catalog.legacy,
        model_priority=catalog.model_priority,
        discovery_patterns=catalog.discovery_patterns,
        discovery_enabled=_env_bool(env, "FILMCRITIC_ENABLE_MODEL_DISCOVERY", True),
        probe_timeout_s=_env_float(
            env, "FILMCRITIC_MODEL_VALIDATION_TIMEOUT", DEFAULT_PROBE_TIMEOUT_S
        ),
        api_base_url=_env_str(env, "FILMCRITIC_API_BASE_URL") or DEFAULT_API_BASE_URL,
    )


def load_from_env(environ: Mapping[str, str] | None = None) -> tuple[ModelCatalog, ResolverSettings]:
    env = os.environ if environ is None else environ
    catalog_path = _env_str(env, CATALOG_PATH_ENV)
    catalog = load_catalog(Path(catalog_path).expanduser() if catalog_path else None)
    return catalog, load_settings(catalog, env)


def default_store_path(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    configured = _env_str(env, STORE_PATH_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "filmcritic" / "selection.sqlite"
