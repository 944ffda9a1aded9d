"""Pick a Gemini model id that actually answers for a given API key.

Candidates are tried strictly in order, one probe at a time, and the first
one that answers the test prompt wins. Probe outcomes are cached per model id
for the life of the resolver; a cached success is reused without touching the
network. When every configured candidate fails, the provider's live model
list is ranked against the discovery patterns and tried the same way.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import threading
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from .classifier import ErrorKind, classify, rejects_credential
from .config import UNMATCHED_PRIORITY, ModelCatalog, ResolverSettings, default_store_path, load_from_env
from .logging_utils import mask_api_key
from .schemas import DiscoveryPattern, ModelCandidate, RemoteModel, ValidationResult

_LOGGER = logging.getLogger("filmcritic.resolver")
_SNIPPET_CHARS = 120


class ModelService(Protocol):
    async def generate_text(
        self,
        model_id: str,
        prompt: str,
        *,
        api_key: str,
        timeout: float | None = None,
    ) -> str: ...

    async def list_models(self, api_key: str) -> list[RemoteModel]: ...


class SelectionStore(Protocol):
    async def get_selection(self) -> str | None: ...

    async def set_selection(self, model_id: str) -> None: ...

    async def clear_selection(self) -> None: ...

    async def save_validation(self, result: ValidationResult) -> None: ...

    async def load_validations(self) -> dict[str, ValidationResult]: ...


@dataclass
class ResolutionState:
    preferred_model: str
    fallback_model: str
    legacy_model: str
    discovery_patterns: tuple[DiscoveryPattern, ...]
    discovered_models: set[str] = field(default_factory=set)
    last_discovery_at: datetime | None = None
    validation_cache: dict[str, ValidationResult] = field(default_factory=dict)
    blocked_credentials: set[str] = field(default_factory=set)
    selected_model: str | None = None


def _fingerprint(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]


def _unique(model_ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for model_id in model_ids:
        if model_id and model_id not in seen:
            seen.add(model_id)
            ordered.append(model_id)
    return ordered


def _snippet(text: str) -> str:
    cleaned = " ".join(text.split())
    if len(cleaned) <= _SNIPPET_CHARS:
        return cleaned
    return f"{cleaned[:_SNIPPET_CHARS]}..."


class ModelResolver:
    def __init__(
        self,
        *,
        catalog: ModelCatalog,
        settings: ResolverSettings,
        service: ModelService,
        store: SelectionStore | None = None,
    ) -> None:
        self._catalog = catalog
        self._settings = settings
        self._service = service
        self._store = store
        self._state = ResolutionState(
            preferred_model=settings.preferred_model,
            fallback_model=settings.fallback_model,
            legacy_model=settings.legacy_model,
            discovery_patterns=settings.discovery_patterns,
        )
        self._compiled_patterns = tuple(
            (re.compile(pattern.pattern, re.IGNORECASE), pattern.priority)
            for pattern in settings.discovery_patterns
        )

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def settings(self) -> ResolverSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Catalog queries
    # ------------------------------------------------------------------

    def candidates(self) -> list[str]:
        return _unique(
            (
                self._state.preferred_model,
                self._state.fallback_model,
                self._state.legacy_model,
                *self._settings.model_priority,
            )
        )

    def available_models(self) -> list[ModelCandidate]:
        return [model for model in self._catalog.models if not model.is_deprecated]

    def model_info(self, model_id: str) -> ModelCandidate | None:
        return self._catalog.get(model_id)

    def is_known(self, model_id: str) -> bool:
        return (
            model_id in self._catalog.ids()
            or model_id in self.candidates()
            or model_id in self._state.discovered_models
        )

    def prioritize(self, model_ids: Iterable[str]) -> list[str]:
        """Order ids by their best matching discovery pattern; ties keep input order."""

        def best_priority(model_id: str) -> int:
            matched = [priority for regex, priority in self._compiled_patterns if regex.search(model_id)]
            return min(matched, default=UNMATCHED_PRIORITY)

        ranked = sorted(enumerate(_unique(model_ids)), key=lambda item: (best_priority(item[1]), item[0]))
        return [model_id for _, model_id in ranked]

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def validate_model(self, api_key: str, model_id: str) -> ValidationResult:
        timeout = self._settings.probe_timeout_s
        started = time.monotonic()
        error: str | None = None
        error_kind: ErrorKind | None = None
        try:
            text = await asyncio.wait_for(
                self._service.generate_text(
                    model_id,
                    self._settings.test_prompt,
                    api_key=api_key,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = f"Probe timed out after {timeout:g}s"
            error_kind = ErrorKind.TIMEOUT
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            error_kind = classify(exc)
            _LOGGER.debug("Probe of %s raised %s", model_id, type(exc).__name__, exc_info=True)
        else:
            if self._settings.expected_response.lower() not in text.lower():
                error = f'Unexpected response: "{_snippet(text)}"'
                error_kind = ErrorKind.INVALID_RESPONSE_FORMAT

        result = ValidationResult(
            model_id=model_id,
            is_valid=error is None,
            response_time_ms=round((time.monotonic() - started) * 1000, 1),
            error=error,
            error_kind=error_kind,
        )
        await self._record(result)
        if result.is_valid:
            _LOGGER.info("Model %s validation PASSED (%.0fms)", model_id, result.response_time_ms)
        elif error_kind is ErrorKind.QUOTA_EXCEEDED:
            _LOGGER.warning("Model %s is over quota: %s", model_id, error)
        else:
            _LOGGER.info(
                "Model %s validation FAILED [%s]: %s",
                model_id,
                error_kind.value if error_kind else "unknown",
                error,
            )
        return result

    async def _record(self, result: ValidationResult) -> None:
        self._state.validation_cache[result.model_id] = result
        if self._store is None:
            return
        try:
            await self._store.save_validation(result)
        except Exception as exc:
            _LOGGER.warning("Failed to persist validation of %s: %s", result.model_id, exc, exc_info=True)

    async def _first_valid(
        self,
        api_key: str,
        model_ids: Iterable[str],
        tried: set[str],
    ) -> str | None:
        fingerprint = _fingerprint(api_key)
        for model_id in _iter_untried(model_ids, tried):
            cached = self._state.validation_cache.get(model_id)
            if cached is not None and cached.is_valid:
                _LOGGER.debug("Reusing cached validation for %s", model_id)
                return model_id
            tried.add(model_id)
            result = await self.validate_model(api_key, model_id)
            if result.is_valid:
                return model_id
            if result.error_kind is not ErrorKind.INVALID_CREDENTIAL:
                continue
            if not rejects_credential(result.error or ""):
                _LOGGER.warning("%s refused the request; trying the next model.", model_id)
                continue
            self._state.blocked_credentials.add(fingerprint)
            _LOGGER.warning(
                "API key %s was rejected; not trying further models.",
                mask_api_key(api_key),
            )
            return None
        return None

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover_models(self, api_key: str) -> list[str]:
        if not self._settings.discovery_enabled:
            return []
        _LOGGER.info("Discovering available models...")
        try:
            remote = await self._service.list_models(api_key)
        except Exception as exc:
            _LOGGER.warning("Model discovery failed: %s", exc, exc_info=True)
            return []

        method = self._settings.required_generation_method
        discovered = _unique(
            model.model_id for model in remote if method in model.supported_generation_methods
        )
        self._state.discovered_models.update(discovered)
        self._state.last_discovery_at = datetime.now(timezone.utc)
        _LOGGER.info("Discovered %d models supporting %s", len(discovered), method)
        return discovered

    async def check_for_newer_models(self, api_key: str) -> list[str]:
        """Discovered ids that the static catalog does not know about yet."""
        known = self._catalog.ids()
        return [model_id for model_id in await self.discover_models(api_key) if model_id not in known]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, api_key: str) -> str | None:
        if not api_key or not api_key.strip():
            _LOGGER.warning("Cannot resolve a model without an API key.")
            return None
        fingerprint = _fingerprint(api_key)
        if fingerprint in self._state.blocked_credentials:
            _LOGGER.warning(
                "API key %s was previously rejected; skipping resolution.",
                mask_api_key(api_key),
            )
            return None

        tried: set[str] = set()
        model_id = await self._first_valid(api_key, self.candidates(), tried)
        if (
            model_id is None
            and self._settings.discovery_enabled
            and fingerprint not in self._state.blocked_credentials
        ):
            discovered = await self.discover_models(api_key)
            model_id = await self._first_valid(api_key, self.prioritize(discovered), tried)

        if model_id is None:
            _LOGGER.error("No working models found for API key %s", mask_api_key(api_key))
            return None
        await self._remember(model_id)
        _LOGGER.info("Selected model %s", model_id)
        return model_id

    async def _remember(self, model_id: str) -> None:
        self._state.selected_model = model_id
        if self._store is None:
            return
        try:
            await self._store.set_selection(model_id)
        except Exception as exc:
            _LOGGER.warning("Failed to persist model selection: %s", exc, exc_info=True)

    async def current_selection(self) -> str | None:
        if self._store is not None:
            try:
                persisted = await self._store.get_selection()
            except Exception as exc:
                _LOGGER.warning("Failed to read stored model selection: %s", exc, exc_info=True)
                persisted = None
            if persisted is not None:
                if self.is_known(persisted):
                    return persisted
                _LOGGER.info("Cleared stale stored model selection: %s", persisted)
                try:
                    await self._store.clear_selection()
                except Exception as exc:
                    _LOGGER.warning("Failed to clear stored model selection: %s", exc, exc_info=True)
        return self._state.selected_model

    async def set_selection(self, model_id: str) -> bool:
        if not self.is_known(model_id):
            _LOGGER.error("Attempted to select unknown model: %s", model_id)
            return False
        await self._remember(model_id)
        return True

    async def warm_cache(self) -> int:
        """Load probe results mirrored by an earlier session; returns how many were added."""
        if self._store is None:
            return 0
        try:
            stored = await self._store.load_validations()
        except Exception as exc:
            _LOGGER.warning("Failed to load stored validations: %s", exc, exc_info=True)
            return 0
        added = 0
        for model_id, result in stored.items():
            if model_id not in self._state.validation_cache:
                self._state.validation_cache[model_id] = result
                added += 1
        return added

    def unblock(self, api_key: str) -> None:
        self._state.blocked_credentials.discard(_fingerprint(api_key))

    def reset(self) -> None:
        self._state.validation_cache.clear()
        self._state.discovered_models.clear()
        self._state.blocked_credentials.clear()
        self._state.last_discovery_at = None
        self._state.selected_model = None

    def configuration_summary(self) -> dict[str, Any]:
        return {
            "version": self._catalog.version,
            "selected_model": self._state.selected_model,
            "preferred_model": self._state.preferred_model,
            "fallback_model": self._state.fallback_model,
            "legacy_model": self._state.legacy_model,
            "candidates": self.candidates(),
            "available_models": len(self.available_models()),
            "discovered_models": len(self._state.discovered_models),
            "last_discovery": (
                self._state.last_discovery_at.isoformat() if self._state.last_discovery_at else None
            ),
            "validation_results": {
                model_id: result.is_valid
                for model_id, result in self._state.validation_cache.items()
            },
            "discovery_enabled": self._settings.discovery_enabled,
            "probe_timeout_s": self._settings.probe_timeout_s,
        }


def _iter_untried(model_ids: Iterable[str], tried: set[str]) -> Iterator[str]:
    for model_id in model_ids:
        if model_id not in tried:
            yield model_id


_default_resolver: ModelResolver | None = None
_default_lock = threading.Lock()


def get_resolver() -> ModelResolver:
    """Process-wide resolver built from the environment on first use."""
    global _default_resolver
    with _default_lock:
        if _default_resolver is None:
            from .providers.litellm import LiteLLMModelService
            from .store import SqliteSelectionStore

            catalog, settings = load_from_env()
            _default_resolver = ModelResolver(
                catalog=catalog,
                settings=settings,
                service=LiteLLMModelService(api_base_url=settings.api_base_url),
                store=SqliteSelectionStore(default_store_path()),
            )
        return _default_resolver
