from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from filmcritic.config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_CATALOG,
    DEFAULT_PROBE_TIMEOUT_S,
    ModelCatalog,
    ResolverSettings,
    default_store_path,
    load_catalog,
    load_from_env,
    load_settings,
)
from filmcritic.errors import InvalidConfigError
from filmcritic.schemas import DiscoveryPattern, ModelCandidate


def test_default_settings_follow_catalog() -> None:
    settings = load_settings(DEFAULT_CATALOG, environ={})

    assert settings.preferred_model == "gemini-2.5-flash"
    assert settings.fallback_model == "gemini-2.0-flash"
    assert settings.legacy_model == "gemini-1.5-flash"
    assert settings.discovery_enabled is True
    assert settings.probe_timeout_s == DEFAULT_PROBE_TIMEOUT_S
    assert settings.api_base_url == DEFAULT_API_BASE_URL


def test_environment_overrides() -> None:
    settings = load_settings(
        DEFAULT_CATALOG,
        environ={
            "FILMCRITIC_PREFERRED_MODEL": "gemini-exp-1206",
            "FILMCRITIC_FALLBACK_MODEL": " ",
            "FILMCRITIC_ENABLE_MODEL_DISCOVERY": "false",
            "FILMCRITIC_MODEL_VALIDATION_TIMEOUT": "5.5",
            "FILMCRITIC_API_BASE_URL": "http://localhost:8080",
        },
    )

    assert settings.preferred_model == "gemini-exp-1206"
    assert settings.fallback_model == "gemini-2.0-flash"
    assert settings.discovery_enabled is False
    assert settings.probe_timeout_s == 5.5
    assert settings.api_base_url == "http://localhost:8080"


@pytest.mark.parametrize("value", ["soon", "-1", "0"])
def test_bad_timeout_falls_back(value: str, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="filmcritic.config"):
        settings = load_settings(DEFAULT_CATALOG, environ={"FILMCRITIC_MODEL_VALIDATION_TIMEOUT": value})

    assert settings.probe_timeout_s == DEFAULT_PROBE_TIMEOUT_S
    if value == "soon":
        assert "FILMCRITIC_MODEL_VALIDATION_TIMEOUT" in caplog.text


def test_settings_are_frozen_and_strict() -> None:
    settings = load_settings(DEFAULT_CATALOG, environ={})

    with pytest.raises(ValidationError):
        settings.probe_timeout_s = 1.0  # type: ignore[misc]
    with pytest.raises(ValidationError):
        ResolverSettings(preferred_model="a", fallback_model="b", legacy_model="c", probe_timeout_s=0)
    with pytest.raises(ValidationError):
        ResolverSettings(preferred_model="a", fallback_model="b", legacy_model="c", colour="red")


def test_catalog_rejects_unknown_defaults() -> None:
    with pytest.raises(ValidationError, match="unknown models: ghost"):
        ModelCatalog(
            preferred="m1",
            fallback="m1",
            legacy="ghost",
            models=(ModelCandidate(id="m1", display_name="One"),),
        )


def test_discovery_pattern_must_compile() -> None:
    with pytest.raises(ValidationError, match="invalid discovery pattern"):
        DiscoveryPattern(pattern="gemini-(", priority=1)


def test_load_catalog_from_file(tmp_path: Path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps(
            {
                "version": "test",
                "preferred": "a",
                "fallback": "b",
                "legacy": "b",
                "models": [
                    {"id": "a", "display_name": "A", "category": "premium"},
                    {"id": "b", "display_name": "B"},
                ],
                "discovery_patterns": [{"pattern": "a", "priority": 1}],
            }
        ),
        encoding="utf-8",
    )

    catalog, settings = load_from_env({"FILMCRITIC_CATALOG_PATH": str(path)})

    assert catalog.version == "test"
    assert catalog.ids() == frozenset({"a", "b"})
    assert catalog.get("a") is not None
    assert catalog.get("zzz") is None
    assert settings.preferred_model == "a"
    assert settings.discovery_patterns == catalog.discovery_patterns


def test_load_catalog_errors(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigError, match="Cannot read"):
        load_catalog(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text('{"preferred": "a"}', encoding="utf-8")
    with pytest.raises(InvalidConfigError, match="Invalid model catalog"):
        load_catalog(broken)


def test_load_catalog_without_path_uses_default() -> None:
    assert load_catalog() is DEFAULT_CATALOG


def test_default_store_path(tmp_path: Path) -> None:
    configured = tmp_path / "state.sqlite"

    assert default_store_path({"FILMCRITIC_STORE_PATH": str(configured)}) == configured
    assert default_store_path({}).name == "selection.sqlite"
