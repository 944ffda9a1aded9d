from __future__ import annotations

import pytest
from fakes import FakeModelService

from filmcritic.config import ModelCatalog, ResolverSettings
from filmcritic.resolver import ModelResolver, SelectionStore
from filmcritic.schemas import DiscoveryPattern, ModelCandidate


@pytest.fixture
def catalog() -> ModelCatalog:
    return ModelCatalog(
        preferred="m1",
        fallback="m2",
        legacy="m3",
        models=(
            ModelCandidate(id="m1", display_name="Model One", category="premium"),
            ModelCandidate(id="m2", display_name="Model Two"),
            ModelCandidate(id="m3", display_name="Model Three", category="legacy"),
            ModelCandidate(id="m0", display_name="Retired", category="legacy", is_deprecated=True),
        ),
        discovery_patterns=(
            DiscoveryPattern(pattern=r"flash", priority=1),
            DiscoveryPattern(pattern=r"pro", priority=2),
        ),
    )


@pytest.fixture
def settings(catalog: ModelCatalog) -> ResolverSettings:
    return ResolverSettings(
        preferred_model=catalog.preferred,
        fallback_model=catalog.fallback,
        legacy_model=catalog.legacy,
        discovery_patterns=catalog.discovery_patterns,
        discovery_enabled=False,
        probe_timeout_s=1.0,
    )


@pytest.fixture
def make_resolver(catalog: ModelCatalog, settings: ResolverSettings):
    def _make(
        service: FakeModelService,
        *,
        store: SelectionStore | None = None,
        **overrides: object,
    ) -> ModelResolver:
        return ModelResolver(
            catalog=catalog,
            settings=settings.model_copy(update=overrides),
            service=service,
            store=store,
        )

    return _make
