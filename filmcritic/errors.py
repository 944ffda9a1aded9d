from __future__ import annotations


class FilmCriticError(Exception):
    """Base error for the filmcritic library."""


class InvalidConfigError(FilmCriticError):
    """Raised when a model catalog or settings file cannot be parsed or validated."""


class ProviderError(FilmCriticError):
    """Raised when the model provider fails to produce a response."""


class ProviderNotAvailableError(FilmCriticError):
    """Raised when the provider client library is not installed."""
