from __future__ import annotations


class FetchCoreError(Exception):
    """Base class for errors raised by fetchcore."""


class ResourceNotFoundError(FetchCoreError, KeyError):
    """No stored resource exists for the given URI."""

    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource not found: {uri}")
        self.uri = uri

    def __str__(self) -> str:
        return self.args[0]


class ValidationError(FetchCoreError, ValueError):
    """Caller input was rejected before any backend was contacted."""


class ProviderFailure(FetchCoreError):
    """A single backend returned an unusable response."""


class ConfigurationError(FetchCoreError, ValueError):
    """A setting has a value fetchcore does not understand."""
