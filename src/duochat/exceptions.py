"""Domain exception hierarchy for the dual-provider chat orchestrator."""

from __future__ import annotations


class DuoChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class ConfigValidationError(DuoChatError):
    """Raised when configuration cannot be validated safely."""


class SnapshotError(DuoChatError):
    """Raised when the dashboard snapshot cannot be read."""


class EmptyMessageError(DuoChatError):
    """Raised when a blank message is submitted."""


class CoordinatorBusyError(DuoChatError):
    """Raised when a turn is submitted while another one is still streaming."""


class ProviderError(DuoChatError):
    """Base class for failures confined to a single provider."""

    def __init__(self, message: str, *, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider


class ProviderConfigurationError(ProviderError):
    """Raised locally, before any network call, when a credential is missing."""

    def __init__(self, message: str, *, provider: str = "", credential: str = "") -> None:
        super().__init__(message, provider=provider)
        self.credential = credential


class ProviderTransportError(ProviderError):
    """Raised on non-2xx responses and connection failures."""

    def __init__(
        self, message: str, *, provider: str = "", status_code: int | None = None
    ) -> None:
        super().__init__(message, provider=provider)
        self.status_code = status_code


class ProviderSessionError(ProviderError):
    """Raised when a stateful provider session cannot be (re)built."""


class ProviderStreamError(ProviderError):
    """Raised when the provider reports an error inside the response stream."""
