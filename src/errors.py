from __future__ import annotations

from typing import Any


class CostBasisError(Exception):
    pass


class NetworkError(CostBasisError):
    """Feed unreachable, timed out, non-2xx or unparsable."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ProviderError(CostBasisError):
    """The feed answered with an explicit error payload."""

    def __init__(self, message: str, *, provider: str, payload: Any | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.provider_message = message
        self.payload = payload


class SellValidationError(CostBasisError, ValueError):
    pass


class ImportCancelledError(CostBasisError):
    pass


__all__ = [
    "CostBasisError",
    "ImportCancelledError",
    "NetworkError",
    "ProviderError",
    "SellValidationError",
]
