"""
Exception taxonomy shared by every pipeline stage.

ConfigurationError      missing/invalid task input or secrets; fatal before work starts
ProviderError           non-success from the place-search or LLM API; aborts one query / one lead
PersistenceError        row-level write failure; logged and counted
FatalPersistenceError   store unreachable; propagates and fails the job
"""

from __future__ import annotations

from typing import Optional


class DealflowError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(DealflowError):
    pass


class ProviderError(DealflowError):
    """Raised when an upstream API call fails in a non-recoverable way."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, kind: str = "provider"):
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind

    @property
    def is_throttle(self) -> bool:
        return self.status_code == 429


class PersistenceError(DealflowError):
    pass


class FatalPersistenceError(DealflowError):
    pass
