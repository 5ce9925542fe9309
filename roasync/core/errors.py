"""ROASYNC — Error Taxonomy.

Only authentication/configuration errors and exhausted rate limits reach the
external caller. Per-item failures are collected in ``SyncResult.errors`` and
non-finite metrics are clamped and logged as ``DataIntegrityWarning``.
"""

from typing import List, Optional


class ReconcileError(Exception):
    """Base class for all ROASYNC errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthError(ReconcileError):
    """Missing/invalid integration or token. Never retried."""

    status_code = 401


class InvalidInput(ReconcileError):
    """Malformed request parameters, rejected before any external call."""

    status_code = 400


class NotFound(ReconcileError):
    """Referenced entity does not exist for this user."""

    status_code = 404


class ProviderError(ReconcileError):
    """Generic provider failure that is not throttling."""

    status_code = 502

    def __init__(
        self,
        message: str,
        provider: str = "",
        status: int = 0,
        error_code: int = 0,
    ):
        self.provider = provider
        self.status = status
        self.error_code = error_code
        super().__init__(message)


class RateLimited(ProviderError):
    """Provider throttling detected; carries a retry-after hint in seconds."""

    status_code = 429

    def __init__(
        self,
        message: str,
        provider: str = "",
        retry_after: int = 300,
        error_code: int = 0,
    ):
        self.retry_after = retry_after
        super().__init__(message, provider=provider, status=429, error_code=error_code)


class PartialSyncFailure(ReconcileError):
    """Raised by callers that demand a clean run when some items failed."""

    status_code = 207

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class DataIntegrityWarning(UserWarning):
    """A non-finite metric was computed from malformed input and clamped to 0."""
