"""
Custom Exceptions for FeedHub.

Provides specific exception types for the failure modes of ingestion and
feed generation. The API layer maps each type to an HTTP status in main.py.
"""

from typing import List, Dict, Optional


class FeedHubError(Exception):
    """Base exception for all FeedHub errors."""
    pass


# =============================================================================
# Lookup & Validation Exceptions
# =============================================================================

class NotFoundError(FeedHubError):
    """Raised when a source, collection or content item does not exist."""

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        msg = f"{resource} not found"
        if identifier is not None:
            msg = f"{resource} '{identifier}' not found"
        super().__init__(msg)


class ValidationError(FeedHubError):
    """Raised when filter, preference or source input is malformed."""

    def __init__(self, message: str, field: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        self.message = message
        self.errors = list(errors or [])
        if field and not self.errors:
            self.errors.append({"field": field, "message": message})
        super().__init__(message)


class ConfigurationError(FeedHubError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, setting: str, reason: str = None):
        self.setting = setting
        self.reason = reason
        msg = f"Configuration error for '{setting}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# =============================================================================
# Provider Exceptions
# =============================================================================

class ProviderError(FeedHubError):
    """Raised when a content provider fails terminally for a request."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {message}")


class UnsupportedProviderError(ProviderError):
    """Raised when no adapter is registered for a provider type."""

    def __init__(self, provider_type: str):
        self.provider_type = provider_type
        super().__init__(provider_type, f"No adapter registered for provider type {provider_type}")


class RateLimitedError(FeedHubError):
    """Raised when a provider throttles requests (HTTP 429 or quota exhaustion)."""

    def __init__(self, provider: str, retry_after: Optional[int] = None):
        self.provider = provider
        self.retry_after = retry_after
        msg = f"{provider} rate limit exceeded"
        if retry_after:
            msg += f", retry after {retry_after} seconds"
        super().__init__(msg)
