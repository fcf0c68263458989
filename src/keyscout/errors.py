"""Custom exceptions for the key scanning domain."""


class KeyScoutError(Exception):
    """Base exception for this project."""


class ConfigError(KeyScoutError):
    """Raised when runtime configuration is invalid."""


class ProviderError(KeyScoutError):
    """Raised when provider definitions are inconsistent."""


class SearchError(KeyScoutError):
    """Raised when a search backend call fails unexpectedly."""


class SearchRateLimitedError(SearchError):
    """Raised when a search backend reports the token is out of quota."""


class StoreError(KeyScoutError):
    """Raised when the candidate store cannot complete an operation."""
