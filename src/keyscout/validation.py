"""Runtime guardrails for bot configuration."""

from __future__ import annotations

from .errors import ConfigError
from .http_client import worst_case_probe_seconds


def validate_database_url(database_url: str) -> None:
    """Reject empty or scheme-less SQLAlchemy URLs."""
    if not database_url:
        raise ConfigError("--database-url must not be empty.")
    if "://" not in database_url:
        raise ConfigError("--database-url must be a SQLAlchemy URL such as sqlite:///keyscout.db.")


def _validate_common(
    *, database_url: str, workers: int, poll_interval: float, request_timeout: float
) -> None:
    validate_database_url(database_url)
    if workers < 1:
        raise ConfigError("--workers must be >= 1.")
    if poll_interval < 0:
        raise ConfigError("--poll-interval must be >= 0.")
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")


def validate_verifier_constraints(
    *,
    database_url: str,
    workers: int,
    max_errors: int,
    lease_seconds: float,
    batch_size: int,
    poll_interval: float,
    request_timeout: float,
    provider_requests_per_minute: int,
) -> None:
    """Validate verifier configuration and raise ConfigError on invalid values."""
    _validate_common(
        database_url=database_url,
        workers=workers,
        poll_interval=poll_interval,
        request_timeout=request_timeout,
    )
    if max_errors < 1:
        raise ConfigError("--max-errors must be >= 1.")
    if lease_seconds <= worst_case_probe_seconds(request_timeout):
        raise ConfigError(
            "--lease-seconds must exceed the longest possible probe "
            f"({worst_case_probe_seconds(request_timeout):.1f}s for --timeout {request_timeout:g})."
        )
    if batch_size < 1:
        raise ConfigError("--batch-size must be >= 1.")
    if provider_requests_per_minute < 1:
        raise ConfigError("--provider-rpm must be >= 1.")


def validate_scraper_constraints(
    *,
    database_url: str,
    workers: int,
    max_queries_per_pass: int,
    results_per_query: int,
    search_requests_per_window: int,
    search_window_seconds: float,
    poll_interval: float,
    request_timeout: float,
) -> None:
    """Validate scraper configuration and raise ConfigError on invalid values."""
    _validate_common(
        database_url=database_url,
        workers=workers,
        poll_interval=poll_interval,
        request_timeout=request_timeout,
    )
    if max_queries_per_pass < 1:
        raise ConfigError("--max-queries must be >= 1.")
    if not 1 <= results_per_query <= 100:
        raise ConfigError("--results-per-query must be between 1 and 100.")
    if search_requests_per_window < 1:
        raise ConfigError("--search-rpw must be >= 1.")
    if search_window_seconds <= 0:
        raise ConfigError("--search-window must be > 0.")
