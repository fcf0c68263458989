"""Runtime configuration models."""

from __future__ import annotations

from dataclasses import dataclass

from .validation import validate_scraper_constraints, validate_verifier_constraints

DEFAULT_USER_AGENT = "KeyScout-Verifier/1.0"
DEFAULT_DATABASE_URL = "sqlite:///keyscout.db"
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_WORKERS = 8
DEFAULT_POLL_INTERVAL = 60.0

DEFAULT_MAX_ERRORS = 5
DEFAULT_LEASE_SECONDS = 120.0
DEFAULT_BATCH_SIZE = 200
DEFAULT_RECHECK_HOURS = 24.0
DEFAULT_RETRY_MINUTES = 30.0
DEFAULT_PROVIDER_RPM = 60

DEFAULT_QUERY_INTERVAL_HOURS = 6.0
DEFAULT_MAX_QUERIES_PER_PASS = 50
# GitHub code search allows 10 authenticated requests per minute per token.
DEFAULT_SEARCH_REQUESTS_PER_WINDOW = 10
DEFAULT_SEARCH_WINDOW_SECONDS = 60.0
DEFAULT_RESULTS_PER_QUERY = 100


@dataclass(frozen=True)
class VerifierConfig:
    """Validated configuration used by the verifier bot."""

    database_url: str = DEFAULT_DATABASE_URL
    workers: int = DEFAULT_WORKERS
    max_errors: int = DEFAULT_MAX_ERRORS
    lease_seconds: float = DEFAULT_LEASE_SECONDS
    batch_size: int = DEFAULT_BATCH_SIZE
    recheck_hours: float = DEFAULT_RECHECK_HOURS
    retry_minutes: float = DEFAULT_RETRY_MINUTES
    provider_requests_per_minute: int = DEFAULT_PROVIDER_RPM
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_verifier_constraints(
            database_url=self.database_url,
            workers=self.workers,
            max_errors=self.max_errors,
            lease_seconds=self.lease_seconds,
            batch_size=self.batch_size,
            poll_interval=self.poll_interval,
            request_timeout=self.request_timeout,
            provider_requests_per_minute=self.provider_requests_per_minute,
        )


@dataclass(frozen=True)
class ScraperConfig:
    """Validated configuration used by the scraper bot."""

    database_url: str = DEFAULT_DATABASE_URL
    workers: int = DEFAULT_WORKERS
    query_interval_hours: float = DEFAULT_QUERY_INTERVAL_HOURS
    max_queries_per_pass: int = DEFAULT_MAX_QUERIES_PER_PASS
    search_requests_per_window: int = DEFAULT_SEARCH_REQUESTS_PER_WINDOW
    search_window_seconds: float = DEFAULT_SEARCH_WINDOW_SECONDS
    results_per_query: int = DEFAULT_RESULTS_PER_QUERY
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_scraper_constraints(
            database_url=self.database_url,
            workers=self.workers,
            max_queries_per_pass=self.max_queries_per_pass,
            results_per_query=self.results_per_query,
            search_requests_per_window=self.search_requests_per_window,
            search_window_seconds=self.search_window_seconds,
            poll_interval=self.poll_interval,
            request_timeout=self.request_timeout,
        )
