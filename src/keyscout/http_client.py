"""HTTP session factories for providers and search backends."""

from __future__ import annotations

from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

PROVIDER_CONNECT_RETRIES = 2
PROVIDER_BACKOFF_FACTOR = 0.5


def worst_case_probe_seconds(request_timeout: float) -> float:
    """Upper bound on one probe: every connect attempt times out, plus all backoff sleeps."""
    attempts = PROVIDER_CONNECT_RETRIES + 1
    backoff = sum(PROVIDER_BACKOFF_FACTOR * 2**n for n in range(PROVIDER_CONNECT_RETRIES))
    return request_timeout * attempts + backoff


def make_provider_session(user_agent: str, pool_size: int = 10) -> Session:
    """Create a pooled session for one provider type.

    Only connection-level failures are retried; every status code reaches the
    provider's classifier untouched.
    """
    session = Session()
    session.headers.update({"User-Agent": user_agent})
    retry = Retry(
        total=PROVIDER_CONNECT_RETRIES,
        connect=PROVIDER_CONNECT_RETRIES,
        read=0,
        status=0,
        backoff_factor=PROVIDER_BACKOFF_FACTOR,
        allowed_methods=frozenset({"GET", "POST"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=1, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def make_search_session(user_agent: str) -> Session:
    """Create a search session with retry/backoff defaults."""
    session = Session()
    session.headers.update({"User-Agent": user_agent})
    retry = Retry(
        total=3,
        backoff_factor=0.6,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=frozenset({"GET", "POST"}),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
