import logging
import threading
from datetime import timedelta
from pathlib import Path

import pytest

from keyscout.config import ScraperConfig
from keyscout.errors import SearchError, SearchRateLimitedError
from keyscout.models import ApiType, Blob, DiscoverySource, SearchProvider, utcnow
from keyscout.registry import ProviderRegistry
from keyscout.scraper import Scraper
from keyscout.store import SETTING_ALLOW_SCRAPER, SqlCandidateStore

GITHUB_KEY = "ghp_" + "Ab1" * 12
GITLAB_KEY = "glpat-" + "Xy9_" * 6


class FakeBackend:
    def __init__(
        self,
        search_provider: SearchProvider = SearchProvider.GITHUB,
        *,
        text: str = f"GITHUB_TOKEN={GITHUB_KEY}",
        error: Exception | None = None,
    ) -> None:
        self.search_provider = search_provider
        self.text = text
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def search(self, query: str, token: str) -> list[Blob]:
        self.calls.append((query, token))
        if self.error is not None:
            raise self.error
        source = DiscoverySource(self.search_provider, query, f"https://example.com/{query}")
        return [Blob(text=self.text, source=source)]


@pytest.fixture
def store(tmp_path: Path) -> SqlCandidateStore:
    candidate_store = SqlCandidateStore.from_url(f"sqlite:///{tmp_path / 'keys.db'}")
    candidate_store.create_schema()
    return candidate_store


def _scraper(
    store: SqlCandidateStore, backends: list[FakeBackend], **overrides: object
) -> Scraper:
    options: dict[str, object] = {"database_url": "sqlite://", "workers": 1, "show_progress": False}
    options.update(overrides)
    return Scraper(
        ScraperConfig(**options),  # type: ignore[arg-type]
        store=store,
        registry=ProviderRegistry.default(logger=logging.getLogger("test")),
        backends=backends,  # type: ignore[arg-type]
        logger=logging.getLogger("test"),
    )


def _due(store: SqlCandidateStore) -> list[str]:
    return [q.query for q in store.due_queries(utcnow() - timedelta(hours=1), limit=10)]


def test_run_once_records_candidates_and_marks_queries(store: SqlCandidateStore) -> None:
    store.add_search_query("GITHUB_TOKEN")
    store.add_search_query("ghp_")
    store.add_search_token("tok-a", SearchProvider.GITHUB)
    backend = FakeBackend()
    scraper = _scraper(store, [backend])

    summary = scraper.run_once()

    assert (summary.queries, summary.executed, summary.skipped) == (2, 2, 0)
    assert (summary.blobs, summary.matches, summary.created) == (2, 2, 1)
    assert {token for _, token in backend.calls} == {"tok-a"}

    candidate = store.find_candidate(ApiType.GITHUB, GITHUB_KEY)
    assert candidate is not None
    assert candidate.times_found == 2
    assert candidate.search_provider is SearchProvider.GITHUB

    # Executed queries are not due again until the interval passes.
    assert scraper.run_once().queries == 0


def test_each_backend_uses_its_own_tokens(store: SqlCandidateStore) -> None:
    store.add_search_query("TOKEN")
    store.add_search_token("gh-token", SearchProvider.GITHUB)
    store.add_search_token("gl-token", SearchProvider.GITLAB)
    github = FakeBackend()
    gitlab = FakeBackend(SearchProvider.GITLAB, text=f"token: {GITLAB_KEY}")

    summary = _scraper(store, [github, gitlab]).run_once()

    assert summary.executed == 1
    assert summary.created == 2
    assert github.calls == [("TOKEN", "gh-token")]
    assert gitlab.calls == [("TOKEN", "gl-token")]
    gitlab_candidate = store.find_candidate(ApiType.GITLAB, GITLAB_KEY)
    assert gitlab_candidate is not None
    assert gitlab_candidate.search_provider is SearchProvider.GITLAB


def test_queries_without_tokens_are_skipped_and_stay_due(store: SqlCandidateStore) -> None:
    store.add_search_query("GITHUB_TOKEN")
    backend = FakeBackend()

    summary = _scraper(store, [backend]).run_once()

    assert (summary.executed, summary.skipped) == (0, 1)
    assert backend.calls == []
    assert _due(store) == ["GITHUB_TOKEN"]


def test_token_quota_limits_dispatch_per_window(store: SqlCandidateStore) -> None:
    store.add_search_query("first")
    store.add_search_query("second")
    store.add_search_token("tok-a", SearchProvider.GITHUB)
    backend = FakeBackend()

    summary = _scraper(store, [backend], search_requests_per_window=1).run_once()

    assert (summary.executed, summary.skipped) == (1, 1)
    assert len(backend.calls) == 1
    assert len(_due(store)) == 1


@pytest.mark.parametrize(
    "error", [SearchError("boom"), SearchRateLimitedError("throttled")]
)
def test_search_failures_are_isolated_per_query(
    store: SqlCandidateStore, error: Exception
) -> None:
    store.add_search_query("GITHUB_TOKEN")
    token_id = store.add_search_token("tok-a", SearchProvider.GITHUB)
    backend = FakeBackend(error=error)

    summary = _scraper(store, [backend]).run_once()

    assert (summary.executed, summary.skipped, summary.failed) == (0, 1, 0)
    assert _due(store) == ["GITHUB_TOKEN"]
    assert store.list_candidates() == []
    token = store.enabled_tokens(SearchProvider.GITHUB)[0]
    assert token.id == token_id
    if isinstance(error, SearchRateLimitedError):
        assert token.last_used_at is not None
    else:
        assert token.last_used_at is None


def test_disabled_scraper_does_nothing(store: SqlCandidateStore) -> None:
    store.add_search_query("GITHUB_TOKEN")
    store.add_search_token("tok-a", SearchProvider.GITHUB)
    store.set_setting(SETTING_ALLOW_SCRAPER, False)
    backend = FakeBackend()
    scraper = _scraper(store, [backend], poll_interval=0)

    assert scraper.run_once().queries == 0
    scraper.run_forever(threading.Event())
    assert backend.calls == []
