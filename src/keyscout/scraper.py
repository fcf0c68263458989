"""Scraper bot: dispatches due search queries and records extracted candidates."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from tqdm import tqdm

from .config import ScraperConfig
from .errors import SearchError, SearchRateLimitedError
from .extraction import record_blob
from .http_client import make_search_session
from .models import SearchBackend, SearchProvider, SearchQuery, utcnow
from .providers.base import ApiKeyProvider
from .registry import ProviderRegistry
from .scheduling import SlidingWindowLimiter, TokenRotator, query_cutoff
from .search_backends import GitHubCodeSearchBackend, GitLabBlobSearchBackend
from .store import SqlCandidateStore


@dataclass
class QueryReport:
    dispatched: int = 0
    blobs: int = 0
    matches: int = 0
    created: int = 0


@dataclass
class ScraperSummary:
    queries: int = 0
    executed: int = 0
    skipped: int = 0
    failed: int = 0
    blobs: int = 0
    matches: int = 0
    created: int = 0


class Scraper:
    """Runs due queries against every backend with rotated, quota-checked tokens."""

    def __init__(
        self,
        config: ScraperConfig,
        *,
        store: SqlCandidateStore,
        registry: ProviderRegistry,
        backends: Sequence[SearchBackend],
        logger: logging.Logger,
    ) -> None:
        self.config = config
        self.store = store
        self.registry = registry
        self.backends = list(backends)
        self.logger = logger
        self._token_limiter = SlidingWindowLimiter(
            config.search_requests_per_window, config.search_window_seconds
        )

    def run_once(self) -> ScraperSummary:
        summary = ScraperSummary()
        if not self.store.load_settings().allow_scraper:
            self.logger.info("Scraper is disabled by settings; skipping pass.")
            return summary

        queries = self.store.due_queries(
            query_cutoff(utcnow(), self.config.query_interval_hours),
            self.config.max_queries_per_pass,
        )
        summary.queries = len(queries)
        self.logger.info("Search queries due: %d", len(queries))
        if not queries:
            return summary

        providers = self.registry.scraper_providers()
        rotators = {
            backend.search_provider: TokenRotator(
                self.store.enabled_tokens(backend.search_provider), self._token_limiter
            )
            for backend in self.backends
        }

        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = {
                executor.submit(self._run_query, query, rotators, providers): query
                for query in queries
            }
            iterator = as_completed(futures)
            if self.config.show_progress:
                iterator = tqdm(iterator, total=len(futures), desc="searching")
            for future in iterator:
                query = futures[future]
                try:
                    report = future.result()
                except Exception:
                    self.logger.exception("Query %r failed", query.query)
                    summary.failed += 1
                    continue
                if report.dispatched:
                    summary.executed += 1
                else:
                    summary.skipped += 1
                summary.blobs += report.blobs
                summary.matches += report.matches
                summary.created += report.created

        self.logger.info(
            "Scrape pass complete: %d executed, %d skipped, %d failed, %d new candidates",
            summary.executed,
            summary.skipped,
            summary.failed,
            summary.created,
        )
        return summary

    def _run_query(
        self,
        query: SearchQuery,
        rotators: dict[SearchProvider, TokenRotator],
        providers: Sequence[ApiKeyProvider],
    ) -> QueryReport:
        report = QueryReport()
        for backend in self.backends:
            token = rotators[backend.search_provider].acquire()
            if token is None:
                self.logger.warning(
                    "No %s token with remaining quota; skipping query %r",
                    backend.search_provider.value,
                    query.query,
                )
                continue
            try:
                blobs = backend.search(query.query, token.token)
            except SearchRateLimitedError as exc:
                self.logger.warning("Token %s exhausted: %s", token.id, exc)
                self.store.mark_token_used(token.id)
                continue
            except SearchError as exc:
                self.logger.warning("Search for %r failed: %s", query.query, exc)
                continue
            self.store.mark_token_used(token.id)
            report.dispatched += 1
            report.blobs += len(blobs)
            for blob in blobs:
                extraction = record_blob(blob, providers=providers, store=self.store, logger=self.logger)
                report.matches += extraction.matches
                report.created += extraction.created

        if report.dispatched:
            self.store.mark_query_executed(query.id, report.blobs)
        return report

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run passes until stopped or continuous mode is switched off."""
        while not stop_event.is_set():
            self.run_once()
            if not self.store.load_settings().scraper_continuous_mode:
                self.logger.info("Scraper continuous mode is off; stopping.")
                return
            stop_event.wait(self.config.poll_interval)


def run_scraper(
    config: ScraperConfig,
    *,
    logger: logging.Logger,
    once: bool = True,
    stop_event: threading.Event | None = None,
) -> ScraperSummary | None:
    """Build concrete dependencies and run one pass or the continuous loop."""
    store = SqlCandidateStore.from_url(config.database_url, logger=logger)
    store.create_schema()
    session = make_search_session(config.user_agent)
    backends = [
        GitHubCodeSearchBackend(
            session, timeout=config.request_timeout, per_page=config.results_per_query, logger=logger
        ),
        GitLabBlobSearchBackend(
            session, timeout=config.request_timeout, per_page=config.results_per_query, logger=logger
        ),
    ]
    registry = ProviderRegistry.default(
        timeout=config.request_timeout, user_agent=config.user_agent, logger=logger
    )
    scraper = Scraper(config, store=store, registry=registry, backends=backends, logger=logger)
    try:
        if once:
            return scraper.run_once()
        scraper.run_forever(stop_event or threading.Event())
        return None
    finally:
        session.close()
        registry.close()
        store.close()
