"""CLI entrypoint for keyscout."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Sequence

from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DATABASE_URL,
    DEFAULT_LEASE_SECONDS,
    DEFAULT_MAX_ERRORS,
    DEFAULT_MAX_QUERIES_PER_PASS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROVIDER_RPM,
    DEFAULT_QUERY_INTERVAL_HOURS,
    DEFAULT_RECHECK_HOURS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RESULTS_PER_QUERY,
    DEFAULT_RETRY_MINUTES,
    DEFAULT_SEARCH_REQUESTS_PER_WINDOW,
    DEFAULT_SEARCH_WINDOW_SECONDS,
    DEFAULT_USER_AGENT,
    DEFAULT_WORKERS,
    ScraperConfig,
    VerifierConfig,
)
from .errors import ConfigError
from .io_csv import export_candidates
from .logging_utils import configure_logging, get_logger
from .models import ApiStatus, SearchProvider
from .registry import ProviderRegistry
from .scraper import run_scraper
from .store import SqlCandidateStore
from .validation import validate_database_url
from .verifier import run_verifier


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy database URL (or set KEYSCOUT_DATABASE_URL).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")


def _add_bot_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--workers", type=int, default=DEFAULT_WORKERS, help="Number of worker threads."
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Per-request HTTP timeout in seconds.",
    )
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="HTTP User-Agent.")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help="Seconds to wait between passes in continuous mode.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass even if continuous mode is enabled in settings.",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="KeyScout - discover leaked API credentials in code search and verify them."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Run the code-search scraper.")
    _add_common_arguments(scrape)
    _add_bot_arguments(scrape)
    scrape.add_argument(
        "--add-query", action="append", default=[], help="Register a search query before running."
    )
    scrape.add_argument(
        "--add-github-token",
        action="append",
        default=[],
        help="Register a GitHub search token before running.",
    )
    scrape.add_argument(
        "--add-gitlab-token",
        action="append",
        default=[],
        help="Register a GitLab search token before running.",
    )
    scrape.add_argument(
        "--query-interval-hours",
        type=float,
        default=DEFAULT_QUERY_INTERVAL_HOURS,
        help="Minimum hours between runs of the same query.",
    )
    scrape.add_argument(
        "--max-queries",
        type=int,
        default=DEFAULT_MAX_QUERIES_PER_PASS,
        help="Upper limit of queries dispatched per pass.",
    )
    scrape.add_argument(
        "--results-per-query",
        type=int,
        default=DEFAULT_RESULTS_PER_QUERY,
        help="Search results requested per query (1-100).",
    )
    scrape.add_argument(
        "--search-rpw",
        type=int,
        default=DEFAULT_SEARCH_REQUESTS_PER_WINDOW,
        help="Search requests allowed per token per window.",
    )
    scrape.add_argument(
        "--search-window",
        type=float,
        default=DEFAULT_SEARCH_WINDOW_SECONDS,
        help="Token rate-limit window in seconds.",
    )

    verify = subparsers.add_parser("verify", help="Run the credential verifier.")
    _add_common_arguments(verify)
    _add_bot_arguments(verify)
    verify.add_argument(
        "--max-errors",
        type=int,
        default=DEFAULT_MAX_ERRORS,
        help="Consecutive unverifiable results before a candidate is marked Error.",
    )
    verify.add_argument(
        "--lease-seconds",
        type=float,
        default=DEFAULT_LEASE_SECONDS,
        help="How long a worker holds a candidate before the claim expires.",
    )
    verify.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help="Maximum candidates selected per pass.",
    )
    verify.add_argument(
        "--recheck-hours",
        type=float,
        default=DEFAULT_RECHECK_HOURS,
        help="Hours before a working credential is checked again.",
    )
    verify.add_argument(
        "--retry-minutes",
        type=float,
        default=DEFAULT_RETRY_MINUTES,
        help="Minutes before an unverified candidate is retried after an error.",
    )
    verify.add_argument(
        "--provider-rpm",
        type=int,
        default=DEFAULT_PROVIDER_RPM,
        help="Probe requests allowed per provider per minute.",
    )

    stats = subparsers.add_parser("stats", help="Log aggregate counts from the store.")
    _add_common_arguments(stats)
    stats.add_argument("--top", type=int, default=10, help="Number of top queries to show.")
    stats.add_argument(
        "--include-hidden",
        action="store_true",
        help="Include provider types that are hidden from public aggregates.",
    )

    export = subparsers.add_parser("export", help="Export candidates to CSV with masked keys.")
    _add_common_arguments(export)
    export.add_argument("--output", default="keyscout_export.csv", help="Output CSV path.")
    export.add_argument(
        "--status",
        action="append",
        choices=[status.value for status in ApiStatus],
        help="Only export candidates with this status (repeatable).",
    )
    export.add_argument(
        "--include-hidden",
        action="store_true",
        help="Include provider types that are hidden from public aggregates.",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI input."""
    return build_parser().parse_args(argv)


def _database_url(args: argparse.Namespace) -> str:
    return args.database_url or os.getenv("KEYSCOUT_DATABASE_URL") or DEFAULT_DATABASE_URL


def namespace_to_scraper_config(args: argparse.Namespace) -> ScraperConfig:
    """Convert CLI args to validated ScraperConfig."""
    return ScraperConfig(
        database_url=_database_url(args),
        workers=args.workers,
        query_interval_hours=args.query_interval_hours,
        max_queries_per_pass=args.max_queries,
        search_requests_per_window=args.search_rpw,
        search_window_seconds=args.search_window,
        results_per_query=args.results_per_query,
        poll_interval=args.poll_interval,
        request_timeout=args.timeout,
        user_agent=args.user_agent,
        show_progress=not args.no_progress,
    )


def namespace_to_verifier_config(args: argparse.Namespace) -> VerifierConfig:
    """Convert CLI args to validated VerifierConfig."""
    return VerifierConfig(
        database_url=_database_url(args),
        workers=args.workers,
        max_errors=args.max_errors,
        lease_seconds=args.lease_seconds,
        batch_size=args.batch_size,
        recheck_hours=args.recheck_hours,
        retry_minutes=args.retry_minutes,
        provider_requests_per_minute=args.provider_rpm,
        poll_interval=args.poll_interval,
        request_timeout=args.timeout,
        user_agent=args.user_agent,
        show_progress=not args.no_progress,
    )


def _open_store(database_url: str, logger: logging.Logger) -> SqlCandidateStore:
    validate_database_url(database_url)
    store = SqlCandidateStore.from_url(database_url, logger=logger)
    store.create_schema()
    return store


def _seed_search_state(
    args: argparse.Namespace, config: ScraperConfig, logger: logging.Logger
) -> None:
    tokens = [(SearchProvider.GITHUB, t) for t in args.add_github_token]
    tokens += [(SearchProvider.GITLAB, t) for t in args.add_gitlab_token]
    if not (args.add_query or tokens):
        return
    store = _open_store(config.database_url, logger)
    try:
        for query in args.add_query:
            store.add_search_query(query)
        for search_provider, token in tokens:
            store.add_search_token(token, search_provider)
    finally:
        store.close()
    logger.info("Registered %d queries and %d tokens", len(args.add_query), len(tokens))


def _command_scrape(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = namespace_to_scraper_config(args)
    _seed_search_state(args, config, logger)
    run_scraper(config, logger=logger, once=args.once)
    return 0


def _command_verify(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = namespace_to_verifier_config(args)
    run_verifier(config, logger=logger, once=args.once)
    return 0


def _command_stats(args: argparse.Namespace, logger: logging.Logger) -> int:
    if args.top < 1:
        raise ConfigError("--top must be >= 1.")
    store = _open_store(_database_url(args), logger)
    registry = ProviderRegistry.default(logger=logger)
    try:
        api_types = None if args.include_hidden else registry.displayable_types()
        for status, count in sorted(store.count_by_status().items(), key=lambda kv: kv[0].value):
            logger.info("status %-18s %d", status.value, count)
        for api_type, count in sorted(
            store.count_by_type(api_types).items(), key=lambda kv: kv[0].value
        ):
            logger.info("type   %-18s %d", api_type.value, count)
        for item in store.top_queries(args.top):
            logger.info(
                "query  %5.1f%% (%d/%d) %s",
                item.success_rate * 100,
                item.valid,
                item.total,
                item.query,
            )
    finally:
        registry.close()
        store.close()
    return 0


def _command_export(args: argparse.Namespace, logger: logging.Logger) -> int:
    store = _open_store(_database_url(args), logger)
    registry = ProviderRegistry.default(logger=logger)
    try:
        statuses = [ApiStatus(value) for value in args.status] if args.status else None
        api_types = None if args.include_hidden else registry.displayable_types()
        candidates = store.list_candidates(statuses=statuses, api_types=api_types)
        count = export_candidates(args.output, candidates)
    finally:
        registry.close()
        store.close()
    logger.info("Wrote %d candidates to %s", count, args.output)
    return 0


COMMANDS = {
    "scrape": _command_scrape,
    "verify": _command_verify,
    "stats": _command_stats,
    "export": _command_export,
}


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        return COMMANDS[args.command](args, logger)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
