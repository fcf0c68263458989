"""Validation engine state machine and the verifier bot loop."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime

import requests
from tqdm import tqdm

from .config import VerifierConfig
from .logging_utils import mask_key
from .models import (
    TERMINAL_STATUSES,
    WORKING_STATUSES,
    ApiStatus,
    Candidate,
    CandidateStore,
    CandidateUpdate,
    OutcomeKind,
    ValidationOutcome,
    utcnow,
)
from .providers.base import ApiKeyProvider
from .registry import ProviderRegistry
from .scheduling import SlidingWindowLimiter, recheck_cutoff, retry_cutoff
from .store import SqlCandidateStore

# Statuses that mean the credential authenticated at some point.
PREVIOUSLY_WORKING = WORKING_STATUSES | {ApiStatus.NO_LONGER_WORKING}


def next_state(
    candidate: Candidate,
    outcome: ValidationOutcome | None,
    *,
    max_errors: int,
    now: datetime,
) -> CandidateUpdate | None:
    """Decide a candidate's next persisted state from one probe result.

    ``outcome`` is None for a transport fault. Returns None when the row
    must not be touched (terminal moderation states).
    """
    if candidate.status in TERMINAL_STATUSES:
        return None

    kind = outcome.kind if outcome is not None else None
    if kind is OutcomeKind.SUCCESS:
        return CandidateUpdate(
            status=ApiStatus.VALID,
            error_count=0,
            checked_at=now,
            metadata=outcome.metadata if outcome is not None else (),
        )
    if kind is OutcomeKind.VALID_NO_CREDITS:
        return CandidateUpdate(status=ApiStatus.VALID_NO_CREDITS, error_count=0, checked_at=now)
    if kind is OutcomeKind.UNAUTHORIZED:
        status = (
            ApiStatus.NO_LONGER_WORKING
            if candidate.status in PREVIOUSLY_WORKING
            else ApiStatus.INVALID
        )
        return CandidateUpdate(status=status, error_count=candidate.error_count, checked_at=now)

    # ProviderSpecificError, HttpError and transport faults keep the status.
    error_count = candidate.error_count + 1
    status = ApiStatus.ERROR if error_count >= max_errors else candidate.status
    return CandidateUpdate(status=status, error_count=error_count, checked_at=now)


class ValidationEngine:
    """Claims, probes and transitions one candidate at a time.

    Safe to call from many threads: the store lease guarantees at most one
    in-flight probe per candidate.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store: CandidateStore,
        *,
        max_errors: int,
        logger: logging.Logger,
        owner: str | None = None,
        rate_limiter: SlidingWindowLimiter | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.max_errors = max_errors
        self.owner = owner or f"verifier-{uuid.uuid4().hex[:12]}"
        self.rate_limiter = rate_limiter
        self.logger = logger

    def verify(self, candidate_id: int) -> Candidate | None:
        """Verify one candidate; return the updated row, or None if nothing was written."""
        candidate = self.store.claim_candidate(candidate_id, self.owner)
        if candidate is None:
            self.logger.debug("Candidate %s is leased or terminal; skipping", candidate_id)
            return None

        provider = self.registry.get(candidate.api_type)
        if provider is None or not provider.descriptor.verification_use:
            self.logger.debug(
                "%s candidates are not verifiable; leaving %s unchanged",
                candidate.api_type.value,
                candidate_id,
            )
            self.store.release_candidate(candidate_id, self.owner)
            return None

        if self.rate_limiter is not None and not self.rate_limiter.try_acquire(candidate.api_type):
            self.logger.debug("%s probe quota exhausted; deferring", provider.name)
            self.store.release_candidate(candidate_id, self.owner)
            return None

        outcome = self._probe(provider, candidate)
        updated = self.store.update_candidate_status(
            candidate_id,
            self.owner,
            lambda current: next_state(current, outcome, max_errors=self.max_errors, now=utcnow()),
        )
        if updated is not None:
            self.logger.info(
                "%s %s -> %s",
                provider.name,
                mask_key(candidate.api_key),
                updated.status.value,
            )
        return updated

    def _probe(self, provider: ApiKeyProvider, candidate: Candidate) -> ValidationOutcome | None:
        try:
            outcome = provider.validate(candidate.api_key)
        except requests.RequestException as exc:
            self.logger.warning(
                "Transport fault probing %s %s: %s", provider.name, mask_key(candidate.api_key), exc
            )
            return None
        except Exception:
            self.logger.exception(
                "Unexpected failure probing %s %s", provider.name, mask_key(candidate.api_key)
            )
            return None
        if outcome.detail and outcome.kind in {
            OutcomeKind.PROVIDER_SPECIFIC_ERROR,
            OutcomeKind.HTTP_ERROR,
        }:
            self.logger.debug("%s: %s", provider.name, outcome.detail)
        return outcome


@dataclass
class VerifierSummary:
    selected: int = 0
    written: int = 0
    skipped: int = 0
    failed: int = 0
    statuses: Counter[ApiStatus] = field(default_factory=Counter)


class Verifier:
    """Selects due candidates and verifies them concurrently."""

    def __init__(
        self,
        config: VerifierConfig,
        *,
        store: CandidateStore,
        registry: ProviderRegistry,
        logger: logging.Logger,
        engine: ValidationEngine | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.registry = registry
        self.logger = logger
        self.engine = engine or ValidationEngine(
            registry,
            store,
            max_errors=config.max_errors,
            rate_limiter=SlidingWindowLimiter(config.provider_requests_per_minute, 60.0),
            logger=logger,
        )

    def run_once(self) -> VerifierSummary:
        summary = VerifierSummary()
        if not self.store.load_settings().allow_verifier:
            self.logger.info("Verifier is disabled by settings; skipping pass.")
            return summary

        now = utcnow()
        due = self.store.read_due_candidates(
            self.registry.verifiable_types(),
            retry_before=retry_cutoff(now, self.config.retry_minutes),
            recheck_before=recheck_cutoff(now, self.config.recheck_hours),
            limit=self.config.batch_size,
        )
        summary.selected = len(due)
        self.logger.info("Candidates due for verification: %d", len(due))
        if not due:
            return summary

        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = {executor.submit(self.engine.verify, c.id): c for c in due}
            iterator = as_completed(futures)
            if self.config.show_progress:
                iterator = tqdm(iterator, total=len(futures), desc="verifying")
            for future in iterator:
                candidate = futures[future]
                try:
                    updated = future.result()
                except Exception:
                    self.logger.exception("Verification of candidate %s failed", candidate.id)
                    summary.failed += 1
                    continue
                if updated is None:
                    summary.skipped += 1
                    continue
                summary.written += 1
                summary.statuses[updated.status] += 1

        self.logger.info(
            "Verification pass complete: %d written, %d skipped, %d failed",
            summary.written,
            summary.skipped,
            summary.failed,
        )
        return summary

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run passes until stopped or continuous mode is switched off."""
        while not stop_event.is_set():
            self.run_once()
            if not self.store.load_settings().verifier_continuous_mode:
                self.logger.info("Verifier continuous mode is off; stopping.")
                return
            stop_event.wait(self.config.poll_interval)


def run_verifier(
    config: VerifierConfig,
    *,
    logger: logging.Logger,
    once: bool = True,
    stop_event: threading.Event | None = None,
) -> VerifierSummary | None:
    """Build concrete dependencies and run one pass or the continuous loop."""
    store = SqlCandidateStore.from_url(
        config.database_url, lease_seconds=config.lease_seconds, logger=logger
    )
    store.create_schema()
    registry = ProviderRegistry.default(
        timeout=config.request_timeout, user_agent=config.user_agent, logger=logger
    )
    verifier = Verifier(config, store=store, registry=registry, logger=logger)
    try:
        if once:
            return verifier.run_once()
        verifier.run_forever(stop_event or threading.Event())
        return None
    finally:
        registry.close()
        store.close()
