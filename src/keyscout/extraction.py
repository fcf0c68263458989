"""Pure candidate extraction and the blob-recording step built on it."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .logging_utils import mask_key
from .models import ApiType, Blob, CandidateMatch, CandidateStore
from .providers.base import ApiKeyProvider


@dataclass(frozen=True)
class ExtractionReport:
    """What one blob contributed to the store."""

    matches: int
    created: int
    refreshed: int


def extract_matches(text: str, providers: Sequence[ApiKeyProvider]) -> list[CandidateMatch]:
    """Return format-valid matches in ``text``, one per (type, exact text).

    Patterns are applied per provider in declaration order. ``occurrences``
    counts distinct positions of a (type, text) pair in the blob, so two
    patterns of one provider hitting the same substring count once.
    Overlapping hits from different providers are all kept.
    """
    spans: dict[tuple[ApiType, str], set[tuple[int, int]]] = {}
    for provider in providers:
        for pattern in provider.extraction_patterns():
            for match in pattern.finditer(text or ""):
                value = match.group(0)
                if not provider.is_plausible_format(value):
                    continue
                key = (provider.api_type, value)
                spans.setdefault(key, set()).add(match.span())
    return [
        CandidateMatch(api_type=api_type, text=value, occurrences=len(positions))
        for (api_type, value), positions in spans.items()
    ]


def record_blob(
    blob: Blob,
    *,
    providers: Sequence[ApiKeyProvider],
    store: CandidateStore,
    logger: logging.Logger,
) -> ExtractionReport:
    """Extract candidates from a blob and upsert each into the store."""
    matches = extract_matches(blob.text, providers)
    created = 0
    for match in matches:
        if store.upsert_candidate(match, blob.source):
            created += 1
            logger.info("New %s candidate %s", match.api_type.value, mask_key(match.text))
        else:
            logger.debug("Refreshed %s candidate %s", match.api_type.value, mask_key(match.text))
    return ExtractionReport(matches=len(matches), created=created, refreshed=len(matches) - created)
