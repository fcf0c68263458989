"""CSV serialization helpers."""

from __future__ import annotations

import csv
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from .logging_utils import mask_key
from .models import Candidate

CSV_FIELDS = [
    "id",
    "api_type",
    "status",
    "masked_key",
    "search_provider",
    "source_query",
    "source_url",
    "first_found_utc",
    "last_found_utc",
    "last_checked_utc",
    "times_found",
    "error_count",
    "metadata",
]


def _iso(value: datetime | None) -> str:
    return value.isoformat() + "Z" if value is not None else ""


def candidate_to_row(candidate: Candidate) -> dict[str, str]:
    """Flatten a candidate into a CSV row. The raw key never leaves this function unmasked."""
    return {
        "id": str(candidate.id),
        "api_type": candidate.api_type.value,
        "status": candidate.status.value,
        "masked_key": mask_key(candidate.api_key),
        "search_provider": candidate.search_provider.value,
        "source_query": candidate.source_query or "",
        "source_url": candidate.source_url or "",
        "first_found_utc": _iso(candidate.first_found_at),
        "last_found_utc": _iso(candidate.last_found_at),
        "last_checked_utc": _iso(candidate.last_checked_at),
        "times_found": str(candidate.times_found),
        "error_count": str(candidate.error_count),
        "metadata": ";".join(f"{item.key}={item.value}" for item in candidate.metadata),
    }


def export_candidates(path: str, candidates: Iterable[Candidate]) -> int:
    """Write candidates to CSV with a stable schema and return the row count."""
    output_path = Path(path)
    count = 0
    with output_path.open("w", newline="", encoding="utf-8") as file_obj:
        writer = csv.DictWriter(file_obj, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for candidate in candidates:
            writer.writerow(candidate_to_row(candidate))
            count += 1
    return count
