from datetime import datetime
from pathlib import Path

from keyscout.io_csv import CSV_FIELDS, candidate_to_row, export_candidates
from keyscout.models import ApiStatus, ApiType, Candidate, MetadataItem, SearchProvider

KEY = "sk-ant-api03-" + "Q" * 40 + "wxyz"


def _candidate() -> Candidate:
    return Candidate(
        id=7,
        api_key=KEY,
        api_type=ApiType.ANTHROPIC_CLAUDE,
        status=ApiStatus.VALID,
        search_provider=SearchProvider.GITHUB,
        source_query="ANTHROPIC_API_KEY",
        source_url=None,
        first_found_at=datetime(2026, 1, 1, 0, 0, 0),
        last_found_at=datetime(2026, 1, 2, 0, 0, 0),
        times_found=3,
        metadata=(
            MetadataItem("username", "Username", "octocat"),
            MetadataItem("plan", "Plan", "pro"),
        ),
    )


def test_candidate_to_row_masks_key_and_flattens_fields() -> None:
    row = candidate_to_row(_candidate())
    assert list(row) == CSV_FIELDS
    assert row["masked_key"] == "sk-a...wxyz"
    assert row["api_type"] == "AnthropicClaude"
    assert row["first_found_utc"] == "2026-01-01T00:00:00Z"
    assert row["last_checked_utc"] == ""
    assert row["source_url"] == ""
    assert row["metadata"] == "username=octocat;plan=pro"


def test_export_candidates_creates_csv_with_schema(tmp_path: Path) -> None:
    output = tmp_path / "out.csv"
    assert export_candidates(str(output), [_candidate()]) == 1
    text = output.read_text(encoding="utf-8")
    assert text.splitlines()[0] == ",".join(CSV_FIELDS)
    assert "sk-a...wxyz" in text
    assert KEY not in text


def test_export_with_no_candidates_writes_header_only(tmp_path: Path) -> None:
    output = tmp_path / "empty.csv"
    assert export_candidates(str(output), []) == 0
    assert output.read_text(encoding="utf-8").splitlines() == [",".join(CSV_FIELDS)]
