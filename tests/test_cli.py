import csv
from datetime import datetime
from pathlib import Path

import pytest

from keyscout import cli
from keyscout.models import ApiStatus, ApiType, CandidateMatch, DiscoverySource, SearchProvider
from keyscout.store import SqlCandidateStore

OPENAI_KEY = "sk-proj-" + "Ab1" * 16
GITHUB_KEY = "ghp_" + "Ab1" * 12


def _seed(database_url: str) -> None:
    store = SqlCandidateStore.from_url(database_url)
    store.create_schema()
    source = DiscoverySource(SearchProvider.GITHUB, "OPENAI_API_KEY", "https://github.com/a/b")
    store.upsert_candidate(CandidateMatch(ApiType.OPENAI, OPENAI_KEY), source)
    store.upsert_candidate(CandidateMatch(ApiType.GITHUB, GITHUB_KEY), source)
    openai = store.find_candidate(ApiType.OPENAI, OPENAI_KEY)
    assert openai is not None
    store.set_status(openai.id, ApiStatus.VALID)
    store.close()


def test_parse_args_for_each_command() -> None:
    args = cli.parse_args(["scrape", "--add-query", "OPENAI_API_KEY", "--add-query", "ghp_"])
    assert args.command == "scrape"
    assert args.add_query == ["OPENAI_API_KEY", "ghp_"]

    args = cli.parse_args(["verify", "--max-errors", "3", "--once"])
    assert (args.command, args.max_errors, args.once) == ("verify", 3, True)

    args = cli.parse_args(["export", "--status", "Valid", "--status", "ValidNoCredits"])
    assert args.status == ["Valid", "ValidNoCredits"]


def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])
    with pytest.raises(SystemExit):
        cli.parse_args(["export", "--status", "Bogus"])


def test_verifier_config_from_namespace() -> None:
    args = cli.parse_args(
        ["verify", "--database-url", "sqlite:///x.db", "--workers", "3", "--no-progress"]
    )
    config = cli.namespace_to_verifier_config(args)
    assert config.database_url == "sqlite:///x.db"
    assert config.workers == 3
    assert config.show_progress is False


def test_database_url_falls_back_to_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KEYSCOUT_DATABASE_URL", "sqlite:///from-env.db")
    config = cli.namespace_to_scraper_config(cli.parse_args(["scrape"]))
    assert config.database_url == "sqlite:///from-env.db"


def test_main_dispatches_bots(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, bool]] = []
    monkeypatch.setattr(
        cli, "run_verifier", lambda config, logger, once: calls.append(("verify", once))
    )
    monkeypatch.setattr(
        cli, "run_scraper", lambda config, logger, once: calls.append(("scrape", once))
    )
    assert cli.main(["verify", "--once"]) == 0
    assert cli.main(["scrape"]) == 0
    assert calls == [("verify", True), ("scrape", False)]


def test_main_returns_two_on_invalid_config() -> None:
    assert cli.main(["verify", "--workers", "0"]) == 2
    assert cli.main(["scrape", "--results-per-query", "500"]) == 2
    assert cli.main(["stats", "--database-url", "not-a-url"]) == 2
    assert cli.main(["verify", "--lease-seconds", "5", "--timeout", "10"]) == 2


def test_scrape_registers_queries_and_tokens(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(cli, "run_scraper", lambda config, logger, once: None)
    database_url = f"sqlite:///{tmp_path / 'keys.db'}"
    exit_code = cli.main(
        [
            "scrape",
            "--database-url",
            database_url,
            "--add-query",
            "OPENAI_API_KEY",
            "--add-github-token",
            "gh-1",
            "--add-gitlab-token",
            "gl-1",
        ]
    )
    assert exit_code == 0

    store = SqlCandidateStore.from_url(database_url)
    assert [q.query for q in store.due_queries(datetime.now(), limit=5)] == ["OPENAI_API_KEY"]
    assert [t.token for t in store.enabled_tokens(SearchProvider.GITHUB)] == ["gh-1"]
    assert [t.token for t in store.enabled_tokens(SearchProvider.GITLAB)] == ["gl-1"]
    store.close()


def test_export_writes_masked_keys_and_hides_hidden_types(tmp_path: Path) -> None:
    database_url = f"sqlite:///{tmp_path / 'keys.db'}"
    _seed(database_url)
    output = tmp_path / "out.csv"

    assert cli.main(["export", "--database-url", database_url, "--output", str(output)]) == 0
    text = output.read_text(encoding="utf-8")
    assert OPENAI_KEY not in text
    rows = list(csv.DictReader(text.splitlines()))
    assert [row["api_type"] for row in rows] == ["OpenAI"]
    assert rows[0]["masked_key"] == OPENAI_KEY[:4] + "..." + OPENAI_KEY[-4:]

    everything = tmp_path / "all.csv"
    assert (
        cli.main(
            [
                "export",
                "--database-url",
                database_url,
                "--output",
                str(everything),
                "--include-hidden",
                "--status",
                "Unverified",
            ]
        )
        == 0
    )
    rows = list(csv.DictReader(everything.read_text(encoding="utf-8").splitlines()))
    assert [row["api_type"] for row in rows] == ["GitHub"]


def test_stats_logs_aggregates(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    database_url = f"sqlite:///{tmp_path / 'keys.db'}"
    _seed(database_url)
    caplog.set_level("INFO", logger="keyscout")

    assert cli.main(["stats", "--database-url", database_url, "--top", "3"]) == 0
    assert cli.main(["stats", "--database-url", database_url, "--top", "0"]) == 2

    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("status Valid") for m in messages)
    assert any(m.startswith("type   OpenAI") for m in messages)
    assert not any(m.startswith("type   GitHub") for m in messages)
    assert any("OPENAI_API_KEY" in m and "50.0%" in m for m in messages)
