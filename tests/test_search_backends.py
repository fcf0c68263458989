import logging
from typing import Any

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from keyscout.errors import SearchError, SearchRateLimitedError
from keyscout.models import SearchProvider
from keyscout.search_backends import (
    GITHUB_SEARCH_URL,
    GITHUB_TEXT_MATCH_MEDIA_TYPE,
    GITLAB_SEARCH_URL,
    GitHubCodeSearchBackend,
    GitLabBlobSearchBackend,
)


class FakeResponse:
    def __init__(
        self,
        *,
        status_code: int = 200,
        payload: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = CaseInsensitiveDict(headers or {})

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, *, raise_error: bool = False) -> None:
        self.response = response
        self.raise_error = raise_error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((url, kwargs))
        if self.raise_error:
            raise requests.ConnectionError("network down")
        assert self.response is not None
        return self.response


def _github(session: FakeSession) -> GitHubCodeSearchBackend:
    return GitHubCodeSearchBackend(
        session,  # type: ignore[arg-type]
        timeout=10.0,
        per_page=50,
        logger=logging.getLogger("test"),
    )


def _gitlab(session: FakeSession) -> GitLabBlobSearchBackend:
    return GitLabBlobSearchBackend(
        session,  # type: ignore[arg-type]
        timeout=10.0,
        per_page=20,
        logger=logging.getLogger("test"),
    )


def test_github_search_returns_one_blob_per_fragment() -> None:
    payload = {
        "items": [
            {
                "html_url": "https://github.com/a/b/blob/main/.env",
                "text_matches": [{"fragment": "OPENAI_API_KEY=sk-1"}, {"fragment": "TOKEN=x"}],
            },
            {"html_url": "https://github.com/c/d/blob/main/x.py", "text_matches": []},
            {"html_url": "https://github.com/e/f", "text_matches": [{"fragment": ""}]},
        ]
    }
    session = FakeSession(FakeResponse(payload=payload, headers={"X-RateLimit-Remaining": "9"}))
    blobs = _github(session).search("OPENAI_API_KEY", "tok")

    assert [blob.text for blob in blobs] == ["OPENAI_API_KEY=sk-1", "TOKEN=x"]
    source = blobs[0].source
    assert source.search_provider is SearchProvider.GITHUB
    assert source.query == "OPENAI_API_KEY"
    assert source.source_url == "https://github.com/a/b/blob/main/.env"

    url, kwargs = session.calls[0]
    assert url == GITHUB_SEARCH_URL
    assert kwargs["params"] == {"q": "OPENAI_API_KEY", "per_page": 50}
    assert kwargs["headers"]["Authorization"] == "token tok"
    assert kwargs["headers"]["Accept"] == GITHUB_TEXT_MATCH_MEDIA_TYPE
    assert kwargs["timeout"] == 10.0


def test_github_unprocessable_query_yields_nothing() -> None:
    session = FakeSession(FakeResponse(status_code=422, payload={"message": "Validation Failed"}))
    assert _github(session).search("bad query", "tok") == []


@pytest.mark.parametrize("status_code", [403, 429])
def test_throttled_search_raises_rate_limited(status_code: int) -> None:
    response = FakeResponse(status_code=status_code, headers={"X-RateLimit-Reset": "1700000000"})
    with pytest.raises(SearchRateLimitedError, match="1700000000"):
        _github(FakeSession(response)).search("q", "tok")
    with pytest.raises(SearchRateLimitedError):
        _gitlab(FakeSession(FakeResponse(status_code=status_code))).search("q", "tok")


def test_search_failures_raise_search_error() -> None:
    with pytest.raises(SearchError):
        _github(FakeSession(FakeResponse(status_code=500))).search("q", "tok")
    with pytest.raises(SearchError):
        _github(FakeSession(raise_error=True)).search("q", "tok")
    with pytest.raises(SearchError, match="non-JSON"):
        _github(FakeSession(FakeResponse(payload=None))).search("q", "tok")
    with pytest.raises(SearchError):
        _gitlab(FakeSession(FakeResponse(status_code=401))).search("q", "tok")


def test_rate_limited_error_is_a_search_error() -> None:
    assert issubclass(SearchRateLimitedError, SearchError)


def test_gitlab_search_builds_blobs_and_source_urls() -> None:
    payload = [
        {"data": "GITLAB_TOKEN=glpat-x", "project_id": 7, "path": "config/.env", "ref": "main"},
        {"data": "no source"},
        {"data": "", "project_id": 8, "path": "empty"},
    ]
    session = FakeSession(FakeResponse(payload=payload))
    blobs = _gitlab(session).search("GITLAB_TOKEN", "glpat-reader")

    assert [blob.text for blob in blobs] == ["GITLAB_TOKEN=glpat-x", "no source"]
    assert blobs[0].source.source_url == (
        "https://gitlab.com/api/v4/projects/7/repository/files/config%2F.env?ref=main"
    )
    assert blobs[1].source.source_url is None
    assert blobs[0].source.search_provider is SearchProvider.GITLAB

    url, kwargs = session.calls[0]
    assert url == GITLAB_SEARCH_URL
    assert kwargs["params"] == {"scope": "blobs", "search": "GITLAB_TOKEN", "per_page": 20}
    assert kwargs["headers"] == {"PRIVATE-TOKEN": "glpat-reader"}
