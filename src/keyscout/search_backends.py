"""Code-search backends that turn a query into raw text blobs."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from requests import Response, Session
from requests.exceptions import RequestException

from .errors import SearchError, SearchRateLimitedError
from .models import Blob, DiscoverySource, SearchProvider

GITHUB_SEARCH_URL = "https://api.github.com/search/code"
GITHUB_TEXT_MATCH_MEDIA_TYPE = "application/vnd.github.v3.text-match+json"
GITLAB_SEARCH_URL = "https://gitlab.com/api/v4/search"


def _raise_for_search_status(response: Response, backend: str) -> None:
    if response.status_code in (403, 429):
        reset = response.headers.get("X-RateLimit-Reset") or response.headers.get("RateLimit-Reset")
        raise SearchRateLimitedError(
            f"{backend} search rate limited (status {response.status_code}, reset {reset or 'unknown'})"
        )
    if response.status_code >= 400:
        raise SearchError(f"{backend} search failed with status {response.status_code}")


def _json_body(response: Response, backend: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise SearchError(f"{backend} search returned a non-JSON body") from exc


class GitHubCodeSearchBackend:
    """GitHub code search; each text-match fragment becomes one blob."""

    search_provider = SearchProvider.GITHUB

    def __init__(
        self,
        session: Session,
        *,
        timeout: float,
        per_page: int,
        logger: logging.Logger,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._per_page = per_page
        self._logger = logger

    def search(self, query: str, token: str) -> list[Blob]:
        try:
            response = self._session.get(
                GITHUB_SEARCH_URL,
                params={"q": query, "per_page": self._per_page},
                headers={
                    "Authorization": f"token {token}",
                    "Accept": GITHUB_TEXT_MATCH_MEDIA_TYPE,
                },
                timeout=self._timeout,
            )
        except RequestException as exc:
            raise SearchError(f"GitHub search request failed: {exc}") from exc

        if response.status_code == 422:
            self._logger.warning("GitHub rejected query %r as unprocessable", query)
            return []
        _raise_for_search_status(response, "GitHub")
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None:
            self._logger.debug("GitHub search quota remaining: %s", remaining)

        payload = _json_body(response, "GitHub")
        blobs: list[Blob] = []
        for item in payload.get("items", []) if isinstance(payload, dict) else []:
            source = DiscoverySource(self.search_provider, query, item.get("html_url"))
            for text_match in item.get("text_matches") or []:
                fragment = text_match.get("fragment")
                if isinstance(fragment, str) and fragment:
                    blobs.append(Blob(text=fragment, source=source))
        return blobs


class GitLabBlobSearchBackend:
    """GitLab global blob search; each result's ``data`` becomes one blob."""

    search_provider = SearchProvider.GITLAB

    def __init__(
        self,
        session: Session,
        *,
        timeout: float,
        per_page: int,
        logger: logging.Logger,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._per_page = per_page
        self._logger = logger

    def search(self, query: str, token: str) -> list[Blob]:
        try:
            response = self._session.get(
                GITLAB_SEARCH_URL,
                params={"scope": "blobs", "search": query, "per_page": self._per_page},
                headers={"PRIVATE-TOKEN": token},
                timeout=self._timeout,
            )
        except RequestException as exc:
            raise SearchError(f"GitLab search request failed: {exc}") from exc
        _raise_for_search_status(response, "GitLab")

        payload = _json_body(response, "GitLab")
        blobs: list[Blob] = []
        for item in payload if isinstance(payload, list) else []:
            data = item.get("data")
            if not isinstance(data, str) or not data:
                continue
            source_url = None
            if item.get("project_id") and item.get("path"):
                source_url = (
                    f"https://gitlab.com/api/v4/projects/{item['project_id']}/repository/files/"
                    f"{quote(str(item['path']), safe='')}?ref={item.get('ref') or 'HEAD'}"
                )
            blobs.append(Blob(text=data, source=DiscoverySource(self.search_provider, query, source_url)))
        return blobs
