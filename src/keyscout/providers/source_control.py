"""Source-control hosting tokens.

Both providers are verifiable but hidden from public aggregates. GitHub
overloads 403 for throttling, and GitLab answers 403 to real tokens that
lack the ``read_user`` scope.
"""

from __future__ import annotations

from typing import Any

from requests import Response

from ..models import ApiType, MetadataItem, OutcomeKind, ProviderCategory, ProviderDescriptor
from .base import ApiKeyProvider, json_payload

SOURCE_CONTROL_HIDDEN_REASON = "Source control tokens not publicly displayed"


class GitHubProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="GitHub",
        api_type=ApiType.GITHUB,
        category=ProviderCategory.SOURCE_CONTROL,
        display_in_ui=False,
        hidden_from_ui_reason=SOURCE_CONTROL_HIDDEN_REASON,
    )
    patterns = (
        r"\bghp_[A-Za-z0-9]{36}\b",
        r"\bgithub_pat_[A-Za-z0-9_]{22,82}\b",
        r"\bgho_[A-Za-z0-9]{36}\b",
        r"\bghs_[A-Za-z0-9]{36}\b",
        r"\bghr_[A-Za-z0-9]{36}\b",
    )
    prefixes = ("ghp_", "github_pat_", "gho_", "ghs_", "ghr_")
    probe_url = "https://api.github.com/user"
    rate_limited_kind = OutcomeKind.VALID_NO_CREDITS
    not_found_kind = OutcomeKind.SUCCESS

    def is_plausible_format(self, candidate: str) -> bool:
        return len(candidate) >= 20 and candidate.startswith(self.prefixes)

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {
            "headers": {
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/vnd.github+json",
            }
        }

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        metadata: list[MetadataItem] = []
        scopes = response.headers.get("X-OAuth-Scopes")
        if scopes:
            metadata.append(MetadataItem("scopes", "Scopes", scopes))
        limit = response.headers.get("X-RateLimit-Limit")
        if limit:
            metadata.append(MetadataItem("rate_limit", "Rate Limit", limit))

        payload = json_payload(response)
        if payload.get("login"):
            metadata.append(MetadataItem("username", "Username", str(payload["login"])))
        if payload.get("type"):
            metadata.append(MetadataItem("account_type", "Account Type", str(payload["type"])))
        plan = payload.get("plan")
        if isinstance(plan, dict) and plan.get("name"):
            metadata.append(MetadataItem("plan", "Plan", str(plan["name"])))
        return metadata


class GitLabProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="GitLab",
        api_type=ApiType.GITLAB,
        category=ProviderCategory.SOURCE_CONTROL,
        display_in_ui=False,
        hidden_from_ui_reason=SOURCE_CONTROL_HIDDEN_REASON,
    )
    patterns = (r"\bglpat-[A-Za-z0-9\-_]{20,}",)
    probe_url = "https://gitlab.com/api/v4/user"
    forbidden_kind = OutcomeKind.SUCCESS
    rate_limited_kind = OutcomeKind.VALID_NO_CREDITS

    def is_plausible_format(self, candidate: str) -> bool:
        return len(candidate) >= 25 and candidate.startswith("glpat-")

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {"headers": {"PRIVATE-TOKEN": api_key}}

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = json_payload(response)
        fields = (
            ("username", "Username"),
            ("name", "Name"),
            ("is_admin", "Admin"),
            ("can_create_group", "Can Create Group"),
            ("can_create_project", "Can Create Project"),
            ("two_factor_enabled", "Two-Factor Enabled"),
        )
        return [
            MetadataItem(key, label, str(payload[key]))
            for key, label in fields
            if payload.get(key) is not None
        ]


SOURCE_CONTROL_PROVIDERS = (GitHubProvider, GitLabProvider)
