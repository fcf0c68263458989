"""Monitoring and error-tracking providers."""

from __future__ import annotations

import re
import uuid
from typing import Any

from ..models import ApiType, ProviderCategory, ProviderDescriptor, ValidationOutcome
from .base import ApiKeyProvider

SENTRY_DSN = re.compile(
    r"^https://([a-f0-9]{32})(?::([a-f0-9]{32}))?@([a-z0-9.-]+)/(\d+)$", re.IGNORECASE
)
SENTRY_TOKEN_PREFIX = "sntrys_"
SENTRY_API_URL = "https://sentry.io/api/0/"
DATADOG_FORMAT = re.compile(r"^(?:[a-f0-9]{32}|[a-f0-9]{40})$")


class DatadogProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Datadog",
        api_type=ApiType.DATADOG,
        category=ProviderCategory.MONITORING,
        scraper_use=False,
        verification_use=False,
        display_in_ui=False,
        scraper_disabled_reason="Generic 32/40 hex pattern matches too many non-Datadog strings",
        verification_disabled_reason="Scraping is disabled so no candidates are collected",
        hidden_from_ui_reason="Scraping and verification are both disabled",
    )
    patterns = (
        r"\b[a-f0-9]{32}\b",
        r"\b[a-f0-9]{40}\b",
    )
    probe_url = "https://api.datadoghq.com/api/v1/validate"

    def is_plausible_format(self, candidate: str) -> bool:
        return DATADOG_FORMAT.match(candidate) is not None

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {"headers": {"DD-API-KEY": api_key}}


class SentryProvider(ApiKeyProvider):
    """Accepts both project DSNs and organization auth tokens."""

    descriptor = ProviderDescriptor(
        name="Sentry",
        api_type=ApiType.SENTRY,
        category=ProviderCategory.MONITORING,
    )
    patterns = (
        r"https://[a-f0-9]{32}@[a-z0-9.-]+\.sentry\.io/[0-9]+",
        r"https://[a-f0-9]{32}:[a-f0-9]{32}@[a-z0-9.-]+\.sentry\.io/[0-9]+",
        r"\bsntrys_[a-zA-Z0-9]{60,}\b",
    )

    def is_plausible_format(self, candidate: str) -> bool:
        if candidate.startswith(SENTRY_TOKEN_PREFIX):
            return len(candidate) >= 65
        return SENTRY_DSN.match(candidate) is not None

    def _probe(self, api_key: str) -> ValidationOutcome:
        if api_key.startswith(SENTRY_TOKEN_PREFIX):
            response = self.session.get(
                SENTRY_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self._timeout,
            )
            self._log_response(response)
            return self.classify(response)

        match = SENTRY_DSN.match(api_key)
        if match is None:
            return ValidationOutcome.provider_specific_error("Malformed Sentry DSN")
        public_key, _secret, host, project_id = match.groups()
        response = self.session.post(
            f"https://{host}/api/{project_id}/store/",
            headers={"X-Sentry-Auth": f"Sentry sentry_version=7, sentry_key={public_key}"},
            json={"event_id": uuid.uuid4().hex},
            timeout=self._timeout,
        )
        self._log_response(response)
        return self.classify(response)


MONITORING_PROVIDERS = (DatadogProvider, SentryProvider)
