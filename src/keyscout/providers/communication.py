"""Messaging, chat and email delivery providers."""

from __future__ import annotations

import re
from typing import Any

from requests import Response

from ..models import ApiType, MetadataItem, ProviderCategory, ProviderDescriptor, ValidationOutcome
from .base import ApiKeyProvider, json_payload, truncate_response

SLACK_REVOKED_ERRORS = ("invalid_auth", "token_revoked")
TWILIO_FORMAT = re.compile(r"^(AC|SK)[a-f0-9]{32}$")


class SendGridProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="SendGrid",
        api_type=ApiType.SENDGRID,
        category=ProviderCategory.COMMUNICATION,
    )
    patterns = (
        r"\bSG\.[a-zA-Z0-9_-]{22}\.[a-zA-Z0-9_-]{43}\b",
        r"\bSG\.[a-zA-Z0-9_-]{20,}\b",
    )
    probe_url = "https://api.sendgrid.com/v3/user/profile"
    quota_indicators = ApiKeyProvider.quota_indicators + (
        "maximum credits exceeded",
        "credits exceeded",
    )

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith("SG.") and len(candidate) >= 50

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = json_payload(response)
        metadata: list[MetadataItem] = []
        if payload.get("company"):
            metadata.append(MetadataItem("company", "Company", str(payload["company"])))
        if payload.get("country"):
            metadata.append(MetadataItem("country", "Country", str(payload["country"])))
        return metadata


class MailgunProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Mailgun",
        api_type=ApiType.MAILGUN,
        category=ProviderCategory.COMMUNICATION,
    )
    patterns = (
        r"\bkey-[a-f0-9]{32}\b",
        r"\bpubkey-[a-f0-9]{32}\b",
        r"\b[a-f0-9]{32}-[a-f0-9]{8}-[a-f0-9]{8}\b",
    )
    probe_url = "https://api.mailgun.net/v3/domains"

    def is_plausible_format(self, candidate: str) -> bool:
        if candidate.startswith("pubkey-"):
            return len(candidate) == 39
        return candidate.startswith("key-") and len(candidate) == 36

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {"auth": ("api", api_key)}

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = json_payload(response)
        if "total_count" in payload:
            return [MetadataItem("domain_count", "Domains", str(payload["total_count"]))]
        return []


class SlackProvider(ApiKeyProvider):
    """Slack answers 200 for most failures; the ``ok`` field carries the verdict."""

    descriptor = ProviderDescriptor(
        name="Slack",
        api_type=ApiType.SLACK,
        category=ProviderCategory.COMMUNICATION,
    )
    patterns = (
        r"\bxoxb-[0-9]{10,13}-[0-9]{10,13}-[a-zA-Z0-9]{24}\b",
        r"\bxoxp-[0-9]{10,13}-[0-9]{10,13}-[a-zA-Z0-9]{24}\b",
        r"\bxoxa-[0-9]+-[a-zA-Z0-9]+\b",
        r"\bxoxs-[0-9]+-[0-9]+-[a-zA-Z0-9]+\b",
        r"\bxox[abps]-[0-9A-Za-z-]+\b",
    )
    probe_url = "https://slack.com/api/auth.test"
    probe_method = "POST"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith(("xoxb-", "xoxp-", "xoxa-", "xoxs-"))

    def classify(self, response: Response) -> ValidationOutcome:
        status = response.status_code
        if status == 429:
            return ValidationOutcome.success(status)
        if status != 200:
            return ValidationOutcome.http_error(
                status,
                f"{self.name} API request failed with status {status}. "
                f"Response: {truncate_response(response.text)}",
            )
        payload = json_payload(response)
        if payload.get("ok") is True:
            return ValidationOutcome.success(status, self._safe_metadata(response))
        if payload.get("ok") is False:
            error = str(payload.get("error", ""))
            if error in SLACK_REVOKED_ERRORS:
                return ValidationOutcome.unauthorized(status, "Invalid or revoked Slack token")
            return ValidationOutcome.unauthorized(status, error or None)
        # Maintenance pages and bodies without a verdict say nothing about the token.
        return ValidationOutcome.http_error(
            status,
            f"{self.name} returned 200 without an ok field. "
            f"Response: {truncate_response(response.text)}",
        )

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = json_payload(response)
        fields = (("team", "Team"), ("user", "User"), ("url", "Workspace URL"))
        return [
            MetadataItem(key, label, str(payload[key])) for key, label in fields if payload.get(key)
        ]


class DiscordBotProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Discord Bot",
        api_type=ApiType.DISCORD_BOT,
        category=ProviderCategory.COMMUNICATION,
    )
    patterns = (
        r"\b[MN][A-Za-z0-9]{23,}\.[A-Za-z0-9_-]{6}\.[A-Za-z0-9_-]{27}\b",
        r"\b[A-Za-z0-9_-]{24}\.[A-Za-z0-9_-]{6}\.[A-Za-z0-9_-]{27,38}\b",
    )
    probe_url = "https://discord.com/api/v10/users/@me"

    def is_plausible_format(self, candidate: str) -> bool:
        return len(candidate.split(".")) == 3 and 50 <= len(candidate) <= 80

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {"headers": {"Authorization": f"Bot {api_key}"}}

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = json_payload(response)
        metadata: list[MetadataItem] = []
        if payload.get("username"):
            metadata.append(MetadataItem("username", "Bot Name", str(payload["username"])))
        if payload.get("id"):
            metadata.append(MetadataItem("bot_id", "Bot ID", str(payload["id"])))
        return metadata


class TwilioProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Twilio",
        api_type=ApiType.TWILIO,
        category=ProviderCategory.COMMUNICATION,
        verification_use=False,
        display_in_ui=False,
        verification_disabled_reason="Requires Account SID + Auth Token pair for authentication",
        hidden_from_ui_reason="Cannot validate without paired Account SID/Auth Token",
    )
    patterns = (
        r"\bAC[a-f0-9]{32}\b",
        r"\bSK[a-f0-9]{32}\b",
    )

    def is_plausible_format(self, candidate: str) -> bool:
        return TWILIO_FORMAT.match(candidate) is not None

    def _probe(self, api_key: str) -> ValidationOutcome:
        return self._unverifiable("Cannot validate without paired Account SID/Auth Token")


COMMUNICATION_PROVIDERS = (
    SendGridProvider,
    MailgunProvider,
    SlackProvider,
    DiscordBotProvider,
    TwilioProvider,
)
