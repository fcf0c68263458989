"""Cloud infrastructure and hosting providers."""

from __future__ import annotations

import string

from requests import Response

from ..models import ApiType, MetadataItem, ProviderCategory, ProviderDescriptor
from .base import ApiKeyProvider, json_payload

HEX_DIGITS = frozenset(string.hexdigits.lower())


class DigitalOceanProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="DigitalOcean",
        api_type=ApiType.DIGITAL_OCEAN,
        category=ProviderCategory.CLOUD_INFRASTRUCTURE,
    )
    patterns = (
        r"\bdop_v1_[a-f0-9]{64}\b",
        r"\bdoo_v1_[a-f0-9]{64}\b",
    )
    probe_url = "https://api.digitalocean.com/v2/account"
    forbidden_kind = None

    def is_plausible_format(self, candidate: str) -> bool:
        if not candidate.startswith(("dop_v1_", "doo_v1_")):
            return False
        secret = candidate[len("dop_v1_") :]
        return len(secret) == 64 and set(secret) <= HEX_DIGITS

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        account = json_payload(response).get("account") or {}
        metadata: list[MetadataItem] = []
        if account.get("email"):
            metadata.append(MetadataItem("email", "Email", str(account["email"])))
        if account.get("status"):
            metadata.append(MetadataItem("account_status", "Account Status", str(account["status"])))
        if "droplet_limit" in account:
            metadata.append(
                MetadataItem("droplet_limit", "Droplet Limit", str(account["droplet_limit"]))
            )
        return metadata


class VercelProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Vercel",
        api_type=ApiType.VERCEL,
        category=ProviderCategory.CLOUD_INFRASTRUCTURE,
    )
    patterns = (r"\bvercel_[A-Za-z0-9]{20,}\b",)
    probe_url = "https://api.vercel.com/v2/user"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith("vercel_") and len(candidate) >= 27

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        user = json_payload(response).get("user") or {}
        metadata: list[MetadataItem] = []
        if user.get("username"):
            metadata.append(MetadataItem("username", "Username", str(user["username"])))
        if user.get("email"):
            metadata.append(MetadataItem("email", "Email", str(user["email"])))
        return metadata


class CloudflareProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Cloudflare",
        api_type=ApiType.CLOUDFLARE,
        category=ProviderCategory.CLOUD_INFRASTRUCTURE,
    )
    patterns = (r"\bcf_[A-Za-z0-9_-]{37,}\b",)
    probe_url = "https://api.cloudflare.com/client/v4/user/tokens/verify"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith("cf_") and len(candidate) >= 40

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        result = json_payload(response).get("result") or {}
        if result.get("status"):
            return [MetadataItem("token_status", "Token Status", str(result["status"]))]
        return []


CLOUD_PROVIDERS = (DigitalOceanProvider, VercelProvider, CloudflareProvider)
