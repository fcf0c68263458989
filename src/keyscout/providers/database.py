"""Hosted database and backend-as-a-service providers."""

from __future__ import annotations

from requests import Response

from ..models import ApiType, MetadataItem, ProviderCategory, ProviderDescriptor, ValidationOutcome
from .base import ApiKeyProvider

PLANETSCALE_PREFIXES = ("pscale_tkn_", "pscale_oauth_", "pscale_pw_")


class PlanetScaleProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="PlanetScale",
        api_type=ApiType.PLANETSCALE,
        category=ProviderCategory.DATABASE_BACKEND,
    )
    patterns = (
        r"\bpscale_tkn_[a-zA-Z0-9_]{30,}\b",
        r"\bpscale_oauth_[a-zA-Z0-9_]{30,}\b",
        r"\bpscale_pw_[a-zA-Z0-9_]{30,}\b",
    )
    probe_url = "https://api.planetscale.com/v1/organizations"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith(PLANETSCALE_PREFIXES) and len(candidate) >= 40

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = response.json()
        organizations = payload.get("data") if isinstance(payload, dict) else None
        if isinstance(organizations, list):
            return [MetadataItem("organizations", "Organizations", str(len(organizations)))]
        return []


class SupabaseProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Supabase",
        api_type=ApiType.SUPABASE,
        category=ProviderCategory.DATABASE_BACKEND,
        verification_use=False,
        display_in_ui=False,
        verification_disabled_reason="Requires project URL to validate (JWTs are project-specific)",
        hidden_from_ui_reason="Cannot validate without Supabase project URL",
    )
    patterns = (r"\bsbp_[a-f0-9]{40}\b",)

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith("sbp_") and len(candidate) >= 44

    def _probe(self, api_key: str) -> ValidationOutcome:
        return self._unverifiable("Cannot validate without Supabase project URL")


DATABASE_PROVIDERS = (PlanetScaleProvider, SupabaseProvider)
