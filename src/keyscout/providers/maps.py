"""Maps and location providers."""

from __future__ import annotations

from typing import Any

from requests import Response

from ..models import ApiType, MetadataItem, ProviderCategory, ProviderDescriptor
from .base import ApiKeyProvider, json_payload


class MapboxProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Mapbox",
        api_type=ApiType.MAPBOX,
        category=ProviderCategory.MAPS_LOCATION,
    )
    patterns = (
        r"\bpk\.[a-zA-Z0-9_-]{60,}\b",
        r"\bsk\.[a-zA-Z0-9_-]{60,}\b",
        r"\btk\.[a-zA-Z0-9_-]{60,}\b",
    )
    probe_url = "https://api.mapbox.com/tokens/v2"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith(("pk.", "sk.", "tk.")) and len(candidate) >= 80

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {"params": {"access_token": api_key}}

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = json_payload(response)
        token = payload.get("token") or {}
        metadata: list[MetadataItem] = []
        if payload.get("code"):
            metadata.append(MetadataItem("token_code", "Token Status", str(payload["code"])))
        if isinstance(token, dict) and token.get("user"):
            metadata.append(MetadataItem("username", "Username", str(token["user"])))
        return metadata


MAPS_PROVIDERS = (MapboxProvider,)
