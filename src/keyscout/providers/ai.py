"""AI and LLM inference providers."""

from __future__ import annotations

from typing import Any

from requests import Response

from ..models import (
    ApiType,
    MetadataItem,
    ProviderCategory,
    ProviderDescriptor,
    ValidationOutcome,
)
from .base import ApiKeyProvider, json_payload

ANTHROPIC_VERSION = "2023-06-01"


class OpenAIProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="OpenAI",
        api_type=ApiType.OPENAI,
        category=ProviderCategory.AI_LLM,
    )
    patterns = (
        r"\bsk-proj-[A-Za-z0-9_-]{40,}",
        r"\bsk-svcacct-[A-Za-z0-9_-]{40,}",
        r"\bsk-[A-Za-z0-9]{20}T3BlbkFJ[A-Za-z0-9]{20}\b",
    )
    probe_url = "https://api.openai.com/v1/models"

    def is_plausible_format(self, candidate: str) -> bool:
        if candidate.startswith(("sk-proj-", "sk-svcacct-")):
            return len(candidate) >= 50
        return candidate.startswith("sk-") and "T3BlbkFJ" in candidate and len(candidate) == 51


class AnthropicProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Anthropic Claude",
        api_type=ApiType.ANTHROPIC_CLAUDE,
        category=ProviderCategory.AI_LLM,
    )
    patterns = (r"\bsk-ant-api03-[A-Za-z0-9_-]{80,}",)
    probe_url = "https://api.anthropic.com/v1/models"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith("sk-ant-api03-") and len(candidate) >= 93

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {"headers": {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}}


class GroqProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Groq",
        api_type=ApiType.GROQ,
        category=ProviderCategory.AI_LLM,
    )
    patterns = (r"\bgsk_[A-Za-z0-9]{52}\b",)
    probe_url = "https://api.groq.com/openai/v1/models"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith("gsk_") and len(candidate) == 56 and candidate[4:].isalnum()


class HuggingFaceProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Hugging Face",
        api_type=ApiType.HUGGING_FACE,
        category=ProviderCategory.AI_LLM,
    )
    patterns = (r"\bhf_[A-Za-z0-9]{34,40}\b",)
    probe_url = "https://huggingface.co/api/whoami-v2"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith("hf_") and 37 <= len(candidate) <= 43

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        payload = json_payload(response)
        metadata: list[MetadataItem] = []
        if payload.get("name"):
            metadata.append(MetadataItem("username", "Username", str(payload["name"])))
        if payload.get("type"):
            metadata.append(MetadataItem("account_type", "Account Type", str(payload["type"])))
        return metadata


class _ModelListingProvider(ApiKeyProvider):
    """OpenAI-compatible ``/models`` endpoints where 403 carries no auth meaning."""

    forbidden_kind = None
    prefix = ""
    min_length = 20

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith(self.prefix) and len(candidate) >= self.min_length


class FireworksProvider(_ModelListingProvider):
    descriptor = ProviderDescriptor(
        name="Fireworks AI",
        api_type=ApiType.FIREWORKS_AI,
        category=ProviderCategory.AI_LLM,
    )
    patterns = (
        r"\bfw_[a-zA-Z0-9]{20,80}\b",
        r"\bfireworks[_-]?[a-zA-Z0-9]{20,80}\b",
    )
    probe_url = "https://api.fireworks.ai/inference/v1/models"
    prefix = "fw_"


class XAIProvider(_ModelListingProvider):
    descriptor = ProviderDescriptor(
        name="xAI",
        api_type=ApiType.XAI,
        category=ProviderCategory.AI_LLM,
    )
    patterns = (
        r"\bxai-[a-zA-Z0-9]{20,80}\b",
        r"\bgrok-[a-zA-Z0-9]{20,80}\b",
    )
    probe_url = "https://api.x.ai/v1/models"

    def is_plausible_format(self, candidate: str) -> bool:
        return candidate.startswith(("xai-", "grok-")) and len(candidate) >= self.min_length


class AnyscaleProvider(_ModelListingProvider):
    descriptor = ProviderDescriptor(
        name="Anyscale",
        api_type=ApiType.ANYSCALE,
        category=ProviderCategory.AI_LLM,
    )
    patterns = (
        r"\besecret_[a-zA-Z0-9]{20,80}\b",
        r"\banyscale[_-]?[a-zA-Z0-9]{20,80}\b",
    )
    probe_url = "https://api.endpoints.anyscale.com/v1/models"
    prefix = "esecret_"


class AzureOpenAIProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="Azure OpenAI",
        api_type=ApiType.AZURE_OPENAI,
        category=ProviderCategory.AI_LLM,
        verification_use=False,
        display_in_ui=False,
        verification_disabled_reason=(
            "Requires endpoint URL (e.g., https://{resource}.openai.azure.com/)"
        ),
        hidden_from_ui_reason="Cannot validate without Azure resource endpoint URL",
    )
    patterns = (r"\b[a-fA-F0-9]{32}\b",)

    def is_plausible_format(self, candidate: str) -> bool:
        return len(candidate) == 32 and all(char in "0123456789abcdefABCDEF" for char in candidate)

    def _probe(self, api_key: str) -> ValidationOutcome:
        return self._unverifiable("Cannot validate without Azure resource endpoint URL")


class AWSBedrockProvider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="AWS Bedrock",
        api_type=ApiType.AWS_BEDROCK,
        category=ProviderCategory.AI_LLM,
        verification_use=False,
        display_in_ui=False,
        verification_disabled_reason="Requires Access Key ID + Secret Key + Region + SigV4 signing",
        hidden_from_ui_reason="Cannot validate without Secret Access Key and Region",
    )
    patterns = (
        r"\bAKIA[0-9A-Z]{16}\b",
        r"\bASIA[0-9A-Z]{16}\b",
    )

    def is_plausible_format(self, candidate: str) -> bool:
        return (
            candidate.startswith(("AKIA", "ASIA", "AIDA"))
            and len(candidate) == 20
            and candidate.isalnum()
        )

    def _probe(self, api_key: str) -> ValidationOutcome:
        return self._unverifiable("Cannot validate without Secret Access Key and Region")


class AI21Provider(ApiKeyProvider):
    descriptor = ProviderDescriptor(
        name="AI21",
        api_type=ApiType.AI21,
        category=ProviderCategory.AI_LLM,
        scraper_use=False,
        verification_use=False,
        display_in_ui=False,
        scraper_disabled_reason="Generic 40-80 char pattern matches too many non-AI21 strings",
        verification_disabled_reason="Cloudflare IP-based rate limiting blocks validation",
        hidden_from_ui_reason="Scraping and verification are both disabled",
    )

    def is_plausible_format(self, candidate: str) -> bool:
        return False

    def validate(self, api_key: str) -> ValidationOutcome:
        return ValidationOutcome.provider_specific_error(
            "Cloudflare IP-based rate limiting prevents validation"
        )


AI_PROVIDERS = (
    OpenAIProvider,
    AnthropicProvider,
    GroqProvider,
    HuggingFaceProvider,
    AzureOpenAIProvider,
    FireworksProvider,
    XAIProvider,
    AnyscaleProvider,
    AWSBedrockProvider,
    AI21Provider,
)
