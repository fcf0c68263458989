"""Enumerations, protocols and lightweight model types."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol


def utcnow() -> datetime:
    """Return the current time as naive UTC, the form every stored timestamp uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ApiType(str, Enum):
    """Closed set of credential types the registry knows about."""

    OPENAI = "OpenAI"
    ANTHROPIC_CLAUDE = "AnthropicClaude"
    GROQ = "Groq"
    HUGGING_FACE = "HuggingFace"
    AZURE_OPENAI = "AzureOpenAI"
    FIREWORKS_AI = "FireworksAI"
    XAI = "XAI"
    ANYSCALE = "Anyscale"
    AWS_BEDROCK = "AWSBedrock"
    AI21 = "AI21"
    DIGITAL_OCEAN = "DigitalOcean"
    VERCEL = "Vercel"
    CLOUDFLARE = "Cloudflare"
    GITHUB = "GitHub"
    GITLAB = "GitLab"
    SENDGRID = "SendGrid"
    MAILGUN = "Mailgun"
    SLACK = "Slack"
    DISCORD_BOT = "DiscordBot"
    TWILIO = "Twilio"
    PLANETSCALE = "PlanetScale"
    SUPABASE = "Supabase"
    DATADOG = "Datadog"
    SENTRY = "Sentry"
    MAPBOX = "Mapbox"


class ApiStatus(str, Enum):
    """Lifecycle status of a stored candidate."""

    UNVERIFIED = "Unverified"
    VALID = "Valid"
    INVALID = "Invalid"
    REMOVED = "Removed"
    FLAGGED_FOR_REMOVAL = "FlaggedForRemoval"
    NO_LONGER_WORKING = "NoLongerWorking"
    ERROR = "Error"
    VALID_NO_CREDITS = "ValidNoCredits"


# Set by moderation outside the bots; never overwritten by verification.
TERMINAL_STATUSES = frozenset({ApiStatus.REMOVED, ApiStatus.FLAGGED_FOR_REMOVAL})
WORKING_STATUSES = frozenset({ApiStatus.VALID, ApiStatus.VALID_NO_CREDITS})


class SearchProvider(str, Enum):
    """Code-search services a candidate can be discovered on."""

    UNKNOWN = "Unknown"
    GITHUB = "GitHub"
    GITLAB = "GitLab"
    BITBUCKET = "BitBucket"
    SOURCEGRAPH = "SourceGraph"


class ProviderCategory(str, Enum):
    AI_LLM = "AI_LLM"
    CLOUD_INFRASTRUCTURE = "CloudInfrastructure"
    COMMUNICATION = "Communication"
    DATABASE_BACKEND = "DatabaseBackend"
    MAPS_LOCATION = "MapsLocation"
    MONITORING = "Monitoring"
    SOURCE_CONTROL = "SourceControl"
    OTHER = "Other"


class OutcomeKind(str, Enum):
    """Closed taxonomy of live-probe results."""

    SUCCESS = "Success"
    UNAUTHORIZED = "Unauthorized"
    VALID_NO_CREDITS = "ValidNoCredits"
    PROVIDER_SPECIFIC_ERROR = "ProviderSpecificError"
    HTTP_ERROR = "HttpError"


@dataclass(frozen=True)
class MetadataItem:
    """One key/value pair extracted from a successful probe."""

    key: str
    label: str
    value: str


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of one live probe. Expected failures are outcomes, not exceptions."""

    kind: OutcomeKind
    status_code: int | None = None
    detail: str | None = None
    metadata: tuple[MetadataItem, ...] = ()

    @classmethod
    def success(
        cls, status_code: int | None, metadata: Sequence[MetadataItem] = ()
    ) -> ValidationOutcome:
        return cls(OutcomeKind.SUCCESS, status_code, metadata=tuple(metadata))

    @classmethod
    def unauthorized(cls, status_code: int | None, detail: str | None = None) -> ValidationOutcome:
        return cls(OutcomeKind.UNAUTHORIZED, status_code, detail)

    @classmethod
    def valid_no_credits(
        cls, status_code: int | None, detail: str | None = None
    ) -> ValidationOutcome:
        return cls(OutcomeKind.VALID_NO_CREDITS, status_code, detail)

    @classmethod
    def provider_specific_error(cls, detail: str) -> ValidationOutcome:
        return cls(OutcomeKind.PROVIDER_SPECIFIC_ERROR, None, detail)

    @classmethod
    def http_error(cls, status_code: int | None, detail: str) -> ValidationOutcome:
        return cls(OutcomeKind.HTTP_ERROR, status_code, detail)


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static capability metadata for one credential type."""

    name: str
    api_type: ApiType
    category: ProviderCategory = ProviderCategory.OTHER
    scraper_use: bool = True
    verification_use: bool = True
    display_in_ui: bool = True
    scraper_disabled_reason: str | None = None
    verification_disabled_reason: str | None = None
    hidden_from_ui_reason: str | None = None


@dataclass(frozen=True)
class DiscoverySource:
    """Where a blob of text was found."""

    search_provider: SearchProvider
    query: str
    source_url: str | None = None


@dataclass(frozen=True)
class Blob:
    """A raw text snippet returned by a search backend."""

    text: str
    source: DiscoverySource


@dataclass(frozen=True)
class CandidateMatch:
    """A format-valid credential found in one blob."""

    api_type: ApiType
    text: str
    occurrences: int = 1


@dataclass(frozen=True)
class Candidate:
    """Snapshot of one stored candidate row."""

    id: int
    api_key: str
    api_type: ApiType
    status: ApiStatus
    search_provider: SearchProvider
    source_query: str | None
    source_url: str | None
    first_found_at: datetime
    last_found_at: datetime
    last_checked_at: datetime | None = None
    times_found: int = 1
    times_displayed: int = 0
    error_count: int = 0
    metadata: tuple[MetadataItem, ...] = ()
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None


@dataclass(frozen=True)
class CandidateUpdate:
    """Next persisted state decided for a candidate after one probe."""

    status: ApiStatus
    error_count: int
    checked_at: datetime
    metadata: tuple[MetadataItem, ...] | None = None


@dataclass(frozen=True)
class SearchQuery:
    id: int
    query: str
    is_enabled: bool = True
    last_search_at: datetime | None = None
    search_results_count: int = 0


@dataclass(frozen=True)
class SearchToken:
    id: int
    token: str
    search_provider: SearchProvider
    is_enabled: bool = True
    last_used_at: datetime | None = None


@dataclass(frozen=True)
class BotSettings:
    """Snapshot of persisted bot switches, read once per cycle."""

    allow_scraper: bool = True
    scraper_continuous_mode: bool = False
    allow_verifier: bool = True
    verifier_continuous_mode: bool = False


@dataclass(frozen=True)
class QueryYield:
    """Share of a search query's candidates that verified as working."""

    query: str
    total: int
    valid: int
    success_rate: float = 0.0


TransitionFn = Callable[[Candidate], "CandidateUpdate | None"]


class SearchBackend(Protocol):
    """Contract for code-search collaborators."""

    search_provider: SearchProvider

    def search(self, query: str, token: str) -> list[Blob]:
        """Return text blobs matching a query, authenticated with a token."""


class CandidateStore(Protocol):
    """Contract for the persisted candidate store."""

    def upsert_candidate(self, match: CandidateMatch, source: DiscoverySource) -> bool:
        """Insert a new Unverified row or refresh an existing one. Return True when created."""

    def claim_candidate(self, candidate_id: int, owner: str) -> Candidate | None:
        """Take a verification lease, returning the claimed row or None if unavailable."""

    def update_candidate_status(
        self, candidate_id: int, owner: str, transition: TransitionFn
    ) -> Candidate | None:
        """Read, decide and write a status transition in one transaction and clear the lease."""

    def release_candidate(self, candidate_id: int, owner: str) -> None:
        """Drop a lease without changing the row."""

    def read_due_candidates(
        self,
        api_types: Sequence[ApiType],
        *,
        retry_before: datetime,
        recheck_before: datetime,
        limit: int,
    ) -> list[Candidate]:
        """Return candidates due for (re-)verification."""

    def load_settings(self) -> BotSettings:
        """Return the current bot switches."""
