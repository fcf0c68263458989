"""Provider contract and the shared response classifier."""

from __future__ import annotations

import logging
import re
from typing import Any, ClassVar

from requests import Response, Session

from ..config import DEFAULT_REQUEST_TIMEOUT, DEFAULT_USER_AGENT
from ..http_client import make_provider_session
from ..logging_utils import get_logger, mask_key
from ..models import ApiType, MetadataItem, OutcomeKind, ProviderDescriptor, ValidationOutcome

MAX_RESPONSE_PREVIEW = 200

# Body phrases meaning "authenticated, but out of quota or credit".
QUOTA_INDICATORS = (
    "insufficient_quota",
    "exceeded your current quota",
    "quota exceeded",
    "credit balance is too low",
    "out of credits",
    "payment required",
    "billing_hard_limit",
)

# Body phrases a 403 carries when it means "authenticated, but throttled".
FORBIDDEN_RATE_LIMIT_PHRASES = ("api rate limit exceeded",)


def truncate_response(body: str | None, limit: int = MAX_RESPONSE_PREVIEW) -> str:
    """Shorten a response body for logs and outcome details."""
    if not body:
        return ""
    if len(body) <= limit:
        return body
    return body[:limit] + "...[truncated]"


def contains_any(body: str | None, phrases: tuple[str, ...]) -> bool:
    """Case-insensitive substring check against a list of phrases."""
    if not body:
        return False
    lowered = body.lower()
    return any(phrase.lower() in lowered for phrase in phrases)


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


def is_forbidden_rate_limited(response: Response) -> bool:
    """Return True when a 403 is a throttle on an authenticated credential."""
    if response.headers.get("X-RateLimit-Remaining") == "0":
        return True
    return contains_any(response.text, FORBIDDEN_RATE_LIMIT_PHRASES)


def json_payload(response: Response) -> dict[str, Any]:
    """Decode a JSON object body, or return an empty dict."""
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


class ApiKeyProvider:
    """Base class for every credential type.

    A subclass declares a ``descriptor``, its ``patterns`` and a format
    pre-check, and either a ``probe_url`` (plus header conventions) for the
    default probe or its own ``_probe``. Status-code variance is expressed with
    the class attributes below and mapped by ``classify``:

    - ``forbidden_kind``: outcome for a plain 403 (None means HttpError).
    - ``rate_limited_kind``: outcome for a 429 without quota phrases.
    - ``not_found_kind``: outcome for a 404 (None means HttpError).
    - ``quota_indicators``: body phrases that turn a 2xx/402/429 into
      ValidNoCredits.
    """

    descriptor: ClassVar[ProviderDescriptor]
    patterns: ClassVar[tuple[str, ...]] = ()

    probe_url: ClassVar[str | None] = None
    probe_method: ClassVar[str] = "GET"

    forbidden_kind: ClassVar[OutcomeKind | None] = OutcomeKind.UNAUTHORIZED
    rate_limited_kind: ClassVar[OutcomeKind] = OutcomeKind.SUCCESS
    not_found_kind: ClassVar[OutcomeKind | None] = None
    quota_indicators: ClassVar[tuple[str, ...]] = QUOTA_INDICATORS

    def __init__(
        self,
        *,
        session: Session | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        logger: logging.Logger | None = None,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._user_agent = user_agent
        self._logger = logger or get_logger()
        self._compiled = tuple(re.compile(pattern) for pattern in self.patterns)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def api_type(self) -> ApiType:
        return self.descriptor.api_type

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = make_provider_session(self._user_agent)
        return self._session

    def extraction_patterns(self) -> tuple[re.Pattern[str], ...]:
        """Compiled patterns in evaluation order; may be empty."""
        return self._compiled

    def is_plausible_format(self, candidate: str) -> bool:
        """Cheap structural check run after pattern matching and before any network call."""
        raise NotImplementedError

    def validate(self, api_key: str) -> ValidationOutcome:
        """Probe the provider. Transport faults propagate as requests exceptions."""
        if not self.is_plausible_format(api_key):
            return ValidationOutcome.provider_specific_error(
                f"{self.name} rejected {mask_key(api_key)} at the format check"
            )
        return self._probe(api_key)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()

    def _request_kwargs(self, api_key: str) -> dict[str, Any]:
        return {"headers": {"Authorization": f"Bearer {api_key}"}}

    def _probe(self, api_key: str) -> ValidationOutcome:
        if not self.probe_url:
            return self._unverifiable()
        response = self.session.request(
            self.probe_method, self.probe_url, timeout=self._timeout, **self._request_kwargs(api_key)
        )
        self._log_response(response)
        return self.classify(response)

    def _unverifiable(self, detail: str | None = None) -> ValidationOutcome:
        reason = detail or self.descriptor.verification_disabled_reason or "No live probe available"
        self._logger.info("%s credential detected; cannot validate: %s", self.name, reason)
        return ValidationOutcome.provider_specific_error(reason)

    def _log_response(self, response: Response) -> None:
        self._logger.debug(
            "%s API response: status=%s body=%s",
            self.name,
            response.status_code,
            truncate_response(response.text),
        )

    def extract_metadata(self, response: Response) -> list[MetadataItem]:
        """Pull account details out of a successful response."""
        return []

    def classify(self, response: Response) -> ValidationOutcome:
        """Map an HTTP response to the outcome taxonomy."""
        status = response.status_code
        body = response.text
        if is_success_status(status):
            if contains_any(body, self.quota_indicators):
                return ValidationOutcome.valid_no_credits(status, "Quota exhausted")
            return ValidationOutcome.success(status, self._safe_metadata(response))
        if status == 401:
            return ValidationOutcome.unauthorized(status)
        if status == 402:
            return ValidationOutcome.valid_no_credits(status, "Payment required")
        if status == 403:
            if is_forbidden_rate_limited(response):
                self._logger.info("%s credential is valid but rate limited", self.name)
                return ValidationOutcome.valid_no_credits(status, "Rate limited")
            if self.forbidden_kind is not None:
                return self._outcome_for(self.forbidden_kind, status)
        if status == 404 and self.not_found_kind is not None:
            return self._outcome_for(self.not_found_kind, status)
        if status == 429:
            if contains_any(body, self.quota_indicators):
                return ValidationOutcome.valid_no_credits(status, "Quota exhausted")
            return self._outcome_for(self.rate_limited_kind, status)
        return ValidationOutcome.http_error(
            status,
            f"{self.name} API request failed with status {status}. "
            f"Response: {truncate_response(body)}",
        )

    def _outcome_for(self, kind: OutcomeKind, status: int) -> ValidationOutcome:
        if kind is OutcomeKind.SUCCESS:
            return ValidationOutcome.success(status)
        if kind is OutcomeKind.VALID_NO_CREDITS:
            return ValidationOutcome.valid_no_credits(status)
        if kind is OutcomeKind.UNAUTHORIZED:
            return ValidationOutcome.unauthorized(status)
        raise ValueError(f"{kind} is not a status-derived outcome")

    def _safe_metadata(self, response: Response) -> list[MetadataItem]:
        try:
            return self.extract_metadata(response)
        except (ValueError, TypeError, AttributeError) as exc:
            self._logger.warning("Failed to extract metadata from %s response: %s", self.name, exc)
            return []
