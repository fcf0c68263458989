"""SQLAlchemy-backed candidate store, search state and bot settings."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    and_,
    case,
    create_engine,
    func,
    or_,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DEFAULT_LEASE_SECONDS
from .errors import StoreError
from .logging_utils import get_logger, mask_key
from .models import (
    TERMINAL_STATUSES,
    WORKING_STATUSES,
    ApiStatus,
    ApiType,
    BotSettings,
    Candidate,
    CandidateMatch,
    DiscoverySource,
    MetadataItem,
    QueryYield,
    SearchProvider,
    SearchQuery,
    SearchToken,
    TransitionFn,
    utcnow,
)

Base: Any = declarative_base()

SETTING_ALLOW_SCRAPER = "AllowScraper"
SETTING_SCRAPER_CONTINUOUS = "ScraperContinuousMode"
SETTING_ALLOW_VERIFIER = "AllowVerifier"
SETTING_VERIFIER_CONTINUOUS = "VerifierContinuousMode"


class ApiKeyRecord(Base):
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    api_key = Column(String(1024), nullable=False)
    api_type = Column(String(50), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=ApiStatus.UNVERIFIED.value, index=True)
    search_provider = Column(String(32), nullable=False, default=SearchProvider.UNKNOWN.value)
    source_query = Column(Text, nullable=True)
    source_url = Column(Text, nullable=True)

    first_found_at = Column(DateTime, nullable=False)
    last_found_at = Column(DateTime, nullable=False)
    last_checked_at = Column(DateTime, nullable=True, index=True)
    times_found = Column(Integer, nullable=False, default=1)
    times_displayed = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    metadata_json = Column("metadata", Text, nullable=True)

    # Verification lease
    lease_owner = Column(String(64), nullable=True)
    lease_expires_at = Column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("api_type", "api_key", name="uq_api_keys_type_key"),)


class SearchQueryRecord(Base):
    __tablename__ = "search_queries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    query = Column(Text, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
    search_results_count = Column(Integer, nullable=False, default=0)
    last_search_at = Column(DateTime, nullable=True)


class SearchTokenRecord(Base):
    __tablename__ = "search_provider_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(512), nullable=False)
    search_provider = Column(String(32), nullable=False, index=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    last_used_at = Column(DateTime, nullable=True)


class SettingRecord(Base):
    __tablename__ = "application_settings"

    key = Column(String(100), primary_key=True)
    value = Column(String(255), nullable=False)


def _dump_metadata(metadata: Sequence[MetadataItem]) -> str | None:
    if not metadata:
        return None
    return json.dumps([{"key": i.key, "label": i.label, "value": i.value} for i in metadata])


def _load_metadata(raw: str | None) -> tuple[MetadataItem, ...]:
    if not raw:
        return ()
    return tuple(
        MetadataItem(key=item["key"], label=item["label"], value=item["value"])
        for item in json.loads(raw)
    )


def _to_candidate(record: ApiKeyRecord) -> Candidate:
    return Candidate(
        id=record.id,
        api_key=record.api_key,
        api_type=ApiType(record.api_type),
        status=ApiStatus(record.status),
        search_provider=SearchProvider(record.search_provider),
        source_query=record.source_query,
        source_url=record.source_url,
        first_found_at=record.first_found_at,
        last_found_at=record.last_found_at,
        last_checked_at=record.last_checked_at,
        times_found=record.times_found,
        times_displayed=record.times_displayed,
        error_count=record.error_count,
        metadata=_load_metadata(record.metadata_json),
        lease_owner=record.lease_owner,
        lease_expires_at=record.lease_expires_at,
    )


def _lease_free(now: datetime) -> Any:
    return or_(ApiKeyRecord.lease_owner.is_(None), ApiKeyRecord.lease_expires_at < now)


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in {"true", "1", "yes", "on"}


class SqlCandidateStore:
    """Candidate store over any SQLAlchemy engine.

    Rows are unique per (api_type, api_key). Verification is guarded by a
    lease: ``claim_candidate`` sets an owner and expiry with a conditional
    UPDATE, and only that owner may write the resulting status.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._lease_seconds = lease_seconds
        self._clock = clock
        self._logger = logger or get_logger()

    @classmethod
    def from_url(cls, database_url: str, **kwargs: Any) -> SqlCandidateStore:
        if database_url.startswith("sqlite"):
            engine = create_engine(database_url, connect_args={"check_same_thread": False})
        else:
            engine = create_engine(database_url, pool_pre_ping=True)
        return cls(engine, **kwargs)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Database operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Candidates

    def upsert_candidate(self, match: CandidateMatch, source: DiscoverySource) -> bool:
        try:
            with self._session() as session:
                return self._upsert(session, match, source)
        except IntegrityError:
            # Another writer inserted the same (type, text) between our check and insert.
            self._logger.debug("Upsert race on %s, retrying as refresh", mask_key(match.text))
        try:
            with self._session() as session:
                return self._upsert(session, match, source)
        except IntegrityError as exc:
            raise StoreError(f"Could not upsert candidate: {exc}") from exc

    def _upsert(self, session: Session, match: CandidateMatch, source: DiscoverySource) -> bool:
        now = self._clock()
        refreshed = (
            session.query(ApiKeyRecord)
            .filter(
                ApiKeyRecord.api_type == match.api_type.value,
                ApiKeyRecord.api_key == match.text,
            )
            .update(
                {
                    ApiKeyRecord.times_found: ApiKeyRecord.times_found + match.occurrences,
                    ApiKeyRecord.last_found_at: now,
                },
                synchronize_session=False,
            )
        )
        if refreshed:
            return False
        session.add(
            ApiKeyRecord(
                api_key=match.text,
                api_type=match.api_type.value,
                status=ApiStatus.UNVERIFIED.value,
                search_provider=source.search_provider.value,
                source_query=source.query,
                source_url=source.source_url,
                first_found_at=now,
                last_found_at=now,
                times_found=match.occurrences,
                times_displayed=0,
                error_count=0,
            )
        )
        session.flush()
        return True

    def get_candidate(self, candidate_id: int) -> Candidate | None:
        with self._session() as session:
            record = session.get(ApiKeyRecord, candidate_id)
            return _to_candidate(record) if record is not None else None

    def find_candidate(self, api_type: ApiType, api_key: str) -> Candidate | None:
        with self._session() as session:
            record = (
                session.query(ApiKeyRecord)
                .filter(ApiKeyRecord.api_type == api_type.value, ApiKeyRecord.api_key == api_key)
                .one_or_none()
            )
            return _to_candidate(record) if record is not None else None

    def list_candidates(
        self,
        *,
        statuses: Sequence[ApiStatus] | None = None,
        api_types: Sequence[ApiType] | None = None,
    ) -> list[Candidate]:
        with self._session() as session:
            query = session.query(ApiKeyRecord)
            if statuses is not None:
                query = query.filter(ApiKeyRecord.status.in_([s.value for s in statuses]))
            if api_types is not None:
                query = query.filter(ApiKeyRecord.api_type.in_([t.value for t in api_types]))
            return [_to_candidate(record) for record in query.order_by(ApiKeyRecord.id)]

    def set_status(self, candidate_id: int, status: ApiStatus) -> None:
        """Set a status directly, as an external moderation action does."""
        with self._session() as session:
            session.query(ApiKeyRecord).filter(ApiKeyRecord.id == candidate_id).update(
                {ApiKeyRecord.status: status.value}, synchronize_session=False
            )

    # Verification leases

    def claim_candidate(self, candidate_id: int, owner: str) -> Candidate | None:
        now = self._clock()
        with self._session() as session:
            claimed = (
                session.query(ApiKeyRecord)
                .filter(
                    ApiKeyRecord.id == candidate_id,
                    ApiKeyRecord.status.notin_([s.value for s in TERMINAL_STATUSES]),
                    _lease_free(now),
                )
                .update(
                    {
                        ApiKeyRecord.lease_owner: owner,
                        ApiKeyRecord.lease_expires_at: now + timedelta(seconds=self._lease_seconds),
                    },
                    synchronize_session=False,
                )
            )
            if not claimed:
                return None
            record = session.get(ApiKeyRecord, candidate_id)
            return _to_candidate(record)

    def update_candidate_status(
        self, candidate_id: int, owner: str, transition: TransitionFn
    ) -> Candidate | None:
        with self._session() as session:
            record = (
                session.query(ApiKeyRecord)
                .filter(ApiKeyRecord.id == candidate_id)
                .with_for_update()
                .one_or_none()
            )
            if record is None:
                return None
            if record.lease_owner != owner:
                self._logger.warning(
                    "Lease on candidate %s was lost before the result could be written",
                    candidate_id,
                )
                return None

            update = transition(_to_candidate(record))
            record.lease_owner = None
            record.lease_expires_at = None
            if update is not None:
                record.status = update.status.value
                record.error_count = update.error_count
                record.last_checked_at = update.checked_at
                if update.metadata is not None:
                    record.metadata_json = _dump_metadata(update.metadata)
            session.flush()
            return _to_candidate(record)

    def release_candidate(self, candidate_id: int, owner: str) -> None:
        with self._session() as session:
            session.query(ApiKeyRecord).filter(
                ApiKeyRecord.id == candidate_id, ApiKeyRecord.lease_owner == owner
            ).update(
                {ApiKeyRecord.lease_owner: None, ApiKeyRecord.lease_expires_at: None},
                synchronize_session=False,
            )

    def read_due_candidates(
        self,
        api_types: Sequence[ApiType],
        *,
        retry_before: datetime,
        recheck_before: datetime,
        limit: int,
    ) -> list[Candidate]:
        """Unverified rows due a (re)try plus working rows due a recheck, oldest first."""
        if not api_types:
            return []
        now = self._clock()
        never_checked = ApiKeyRecord.last_checked_at.is_(None)
        with self._session() as session:
            records = (
                session.query(ApiKeyRecord)
                .filter(
                    ApiKeyRecord.api_type.in_([t.value for t in api_types]),
                    _lease_free(now),
                    or_(
                        and_(
                            ApiKeyRecord.status == ApiStatus.UNVERIFIED.value,
                            or_(never_checked, ApiKeyRecord.last_checked_at < retry_before),
                        ),
                        and_(
                            ApiKeyRecord.status.in_([s.value for s in WORKING_STATUSES]),
                            or_(never_checked, ApiKeyRecord.last_checked_at < recheck_before),
                        ),
                    ),
                )
                .order_by(never_checked.desc(), ApiKeyRecord.last_checked_at, ApiKeyRecord.id)
                .limit(limit)
                .all()
            )
            return [_to_candidate(record) for record in records]

    # Aggregates

    def count_by_status(self) -> dict[ApiStatus, int]:
        with self._session() as session:
            rows = (
                session.query(ApiKeyRecord.status, func.count(ApiKeyRecord.id))
                .group_by(ApiKeyRecord.status)
                .all()
            )
        return {ApiStatus(status): count for status, count in rows}

    def count_by_type(self, api_types: Sequence[ApiType] | None = None) -> dict[ApiType, int]:
        with self._session() as session:
            query = session.query(ApiKeyRecord.api_type, func.count(ApiKeyRecord.id))
            if api_types is not None:
                query = query.filter(ApiKeyRecord.api_type.in_([t.value for t in api_types]))
            rows = query.group_by(ApiKeyRecord.api_type).all()
        return {ApiType(api_type): count for api_type, count in rows}

    def top_queries(self, limit: int = 10) -> list[QueryYield]:
        """Source queries ranked by the share of their candidates that are Valid."""
        valid = func.sum(case((ApiKeyRecord.status == ApiStatus.VALID.value, 1), else_=0))
        with self._session() as session:
            rows = (
                session.query(ApiKeyRecord.source_query, func.count(ApiKeyRecord.id), valid)
                .filter(ApiKeyRecord.source_query.isnot(None))
                .group_by(ApiKeyRecord.source_query)
                .all()
            )
        yields = [
            QueryYield(
                query=query,
                total=total,
                valid=int(valid_count or 0),
                success_rate=(valid_count or 0) / total,
            )
            for query, total, valid_count in rows
            if total
        ]
        yields.sort(key=lambda item: (-item.success_rate, -item.valid, item.query))
        return yields[:limit]

    # Search queries and tokens

    def add_search_query(self, query: str, *, is_enabled: bool = True) -> int:
        with self._session() as session:
            record = SearchQueryRecord(query=query, is_enabled=is_enabled, search_results_count=0)
            session.add(record)
            session.flush()
            return record.id

    def due_queries(self, before: datetime, limit: int) -> list[SearchQuery]:
        never_run = SearchQueryRecord.last_search_at.is_(None)
        with self._session() as session:
            records = (
                session.query(SearchQueryRecord)
                .filter(
                    SearchQueryRecord.is_enabled.is_(True),
                    or_(never_run, SearchQueryRecord.last_search_at < before),
                )
                .order_by(never_run.desc(), SearchQueryRecord.last_search_at, SearchQueryRecord.id)
                .limit(limit)
                .all()
            )
            return [
                SearchQuery(
                    id=r.id,
                    query=r.query,
                    is_enabled=r.is_enabled,
                    last_search_at=r.last_search_at,
                    search_results_count=r.search_results_count,
                )
                for r in records
            ]

    def mark_query_executed(self, query_id: int, results_count: int) -> None:
        with self._session() as session:
            session.query(SearchQueryRecord).filter(SearchQueryRecord.id == query_id).update(
                {
                    SearchQueryRecord.last_search_at: self._clock(),
                    SearchQueryRecord.search_results_count: results_count,
                },
                synchronize_session=False,
            )

    def add_search_token(self, token: str, search_provider: SearchProvider) -> int:
        with self._session() as session:
            record = SearchTokenRecord(
                token=token, search_provider=search_provider.value, is_enabled=True
            )
            session.add(record)
            session.flush()
            return record.id

    def enabled_tokens(self, search_provider: SearchProvider) -> list[SearchToken]:
        never_used = SearchTokenRecord.last_used_at.is_(None)
        with self._session() as session:
            records = (
                session.query(SearchTokenRecord)
                .filter(
                    SearchTokenRecord.search_provider == search_provider.value,
                    SearchTokenRecord.is_enabled.is_(True),
                )
                .order_by(never_used.desc(), SearchTokenRecord.last_used_at, SearchTokenRecord.id)
                .all()
            )
            return [
                SearchToken(
                    id=r.id,
                    token=r.token,
                    search_provider=SearchProvider(r.search_provider),
                    is_enabled=r.is_enabled,
                    last_used_at=r.last_used_at,
                )
                for r in records
            ]

    def mark_token_used(self, token_id: int) -> None:
        with self._session() as session:
            session.query(SearchTokenRecord).filter(SearchTokenRecord.id == token_id).update(
                {SearchTokenRecord.last_used_at: self._clock()}, synchronize_session=False
            )

    # Settings

    def set_setting(self, key: str, value: bool) -> None:
        with self._session() as session:
            session.merge(SettingRecord(key=key, value="true" if value else "false"))

    def load_settings(self) -> BotSettings:
        with self._session() as session:
            values = {r.key: r.value for r in session.query(SettingRecord).all()}
        return BotSettings(
            allow_scraper=_parse_bool(values.get(SETTING_ALLOW_SCRAPER), True),
            scraper_continuous_mode=_parse_bool(values.get(SETTING_SCRAPER_CONTINUOUS), False),
            allow_verifier=_parse_bool(values.get(SETTING_ALLOW_VERIFIER), True),
            verifier_continuous_mode=_parse_bool(values.get(SETTING_VERIFIER_CONTINUOUS), False),
        )
