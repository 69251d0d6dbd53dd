"""Explicitly constructed persistence handle.

A :class:`Database` is created from a URL, opened once at process start and
closed at shutdown.  All writes run inside :meth:`Database.transaction`, which
rolls back explicitly before re-raising so a failed multi-row write (a session
and its ownership link) never leaves partial state behind.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Mapping, Optional

import sqlalchemy as sa
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinicscribe.core.logging import get_logger
from clinicscribe.db.models import (
    SESSION_EDITABLE_COLUMNS,
    Base,
    DraftSession,
    PatientSession,
    TranscriptionUsage,
    UserSession,
    UserSettings,
)

logger = get_logger(__name__)


def normalise_database_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or url.startswith("sqlite:///:memory:?")


class Database:
    """Relational store for drafts, sessions, settings and usage."""

    def __init__(self, url: str, echo: bool = False):
        self.url = normalise_database_url(url)
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "Database":
        if self._engine is not None:
            return self

        engine_kwargs: Dict[str, Any] = {"echo": self.echo}
        is_sqlite = self.url.startswith("sqlite")
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_sqlite(self.url):
                # one shared connection, otherwise every checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        engine = create_engine(self.url, **engine_kwargs)

        if is_sqlite:
            @event.listens_for(engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        Base.metadata.create_all(engine)
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        logger.info("database_opened", dialect=engine.dialect.name)
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("database_closed")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(sa.text("SELECT 1"))
        return True

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Yield a session; commit on success, roll back and re-raise on error."""
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_draft(self, user_id: str, audio_url: str) -> DraftSession:
        with self.transaction() as session:
            draft = DraftSession(user_id=user_id, audio_url=audio_url)
            session.add(draft)
            session.flush()
            return draft

    def update_draft(self, draft_id: str, user_id: str, audio_url: str) -> Optional[DraftSession]:
        with self.transaction() as session:
            draft = session.get(DraftSession, draft_id)
            if draft is None or draft.user_id != user_id:
                return None
            draft.audio_url = audio_url
            draft.updated_at = datetime.now(timezone.utc)
            session.flush()
            return draft

    def get_draft(self, draft_id: str, user_id: str) -> Optional[DraftSession]:
        with self.transaction() as session:
            draft = session.get(DraftSession, draft_id)
            if draft is None or draft.user_id != user_id:
                return None
            return draft

    def list_drafts(self, user_id: str) -> List[DraftSession]:
        with self.transaction() as session:
            stmt = (
                sa.select(DraftSession)
                .where(DraftSession.user_id == user_id)
                .order_by(DraftSession.created_at.desc())
            )
            return list(session.scalars(stmt))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        document_url: str,
        draft_id: Optional[str] = None,
    ) -> PatientSession:
        """
        Insert the session and its ownership link in one transaction, then
        remove the originating draft (only if it belongs to ``user_id``).
        """
        with self.transaction() as session:
            record = PatientSession(document_url=document_url, **fields)
            session.add(record)
            session.flush()

            session.add(UserSession(user_id=user_id, session_id=record.id))
            session.flush()

            if draft_id:
                result = session.execute(
                    sa.delete(DraftSession).where(
                        DraftSession.id == draft_id,
                        DraftSession.user_id == user_id,
                    )
                )
                logger.info("draft_promoted", draft_id=draft_id, deleted=result.rowcount)
            return record

    def _owned_session_query(self, user_id: str):
        return (
            sa.select(PatientSession)
            .join(UserSession, UserSession.session_id == PatientSession.id)
            .where(UserSession.user_id == user_id)
        )

    def list_sessions(self, user_id: str) -> List[PatientSession]:
        with self.transaction() as session:
            stmt = self._owned_session_query(user_id).order_by(PatientSession.created_at.desc())
            return list(session.scalars(stmt))

    def get_session(self, session_id: str, user_id: str) -> Optional[PatientSession]:
        with self.transaction() as session:
            stmt = self._owned_session_query(user_id).where(PatientSession.id == session_id)
            return session.scalars(stmt).first()

    def update_session(
        self, session_id: str, user_id: str, fields: Mapping[str, Any]
    ) -> Optional[PatientSession]:
        """Apply a partial update as a single parameterized UPDATE."""
        unknown = set(fields) - SESSION_EDITABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not editable: {', '.join(sorted(unknown))}")

        with self.transaction() as session:
            owned = session.scalars(
                self._owned_session_query(user_id).where(PatientSession.id == session_id)
            ).first()
            if owned is None:
                return None
            if fields:
                session.execute(
                    sa.update(PatientSession)
                    .where(PatientSession.id == session_id)
                    .values(**dict(fields))
                    .execution_options(synchronize_session=False)
                )
                session.refresh(owned)
            return owned

    def delete_session(self, session_id: str, user_id: str) -> bool:
        with self.transaction() as session:
            owned = session.scalars(
                self._owned_session_query(user_id).where(PatientSession.id == session_id)
            ).first()
            if owned is None:
                return False
            session.execute(sa.delete(UserSession).where(UserSession.session_id == session_id))
            session.execute(sa.delete(PatientSession).where(PatientSession.id == session_id))
            return True

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_user_settings(self, user_id: str) -> Optional[UserSettings]:
        with self.transaction() as session:
            return session.get(UserSettings, user_id)

    def upsert_user_settings(self, user_id: str, clinic_prompt: str, summary_prompt: str) -> UserSettings:
        with self.transaction() as session:
            row = session.get(UserSettings, user_id)
            if row is None:
                row = UserSettings(user_id=user_id)
                session.add(row)
            row.clinic_prompt = clinic_prompt
            row.summary_prompt = summary_prompt
            session.flush()
            return row

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def add_usage(self, user_id: str, minutes: float, at: Optional[datetime] = None) -> TranscriptionUsage:
        """Add ``minutes`` to the user's total for the month containing ``at``."""
        at = at or datetime.now(timezone.utc)
        try:
            return self._record_usage(user_id, minutes, at.year, at.month)
        except IntegrityError:
            # a concurrent writer created the period row first; it exists now
            logger.info("usage_period_created_concurrently", user_id=user_id, year=at.year, month=at.month)
            return self._record_usage(user_id, minutes, at.year, at.month)

    def _record_usage(self, user_id: str, minutes: float, year: int, month: int) -> TranscriptionUsage:
        period = (
            TranscriptionUsage.user_id == user_id,
            TranscriptionUsage.year == year,
            TranscriptionUsage.month == month,
        )
        with self.transaction() as session:
            if not self._increment_usage(session, period, minutes):
                session.add(TranscriptionUsage(user_id=user_id, year=year, month=month, minutes_used=minutes))
                session.flush()
            return session.scalars(sa.select(TranscriptionUsage).where(*period)).one()

    @staticmethod
    def _increment_usage(session: Session, period, minutes: float) -> int:
        result = session.execute(
            sa.update(TranscriptionUsage)
            .where(*period)
            .values(minutes_used=TranscriptionUsage.minutes_used + minutes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_usage(
        self, user_id: str, year: Optional[int] = None, month: Optional[int] = None
    ) -> List[TranscriptionUsage]:
        with self.transaction() as session:
            stmt = sa.select(TranscriptionUsage).where(TranscriptionUsage.user_id == user_id)
            if year is not None and month is not None:
                stmt = stmt.where(TranscriptionUsage.year == year, TranscriptionUsage.month == month)
            else:
                stmt = stmt.order_by(TranscriptionUsage.year.desc(), TranscriptionUsage.month.desc())
            return list(session.scalars(stmt))
