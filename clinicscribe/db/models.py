"""SQLAlchemy models for drafts, patient sessions, ownership links, settings and usage."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class DraftSession(Base):
    """In-progress recording persisted for recovery; deleted on promotion."""

    __tablename__ = "draft_sessions"

    id = sa.Column(String(36), primary_key=True, default=_uuid)
    user_id = sa.Column(String(255), nullable=False, index=True)
    audio_url = sa.Column(Text, nullable=False)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class PatientSession(Base):
    """Finalized consultation record with its generated document."""

    __tablename__ = "patient_sessions"

    id = sa.Column(String(36), primary_key=True, default=_uuid)
    name = sa.Column(Text, nullable=False)
    age = sa.Column(Integer, nullable=False)
    transcript = sa.Column(Text)
    summary = sa.Column(Text)
    examination_results = sa.Column(Text)
    suggested_diagnosis = sa.Column(Text)
    suggested_prescription = sa.Column(Text)
    final_diagnosis = sa.Column(Text, nullable=False)
    final_prescription = sa.Column(Text, nullable=False)
    treatment_plan = sa.Column(Text)
    doctor_notes = sa.Column(Text)
    document_url = sa.Column(Text)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class UserSession(Base):
    """Ownership link between a user and a patient session."""

    __tablename__ = "user_sessions"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    user_id = sa.Column(String(255), nullable=False, index=True)
    session_id = sa.Column(
        String(36),
        ForeignKey("patient_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id = sa.Column(String(255), primary_key=True)
    clinic_prompt = sa.Column(Text, nullable=False, default="")
    summary_prompt = sa.Column(Text, nullable=False, default="")


class TranscriptionUsage(Base):
    __tablename__ = "transcription_usage"
    __table_args__ = (sa.UniqueConstraint("user_id", "year", "month", name="uq_usage_user_period"),)

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    user_id = sa.Column(String(255), nullable=False)
    year = sa.Column(Integer, nullable=False)
    month = sa.Column(Integer, nullable=False)
    minutes_used = sa.Column(Float, nullable=False, default=0.0)


# Columns a session edit may touch. Identity, ownership and created_at stay fixed.
SESSION_EDITABLE_COLUMNS = frozenset(
    {
        "transcript",
        "summary",
        "examination_results",
        "final_diagnosis",
        "final_prescription",
        "treatment_plan",
        "doctor_notes",
        "document_url",
    }
)


def row_to_dict(row) -> dict:
    """Serialise an ORM row into plain JSON-friendly values."""
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[column.name] = value
    return data
