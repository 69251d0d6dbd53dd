from datetime import datetime, timezone

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from clinicscribe.db.database import Database, normalise_database_url
from clinicscribe.db.models import DraftSession, PatientSession, UserSession, row_to_dict


def _fields(**overrides):
    fields = dict(
        name="Jane Tan",
        age=45,
        transcript="Speaker A: hello",
        summary="Sore throat",
        suggested_diagnosis="Pharyngitis",
        suggested_prescription="Paracetamol",
        final_diagnosis="Pharyngitis",
        final_prescription="Paracetamol",
    )
    fields.update(overrides)
    return fields


def _count(db, model):
    with db.transaction() as session:
        return session.scalar(sa.select(sa.func.count()).select_from(model))


def test_normalise_database_url():
    assert normalise_database_url("postgres://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
    assert normalise_database_url("postgresql://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
    assert normalise_database_url("sqlite://") == "sqlite://"


def test_closed_database_refuses_work():
    database = Database("sqlite://")

    with pytest.raises(RuntimeError):
        database.list_drafts("doctor-1")


def test_ping(db):
    assert db.ping() is True


def test_draft_create_and_update_in_place(db):
    draft = db.create_draft("doctor-1", "https://files/drafts/doctor-1/1.webm")

    updated = db.update_draft(draft.id, "doctor-1", "https://files/drafts/doctor-1/2.webm")

    assert updated.id == draft.id
    assert updated.audio_url.endswith("2.webm")
    assert _count(db, DraftSession) == 1


def test_draft_update_is_owner_scoped(db):
    draft = db.create_draft("doctor-1", "url-1")

    assert db.update_draft(draft.id, "doctor-2", "url-2") is None
    assert db.update_draft("missing", "doctor-1", "url-2") is None
    assert db.get_draft(draft.id, "doctor-1").audio_url == "url-1"
    assert db.get_draft(draft.id, "doctor-2") is None


def test_list_drafts_only_returns_own(db):
    db.create_draft("doctor-1", "a")
    db.create_draft("doctor-1", "b")
    db.create_draft("doctor-2", "c")

    assert {d.audio_url for d in db.list_drafts("doctor-1")} == {"a", "b"}


def test_create_session_links_owner_and_removes_draft(db):
    draft = db.create_draft("doctor-1", "draft-url")

    row = db.create_session("doctor-1", _fields(), "https://files/doc.html", draft_id=draft.id)

    assert db.get_session(row.id, "doctor-1").document_url == "https://files/doc.html"
    assert db.list_drafts("doctor-1") == []
    assert _count(db, UserSession) == 1


def test_create_session_keeps_drafts_of_other_users(db):
    draft = db.create_draft("doctor-1", "draft-url")

    db.create_session("doctor-2", _fields(), "doc-url", draft_id=draft.id)

    assert len(db.list_drafts("doctor-1")) == 1


def test_create_session_is_all_or_nothing(db):
    draft = db.create_draft("doctor-1", "draft-url")

    # the ownership link insert fails after the session row was flushed
    with pytest.raises(IntegrityError):
        db.create_session(None, _fields(), "doc-url", draft_id=draft.id)

    assert _count(db, PatientSession) == 0
    assert _count(db, UserSession) == 0
    assert _count(db, DraftSession) == 1


def test_sessions_are_owner_scoped(db):
    row = db.create_session("doctor-1", _fields(), "doc-url")

    assert db.get_session(row.id, "doctor-2") is None
    assert db.list_sessions("doctor-2") == []
    assert [s.id for s in db.list_sessions("doctor-1")] == [row.id]


def test_update_session_touches_only_given_columns(db):
    row = db.create_session("doctor-1", _fields(treatment_plan="Review in a week"), "doc-url")

    updated = db.update_session(row.id, "doctor-1", {"final_diagnosis": "Tonsillitis", "document_url": "new-url"})

    assert updated.final_diagnosis == "Tonsillitis"
    assert updated.document_url == "new-url"
    assert updated.final_prescription == "Paracetamol"
    assert updated.treatment_plan == "Review in a week"
    assert updated.name == "Jane Tan"


def test_update_session_rejects_unknown_columns(db):
    row = db.create_session("doctor-1", _fields(), "doc-url")

    with pytest.raises(ValueError):
        db.update_session(row.id, "doctor-1", {"name": "Someone else"})


def test_update_session_not_owned(db):
    row = db.create_session("doctor-1", _fields(), "doc-url")

    assert db.update_session(row.id, "doctor-2", {"summary": "x"}) is None
    assert db.get_session(row.id, "doctor-1").summary == "Sore throat"


def test_delete_session(db):
    row = db.create_session("doctor-1", _fields(), "doc-url")

    assert db.delete_session(row.id, "doctor-2") is False
    assert db.delete_session(row.id, "doctor-1") is True
    assert db.get_session(row.id, "doctor-1") is None
    assert _count(db, UserSession) == 0


def test_settings_upsert(db):
    assert db.get_user_settings("doctor-1") is None

    db.upsert_user_settings("doctor-1", "Paediatrics", "")
    db.upsert_user_settings("doctor-1", "General practice", "Bullet points")

    stored = db.get_user_settings("doctor-1")
    assert stored.clinic_prompt == "General practice"
    assert stored.summary_prompt == "Bullet points"


def test_usage_accumulates_per_period(db):
    march = datetime(2025, 3, 10, tzinfo=timezone.utc)
    april = datetime(2025, 4, 2, tzinfo=timezone.utc)
    db.add_usage("doctor-1", 1.5, at=march)
    db.add_usage("doctor-1", 2.0, at=march)
    db.add_usage("doctor-1", 0.5, at=april)
    db.add_usage("doctor-2", 9.0, at=march)

    rows = db.get_usage("doctor-1")
    assert [(r.year, r.month, r.minutes_used) for r in rows] == [(2025, 4, 0.5), (2025, 3, 3.5)]

    filtered = db.get_usage("doctor-1", year=2025, month=3)
    assert [r.minutes_used for r in filtered] == [3.5]


def test_row_to_dict_serialises_datetimes(db):
    row = db.create_session("doctor-1", _fields(), "doc-url")

    data = row_to_dict(db.get_session(row.id, "doctor-1"))

    assert data["id"] == row.id
    assert data["final_diagnosis"] == "Pharyngitis"
    assert isinstance(data["created_at"], str)


def test_usage_period_created_concurrently_is_not_lost(db, monkeypatch):
    march = datetime(2025, 3, 10, tzinfo=timezone.utc)
    db.add_usage("doctor-1", 1.0, at=march)

    increment = Database._increment_usage
    calls = []

    def racing_increment(session, period, minutes):
        # first attempt behaves as if another writer had not committed yet
        calls.append(minutes)
        if len(calls) == 1:
            return 0
        return increment(session, period, minutes)

    monkeypatch.setattr(db, "_increment_usage", racing_increment)

    row = db.add_usage("doctor-1", 2.0, at=march)

    assert len(calls) == 2
    assert row.minutes_used == 3.0
    assert [r.minutes_used for r in db.get_usage("doctor-1")] == [3.0]
