import pytest

from clinicscribe.core.exceptions import NotFoundError, UpstreamServiceError, ValidationError
from clinicscribe.services.prompts import BASE_CLINIC_PROMPT
from clinicscribe.services.session_service import ConsultationRecord, clamp_age


def _record(**overrides):
    values = dict(
        patient_name="Jane Tan",
        patient_age="45",
        transcript="Speaker A: hello",
        summary="Sore throat",
        suggested_diagnosis="Pharyngitis",
        suggested_prescription="Paracetamol",
        final_diagnosis="Pharyngitis",
        final_prescription="Paracetamol",
    )
    values.update(overrides)
    return ConsultationRecord(**values)


@pytest.mark.parametrize(
    "value, expected",
    [("200", "150"), ("-5", "0"), ("45", "45"), ("0", "0"), ("abc", ""), ("", ""), (None, ""), (72, "72")],
)
def test_clamp_age(value, expected):
    assert clamp_age(value) == expected


def test_missing_required_fields():
    record = ConsultationRecord(patient_name="Jane", final_diagnosis="  ")

    assert record.missing_required() == ["patient_age", "final_diagnosis", "final_prescription"]


@pytest.mark.asyncio
async def test_create_session_uploads_document_and_removes_draft(session_service, storage, db):
    draft = db.create_draft("doctor-1", "draft-url")

    result = await session_service.create_session("doctor-1", _record(), draft_id=draft.id)

    (key,) = storage.objects
    assert key.endswith(".html") and "/" not in key
    assert storage.content_types[key] == "text/html"
    assert result.document_url == storage.public_url(key)
    assert b"Jane Tan" in storage.objects[key]

    row = db.get_session(result.session_id, "doctor-1")
    assert row.age == 45
    assert row.document_url == result.document_url
    assert db.list_drafts("doctor-1") == []


@pytest.mark.asyncio
async def test_create_session_clamps_age(session_service, db):
    result = await session_service.create_session("doctor-1", _record(patient_age="200"))

    assert db.get_session(result.session_id, "doctor-1").age == 150


@pytest.mark.asyncio
async def test_create_session_validates_before_upload(session_service, storage):
    with pytest.raises(ValidationError) as exc_info:
        await session_service.create_session("doctor-1", _record(patient_name="", final_prescription=""))

    assert exc_info.value.missing_fields == ["patient_name", "final_prescription"]
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_upload_failure_writes_nothing(session_service, storage, db):
    storage.fail = True

    with pytest.raises(UpstreamServiceError):
        await session_service.create_session("doctor-1", _record())

    assert db.list_sessions("doctor-1") == []


@pytest.mark.asyncio
async def test_analyze_uses_stored_prompts(session_service, openai_client, db):
    db.upsert_user_settings("doctor-1", "Rural clinic with limited lab access", "")

    analysis = await session_service.analyze_transcript("doctor-1", "Speaker A: hello")

    assert analysis.suggested_prescription == "Paracetamol 500mg every 6 hours"
    system_prompt = openai_client.completions.calls[0]["messages"][0]["content"]
    assert system_prompt.startswith(BASE_CLINIC_PROMPT)
    assert "Rural clinic with limited lab access" in system_prompt


@pytest.mark.asyncio
async def test_update_session_rerenders_document(session_service, storage, db):
    created = await session_service.create_session("doctor-1", _record(treatment_plan="Rest"))

    url = await session_service.update_session(
        created.session_id, "doctor-1", {"final_diagnosis": "Tonsillitis"}
    )

    key = f"documents/doctor-1/{created.session_id}.html"
    assert url == storage.public_url(key)
    html = storage.objects[key].decode("utf-8")
    assert "Tonsillitis" in html
    assert "Rest" in html

    row = db.get_session(created.session_id, "doctor-1")
    assert row.final_diagnosis == "Tonsillitis"
    assert row.document_url == url


@pytest.mark.asyncio
async def test_update_session_not_owned(session_service, storage):
    created = await session_service.create_session("doctor-1", _record())

    with pytest.raises(NotFoundError):
        await session_service.update_session(created.session_id, "doctor-2", {"summary": "x"})

    assert len(storage.objects) == 1


@pytest.mark.asyncio
async def test_update_session_rejects_blank_diagnosis(session_service, storage, db):
    created = await session_service.create_session("doctor-1", _record())

    with pytest.raises(ValidationError) as exc_info:
        await session_service.update_session(created.session_id, "doctor-1", {"final_diagnosis": None})

    assert exc_info.value.missing_fields == ["final_diagnosis"]
    assert f"documents/doctor-1/{created.session_id}.html" not in storage.objects
    assert db.get_session(created.session_id, "doctor-1").final_diagnosis == "Pharyngitis"
