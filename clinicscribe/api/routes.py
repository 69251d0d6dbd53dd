"""
HTTP routes for drafts, sessions, analysis, settings, usage and transcription
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status

from clinicscribe.api.dependencies import (
    get_db,
    get_draft_service,
    get_session_service,
    get_stt_service,
    limiter,
    require_user_id,
)
from clinicscribe.config import LANGUAGE_OPTIONS, settings
from clinicscribe.core.exceptions import NotFoundError, ValidationError
from clinicscribe.core.logging import get_logger, audit_logger
from clinicscribe.core.security import get_current_caller
from clinicscribe.db.database import Database
from clinicscribe.db.models import row_to_dict
from clinicscribe.models.requests import (
    AnalyzeRequest,
    DraftSaveRequest,
    SessionCreateRequest,
    SessionUpdateRequest,
    SettingsUpdateRequest,
    UsageReportRequest,
)
from clinicscribe.models.responses import (
    AnalyzeResponse,
    DraftListResponse,
    DraftSavedResponse,
    LanguageOption,
    PromptSettings,
    SessionCreatedResponse,
    SessionDetailResponse,
    SessionListResponse,
    SessionUpdatedResponse,
    SettingsResponse,
    SuccessResponse,
    TranscriptionResult,
    UsageEntry,
    UsageResponse,
)
from clinicscribe.services.audio_processor import audio_processor
from clinicscribe.services.draft_service import DraftService
from clinicscribe.services.session_service import ConsultationRecord, SessionService
from clinicscribe.services.stt_service import STTService

logger = get_logger(__name__)

router = APIRouter(prefix="/api", dependencies=[Depends(get_current_caller)])


# -- Drafts --

async def _save_draft(body: DraftSaveRequest, drafts: DraftService, draft_id: Optional[str] = None):
    if not body.user_id or not body.audio_blob:
        raise ValidationError("Missing required fields", missing_fields=["userId", "audioBlob"])
    payload = audio_processor.decode_base64_audio(body.audio_blob)
    draft = await drafts.save_draft(
        body.user_id, payload.data, payload.content_type, draft_id=draft_id, is_final=body.is_final
    )
    return DraftSavedResponse(draft_id=draft.id, audio_url=draft.audio_url)


@router.get("/drafts", response_model=DraftListResponse)
def list_drafts(user_id: Optional[str] = Query(default=None, alias="userId"), db: Database = Depends(get_db)):
    user_id = require_user_id(user_id)
    return {"drafts": [row_to_dict(draft) for draft in db.list_drafts(user_id)]}


@router.post("/drafts", response_model=DraftSavedResponse)
async def create_draft(body: DraftSaveRequest, drafts: DraftService = Depends(get_draft_service)):
    return await _save_draft(body, drafts)


@router.put("/drafts/{draft_id}", response_model=DraftSavedResponse)
async def update_draft(draft_id: str, body: DraftSaveRequest, drafts: DraftService = Depends(get_draft_service)):
    return await _save_draft(body, drafts, draft_id=draft_id)


# -- Sessions --

@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(user_id: Optional[str] = Query(default=None, alias="userId"), db: Database = Depends(get_db)):
    user_id = require_user_id(user_id)
    return {"sessions": [row_to_dict(row) for row in db.list_sessions(user_id)]}


@router.post("/sessions", response_model=SessionCreatedResponse)
async def create_session(body: SessionCreateRequest, sessions: SessionService = Depends(get_session_service)):
    missing = [
        name for name, value in (
            ("userId", body.user_id),
            ("patientName", body.patient_name),
            ("patientAge", body.patient_age),
            ("finalDiagnosis", body.final_diagnosis),
            ("finalPrescription", body.final_prescription),
        )
        if value is None or str(value).strip() == ""
    ]
    if missing:
        raise ValidationError("Missing required fields", missing_fields=missing)

    record = ConsultationRecord(
        patient_name=body.patient_name,
        patient_age=str(body.patient_age),
        transcript=body.transcript or "",
        summary=body.summary or "",
        suggested_diagnosis=body.suggested_diagnosis or "",
        suggested_prescription=body.suggested_prescription or "",
        final_diagnosis=body.final_diagnosis,
        final_prescription=body.final_prescription,
        examination_results=body.examination_results or "",
        treatment_plan=body.treatment_plan or "",
        doctor_notes=body.doctor_notes or "",
    )
    result = await sessions.create_session(body.user_id, record, draft_id=body.draft_id)
    return SessionCreatedResponse(session_id=result.session_id, document_url=result.document_url)


@router.post("/sessions/analyze", response_model=AnalyzeResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def analyze_transcript(
    request: Request, body: AnalyzeRequest, sessions: SessionService = Depends(get_session_service)
):
    if not body.user_id or not body.transcript:
        raise ValidationError("User ID and transcript are required", missing_fields=["userId", "transcript"])
    analysis = await sessions.analyze_transcript(body.user_id, body.transcript)
    return AnalyzeResponse(analysis=analysis)


@router.get("/sessions/{session_id}", response_model=SessionDetailResponse)
def get_session(
    session_id: str,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Database = Depends(get_db),
):
    user_id = require_user_id(user_id)
    row = db.get_session(session_id, user_id)
    if row is None:
        raise NotFoundError("Session not found")
    return {"session": row_to_dict(row)}


@router.patch("/sessions/{session_id}", response_model=SessionUpdatedResponse)
async def update_session(
    session_id: str,
    body: SessionUpdateRequest,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    sessions: SessionService = Depends(get_session_service),
):
    user_id = require_user_id(user_id)
    document_url = await sessions.update_session(session_id, user_id, body.to_column_updates())
    return SessionUpdatedResponse(document_url=document_url)


@router.delete("/sessions/{session_id}", response_model=SuccessResponse)
def delete_session(
    session_id: str,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Database = Depends(get_db),
):
    user_id = require_user_id(user_id)
    if not db.delete_session(session_id, user_id):
        raise NotFoundError("Session not found or access denied")
    audit_logger.log_record_change(user_id, session_id, "deleted")
    return SuccessResponse(message="Session deleted successfully")


# -- Settings --

@router.get("/settings", response_model=SettingsResponse)
def get_settings(user_id: Optional[str] = Query(default=None, alias="userId"), db: Database = Depends(get_db)):
    user_id = require_user_id(user_id)
    row = db.get_user_settings(user_id)
    if row is None:
        return SettingsResponse(settings=PromptSettings())
    return SettingsResponse(
        settings=PromptSettings(clinic_prompt=row.clinic_prompt or "", summary_prompt=row.summary_prompt or "")
    )


@router.post("/settings", response_model=SuccessResponse)
def save_settings(body: SettingsUpdateRequest, db: Database = Depends(get_db)):
    user_id = require_user_id(body.user_id)
    db.upsert_user_settings(user_id, body.clinic_prompt, body.summary_prompt)
    return SuccessResponse()


# -- Usage --

@router.get("/usage", response_model=UsageResponse)
def get_usage(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    year: Optional[int] = Query(default=None),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    db: Database = Depends(get_db),
):
    user_id = require_user_id(user_id)
    rows = db.get_usage(user_id, year=year, month=month)
    return UsageResponse(
        usage=[UsageEntry(year=row.year, month=row.month, minutes_used=row.minutes_used) for row in rows]
    )


@router.post("/transcription/usage", response_model=SuccessResponse)
def report_usage(body: UsageReportRequest, db: Database = Depends(get_db)):
    user_id = require_user_id(body.user_id)
    if body.minutes is None:
        raise ValidationError("Minutes are required", missing_fields=["minutes"])
    db.add_usage(user_id, body.minutes)
    return SuccessResponse()


# -- Transcription --

@router.get("/languages", response_model=List[LanguageOption])
def list_languages():
    return LANGUAGE_OPTIONS


@router.post("/transcribe", response_model=TranscriptionResult, status_code=status.HTTP_200_OK)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def transcribe_audio(
    request: Request,
    audio_file: UploadFile = File(..., alias="file"),
    user_id: Optional[str] = Form(default=None, alias="userId"),
    language: Optional[str] = Form(default=None),
    stt: STTService = Depends(get_stt_service),
):
    user_id = require_user_id(user_id)
    if language in ("", "auto"):
        language = None
    if language is not None and language not in settings.supported_languages:
        raise ValidationError(
            f"Unsupported language '{language}'. Supported are: {', '.join(settings.supported_languages)}"
        )

    audio_data = await audio_file.read()
    audio_processor.validate(audio_data, audio_file.content_type)
    duration, _ = audio_processor.extract_metadata(audio_data, audio_file.content_type)
    audit_logger.log_audio_processing(
        user_id=user_id,
        audio_size_bytes=len(audio_data),
        content_type=audio_file.content_type,
        audio_duration=duration,
        request_id=getattr(request.state, "request_id", None),
    )
    return await stt.transcribe(audio_data, user_id, language)
