"""
Session commit and edit: render the document, upload it and write the
session rows. Also hosts transcript analysis with the user's prompts.
"""

import asyncio
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from clinicscribe.config import settings
from clinicscribe.core.exceptions import NotFoundError, UpstreamServiceError, ValidationError
from clinicscribe.core.logging import get_logger, audit_logger
from clinicscribe.db.database import Database
from clinicscribe.db.models import PatientSession
from clinicscribe.models.responses import AnalysisResult
from clinicscribe.services.document_renderer import DocumentData, render_document
from clinicscribe.services.llm_service import LLMService
from clinicscribe.services.prompts import resolve_prompts
from clinicscribe.services.storage_service import ObjectStorage, session_document_key

logger = get_logger(__name__)

MIN_AGE = 0
MAX_AGE = 150

# Columns an edit may change but never blank out
REQUIRED_ON_EDIT = ("final_diagnosis", "final_prescription")

_AGE_RE = re.compile(r"-?\d+")


def clamp_age(value: Any) -> str:
    """
    Keeps the first (optionally negative) integer in ``value`` and clamps it to
    [0, 150]. Returns "" when there is no number.
    """
    if value is None:
        return ""
    match = _AGE_RE.search(str(value))
    if not match:
        return ""
    age = int(match.group(0))
    return str(min(max(age, MIN_AGE), MAX_AGE))


@dataclass
class ConsultationRecord:
    """Reviewed consultation as edited by the doctor."""
    patient_name: str = ""
    patient_age: str = ""
    transcript: str = ""
    summary: str = ""
    suggested_diagnosis: str = ""
    suggested_prescription: str = ""
    final_diagnosis: str = ""
    final_prescription: str = ""
    examination_results: str = ""
    treatment_plan: str = ""
    doctor_notes: str = ""

    def missing_required(self) -> List[str]:
        required = {
            "patient_name": self.patient_name,
            "patient_age": self.patient_age,
            "final_diagnosis": self.final_diagnosis,
            "final_prescription": self.final_prescription,
        }
        return [name for name, value in required.items() if not (value or "").strip()]

    def to_columns(self) -> Dict[str, Any]:
        return {
            "name": self.patient_name.strip(),
            "age": int(self.patient_age),
            "transcript": self.transcript,
            "summary": self.summary,
            "suggested_diagnosis": self.suggested_diagnosis,
            "suggested_prescription": self.suggested_prescription,
            "final_diagnosis": self.final_diagnosis,
            "final_prescription": self.final_prescription,
            "examination_results": self.examination_results or None,
            "treatment_plan": self.treatment_plan or None,
            "doctor_notes": self.doctor_notes or None,
        }


@dataclass
class SessionCommitResult:
    session_id: str
    document_url: str


def _document_date() -> str:
    return datetime.now().strftime(settings.document_date_format)


def _document_from_row(row: PatientSession, overrides: Mapping[str, Any]) -> DocumentData:
    values = {column: getattr(row, column) for column in (
        "summary", "examination_results", "final_diagnosis", "final_prescription",
        "treatment_plan", "doctor_notes",
    )}
    values.update({k: v for k, v in overrides.items() if k in values})
    return DocumentData(
        patient_name=row.name,
        patient_age=str(row.age),
        date=_document_date(),
        summary=values["summary"] or "",
        examination_results=values["examination_results"],
        diagnosis=values["final_diagnosis"] or "",
        prescription=values["final_prescription"] or "",
        treatment_plan=values["treatment_plan"],
        doctor_notes=values["doctor_notes"],
    )


class SessionService:
    def __init__(self, db: Database, storage: ObjectStorage, llm: LLMService):
        self.db = db
        self.storage = storage
        self.llm = llm

    async def analyze_transcript(self, user_id: str, transcript: str) -> AnalysisResult:
        """Runs the analysis with the user's configured (or default) prompts."""
        try:
            stored = await asyncio.to_thread(self.db.get_user_settings, user_id)
        except Exception as e:
            logger.error("user_settings_fetch_failed", user_id=user_id, error=str(e), exc_info=True)
            raise UpstreamServiceError("database", "Failed to fetch user settings.") from e

        prompts = resolve_prompts(
            stored.clinic_prompt if stored else None,
            stored.summary_prompt if stored else None,
        )
        return await self.llm.analyze(transcript, prompts.clinic_prompt, prompts.summary_prompt)

    async def create_session(
        self, user_id: str, record: ConsultationRecord, draft_id: Optional[str] = None
    ) -> SessionCommitResult:
        """
        Renders and uploads the document, then writes Session + UserSession in
        one transaction and removes the originating draft. An uploaded
        document is not removed if the database write fails.
        """
        record.patient_age = clamp_age(record.patient_age)
        missing = record.missing_required()
        if missing:
            raise ValidationError("Missing required fields: " + ", ".join(missing), missing_fields=missing)

        html = render_document(DocumentData(
            patient_name=record.patient_name,
            patient_age=record.patient_age,
            date=_document_date(),
            summary=record.summary,
            examination_results=record.examination_results,
            diagnosis=record.final_diagnosis,
            prescription=record.final_prescription,
            treatment_plan=record.treatment_plan,
            doctor_notes=record.doctor_notes,
        ))
        document_url = await self.storage.upload(html.encode("utf-8"), f"{uuid.uuid4()}.html", "text/html")

        try:
            row = await asyncio.to_thread(
                self.db.create_session, user_id, record.to_columns(), document_url, draft_id
            )
        except Exception as e:
            logger.error("session_save_failed", user_id=user_id, error=str(e), exc_info=True)
            raise UpstreamServiceError("database", "Failed to save session.") from e

        logger.info("session_created", session_id=row.id, draft_id=draft_id)
        audit_logger.log_record_change(user_id, row.id, "created", draft_id=draft_id)
        return SessionCommitResult(session_id=row.id, document_url=document_url)

    async def update_session(self, session_id: str, user_id: str, updates: Mapping[str, Any]) -> str:
        """
        Applies a partial edit, re-renders the document to
        ``documents/<user>/<session>.html`` and stores the new URL together
        with the edited fields. Returns the document URL.
        """
        cleared = [
            column for column in REQUIRED_ON_EDIT
            if column in updates and not (updates[column] or "").strip()
        ]
        if cleared:
            raise ValidationError("Required fields cannot be empty: " + ", ".join(cleared), missing_fields=cleared)

        current = await asyncio.to_thread(self.db.get_session, session_id, user_id)
        if current is None:
            raise NotFoundError("Session not found")

        html = render_document(_document_from_row(current, updates))
        document_url = await self.storage.upload(
            html.encode("utf-8"), session_document_key(user_id, session_id), "text/html"
        )

        fields = dict(updates)
        fields["document_url"] = document_url
        try:
            updated = await asyncio.to_thread(self.db.update_session, session_id, user_id, fields)
        except Exception as e:
            logger.error("session_update_failed", session_id=session_id, error=str(e), exc_info=True)
            raise UpstreamServiceError("database", "Failed to update session.") from e
        if updated is None:
            raise NotFoundError("Session not found")

        logger.info("session_updated", session_id=session_id, fields=sorted(updates))
        audit_logger.log_record_change(user_id, session_id, "updated", fields=sorted(updates))
        return document_url
