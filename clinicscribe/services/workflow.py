"""
Session capture-and-document workflow.

One :class:`SessionWorkflow` drives a single consultation through
RECORDING -> REVIEW -> COMPLETE. It holds the captured audio and the draft id
for that consultation only; parallel consultations use separate instances.
"""

from enum import Enum
from typing import List, Optional, Protocol

from clinicscribe.config import LANGUAGE_OPTIONS
from clinicscribe.core.exceptions import ValidationError, WorkflowError
from clinicscribe.core.logging import get_logger
from clinicscribe.services.audio_processor import AudioProcessor, audio_processor
from clinicscribe.services.draft_service import DraftService
from clinicscribe.services.session_service import (
    ConsultationRecord,
    SessionCommitResult,
    SessionService,
    clamp_age,
)
from clinicscribe.services.stt_service import STTService

logger = get_logger(__name__)

DRAFT_SAVE_ERROR = "An error occurred while saving the draft. Please try again."
PROCESSING_ERROR = "An error occurred while processing the audio. Please try again."
DOCUMENT_ERROR = "An error occurred while generating the document. Please try again."
REQUIRED_FIELDS_ERROR = "Please fill out all required fields: name, age, final diagnosis, management"


class WorkflowStep(str, Enum):
    RECORDING = "recording"
    REVIEW = "review"
    COMPLETE = "complete"


class Recorder(Protocol):
    """Microphone capture. ``pause`` and ``stop`` return everything captured so far."""

    mime_type: str

    def start(self) -> None: ...

    def pause(self) -> bytes: ...

    def resume(self) -> None: ...

    def stop(self) -> bytes: ...


class SessionWorkflow:
    def __init__(
        self,
        user_id: str,
        drafts: DraftService,
        stt: STTService,
        sessions: SessionService,
        recorder: Optional[Recorder] = None,
        processor: AudioProcessor = None,
    ):
        self.user_id = user_id
        self.drafts = drafts
        self.stt = stt
        self.sessions = sessions
        self.recorder = recorder
        self.processor = processor or audio_processor

        self.step = WorkflowStep.RECORDING
        self.is_recording = False
        self.is_paused = False
        self.audio: Optional[bytes] = None
        self.audio_content_type: Optional[str] = None
        self.draft_id: Optional[str] = None
        self.draft_error: Optional[str] = None
        self.language: Optional[str] = None
        self.record = ConsultationRecord()
        self.result: Optional[SessionCommitResult] = None

    def _require(self, step: WorkflowStep) -> None:
        if self.step != step:
            raise WorkflowError(f"Action not available in the {self.step.value} step")

    def _require_recorder(self) -> Recorder:
        if self.recorder is None:
            raise WorkflowError("No recorder is available")
        return self.recorder

    # -- Recording -----------------------------------------------------

    def start_recording(self) -> None:
        self._require(WorkflowStep.RECORDING)
        if self.is_recording:
            raise WorkflowError("A recording is already in progress")
        self._require_recorder().start()
        self.is_recording = True
        self.is_paused = False
        self.draft_error = None

    async def pause_recording(self) -> None:
        """Pauses capture and persists what was recorded so far as a draft."""
        self._require(WorkflowStep.RECORDING)
        if not self.is_recording or self.is_paused:
            raise WorkflowError("No active recording to pause")
        recorder = self._require_recorder()
        self._capture(recorder.pause(), recorder.mime_type)
        self.is_paused = True
        await self._save_draft(is_final=False)

    def resume_recording(self) -> None:
        self._require(WorkflowStep.RECORDING)
        if not self.is_paused:
            raise WorkflowError("Recording is not paused")
        self._require_recorder().resume()
        self.is_paused = False

    async def stop_recording(self) -> None:
        """
        Finalizes capture, persists the final draft and moves to review. A
        failed draft save is reported via ``draft_error`` but does not block
        the review step.
        """
        self._require(WorkflowStep.RECORDING)
        if not self.is_recording:
            raise WorkflowError("No active recording to stop")
        recorder = self._require_recorder()
        self._capture(recorder.stop(), recorder.mime_type)
        self.is_recording = False
        self.is_paused = False
        await self._save_draft(is_final=True)
        self.step = WorkflowStep.REVIEW

    def accept_file(self, data: bytes, content_type: Optional[str], filename: Optional[str] = None) -> None:
        """
        Uses an uploaded file as the consultation audio. Invalid files raise
        AudioValidationError and leave the step unchanged.
        """
        self._require(WorkflowStep.RECORDING)
        if self.is_recording:
            raise WorkflowError("Stop the current recording before uploading a file")
        self.processor.validate(data, content_type)
        self._capture(data, content_type)
        logger.info("audio_file_accepted", filename=filename, size_bytes=len(data))
        self.step = WorkflowStep.REVIEW

    async def retry_draft_save(self) -> None:
        if self.audio is None:
            raise WorkflowError("There is no audio to save")
        await self._save_draft(is_final=not self.is_recording)

    def _capture(self, audio: bytes, content_type: Optional[str]) -> None:
        self.audio = audio
        self.audio_content_type = content_type or "audio/webm"

    async def _save_draft(self, is_final: bool) -> None:
        self.draft_error = None
        try:
            draft = await self.drafts.save_draft(
                self.user_id,
                self.audio,
                self.audio_content_type,
                draft_id=self.draft_id,
                is_final=is_final,
            )
        except Exception as e:
            # audio stays in memory so the user can retry or carry on
            logger.warning("draft_save_failed", user_id=self.user_id, draft_id=self.draft_id, error=str(e))
            self.draft_error = DRAFT_SAVE_ERROR
            return
        if self.draft_id is None:
            self.draft_id = draft.id

    # -- Review --------------------------------------------------------

    @staticmethod
    def language_options() -> List[dict]:
        return list(LANGUAGE_OPTIONS)

    def set_language(self, language: Optional[str]) -> None:
        """``None`` selects auto-detection."""
        allowed = {option["value"] for option in LANGUAGE_OPTIONS}
        if language not in allowed:
            raise ValidationError(f"Unsupported language '{language}'")
        self.language = language

    def back(self) -> None:
        """Returns to recording and drops the audio under review."""
        self._require(WorkflowStep.REVIEW)
        self.audio = None
        self.audio_content_type = None
        self.record = ConsultationRecord()
        self.step = WorkflowStep.RECORDING

    async def transcribe_and_analyze(self) -> None:
        """
        Transcribes (unless a transcript from an earlier attempt exists), then
        analyzes. On failure raises WorkflowError and stays in review.
        """
        self._require(WorkflowStep.REVIEW)
        if not self.audio:
            raise WorkflowError("There is no audio to transcribe")

        if not self.record.transcript:
            try:
                result = await self.stt.transcribe(self.audio, self.user_id, self.language)
            except Exception as e:
                logger.error("workflow_transcription_failed", user_id=self.user_id, error=str(e))
                raise WorkflowError(PROCESSING_ERROR) from e
            self.record.transcript = result.transcript

        try:
            analysis = await self.sessions.analyze_transcript(self.user_id, self.record.transcript)
        except Exception as e:
            logger.error("workflow_analysis_failed", user_id=self.user_id, error=str(e))
            raise WorkflowError(PROCESSING_ERROR) from e

        self.record.summary = analysis.summary
        self.record.suggested_diagnosis = analysis.suggested_diagnosis
        self.record.suggested_prescription = analysis.suggested_prescription
        self.record.final_diagnosis = analysis.suggested_diagnosis
        self.record.final_prescription = analysis.suggested_prescription
        self.step = WorkflowStep.COMPLETE

    # -- Complete ------------------------------------------------------

    def set_patient_age(self, value) -> str:
        self.record.patient_age = clamp_age(value)
        return self.record.patient_age

    def clipboard_text(self) -> str:
        record = self.record
        return (
            f"Patient: {record.patient_name or '[Name]'}; Age: {record.patient_age or '[Age]'}\n"
            "\n"
            f"Patient complaint and medical history:\n{record.summary}\n"
            "\n"
            f"Examination results:\n{record.examination_results}\n"
            "\n"
            f"Diagnosis:\n{record.final_diagnosis}\n"
            "\n"
            f"Management:\n{record.final_prescription}\n"
            "\n"
            f"Plan:\n{record.treatment_plan}"
        )

    async def generate_document(self) -> SessionCommitResult:
        """
        Validates required fields, then commits the session (render, upload,
        database write, draft cleanup). Failures keep the workflow in the
        complete step for a manual retry.
        """
        self._require(WorkflowStep.COMPLETE)
        self.record.patient_age = clamp_age(self.record.patient_age)
        missing = self.record.missing_required()
        if missing:
            raise ValidationError(REQUIRED_FIELDS_ERROR, missing_fields=missing)

        try:
            result = await self.sessions.create_session(self.user_id, self.record, draft_id=self.draft_id)
        except Exception as e:
            logger.error("workflow_document_failed", user_id=self.user_id, error=str(e))
            raise WorkflowError(DOCUMENT_ERROR) from e

        self.draft_id = None
        self.result = result
        return result
