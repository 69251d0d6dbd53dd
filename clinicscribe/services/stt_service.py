"""
Speech-to-Text Service
Uses AssemblyAI for transcription with speaker diarization.
"""

import asyncio
import io
import time
from typing import Callable, Iterable, List, Optional, Tuple
import assemblyai as aai

from clinicscribe.config import settings
from clinicscribe.core.exceptions import UpstreamServiceError
from clinicscribe.core.logging import get_logger, audit_logger
from clinicscribe.models.responses import TranscriptionResult

logger = get_logger(__name__)

UsageRecorder = Callable[[str, float], object]


def merge_speaker_turns(words: Iterable) -> List[Tuple[str, str]]:
    """
    Groups consecutive words by speaker tag. Each item of ``words`` needs
    ``text`` and ``speaker`` attributes; whitespace-only tokens are skipped.
    """
    turns: List[Tuple[str, str]] = []
    current_speaker = None
    current_words: List[str] = []

    for word in words:
        text = (word.text or "").strip()
        if not text:
            continue
        speaker = word.speaker or ""
        if current_words and speaker != current_speaker:
            turns.append((current_speaker, " ".join(current_words)))
            current_words = []
        current_speaker = speaker
        current_words.append(text)

    if current_words:
        turns.append((current_speaker, " ".join(current_words)))
    return turns


def format_diarized_transcript(words: Iterable) -> str:
    return "\n\n".join(f"Speaker {speaker}: {speech}" for speaker, speech in merge_speaker_turns(words))


def audio_minutes(transcript) -> float:
    """Billable minutes: end of the last word, else the provider-reported duration."""
    words = transcript.words or []
    if words and words[-1].end:
        return words[-1].end / 60000.0
    if getattr(transcript, "audio_duration", None):
        return float(transcript.audio_duration) / 60.0
    return 0.0


class STTService:
    """Service for Speech-to-Text transcription using AssemblyAI."""

    def __init__(
        self,
        usage_recorder: Optional[UsageRecorder] = None,
        transcriber_factory: Optional[Callable[[aai.TranscriptionConfig], object]] = None,
        transcript_deleter: Optional[Callable[[str], object]] = None,
    ):
        if settings.assemblyai_api_key:
            aai.settings.api_key = settings.assemblyai_api_key
            aai.settings.base_url = settings.assemblyai_api_base_url
        self.usage_recorder = usage_recorder
        self.transcriber_factory = transcriber_factory or (lambda config: aai.Transcriber(config=config))
        self.transcript_deleter = transcript_deleter or aai.Transcript.delete_by_id

    @staticmethod
    def build_config(language: Optional[str]) -> aai.TranscriptionConfig:
        if language:
            return aai.TranscriptionConfig(speaker_labels=True, language_code=language)
        return aai.TranscriptionConfig(speaker_labels=True, language_detection=True)

    async def transcribe(self, audio: bytes, user_id: str, language: Optional[str] = None) -> TranscriptionResult:
        """
        Transcribes audio and returns the diarized transcript. Usage minutes are
        reported on a best-effort basis.
        """
        logger.info("transcription_started", user_id=user_id, audio_bytes=len(audio), language=language or "auto")
        start = time.time()

        try:
            transcriber = self.transcriber_factory(self.build_config(language))
            transcript = await asyncio.to_thread(transcriber.transcribe, io.BytesIO(audio))
            if transcript.status == aai.TranscriptStatus.error:
                raise RuntimeError(f"AssemblyAI transcription failed: {transcript.error}")
        except Exception as e:
            logger.error("transcription_failed", error=str(e), exc_info=True)
            audit_logger.log_external_api_call(
                service="transcription", operation="transcribe", success=False,
                response_time_ms=int((time.time() - start) * 1000),
            )
            raise UpstreamServiceError("transcription", "Failed to transcribe audio.") from e

        audit_logger.log_external_api_call(
            service="transcription", operation="transcribe", success=True,
            response_time_ms=int((time.time() - start) * 1000),
        )

        text = format_diarized_transcript(transcript.words or [])
        minutes = audio_minutes(transcript)
        detected = language
        if not detected and getattr(transcript, "json_response", None):
            detected = transcript.json_response.get("language_code")

        logger.info("transcription_completed", transcript_chars=len(text), minutes=round(minutes, 2))

        await self.report_usage(user_id, minutes)
        if getattr(transcript, "id", None):
            await self.delete_transcript(transcript.id)

        return TranscriptionResult(transcript=text, duration_minutes=minutes, language=detected)

    async def report_usage(self, user_id: str, minutes: float) -> None:
        """Records usage; a failure here must never fail the transcription."""
        if self.usage_recorder is None or minutes <= 0:
            return
        try:
            await asyncio.to_thread(self.usage_recorder, user_id, minutes)
        except Exception as e:
            logger.warning("usage_recording_failed", user_id=user_id, error=str(e))

    async def delete_transcript(self, transcript_id: str) -> None:
        """Removes the transcript from the provider; failures are only logged."""
        try:
            await asyncio.to_thread(self.transcript_deleter, transcript_id)
            logger.info("provider_transcript_deleted", transcript_id=transcript_id)
        except Exception as e:
            logger.warning("provider_transcript_delete_failed", transcript_id=transcript_id, error=str(e))
