"""
LLM Service for consultation analysis
"""
import re
import time
from typing import Optional
from openai import AsyncOpenAI, OpenAIError
from clinicscribe.config import settings
from clinicscribe.core.exceptions import UpstreamServiceError
from clinicscribe.core.logging import get_logger, audit_logger
from clinicscribe.models.responses import AnalysisResult
from clinicscribe.services.prompts import build_system_prompt

logger = get_logger(__name__)

NO_SUMMARY = "No summary available"
NO_DIAGNOSIS = "No diagnosis suggestion available"
NO_PRESCRIPTION = "No prescription suggestion available"

_SUMMARY_RE = re.compile(r"Summary:(.*?)(?=Diagnosis:|\Z)", re.S)
_DIAGNOSIS_RE = re.compile(r"Diagnosis:(.*?)(?=Prescription:|\Z)", re.S)
_PRESCRIPTION_RE = re.compile(r"Prescription:(.*)\Z", re.S)


def parse_analysis(response: str) -> AnalysisResult:
    """
    Splits the model output on the fixed section markers. A missing section
    yields its placeholder instead of failing.
    """
    summary = _SUMMARY_RE.search(response)
    diagnosis = _DIAGNOSIS_RE.search(response)
    prescription = _PRESCRIPTION_RE.search(response)
    return AnalysisResult(
        summary=summary.group(1).strip() if summary else NO_SUMMARY,
        suggested_diagnosis=diagnosis.group(1).strip() if diagnosis else NO_DIAGNOSIS,
        suggested_prescription=prescription.group(1).strip() if prescription else NO_PRESCRIPTION,
    )


class LLMService:
    """Service for analyzing consultation transcripts using a chat-completion model."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = None):
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url or None,
        )
        self.model = model or settings.default_llm_model
        self.temperature = settings.llm_temperature
        self.max_tokens = settings.llm_max_tokens

    async def analyze(self, transcript: str, clinic_prompt: str, summary_prompt: str) -> AnalysisResult:
        """
        Analyze the transcript and return summary, diagnosis and prescription suggestions
        """
        logger.info("llm_analysis_started", model=self.model, transcript_chars=len(transcript))
        start = time.time()

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": build_system_prompt(clinic_prompt, summary_prompt)},
                    {"role": "user", "content": transcript},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            logger.error("llm_analysis_failed", error=str(e), exc_info=True)
            audit_logger.log_external_api_call(
                service="llm", operation="chat.completions", success=False,
                response_time_ms=int((time.time() - start) * 1000), model=self.model,
            )
            raise UpstreamServiceError("analysis", "Failed to analyze transcript.") from e

        audit_logger.log_external_api_call(
            service="llm", operation="chat.completions", success=True,
            response_time_ms=int((time.time() - start) * 1000), model=self.model,
        )
        content = ""
        if completion.choices:
            content = completion.choices[0].message.content or ""
        result = parse_analysis(content)
        logger.info("llm_analysis_completed")
        return result
