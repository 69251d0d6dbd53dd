"""
Pydantic Models for API Responses
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TranscriptionResult(CamelResponse):
    """Diarized transcript returned by the transcription gateway"""
    transcript: str = Field(description="'Speaker <id>: <utterance>' blocks separated by blank lines")
    duration_minutes: float = Field(default=0.0, description="Audio minutes billed for this transcription")
    language: Optional[str] = Field(default=None, description="Language hint used or detected")


class AnalysisResult(CamelResponse):
    """Fields extracted from the model response"""
    summary: str
    suggested_diagnosis: str
    suggested_prescription: str


class DraftSavedResponse(CamelResponse):
    draft_id: str
    audio_url: str


class DraftListResponse(BaseModel):
    drafts: List[Dict[str, Any]]


class SessionCreatedResponse(CamelResponse):
    success: bool = True
    session_id: str
    document_url: str


class SessionListResponse(BaseModel):
    sessions: List[Dict[str, Any]]


class SessionDetailResponse(BaseModel):
    session: Dict[str, Any]


class SessionUpdatedResponse(CamelResponse):
    success: bool = True
    document_url: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class AnalyzeResponse(BaseModel):
    success: bool = True
    analysis: AnalysisResult


class PromptSettings(BaseModel):
    clinic_prompt: str = ""
    summary_prompt: str = ""


class SettingsResponse(BaseModel):
    settings: PromptSettings


class UsageEntry(BaseModel):
    year: int
    month: int
    minutes_used: float


class UsageResponse(BaseModel):
    usage: List[UsageEntry]


class LanguageOption(BaseModel):
    label: str
    value: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Health Check Response"""
    status: str = Field(description="Service status (healthy/unhealthy)")
    timestamp: datetime = Field(description="Check time")
    version: str = Field(description="Service version")
    uptime_seconds: int = Field(description="Uptime in seconds")


class ErrorResponse(BaseModel):
    """Standard error body"""
    error: str = Field(description="Error type")
    message: str = Field(description="Human readable error description")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    request_id: Optional[str] = Field(default=None, description="Request ID for debugging")
    timestamp: datetime = Field(description="Error time")


class RateLimitResponse(BaseModel):
    """Rate Limit Exceeded Response"""
    error: str = Field(default="rate_limit_exceeded")
    message: str = Field(description="Rate limit message")
    limit: int = Field(description="Request limit")
    window: int = Field(description="Window in seconds")
    timestamp: datetime = Field(description="Error time")
