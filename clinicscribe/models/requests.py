"""
Pydantic Models for API Requests

Bodies are accepted with the camelCase keys the web client sends as well as
with snake_case field names.
"""

from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DraftSaveRequest(CamelModel):
    """Create or update a draft with the audio captured so far"""
    user_id: Optional[str] = Field(default=None, description="Owner of the draft")
    audio_blob: Optional[str] = Field(
        default=None,
        description="Audio as a data URL (data:audio/webm;base64,...) or plain base64"
    )
    is_final: bool = Field(default=False, description="True when recording has stopped")


class SessionCreateRequest(CamelModel):
    """Final commit of a reviewed consultation"""
    user_id: Optional[str] = None
    patient_name: Optional[str] = None
    patient_age: Optional[Union[int, str]] = None
    transcript: Optional[str] = None
    summary: Optional[str] = None
    suggested_diagnosis: Optional[str] = None
    suggested_prescription: Optional[str] = None
    final_diagnosis: Optional[str] = None
    final_prescription: Optional[str] = None
    examination_results: Optional[str] = None
    treatment_plan: Optional[str] = None
    doctor_notes: Optional[str] = None
    draft_id: Optional[str] = Field(default=None, description="Draft to delete once the session is stored")


class SessionUpdateRequest(CamelModel):
    """
    Partial edit of a stored session. Only fields present in the body are
    applied; ``diagnosis``/``prescription`` map to the final columns.
    """
    transcript: Optional[str] = None
    summary: Optional[str] = None
    examination_results: Optional[str] = None
    diagnosis: Optional[str] = None
    prescription: Optional[str] = None
    treatment_plan: Optional[str] = None
    doctor_notes: Optional[str] = None

    def to_column_updates(self) -> dict:
        column_names = {"diagnosis": "final_diagnosis", "prescription": "final_prescription"}
        return {
            column_names.get(name, name): value
            for name, value in self.model_dump(exclude_unset=True).items()
        }


class AnalyzeRequest(CamelModel):
    user_id: Optional[str] = None
    transcript: Optional[str] = None


class SettingsUpdateRequest(CamelModel):
    user_id: Optional[str] = None
    clinic_prompt: str = Field(default="", description="Clinic profile appended to the diagnostic prompt")
    summary_prompt: str = Field(default="", description="Extra instructions appended to the summary prompt")


class UsageReportRequest(CamelModel):
    user_id: Optional[str] = None
    minutes: Optional[float] = Field(default=None, ge=0)
