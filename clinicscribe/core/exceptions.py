"""
Exception taxonomy shared by services, the workflow controller and the API layer
"""

from typing import List, Optional


class ClinicScribeError(Exception):
    """Base class for all expected application errors."""

    status_code: int = 500
    error_code: str = "internal_server_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ClinicScribeError):
    """A required field is missing or malformed. The operation was not attempted."""

    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_fields = missing_fields or []


class AudioValidationError(ValidationError):
    """Rejected audio input (wrong MIME type, too large, empty or undecodable)."""

    error_code = "invalid_audio"

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ClinicScribeError):
    status_code = 404
    error_code = "not_found"


class UpstreamServiceError(ClinicScribeError):
    """
    A transcription, analysis, storage or database call failed.
    The message is generic and safe to show to users; details are logged.
    """

    status_code = 500
    error_code = "upstream_error"

    def __init__(self, service: str, message: Optional[str] = None):
        super().__init__(message or f"The {service} service failed. Please try again.")
        self.service = service


class WorkflowError(ClinicScribeError):
    """User-facing failure of a workflow step; the controller stays in its current step."""

    error_code = "workflow_error"
