"""
Structured logging setup for ClinicScribe
"""

import logging
import structlog
from datetime import datetime, timezone
from clinicscribe.config import settings, Environment


def setup_logging():
    """Configures structured logging"""

    timestamper = structlog.processors.TimeStamper(fmt="ISO")

    processors = [
        structlog.processors.add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.environment == Environment.DEVELOPMENT:
        # Development: colored console output, ConsoleRenderer formats exc_info itself
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True)
        ])
    else:
        # Everything else: JSON lines
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Returns a configured logger"""
    return structlog.get_logger(name or __name__)


class AuditLogger:
    """
    Logger for audit events. Events carry identifiers, sizes and timings only;
    transcripts and patient details are never passed in.
    """

    def __init__(self, enabled: bool = None):
        self.logger = get_logger("audit")
        self.enabled = settings.audit_log_enabled if enabled is None else enabled

    def _emit(self, event: str, level: str = "info", **fields):
        if not self.enabled:
            return
        fields["timestamp"] = datetime.now(timezone.utc).isoformat()
        getattr(self.logger, level)(event, **fields)

    def log_api_request(self, request_id: str, endpoint: str, method: str, status_code: int,
                        duration_ms: int, ip_address: str = None, **kwargs):
        self._emit("api_request", request_id=request_id, endpoint=endpoint, method=method,
                   status_code=status_code, duration_ms=duration_ms, ip_address=ip_address, **kwargs)

    def log_audio_processing(self, user_id: str, audio_size_bytes: int, content_type: str,
                             audio_duration: float = None, **kwargs):
        """Accepted audio: draft saves and server-side transcription uploads"""
        self._emit("audio_processing", user_id=user_id, audio_size_bytes=audio_size_bytes,
                   content_type=content_type, audio_duration=audio_duration, **kwargs)

    def log_external_api_call(self, service: str, operation: str, success: bool,
                              response_time_ms: int, **kwargs):
        """Calls to transcription, chat-completion and object storage providers"""
        self._emit("external_api_call", service=service, operation=operation, success=success,
                   response_time_ms=response_time_ms, **kwargs)

    def log_record_change(self, user_id: str, session_id: str, action: str, **kwargs):
        """Creation, edit or deletion of a stored consultation record"""
        self._emit("record_change", user_id=user_id, session_id=session_id, action=action, **kwargs)

    def log_error(self, request_id: str, error_type: str, error_message: str, **kwargs):
        self._emit("error_event", level="error", request_id=request_id, error_type=error_type,
                   error_message=error_message, **kwargs)


# Global audit logger instance
audit_logger = AuditLogger()
