"""
Audio intake: validation, base64 decoding and metadata
"""

import base64
import binascii
import io
from dataclasses import dataclass
from typing import Optional, Tuple, Dict, Any
from mutagen import File as MutagenFile
from fastapi import status
from clinicscribe.config import settings
from clinicscribe.core.exceptions import AudioValidationError
from clinicscribe.core.logging import get_logger

logger = get_logger(__name__)


_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
}


@dataclass
class AudioPayload:
    data: bytes
    content_type: str


class AudioProcessor:
    """Audio validation and decoding"""

    def __init__(self, max_size_bytes: int = None, mime_prefix: str = None):
        self.max_size_bytes = max_size_bytes or settings.max_file_size_bytes
        self.mime_prefix = mime_prefix or settings.audio_mime_prefix

    def validate(self, data: bytes, content_type: Optional[str]) -> None:
        """
        Checks an uploaded file: rejects anything that is not ``audio/*``, is
        empty or is larger than the upload limit. Raises AudioValidationError
        with a message meant for the user.
        """
        self._check_content_type(content_type)
        if len(data) > self.max_size_bytes:
            logger.warning("audio_rejected", reason="size", size_bytes=len(data))
            raise AudioValidationError(
                f"File size exceeds {self.max_size_bytes // (1024 * 1024)}MB limit",
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            )
        if not data:
            raise AudioValidationError("No audio data received.")

    def validate_capture(self, data: bytes, content_type: Optional[str]) -> None:
        """Checks recorder output and drafts. These have no size limit."""
        self._check_content_type(content_type)
        if not data:
            raise AudioValidationError("No audio data received.")

    def _check_content_type(self, content_type: Optional[str]) -> None:
        if not content_type or not content_type.lower().startswith(self.mime_prefix):
            logger.warning("audio_rejected", reason="mime_type", content_type=content_type)
            raise AudioValidationError(
                "Please upload an audio file (mp3, wav, etc.)",
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            )

    def decode_base64_audio(self, encoded: str, default_content_type: str = None) -> AudioPayload:
        """
        Decodes a data URL (``data:audio/webm;base64,...``) or bare base64 string.
        """
        content_type = default_content_type or settings.default_draft_content_type
        payload = encoded.strip()
        if payload.startswith("data:"):
            header, _, payload = payload.partition(",")
            mime = header[len("data:"):].split(";", 1)[0]
            if mime:
                content_type = mime
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise AudioValidationError("Audio payload is not valid base64.")

        self.validate_capture(data, content_type)
        return AudioPayload(data=data, content_type=content_type)

    @staticmethod
    def extension_for(content_type: str) -> str:
        """Maps content type to file extension."""
        base_type = content_type.split(";", 1)[0].strip().lower()
        return _EXTENSIONS.get(base_type, "webm")

    def extract_metadata(self, data: bytes, content_type: str) -> Tuple[float, Dict[str, Any]]:
        """Extracts duration and other metadata using mutagen; best effort."""
        try:
            audio = MutagenFile(io.BytesIO(data))
            if audio is None or audio.info is None:
                return 0.0, {"content_type": content_type}
            duration = getattr(audio.info, "length", 0.0) or 0.0
            metadata = {
                "duration_seconds": duration,
                "bitrate": getattr(audio.info, "bitrate", None),
                "sample_rate": getattr(audio.info, "sample_rate", None),
                "channels": getattr(audio.info, "channels", None),
                "content_type": content_type,
            }
            return float(duration), metadata
        except Exception as e:
            logger.debug("audio_metadata_unavailable", error=str(e))
            return 0.0, {"content_type": content_type}


audio_processor = AudioProcessor()
