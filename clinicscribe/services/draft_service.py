"""
Draft persistence: upload captured audio and create or update the draft row
"""

import asyncio
from typing import Optional

from clinicscribe.core.exceptions import NotFoundError, UpstreamServiceError
from clinicscribe.core.logging import get_logger, audit_logger
from clinicscribe.db.database import Database
from clinicscribe.db.models import DraftSession
from clinicscribe.services.audio_processor import AudioProcessor, audio_processor
from clinicscribe.services.storage_service import ObjectStorage, draft_audio_key

logger = get_logger(__name__)


class DraftService:
    def __init__(self, db: Database, storage: ObjectStorage, processor: AudioProcessor = None):
        self.db = db
        self.storage = storage
        self.processor = processor or audio_processor

    async def save_draft(
        self,
        user_id: str,
        audio: bytes,
        content_type: str,
        draft_id: Optional[str] = None,
        is_final: bool = False,
    ) -> DraftSession:
        """
        Uploads the audio and creates the draft, or updates ``draft_id`` in place.
        Raises NotFoundError when ``draft_id`` does not belong to ``user_id``.
        """
        self.processor.validate_capture(audio, content_type)
        key = draft_audio_key(user_id, self.processor.extension_for(content_type))
        audio_url = await self.storage.upload(audio, key, content_type)

        try:
            if draft_id:
                draft = await asyncio.to_thread(self.db.update_draft, draft_id, user_id, audio_url)
                if draft is None:
                    raise NotFoundError("Draft not found")
            else:
                draft = await asyncio.to_thread(self.db.create_draft, user_id, audio_url)
        except NotFoundError:
            raise
        except Exception as e:
            logger.error("draft_save_failed", user_id=user_id, error=str(e), exc_info=True)
            raise UpstreamServiceError("database", "Failed to save draft.") from e

        duration, _ = self.processor.extract_metadata(audio, content_type)
        audit_logger.log_audio_processing(
            user_id=user_id,
            audio_size_bytes=len(audio),
            content_type=content_type,
            audio_duration=duration,
            draft_id=draft.id,
            is_final=is_final,
        )
        logger.info("draft_saved", draft_id=draft.id, is_final=is_final, created=draft_id is None)
        return draft
