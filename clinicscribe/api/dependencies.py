"""
FastAPI dependencies. Long-lived handles are created in the application
lifespan and kept on ``app.state``.
"""

from typing import Optional

from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from clinicscribe.config import settings
from clinicscribe.core.exceptions import ValidationError
from clinicscribe.db.database import Database
from clinicscribe.services.draft_service import DraftService
from clinicscribe.services.llm_service import LLMService
from clinicscribe.services.session_service import SessionService
from clinicscribe.services.storage_service import ObjectStorage
from clinicscribe.services.stt_service import STTService

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage


def get_stt_service(request: Request) -> STTService:
    return request.app.state.stt_service


def get_llm_service(request: Request) -> LLMService:
    return request.app.state.llm_service


def get_draft_service(
    db: Database = Depends(get_db), storage: ObjectStorage = Depends(get_storage)
) -> DraftService:
    return DraftService(db, storage)


def get_session_service(
    db: Database = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    llm: LLMService = Depends(get_llm_service),
) -> SessionService:
    return SessionService(db, storage, llm)


def require_user_id(user_id: Optional[str]) -> str:
    if not user_id or not user_id.strip():
        raise ValidationError("User ID is required", missing_fields=["userId"])
    return user_id
