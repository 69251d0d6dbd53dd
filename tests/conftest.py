import os
import sys

# Settings are read once at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("AUDIT_LOG_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")

# Ensure the repository root is on sys.path so tests can import the package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import pytest
from fastapi.testclient import TestClient

from clinicscribe.db.database import Database
from clinicscribe.services.draft_service import DraftService
from clinicscribe.services.llm_service import LLMService
from clinicscribe.services.session_service import SessionService
from clinicscribe.services.stt_service import STTService
from tests.fakes import FakeOpenAIClient, FakeStorage, FakeTranscriber


@pytest.fixture
def db():
    database = Database("sqlite://").open()
    yield database
    database.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def openai_client():
    return FakeOpenAIClient()


@pytest.fixture
def llm_service(openai_client):
    return LLMService(client=openai_client, model="test-model")


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def stt_service(db, transcriber):
    return STTService(
        usage_recorder=db.add_usage,
        transcriber_factory=transcriber.factory,
        transcript_deleter=lambda transcript_id: None,
    )


@pytest.fixture
def draft_service(db, storage):
    return DraftService(db, storage)


@pytest.fixture
def session_service(db, storage, llm_service):
    return SessionService(db, storage, llm_service)


@pytest.fixture
def api_client(db, storage, stt_service, llm_service):
    from clinicscribe import main

    main.app.state.db = db
    main.app.state.storage = storage
    main.app.state.stt_service = stt_service
    main.app.state.llm_service = llm_service
    return TestClient(main.app)
