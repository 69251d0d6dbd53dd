"""Offline stand-ins for object storage and the STT and chat-completion SDKs."""

from types import SimpleNamespace
from typing import Dict, List

import assemblyai as aai

from clinicscribe.core.exceptions import UpstreamServiceError


DEFAULT_MODEL_RESPONSE = (
    "Summary: Patient reports three days of sore throat and fever.\n"
    "Diagnosis: Acute pharyngitis\n"
    "Prescription: Paracetamol 500mg every 6 hours"
)


class FakeStorage:
    """In-memory stand-in for ObjectStorage."""

    def __init__(self, base_url: str = "https://files.example.test"):
        self.base_url = base_url
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.fail = False
        self.healthy = True

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    async def upload(self, content: bytes, key: str, content_type: str) -> str:
        if self.fail:
            raise UpstreamServiceError("storage", "Failed to upload file to storage.")
        self.objects[key] = content
        self.content_types[key] = content_type
        return self.public_url(key)

    async def check(self) -> bool:
        return self.healthy


class FakeCompletions:
    def __init__(self, content: str):
        self.content = content
        self.calls: List[dict] = []
        self.error = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAIClient:
    def __init__(self, content: str = DEFAULT_MODEL_RESPONSE):
        self.completions = FakeCompletions(content)
        self.chat = SimpleNamespace(completions=self.completions)


def make_word(text: str, speaker: str, end: int = 0):
    return SimpleNamespace(text=text, speaker=speaker, start=max(end - 300, 0), end=end)


def make_transcript(words, status=aai.TranscriptStatus.completed, transcript_id=None, error=None):
    return SimpleNamespace(
        id=transcript_id,
        status=status,
        error=error,
        words=words,
        audio_duration=None,
        json_response={"language_code": "en"},
    )


DEFAULT_WORDS = [
    make_word("Good", "A", 400),
    make_word("morning,", "A", 800),
    make_word("what", "A", 1200),
    make_word("brings", "A", 1600),
    make_word("you", "A", 2000),
    make_word("in?", "A", 2400),
    make_word("My", "B", 3000),
    make_word("throat", "B", 3600),
    make_word("hurts.", "B", 120000),
]


class FakeTranscriber:
    def __init__(self, transcript=None):
        self.transcript = transcript or make_transcript(DEFAULT_WORDS)
        self.calls = []
        self.error = None

    def factory(self, config):
        self.calls.append(config)
        return self

    def transcribe(self, data):
        if self.error is not None:
            raise self.error
        return self.transcript

