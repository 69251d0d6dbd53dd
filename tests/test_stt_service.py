import assemblyai as aai
import pytest

from clinicscribe.core.exceptions import UpstreamServiceError
from clinicscribe.services.stt_service import (
    STTService,
    audio_minutes,
    format_diarized_transcript,
    merge_speaker_turns,
)
from tests.fakes import FakeTranscriber, make_transcript, make_word


def test_merge_speaker_turns_groups_consecutive_words():
    words = [
        make_word("Hello", "A"),
        make_word("there", "A"),
        make_word(" ", "B"),
        make_word("Hi", "B"),
        make_word("doctor", "B"),
        make_word("Sit", "A"),
    ]

    assert merge_speaker_turns(words) == [("A", "Hello there"), ("B", "Hi doctor"), ("A", "Sit")]


def test_format_diarized_transcript():
    words = [make_word("Hello", "A"), make_word("Hi", "B")]

    assert format_diarized_transcript(words) == "Speaker A: Hello\n\nSpeaker B: Hi"
    assert format_diarized_transcript([]) == ""


def test_audio_minutes_from_last_word():
    transcript = make_transcript([make_word("a", "A", 30000), make_word("b", "A", 90000)])

    assert audio_minutes(transcript) == 1.5


def test_audio_minutes_falls_back_to_audio_duration():
    transcript = make_transcript([])
    transcript.audio_duration = 120

    assert audio_minutes(transcript) == 2.0


def test_build_config():
    hinted = STTService.build_config("ms")
    assert hinted.speaker_labels is True
    assert hinted.language_code == "ms"

    detected = STTService.build_config(None)
    assert detected.language_detection is True


@pytest.mark.asyncio
async def test_transcribe_formats_and_records_usage(stt_service, transcriber, db):
    result = await stt_service.transcribe(b"audio-bytes", "doctor-1")

    assert result.transcript == (
        "Speaker A: Good morning, what brings you in?\n\nSpeaker B: My throat hurts."
    )
    assert result.duration_minutes == 2.0
    assert result.language == "en"
    assert len(transcriber.calls) == 1

    usage = db.get_usage("doctor-1")
    assert len(usage) == 1
    assert usage[0].minutes_used == 2.0


@pytest.mark.asyncio
async def test_usage_failure_does_not_fail_transcription(transcriber):
    def broken_recorder(user_id, minutes):
        raise RuntimeError("database down")

    service = STTService(
        usage_recorder=broken_recorder,
        transcriber_factory=transcriber.factory,
        transcript_deleter=lambda transcript_id: None,
    )

    result = await service.transcribe(b"audio", "doctor-1", "en")

    assert result.transcript.startswith("Speaker A:")
    assert result.language == "en"


@pytest.mark.asyncio
async def test_provider_transcript_is_deleted():
    deleted = []
    transcriber = FakeTranscriber(make_transcript([make_word("Hi", "A", 1000)], transcript_id="tx-1"))
    service = STTService(transcriber_factory=transcriber.factory, transcript_deleter=deleted.append)

    await service.transcribe(b"audio", "doctor-1")

    assert deleted == ["tx-1"]


@pytest.mark.asyncio
async def test_transcript_delete_failure_is_ignored():
    def broken_deleter(transcript_id):
        raise RuntimeError("not found")

    transcriber = FakeTranscriber(make_transcript([make_word("Hi", "A", 1000)], transcript_id="tx-1"))
    service = STTService(transcriber_factory=transcriber.factory, transcript_deleter=broken_deleter)

    result = await service.transcribe(b"audio", "doctor-1")

    assert result.transcript == "Speaker A: Hi"


@pytest.mark.asyncio
async def test_provider_error_status_raises():
    transcriber = FakeTranscriber(
        make_transcript([], status=aai.TranscriptStatus.error, error="unsupported audio")
    )
    service = STTService(transcriber_factory=transcriber.factory)

    with pytest.raises(UpstreamServiceError) as exc_info:
        await service.transcribe(b"audio", "doctor-1")

    assert exc_info.value.service == "transcription"


@pytest.mark.asyncio
async def test_provider_exception_raises(transcriber):
    transcriber.error = ConnectionError("network unreachable")
    service = STTService(transcriber_factory=transcriber.factory)

    with pytest.raises(UpstreamServiceError):
        await service.transcribe(b"audio", "doctor-1")
