"""Shared fixtures for narration producer tests."""

import io

import pytest
from pydub import AudioSegment

from narration_producer.artifacts import ArtifactUploadError
from narration_producer.parser import segment
from narration_producer.voices import resolve


EXAMPLE_STORY = (
    "[Count Dimitri, seductive]: Come closer. "
    "[Elena, nervous]: I shouldn't. "
    "[Narrator]: She stepped forward anyway."
)


def make_wav(duration_ms: int = 300) -> bytes:
    """Silent WAV bytes of the given length (no ffmpeg needed)."""
    buf = io.BytesIO()
    AudioSegment.silent(duration=duration_ms, frame_rate=24000).export(buf, format="wav")
    return buf.getvalue()


class FakeProvider:
    """Synthesis provider that returns silent WAV or raises a fixed error."""

    name = "fake"
    audio_format = "wav"

    def __init__(self, duration_ms=300, error=None, audio=None):
        self.duration_ms = duration_ms
        self.error = error
        self.audio = audio
        self.calls = []

    async def synthesize(self, voice_handle, text, params):
        self.calls.append((voice_handle, text, params))
        if self.error is not None:
            raise self.error
        if self.audio is not None:
            return self.audio
        return make_wav(self.duration_ms)


class MemoryStore:
    """Artifact store that keeps uploads in a list."""

    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []

    async def upload(self, data, filename, metadata=None):
        if self.fail:
            raise ArtifactUploadError("store offline")
        self.uploads.append({"data": data, "filename": filename, "metadata": metadata})
        return f"memory://{filename}"


@pytest.fixture
def example_story():
    return EXAMPLE_STORY


@pytest.fixture
def wav():
    """Factory for silent WAV bytes."""
    return make_wav


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def failing_store():
    return MemoryStore(fail=True)


@pytest.fixture
def sample_segments():
    """Resolved segments for the three-speaker example."""
    return resolve(segment(EXAMPLE_STORY), story_genre="vampire")
