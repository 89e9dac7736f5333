"""Tests for artifacts module (artifact store)."""

import asyncio
import json
import os

import pytest

from narration_producer.artifacts import (
    ArtifactUploadError,
    LocalArtifactStore,
    slug_from_name,
    write_artifact,
)


def test_slug_from_name():
    assert slug_from_name("Tell-Tale Heart.txt") == "tell_tale_heart"
    assert slug_from_name("/path/to/The Open Window.txt") == "the_open_window"
    assert slug_from_name("story-42") == "story_42"


def test_slug_from_name_empty():
    """Names with no usable characters still get a slug."""
    assert slug_from_name("???") == "story"


def test_write_artifact(tmp_path):
    path = write_artifact(str(tmp_path), "data.json", {"a": 1})
    with open(path) as f:
        assert json.load(f) == {"a": 1}


def test_local_store_writes_audio_and_manifest(tmp_path):
    """upload() writes root/<slug>/<slug>.<ext> plus manifest.json."""
    store = LocalArtifactStore(str(tmp_path))
    ref = asyncio.run(store.upload(b"RIFFdata", "Blood Moon.wav", {"story_id": "Blood Moon"}))

    assert ref == os.path.join(str(tmp_path), "blood_moon", "blood_moon.wav")
    with open(ref, "rb") as f:
        assert f.read() == b"RIFFdata"
    with open(os.path.join(str(tmp_path), "blood_moon", "manifest.json")) as f:
        assert json.load(f) == {"story_id": "Blood Moon"}


def test_local_store_without_metadata(tmp_path):
    store = LocalArtifactStore(str(tmp_path))
    ref = asyncio.run(store.upload(b"x", "s.mp3"))
    assert os.path.exists(ref)
    assert not os.path.exists(os.path.join(str(tmp_path), "s", "manifest.json"))


def test_local_store_error(tmp_path):
    """Filesystem failures surface as ArtifactUploadError."""
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    store = LocalArtifactStore(str(blocker))
    with pytest.raises(ArtifactUploadError):
        asyncio.run(store.upload(b"x", "s.wav"))
