"""Tests for config module."""

import logging

from narration_producer.config import Settings
from narration_producer.constants import (
    JOB_RETENTION_SECONDS,
    MAX_CONCURRENT_SEGMENTS,
    OUTPUT_FORMAT,
    PROVIDER_TIMEOUT,
)
from narration_producer.voices import EDGE_VOICES, ELEVENLABS_VOICES


def test_defaults_from_empty_env():
    settings = Settings.from_env({})
    assert settings.provider == "edge"
    assert settings.output_format == OUTPUT_FORMAT
    assert settings.max_concurrency == MAX_CONCURRENT_SEGMENTS
    assert settings.job_retention == JOB_RETENTION_SECONDS
    assert settings.provider_timeout == PROVIDER_TIMEOUT
    assert settings.placeholder_tone is False
    assert settings.elevenlabs_api_key is None


def test_values_from_env():
    settings = Settings.from_env({
        "NARRATION_PROVIDER": "ElevenLabs",
        "ELEVENLABS_API_KEY": "secret",
        "NARRATION_OUTPUT_FORMAT": "wav",
        "NARRATION_OUTPUT_DIR": "/tmp/out",
        "NARRATION_MAX_CONCURRENCY": "5",
        "NARRATION_JOB_RETENTION": "60",
        "NARRATION_PROVIDER_TIMEOUT": "12.5",
        "NARRATION_PLACEHOLDER_TONE": "1",
    })
    assert settings.provider == "elevenlabs"
    assert settings.elevenlabs_api_key == "secret"
    assert settings.output_format == "wav"
    assert settings.output_dir == "/tmp/out"
    assert settings.max_concurrency == 5
    assert settings.job_retention == 60.0
    assert settings.provider_timeout == 12.5
    assert settings.placeholder_tone is True


def test_bad_numbers_fall_back(caplog):
    """Malformed numbers warn and keep defaults."""
    with caplog.at_level(logging.WARNING, logger="narration_producer.config"):
        settings = Settings.from_env({
            "NARRATION_MAX_CONCURRENCY": "lots",
            "NARRATION_PROVIDER_TIMEOUT": "-1",
        })
    assert settings.max_concurrency == MAX_CONCURRENT_SEGMENTS
    assert settings.provider_timeout == PROVIDER_TIMEOUT
    assert "NARRATION_MAX_CONCURRENCY" in caplog.text


def test_unknown_provider_falls_back():
    assert Settings.from_env({"NARRATION_PROVIDER": "festival"}).provider == "edge"


def test_unknown_format_falls_back():
    assert Settings.from_env({"NARRATION_OUTPUT_FORMAT": "flac"}).output_format == OUTPUT_FORMAT


def test_voice_table_per_provider():
    assert Settings(provider="edge").voice_table() == EDGE_VOICES
    assert Settings(provider="elevenlabs").voice_table() == ELEVENLABS_VOICES


def test_voice_table_env_overrides():
    """ELEVENLABS_VOICE_<ARCHETYPE> replaces one handle."""
    settings = Settings.from_env({
        "NARRATION_PROVIDER": "elevenlabs",
        "ELEVENLABS_VOICE_VAMPIRE_MALE": "custom-id",
        "EDGE_VOICE_NARRATOR": "ignored-for-elevenlabs",
    })
    table = settings.voice_table()
    assert table["vampire_male"] == "custom-id"
    assert table["narrator"] == ELEVENLABS_VOICES["narrator"]
    assert ELEVENLABS_VOICES["vampire_male"] != "custom-id"
