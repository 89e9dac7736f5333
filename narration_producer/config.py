"""Runtime settings read from the environment."""

import logging
import os
from dataclasses import dataclass, field

from narration_producer.constants import (
    ELEVENLABS_API_URL,
    ELEVENLABS_MODEL_ID,
    JOB_RETENTION_SECONDS,
    MAX_CONCURRENT_SEGMENTS,
    OUTPUT_DIR,
    OUTPUT_FORMAT,
    PROVIDER_TIMEOUT,
)
from narration_producer.voices import ARCHETYPES, VOICE_TABLES

logger = logging.getLogger(__name__)

PROVIDERS = ("edge", "elevenlabs", "none")
OUTPUT_FORMATS = ("mp3", "wav")

# Voice handle env prefixes per provider table
_VOICE_ENV_PREFIX = {
    "edge": "EDGE_VOICE_",
    "elevenlabs": "ELEVENLABS_VOICE_",
    "none": "EDGE_VOICE_",
}


def _number(environ, key: str, default, cast, minimum=None):
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("%s=%r is below %s, using default %s", key, raw, minimum, default)
        return default
    return value


def _flag(environ, key: str) -> bool:
    return environ.get(key, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    provider: str = "edge"
    elevenlabs_api_key: str | None = None
    elevenlabs_api_url: str = ELEVENLABS_API_URL
    elevenlabs_model_id: str = ELEVENLABS_MODEL_ID
    output_format: str = OUTPUT_FORMAT
    output_dir: str = OUTPUT_DIR
    max_concurrency: int = MAX_CONCURRENT_SEGMENTS
    job_retention: float = JOB_RETENTION_SECONDS
    provider_timeout: float = PROVIDER_TIMEOUT
    placeholder_tone: bool = False
    voice_overrides: dict = field(default_factory=dict)   # archetype → handle

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ

        provider = env.get("NARRATION_PROVIDER", "edge").strip().lower() or "edge"
        if provider not in PROVIDERS:
            logger.warning("Unknown NARRATION_PROVIDER=%r, using edge", provider)
            provider = "edge"

        output_format = env.get("NARRATION_OUTPUT_FORMAT", OUTPUT_FORMAT).strip().lower()
        if output_format not in OUTPUT_FORMATS:
            logger.warning("Unknown NARRATION_OUTPUT_FORMAT=%r, using %s", output_format, OUTPUT_FORMAT)
            output_format = OUTPUT_FORMAT

        prefix = _VOICE_ENV_PREFIX[provider]
        voice_overrides = {}
        for archetype in ARCHETYPES:
            handle = env.get(prefix + archetype.upper())
            if handle:
                voice_overrides[archetype] = handle.strip()

        return cls(
            provider=provider,
            elevenlabs_api_key=env.get("ELEVENLABS_API_KEY") or None,
            elevenlabs_api_url=env.get("ELEVENLABS_API_URL", ELEVENLABS_API_URL),
            elevenlabs_model_id=env.get("ELEVENLABS_MODEL_ID", ELEVENLABS_MODEL_ID),
            output_format=output_format,
            output_dir=env.get("NARRATION_OUTPUT_DIR", OUTPUT_DIR),
            max_concurrency=_number(env, "NARRATION_MAX_CONCURRENCY", MAX_CONCURRENT_SEGMENTS, int, 1),
            job_retention=_number(env, "NARRATION_JOB_RETENTION", JOB_RETENTION_SECONDS, float, 0),
            provider_timeout=_number(env, "NARRATION_PROVIDER_TIMEOUT", PROVIDER_TIMEOUT, float, 0.1),
            placeholder_tone=_flag(env, "NARRATION_PLACEHOLDER_TONE"),
            voice_overrides=voice_overrides,
        )

    def voice_table(self) -> dict:
        """Archetype → voice handle for the configured provider."""
        table = dict(VOICE_TABLES[self.provider])
        table.update(self.voice_overrides)
        return table
