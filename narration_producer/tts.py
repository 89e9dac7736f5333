"""Segment audio generation: synthesis providers, retries and placeholders."""

import asyncio
import hashlib
import io
import logging
import re

import edge_tts
import httpx
import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from narration_producer.constants import (
    TTS_RETRY_COUNT,
    TTS_RETRY_BASE_DELAY,
    TTS_RATE,
    PROVIDER_TIMEOUT,
    PLACEHOLDER_FRAME_RATE,
    PLACEHOLDER_TONE_HZ,
    PLACEHOLDER_TONE_LEVEL,
    ELEVENLABS_API_URL,
    ELEVENLABS_MODEL_ID,
)
from narration_producer.emotions import synthesize
from narration_producer.models import (
    PLACEHOLDER_REF_PREFIX,
    Placeholder,
    Segment,
    SegmentResult,
    Synthesized,
    SynthesisParameters,
)
from narration_producer.parser import estimate_segment_ms

logger = logging.getLogger(__name__)

_QUOTE_MAP = str.maketrans({
    "“": '"', "”": '"', "„": '"', "«": '"', "»": '"',
    "‘": "'", "’": "'", "‚": "'",
    "…": "...", "–": "-", "—": "-",
})


class ProviderError(Exception):
    """A synthesis call that produced no usable audio."""

    RETRYABLE = frozenset({"timeout", "unreachable", "empty", "error"})

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason
        self.message = message or reason

    @property
    def retryable(self) -> bool:
        return self.reason in self.RETRYABLE


def clean_text(text: str) -> str:
    """Normalize quote glyphs and collapse whitespace for the synthesis call."""
    text = text.translate(_QUOTE_MAP)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _percent(value: float) -> str:
    return f"{int(round(value)):+d}%"


def edge_prosody(params: SynthesisParameters, base_rate: str = TTS_RATE) -> dict:
    """Map synthesis parameters onto edge-tts rate/volume/pitch strings.

    style speeds delivery up around the base rate, low stability widens
    pitch, speaker boost lifts volume.
    """
    base = int(base_rate.rstrip("%"))
    rate = base + (params.style - 0.5) * 20
    pitch = (0.5 - params.stability) * 10
    volume = 10 if params.speaker_boost else 0
    return {
        "rate": _percent(rate),
        "volume": _percent(volume),
        "pitch": f"{int(round(pitch)):+d}Hz",
    }


class EdgeTTSProvider:
    """Microsoft Edge neural voices via edge-tts; returns MP3 bytes."""

    name = "edge"
    audio_format = "mp3"

    def __init__(self, rate: str = TTS_RATE, timeout: float = PROVIDER_TIMEOUT):
        self.rate = rate
        self.timeout = timeout

    async def _collect(self, communicate) -> bytes:
        audio = bytearray()
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                audio.extend(chunk["data"])
        return bytes(audio)

    async def synthesize(self, voice_handle: str, text: str, params: SynthesisParameters) -> bytes:
        try:
            # Communicate validates voice and prosody strings up front
            communicate = edge_tts.Communicate(text, voice_handle, **edge_prosody(params, self.rate))
            audio = await asyncio.wait_for(self._collect(communicate), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError("timeout", f"edge-tts timed out after {self.timeout}s") from e
        except edge_tts.exceptions.NoAudioReceived as e:
            raise ProviderError("empty", str(e)) from e
        except ValueError as e:
            raise ProviderError("rejected", str(e)) from e
        except OSError as e:
            raise ProviderError("unreachable", str(e)) from e
        except Exception as e:
            raise ProviderError("error", str(e)) from e
        if not audio:
            raise ProviderError("empty", "edge-tts returned no audio")
        return audio


class ElevenLabsProvider:
    """ElevenLabs text-to-speech over HTTP; returns MP3 bytes."""

    name = "elevenlabs"
    audio_format = "mp3"

    def __init__(
        self,
        api_key: str | None,
        base_url: str = ELEVENLABS_API_URL,
        model_id: str = ELEVENLABS_MODEL_ID,
        timeout: float = PROVIDER_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_id = model_id
        self.timeout = timeout
        self.transport = transport

    def payload(self, text: str, params: SynthesisParameters) -> dict:
        return {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {
                "stability": params.stability,
                "similarity_boost": params.similarity_boost,
                "style": params.style,
                "use_speaker_boost": params.speaker_boost,
            },
        }

    async def synthesize(self, voice_handle: str, text: str, params: SynthesisParameters) -> bytes:
        if not self.api_key:
            raise ProviderError("credentials", "ELEVENLABS_API_KEY is not set")

        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        url = f"{self.base_url}/text-to-speech/{voice_handle}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=self.payload(text, params))
        except httpx.TimeoutException as e:
            raise ProviderError("timeout", str(e) or "request timed out") from e
        except httpx.TransportError as e:
            raise ProviderError("unreachable", str(e) or "connection failed") from e

        status = response.status_code
        if status == 429:
            raise ProviderError("quota", "ElevenLabs quota exceeded")
        if status == 401:
            raise ProviderError("unauthorized", "ElevenLabs rejected the API key")
        if status in (400, 422):
            raise ProviderError("rejected", f"ElevenLabs rejected the request: {response.text[:200]}")
        if status >= 500:
            raise ProviderError("error", f"ElevenLabs server error {status}")
        if status >= 300:
            raise ProviderError("rejected", f"ElevenLabs returned HTTP {status}")
        if not response.content:
            raise ProviderError("empty", "ElevenLabs returned no audio")
        return response.content


def build_provider(settings):
    """Provider for the configured backend, or None for placeholder-only runs."""
    if settings.provider == "none":
        return None
    if settings.provider == "elevenlabs":
        return ElevenLabsProvider(
            api_key=settings.elevenlabs_api_key,
            base_url=settings.elevenlabs_api_url,
            model_id=settings.elevenlabs_model_id,
            timeout=settings.provider_timeout,
        )
    if settings.provider == "edge":
        return EdgeTTSProvider(timeout=settings.provider_timeout)
    raise ValueError(f"Unknown provider: {settings.provider}")


def generate_tone(duration_ms: int, frequency: float = PLACEHOLDER_TONE_HZ,
                  level: float = PLACEHOLDER_TONE_LEVEL) -> AudioSegment:
    """Low-level sine tone of exactly duration_ms at the placeholder frame rate."""
    sample_rate = PLACEHOLDER_FRAME_RATE
    n_samples = sample_rate * duration_ms // 1000
    t = np.arange(n_samples) / sample_rate
    wave = np.sin(2 * np.pi * frequency * t) * level
    samples = (wave * 32767).astype(np.int16)
    return AudioSegment(
        data=samples.tobytes(),
        sample_width=2,
        frame_rate=sample_rate,
        channels=1,
    )


def make_placeholder(text: str, reason: str, tone: bool = False) -> Placeholder:
    """Deterministic stand-in audio sized from the text's word count."""
    duration_ms = estimate_segment_ms(text)
    if tone:
        audio = generate_tone(duration_ms)
    else:
        audio = AudioSegment.silent(duration=duration_ms, frame_rate=PLACEHOLDER_FRAME_RATE)
    buf = io.BytesIO()
    audio.export(buf, format="wav")
    return Placeholder(audio=buf.getvalue(), audio_format="wav", duration_ms=duration_ms, reason=reason)


def audio_ref(result: SegmentResult) -> str:
    """Reference recorded on the segment: placeholder:<reason> or sha256:<digest>."""
    if isinstance(result, Placeholder):
        return PLACEHOLDER_REF_PREFIX + result.reason
    return "sha256:" + hashlib.sha256(result.audio).hexdigest()


def _measure_ms(data: bytes, audio_format: str) -> int:
    try:
        return len(AudioSegment.from_file(io.BytesIO(data), format=audio_format))
    except (CouldntDecodeError, OSError, KeyError, IndexError) as e:
        raise ProviderError("rejected", f"undecodable {audio_format} audio") from e


async def generate(
    segment: Segment,
    provider,
    params: SynthesisParameters | None = None,
    tone: bool = False,
    retries: int = TTS_RETRY_COUNT,
    base_delay: float = TTS_RETRY_BASE_DELAY,
) -> SegmentResult:
    """Synthesize one resolved segment, falling back to a placeholder.

    Retryable provider errors are retried with exponential backoff. Any
    remaining failure is logged and replaced by placeholder audio; this
    function never raises a provider error.
    """
    if segment.voice is None:
        raise ValueError(f"Segment {segment.order} has no resolved voice")

    text = clean_text(segment.clean_text)
    if provider is None:
        return make_placeholder(text, "credentials", tone)
    if params is None:
        params = synthesize(segment.emotion_label, segment.voice)

    last_error = None
    for attempt in range(retries):
        try:
            data = await provider.synthesize(segment.voice.provider_voice_handle, text, params)
            if not data:
                raise ProviderError("empty", "provider returned no audio")
            duration_ms = _measure_ms(data, provider.audio_format)
            return Synthesized(audio=data, audio_format=provider.audio_format, duration_ms=duration_ms)
        except ProviderError as e:
            last_error = e
            if not e.retryable:
                break
        except Exception as e:
            last_error = ProviderError("error", f"{type(e).__name__}: {e}")

        # Exponential backoff
        if attempt < retries - 1:
            await asyncio.sleep(base_delay * (2 ** attempt))

    reason = last_error.reason if last_error else "error"
    logger.warning(
        "Segment %d (%s) fell back to placeholder: %s (%s)",
        segment.order, segment.speaker_label, reason,
        last_error.message if last_error else "no attempts",
    )
    return make_placeholder(text, reason, tone)
