"""Assemble generated segment audio into one timeline and publish it."""

import asyncio
import io
import logging
from dataclasses import dataclass, replace

from pydub import AudioSegment

from narration_producer.constants import (
    PAUSE_SAME_SPEAKER_MS,
    PAUSE_SPEAKER_CHANGE_MS,
    PAUSE_NARRATOR_TRANSITION_MS,
    OUTPUT_BITRATE,
    OUTPUT_FORMAT,
)
from narration_producer.models import Placeholder, Segment, SegmentResult
from narration_producer.parser import is_narrator_label
from narration_producer.tts import audio_ref

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblyResult:
    artifact_ref: str
    total_duration: float        # seconds
    byte_size: int
    segments: list[Segment]


def _is_narrator(seg: Segment) -> bool:
    return seg.kind == "narration" or is_narrator_label(seg.speaker_label)


def calculate_pause(prev: Segment, curr: Segment) -> int:
    """Silence in ms between two consecutive segments.

    Same speaker continuing gets the short pause, a change between characters
    the medium one, and any change to or from the narrator the longest.
    """
    if prev.speaker_label == curr.speaker_label:
        return PAUSE_SAME_SPEAKER_MS
    if _is_narrator(prev) or _is_narrator(curr):
        return PAUSE_NARRATOR_TRANSITION_MS
    return PAUSE_SPEAKER_CHANGE_MS


def build_timeline(
    segments: list[Segment],
    results: list[SegmentResult],
) -> tuple[list[Segment], list[int], int]:
    """Place segments on the timeline.

    Returns (segment copies with start_offset/duration/audio_ref set,
    pauses in ms before each segment, total duration in ms).
    """
    if len(segments) != len(results):
        raise ValueError(f"{len(segments)} segments but {len(results)} audio results")
    orders = [seg.order for seg in segments]
    if orders != sorted(orders):
        raise ValueError("Segments must be in ascending order")

    placed = []
    pauses = []
    cursor_ms = 0
    for i, (seg, result) in enumerate(zip(segments, results)):
        pause_ms = calculate_pause(segments[i - 1], seg) if i else 0
        cursor_ms += pause_ms
        pauses.append(pause_ms)
        placed.append(replace(
            seg,
            start_offset=cursor_ms / 1000,
            duration=result.duration_ms / 1000,
            audio_ref=audio_ref(result),
        ))
        cursor_ms += result.duration_ms
    return placed, pauses, cursor_ms


def _load(result: SegmentResult) -> AudioSegment:
    return AudioSegment.from_file(io.BytesIO(result.audio), format=result.audio_format)


def render(results: list[SegmentResult], pauses: list[int], output_format: str = OUTPUT_FORMAT) -> bytes:
    """Concatenate segment audio with the given pauses and encode it."""
    combined = AudioSegment.empty()
    for pause_ms, result in zip(pauses, results):
        if pause_ms:
            combined += AudioSegment.silent(duration=pause_ms, frame_rate=combined.frame_rate)
        combined += _load(result)

    buf = io.BytesIO()
    if output_format == "mp3":
        combined.export(buf, format="mp3", bitrate=OUTPUT_BITRATE)
    else:
        combined.export(buf, format=output_format)
    return buf.getvalue()


def build_manifest(story_id: str, segments: list[Segment], total_ms: int,
                   byte_size: int, output_format: str) -> dict:
    """JSON manifest stored next to the artifact."""
    cast = {}
    for seg in segments:
        if seg.voice is not None and seg.speaker_label not in cast:
            cast[seg.speaker_label] = {
                "archetype": seg.voice.archetype,
                "voice": seg.voice.provider_voice_handle,
                "source": seg.voice.source,
            }
    return {
        "story_id": story_id,
        "format": output_format,
        "total_duration": total_ms / 1000,
        "byte_size": byte_size,
        "placeholder_count": sum(1 for seg in segments if seg.is_placeholder),
        "cast": cast,
        "timeline": [
            {
                "order": seg.order,
                "kind": seg.kind,
                "speaker": seg.speaker_label,
                "emotion": seg.emotion_label,
                "start_offset": seg.start_offset,
                "duration": seg.duration,
                "audio_ref": seg.audio_ref,
            }
            for seg in segments
        ],
    }


async def assemble(
    segments: list[Segment],
    results: list[SegmentResult],
    store,
    story_id: str,
    output_format: str = OUTPUT_FORMAT,
    cancelled=None,
) -> AssemblyResult | None:
    """Concatenate all segment audio in order and upload the artifact.

    ``store`` is an artifact store with ``async upload(data, filename,
    metadata)``; its errors propagate to the caller. ``cancelled`` is an
    optional callable checked after rendering: when it returns true nothing
    is uploaded and None is returned.
    """
    placed, pauses, total_ms = build_timeline(segments, results)
    data = await asyncio.to_thread(render, results, pauses, output_format)
    if cancelled is not None and cancelled():
        logger.info("Assembly of %s cancelled before upload", story_id)
        return None

    placeholders = sum(1 for r in results if isinstance(r, Placeholder))
    logger.info(
        "Assembled %d segments (%d placeholders), %.1fs, %d bytes",
        len(placed), placeholders, total_ms / 1000, len(data),
    )

    manifest = build_manifest(story_id, placed, total_ms, len(data), output_format)
    ref = await store.upload(data, f"{story_id}.{output_format}", manifest)
    return AssemblyResult(
        artifact_ref=ref,
        total_duration=total_ms / 1000,
        byte_size=len(data),
        segments=placed,
    )
