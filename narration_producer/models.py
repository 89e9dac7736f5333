"""Data models for multi-voice narration."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

_JOB_LOGGER = logging.getLogger("narration_producer.jobs")

_JOB_LEVEL_MAP = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "success": logging.INFO,
    "debug": logging.DEBUG,
}

PLACEHOLDER_REF_PREFIX = "placeholder:"


@dataclass(frozen=True)
class PersonalityProfile:
    formality: float   # casual → formal
    intensity: float   # calm → intense
    warmth: float      # cold → warm
    dominance: float   # submissive → dominant
    mystique: float    # straightforward → mysterious


@dataclass(frozen=True)
class VoiceIdentity:
    speaker_label: str
    archetype: str               # "vampire_male", "human_female", "narrator", ...
    creature: str                # vampire | werewolf | fairy | human | narrator
    gender: str                  # female | male | neutral
    provider_voice_handle: str
    personality: PersonalityProfile
    source: str = "default"      # override | certain | inferred | default


@dataclass(frozen=True)
class SynthesisParameters:
    stability: float
    similarity_boost: float
    style: float
    speaker_boost: bool


@dataclass
class Segment:
    order: int
    kind: str                    # "narration" or "dialogue"
    speaker_label: str           # "Narrator" for untagged text
    raw_text: str
    clean_text: str
    emotion_label: str | None = None
    voice: VoiceIdentity | None = None      # populated by resolve()
    start_offset: float | None = None       # seconds, populated by assemble()
    duration: float | None = None           # seconds, populated by assemble()
    audio_ref: str | None = None

    @property
    def is_placeholder(self) -> bool:
        return bool(self.audio_ref) and self.audio_ref.startswith(PLACEHOLDER_REF_PREFIX)


@dataclass(frozen=True)
class Synthesized:
    """Audio the provider really spoke."""
    audio: bytes
    audio_format: str
    duration_ms: int


@dataclass(frozen=True)
class Placeholder:
    """Deterministic stand-in audio for a segment the provider could not voice."""
    audio: bytes
    audio_format: str
    duration_ms: int
    reason: str


SegmentResult = Synthesized | Placeholder


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class FailureReason(str, Enum):
    DIALOGUE_PARSING_FAILED = "dialogue_parsing_failed"
    PROVIDER_UNREACHABLE = "provider_unreachable"
    ARTIFACT_UPLOAD_FAILED = "artifact_upload_failed"
    ASSEMBLY_FAILED = "assembly_failed"
    INTERNAL_ERROR = "internal_error"


@dataclass
class Progress:
    percentage: int = 0
    completed_segments: int = 0
    total_segments: int = 0
    message: str = ""
    estimated_time_remaining: float | None = None


@dataclass(frozen=True)
class JobResult:
    artifact_ref: str
    duration: float              # seconds
    byte_size: int
    placeholder_count: int = 0


@dataclass(frozen=True)
class JobError:
    reason: FailureReason
    message: str


@dataclass
class JobLog:
    timestamp: float
    message: str
    level: str = "info"


@dataclass
class Job:
    id: str
    story_id: str
    markup_text: str
    creature_genre: str | None
    voice_overrides: dict = field(default_factory=dict)
    status: JobStatus = JobStatus.QUEUED
    segments: list[Segment] = field(default_factory=list)
    progress: Progress = field(default_factory=Progress)
    result: JobResult | None = None
    error: JobError | None = None
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    finished_at: float | None = None
    cancel_requested: bool = False
    logs: list[JobLog] = field(default_factory=list)

    def add_log(self, message: str, level: str = "info") -> None:
        self.logs.append(JobLog(timestamp=time.time(), message=message, level=level))
        _JOB_LOGGER.log(_JOB_LEVEL_MAP.get(level, logging.INFO), "[job %s] %s", self.id, message)

    def as_dict(self) -> dict:
        """Polling view of the job."""
        return {
            "id": self.id,
            "story_id": self.story_id,
            "status": self.status.value,
            "progress": {
                "percentage": self.progress.percentage,
                "completed_segments": self.progress.completed_segments,
                "total_segments": self.progress.total_segments,
                "message": self.progress.message,
                "estimated_time_remaining": self.progress.estimated_time_remaining,
            },
            "total_segments": self.progress.total_segments,
            "completed_segments": self.progress.completed_segments,
            "result_ref": self.result.artifact_ref if self.result else None,
            "error": (
                {"reason": self.error.reason.value, "message": self.error.message}
                if self.error else None
            ),
            "created_at": self.created_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "logs": [log.__dict__ for log in self.logs],
        }
