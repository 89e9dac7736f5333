"""Job lifecycle: queued → processing → completed | failed | cancelled."""

import asyncio
import logging
import threading
import time
import uuid
from collections import defaultdict

from narration_producer.artifacts import ArtifactUploadError
from narration_producer.assembly import assemble
from narration_producer.config import Settings
from narration_producer.constants import (
    PROGRESS_GENERATION_SHARE,
    PROGRESS_ASSEMBLY_PERCENT,
    SECONDS_PER_SEGMENT_ESTIMATE,
    TTS_RETRY_BASE_DELAY,
)
from narration_producer.models import (
    FailureReason,
    Job,
    JobError,
    JobResult,
    JobStatus,
    Placeholder,
    Progress,
    TERMINAL_STATUSES,
)
from narration_producer.parser import segment, estimate_duration
from narration_producer.tts import generate
from narration_producer.voices import resolve

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.CANCELLED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
}


def snapshot(job: Job) -> dict:
    """Progress event: the polling view without the log history."""
    data = job.as_dict()
    data.pop("logs")
    return data


class JobStore:
    """In-memory job store keyed by job id."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.RLock()

    def create(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise KeyError(f"Job {job.id} already exists")
            self._jobs[job.id] = job
            return job

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: str, **changes) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            for key, value in changes.items():
                setattr(job, key, value)
            return job

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())


class ProgressSubscription:
    """Async iterator over a job's progress, last value wins.

    Updates published faster than the consumer reads them are coalesced into
    the newest one. Iteration stops after a terminal event or close().
    """

    def __init__(self, hub: "ProgressHub", job_id: str):
        self.job_id = job_id
        self._hub = hub
        self._latest: dict | None = None
        self._event = asyncio.Event()
        self._closed = False
        self._finished = False

    def push(self, event: dict) -> None:
        if self._closed:
            return
        self._latest = event
        self._event.set()

    def close(self) -> None:
        self._closed = True
        self._event.set()
        self._hub.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict:
        if self._finished:
            raise StopAsyncIteration
        if self._latest is None and not self._closed:
            await self._event.wait()
        self._event.clear()
        event, self._latest = self._latest, None
        if event is None:
            self._finished = True
            raise StopAsyncIteration
        if event["status"] in {s.value for s in TERMINAL_STATUSES}:
            self._finished = True
            self._hub.unsubscribe(self)
        return event


class ProgressHub:
    """Fan-out of progress events per job id.

    Keeps only the latest event per job; new subscribers start from it.
    """

    def __init__(self):
        self._subscribers: dict[str, list[ProgressSubscription]] = defaultdict(list)
        self._latest: dict[str, dict] = {}

    def publish(self, job_id: str, event: dict) -> None:
        self._latest[job_id] = event
        for sub in list(self._subscribers.get(job_id, ())):
            sub.push(event)

    def latest(self, job_id: str) -> dict | None:
        return self._latest.get(job_id)

    def subscribe(self, job_id: str) -> ProgressSubscription:
        sub = ProgressSubscription(self, job_id)
        self._subscribers[job_id].append(sub)
        current = self._latest.get(job_id)
        if current is not None:
            sub.push(current)
        return sub

    def unsubscribe(self, sub: ProgressSubscription) -> None:
        subs = self._subscribers.get(sub.job_id)
        if subs and sub in subs:
            subs.remove(sub)
            if not subs:
                del self._subscribers[sub.job_id]

    def close(self, job_id: str) -> None:
        """Drop a job: end its subscriptions and forget its last event."""
        for sub in list(self._subscribers.get(job_id, ())):
            sub.close()
        self._latest.pop(job_id, None)


class JobManager:
    """Runs narration jobs as asyncio tasks.

    ``provider`` is a synthesis provider (or None for placeholder-only
    output); ``store`` is the artifact store assembled audio is uploaded to.
    """

    def __init__(self, provider, store, *, settings: Settings | None = None,
                 job_store: JobStore | None = None, hub: ProgressHub | None = None,
                 retry_delay: float = TTS_RETRY_BASE_DELAY):
        self.provider = provider
        self.store = store
        self.settings = settings or Settings()
        self.jobs = job_store or JobStore()
        self.hub = hub or ProgressHub()
        self.retry_delay = retry_delay
        self._tasks: dict[str, asyncio.Task] = {}
        self._evictions: dict[str, asyncio.TimerHandle] = {}

    # --- public API ---

    def submit(self, story_id: str, markup_text: str, creature_genre: str | None = None,
               voice_overrides: dict | None = None, start: bool = True) -> dict:
        """Create a queued job and, with ``start``, schedule it on the running loop.

        Returns {"job_id", "estimated_duration"} (seconds).
        """
        job = Job(
            id=uuid.uuid4().hex,
            story_id=story_id,
            markup_text=markup_text,
            creature_genre=creature_genre,
            voice_overrides=dict(voice_overrides or {}),
        )
        estimated = estimate_duration(segment(markup_text))
        # Fails before the job is stored when no event loop is running
        loop = asyncio.get_running_loop() if start else None
        self.jobs.create(job)
        job.add_log(f"Job queued for story {story_id!r}")
        self._publish(job)

        if start:
            task = loop.create_task(self.run(job.id))
            self._tasks[job.id] = task
            task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))

        return {"job_id": job.id, "estimated_duration": estimated}

    def status(self, job_id: str) -> dict | None:
        job = self.jobs.get(job_id)
        return job.as_dict() if job else None

    def result(self, job_id: str) -> JobResult | None:
        """The finished artifact, or None while the job is not completed."""
        job = self.jobs.get(job_id)
        if job is None or job.status != JobStatus.COMPLETED:
            return None
        return job.result

    def cancel(self, job_id: str) -> bool:
        """Request cancellation; False if the job is unknown or already terminal."""
        job = self.jobs.get(job_id)
        if job is None or job.status in TERMINAL_STATUSES:
            return False
        job.cancel_requested = True
        job.add_log("Cancellation requested", level="warning")
        self._finish(job, JobStatus.CANCELLED, "Job cancelled")
        return True

    def subscribe(self, job_id: str) -> ProgressSubscription:
        """Progress stream for a job; already closed when the job is unknown."""
        if self.jobs.get(job_id) is None:
            sub = ProgressSubscription(self.hub, job_id)
            sub.close()
            return sub
        return self.hub.subscribe(job_id)

    async def wait(self, job_id: str) -> Job | None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.jobs.get(job_id)

    def list_jobs(self) -> list[Job]:
        return self.jobs.list()

    def delete(self, job_id: str) -> bool:
        """Remove a finished job. Running or queued jobs are kept."""
        job = self.jobs.get(job_id)
        if job is None or job.status not in TERMINAL_STATUSES:
            return False
        handle = self._evictions.pop(job_id, None)
        if handle is not None:
            handle.cancel()
        self.hub.close(job_id)
        return self.jobs.delete(job_id)

    def purge_expired(self, now: float | None = None) -> int:
        """Delete finished jobs older than the retention window."""
        now = time.time() if now is None else now
        removed = 0
        for job in self.jobs.list():
            if job.finished_at is None or job.status not in TERMINAL_STATUSES:
                continue
            if now - job.finished_at >= self.settings.job_retention and self.delete(job.id):
                removed += 1
        return removed

    async def run(self, job_id: str) -> Job:
        """Process a queued job to a terminal state."""
        job = self.jobs.get(job_id)
        if job is None:
            raise KeyError(f"Unknown job: {job_id}")
        if not self._transition(job, JobStatus.PROCESSING):
            return job

        job.started_at = time.time()
        job.add_log("Job started")
        self._publish(job)
        try:
            await self._process(job)
        except Exception as exc:
            logger.exception("Job %s crashed", job.id)
            self._fail(job, FailureReason.INTERNAL_ERROR, f"{type(exc).__name__}: {exc}")
        return job

    # --- pipeline ---

    async def _process(self, job: Job) -> None:
        segments = segment(job.markup_text)
        if not any(seg.clean_text.strip() for seg in segments):
            self._fail(job, FailureReason.DIALOGUE_PARSING_FAILED, "Story has no narratable text")
            return

        segments = resolve(
            segments,
            story_genre=job.creature_genre,
            manual_overrides=job.voice_overrides,
            voice_table=self.settings.voice_table(),
        )
        job.segments = segments
        total = len(segments)
        speakers = len({seg.speaker_label for seg in segments})
        job.add_log(f"Parsed {total} segments, {speakers} speakers")
        job.progress = Progress(
            total_segments=total,
            message=f"Generating {total} segments",
            estimated_time_remaining=float(total * SECONDS_PER_SEGMENT_ESTIMATE),
        )
        self._publish(job)

        results = await self._generate_all(job, segments)
        if job.cancel_requested:
            return

        placeholders = [r for r in results if isinstance(r, Placeholder)]
        if len(placeholders) == total and all(p.reason == "unreachable" for p in placeholders):
            self._fail(job, FailureReason.PROVIDER_UNREACHABLE,
                       "Speech provider was unreachable for every segment")
            return

        self._set_progress(job, PROGRESS_ASSEMBLY_PERCENT, total, "Assembling audio", 0.0)
        try:
            assembled = await assemble(
                segments, results, self.store,
                story_id=job.story_id,
                output_format=self.settings.output_format,
                cancelled=lambda: job.cancel_requested,
            )
        except ArtifactUploadError as exc:
            self._fail(job, FailureReason.ARTIFACT_UPLOAD_FAILED, str(exc))
            return
        except Exception as exc:
            logger.exception("Assembly failed for job %s", job.id)
            self._fail(job, FailureReason.ASSEMBLY_FAILED, f"{type(exc).__name__}: {exc}")
            return

        if assembled is None or job.cancel_requested:
            return

        job.segments = assembled.segments
        job.result = JobResult(
            artifact_ref=assembled.artifact_ref,
            duration=assembled.total_duration,
            byte_size=assembled.byte_size,
            placeholder_count=len(placeholders),
        )
        message = "Narration complete"
        if placeholders:
            message += f" ({len(placeholders)} of {total} segments are placeholders)"
        job.progress.percentage = 100
        job.progress.completed_segments = total
        job.progress.estimated_time_remaining = 0.0
        job.progress.message = message
        self._finish(job, JobStatus.COMPLETED, message, level="success")

    async def _generate_all(self, job: Job, segments: list) -> list:
        total = len(segments)
        results = [None] * total
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        started = time.monotonic()
        completed = 0
        placeholder_count = 0

        async def run_one(index, seg):
            nonlocal completed, placeholder_count
            async with semaphore:
                if job.cancel_requested:
                    return
                result = await generate(
                    seg, self.provider,
                    tone=self.settings.placeholder_tone,
                    base_delay=self.retry_delay,
                )
            # Late results of a cancelled job are discarded
            if job.cancel_requested:
                return
            results[index] = result
            completed += 1
            if isinstance(result, Placeholder):
                placeholder_count += 1
                job.add_log(
                    f"Segment {seg.order} ({seg.speaker_label}) used placeholder audio: {result.reason}",
                    level="warning",
                )

            elapsed = time.monotonic() - started
            eta = elapsed / completed * (total - completed)
            message = f"Generated {completed}/{total} segments"
            if placeholder_count:
                message += f" ({placeholder_count} placeholders)"
            percent = round(completed / total * PROGRESS_GENERATION_SHARE)
            self._set_progress(job, percent, completed, message, eta)

        await asyncio.gather(*(run_one(i, seg) for i, seg in enumerate(segments)))
        return results

    # --- state ---

    def _transition(self, job: Job, status: JobStatus) -> bool:
        if status not in _TRANSITIONS.get(job.status, ()):
            logger.debug("Job %s: refusing %s → %s", job.id, job.status.value, status.value)
            return False
        job.status = status
        return True

    def _set_progress(self, job: Job, percent: int, completed: int, message: str,
                      eta: float | None) -> None:
        if job.status != JobStatus.PROCESSING:
            return
        progress = job.progress
        progress.percentage = max(progress.percentage, percent)
        progress.completed_segments = max(progress.completed_segments, completed)
        progress.message = message
        progress.estimated_time_remaining = eta
        self._publish(job)

    def _fail(self, job: Job, reason: FailureReason, message: str) -> None:
        if job.status in TERMINAL_STATUSES:
            return
        job.error = JobError(reason=reason, message=message)
        job.progress.message = message
        self._finish(job, JobStatus.FAILED, f"Job failed ({reason.value}): {message}", level="error")

    def _finish(self, job: Job, status: JobStatus, message: str, level: str = "info") -> None:
        if not self._transition(job, status):
            return
        job.finished_at = time.time()
        job.add_log(message, level=level)
        self._publish(job)
        self._schedule_eviction(job.id)

    def _publish(self, job: Job) -> None:
        self.hub.publish(job.id, snapshot(job))

    def _schedule_eviction(self, job_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._evictions[job_id] = loop.call_later(
            self.settings.job_retention, self._evict, job_id,
        )

    def _evict(self, job_id: str) -> None:
        self._evictions.pop(job_id, None)
        if self.delete(job_id):
            logger.debug("Evicted job %s after retention window", job_id)
