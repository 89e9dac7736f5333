"""Tests for data models."""

import logging

from narration_producer.models import (
    FailureReason,
    Job,
    JobError,
    JobResult,
    JobStatus,
    Segment,
    TERMINAL_STATUSES,
)


def test_segment_defaults():
    seg = Segment(order=0, kind="narration", speaker_label="Narrator", raw_text="x", clean_text="x")
    assert seg.voice is None
    assert seg.start_offset is None
    assert not seg.is_placeholder


def test_segment_placeholder_flag():
    seg = Segment(order=0, kind="dialogue", speaker_label="Elena", raw_text="", clean_text="",
                  audio_ref="placeholder:quota")
    assert seg.is_placeholder
    seg.audio_ref = "sha256:abc"
    assert not seg.is_placeholder


def test_terminal_statuses():
    assert JobStatus.QUEUED not in TERMINAL_STATUSES
    assert JobStatus.PROCESSING not in TERMINAL_STATUSES
    assert TERMINAL_STATUSES == {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}


def test_new_job_is_queued():
    job = Job(id="j1", story_id="s", markup_text="text", creature_genre=None)
    assert job.status == JobStatus.QUEUED
    assert job.segments == []
    assert job.progress.percentage == 0


def test_job_add_log(caplog):
    """Job logs are kept on the job and forwarded to the jobs logger."""
    job = Job(id="j1", story_id="s", markup_text="text", creature_genre=None)
    with caplog.at_level(logging.INFO, logger="narration_producer.jobs"):
        job.add_log("Job started")
        job.add_log("Careful", level="warning")
    assert [log.message for log in job.logs] == ["Job started", "Careful"]
    assert "[job j1] Job started" in caplog.text
    assert caplog.records[-1].levelno == logging.WARNING


def test_job_as_dict():
    job = Job(id="j1", story_id="s", markup_text="text", creature_genre="vampire")
    job.status = JobStatus.FAILED
    job.error = JobError(reason=FailureReason.ARTIFACT_UPLOAD_FAILED, message="disk full")
    data = job.as_dict()
    assert data["status"] == "failed"
    assert data["error"] == {"reason": "artifact_upload_failed", "message": "disk full"}
    assert data["result_ref"] is None
    assert data["progress"]["percentage"] == 0


def test_job_as_dict_result_ref():
    job = Job(id="j1", story_id="s", markup_text="text", creature_genre=None)
    job.result = JobResult(artifact_ref="memory://s.wav", duration=1.5, byte_size=100)
    assert job.as_dict()["result_ref"] == "memory://s.wav"
