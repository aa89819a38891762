"""Tests for the job queue and lifecycle (pipeline is faked)."""

import threading
from unittest.mock import MagicMock, patch

import pytest

from app.models.schemas import ErrorKind, Job, JobMode, JobStatus, RenderConfig, SceneInput
from app.pipelines.render_pipeline import RenderResult
from app.services.file_manager import FileManager
from app.services.job_queue import JobQueue
from app.services.notifier import Notifier
from app.storage.artifact_store import JobRepository
from app.utils.error_handler import CompositionError, JobBusyError, JobNotFoundError, JobNotReadyError


class FakePipeline:
    """Writes the output file, or raises the queued error for a job."""

    def __init__(self, file_manager, failures=None, gate=None):
        self.file_manager = file_manager
        self.failures = failures or {}
        self.gate = gate
        self.order = []

    def run(self, job):
        self.order.append(job.job_id)
        if self.gate is not None:
            self.gate.wait(5)
        error = self.failures.get(len(self.order))
        if error is not None:
            raise error
        output = self.file_manager.output_path(job.job_id)
        output.write_bytes(b"final video")
        return RenderResult(artifact_ref=f"http://testserver/api/short-video/{job.job_id}", output_path=str(output))


@pytest.fixture
def file_manager(settings, logger):
    return FileManager(settings, logger)


@pytest.fixture
def notifier():
    return MagicMock()


def _queue(settings, logger, file_manager, notifier, **pipeline_kwargs):
    pipeline = FakePipeline(file_manager, **pipeline_kwargs)
    job_queue = JobQueue(settings, logger, pipeline=pipeline, notifier=notifier, file_manager=file_manager)
    return job_queue, pipeline


def test_jobs_run_in_order_and_become_ready(settings, logger, file_manager, notifier):
    """Test FIFO processing and the ready transition."""
    job_queue, pipeline = _queue(settings, logger, file_manager, notifier)

    ids = [job_queue.enqueue([SceneInput(text=f"Scene {i}")]) for i in range(3)]
    statuses = [job_queue.wait_for(job_id, timeout=10) for job_id in ids]
    job_queue.shutdown()

    assert statuses == [JobStatus.READY] * 3
    assert pipeline.order == ids
    assert job_queue.get_artifact(ids[0]) == b"final video"
    assert notifier.notify.call_count == 3


def test_failed_job_does_not_stop_worker(settings, logger, file_manager, notifier):
    """Test that a failure is classified and the next job still runs."""
    job_queue, _ = _queue(
        settings, logger, file_manager, notifier, failures={1: CompositionError("ffmpeg timed out after 600s")}
    )

    failed_id = job_queue.enqueue([SceneInput(text="first")])
    ok_id = job_queue.enqueue([SceneInput(text="second")])

    assert job_queue.wait_for(failed_id, timeout=10) == JobStatus.FAILED
    assert job_queue.wait_for(ok_id, timeout=10) == JobStatus.READY
    job_queue.shutdown()

    details = job_queue.detailed_status(failed_id)
    assert details["error"]["kind"] == ErrorKind.COMPOSITION.value
    assert "timed out" in details["error"]["message"]
    assert details["error"]["hint"]
    assert not file_manager.output_path(failed_id).exists()
    failed_job = notifier.notify.call_args_list[0][0][0]
    assert failed_job.status == JobStatus.FAILED


def test_status_is_stable_once_terminal(settings, logger, file_manager, notifier):
    job_queue, _ = _queue(settings, logger, file_manager, notifier)
    job_id = job_queue.enqueue([SceneInput(text="Hello")])
    job_queue.wait_for(job_id, timeout=10)
    job_queue.shutdown()

    assert job_queue.status(job_id) == job_queue.status(job_id) == JobStatus.READY


def test_unknown_job(settings, logger, file_manager, notifier):
    job_queue, _ = _queue(settings, logger, file_manager, notifier)

    with pytest.raises(JobNotFoundError):
        job_queue.status("missing")
    with pytest.raises(JobNotFoundError):
        job_queue.delete("missing")


def test_artifact_and_delete_while_processing(settings, logger, file_manager, notifier):
    """Test that an unfinished job has no artifact and cannot be deleted."""
    gate = threading.Event()
    job_queue, _ = _queue(settings, logger, file_manager, notifier, gate=gate)
    job_id = job_queue.enqueue([SceneInput(text="Hello")])

    try:
        with pytest.raises(JobNotReadyError):
            job_queue.get_artifact(job_id)
        with pytest.raises(JobBusyError):
            job_queue.delete(job_id)
    finally:
        gate.set()

    assert job_queue.wait_for(job_id, timeout=10) == JobStatus.READY
    job_queue.shutdown()


def test_delete_removes_record_and_files(settings, logger, file_manager, notifier):
    job_queue, _ = _queue(settings, logger, file_manager, notifier)
    job_id = job_queue.enqueue([SceneInput(text="Hello")])
    job_queue.wait_for(job_id, timeout=10)
    job_queue.shutdown()

    job_queue.delete(job_id)

    assert not file_manager.output_path(job_id).exists()
    assert job_queue.list_jobs() == []
    with pytest.raises(JobNotFoundError):
        job_queue.status(job_id)


def test_enqueue_decides_mode_once(settings, logger, file_manager, notifier):
    gate = threading.Event()
    job_queue, _ = _queue(settings, logger, file_manager, notifier, gate=gate)

    single = job_queue.enqueue([SceneInput(text="a")])
    multi = job_queue.enqueue([SceneInput(text="a"), SceneInput(text="b")], RenderConfig(padding_back=100))
    gate.set()
    job_queue.wait_for(multi, timeout=10)
    job_queue.shutdown()

    assert job_queue.detailed_status(single)["mode"] == JobMode.SINGLE_SCENE.value
    assert job_queue.detailed_status(multi)["mode"] == JobMode.MULTI_SCENE.value


def test_enqueue_rejects_empty_scene_list(settings, logger, file_manager, notifier):
    job_queue, _ = _queue(settings, logger, file_manager, notifier)
    with pytest.raises(ValueError):
        job_queue.enqueue([])


def test_restart_requeues_pending_and_fails_interrupted(settings, logger, file_manager):
    """Test recovery of persisted job records, including the failure callback."""
    repository = JobRepository(settings, logger)
    interrupted = Job(
        job_id="interrupted",
        scenes=[SceneInput(text="a")],
        mode=JobMode.SINGLE_SCENE,
        status=JobStatus.PROCESSING,
        callback_url="http://hooks.example.com/done",
        metadata={"ticket": 3},
    )
    pending = Job(job_id="pending", scenes=[SceneInput(text="b")], mode=JobMode.SINGLE_SCENE)
    repository.save_job(interrupted)
    repository.save_job(pending)

    with patch("app.services.notifier.requests.post", return_value=MagicMock(status_code=200)) as mock_post:
        job_queue, pipeline = _queue(settings, logger, file_manager, Notifier(settings, logger))
        assert job_queue.wait_for("pending", timeout=10) == JobStatus.READY
        job_queue.shutdown()

    mock_post.assert_called_once()
    assert mock_post.call_args[0][0] == "http://hooks.example.com/done"
    body = mock_post.call_args.kwargs["json"]
    assert body["jobId"] == "interrupted"
    assert body["status"] == "failed"
    assert body["error"]["kind"] == ErrorKind.UNKNOWN.value
    assert body["metadata"] == {"ticket": 3}

    assert job_queue.status("interrupted") == JobStatus.FAILED
    assert job_queue.detailed_status("interrupted")["error"]["kind"] == ErrorKind.UNKNOWN.value
    assert pipeline.order == ["pending"]
    assert repository.load_job("pending").status == JobStatus.READY
