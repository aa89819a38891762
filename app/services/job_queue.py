"""Job Queue - single-worker FIFO that owns the job lifecycle."""

import queue
import threading
import time
import uuid
from datetime import datetime
from typing import Any, Optional

from app.core.config import Settings
from app.models.schemas import ErrorKind, Job, JobStatus, RenderConfig, SceneInput
from app.pipelines.render_pipeline import RenderPipeline
from app.services.file_manager import FileManager
from app.services.notifier import Notifier
from app.services.workflows import select_job_mode
from app.storage.artifact_store import JobRepository
from app.utils.error_handler import (
    JobBusyError,
    JobNotFoundError,
    JobNotReadyError,
    classify_error,
    format_error_message,
    get_operator_hint,
)

# Legal lifecycle moves; terminal states have none
_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.READY, JobStatus.FAILED},
    JobStatus.READY: set(),
    JobStatus.FAILED: set(),
}


class JobQueue:
    """
    Accepts jobs without blocking and renders them one at a time, in arrival order.

    A daemon worker thread is started on the first enqueue. A failed job never
    stops the worker; it records the failure, notifies, and moves on.
    """

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        pipeline: Optional[RenderPipeline] = None,
        notifier: Optional[Notifier] = None,
        repository: Optional[JobRepository] = None,
        file_manager: Optional[FileManager] = None,
    ):
        """
        Initialize the queue and reload persisted job records.

        Args:
            settings: Application settings
            logger: Logger instance
            pipeline: Pipeline that renders one job (default: RenderPipeline with concrete adapters)
            notifier: Callback notifier
            repository: Job record storage
            file_manager: Job paths and cleanup
        """
        self.settings = settings
        self.logger = logger
        self.file_manager = file_manager or FileManager(settings, logger)
        self.pipeline = pipeline or RenderPipeline(settings, logger, file_manager=self.file_manager)
        self.notifier = notifier or Notifier(settings, logger)
        self.repository = repository or JobRepository(settings, logger)

        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._queue: "queue.Queue[str]" = queue.Queue()
        self._stop = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._current: Optional[str] = None

        self._restore()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(
        self,
        scenes: list[SceneInput],
        config: Optional[RenderConfig] = None,
        callback_url: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        """
        Admit a job and return its id immediately.

        Args:
            scenes: Ordered scene inputs (at least one)
            config: Render config (default: RenderConfig())
            callback_url: Optional completion callback
            metadata: Optional opaque metadata echoed in the callback

        Returns:
            Job id
        """
        if not scenes:
            raise ValueError("A job needs at least one scene")

        config = config or RenderConfig()
        job = Job(
            job_id=uuid.uuid4().hex,
            scenes=list(scenes),
            config=config,
            mode=select_job_mode(scenes, config, self.settings.video_source),
            callback_url=callback_url,
            metadata=metadata or {},
        )

        with self._lock:
            self._jobs[job.job_id] = job
            self.repository.save_job(job)
        self._queue.put(job.job_id)
        self.logger.info(f"Job {job.job_id} queued ({len(scenes)} scenes, {job.mode.value})")

        self._ensure_worker()
        return job.job_id

    def status(self, job_id: str) -> JobStatus:
        return self._get(job_id).status

    def get_artifact(self, job_id: str) -> bytes:
        """
        Read a finished video.

        Raises:
            JobNotFoundError: Unknown job, or its artifact is gone
            JobNotReadyError: Job is not ready
        """
        job = self._get(job_id)
        if job.status != JobStatus.READY:
            raise JobNotReadyError(f"Job {job_id} is {job.status.value}, not ready")
        path = self.file_manager.output_path(job_id)
        if not path.exists():
            raise JobNotFoundError(f"Artifact for job {job_id} is missing: {path}")
        return path.read_bytes()

    def delete(self, job_id: str) -> None:
        """
        Forget a finished job and remove its artifact and scratch files.

        Raises:
            JobNotFoundError: Unknown job
            JobBusyError: Job is pending or processing
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if not job.status.is_terminal:
                raise JobBusyError(f"Job {job_id} is {job.status.value} and cannot be deleted yet")
            del self._jobs[job_id]
            self.repository.delete_job(job_id)

        self.file_manager.cleanup_job(job_id)
        self.logger.info(f"Job {job_id} deleted")

    def detailed_status(self, job_id: str) -> dict:
        job = self._get(job_id)
        output = self.file_manager.output_path(job_id)
        details = {
            "videoId": job.job_id,
            "status": job.status.value,
            "mode": job.mode.value,
            "scenes": len(job.scenes),
            "createdAt": job.created_at.isoformat(),
            "updatedAt": job.updated_at.isoformat(),
            "processing": job.status == JobStatus.PROCESSING,
            "callbackUrl": job.callback_url,
            "metadata": job.metadata,
        }
        if job.status == JobStatus.READY:
            details["artifactRef"] = job.artifact_ref
            details["fileSize"] = output.stat().st_size if output.exists() else None
        if job.status == JobStatus.FAILED:
            details["error"] = {
                "kind": job.error_kind.value if job.error_kind else None,
                "message": job.error_message,
                "hint": get_operator_hint(job.error_kind) if job.error_kind else None,
            }
        return details

    def list_jobs(self) -> list[dict]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: j.created_at)
        return [{"id": job.job_id, "status": job.status.value} for job in jobs]

    def queue_status(self) -> dict:
        with self._lock:
            pending = sum(1 for job in self._jobs.values() if job.status == JobStatus.PENDING)
            return {"pending": pending, "processing": self._current}

    def wait_for(self, job_id: str, timeout: Optional[float] = None, poll_interval: float = 0.2) -> JobStatus:
        """Block until a job reaches a terminal state (or timeout) and return its status."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            status = self.status(job_id)
            if status.is_terminal:
                return status
            if deadline is not None and time.monotonic() >= deadline:
                return status
            time.sleep(poll_interval)

    def shutdown(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the worker after its current job."""
        self._stop.set()
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout)
        self.logger.info("Job queue stopped")

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker and self._worker.is_alive():
                return
            self._stop.clear()
            self._worker = threading.Thread(target=self._run, name="job-queue-worker", daemon=True)
            self._worker.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                job_id = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self._process(job_id)
            except Exception as e:
                self.logger.exception(f"Queue worker error on job {job_id}: {e}")
            finally:
                self._queue.task_done()

    def _process(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                return
            self._transition(job, JobStatus.PROCESSING)
            self._current = job_id

        log = self.logger.bind(job_id=job_id)
        try:
            result = self.pipeline.run(job)
        except Exception as e:
            kind = classify_error(e)
            log.error(
                format_error_message(
                    "Rendering video",
                    e,
                    context={"job_id": job_id, "kind": kind.value},
                    suggestion=get_operator_hint(kind),
                )
            )
            output = self.file_manager.output_path(job_id)
            if output.exists():
                output.unlink()
            with self._lock:
                self._transition(job, JobStatus.FAILED, error_kind=kind, error_message=str(e))
                self._current = None
        else:
            self.file_manager.cleanup_dir(self.settings.temp_dir / job_id)
            with self._lock:
                self._transition(job, JobStatus.READY, artifact_ref=result.artifact_ref)
                self._current = None
            log.info(f"Job {job_id} ready: {result.artifact_ref}")

        self.notifier.notify(job)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def _transition(self, job: Job, status: JobStatus, **updates: Any) -> None:
        """Apply a lifecycle move and persist it. Caller holds the lock."""
        if status not in _TRANSITIONS[job.status]:
            raise RuntimeError(f"Illegal transition for job {job.job_id}: {job.status.value} -> {status.value}")
        job.status = status
        for field, value in updates.items():
            setattr(job, field, value)
        job.updated_at = datetime.now()
        self.repository.save_job(job)

    def _restore(self) -> None:
        """Reload job records: pending jobs are queued again, interrupted ones fail."""
        requeue = []
        interrupted = []
        for job in sorted(self.repository.load_all(), key=lambda j: j.created_at):
            if job.status == JobStatus.PROCESSING:
                self._transition(
                    job, JobStatus.FAILED, error_kind=ErrorKind.UNKNOWN, error_message="Interrupted by restart"
                )
                interrupted.append(job)
            elif job.status == JobStatus.PENDING:
                requeue.append(job.job_id)
            self._jobs[job.job_id] = job

        if self._jobs:
            self.logger.info(f"Restored {len(self._jobs)} job records ({len(requeue)} pending)")
        for job in interrupted:
            self.notifier.notify(job)
        for job_id in requeue:
            self._queue.put(job_id)
        if requeue:
            self._ensure_worker()
