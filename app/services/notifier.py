"""Notifier - best-effort completion callbacks."""

from typing import Any

import requests

from app.core.config import Settings
from app.models.schemas import CallbackError, CallbackPayload, ErrorKind, Job, JobStatus


def build_payload(job: Job) -> CallbackPayload:
    """Callback body for a job in a terminal state."""
    if job.status == JobStatus.READY:
        return CallbackPayload(
            status="completed",
            job_id=job.job_id,
            artifact_ref=job.artifact_ref,
            metadata=job.metadata,
        )
    if job.status == JobStatus.FAILED:
        return CallbackPayload(
            status="failed",
            job_id=job.job_id,
            error=CallbackError(
                kind=job.error_kind or ErrorKind.UNKNOWN,
                message=job.error_message or "Unknown error",
            ),
            metadata=job.metadata,
        )
    raise ValueError(f"Job {job.job_id} is not in a terminal state: {job.status.value}")


class Notifier:
    """POSTs the callback payload once. Delivery never affects the job."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize notifier.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger

    def notify(self, job: Job) -> bool:
        """
        Deliver the terminal outcome of a job to its callback URL.

        Args:
            job: Job in a terminal state

        Returns:
            True if the callback answered 2xx, False otherwise (no callback URL counts as False)
        """
        if not job.callback_url:
            return False

        payload = build_payload(job).model_dump(by_alias=True, exclude_none=True, mode="json")
        self.logger.info(f"Sending {payload['status']} callback for job {job.job_id} to {job.callback_url}")

        try:
            response = requests.post(
                job.callback_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.settings.callback_timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Callback for job {job.job_id} failed: {e}")
            return False

        if not 200 <= response.status_code < 300:
            self.logger.error(
                f"Callback for job {job.job_id} returned status {response.status_code}: {response.text[:200]}"
            )
            return False

        self.logger.info(f"Callback delivered for job {job.job_id}")
        return True
