"""Storage for job records and finished artifacts."""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Optional, Protocol

from app.core.config import Settings
from app.models.schemas import Job


class ArtifactStore(Protocol):
    def upload(self, job_id: str, local_path: Path) -> str:
        """Publish a finished video and return its remote reference."""


class DirectoryArtifactStore:
    """Publishes finished videos into a directory such as a mounted share."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the store.

        Args:
            settings: Application settings (artifact_store_dir must be set)
            logger: Logger instance
        """
        if not settings.artifact_store_dir:
            raise ValueError("ARTIFACT_STORE_DIR not configured")
        self.settings = settings
        self.logger = logger
        self.target_dir = Path(settings.artifact_store_dir)
        self.target_dir.mkdir(parents=True, exist_ok=True)

    def upload(self, job_id: str, local_path: Path) -> str:
        target = self.target_dir / f"{job_id}{Path(local_path).suffix}"
        partial = target.with_name(f"{target.name}.part")
        shutil.copyfile(local_path, partial)
        os.replace(partial, target)
        self.logger.info(f"Published artifact for job {job_id}: {target}")
        return target.resolve().as_uri()


def build_artifact_store(settings: Settings, logger: Any) -> Optional[ArtifactStore]:
    """The configured artifact store, or None when finished videos stay local."""
    if settings.artifact_store_dir:
        return DirectoryArtifactStore(settings, logger)
    return None


class JobRepository:
    """Repository for storing and loading job records."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the repository.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.storage_path = settings.jobs_dir
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def save_job(self, job: Job) -> None:
        """
        Save a job record, replacing any previous version atomically.

        Args:
            job: Job to save
        """
        file_path = self.storage_path / f"{job.job_id}.json"
        partial = file_path.with_name(f"{file_path.name}.part")
        with open(partial, "w", encoding="utf-8") as f:
            json.dump(job.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        os.replace(partial, file_path)
        self.logger.debug(f"Job record saved: {job.job_id} ({job.status.value})")

    def load_job(self, job_id: str) -> Optional[Job]:
        """
        Load a job record.

        Args:
            job_id: Job identifier

        Returns:
            Job if found, None otherwise
        """
        file_path = self.storage_path / f"{job_id}.json"

        if not file_path.exists():
            return None

        with open(file_path, "r", encoding="utf-8") as f:
            return Job.model_validate(json.load(f))

    def list_job_ids(self) -> list[str]:
        return sorted(f.stem for f in self.storage_path.glob("*.json"))

    def load_all(self) -> list[Job]:
        """Every readable job record; unreadable files are skipped with a warning."""
        jobs = []
        for job_id in self.list_job_ids():
            try:
                job = self.load_job(job_id)
            except (OSError, ValueError) as e:
                self.logger.warning(f"Skipping unreadable job record {job_id}: {e}")
                continue
            if job:
                jobs.append(job)
        return jobs

    def delete_job(self, job_id: str) -> bool:
        """
        Delete a job record.

        Args:
            job_id: Job identifier

        Returns:
            True if a record was deleted
        """
        file_path = self.storage_path / f"{job_id}.json"
        if file_path.exists():
            file_path.unlink()
            return True
        return False
