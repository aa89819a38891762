"""File Manager - job-scoped paths, downloads, and cleanup."""

import os
import shutil
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests

from app.core.config import Settings
from app.utils.error_handler import DownloadError

_CHUNK_SIZE = 1024 * 1024


class FileManager:
    """Owns the on-disk layout: one output file and one scratch directory per job."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize file manager.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        settings.ensure_dirs()

    def output_path(self, job_id: str) -> Path:
        return self.settings.videos_dir / f"{job_id}.mp4"

    def scratch_dir(self, job_id: str) -> Path:
        path = self.settings.temp_dir / job_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def scratch_path(self, job_id: str, name: str) -> Path:
        """Path inside the job's scratch directory; every name carries the job id."""
        return self.scratch_dir(job_id) / f"{job_id}_{name}"

    def scene_path(self, job_id: str, index: int, suffix: str) -> Path:
        return self.scratch_path(job_id, f"scene_{index}{suffix}")

    def download(self, source: str, dest: Path) -> Path:
        """
        Fetch a clip by URL, or copy it if it is a local path.

        Args:
            source: http(s) URL or local file path
            dest: Destination path

        Returns:
            The destination path

        Raises:
            DownloadError: If the source cannot be fetched
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(f"{dest.name}.part")
        scheme = urlparse(source).scheme

        try:
            if scheme in ("http", "https"):
                shown = _without_query(source)
                self.logger.debug(f"Downloading {shown} -> {dest.name}")
                try:
                    with requests.get(source, stream=True, timeout=self.settings.download_timeout_seconds) as response:
                        if response.status_code != 200:
                            raise DownloadError(f"Failed to download {shown}: status {response.status_code}")
                        with open(partial, "wb") as f:
                            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                                f.write(chunk)
                except requests.exceptions.RequestException as e:
                    raise DownloadError(f"Network error downloading {shown}: {type(e).__name__}") from e
            else:
                local = Path(source[len("file://"):] if scheme == "file" else source)
                if not local.is_file():
                    raise DownloadError(f"Video file not found: {source}")
                shutil.copyfile(local, partial)

            os.replace(partial, dest)
        finally:
            if partial.exists():
                partial.unlink()

        self.logger.debug(f"Fetched {dest.name} ({dest.stat().st_size} bytes)")
        return dest

    def cleanup_dir(self, path: Path) -> None:
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)
            self.logger.debug(f"Cleaned up directory: {path}")

    def cleanup_job(self, job_id: str) -> None:
        """Remove the job's scratch directory and output file, if present."""
        self.cleanup_dir(self.settings.temp_dir / job_id)
        output = self.output_path(job_id)
        if output.exists():
            output.unlink()
            self.logger.debug(f"Removed artifact: {output}")


def _without_query(url: str) -> str:
    """URL for logs and errors; query strings can carry API keys."""
    return urlparse(url)._replace(query="").geturl()
