"""Tests for File Manager."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from app.services.file_manager import FileManager
from app.utils.error_handler import DownloadError


@pytest.fixture
def file_manager(settings, logger):
    return FileManager(settings, logger)


def test_paths_are_job_scoped(file_manager, settings):
    assert file_manager.output_path("job1") == settings.videos_dir / "job1.mp4"
    scene = file_manager.scene_path("job1", 2, ".mp4")
    assert scene.parent == settings.temp_dir / "job1"
    assert scene.name == "job1_scene_2.mp4"


def test_download_copies_local_file(file_manager, tmp_path):
    source = tmp_path / "supplied.mp4"
    source.write_bytes(b"local video")
    dest = file_manager.scratch_path("job1", "clip_0.mp4")

    file_manager.download(str(source), dest)

    assert dest.read_bytes() == b"local video"
    assert not dest.with_name(dest.name + ".part").exists()


def test_download_accepts_file_uri(file_manager, tmp_path):
    source = tmp_path / "supplied.mp4"
    source.write_bytes(b"local video")
    dest = tmp_path / "out.mp4"

    file_manager.download(source.as_uri(), dest)

    assert dest.read_bytes() == b"local video"


def test_download_missing_local_file(file_manager, tmp_path):
    with pytest.raises(DownloadError, match="not found"):
        file_manager.download(str(tmp_path / "nope.mp4"), tmp_path / "out.mp4")


def test_download_streams_http(file_manager, tmp_path):
    response = MagicMock(status_code=200)
    response.iter_content.return_value = [b"abc", b"def"]
    response.__enter__.return_value = response
    dest = tmp_path / "clip.mp4"

    with patch("app.services.file_manager.requests.get", return_value=response):
        file_manager.download("https://cdn.example.com/clip.mp4", dest)

    assert dest.read_bytes() == b"abcdef"


def test_download_http_error_leaves_nothing(file_manager, tmp_path):
    response = MagicMock(status_code=404)
    response.__enter__.return_value = response
    dest = tmp_path / "clip.mp4"

    with patch("app.services.file_manager.requests.get", return_value=response):
        with pytest.raises(DownloadError, match="404"):
            file_manager.download("https://cdn.example.com/clip.mp4", dest)

    assert not dest.exists()


def test_download_network_error(file_manager, tmp_path):
    with patch("app.services.file_manager.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
        with pytest.raises(DownloadError, match="Network error"):
            file_manager.download("https://cdn.example.com/clip.mp4", tmp_path / "clip.mp4")


def test_cleanup_job_removes_scratch_and_output(file_manager):
    file_manager.scratch_path("job1", "audio_0.wav").write_bytes(b"a")
    file_manager.output_path("job1").write_bytes(b"v")

    file_manager.cleanup_job("job1")

    assert not (file_manager.settings.temp_dir / "job1").exists()
    assert not file_manager.output_path("job1").exists()


def test_download_errors_do_not_echo_query_keys(file_manager, tmp_path):
    url = "https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media&key=secret-key"
    response = MagicMock(status_code=403)
    response.__enter__.return_value = response

    with patch("app.services.file_manager.requests.get", return_value=response) as mock_get:
        with pytest.raises(DownloadError) as excinfo:
            file_manager.download(url, tmp_path / "clip.mp4")

    assert mock_get.call_args[0][0] == url
    assert "secret-key" not in str(excinfo.value)
    assert "files/abc:download" in str(excinfo.value)
