"""Tests for Media Composer (ffmpeg invocations are mocked)."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from app.models.schemas import Caption, Orientation, RenderConfig
from app.services.media_composer import MediaComposer, list_ffmpeg_filters, resolve_ffmpeg_bin
from app.utils.error_handler import CompositionError


def _fake_ffmpeg(returncode=0, stderr=b"", write_output=True):
    """subprocess.run stand-in that writes the output file ffmpeg would produce."""
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        if write_output and returncode == 0:
            Path(cmd[-1]).write_bytes(b"video")
        return subprocess.CompletedProcess(cmd, returncode, stdout=b"", stderr=stderr)

    return run, calls


@pytest.fixture
def composer(settings, logger):
    return MediaComposer(settings, logger)


@pytest.fixture
def media_files(tmp_path):
    video = tmp_path / "clip.mp4"
    audio = tmp_path / "voice.wav"
    video.write_bytes(b"clip")
    audio.write_bytes(b"voice")
    return video, audio


def test_compose_scene_builds_filter_graph(composer, media_files, tmp_path):
    """Test that a scene is looped, trimmed, captioned and written atomically."""
    video, audio = media_files
    output = tmp_path / "out" / "scene_0.mp4"
    captions = [Caption(text="Hello", start_ms=0, end_ms=400), Caption(text="world", start_ms=400, end_ms=900)]
    run, calls = _fake_ffmpeg()

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        result = composer.compose_scene(video, audio, captions, 2.5, Orientation.PORTRAIT, RenderConfig(), output)

    assert result == output
    assert output.read_bytes() == b"video"
    cmd = calls[0]
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-stream_loop") + 1] == "-1"
    assert cmd[cmd.index("-t") + 1] == "2.500"
    graph = cmd[cmd.index("-filter_complex") + 1]
    assert graph.startswith("[0:v]scale=1080:1920")
    assert graph.count("drawtext=") == 2
    assert graph.endswith("[v];[1:a]apad[a]")
    # Clip audio is never mapped
    assert "0:a" not in cmd
    assert cmd[-1].endswith("scene_0.partial.mp4")
    assert not (output.parent / "scene_0.partial.mp4").exists()


def test_compose_scene_without_captions_has_no_overlay(composer, media_files, tmp_path):
    video, audio = media_files
    run, calls = _fake_ffmpeg()

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        composer.compose_scene(
            video, audio, [], 1.0, Orientation.LANDSCAPE, RenderConfig(), tmp_path / "scene.mp4"
        )

    graph = calls[0][calls[0].index("-filter_complex") + 1]
    assert "drawtext" not in graph
    assert "scale=1920:1080" in graph


def test_failed_ffmpeg_raises_with_stderr_tail(composer, media_files, tmp_path):
    """Test that a non-zero exit raises CompositionError and leaves no output."""
    video, audio = media_files
    output = tmp_path / "scene.mp4"
    run, _ = _fake_ffmpeg(returncode=1, stderr=b"Invalid argument")

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        with pytest.raises(CompositionError) as exc_info:
            composer.compose_scene(video, audio, [], 1.0, Orientation.PORTRAIT, RenderConfig(), output)

    assert "Invalid argument" in exc_info.value.stderr_tail
    assert not output.exists()


def test_timeout_raises_composition_error_and_removes_partial(composer, media_files, tmp_path):
    video, audio = media_files
    output = tmp_path / "scene.mp4"
    partial = tmp_path / "scene.partial.mp4"

    def run(cmd, **kwargs):
        Path(cmd[-1]).write_bytes(b"half a video")
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"], stderr=b"frame=  120")

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        with pytest.raises(CompositionError, match="timed out"):
            composer.compose_scene(video, audio, [], 1.0, Orientation.PORTRAIT, RenderConfig(), output)

    assert not output.exists()
    assert not partial.exists()


def test_missing_binary_raises_composition_error(composer, media_files, tmp_path):
    video, audio = media_files
    with patch("app.services.media_composer.subprocess.run", side_effect=FileNotFoundError("ffmpeg")):
        with pytest.raises(CompositionError, match="Could not start ffmpeg"):
            composer.compose_scene(video, audio, [], 1.0, Orientation.PORTRAIT, RenderConfig(), tmp_path / "o.mp4")


def test_compose_scene_rejects_non_positive_duration(composer, media_files, tmp_path):
    video, audio = media_files
    with pytest.raises(CompositionError):
        composer.compose_scene(video, audio, [], 0, Orientation.PORTRAIT, RenderConfig(), tmp_path / "o.mp4")


def test_concatenate_writes_list_file_in_order(composer, tmp_path):
    """Test that scenes are concatenated with stream copy in the given order."""
    scenes = [tmp_path / f"scene_{i}.mp4" for i in (2, 0, 1)]
    for scene in scenes:
        scene.write_bytes(b"scene")
    output = tmp_path / "joined.mp4"
    seen_listing = {}

    def run(cmd, **kwargs):
        list_file = Path(cmd[cmd.index("-i") + 1])
        seen_listing["text"] = list_file.read_text(encoding="utf-8")
        Path(cmd[-1]).write_bytes(b"joined")
        return subprocess.CompletedProcess(cmd, 0, stdout=b"", stderr=b"")

    with patch("app.services.media_composer.subprocess.run", side_effect=run) as mock_run:
        composer.concatenate_scenes(scenes, output)

    cmd = mock_run.call_args[0][0]
    assert cmd[cmd.index("-f") + 1] == "concat"
    assert cmd[cmd.index("-c") + 1] == "copy"
    files = [line for line in seen_listing["text"].splitlines() if line.startswith("file")]
    assert [Path(line[6:-1]).name for line in files] == ["scene_2.mp4", "scene_0.mp4", "scene_1.mp4"]
    assert not output.with_suffix(".txt").exists()
    assert output.read_bytes() == b"joined"


def test_concatenate_single_scene_copies_without_ffmpeg(composer, tmp_path):
    scene = tmp_path / "scene_0.mp4"
    scene.write_bytes(b"only scene")

    with patch("app.services.media_composer.subprocess.run") as mock_run:
        composer.concatenate_scenes([scene], tmp_path / "joined.mp4")

    mock_run.assert_not_called()
    assert (tmp_path / "joined.mp4").read_bytes() == b"only scene"


def test_burn_captions_without_text_copies_input(composer, tmp_path):
    video = tmp_path / "in.mp4"
    video.write_bytes(b"plain")

    with patch("app.services.media_composer.subprocess.run") as mock_run:
        composer.burn_captions(video, [], Orientation.PORTRAIT, RenderConfig(), tmp_path / "out.mp4")

    mock_run.assert_not_called()
    assert (tmp_path / "out.mp4").read_bytes() == b"plain"


def test_burn_captions_copies_audio(composer, tmp_path):
    video = tmp_path / "in.mp4"
    video.write_bytes(b"plain")
    run, calls = _fake_ffmpeg()

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        composer.burn_captions(
            video,
            [Caption(text="Hi", start_ms=1000, end_ms=1500)],
            Orientation.PORTRAIT,
            RenderConfig(),
            tmp_path / "out.mp4",
        )

    cmd = calls[0]
    assert "gte(t,1.000)*lt(t,1.500)" in cmd[cmd.index("-vf") + 1]
    assert cmd[cmd.index("-c:a") + 1] == "copy"


def test_static_video_is_silent(composer, tmp_path):
    image = tmp_path / "still.png"
    image.write_bytes(b"png")
    run, calls = _fake_ffmpeg()

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        composer.create_static_video(image, 3.0, Orientation.PORTRAIT, tmp_path / "static.mp4")

    cmd = calls[0]
    assert cmd[cmd.index("-loop") + 1] == "1"
    assert cmd[cmd.index("-t") + 1] == "3.000"
    assert "-an" in cmd


def test_mix_background_music_sets_volume(composer, tmp_path):
    video = tmp_path / "in.mp4"
    music = tmp_path / "track.mp3"
    video.write_bytes(b"v")
    music.write_bytes(b"m")
    run, calls = _fake_ffmpeg()

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        composer.mix_background_music(video, music, 0.2, tmp_path / "out.mp4")

    graph = calls[0][calls[0].index("-filter_complex") + 1]
    assert "volume=0.20" in graph
    assert "amix=inputs=2:duration=first" in graph



def test_replace_audio_track_maps_narration_over_scaled_video(composer, media_files, tmp_path):
    """Test a generated clip keeps only its picture, scaled to the frame, under the narration."""
    video, audio = media_files
    run, calls = _fake_ffmpeg()

    with patch("app.services.media_composer.subprocess.run", side_effect=run):
        composer.replace_audio_track(video, audio, 4.0, Orientation.LANDSCAPE, tmp_path / "narrated.mp4")

    cmd = calls[0]
    graph = cmd[cmd.index("-filter_complex") + 1]
    assert graph.startswith("[0:v]scale=1920:1080")
    assert graph.endswith("[1:a]apad[a]")
    assert cmd[cmd.index("-map") + 1] == "[v]"
    assert "0:a" not in cmd
    assert cmd[cmd.index("-t") + 1] == "4.000"

_FILTER_LISTING = b"""Filters:
  T.. = Timeline support
 ... amix              N->A       Audio mixing.
 ... apad              A->A       Pad audio with silence.
 ..C crop              V->V       Crop the input video.
 T.C drawtext          V->V       Draw text on top of video frames using libfreetype library.
 ... pad               V->V       Pad the input video.
 ... scale             V->V       Scale the input video size and/or convert the image format.
 ... setsar            V->V       Set the pixel sample aspect ratio.
 T.C volume            A->A       Change input volume.
"""


def test_resolve_ffmpeg_prefers_configured_then_path():
    with patch("app.services.media_composer.shutil.which", return_value="/usr/bin/ffmpeg"), patch(
        "app.services.media_composer.imageio_ffmpeg.get_ffmpeg_exe", return_value="/bundled/ffmpeg"
    ):
        assert resolve_ffmpeg_bin("/opt/ffmpeg") == "/opt/ffmpeg"
        assert resolve_ffmpeg_bin(None) == "/usr/bin/ffmpeg"


def test_resolve_ffmpeg_falls_back_to_bundled_build():
    with patch("app.services.media_composer.shutil.which", return_value=None), patch(
        "app.services.media_composer.imageio_ffmpeg.get_ffmpeg_exe", return_value="/bundled/ffmpeg"
    ):
        assert resolve_ffmpeg_bin(None) == "/bundled/ffmpeg"


def test_list_ffmpeg_filters_parses_listing():
    result = subprocess.CompletedProcess([], 0, stdout=_FILTER_LISTING, stderr=b"")
    with patch("app.services.media_composer.subprocess.run", return_value=result):
        filters = list_ffmpeg_filters("ffmpeg")

    assert {"drawtext", "scale", "amix"} <= filters
    assert "Filters:" not in filters


def test_composer_accepts_ffmpeg_with_drawtext(settings, logger):
    settings.ffmpeg_check_filters = True
    result = subprocess.CompletedProcess([], 0, stdout=_FILTER_LISTING, stderr=b"")

    with patch("app.services.media_composer.subprocess.run", return_value=result) as mock_run:
        MediaComposer(settings, logger)

    assert mock_run.call_args[0][0] == ["ffmpeg", "-hide_banner", "-filters"]


def test_composer_rejects_ffmpeg_without_drawtext(settings, logger):
    """Test that a build without libfreetype is refused at startup, not mid-job."""
    settings.ffmpeg_check_filters = True
    listing = b"\n".join(line for line in _FILTER_LISTING.splitlines() if b"drawtext" not in line)
    result = subprocess.CompletedProcess([], 0, stdout=listing, stderr=b"")

    with patch("app.services.media_composer.subprocess.run", return_value=result):
        with pytest.raises(CompositionError, match="drawtext"):
            MediaComposer(settings, logger)


def test_composer_rejects_unrunnable_ffmpeg(settings, logger):
    settings.ffmpeg_check_filters = True
    with patch("app.services.media_composer.subprocess.run", side_effect=FileNotFoundError("ffmpeg")):
        with pytest.raises(CompositionError, match="Could not run ffmpeg"):
            MediaComposer(settings, logger)
