"""Tests for the composition workflows (composer is faked)."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from app.models.schemas import (
    Caption,
    ClipResult,
    ImageData,
    Job,
    JobMode,
    RenderConfig,
    Scene,
    SceneInput,
    VideoSource,
)
from app.services.file_manager import FileManager
from app.services.workflows import (
    MultiSceneWorkflow,
    SingleSceneWorkflow,
    StaticImageWorkflow,
    build_workflow,
    select_job_mode,
)


class RecordingComposer:
    """Writes a marker file for every step and records the calls."""

    def __init__(self):
        self.calls = []

    def _touch(self, output):
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_bytes(b"video")
        return Path(output)

    def compose_scene(self, video, audio, captions, duration, orientation, config, output):
        self.calls.append(("compose_scene", Path(video).name, list(captions), duration))
        return self._touch(output)

    def concatenate_scenes(self, paths, output):
        self.calls.append(("concatenate_scenes", [Path(p).name for p in paths]))
        return self._touch(output)

    def burn_captions(self, video, captions, orientation, config, output):
        self.calls.append(("burn_captions", Path(video).name, list(captions)))
        return self._touch(output)

    def replace_audio_track(self, video, audio, duration, orientation, output):
        self.calls.append(("replace_audio_track", Path(video).name, duration))
        return self._touch(output)

    def create_static_video(self, image, duration, orientation, output):
        self.calls.append(("create_static_video", Path(image).name, duration))
        return self._touch(output)

    def names(self):
        return [call[0] for call in self.calls]


def _scene(index, captions, audio_duration, video="clip.mp4", clip=None):
    return Scene(
        index=index,
        captions=[Caption(text=t, start_ms=s, end_ms=e) for t, s, e in captions],
        audio_path=f"audio_{index}.wav",
        audio_duration=audio_duration,
        video_path=f"clip_{index}.mp4" if video else None,
        clip=clip,
    )


def _job(scene_count, config=None, mode=JobMode.MULTI_SCENE, **scene_kwargs):
    return Job(
        job_id="job1",
        scenes=[SceneInput(text=f"Scene {i} text", **scene_kwargs) for i in range(scene_count)],
        config=config or RenderConfig(),
        mode=mode,
    )


@pytest.fixture
def composer():
    return RecordingComposer()


@pytest.fixture
def file_manager(settings, logger):
    return FileManager(settings, logger)


# ============================================================================
# Mode selection
# ============================================================================


def test_select_mode_single_and_multi():
    config = RenderConfig()
    assert select_job_mode([SceneInput(text="a")], config, "pexels") == JobMode.SINGLE_SCENE
    assert select_job_mode([SceneInput(text="a"), SceneInput(text="b")], config, "pexels") == JobMode.MULTI_SCENE


def test_select_mode_static_needs_every_scene_flagged():
    """Test that static-image mode needs the static source and image data on every scene."""
    config = RenderConfig(video_source=VideoSource.STATIC)
    flagged = [SceneInput(text="a", needs_image_generation=True), SceneInput(text="b", image_data=ImageData())]
    mixed = [SceneInput(text="a", needs_image_generation=True), SceneInput(text="b")]

    assert select_job_mode(flagged, config, "pexels") == JobMode.STATIC_IMAGE
    assert select_job_mode(mixed, config, "pexels") == JobMode.MULTI_SCENE
    assert select_job_mode(flagged, RenderConfig(), "static") == JobMode.STATIC_IMAGE
    assert select_job_mode(flagged, RenderConfig(), "pexels") == JobMode.MULTI_SCENE


def test_build_workflow_by_mode(settings, logger, composer, file_manager):
    workflow = build_workflow(JobMode.STATIC_IMAGE, settings, logger, composer, file_manager, MagicMock())
    assert isinstance(workflow, StaticImageWorkflow)
    assert workflow.needs_clips is False


# ============================================================================
# Single scene
# ============================================================================


def test_single_scene_composes_directly(settings, logger, composer, file_manager, tmp_path):
    """Test that one scene goes straight to the output with captions and padding."""
    job = _job(1, RenderConfig(padding_back=1500), mode=JobMode.SINGLE_SCENE)
    scene = _scene(0, [("Hello", 0, 500), ("there", 500, 1000)], 1.2)
    workflow = SingleSceneWorkflow(settings, logger, composer, file_manager)

    output = workflow.render(job, [scene], tmp_path / "final.mp4")

    assert output == tmp_path / "final.mp4"
    assert composer.names() == ["compose_scene"]
    _, _, captions, duration = composer.calls[0]
    assert len(captions) == 2
    assert duration == pytest.approx(2.7)


def test_single_scene_with_native_audio_replaces_track(settings, logger, composer, file_manager, tmp_path):
    clip = ClipResult(id="veo-1", url="x", provider="veo", has_native_audio=True)
    job = _job(1, mode=JobMode.SINGLE_SCENE)
    scene = _scene(0, [("Hi", 0, 400)], 1.0, clip=clip)

    SingleSceneWorkflow(settings, logger, composer, file_manager).render(job, [scene], tmp_path / "final.mp4")

    assert composer.names() == ["replace_audio_track", "burn_captions"]


# ============================================================================
# Multi scene
# ============================================================================


def test_multi_scene_shifts_captions_by_actual_duration(settings, logger, composer, file_manager, tmp_path):
    """Test scenes are composed uncaptioned, concatenated in order, and captioned once."""
    job = _job(3, RenderConfig(padding_back=1000))
    scenes = [
        _scene(0, [("a", 0, 500), ("b", 500, 1040)], 1.0),
        _scene(1, [("c", 0, 800)], 0.8),
        _scene(2, [("d", 0, 600)], 0.6),
    ]
    workflow = MultiSceneWorkflow(settings, logger, composer, file_manager)

    workflow.render(job, scenes, tmp_path / "final.mp4")

    assert composer.names() == ["compose_scene"] * 3 + ["concatenate_scenes", "burn_captions"]
    durations = [call[3] for call in composer.calls[:3]]
    assert durations == pytest.approx([1.04, 0.8, 1.6])
    assert all(call[2] == [] for call in composer.calls[:3])
    assert composer.calls[3][1] == ["job1_scene_0.mp4", "job1_scene_1.mp4", "job1_scene_2.mp4"]

    burned = composer.calls[4][2]
    assert [c.text for c in burned] == ["a", "b", "c", "d"]
    assert [c.start_ms for c in burned] == pytest.approx([0, 500, 1040, 1840])
    for previous, current in zip(burned, burned[1:]):
        assert current.start_ms >= previous.end_ms


def test_multi_scene_replaces_native_audio_per_scene(settings, logger, composer, file_manager, tmp_path):
    """Test a generated clip with its own soundtrack gets the narration instead, scene by scene."""
    veo = ClipResult(id="veo-2", url="x", provider="veo", has_native_audio=True)
    job = _job(2)
    scenes = [
        _scene(0, [("a", 0, 500)], 0.5, clip=veo),
        _scene(1, [("b", 0, 700)], 0.7),
    ]

    MultiSceneWorkflow(settings, logger, composer, file_manager).render(job, scenes, tmp_path / "final.mp4")

    assert composer.names() == ["replace_audio_track", "compose_scene", "concatenate_scenes", "burn_captions"]
    assert composer.calls[0][1:] == ("clip_0.mp4", pytest.approx(0.5))
    assert composer.calls[2][1] == ["job1_scene_0.mp4", "job1_scene_1.mp4"]


# ============================================================================
# Static image
# ============================================================================


def test_static_image_generates_all_stills_first(settings, logger, composer, file_manager, tmp_path):
    job = _job(2, RenderConfig(video_source=VideoSource.STATIC), mode=JobMode.STATIC_IMAGE, needs_image_generation=True)
    scenes = [
        _scene(0, [("a", 0, 500)], 0.5, video=None),
        _scene(1, [("b", 0, 700)], 0.7, video=None),
    ]
    events = []
    image_client = MagicMock()

    def generate(prompt, orientation, output):
        events.append("generate")
        Path(output).write_bytes(b"png")
        return Path(output)

    image_client.generate.side_effect = generate
    original_static = composer.create_static_video

    def create_static_video(*args):
        events.append("static")
        return original_static(*args)

    composer.create_static_video = create_static_video
    workflow = StaticImageWorkflow(settings, logger, composer, file_manager, image_client)

    workflow.render(job, scenes, tmp_path / "final.mp4")

    assert events == ["generate", "generate", "static", "static"]
    compose_sources = [call[1] for call in composer.calls if call[0] == "compose_scene"]
    assert compose_sources == ["job1_static_0.mp4", "job1_static_1.mp4"]
    assert composer.names()[-1] == "burn_captions"
    assert image_client.generate.call_args_list[0][0][0] == "Scene 0 text, cinematic style, dynamic mood"
