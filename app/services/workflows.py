"""Workflows - the three composition strategies and the rule that picks one per job."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from app.core.config import Settings
from app.models.schemas import Job, JobMode, Scene, SceneInput, RenderConfig, VideoSource
from app.services.caption_timing import CaptionTimeline, scene_actual_duration, validate_caption_track
from app.services.file_manager import FileManager
from app.services.image_client import ImageClient, build_image_prompt
from app.services.media_composer import MediaComposer
from app.utils.error_handler import CompositionError


def select_job_mode(scenes: list[SceneInput], config: RenderConfig, default_source: str) -> JobMode:
    """
    Decide the composition strategy from the job inputs alone.

    Args:
        scenes: Scene inputs
        config: Render config
        default_source: Configured video source used when the job sets none

    Returns:
        JobMode stored on the job and never re-derived
    """
    source = config.video_source.value if config.video_source else default_source
    if (
        source == VideoSource.STATIC.value
        and scenes
        and all(scene.needs_image_generation or scene.image_data is not None for scene in scenes)
    ):
        return JobMode.STATIC_IMAGE
    if len(scenes) == 1:
        return JobMode.SINGLE_SCENE
    return JobMode.MULTI_SCENE


class Workflow(ABC):
    """Turns built scenes into one composed video at the given path."""

    mode: JobMode

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        composer: MediaComposer,
        file_manager: FileManager,
        image_client: Optional[ImageClient] = None,
    ):
        self.settings = settings
        self.logger = logger
        self.composer = composer
        self.file_manager = file_manager
        self.image_client = image_client

    @property
    def needs_clips(self) -> bool:
        """Whether scenes must arrive with a resolved clip."""
        return True

    @abstractmethod
    def render(self, job: Job, scenes: list[Scene], output: Path) -> Path:
        """Compose the job's scenes into output and return it."""


class SingleSceneWorkflow(Workflow):
    """One scene composed straight to the output with captions; no concatenation."""

    mode = JobMode.SINGLE_SCENE

    def render(self, job: Job, scenes: list[Scene], output: Path) -> Path:
        if len(scenes) != 1:
            raise CompositionError(f"Single-scene workflow got {len(scenes)} scenes")

        scene = scenes[0]
        config = job.config
        duration = scene.audio_duration + config.padding_back / 1000
        self.logger.info(f"Single-scene render: {duration:.2f}s (audio {scene.audio_duration:.2f}s)")

        if scene.clip is not None and scene.clip.has_native_audio:
            # Clip carries its own soundtrack: swap in narration, then caption
            muxed = self.file_manager.scratch_path(job.job_id, "scene_0_narrated.mp4")
            self.composer.replace_audio_track(
                Path(scene.video_path), Path(scene.audio_path), duration, config.orientation, muxed
            )
            return self.composer.burn_captions(muxed, scene.captions, config.orientation, config, output)

        return self.composer.compose_scene(
            Path(scene.video_path),
            Path(scene.audio_path),
            scene.captions,
            duration,
            config.orientation,
            config,
            output,
        )


class MultiSceneWorkflow(Workflow):
    """Compose each scene uncaptioned, concatenate in order, burn the shifted caption track."""

    mode = JobMode.MULTI_SCENE

    def scene_duration(self, scene: Scene, is_last: bool, config: RenderConfig) -> float:
        """Timeline length of a scene; padding after speech only follows the last one."""
        padding = config.padding_back / 1000 if is_last else 0.0
        return scene_actual_duration(scene.captions, scene.audio_duration) + padding

    def render(self, job: Job, scenes: list[Scene], output: Path) -> Path:
        if not scenes:
            raise CompositionError("Multi-scene workflow got no scenes")

        config = job.config
        timeline = CaptionTimeline()
        scene_paths: list[Path] = []

        for scene in scenes:
            is_last = scene.index == len(scenes) - 1
            duration = self.scene_duration(scene, is_last, config)
            scene_output = self.file_manager.scene_path(job.job_id, scene.index, ".mp4")
            if scene.clip is not None and scene.clip.has_native_audio:
                self.composer.replace_audio_track(
                    Path(scene.video_path), Path(scene.audio_path), duration, config.orientation, scene_output
                )
            else:
                self.composer.compose_scene(
                    Path(scene.video_path),
                    Path(scene.audio_path),
                    [],
                    duration,
                    config.orientation,
                    config,
                    scene_output,
                )
            scene_paths.append(scene_output)

            padding = config.padding_back / 1000 if is_last else 0.0
            offset = timeline.append_scene(scene.captions, scene.audio_duration, extra_seconds=padding)
            self.logger.debug(
                f"Scene {scene.index}: {duration:.2f}s at offset {offset:.2f}s, {len(scene.captions)} captions"
            )

        captions = validate_caption_track(timeline.captions)
        self.logger.info(f"Timeline: {len(scenes)} scenes, {timeline.cumulative_seconds:.2f}s, {len(captions)} captions")

        if len(scene_paths) == 1:
            joined = scene_paths[0]
        else:
            joined = self.composer.concatenate_scenes(
                scene_paths, self.file_manager.scratch_path(job.job_id, "concat.mp4")
            )
        return self.composer.burn_captions(joined, captions, config.orientation, config, output)


class StaticImageWorkflow(MultiSceneWorkflow):
    """One generated still per scene, turned into static videos, then the multi-scene path."""

    mode = JobMode.STATIC_IMAGE

    @property
    def needs_clips(self) -> bool:
        return False

    def render(self, job: Job, scenes: list[Scene], output: Path) -> Path:
        if self.image_client is None:
            raise CompositionError("Static-image workflow needs an image client")

        config = job.config

        # Every still is generated before any video is built
        stills: list[Path] = []
        for scene in scenes:
            scene_input = job.scenes[scene.index]
            prompt = build_image_prompt(scene_input.text, scene_input.image_data)
            still = self.file_manager.scene_path(job.job_id, scene.index, ".png")
            stills.append(self.image_client.generate(prompt, config.orientation, still))
        self.logger.info(f"Generated {len(stills)} stills")

        static_scenes: list[Scene] = []
        for scene, still in zip(scenes, stills):
            is_last = scene.index == len(scenes) - 1
            static_video = self.file_manager.scratch_path(job.job_id, f"static_{scene.index}.mp4")
            self.composer.create_static_video(
                still, self.scene_duration(scene, is_last, config), config.orientation, static_video
            )
            static_scenes.append(scene.model_copy(update={"video_path": str(static_video)}))

        return super().render(job, static_scenes, output)


WORKFLOWS: dict[JobMode, type[Workflow]] = {
    JobMode.SINGLE_SCENE: SingleSceneWorkflow,
    JobMode.MULTI_SCENE: MultiSceneWorkflow,
    JobMode.STATIC_IMAGE: StaticImageWorkflow,
}


def build_workflow(
    mode: JobMode,
    settings: Settings,
    logger: Any,
    composer: MediaComposer,
    file_manager: FileManager,
    image_client: Optional[ImageClient] = None,
) -> Workflow:
    return WORKFLOWS[mode](settings, logger, composer, file_manager, image_client)
