"""Render pipeline - scenes -> narration -> captions -> clips -> composed video for one job."""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.core.config import Settings
from app.models.schemas import Caption, Job, MusicVolume, Scene
from app.services.caption_client import CaptionClient
from app.services.caption_timing import validate_caption_track
from app.services.file_manager import FileManager
from app.services.image_client import ImageClient
from app.services.media_composer import MediaComposer
from app.services.music_library import MusicLibrary
from app.services.tts_client import TTSClient
from app.services.video_sources import VideoSourceResolver
from app.services.workflows import build_workflow
from app.storage.artifact_store import ArtifactStore, build_artifact_store


class RenderResult(BaseModel):
    """Outcome of a successful run."""

    artifact_ref: str = Field(..., description="Remote reference or download URL of the video")
    output_path: str = Field(..., description="Local path of the video")
    clip_ids: list[str] = Field(default_factory=list, description="Clip ids used, in scene order")


class RenderPipeline:
    """Runs one job start to finish. Scenes are processed strictly in order."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        tts_client: Optional[TTSClient] = None,
        caption_client: Optional[CaptionClient] = None,
        resolver: Optional[VideoSourceResolver] = None,
        composer: Optional[MediaComposer] = None,
        image_client: Optional[ImageClient] = None,
        music_library: Optional[MusicLibrary] = None,
        file_manager: Optional[FileManager] = None,
        artifact_store: Optional[ArtifactStore] = None,
    ):
        """
        Initialize the pipeline. Collaborators default to the concrete adapters.

        Args:
            settings: Application settings
            logger: Logger instance
            tts_client: Narration provider
            caption_client: Caption provider
            resolver: Clip provider chain
            composer: ffmpeg driver
            image_client: Still generator (static-image jobs)
            music_library: Background music
            file_manager: Job paths and downloads
            artifact_store: Optional publisher for finished videos
        """
        self.settings = settings
        self.logger = logger
        self.tts_client = tts_client or TTSClient(settings, logger)
        self.caption_client = caption_client or CaptionClient(settings, logger)
        self.resolver = resolver or VideoSourceResolver(settings, logger)
        self.composer = composer or MediaComposer(settings, logger)
        self.image_client = image_client or ImageClient(settings, logger)
        self.music_library = music_library or MusicLibrary(settings, logger)
        self.file_manager = file_manager or FileManager(settings, logger)
        self.artifact_store = artifact_store if artifact_store is not None else build_artifact_store(settings, logger)

    def run(self, job: Job) -> RenderResult:
        """
        Render a job to its output path.

        Args:
            job: Job in processing state

        Returns:
            RenderResult with the artifact reference

        Raises:
            ShortVideoError: Narration, transcription, provider-chain, or composition failures
        """
        log = self.logger.bind(job_id=job.job_id)
        log.info("=" * 60)
        log.info(f"Rendering job {job.job_id}: {len(job.scenes)} scenes, mode {job.mode.value}")

        workflow = build_workflow(
            job.mode, self.settings, log, self.composer, self.file_manager, self.image_client
        )

        exclude_set: set[str] = set()
        scenes = self.build_scenes(job, exclude_set, resolve_clips=workflow.needs_clips, log=log)

        log.info("Composing...")
        composed = workflow.render(job, scenes, self.file_manager.scratch_path(job.job_id, "final.mp4"))
        composed = self._add_music(job, composed, log)

        output = self._promote(composed, self.file_manager.output_path(job.job_id))
        log.info(f"Video written: {output}")

        if self.artifact_store is not None:
            artifact_ref = self.artifact_store.upload(job.job_id, output)
        else:
            artifact_ref = f"{self.settings.base_url}/api/short-video/{job.job_id}"

        return RenderResult(
            artifact_ref=artifact_ref,
            output_path=str(output),
            clip_ids=[scene.clip.id for scene in scenes if scene.clip is not None],
        )

    def build_scenes(self, job: Job, exclude_set: set[str], resolve_clips: bool = True, log: Any = None) -> list[Scene]:
        """
        Narrate, caption, and (for clip-based modes) resolve and fetch a clip per scene.

        Args:
            job: Job being rendered
            exclude_set: Clip ids already used by this job, grown in place
            resolve_clips: False for static-image jobs, whose visuals are generated later
            log: Logger bound to the job

        Returns:
            Frozen scenes in input order
        """
        log = log or self.logger
        config = job.config
        voice = config.voice or self.settings.default_voice
        scenes: list[Scene] = []

        for index, scene_input in enumerate(job.scenes):
            scene_log = log.bind(scene_index=index)
            scene_log.info(f"Scene {index + 1}/{len(job.scenes)}: narrating {len(scene_input.text)} characters")

            narration = self.tts_client.synthesize(
                scene_input.text, self.file_manager.scratch_path(job.job_id, f"audio_{index}.mp3"), voice
            )
            captions = validate_caption_track(
                self.caption_client.transcribe(Path(narration.audio_path), scene_input.text, narration.duration_seconds)
            )
            self._save_captions(job.job_id, index, captions)

            clip = None
            video_path = None
            if resolve_clips:
                is_last = index == len(job.scenes) - 1
                min_duration = narration.duration_seconds + (config.padding_back / 1000 if is_last else 0.0)
                if scene_input.video:
                    clip = self.resolver.supplied_clip(scene_input.video, exclude_set)
                else:
                    clip = self.resolver.find_clip(
                        scene_input.search_terms,
                        min_duration,
                        exclude_set,
                        config.orientation,
                        video_source=config.video_source,
                        prompt=scene_input.video_prompt,
                    )
                scene_log.info(f"Clip {clip.id} from {clip.provider}")
                video_path = str(
                    self.file_manager.download(clip.url, self.file_manager.scratch_path(job.job_id, f"clip_{index}.mp4"))
                )

            scenes.append(
                Scene(
                    index=index,
                    captions=captions,
                    audio_path=narration.audio_path,
                    audio_duration=narration.duration_seconds,
                    video_path=video_path,
                    clip=clip,
                )
            )

        return scenes

    def _save_captions(self, job_id: str, index: int, captions: list[Caption]) -> None:
        path = self.file_manager.scratch_path(job_id, f"captions_{index}.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump([c.model_dump() for c in captions], f, indent=2, ensure_ascii=False)

    def _add_music(self, job: Job, video: Path, log: Any) -> Path:
        config = job.config
        if config.music is None or config.music_volume == MusicVolume.MUTED:
            return video
        track = self.music_library.pick(config.music)
        if track is None:
            return video
        mixed = self.file_manager.scratch_path(job.job_id, "music.mp4")
        log.info(f"Adding background music ({config.music.value}, {config.music_volume.value})")
        return self.composer.mix_background_music(
            video, track, self.music_library.volume_for(config.music_volume), mixed
        )

    @staticmethod
    def _promote(source: Path, output: Path) -> Path:
        """Move the finished file into place; the output path never holds a partial file."""
        output.parent.mkdir(parents=True, exist_ok=True)
        partial = output.with_name(f"{output.stem}.partial{output.suffix}")
        shutil.move(str(source), str(partial))
        os.replace(partial, output)
        return output
