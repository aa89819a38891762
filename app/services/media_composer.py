"""Media Composer - drives ffmpeg to compose, caption, and concatenate scene videos."""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional

import imageio_ffmpeg
from moviepy import AudioFileClip

from app.core.config import Settings
from app.models.schemas import Caption, Orientation, RenderConfig
from app.services.ffmpeg_filters import (
    CaptionOverlaySpec,
    ConcatSpec,
    scale_crop_filter,
    scale_pad_filter,
)
from app.utils.error_handler import CompositionError

_STDERR_TAIL_CHARS = 2000
_BASE_FLAGS = ["-y", "-nostdin", "-hide_banner", "-loglevel", "error"]
_AUDIO_CODEC = ["-c:a", "aac", "-b:a", "192k", "-ar", "48000", "-ac", "2"]
REQUIRED_FILTERS = ("drawtext", "scale", "crop", "pad", "setsar", "apad", "amix", "volume")


class MediaComposer:
    """Runs every composition step as a bounded ffmpeg subprocess."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize media composer.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.ffmpeg_bin = resolve_ffmpeg_bin(settings.ffmpeg_bin)
        self.timeout = settings.ffmpeg_timeout_seconds
        self.fps = settings.video_fps
        if settings.ffmpeg_check_filters:
            self._check_required_filters()

    def _check_required_filters(self) -> None:
        """
        Fail fast when the ffmpeg build cannot burn captions.

        Raises:
            CompositionError: If ffmpeg cannot be run or lacks a required filter
        """
        filters = list_ffmpeg_filters(self.ffmpeg_bin)
        missing = [name for name in REQUIRED_FILTERS if name not in filters]
        if missing:
            raise CompositionError(
                f"ffmpeg at {self.ffmpeg_bin} lacks required filter(s): {', '.join(missing)}. "
                "Install an ffmpeg built with libfreetype and set FFMPEG_BIN to it."
            )
        self.logger.debug(f"Using ffmpeg at {self.ffmpeg_bin}")

    # ------------------------------------------------------------------
    # Subprocess handling
    # ------------------------------------------------------------------

    def _run(self, args: list[str], output: Path, description: str) -> Path:
        """
        Run ffmpeg writing to a temp sibling of output, then promote it.

        Args:
            args: ffmpeg arguments, without binary and output path
            output: Final output path
            description: Step name used in logs and errors

        Returns:
            The output path

        Raises:
            CompositionError: On non-zero exit, timeout, or missing binary
        """
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        partial = output.with_name(f"{output.stem}.partial{output.suffix}")
        cmd = [self.ffmpeg_bin, *_BASE_FLAGS, *args, str(partial)]
        self.logger.debug(f"ffmpeg [{description}]: {' '.join(cmd)}")

        try:
            try:
                proc = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired as e:
                # subprocess.run kills the child before re-raising
                raise CompositionError(
                    f"ffmpeg timed out after {self.timeout:.0f}s while {description}",
                    stderr_tail=_decode_tail(e.stderr),
                ) from e
            except OSError as e:
                raise CompositionError(f"Could not start ffmpeg ({self.ffmpeg_bin}) while {description}: {e}") from e

            if proc.returncode != 0:
                tail = _decode_tail(proc.stderr)
                raise CompositionError(
                    f"ffmpeg failed (code {proc.returncode}) while {description}:\n{tail}",
                    stderr_tail=tail,
                )
            if not partial.exists():
                raise CompositionError(f"ffmpeg reported success but wrote no output while {description}")

            os.replace(partial, output)
        finally:
            if partial.exists():
                partial.unlink()

        return output

    def _font_size(self, orientation: Orientation) -> int:
        if orientation == Orientation.PORTRAIT:
            return self.settings.caption_font_size_portrait
        return self.settings.caption_font_size_landscape

    def _overlay(
        self, captions: list[Caption], orientation: Orientation, config: RenderConfig
    ) -> Optional[CaptionOverlaySpec]:
        if not any(caption.text.strip() for caption in captions):
            return None
        return CaptionOverlaySpec.from_captions(
            captions,
            orientation,
            config,
            font_size=self._font_size(orientation),
            font_file=self.settings.caption_font_path,
        )

    # ------------------------------------------------------------------
    # Composition operations
    # ------------------------------------------------------------------

    def compose_scene(
        self,
        video: Path,
        audio: Path,
        captions: list[Caption],
        duration: float,
        orientation: Orientation,
        config: RenderConfig,
        output: Path,
    ) -> Path:
        """
        Mux a looped clip with narration, trim to duration, optionally burn captions.

        The clip's own audio is never mapped. Narration is padded with silence
        so padding after speech keeps the audio stream as long as the video.

        Args:
            video: Scene clip
            audio: Narration audio
            captions: Captions on the scene's own timeline (empty to skip the overlay)
            duration: Output duration in seconds
            orientation: Output orientation
            config: Render config
            output: Output path

        Returns:
            Output path
        """
        if duration <= 0:
            raise CompositionError(f"Scene duration must be positive, got {duration}")

        video_chain = f"[0:v]{scale_crop_filter(orientation, self.fps)}"
        overlay = self._overlay(captions, orientation, config)
        if overlay:
            video_chain += f",{overlay.to_filter()}"
        filter_graph = f"{video_chain}[v];[1:a]apad[a]"

        args = [
            "-stream_loop", "-1", "-i", str(video),
            "-i", str(audio),
            "-filter_complex", filter_graph,
            "-map", "[v]", "-map", "[a]",
            "-t", f"{duration:.3f}",
            "-c:v", "libx264", "-preset", "veryfast", "-crf", "20", "-pix_fmt", "yuv420p", "-r", str(self.fps),
            *_AUDIO_CODEC,
            "-movflags", "+faststart",
        ]
        self.logger.info(f"Composing scene {output.name} ({duration:.2f}s, captions={'yes' if overlay else 'no'})")
        return self._run(args, output, f"composing {output.name}")

    def concatenate_scenes(self, paths: list[Path], output: Path) -> Path:
        """
        Losslessly concatenate scene files in the given order.

        Args:
            paths: Scene files, in scene order
            output: Output path

        Returns:
            Output path
        """
        spec = ConcatSpec(paths=[str(p) for p in paths])
        output = Path(output)

        if len(spec.paths) == 1:
            self.logger.info("Single scene, copying instead of concatenating")
            output.parent.mkdir(parents=True, exist_ok=True)
            partial = output.with_name(f"{output.stem}.partial{output.suffix}")
            shutil.copyfile(spec.paths[0], partial)
            os.replace(partial, output)
            return output

        list_file = output.with_suffix(".txt")
        list_file.write_text(spec.to_list_file(), encoding="utf-8")
        try:
            args = ["-f", "concat", "-safe", "0", "-i", str(list_file), "-c", "copy", "-movflags", "+faststart"]
            self.logger.info(f"Concatenating {len(spec.paths)} scenes into {output.name}")
            return self._run(args, output, f"concatenating {len(spec.paths)} scenes")
        finally:
            list_file.unlink(missing_ok=True)

    def replace_audio_track(
        self, video: Path, audio: Path, duration: float, orientation: Orientation, output: Path
    ) -> Path:
        """
        Drop a generated clip's own soundtrack and put the narration under it.

        The video is scaled to the output frame like any composed scene, so
        the result can be concatenated or captioned directly.
        """
        if duration <= 0:
            raise CompositionError(f"Scene duration must be positive, got {duration}")

        filter_graph = f"[0:v]{scale_crop_filter(orientation, self.fps)}[v];[1:a]apad[a]"
        args = [
            "-stream_loop", "-1", "-i", str(video),
            "-i", str(audio),
            "-filter_complex", filter_graph,
            "-map", "[v]", "-map", "[a]",
            "-t", f"{duration:.3f}",
            "-c:v", "libx264", "-preset", "veryfast", "-crf", "20", "-pix_fmt", "yuv420p", "-r", str(self.fps),
            *_AUDIO_CODEC,
            "-movflags", "+faststart",
        ]
        self.logger.info(f"Replacing native audio of {Path(video).name}")
        return self._run(args, output, "replacing audio track")

    def burn_captions(
        self,
        video: Path,
        captions: list[Caption],
        orientation: Orientation,
        config: RenderConfig,
        output: Path,
    ) -> Path:
        """
        Burn a caption track onto an already composed video.

        Captions must already be on the video's timeline. With nothing to
        draw the input is copied unchanged.
        """
        overlay = self._overlay(captions, orientation, config)
        if overlay is None:
            self.logger.info("No captions to burn, copying video")
            return self.concatenate_scenes([Path(video)], output)

        args = [
            "-i", str(video),
            "-vf", overlay.to_filter(),
            "-c:v", "libx264", "-preset", "veryfast", "-crf", "20", "-pix_fmt", "yuv420p",
            "-c:a", "copy",
            "-movflags", "+faststart",
        ]
        self.logger.info(f"Burning {len(overlay.entries)} captions")
        return self._run(args, output, "burning captions")

    def create_static_video(self, image: Path, duration: float, orientation: Orientation, output: Path) -> Path:
        """Turn a still into a silent video of the given duration."""
        if duration <= 0:
            raise CompositionError(f"Static video duration must be positive, got {duration}")
        args = [
            "-loop", "1", "-t", f"{duration:.3f}", "-i", str(image),
            "-vf", scale_pad_filter(orientation, self.fps),
            "-c:v", "libx264", "-preset", "veryfast", "-tune", "stillimage", "-pix_fmt", "yuv420p",
            "-r", str(self.fps),
            "-an",
        ]
        self.logger.info(f"Creating static video from {Path(image).name} ({duration:.2f}s)")
        return self._run(args, output, f"creating static video from {Path(image).name}")

    def mix_background_music(self, video: Path, music: Path, volume: float, output: Path) -> Path:
        """
        Loop background music under the narration.

        Args:
            video: Final video with narration audio
            music: Music file
            volume: Music gain (0..1)
            output: Output path

        Returns:
            Output path
        """
        filter_graph = (
            f"[1:a]volume={volume:.2f}[music];"
            "[0:a][music]amix=inputs=2:duration=first:dropout_transition=0:normalize=0[a]"
        )
        args = [
            "-i", str(video),
            "-stream_loop", "-1", "-i", str(music),
            "-filter_complex", filter_graph,
            "-map", "0:v", "-map", "[a]",
            "-c:v", "copy",
            *_AUDIO_CODEC,
            "-movflags", "+faststart",
        ]
        self.logger.info(f"Mixing background music {Path(music).name} at volume {volume:.2f}")
        return self._run(args, output, "mixing background music")

def resolve_ffmpeg_bin(configured: Optional[str] = None) -> str:
    """
    Pick the ffmpeg binary: configured path, then ffmpeg on PATH, then the bundled build.

    The imageio-ffmpeg build ships without libfreetype, so it is only a last resort.
    """
    if configured:
        return configured
    return shutil.which("ffmpeg") or imageio_ffmpeg.get_ffmpeg_exe()


def list_ffmpeg_filters(ffmpeg_bin: str) -> set[str]:
    """
    Names of the filters an ffmpeg binary was built with.

    Raises:
        CompositionError: If the binary cannot be run
    """
    try:
        proc = subprocess.run(
            [ffmpeg_bin, "-hide_banner", "-filters"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise CompositionError(f"Could not run ffmpeg ({ffmpeg_bin}): {e}") from e
    if proc.returncode != 0:
        raise CompositionError(
            f"ffmpeg ({ffmpeg_bin}) -filters exited with code {proc.returncode}",
            stderr_tail=_decode_tail(proc.stderr),
        )

    stdout = proc.stdout.decode("utf-8", errors="ignore") if isinstance(proc.stdout, bytes) else proc.stdout
    filters = set()
    # Rows look like " T.C drawtext          V->V       Draw text on top of video frames..."
    for line in (stdout or "").splitlines():
        parts = line.split()
        if len(parts) >= 3 and "->" in parts[2]:
            filters.add(parts[1])
    return filters


def probe_duration(path: Path) -> float:
    """Media duration in seconds, read with moviepy."""
    clip = AudioFileClip(str(path))
    try:
        return float(clip.duration)
    finally:
        clip.close()


def _decode_tail(stderr: Optional[bytes]) -> str:
    if not stderr:
        return ""
    if isinstance(stderr, str):
        return stderr[-_STDERR_TAIL_CHARS:]
    return stderr.decode("utf-8", errors="ignore")[-_STDERR_TAIL_CHARS:]
