"""FFmpeg filter specs - validated value objects serialized to ffmpeg filter and concat syntax."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.schemas import COLOR_PATTERN, Caption, CaptionPosition, Orientation, RenderConfig
from app.utils.error_handler import FilterSpecError

# Output frame sizes per orientation (width, height)
VIDEO_DIMENSIONS: dict[Orientation, tuple[int, int]] = {
    Orientation.PORTRAIT: (1080, 1920),
    Orientation.LANDSCAPE: (1920, 1080),
}



def escape_drawtext(text: str) -> str:
    """Escape caption text for a single-quoted drawtext value."""
    return text.replace("\\", "\\\\").replace("'", "\u2019").replace(":", "\\:").replace("\n", " ")


def escape_filter_path(path: str) -> str:
    """Escape a file path for a single-quoted filter option (e.g. fontfile)."""
    return path.replace("\\", "/").replace(":", "\\:").replace("'", "\\'")


def caption_y_expression(position: CaptionPosition, orientation: Orientation) -> str:
    """Vertical drawtext position for a caption placement."""
    if position == CaptionPosition.TOP:
        return "h*0.1"
    if position == CaptionPosition.CENTER:
        return "(h-text_h)/2"
    return "h*0.8" if orientation == Orientation.PORTRAIT else "h*0.85"


# ============================================================================
# Caption Overlay
# ============================================================================


class DrawTextSpec(BaseModel):
    """One drawtext filter, visible from start up to (not including) end seconds."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Caption text")
    start: float = Field(..., description="First visible second")
    end: float = Field(..., description="Last visible second")
    font_size: int = Field(default=64, description="Font size in pixels")
    y: str = Field(default="h*0.8", description="drawtext y expression")
    box_color: str = Field(default="blue", description="Background box colour")
    font_color: str = Field(default="white", description="Text colour")
    font_file: Optional[str] = Field(default=None, description="TTF/OTF font file (default: fontconfig Sans)")
    box_border: int = Field(default=20, description="Padding around the text inside the box")

    @model_validator(mode="after")
    def _validate(self) -> "DrawTextSpec":
        if not self.text.strip():
            raise FilterSpecError("drawtext text cannot be empty")
        if self.start < 0 or self.end <= self.start:
            raise FilterSpecError(f"Invalid caption window {self.start:.3f}-{self.end:.3f}s for '{self.text}'")
        if self.font_size <= 0:
            raise FilterSpecError(f"Font size must be positive, got {self.font_size}")
        for color in (self.box_color, self.font_color):
            if not COLOR_PATTERN.match(color):
                raise FilterSpecError(f"Invalid colour '{color}'")
        return self

    def to_filter(self) -> str:
        parts = [f"text='{escape_drawtext(self.text)}'"]
        if self.font_file:
            parts.append(f"fontfile='{escape_filter_path(self.font_file)}'")
        else:
            parts.append("font='Sans'")
        parts += [
            "expansion=none",
            f"fontsize={self.font_size}",
            f"fontcolor={self.font_color}",
            "box=1",
            f"boxcolor={self.box_color}",
            f"boxborderw={self.box_border}",
            "x=(w-text_w)/2",
            f"y={self.y}",
            f"enable='gte(t,{self.start:.3f})*lt(t,{self.end:.3f})'",
        ]
        return "drawtext=" + ":".join(parts)


class CaptionOverlaySpec(BaseModel):
    """An ordered, non-overlapping chain of drawtext filters."""

    model_config = ConfigDict(frozen=True)

    entries: list[DrawTextSpec] = Field(..., description="drawtext filters in timeline order")

    @model_validator(mode="after")
    def _validate(self) -> "CaptionOverlaySpec":
        if not self.entries:
            raise FilterSpecError("Caption overlay needs at least one caption")
        for previous, current in zip(self.entries, self.entries[1:]):
            if current.start < previous.end:
                raise FilterSpecError(
                    f"Caption '{current.text}' at {current.start:.3f}s overlaps "
                    f"'{previous.text}' ending at {previous.end:.3f}s"
                )
        return self

    @classmethod
    def from_captions(
        cls,
        captions: list[Caption],
        orientation: Orientation,
        config: RenderConfig,
        font_size: int,
        font_file: Optional[str] = None,
    ) -> "CaptionOverlaySpec":
        """
        Build an overlay from millisecond captions.

        Blank captions (e.g. punctuation-only transcription tokens) are skipped.

        Args:
            captions: Captions already on the target video's timeline
            orientation: Output orientation (drives the y position)
            config: Render config (caption position and background colour)
            font_size: Font size in pixels
            font_file: Optional font file

        Returns:
            Validated overlay spec

        Raises:
            FilterSpecError: If timings overlap or nothing is left to draw
        """
        y = caption_y_expression(config.caption_position, orientation)
        entries = [
            DrawTextSpec(
                text=caption.text.strip(),
                start=caption.start_ms / 1000,
                end=caption.end_ms / 1000,
                font_size=font_size,
                y=y,
                box_color=config.caption_background_color,
                font_file=font_file,
            )
            for caption in captions
            if caption.text.strip()
        ]
        return cls(entries=entries)

    def to_filter(self) -> str:
        return ",".join(entry.to_filter() for entry in self.entries)


# ============================================================================
# Concatenation
# ============================================================================


class ConcatSpec(BaseModel):
    """Input list for the ffmpeg concat demuxer, in exact scene order."""

    model_config = ConfigDict(frozen=True)

    paths: list[str] = Field(..., description="Scene files in timeline order")

    @model_validator(mode="after")
    def _validate(self) -> "ConcatSpec":
        if not self.paths:
            raise FilterSpecError("Concatenation needs at least one input")
        for path in self.paths:
            if "\n" in path or "\r" in path:
                raise FilterSpecError(f"Concat input path contains a newline: {path!r}")
        return self

    def to_list_file(self) -> str:
        lines = ["ffconcat version 1.0"]
        for path in self.paths:
            resolved = Path(path).resolve().as_posix().replace("'", "'\\''")
            lines.append(f"file '{resolved}'")
        return "\n".join(lines) + "\n"


# ============================================================================
# Scaling
# ============================================================================


def scale_crop_filter(orientation: Orientation, fps: int) -> str:
    """Scale to cover the output frame, centre-crop, fix frame rate and pixel format."""
    width, height = VIDEO_DIMENSIONS[orientation]
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=increase,"
        f"crop={width}:{height},setsar=1,fps={fps},format=yuv420p"
    )


def scale_pad_filter(orientation: Orientation, fps: int) -> str:
    """Fit a still inside the output frame and letterbox the rest."""
    width, height = VIDEO_DIMENSIONS[orientation]
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={fps},format=yuv420p"
    )
