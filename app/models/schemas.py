"""Pydantic models and schemas for the short video rendering pipeline."""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# ffmpeg colour: a name or #rrggbb/0xrrggbb, with an optional @alpha
COLOR_PATTERN = re.compile(r"^(#[0-9a-fA-F]{6}|0x[0-9a-fA-F]{6}|[A-Za-z]+)(@(0(\.\d+)?|1(\.0+)?))?$")


# ============================================================================
# Enums
# ============================================================================


class Orientation(str, Enum):
    """Output video orientation."""

    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class CaptionPosition(str, Enum):
    """Vertical placement of burnt-in captions."""

    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class MusicMood(str, Enum):
    """Mood tags used to pick background music."""

    SAD = "sad"
    MELANCHOLIC = "melancholic"
    HAPPY = "happy"
    EUPHORIC = "euphoric/high"
    EXCITED = "excited"
    CHILL = "chill"
    UNEASY = "uneasy"
    ANGRY = "angry"
    DARK = "dark"
    HOPEFUL = "hopeful"
    CONTEMPLATIVE = "contemplative"
    FUNNY = "funny/quirky"


class MusicVolume(str, Enum):
    """Background music loudness relative to narration."""

    MUTED = "muted"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VideoSource(str, Enum):
    """Where scene visuals come from."""

    PEXELS = "pexels"
    LEONARDO = "leonardo"
    VEO = "veo"
    STATIC = "static"


class JobMode(str, Enum):
    """Composition strategy, decided once when a job is enqueued."""

    SINGLE_SCENE = "single_scene"
    MULTI_SCENE = "multi_scene"
    STATIC_IMAGE = "static_image"


class JobStatus(str, Enum):
    """Job lifecycle: pending -> processing -> ready | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.FAILED)


class ErrorKind(str, Enum):
    """Stable failure taxonomy reported to callers."""

    QUOTA_EXCEEDED = "QuotaExceeded"
    AUTHENTICATION = "AuthenticationError"
    NETWORK = "NetworkError"
    CLIP_PROVIDER = "ClipProviderError"
    NARRATION = "NarrationError"
    TRANSCRIPTION = "TranscriptionError"
    COMPOSITION = "CompositionError"
    UNKNOWN = "UnknownError"


# ============================================================================
# Captions
# ============================================================================


class Caption(BaseModel):
    """A timed caption span, in milliseconds relative to its scene's audio."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    text: str = Field(..., description="Caption text (usually one word)")
    start_ms: float = Field(..., ge=0, description="Start offset in milliseconds")
    end_ms: float = Field(..., description="End offset in milliseconds")

    @model_validator(mode="after")
    def _check_span(self) -> "Caption":
        if self.end_ms <= self.start_ms:
            raise ValueError(f"Caption end ({self.end_ms}) must be after start ({self.start_ms})")
        return self


# ============================================================================
# Job Inputs
# ============================================================================


class ImageData(BaseModel):
    """Prompt data for generative (still image) paths."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    prompt: Optional[str] = Field(default=None, description="Image generation prompt (default: scene text)")
    style: Optional[str] = Field(default=None, description="Image style (default: cinematic)")
    mood: Optional[str] = Field(default=None, description="Image mood (default: dynamic)")


class SceneInput(BaseModel):
    """One narrated scene as submitted by the caller."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    text: str = Field(..., min_length=1, description="Text to be spoken in the scene")
    search_terms: list[str] = Field(default_factory=list, description="Search terms for clip lookup")
    video: Optional[str] = Field(default=None, description="Pre-supplied video URL or local path")
    image_data: Optional[ImageData] = Field(default=None, description="Prompt data for still generation")
    needs_image_generation: bool = Field(default=False, description="Scene visual must be a generated still")
    video_prompt: Optional[str] = Field(default=None, description="Prompt for generative video providers")


class RenderConfig(BaseModel):
    """Per-job rendering options. Read-only for the duration of a job."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    orientation: Orientation = Field(default=Orientation.PORTRAIT, description="Output orientation")
    padding_back: int = Field(
        default=0, ge=0, description="How long the video keeps playing after speech ends, in milliseconds"
    )
    caption_position: CaptionPosition = Field(default=CaptionPosition.BOTTOM, description="Caption placement")
    caption_background_color: str = Field(default="blue", description="Caption box colour (name or #rrggbb)")
    voice: Optional[str] = Field(default=None, description="Narration voice id")
    music: Optional[MusicMood] = Field(default=None, description="Background music mood")
    music_volume: MusicVolume = Field(default=MusicVolume.HIGH, description="Background music volume")
    video_source: Optional[VideoSource] = Field(default=None, description="Per-job video source override")

    @field_validator("caption_background_color")
    @classmethod
    def validate_caption_background_color(cls, value: str) -> str:
        if not COLOR_PATTERN.match(value):
            raise ValueError(f"Invalid caption background colour '{value}' (use a colour name or #rrggbb)")
        return value


# ============================================================================
# Collaborator Results
# ============================================================================


class ClipResult(BaseModel):
    """A clip chosen by a provider."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider-scoped clip identifier")
    url: str = Field(..., description="Download URL or local path")
    width: int = Field(default=0, description="Clip width in pixels")
    height: int = Field(default=0, description="Clip height in pixels")
    duration: Optional[float] = Field(default=None, description="Clip duration in seconds, when reported")
    provider: str = Field(default="unknown", description="Provider that produced the clip")
    has_native_audio: bool = Field(default=False, description="Clip carries its own audio track")


class NarrationResult(BaseModel):
    """Synthesized narration for one scene."""

    model_config = ConfigDict(frozen=True)

    audio_path: str = Field(..., description="Local path of the narration audio")
    duration_seconds: float = Field(..., gt=0, description="Narration duration in seconds")


# ============================================================================
# Pipeline Working State
# ============================================================================


class Scene(BaseModel):
    """Resolved per-scene state, frozen once the scene is built."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Scene position in the job")
    captions: list[Caption] = Field(default_factory=list, description="Captions relative to this scene's audio")
    audio_path: str = Field(..., description="Local narration audio path")
    audio_duration: float = Field(..., gt=0, description="Narration duration reported by the TTS provider")
    video_path: Optional[str] = Field(default=None, description="Local video path (None until visuals are resolved)")
    clip: Optional[ClipResult] = Field(default=None, description="Clip chosen for this scene, if any")


class Job(BaseModel):
    """A render job, mutated only by the queue worker."""

    job_id: str = Field(..., description="Job identifier")
    scenes: list[SceneInput] = Field(..., min_length=1, description="Ordered scene inputs")
    config: RenderConfig = Field(default_factory=RenderConfig, description="Render options")
    mode: JobMode = Field(..., description="Composition strategy decided at enqueue time")
    callback_url: Optional[str] = Field(default=None, description="Completion callback URL")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Opaque caller metadata")
    status: JobStatus = Field(default=JobStatus.PENDING, description="Lifecycle status")
    error_kind: Optional[ErrorKind] = Field(default=None, description="Classified failure kind")
    error_message: Optional[str] = Field(default=None, description="Original failure message")
    artifact_ref: Optional[str] = Field(default=None, description="Local path or remote reference of the output")
    created_at: datetime = Field(default_factory=datetime.now, description="Enqueue timestamp")
    updated_at: datetime = Field(default_factory=datetime.now, description="Last status change")


# ============================================================================
# Callback / API Models
# ============================================================================


class CallbackError(BaseModel):
    kind: ErrorKind
    message: str


class CallbackPayload(BaseModel):
    """Body POSTed to a caller-supplied callback URL."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = Field(..., description="'completed' or 'failed'")
    job_id: str = Field(..., description="Job identifier")
    artifact_ref: Optional[str] = Field(default=None, description="Artifact location when completed")
    error: Optional[CallbackError] = Field(default=None, description="Failure details when failed")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Caller metadata echoed back")


class CreateShortRequest(BaseModel):
    """Request body for creating a short video."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    scenes: list[SceneInput] = Field(..., min_length=1, description="Each scene to be created")
    config: RenderConfig = Field(default_factory=RenderConfig, description="Rendering options")
    callback_url: Optional[str] = Field(default=None, description="Completion callback URL")
    metadata: Optional[dict[str, Any]] = Field(default=None, description="Opaque metadata echoed in callbacks")


class CreateShortResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    video_id: str = Field(..., description="Identifier of the queued job")


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    video_id: str
    status: JobStatus
