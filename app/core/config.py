"""Application configuration using pydantic-settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via environment variables or a .env file.
    See .env.example for a template.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # Application Settings
    # ========================================================================
    app_name: str = Field(default="Short Video Maker", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[str] = Field(default=None, description="Optional rotating log file path")
    port: int = Field(default=3123, description="HTTP port for the REST API")

    # ========================================================================
    # Storage Paths
    # ========================================================================
    data_dir_path: str = Field(
        default=str(Path.home() / ".short-video-maker"),
        description="Root directory for rendered videos, scratch files and music",
    )
    music_dir_path: Optional[str] = Field(
        default=None,
        description="Directory of background music, one sub-directory per mood (default: <data_dir>/music)",
    )

    # ========================================================================
    # Video Source Settings
    # ========================================================================
    video_source: str = Field(
        default="pexels",
        description="Default video source: 'pexels', 'leonardo', 'veo' or 'static' (can be overridden per job)",
    )
    secondary_video_source: Optional[str] = Field(
        default=None,
        description="Optional provider tried after the primary and before the Pexels default",
    )
    pexels_api_key: Optional[str] = Field(default=None, description="Pexels API key")
    leonardo_api_key: Optional[str] = Field(default=None, description="Leonardo.AI API key")
    provider_timeout_seconds: float = Field(
        default=30.0, description="Timeout for a single clip provider HTTP call (default: 30)"
    )
    provider_max_attempts: int = Field(
        default=3,
        description="How many candidates a single provider is asked for before falling through (default: 3)",
    )
    leonardo_poll_interval_seconds: float = Field(
        default=5.0, description="Leonardo.AI generation status poll interval (default: 5)"
    )
    leonardo_max_wait_seconds: float = Field(
        default=180.0, description="Maximum wait for a Leonardo.AI generation (default: 180)"
    )
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key used for Google Veo generation")
    veo_model: str = Field(
        default="veo-3.0-fast-generate-preview",
        description="Veo model; veo-3 models return clips with their own soundtrack (default: veo-3.0-fast-generate-preview)",
    )
    veo_poll_interval_seconds: float = Field(default=10.0, description="Veo operation poll interval (default: 10)")
    veo_max_wait_seconds: float = Field(
        default=300.0, description="Maximum wait for a Veo generation (default: 300)"
    )
    download_timeout_seconds: float = Field(
        default=120.0, description="Timeout for downloading a selected clip (default: 120)"
    )

    # ========================================================================
    # TTS (Text-to-Speech) Settings
    # ========================================================================
    tts_provider: Optional[str] = Field(
        default=None,
        description="Force a TTS provider: 'elevenlabs', 'openai' or 'stub' (default: detect from keys)",
    )
    elevenlabs_api_key: Optional[str] = Field(default=None, description="ElevenLabs API key")
    default_voice: str = Field(
        default="baRq1qg6PxLsnSQ04d8c", description="Voice used when a job does not pick one"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key (TTS and Whisper)")
    openai_tts_model: str = Field(default="tts-1", description="OpenAI TTS model name")
    openai_transcription_model: str = Field(default="whisper-1", description="OpenAI transcription model")
    default_audio_duration: float = Field(
        default=3.0, description="Scene duration used when narration length cannot be measured"
    )

    # ========================================================================
    # Image Generation Settings
    # ========================================================================
    hf_endpoint_url: Optional[str] = Field(
        default=None,
        description="Hugging Face Inference Endpoint URL used for static-image mode. Set via HF_ENDPOINT_URL env var.",
    )
    hf_endpoint_token: Optional[str] = Field(
        default=None,
        description="Hugging Face Inference Endpoint token. Set via HF_ENDPOINT_TOKEN env var.",
    )

    # ========================================================================
    # Media Composition Settings
    # ========================================================================
    ffmpeg_bin: Optional[str] = Field(
        default=None,
        description="Path to ffmpeg binary (default: ffmpeg on PATH, then the bundled imageio-ffmpeg build, which has no drawtext)",
    )
    ffmpeg_check_filters: bool = Field(
        default=True, description="Check at startup that ffmpeg has the drawtext filter captions need"
    )
    ffmpeg_timeout_seconds: float = Field(
        default=600.0, description="Hard wall-clock timeout for each ffmpeg invocation (default: 600)"
    )
    video_fps: int = Field(default=30, description="Output frame rate (default: 30)")
    caption_font_path: Optional[str] = Field(
        default=None, description="TTF/OTF font file for burnt-in captions (default: fontconfig 'Sans')"
    )
    caption_font_size_portrait: int = Field(default=64, description="Caption font size for portrait videos")
    caption_font_size_landscape: int = Field(default=56, description="Caption font size for landscape videos")

    # ========================================================================
    # Callback Settings
    # ========================================================================
    callback_timeout_seconds: float = Field(
        default=10.0, description="Timeout for delivering a completion callback (default: 10)"
    )
    public_base_url: Optional[str] = Field(
        default=None,
        description="Base URL used to build artifact links in callbacks (default: http://localhost:<port>)",
    )
    artifact_store_dir: Optional[str] = Field(
        default=None,
        description="Optional directory (e.g. a mounted share) finished videos are published to",
    )

    # ========================================================================
    # Derived paths
    # ========================================================================
    @property
    def videos_dir(self) -> Path:
        return Path(self.data_dir_path) / "videos"

    @property
    def jobs_dir(self) -> Path:
        return Path(self.data_dir_path) / "jobs"

    @property
    def temp_dir(self) -> Path:
        return Path(self.data_dir_path) / "temp"

    @property
    def music_dir(self) -> Path:
        if self.music_dir_path:
            return Path(self.music_dir_path)
        return Path(self.data_dir_path) / "music"

    @property
    def base_url(self) -> str:
        return self.public_base_url or f"http://localhost:{self.port}"

    def ensure_dirs(self) -> None:
        """Create the data directory and its sub-directories if missing."""
        for path in (Path(self.data_dir_path), self.videos_dir, self.temp_dir, self.jobs_dir):
            path.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
