"""Shared pytest fixtures and configuration."""

import pytest

from app.core.config import Settings
from app.core.logging_config import get_logger
from app.models.schemas import RenderConfig, SceneInput


@pytest.fixture
def settings(tmp_path):
    """Create test settings rooted in a temporary data directory, with no provider keys."""
    return Settings(
        data_dir_path=str(tmp_path / "data"),
        ffmpeg_bin="ffmpeg",
        ffmpeg_check_filters=False,
        tts_provider="stub",
        pexels_api_key=None,
        leonardo_api_key=None,
        elevenlabs_api_key=None,
        openai_api_key=None,
        hf_endpoint_url=None,
        hf_endpoint_token=None,
        artifact_store_dir=None,
        video_source="pexels",
        secondary_video_source=None,
        provider_max_attempts=3,
        leonardo_poll_interval_seconds=0.0,
        gemini_api_key=None,
        veo_poll_interval_seconds=0.0,
        public_base_url="http://testserver",
    )


@pytest.fixture
def logger():
    """Create test logger instance."""
    return get_logger(__name__)


@pytest.fixture
def render_config():
    return RenderConfig()


@pytest.fixture
def sample_scenes():
    """Three narrated scenes with search terms."""
    return [
        SceneInput(text="The city wakes up slowly", search_terms=["city", "sunrise"]),
        SceneInput(text="Coffee steams on the counter", search_terms=["coffee"]),
        SceneInput(text="Then the day begins", search_terms=["street", "traffic"]),
    ]

