"""Caption Client - word-level captions from OpenAI Whisper, or an even split of the narration text."""

from pathlib import Path
from typing import Any

from openai import OpenAI

from app.core.config import Settings
from app.models.schemas import Caption
from app.utils.error_handler import TranscriptionError

# Shortest caption span kept after normalisation
MIN_CAPTION_MS = 10.0


class CaptionClient:
    """Produces captions relative to one scene's narration audio."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize caption client.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.provider = "whisper" if settings.openai_api_key else "even_split"

    def transcribe(self, audio_path: Path, text: str, audio_duration: float) -> list[Caption]:
        """
        Caption one scene.

        Args:
            audio_path: Narration audio
            text: Narration text (used by the even-split fallback)
            audio_duration: Narration duration in seconds

        Returns:
            Ordered, non-overlapping captions

        Raises:
            TranscriptionError: If Whisper is configured and fails
        """
        if self.provider == "whisper":
            captions = self._transcribe_whisper(Path(audio_path))
            if captions:
                return captions
            self.logger.warning("Whisper returned no words, splitting narration text evenly")
        return even_split_captions(text, audio_duration)

    def _transcribe_whisper(self, audio_path: Path) -> list[Caption]:
        client = OpenAI(api_key=self.settings.openai_api_key)
        try:
            with open(audio_path, "rb") as f:
                response = client.audio.transcriptions.create(
                    model=self.settings.openai_transcription_model,
                    file=f,
                    response_format="verbose_json",
                    timestamp_granularities=["word"],
                )
        except Exception as e:
            raise TranscriptionError(f"Whisper transcription failed: {e}") from e

        words = [(w.word, w.start * 1000, w.end * 1000) for w in (getattr(response, "words", None) or [])]
        captions = normalize_word_timings(words)
        self.logger.info(f"Whisper produced {len(captions)} captions for {audio_path.name}")
        return captions


def normalize_word_timings(words: list[tuple[str, float, float]]) -> list[Caption]:
    """
    Turn raw (text, start_ms, end_ms) word timings into valid captions.

    Overlapping words are pushed after their predecessor; zero-length
    words are stretched to MIN_CAPTION_MS.
    """
    captions: list[Caption] = []
    previous_end = 0.0
    for text, start_ms, end_ms in words:
        text = text.strip()
        if not text:
            continue
        start = max(start_ms, previous_end, 0.0)
        end = max(end_ms, start + MIN_CAPTION_MS)
        captions.append(Caption(text=text, start_ms=start, end_ms=end))
        previous_end = end
    return captions


def even_split_captions(text: str, duration_seconds: float) -> list[Caption]:
    """Distribute the narration words evenly across the audio duration."""
    words = text.split()
    if not words or duration_seconds <= 0:
        return []

    per_word_ms = duration_seconds * 1000 / len(words)
    return [
        Caption(text=word, start_ms=i * per_word_ms, end_ms=(i + 1) * per_word_ms)
        for i, word in enumerate(words)
    ]
