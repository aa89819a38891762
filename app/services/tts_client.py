"""TTS (Text-to-Speech) client abstraction for multiple providers."""

import wave
from pathlib import Path
from typing import Any, Optional

import requests
from openai import OpenAI

from app.core.config import Settings
from app.models.schemas import NarrationResult
from app.services.media_composer import probe_duration
from app.utils.error_handler import NarrationError

OPENAI_VOICES = {"alloy", "ash", "coral", "echo", "fable", "nova", "onyx", "sage", "shimmer"}


class TTSClient:
    """Narration synthesis via ElevenLabs, OpenAI, or a silent stub."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize TTS client.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.provider = self._detect_provider()

    def _detect_provider(self) -> str:
        """Detect which TTS provider to use based on configuration and available credentials."""
        if self.settings.tts_provider:
            return self.settings.tts_provider
        if self.settings.elevenlabs_api_key:
            return "elevenlabs"
        elif self.settings.openai_api_key:
            return "openai"
        else:
            return "stub"

    def synthesize(self, text: str, output_path: Path, voice_id: Optional[str] = None) -> NarrationResult:
        """
        Generate narration for one scene and measure its duration.

        Args:
            text: Text to speak
            output_path: Where to write the audio (the suffix may change for the stub)
            voice_id: Optional voice ID (provider-specific)

        Returns:
            NarrationResult with the audio path and duration

        Raises:
            NarrationError: If synthesis fails
        """
        if not text or not text.strip():
            raise NarrationError("Narration text cannot be empty")

        self.logger.info(f"Generating speech using {self.provider} provider for {len(text)} characters...")
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if self.provider == "elevenlabs":
            self._generate_elevenlabs(text, output_path, voice_id)
            duration = self._measure(output_path)
        elif self.provider == "openai":
            self._generate_openai(text, output_path, voice_id)
            duration = self._measure(output_path)
        elif self.provider == "stub":
            output_path, duration = self._generate_stub(text, output_path)
        else:
            raise NarrationError(f"Unknown TTS provider: {self.provider}")

        self.logger.info(f"Speech generated: {output_path.name} ({duration:.2f}s)")
        return NarrationResult(audio_path=str(output_path), duration_seconds=duration)

    def _measure(self, audio_path: Path) -> float:
        try:
            duration = probe_duration(audio_path)
        except (OSError, ValueError) as e:
            self.logger.warning(
                f"Could not read narration duration ({e}), using {self.settings.default_audio_duration}s"
            )
            return self.settings.default_audio_duration
        if duration <= 0:
            return self.settings.default_audio_duration
        return duration

    def _generate_elevenlabs(self, text: str, output_path: Path, voice_id: Optional[str] = None) -> None:
        """Generate speech using ElevenLabs API."""
        if not self.settings.elevenlabs_api_key:
            raise NarrationError("ElevenLabs API key not configured")

        voice_id = voice_id or self.settings.default_voice
        url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"

        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.settings.elevenlabs_api_key,
        }

        data = {
            "text": text,
            "model_id": "eleven_turbo_v2",
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.75,
            },
        }

        try:
            response = requests.post(url, json=data, headers=headers, timeout=30)
        except requests.exceptions.RequestException as e:
            raise NarrationError(f"Network error calling ElevenLabs TTS API: {e}") from e

        if response.status_code != 200:
            raise NarrationError(f"ElevenLabs TTS API returned status {response.status_code}: {response.text[:200]}")

        with open(output_path, "wb") as f:
            f.write(response.content)

    def _generate_openai(self, text: str, output_path: Path, voice_id: Optional[str] = None) -> None:
        """Generate speech using OpenAI TTS API."""
        if not self.settings.openai_api_key:
            raise NarrationError("OpenAI API key not configured")

        client = OpenAI(api_key=self.settings.openai_api_key)

        # ElevenLabs-style ids mean nothing to OpenAI
        voice = voice_id if voice_id in OPENAI_VOICES else "alloy"

        try:
            response = client.audio.speech.create(
                model=self.settings.openai_tts_model,
                voice=voice,
                input=text,
            )
            response.write_to_file(str(output_path))
        except Exception as e:
            raise NarrationError(f"OpenAI TTS API error: {e}") from e

    def _generate_stub(self, text: str, output_path: Path) -> tuple[Path, float]:
        """
        Generate silent placeholder audio.

        Used for local runs and tests when no TTS provider is configured.
        """
        self.logger.warning("Using stub TTS - generating silent audio placeholder")

        # Rough estimate: 150 words per minute = 2.5 words per second
        word_count = len(text.split())
        duration_seconds = max(1.0, word_count / 2.5)
        sample_rate = 44100
        num_samples = int(duration_seconds * sample_rate)

        output_path = output_path.with_suffix(".wav")
        with wave.open(str(output_path), "wb") as wav_file:
            wav_file.setnchannels(1)  # Mono
            wav_file.setsampwidth(2)  # 16-bit
            wav_file.setframerate(sample_rate)
            wav_file.writeframes(b"\x00\x00" * num_samples)

        return output_path, num_samples / sample_rate
