"""Music Library - background music tracks grouped by mood."""

import random
from pathlib import Path
from typing import Any, Optional

from app.core.config import Settings
from app.models.schemas import MusicMood, MusicVolume

MUSIC_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".ogg"}

# Gain applied to the music track under narration
MUSIC_VOLUME_LEVELS: dict[MusicVolume, float] = {
    MusicVolume.MUTED: 0.0,
    MusicVolume.LOW: 0.2,
    MusicVolume.MEDIUM: 0.45,
    MusicVolume.HIGH: 0.7,
}


def mood_dir_name(mood: MusicMood) -> str:
    """Directory holding a mood's tracks ('euphoric/high' -> 'euphoric-high')."""
    return mood.value.replace("/", "-")


class MusicLibrary:
    """Reads tracks from <music_dir>/<mood>/ and picks one per job."""

    def __init__(self, settings: Settings, logger: Any, rng: Optional[random.Random] = None):
        self.settings = settings
        self.logger = logger
        self.music_dir = settings.music_dir
        self.rng = rng or random.Random()

    def tracks(self, mood: MusicMood) -> list[Path]:
        folder = self.music_dir / mood_dir_name(mood)
        if not folder.is_dir():
            return []
        return sorted(p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in MUSIC_EXTENSIONS)

    def list_tags(self) -> list[str]:
        """Mood tags that have at least one track."""
        return [mood.value for mood in MusicMood if self.tracks(mood)]

    def pick(self, mood: MusicMood) -> Optional[Path]:
        """Pick a random track for a mood, or None if the mood has no tracks."""
        candidates = self.tracks(mood)
        if not candidates:
            self.logger.warning(f"No background music found for mood '{mood.value}'")
            return None
        track = self.rng.choice(candidates)
        self.logger.info(f"Background music: {track.name}")
        return track

    @staticmethod
    def volume_for(level: MusicVolume) -> float:
        return MUSIC_VOLUME_LEVELS[level]
