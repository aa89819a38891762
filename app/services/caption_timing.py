"""Caption Timing - shifts per-scene captions onto the concatenated timeline."""

from typing import Iterable

from app.models.schemas import Caption


def validate_caption_track(captions: Iterable[Caption]) -> list[Caption]:
    """
    Check that a caption list is ordered and non-overlapping.

    Args:
        captions: Captions of one scene, or a whole shifted job track

    Returns:
        The captions as a list

    Raises:
        ValueError: If a caption starts before the previous one ends
    """
    track = list(captions)
    for previous, current in zip(track, track[1:]):
        if current.start_ms < previous.end_ms:
            raise ValueError(
                f"Caption '{current.text}' starts at {current.start_ms}ms before "
                f"'{previous.text}' ends at {previous.end_ms}ms"
            )
    return track


def shift_captions(captions: Iterable[Caption], cumulative_seconds: float) -> list[Caption]:
    """
    Return new captions moved forward by the job's cumulative duration.

    Args:
        captions: Captions relative to their own scene's audio
        cumulative_seconds: Sum of the actual durations of every earlier scene

    Returns:
        New captions, offset by cumulative_seconds * 1000 milliseconds
    """
    if cumulative_seconds < 0:
        raise ValueError(f"Cumulative duration cannot be negative: {cumulative_seconds}")
    return _shift_ms(captions, cumulative_seconds * 1000)


def _shift_ms(captions: Iterable[Caption], offset_ms: float) -> list[Caption]:
    return [
        caption.model_copy(update={"start_ms": caption.start_ms + offset_ms, "end_ms": caption.end_ms + offset_ms})
        for caption in captions
    ]


def scene_actual_duration(captions: list[Caption], audio_duration: float) -> float:
    """
    Duration a scene occupies on the concatenated timeline.

    The last caption's end is preferred over the narration provider's
    reported duration; the two can drift by a few tens of milliseconds.
    """
    if captions:
        return captions[-1].end_ms / 1000
    return audio_duration


class CaptionTimeline:
    """Accumulates shifted captions and the running duration for one job."""

    def __init__(self) -> None:
        # Kept in milliseconds so a scene boundary equals the previous scene's last caption end exactly
        self.cumulative_ms: float = 0.0
        self.captions: list[Caption] = []

    @property
    def cumulative_seconds(self) -> float:
        return self.cumulative_ms / 1000

    def append_scene(self, captions: list[Caption], audio_duration: float, extra_seconds: float = 0.0) -> float:
        """
        Shift a scene's captions, append them, and advance the running duration.

        Args:
            captions: Captions relative to the scene's audio
            audio_duration: Narration duration reported by the TTS provider
            extra_seconds: Padding rendered after the speech (last scene only)

        Returns:
            The offset (seconds) the scene's captions were shifted by
        """
        offset_ms = self.cumulative_ms
        self.captions.extend(_shift_ms(captions, offset_ms))
        scene_ms = captions[-1].end_ms if captions else audio_duration * 1000
        self.cumulative_ms = offset_ms + scene_ms + extra_seconds * 1000
        return offset_ms / 1000
