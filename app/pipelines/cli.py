"""Command-line entrypoint - render a scene list without the HTTP API."""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from app.core.config import settings
from app.core.logging_config import get_logger, setup_logging
from app.models.schemas import (
    CaptionPosition,
    CreateShortRequest,
    JobStatus,
    MusicMood,
    MusicVolume,
    Orientation,
    VideoSource,
)
from app.services.job_queue import JobQueue
from app.utils.error_handler import CompositionError


def load_request(path: Path, overrides: dict) -> CreateShortRequest:
    """
    Load a job request from a JSON file.

    The file holds either a bare list of scenes or a full request object
    with "scenes" and optional "config", "callbackUrl" and "metadata".

    Args:
        path: JSON file
        overrides: Config fields set on the command line (take precedence)

    Returns:
        Validated request
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        data = {"scenes": data}

    config = dict(data.get("config") or {})
    config.update({k: v for k, v in overrides.items() if v is not None})
    data["config"] = config
    return CreateShortRequest.model_validate(data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Short Video Maker - render a narrated, captioned short video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--scenes",
        type=str,
        required=True,
        help="Path to a JSON file with the scene list (or a full request object)",
    )
    parser.add_argument(
        "--orientation",
        type=str,
        choices=[o.value for o in Orientation],
        default=None,
        help="Output orientation (default: portrait)",
    )
    parser.add_argument(
        "--video-source",
        type=str,
        choices=[s.value for s in VideoSource],
        default=None,
        help="Override the configured video source for this job",
    )
    parser.add_argument(
        "--caption-position",
        type=str,
        choices=[p.value for p in CaptionPosition],
        default=None,
        help="Caption placement (default: bottom)",
    )
    parser.add_argument(
        "--padding-back",
        type=int,
        default=None,
        help="Milliseconds the video keeps playing after speech ends",
    )
    parser.add_argument(
        "--music",
        type=str,
        choices=[m.value for m in MusicMood],
        default=None,
        help="Background music mood",
    )
    parser.add_argument(
        "--music-volume",
        type=str,
        choices=[v.value for v in MusicVolume],
        default=None,
        help="Background music volume (default: high)",
    )
    parser.add_argument(
        "--voice",
        type=str,
        default=None,
        help="Narration voice id",
    )
    parser.add_argument(
        "--callback-url",
        type=str,
        default=None,
        help="URL notified when the job finishes",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Give up waiting after this many seconds (the job keeps its state)",
    )
    return parser


def main(argv: Optional[list[str]] = None, job_queue: Optional[JobQueue] = None) -> int:
    """Main entrypoint for the CLI. Returns a process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    logger = get_logger(__name__)

    overrides = {
        "orientation": args.orientation,
        "videoSource": args.video_source,
        "captionPosition": args.caption_position,
        "paddingBack": args.padding_back,
        "music": args.music,
        "musicVolume": args.music_volume,
        "voice": args.voice,
    }
    try:
        request = load_request(Path(args.scenes), overrides)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Could not load scenes from {args.scenes}: {e}")
        return 1

    logger.info("=" * 60)
    logger.info("Short Video Maker - CLI")
    logger.info(f"Scenes: {len(request.scenes)}")
    logger.info(f"Orientation: {request.config.orientation.value}")
    logger.info("=" * 60)

    if job_queue is None:
        try:
            job_queue = JobQueue(settings, get_logger("app.services.job_queue"))
        except CompositionError as e:
            logger.error(f"Cannot render: {e}")
            return 1
    try:
        job_id = job_queue.enqueue(
            request.scenes,
            request.config,
            callback_url=args.callback_url or request.callback_url,
            metadata=request.metadata,
        )
        status = job_queue.wait_for(job_id, timeout=args.timeout)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 1
    finally:
        job_queue.shutdown()

    details = job_queue.detailed_status(job_id)
    if status == JobStatus.READY:
        logger.info(f"Video ready: {settings.videos_dir / (job_id + '.mp4')}")
        logger.info(f"Artifact: {details.get('artifactRef')}")
        return 0

    if status == JobStatus.FAILED:
        error = details.get("error") or {}
        logger.error(f"Job {job_id} failed ({error.get('kind')}): {error.get('message')}")
        if error.get("hint"):
            logger.error(f"Hint: {error['hint']}")
    else:
        logger.error(f"Job {job_id} still {status.value} after {args.timeout}s")
    return 1


if __name__ == "__main__":
    sys.exit(main())
