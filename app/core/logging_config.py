"""Loguru setup shared by the API server, the CLI and the render worker."""

import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {thread.name} | "
    "{name}:{function}:{line} | {message} | {extra}"
)


def _job_tag(extra: dict) -> str:
    """Short "[job scene]" prefix for records bound to a render job."""
    job_id = extra.get("job_id")
    if not job_id:
        return ""
    scene_index = extra.get("scene_index")
    if scene_index is None:
        return f"[{job_id[:8]}] "
    return f"[{job_id[:8]} s{scene_index}] "


def _console_format(record: dict) -> str:
    # Braces in the tag are escaped because loguru formats the returned template again
    tag = _job_tag(record["extra"]).replace("{", "{{").replace("}", "}}")
    return (
        "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
        f"<magenta>{tag}</magenta><level>{{message}}</level>\n{{exception}}"
    )


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Install the console sink and, when log_file is set, a rotating file sink.

    The console line carries a job/scene tag for records bound with job_id or
    scene_index; the file sink keeps the whole bound context and the thread
    name so worker output can be told apart from request handling.

    Args:
        log_level: Minimum level for both sinks
        log_file: File sink path (parent directories are created)
        rotation: Size at which the file sink rotates
        retention: How long rotated files are kept
    """
    logger.remove()
    logger.add(sys.stderr, format=_console_format, level=log_level, colorize=True)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level=log_level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            # The render worker writes from its own thread
            enqueue=True,
        )


def get_logger(name: str, **context: Any) -> Any:
    """Module logger; pass job_id, scene_index or provider to tag every record."""
    return logger.bind(name=name, **context)


setup_logging()
