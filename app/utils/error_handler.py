"""Error Handler - exception types, failure classification and operator-friendly messages."""

from typing import Optional

from app.models.schemas import ErrorKind


class ShortVideoError(Exception):
    """Base class for every error raised by the rendering pipeline."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class ProviderError(ShortVideoError):
    """A clip provider could not return a usable clip."""

    kind = ErrorKind.CLIP_PROVIDER

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class NarrationError(ShortVideoError):
    kind = ErrorKind.NARRATION


class TranscriptionError(ShortVideoError):
    kind = ErrorKind.TRANSCRIPTION


class CompositionError(ShortVideoError):
    """ffmpeg exited non-zero, timed out, or was handed an invalid command."""

    kind = ErrorKind.COMPOSITION

    def __init__(self, message: str, stderr_tail: str = ""):
        super().__init__(message)
        self.stderr_tail = stderr_tail


class FilterSpecError(CompositionError):
    """A caption overlay or concat list failed validation."""


class ImageGenerationError(ShortVideoError):
    kind = ErrorKind.UNKNOWN


class DownloadError(ShortVideoError):
    """A selected clip or supplied video could not be fetched."""

    kind = ErrorKind.NETWORK


class JobNotFoundError(ShortVideoError):
    pass


class JobNotReadyError(ShortVideoError):
    pass


class JobBusyError(ShortVideoError):
    pass


# Keyword table is scanned in order; first hit wins.
_KEYWORD_RULES: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.QUOTA_EXCEEDED, ("quota", "429", "rate limit", "credits")),
    (ErrorKind.AUTHENTICATION, ("authentication", "401", "403", "api key", "unauthorized")),
    (ErrorKind.NETWORK, ("network", "timeout", "timed out", "connection")),
    (ErrorKind.COMPOSITION, ("ffmpeg", "composition", "render")),
    (ErrorKind.CLIP_PROVIDER, ("clip", "provider", "pexels", "leonardo")),
    (ErrorKind.NARRATION, ("tts", "narration", "audio", "speech")),
    (ErrorKind.TRANSCRIPTION, ("whisper", "transcri", "caption")),
]


def classify_error(error: BaseException) -> ErrorKind:
    """
    Map a job failure onto the fixed error taxonomy.

    Pipeline exceptions carry their own kind; anything else is classified by
    keywords in its message. Only used for reporting.

    Args:
        error: The exception that failed the job

    Returns:
        ErrorKind for the callback payload and job status
    """
    if isinstance(error, ShortVideoError) and error.kind is not ErrorKind.UNKNOWN:
        return error.kind

    message = str(error).lower()
    for kind, keywords in _KEYWORD_RULES:
        if any(keyword in message for keyword in keywords):
            return kind
    return ErrorKind.UNKNOWN


def format_error_message(
    operation: str,
    error: BaseException,
    context: Optional[dict] = None,
    suggestion: Optional[str] = None,
) -> str:
    """
    Format an operator-friendly error message.

    Args:
        operation: What operation was being performed (e.g., "Composing scene 2")
        error: The exception that occurred
        context: Additional context (e.g., {"job_id": "abc", "scene_index": 1})
        suggestion: Optional suggestion for how to fix the issue

    Returns:
        Formatted error message
    """
    context_str = ""
    if context:
        context_parts = [f"{k}={v}" for k, v in context.items()]
        context_str = f" ({', '.join(context_parts)})"

    message = f"❌ {operation} failed{context_str}\n"
    message += f"   Error: {type(error).__name__}: {error}"

    if suggestion:
        message += f"\n   💡 Suggestion: {suggestion}"

    return message


def get_operator_hint(kind: ErrorKind) -> Optional[str]:
    """
    Get a suggestion for an operator looking at a failed job.

    Args:
        kind: Classified error kind

    Returns:
        Suggestion string or None
    """
    hints = {
        ErrorKind.QUOTA_EXCEEDED: "Provider quota or rate limit exceeded. Wait and resubmit the job.",
        ErrorKind.AUTHENTICATION: "Check the provider API keys in the .env file.",
        ErrorKind.NETWORK: "Network error or provider timeout. Check connectivity and resubmit.",
        ErrorKind.CLIP_PROVIDER: "Every clip provider in the chain failed. Try other search terms or add PEXELS_API_KEY.",
        ErrorKind.NARRATION: "Narration synthesis failed. Check the TTS provider and voice id.",
        ErrorKind.TRANSCRIPTION: "Caption transcription failed. Check the OpenAI key or disable Whisper.",
        ErrorKind.COMPOSITION: "ffmpeg failed or timed out. Inspect the job scratch directory and ffmpeg stderr.",
    }
    return hints.get(kind)
