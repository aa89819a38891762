"""Tests for failure classification and operator messages."""

import pytest

from app.models.schemas import ErrorKind
from app.utils.error_handler import (
    CompositionError,
    DownloadError,
    NarrationError,
    ProviderError,
    classify_error,
    format_error_message,
    get_operator_hint,
)


@pytest.mark.parametrize(
    "error, kind",
    [
        (CompositionError("ffmpeg exited 1"), ErrorKind.COMPOSITION),
        (ProviderError("no clips", provider="pexels"), ErrorKind.CLIP_PROVIDER),
        (NarrationError("boom"), ErrorKind.NARRATION),
        (DownloadError("boom"), ErrorKind.NETWORK),
        (RuntimeError("You exceeded your current quota"), ErrorKind.QUOTA_EXCEEDED),
        (RuntimeError("HTTP 401 Unauthorized"), ErrorKind.AUTHENTICATION),
        (RuntimeError("Connection reset by peer"), ErrorKind.NETWORK),
        (RuntimeError("something odd"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_error(error, kind):
    assert classify_error(error) == kind


def test_classify_error_keyword_order():
    """Test that quota wins over provider keywords in the same message."""
    assert classify_error(RuntimeError("Leonardo provider rate limit hit")) == ErrorKind.QUOTA_EXCEEDED


def test_format_error_message_includes_context_and_suggestion():
    message = format_error_message(
        "Rendering video",
        CompositionError("ffmpeg timed out"),
        context={"job_id": "abc"},
        suggestion="Try again",
    )

    assert "Rendering video failed (job_id=abc)" in message
    assert "CompositionError: ffmpeg timed out" in message
    assert "Try again" in message


def test_operator_hint():
    assert get_operator_hint(ErrorKind.COMPOSITION)
    assert get_operator_hint(ErrorKind.UNKNOWN) is None
