"""Error Handler - user-facing error messages for pipeline failures."""

from typing import Optional

from media_pipeline.core.errors import (
    GenerationBlocked,
    GenerationExhausted,
    GenerationFatal,
    NoUsableAssets,
    TransformFailed,
    WorkspaceError,
)


def format_error_message(
    operation: str,
    error: Exception,
    context: Optional[dict] = None,
    suggestion: Optional[str] = None,
) -> str:
    """
    Format a user-friendly error message.

    Args:
        operation: What was being done (e.g., "Rendering scene clip")
        error: The exception that occurred
        context: Additional context (e.g., {"video_id": "video_123", "scene": 2})
        suggestion: Optional hint for how to fix the issue

    Returns:
        Formatted error message
    """
    context_str = ""
    if context:
        context_str = " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"

    message = f"{operation} failed{context_str}\n   Error: {type(error).__name__}: {error}"
    if suggestion:
        message += f"\n   Suggestion: {suggestion}"
    return message


def get_failure_suggestion(error: Exception) -> Optional[str]:
    """
    Suggest a next step for a pipeline failure.

    Args:
        error: The exception

    Returns:
        Suggestion string or None
    """
    error_msg = str(error).lower()

    if isinstance(error, GenerationFatal):
        if "api key" in error_msg or "not configured" in error_msg or "auth" in error_msg:
            return "Check OPENAI_API_KEY in your .env file."
        return "The request was rejected. Check the model names and prompt length."
    if isinstance(error, GenerationExhausted):
        if isinstance(error.last_error, GenerationBlocked):
            return "The content filter kept rejecting this prompt. Rephrase the scene description."
        return "The service kept failing. Wait a few minutes and regenerate the missing assets."
    if isinstance(error, TransformFailed):
        if error.exit_code is None:
            return "ffmpeg timed out. Raise TRANSFORM_TIMEOUT_SECONDS or shorten the scenes."
        return "Check that ffmpeg is installed and the downloaded assets are valid media files."
    if isinstance(error, NoUsableAssets):
        return "Generate assets for this video before rendering."
    if isinstance(error, WorkspaceError):
        return "Check free disk space and permissions of RENDER_TEMP_DIR."
    if "timeout" in error_msg or "connection" in error_msg:
        return "Network error. Check your internet connection and retry."
    return None
