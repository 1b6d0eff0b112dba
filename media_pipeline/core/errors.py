"""Exception types raised by the media production pipeline."""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""


# ============================================================================
# Generation
# ============================================================================


class GenerationError(PipelineError):
    """A generative service call failed."""


class GenerationBlocked(GenerationError):
    """The provider rejected the request on content-policy grounds."""


class GenerationTransient(GenerationError):
    """Quota, timeout or network failure; the same request may succeed later."""


class GenerationFatal(GenerationError):
    """Non-retryable failure (bad credentials, invalid request, unknown error)."""


class GenerationExhausted(GenerationError):
    """Every attempt in the retry budget failed."""

    def __init__(self, kind: str, attempts: int, last_error: Optional[BaseException]):
        self.kind = kind
        self.attempts = attempts
        self.last_error = last_error
        last_message = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"{kind.capitalize()} generation failed after {attempts} attempts: {last_message}")


# ============================================================================
# Rendering
# ============================================================================


class TransformFailed(PipelineError):
    """The media-transform executable exited unsuccessfully."""

    def __init__(self, command: str, exit_code: Optional[int], stderr_tail: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        if exit_code is None:
            message = f"{command} did not finish"
        else:
            message = f"{command} exited with code {exit_code}"
        if stderr_tail:
            message += f": {stderr_tail}"
        super().__init__(message)


class WorkspaceError(PipelineError):
    """A render workspace could not be created or removed."""


class StorageError(PipelineError):
    """Object storage upload, download or delete failed."""


# ============================================================================
# Preconditions
# ============================================================================


class PlanMissing(PipelineError):
    """The video does not exist or has no video plan."""


class NoUsableAssets(PipelineError):
    """Nothing renderable: no usable images, or no scene produced a clip."""


class AssetsNotReady(PipelineError):
    """Asset generation has not reached a usable status."""
