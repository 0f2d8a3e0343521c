"""Error taxonomy shared by extraction, analysis and the CLI."""


class VideoPromptsError(Exception):
    """Base exception for video-prompts."""


class ProbeError(VideoPromptsError, RuntimeError):
    """Raised when video metadata cannot be read."""


class ToolUnavailable(VideoPromptsError, RuntimeError):
    """Raised when ffmpeg or ffprobe is missing or cannot be spawned."""


class ExtractionFailed(VideoPromptsError, RuntimeError):
    """Raised when ffmpeg exits with a non-zero code."""

    def __init__(self, message: str, returncode: int | None = None, stderr_tail: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class CorrelationMismatch(ExtractionFailed):
    """Raised when showinfo records and written files do not line up one to one."""

    def __init__(self, metadata_count: int, file_count: int):
        super().__init__(
            f"Scene extraction produced {file_count} files but {metadata_count} showinfo records"
        )
        self.metadata_count = metadata_count
        self.file_count = file_count


class EndpointError(VideoPromptsError, RuntimeError):
    """Raised when the inference endpoint answers with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EndpointUnreachable(EndpointError):
    """Raised on connection failures and timeouts."""


class SchemaError(VideoPromptsError, ValueError):
    """Raised when model output does not match the expected JSON shape."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class InsufficientFrames(VideoPromptsError, ValueError):
    """Raised when a multi-frame operation gets fewer frames than it needs."""

    def __init__(self, required: int, given: int):
        super().__init__(f"At least {required} frames are required, got {given}")
        self.required = required
        self.given = given


class Cancelled(VideoPromptsError):
    """Raised when a running operation is cancelled."""
