from typing import Dict, Optional


class VisionChatException(Exception):
    """Base exception for VisionChat."""

    def __init__(self, message: str, error_code: str = None, details: Dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ProviderException(VisionChatException):
    """Raised when external provider fails."""
    pass


class ConfigurationException(VisionChatException):
    """Raised when configuration is invalid."""
    pass


class ValidationException(VisionChatException):
    """Raised when input validation fails."""
    pass


class VideoTooLargeException(ValidationException):
    """Raised when an uploaded video exceeds the size limit."""

    def __init__(self, size_bytes: int, max_bytes: int):
        super().__init__(
            f"Video size ({size_bytes / (1024 * 1024):.1f} MB) exceeds the maximum "
            f"allowed size ({max_bytes / (1024 * 1024):.0f} MB).",
            error_code="VIDEO_TOO_LARGE",
            details={"size_bytes": size_bytes, "max_bytes": max_bytes},
        )


class VideoDurationExceededException(ValidationException):
    """Raised when a video is longer than the allowed duration."""

    def __init__(self, duration: float, max_duration: float):
        super().__init__(
            f"Video duration ({duration:.1f}s) exceeds the maximum of {max_duration:.0f} seconds.",
            error_code="DURATION_EXCEEDED",
            details={"duration_seconds": duration, "max_duration_seconds": max_duration},
        )


class UnsupportedMediaException(ValidationException):
    """Raised when a file cannot be treated as a video."""
    pass


class NoVideoLoadedException(ValidationException):
    """Raised when processing is requested before a video was loaded."""

    def __init__(self, message: str = "Please upload a video file first."):
        super().__init__(message, error_code="NO_VIDEO")


class ExtractionException(VisionChatException):
    """Raised when the decoder fails while loading metadata or rasterizing a frame."""
    pass


class VideoMetadataException(ExtractionException):
    """Raised when video metadata cannot be loaded."""
    pass


class PipelineStageException(VisionChatException):
    """Raised when a stage of the analysis pipeline fails."""

    def __init__(self, message: str, stage: str, error_code: str = None, details: Dict = None):
        super().__init__(message, error_code=error_code or "STAGE_FAILED", details=details)
        self.stage = stage


class ConversationException(VisionChatException):
    """Raised when a question could not be answered."""
    pass


class ConversationStateException(ConversationException):
    """Raised when a question is submitted while the conversation cannot accept it."""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message, error_code="CONVERSATION_UNAVAILABLE", details={"reason": reason})
        self.reason = reason
