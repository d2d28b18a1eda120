import re
from typing import List
from pydantic import BaseModel, Field, field_validator
from ..exceptions import ValidationException, VideoTooLargeException, UnsupportedMediaException
from ..config.settings import MAX_VIDEO_SIZE_MB


class ChatRequest(BaseModel):
    """Request model for a chat question."""

    question: str = Field(..., min_length=1, max_length=2000)

    @field_validator('question')
    @classmethod
    def validate_question(cls, v):
        if not v or len(v.strip()) == 0:
            raise ValueError('Question cannot be empty')
        return v.strip()


def sanitize_filename(filename: str) -> str:
    """Sanitize filename to prevent directory traversal attacks."""
    if not filename:
        raise ValidationException('Filename cannot be empty')

    # Remove directory traversal attempts
    filename = filename.replace('..', '')
    filename = filename.replace('/', '')
    filename = filename.replace('\\', '')

    # Remove potentially dangerous characters
    filename = re.sub(r'[<>:"|?*]', '', filename)

    if not filename.strip():
        raise ValidationException('Filename contains only invalid characters')

    return filename.strip()


def validate_file_size(file_size: int, max_size: int = MAX_VIDEO_SIZE_MB * 1024 * 1024) -> bool:
    """Validate file size (default max 200MB)."""
    if file_size <= 0:
        raise ValidationException('File size must be greater than 0', error_code="EMPTY_FILE")

    if file_size > max_size:
        raise VideoTooLargeException(file_size, max_size)

    return True


def validate_file_extension(filename: str, allowed_extensions: List[str]) -> bool:
    """Validate file extension."""
    if not filename:
        raise ValidationException('Filename cannot be empty')

    extension = filename.lower().split('.')[-1] if '.' in filename else ''

    if extension not in [ext.lower() for ext in allowed_extensions]:
        raise UnsupportedMediaException(
            f'File extension .{extension} not allowed. Allowed extensions: {allowed_extensions}',
            error_code="UNSUPPORTED_EXTENSION",
        )

    return True
