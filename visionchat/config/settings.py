from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, PrivateAttr, ValidationError, field_validator
from typing import List, Optional
from dotenv import load_dotenv, find_dotenv

from ..exceptions import ConfigurationException

# Hard limits enforced at the upload boundary. Configuration may tighten them, never relax them.
MAX_VIDEO_SIZE_MB = 200
MAX_DURATION_SECONDS = 120
MAX_FRAMES = 10


class LLMConfig(BaseSettings):
    """LLM provider configuration."""

    provider: str = Field(default="openai")
    endpoint: Optional[str] = Field(default=None)
    deployment_name: Optional[str] = Field(default=None)
    vision_deployment_name: Optional[str] = Field(default=None)
    api_version: str = Field(default="2024-08-01-preview")
    model_name: str = Field(default="gpt-4o")
    vision_model_name: Optional[str] = Field(default=None)
    use_managed_identity: bool = Field(default=False)
    api_key: Optional[str] = Field(default=None)
    timeout: int = Field(default=200)
    max_retries: int = Field(default=2)
    temperature: float = Field(default=0.0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )

    @field_validator("provider")
    @classmethod
    def _normalize_provider(cls, v: str) -> str:
        return v.strip().lower()


class PipelineConfig(BaseSettings):
    """Limits and tuning for frame sampling and analysis."""

    max_video_size_mb: int = Field(default=MAX_VIDEO_SIZE_MB, ge=1, le=MAX_VIDEO_SIZE_MB)
    max_duration_seconds: float = Field(default=MAX_DURATION_SECONDS, gt=0, le=MAX_DURATION_SECONDS)
    max_frames: int = Field(default=MAX_FRAMES, ge=1, le=MAX_FRAMES)
    num_workers: int = Field(default=4, ge=1)
    caption_concurrency: int = Field(default=MAX_FRAMES, ge=1)
    jpeg_quality: int = Field(default=90, ge=1, le=100)
    max_frame_width: int = Field(default=1280, ge=64)
    answer_frame_count: int = Field(default=6, ge=1, le=MAX_FRAMES)
    media_folder: str = Field(default="media")
    allowed_extensions: List[str] = Field(default_factory=lambda: ["mp4", "mov", "webm", "mkv", "avi"])

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )

    @property
    def max_video_size_bytes(self) -> int:
        return self.max_video_size_mb * 1024 * 1024


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    enable_json: bool = Field(default=False)
    enable_file_logging: bool = Field(default=False)
    max_file_size: str = Field(default="10 MB")
    retention_days: int = Field(default=7)

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )


def load_settings(settings_cls, **overrides):
    try:
        return settings_cls(**overrides)
    except ValidationError as e:
        raise ConfigurationException(
            f"Invalid {settings_cls.__name__}: {e}",
            error_code="INVALID_CONFIG",
            details={"errors": e.errors()},
        ) from e


class VisionChatConfig(BaseSettings):
    """Main configuration class."""

    app_name: str = Field(default="VisionChat")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )

    _llm: Optional[LLMConfig] = PrivateAttr(default=None)
    _pipeline: Optional[PipelineConfig] = PrivateAttr(default=None)
    _logging: Optional[LoggingConfig] = PrivateAttr(default=None)

    def __init__(self, **kwargs):
        # Force load environment variables before initializing
        load_dotenv(find_dotenv())
        super().__init__(**kwargs)

    @property
    def llm(self) -> LLMConfig:
        if self._llm is None:
            self._llm = load_settings(LLMConfig)
        return self._llm

    @property
    def pipeline(self) -> PipelineConfig:
        if self._pipeline is None:
            self._pipeline = load_settings(PipelineConfig)
        return self._pipeline

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            self._logging = load_settings(LoggingConfig)
        return self._logging
