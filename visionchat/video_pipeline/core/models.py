import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode raw bytes as a ``data:<mime>;base64,<payload>`` URI."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


@dataclass(frozen=True)
class VideoMetadata:
    """Metadata probed from a video container."""
    width: int
    height: int
    fps: float
    frame_count: int
    duration_seconds: float

    def __str__(self) -> str:
        return f"{self.width}x{self.height} @ {self.fps:.2f}fps, {self.duration_seconds:.2f} seconds"


@dataclass(frozen=True)
class VideoSource:
    """
    An uploaded video: the raw bytes, where they live on disk, and the metadata
    derived from them. Created once per upload and never modified.
    """
    data: bytes = field(repr=False)
    filename: str
    mime_type: str
    hash_id: str
    path: str
    metadata: VideoMetadata

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def duration_seconds(self) -> float:
        return self.metadata.duration_seconds

    @property
    def data_uri(self) -> str:
        return to_data_uri(self.data, self.mime_type)


@dataclass(frozen=True)
class SamplePoint:
    """A timestamp at which a frame is requested."""
    index: int
    timestamp: float


@dataclass(frozen=True)
class FrameArtifact:
    """A JPEG still extracted at one sample point."""
    sample_point: SamplePoint
    image: bytes = field(repr=False)
    width: int
    height: int
    mime_type: str = "image/jpeg"

    @property
    def timestamp(self) -> float:
        return self.sample_point.timestamp

    @property
    def data_uri(self) -> str:
        return to_data_uri(self.image, self.mime_type)


@dataclass(frozen=True)
class CaptionRecord:
    frame: FrameArtifact
    caption: str


@dataclass(frozen=True)
class AnalysisResult:
    captions: List[CaptionRecord]
    summary: str


class RunStatus(str, Enum):
    PENDING = "pending"
    SAMPLING = "sampling"
    CAPTIONING = "captioning"
    SUMMARIZING = "summarizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class Stage(str, Enum):
    VALIDATION = "validation"
    SAMPLING = "sampling"
    CAPTIONING = "captioning"
    SUMMARIZATION = "summarization"
    CONVERSATION = "conversation"


STAGE_TITLES = {
    Stage.VALIDATION: "Invalid video",
    Stage.SAMPLING: "Frame extraction failed",
    Stage.CAPTIONING: "Caption generation failed",
    Stage.SUMMARIZATION: "Summary generation failed",
    Stage.CONVERSATION: "Chat error",
}


@dataclass(frozen=True)
class FailureEvent:
    """A single user-visible failure notification."""
    stage: Stage
    message: str
    error_code: Optional[str] = None
    run_id: Optional[int] = None

    @property
    def title(self) -> str:
        return STAGE_TITLES[self.stage]


@dataclass(frozen=True)
class ChatTurn:
    role: Literal["user", "assistant"]
    content: str

    @property
    def label(self) -> str:
        return "User" if self.role == "user" else "Assistant"


class FrameCaptionResponse(BaseModel):
    """Structured output requested from the vision model for one frame."""
    model_config = ConfigDict(extra="forbid")

    caption: str = Field(
        ...,
        description="A short, descriptive caption of what is visible in the frame."
    )


class VideoSummaryResponse(BaseModel):
    """Structured output requested from the LLM when summarizing captions."""
    model_config = ConfigDict(extra="forbid")

    summary: str = Field(
        ...,
        description="A concise narrative summary of the video built from the ordered frame captions."
    )
