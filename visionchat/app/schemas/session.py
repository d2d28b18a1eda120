from typing import List, Optional
from pydantic import BaseModel, Field

from visionchat.utils.validation import ChatRequest


class VideoInfo(BaseModel):
    filename: str
    mime_type: str
    hash_id: str
    size_bytes: int
    width: int
    height: int
    fps: float
    duration_seconds: float


class FrameInfo(BaseModel):
    index: int
    timestamp: float
    width: int
    height: int
    data_uri: str
    caption: Optional[str] = None


class FailureInfo(BaseModel):
    stage: str
    title: str
    message: str
    error_code: Optional[str] = None
    run_id: Optional[int] = None


class RunInfo(BaseModel):
    run_id: int
    status: str
    progress: float = Field(..., ge=0, le=100)
    status_label: str
    frame_count: int = 0
    failure: Optional[FailureInfo] = None


class ChatTurnInfo(BaseModel):
    role: str
    content: str


class SessionState(BaseModel):
    video: Optional[VideoInfo] = None
    run: Optional[RunInfo] = None
    frames: List[FrameInfo] = Field(default_factory=list)
    summary: Optional[str] = None
    transcript: List[ChatTurnInfo] = Field(default_factory=list)
    conversation_state: str
    last_failure: Optional[FailureInfo] = None


class ChatResponse(BaseModel):
    turn: ChatTurnInfo
    transcript: List[ChatTurnInfo]


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChatTurnInfo",
    "FailureInfo",
    "FrameInfo",
    "RunInfo",
    "SessionState",
    "VideoInfo",
]
