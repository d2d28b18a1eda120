import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import cv2
import numpy as np

from visionchat.exceptions import ExtractionException, ProviderException
from visionchat.providers.base import LLMProvider, ModelGateway
from visionchat.video_pipeline.core.media.decoder import MediaDecoder, RasterizedFrame
from visionchat.video_pipeline.core.models import (
    FrameArtifact,
    SamplePoint,
    VideoMetadata,
    VideoSource,
)


def write_test_video(path: Path, seconds: float = 3.0, fps: int = 10, size=(64, 48)) -> Path:
    """Write a small MJPG .avi whose frames change color over time."""
    width, height = size
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, (width, height))
    assert writer.isOpened()
    try:
        for i in range(int(seconds * fps)):
            frame = np.zeros((height, width, 3), dtype=np.uint8)
            frame[:, :] = ((i * 8) % 256, (i * 16) % 256, 255 - (i * 8) % 256)
            writer.write(frame)
    finally:
        writer.release()
    return path


def make_source(duration: float, filename: str = "clip.mp4", path: str = "clip.mp4") -> VideoSource:
    fps = 10.0
    return VideoSource(
        data=b"not really a video",
        filename=filename,
        mime_type="video/mp4",
        hash_id=f"hash-{filename}",
        path=path,
        metadata=VideoMetadata(
            width=64, height=48, fps=fps, frame_count=max(1, int(duration * fps)), duration_seconds=duration
        ),
    )


def make_frame(index: int, timestamp: Optional[float] = None) -> FrameArtifact:
    return FrameArtifact(
        sample_point=SamplePoint(index=index, timestamp=float(index if timestamp is None else timestamp)),
        image=b"\xff\xd8jpeg-%d" % index,
        width=64,
        height=48,
    )


class FakeDecoder(MediaDecoder):
    """
    Decoder with scripted behavior: per-timestamp delays and failures, and a
    record of every seek that started, finished or was cancelled.
    """

    def __init__(
        self,
        duration: float,
        delays: Optional[Dict[float, float]] = None,
        fail_at: Optional[Set[float]] = None,
    ):
        self.duration = duration
        self.delays = delays or {}
        self.fail_at = fail_at or set()
        self.started: List[float] = []
        self.finished: List[float] = []
        self.cancelled: List[float] = []
        self.closed = False

    async def load_metadata(self) -> VideoMetadata:
        return VideoMetadata(width=64, height=48, fps=10.0, frame_count=int(self.duration * 10) or 1,
                             duration_seconds=self.duration)

    async def rasterize(self, timestamp: float) -> RasterizedFrame:
        self.started.append(timestamp)
        try:
            await asyncio.sleep(self.delays.get(timestamp, 0))
        except asyncio.CancelledError:
            self.cancelled.append(timestamp)
            raise
        if timestamp in self.fail_at:
            raise ExtractionException(f"seek failed at {timestamp}", error_code="SEEK_FAILED")
        self.finished.append(timestamp)
        return RasterizedFrame(image=f"jpeg@{timestamp}".encode(), width=64, height=48)

    async def close(self) -> None:
        self.closed = True


class FakeGateway(ModelGateway):
    """
    Scripted model gateway. ``events`` records the order in which calls start
    and finish so tests can check barriers.
    """

    def __init__(self):
        self.events: List[tuple] = []
        self.caption_delays: Dict[int, float] = {}
        self.caption_failures: Set[int] = set()
        self.empty_captions: Set[int] = set()
        self.caption_gate: Optional[asyncio.Event] = None
        self.caption_started = asyncio.Event()
        self.summary_failure: Optional[Exception] = None
        self.summary_text = "A short video."
        self.answers: List[object] = []
        self.answer_gate: Optional[asyncio.Event] = None
        self.answer_calls: List[dict] = []
        self.closed = False

    async def caption(self, frame: FrameArtifact) -> str:
        index = frame.sample_point.index
        self.events.append(("caption_start", index))
        self.caption_started.set()
        if self.caption_gate is not None:
            await self.caption_gate.wait()
        await asyncio.sleep(self.caption_delays.get(index, 0))
        if index in self.caption_failures:
            self.events.append(("caption_error", index))
            raise ProviderException(f"caption failed for frame {index}")
        self.events.append(("caption_end", index))
        return "" if index in self.empty_captions else f"caption {index}"

    async def summarize(self, captions: Sequence[str]) -> str:
        self.events.append(("summarize", tuple(captions)))
        if self.summary_failure is not None:
            raise self.summary_failure
        return self.summary_text

    async def answer(self, video: VideoSource, question: str, summary: str, chat_history: str) -> str:
        self.answer_calls.append(
            {"video": video, "question": question, "summary": summary, "chat_history": chat_history}
        )
        if self.answer_gate is not None:
            await self.answer_gate.wait()
        result = self.answers.pop(0) if self.answers else f"answer to {question}"
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True




class RecordingLLM(LLMProvider):
    """LLM provider that records its calls and returns a fixed content."""

    def __init__(self, content="ok"):
        self.content = content
        self.calls = []
        self.closed = False

    async def chat_completion(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        return {"content": self.content, "model": kwargs.get("model"), "usage": None}

    async def close(self):
        self.closed = True
