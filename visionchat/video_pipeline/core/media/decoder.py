import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import cv2
import numpy as np
from loguru import logger

from visionchat.exceptions import ExtractionException, VideoMetadataException
from visionchat.video_pipeline.core.models import VideoMetadata


@dataclass(frozen=True)
class RasterizedFrame:
    image: bytes = field(repr=False)
    width: int
    height: int


class MediaDecoder(ABC):
    """Seek-then-rasterize access to a single video container."""

    @abstractmethod
    async def load_metadata(self) -> VideoMetadata:
        """Probe duration and dimensions."""
        pass

    @abstractmethod
    async def rasterize(self, timestamp: float) -> RasterizedFrame:
        """Seek to ``timestamp`` (seconds), wait for the seek, and encode the decoded frame."""
        pass

    async def close(self) -> None:
        pass


DecoderFactory = Callable[[str, Optional[Executor]], MediaDecoder]


def _calc_scale_factor(width: int, height: int, max_frame_width: int) -> Tuple[float, int, int]:
    """
    Compute how much to downscale a frame so its longest edge is <= max_frame_width.
    Returns (scale_factor, scaled_w, scaled_h).
    """
    longest = max(width, height)
    scale = max_frame_width / float(longest) if longest > max_frame_width else 1.0
    return scale, int(width * scale), int(height * scale)


def probe_video(video_path: str) -> VideoMetadata:
    """
    Quick probe of basic video properties.
    """
    cap = cv2.VideoCapture(video_path)
    try:
        if not cap.isOpened():
            raise VideoMetadataException(
                "Failed to load video metadata.", error_code="UNDECODABLE_MEDIA",
                details={"path": video_path},
            )

        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = float(cap.get(cv2.CAP_PROP_FPS)) or 0.0
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
    finally:
        cap.release()

    if fps <= 0 or frame_count <= 0 or width <= 0 or height <= 0:
        raise VideoMetadataException(
            "Failed to load video metadata.", error_code="UNDECODABLE_MEDIA",
            details={"path": video_path, "fps": fps, "frame_count": frame_count},
        )

    return VideoMetadata(
        width=width,
        height=height,
        fps=fps,
        frame_count=frame_count,
        duration_seconds=frame_count / fps,
    )


def _read_frame_at(cap: cv2.VideoCapture, timestamp: float, metadata: VideoMetadata) -> Optional[np.ndarray]:
    last_index = metadata.frame_count - 1
    frame_index = min(int(round(timestamp * metadata.fps)), last_index)

    # Some containers over-report their frame count; step back from the tail.
    candidates = [frame_index]
    if frame_index >= last_index - 1 and frame_index > 0:
        candidates.append(frame_index - 1)

    for candidate in candidates:
        cap.set(cv2.CAP_PROP_POS_FRAMES, candidate)
        ok, frame_bgr = cap.read()
        if ok and frame_bgr is not None:
            return frame_bgr
    return None


def rasterize_frame(
    video_path: str,
    timestamp: float,
    metadata: VideoMetadata,
    jpeg_quality: int = 90,
    max_frame_width: int = 1280,
) -> RasterizedFrame:
    """
    Worker that rasterizes one timestamp. Runs in a threadpool worker and opens
    its own VideoCapture so that concurrent seeks never share decoder state.
    """
    cap = cv2.VideoCapture(video_path)
    try:
        if not cap.isOpened():
            raise ExtractionException(f"Cannot open video: {video_path}", error_code="DECODER_ERROR")

        frame_bgr = _read_frame_at(cap, timestamp, metadata)
        if frame_bgr is None:
            raise ExtractionException(
                f"Could not decode a frame at {timestamp:.2f}s",
                error_code="SEEK_FAILED",
                details={"timestamp": timestamp},
            )
    finally:
        cap.release()

    height, width = frame_bgr.shape[:2]
    scale_factor, scaled_w, scaled_h = _calc_scale_factor(width, height, max_frame_width)
    if scale_factor < 1.0:
        frame_bgr = cv2.resize(frame_bgr, (scaled_w, scaled_h), interpolation=cv2.INTER_AREA)
        width, height = scaled_w, scaled_h

    ok, buffer = cv2.imencode(".jpg", frame_bgr, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
    if not ok:
        raise ExtractionException(
            f"Could not encode the frame at {timestamp:.2f}s", error_code="ENCODE_FAILED",
        )
    return RasterizedFrame(image=buffer.tobytes(), width=width, height=height)


class OpenCVMediaDecoder(MediaDecoder):
    """
    MediaDecoder backed by OpenCV. Blocking decoder calls are pushed to an
    executor; OpenCV's I/O and decode release the GIL, so a threadpool works
    well here.
    """

    def __init__(
        self,
        video_path: str,
        executor: Optional[Executor] = None,
        jpeg_quality: int = 90,
        max_frame_width: int = 1280,
    ) -> None:
        self.video_path = video_path
        self.executor = executor
        self.jpeg_quality = jpeg_quality
        self.max_frame_width = max_frame_width
        self._metadata: Optional[VideoMetadata] = None

    async def load_metadata(self) -> VideoMetadata:
        if self._metadata is None:
            loop = asyncio.get_running_loop()
            self._metadata = await loop.run_in_executor(self.executor, probe_video, self.video_path)
            logger.debug(f"Probed {self.video_path}: {self._metadata}")
        return self._metadata

    async def rasterize(self, timestamp: float) -> RasterizedFrame:
        metadata = await self.load_metadata()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor,
            rasterize_frame,
            self.video_path,
            timestamp,
            metadata,
            self.jpeg_quality,
            self.max_frame_width,
        )
