import asyncio
import functools
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from loguru import logger

from visionchat.config.settings import MAX_DURATION_SECONDS, MAX_FRAMES
from visionchat.exceptions import (
    ExtractionException,
    VideoDurationExceededException,
    VisionChatException,
)
from visionchat.video_pipeline.core.media.decoder import DecoderFactory, MediaDecoder, OpenCVMediaDecoder
from visionchat.video_pipeline.core.models import FrameArtifact, SamplePoint, VideoSource
from visionchat.video_pipeline.core.progress import SAMPLING_RANGE, ProgressTracker


def compute_sample_points(duration: float, max_frames: int = MAX_FRAMES) -> List[SamplePoint]:
    """
    Evenly spaced timestamps ``t_i = i * max(1, D/N)`` for i in [0, N), keeping
    only those that fall inside the video. Short videos therefore get one
    frame per second rather than N crowded frames.
    """
    if duration < 0:
        raise ValueError("duration must be non-negative")
    if max_frames < 1:
        raise ValueError("max_frames must be at least 1")

    interval = max(1.0, duration / max_frames)
    points: List[SamplePoint] = []
    for i in range(max_frames):
        timestamp = i * interval
        if timestamp > duration:
            break
        points.append(SamplePoint(index=i, timestamp=timestamp))
    return points


class FrameSampler:
    """
    Time-uniform frame sampler.

    - Rejects videos longer than ``max_duration`` before touching the decoder
    - Computes sample points from the probed duration
    - Rasterizes every sample point concurrently in a ThreadPoolExecutor
    - Returns Frame Artifacts in sample point order, or nothing at all
    """

    def __init__(
        self,
        max_frames: int = MAX_FRAMES,
        max_duration: float = MAX_DURATION_SECONDS,
        num_workers: int = 4,
        decoder_factory: Optional[DecoderFactory] = None,
        jpeg_quality: int = 90,
        max_frame_width: int = 1280,
    ) -> None:
        if not 1 <= max_frames <= MAX_FRAMES:
            raise ValueError(f"max_frames must be between 1 and {MAX_FRAMES}")
        self.max_frames = max_frames
        self.max_duration = max_duration
        self.num_workers = num_workers
        self.decoder_factory = decoder_factory or functools.partial(
            OpenCVMediaDecoder, jpeg_quality=jpeg_quality, max_frame_width=max_frame_width
        )

    async def sample(self, video: VideoSource, progress: Optional[ProgressTracker] = None) -> List[FrameArtifact]:
        if video.duration_seconds > self.max_duration:
            raise VideoDurationExceededException(video.duration_seconds, self.max_duration)

        workers = max(1, min(self.num_workers, os.cpu_count() or 1, self.max_frames))
        started = time.perf_counter()

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="frame-sampler")
        decoder = self.decoder_factory(video.path, executor)
        try:
            frames = await self._extract(decoder, video, progress)
        finally:
            await decoder.close()
            # Never block the event loop on seeks that were abandoned.
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            f"FrameSampler: {video.filename} | extracted {len(frames)} frames "
            f"with {workers} workers in {time.perf_counter() - started:.2f}s"
        )
        return frames

    async def _extract(
        self,
        decoder: MediaDecoder,
        video: VideoSource,
        progress: Optional[ProgressTracker],
    ) -> List[FrameArtifact]:
        try:
            metadata = await decoder.load_metadata()
        except VisionChatException:
            raise
        except Exception as e:
            raise ExtractionException(f"Failed to load video metadata: {e}", error_code="UNDECODABLE_MEDIA") from e

        # The container is the authority on duration, not the upload-time probe.
        if metadata.duration_seconds > self.max_duration:
            raise VideoDurationExceededException(metadata.duration_seconds, self.max_duration)

        sample_points = compute_sample_points(metadata.duration_seconds, self.max_frames)
        step = (SAMPLING_RANGE[1] - SAMPLING_RANGE[0]) / self.max_frames

        logger.info(
            f"FrameSampler: {video.filename} | duration={metadata.duration_seconds:.2f}s "
            f"samples={[round(p.timestamp, 2) for p in sample_points]}"
        )

        async def extract_one(point: SamplePoint) -> FrameArtifact:
            try:
                raster = await decoder.rasterize(point.timestamp)
            except VisionChatException:
                raise
            except Exception as e:
                raise ExtractionException(
                    f"Failed to extract frame at {point.timestamp:.2f}s: {e}",
                    error_code="SEEK_FAILED",
                    details={"timestamp": point.timestamp},
                ) from e
            return FrameArtifact(sample_point=point, image=raster.image, width=raster.width, height=raster.height)

        tasks = [asyncio.ensure_future(extract_one(point)) for point in sample_points]
        frames: List[FrameArtifact] = []
        try:
            for fut in asyncio.as_completed(tasks):
                frame = await fut
                frames.append(frame)
                if progress is not None:
                    progress.advance(step)
        except BaseException:
            # All-or-nothing: drop whatever is still outstanding.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        frames.sort(key=lambda f: f.sample_point.index)
        return frames
