import asyncio
import time
from typing import List, Optional, Sequence

from loguru import logger

from visionchat.config.settings import MAX_FRAMES
from visionchat.exceptions import PipelineStageException, VisionChatException
from visionchat.providers.base import ModelGateway
from visionchat.video_pipeline.core.models import AnalysisResult, CaptionRecord, FrameArtifact, Stage
from visionchat.video_pipeline.core.progress import (
    CAPTIONING_RANGE,
    STATUS_CAPTIONING,
    STATUS_COMPLETE,
    STATUS_SUMMARIZING,
    SUMMARIZATION_RANGE,
    ProgressTracker,
)


class AnalysisPipeline:
    """
    Captioning followed by summarization over an ordered set of frames.

    Captions are requested concurrently and joined before the single
    summarization call is made. A stage either produces all of its output or
    raises ``PipelineStageException``; partial results are never returned.
    """

    def __init__(self, gateway: ModelGateway, caption_concurrency: int = MAX_FRAMES):
        if caption_concurrency < 1:
            raise ValueError("caption_concurrency must be at least 1")
        self.gateway = gateway
        self.caption_concurrency = caption_concurrency

    async def generate_captions(
        self,
        frames: Sequence[FrameArtifact],
        progress: Optional[ProgressTracker] = None,
    ) -> List[CaptionRecord]:
        if not frames:
            raise PipelineStageException(
                "No frames were extracted from the video.", stage=Stage.CAPTIONING.value, error_code="NO_FRAMES"
            )

        if progress is not None:
            progress.set_status(STATUS_CAPTIONING)
            progress.advance_to(CAPTIONING_RANGE[0])
        step = (CAPTIONING_RANGE[1] - CAPTIONING_RANGE[0]) / len(frames)
        semaphore = asyncio.Semaphore(self.caption_concurrency)
        started = time.perf_counter()

        async def caption_one(frame: FrameArtifact) -> CaptionRecord:
            async with semaphore:
                caption = await self.gateway.caption(frame)
            caption = (caption or "").strip()
            if not caption:
                raise PipelineStageException(
                    f"Empty caption for the frame at {frame.timestamp:.2f}s.",
                    stage=Stage.CAPTIONING.value,
                    error_code="EMPTY_CAPTION",
                )
            if progress is not None:
                progress.advance(step)
            return CaptionRecord(frame=frame, caption=caption)

        tasks = [asyncio.ensure_future(caption_one(frame)) for frame in frames]
        try:
            records = await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        except Exception as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error(f"Captioning failed: {e}")
            if isinstance(e, PipelineStageException):
                raise
            raise PipelineStageException(
                f"Failed to generate captions: {e}",
                stage=Stage.CAPTIONING.value,
                error_code=e.error_code if isinstance(e, VisionChatException) else None,
            ) from e

        logger.info(f"Generated {len(records)} captions in {time.perf_counter() - started:.2f}s")
        return list(records)

    async def summarize(self, captions: Sequence[str], progress: Optional[ProgressTracker] = None) -> str:
        if progress is not None:
            progress.set_status(STATUS_SUMMARIZING)
            progress.advance_to(SUMMARIZATION_RANGE[0])

        started = time.perf_counter()
        try:
            summary = await self.gateway.summarize(list(captions))
        except Exception as e:
            logger.error(f"Summarization failed: {e}")
            raise PipelineStageException(
                f"Failed to generate summary: {e}",
                stage=Stage.SUMMARIZATION.value,
                error_code=e.error_code if isinstance(e, VisionChatException) else None,
            ) from e

        summary = (summary or "").strip()
        if not summary:
            raise PipelineStageException(
                "The model returned an empty summary.", stage=Stage.SUMMARIZATION.value, error_code="EMPTY_SUMMARY"
            )

        if progress is not None:
            progress.advance_to(SUMMARIZATION_RANGE[1])
        logger.info(f"Generated summary ({len(summary)} chars) in {time.perf_counter() - started:.2f}s")
        return summary

    async def run(self, frames: Sequence[FrameArtifact], progress: Optional[ProgressTracker] = None) -> AnalysisResult:
        """Caption every frame, then summarize the ordered captions."""
        records = await self.generate_captions(frames, progress)
        summary = await self.summarize([record.caption for record in records], progress)
        if progress is not None:
            progress.set_status(STATUS_COMPLETE)
        return AnalysisResult(captions=records, summary=summary)
