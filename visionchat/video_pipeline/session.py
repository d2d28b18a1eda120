import asyncio
import mimetypes
import os
from typing import Callable, List, Optional

import aiofiles
from loguru import logger

from visionchat.config.settings import PipelineConfig
from visionchat.exceptions import (
    ExtractionException,
    NoVideoLoadedException,
    PipelineStageException,
    UnsupportedMediaException,
    ValidationException,
    VideoDurationExceededException,
    VisionChatException,
)
from visionchat.providers.base import ModelGateway
from visionchat.utils.validation import sanitize_filename, validate_file_extension, validate_file_size
from visionchat.video_pipeline.core.chat.conversation import ConversationManager
from visionchat.video_pipeline.core.ingestion.analysis_pipeline import AnalysisPipeline
from visionchat.video_pipeline.core.ingestion.frame_sampler import FrameSampler
from visionchat.video_pipeline.core.media.decoder import probe_video
from visionchat.video_pipeline.core.models import (
    CaptionRecord,
    ChatTurn,
    FailureEvent,
    FrameArtifact,
    RunStatus,
    Stage,
    VideoSource,
)
from visionchat.video_pipeline.core.progress import (
    SAMPLING_RANGE,
    STATUS_CANCELLED,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_SAMPLING,
    ProgressListener,
    ProgressTracker,
)
from visionchat.video_pipeline.utils.helper import get_bytes_hash, remove_file, write_media_file

FailureListener = Callable[[FailureEvent], None]

_STAGE_BY_STATUS = {
    RunStatus.PENDING: Stage.SAMPLING,
    RunStatus.SAMPLING: Stage.SAMPLING,
    RunStatus.CAPTIONING: Stage.CAPTIONING,
    RunStatus.SUMMARIZING: Stage.SUMMARIZATION,
}


class ProcessingRun:
    """One sampling, captioning and summarization attempt over a video."""

    def __init__(self, run_id: int, video: VideoSource, progress: ProgressTracker):
        self.run_id = run_id
        self.video = video
        self.progress = progress
        self.status = RunStatus.PENDING
        self.frames: List[FrameArtifact] = []
        self.captions: List[CaptionRecord] = []
        self.summary: Optional[str] = None
        self.failure: Optional[FailureEvent] = None
        self.superseded = False
        self.task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def __repr__(self) -> str:
        return f"ProcessingRun(id={self.run_id}, video={self.video.filename!r}, status={self.status.value})"


class VisionChatSession:
    """
    Owns every piece of mutable session state: the loaded video, the
    committed frames, captions and summary, the current run and the
    conversation.

    Sub-operations only return values. Their results are written here, and
    only while the run that produced them is still the current one.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        config: Optional[PipelineConfig] = None,
        sampler: Optional[FrameSampler] = None,
    ):
        self.config = config or PipelineConfig()
        self.gateway = gateway
        self.sampler = sampler or FrameSampler(
            max_frames=self.config.max_frames,
            max_duration=self.config.max_duration_seconds,
            num_workers=self.config.num_workers,
            jpeg_quality=self.config.jpeg_quality,
            max_frame_width=self.config.max_frame_width,
        )
        self.analysis = AnalysisPipeline(gateway, caption_concurrency=self.config.caption_concurrency)
        self.conversation = ConversationManager(gateway, failure_listener=self._record_failure)

        self.video: Optional[VideoSource] = None
        self.frames: List[FrameArtifact] = []
        self.captions: List[CaptionRecord] = []
        self.summary: Optional[str] = None
        self.current_run: Optional[ProcessingRun] = None
        self.last_failure: Optional[FailureEvent] = None

        self._run_counter = 0
        self._failure_listeners: List[FailureListener] = []
        self._progress_listeners: List[ProgressListener] = []

    @property
    def transcript(self) -> List[ChatTurn]:
        return list(self.conversation.transcript.turns)

    def subscribe_failures(self, listener: FailureListener) -> None:
        self._failure_listeners.append(listener)

    def subscribe_progress(self, listener: ProgressListener) -> None:
        """Attach ``listener`` to the progress tracker of every future run."""
        self._progress_listeners.append(listener)

    def _record_failure(self, event: FailureEvent) -> None:
        self.last_failure = event
        logger.warning(f"{event.title}: {event.message}")
        for listener in self._failure_listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Failure listener raised: {e}")

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def load_video(self, data: bytes, filename: str, mime_type: Optional[str] = None) -> VideoSource:
        """
        Validate and store an uploaded video, then make it the session's video.

        A rejected upload emits one validation FailureEvent, re-raises, and
        leaves the previous video and its results untouched. An accepted
        upload cancels any in-flight run and clears frames, captions, summary
        and transcript.
        """
        try:
            video = await self._build_source(data, filename, mime_type)
        except (ValidationException, ExtractionException) as e:
            self.reject_upload(e)
            raise

        self._cancel_current_run()
        previous = self.video
        self.video = video
        self.frames = []
        self.captions = []
        self.summary = None
        self.last_failure = None
        self.conversation.reset()

        if previous is not None and previous.path != video.path:
            await remove_file(previous.path)

        logger.info(f"Loaded video {video.filename} ({video.hash_id}): {video.metadata}")
        return video

    def reject_upload(self, error: VisionChatException) -> None:
        """Record an upload rejected before or during validation."""
        self._record_failure(FailureEvent(Stage.VALIDATION, error.message, error.error_code))

    async def load_video_file(self, path: str) -> VideoSource:
        """Read a video from disk and load it."""
        async with aiofiles.open(path, "rb") as f:
            data = await f.read()
        mime_type, _ = mimetypes.guess_type(path)
        return await self.load_video(data, os.path.basename(path), mime_type)

    async def _build_source(self, data: bytes, filename: str, mime_type: Optional[str]) -> VideoSource:
        filename = sanitize_filename(filename)
        validate_file_extension(filename, self.config.allowed_extensions)
        validate_file_size(len(data), self.config.max_video_size_bytes)

        mime_type = mime_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        if not mime_type.startswith("video/") and mime_type != "application/octet-stream":
            raise UnsupportedMediaException(
                f"Unsupported media type: {mime_type}", error_code="UNSUPPORTED_MEDIA_TYPE"
            )

        hash_id = get_bytes_hash(data)
        extension = filename.rsplit(".", 1)[-1].lower()
        path = await write_media_file(data, f"{hash_id}.{extension}", self.config.media_folder)

        try:
            loop = asyncio.get_running_loop()
            metadata = await loop.run_in_executor(None, probe_video, path)
            if metadata.duration_seconds > self.config.max_duration_seconds:
                raise VideoDurationExceededException(metadata.duration_seconds, self.config.max_duration_seconds)
        except BaseException:
            if self.video is None or self.video.path != path:
                await remove_file(path)
            raise

        return VideoSource(
            data=data,
            filename=filename,
            mime_type=mime_type,
            hash_id=hash_id,
            path=path,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def start_processing(self) -> ProcessingRun:
        """
        Start a run over the current video without waiting for it. Any run
        already in flight is cancelled first.
        """
        if self.video is None:
            error = NoVideoLoadedException()
            self._record_failure(FailureEvent(Stage.VALIDATION, error.message, error.error_code))
            raise error

        self._cancel_current_run()
        self._run_counter += 1
        run = ProcessingRun(self._run_counter, self.video, ProgressTracker(self._progress_listeners))
        self.current_run = run
        run.task = asyncio.ensure_future(self._execute(run))
        logger.info(f"Started {run!r}")
        return run

    async def process(self) -> ProcessingRun:
        """Run sampling, captioning and summarization over the current video."""
        run = self.start_processing()
        try:
            await run.task
        except asyncio.CancelledError:
            if run.superseded:
                return run
            raise
        return run

    def is_current(self, run: ProcessingRun) -> bool:
        return run is self.current_run and not run.superseded

    def _cancel_current_run(self) -> None:
        run = self.current_run
        if run is None or not run.is_active:
            return
        run.superseded = True
        run.status = RunStatus.CANCELLED
        run.progress.set_status(STATUS_CANCELLED)
        if run.task is not None and not run.task.done():
            run.task.cancel()
        logger.info(f"Cancelled {run!r}")

    async def _execute(self, run: ProcessingRun) -> None:
        try:
            run.status = RunStatus.SAMPLING
            run.progress.set_status(STATUS_SAMPLING)
            frames = await self.sampler.sample(run.video, run.progress)
            if not frames:
                raise ExtractionException(
                    "Could not extract any frames from the video. Please try a different video.",
                    error_code="NO_FRAMES",
                )
            run.frames = frames
            run.progress.advance_to(SAMPLING_RANGE[1])

            run.status = RunStatus.CAPTIONING
            captions = await self.analysis.generate_captions(frames, run.progress)
            run.captions = captions

            run.status = RunStatus.SUMMARIZING
            summary = await self.analysis.summarize([record.caption for record in captions], run.progress)
            run.summary = summary
        except asyncio.CancelledError:
            run.status = RunStatus.CANCELLED
            run.progress.set_status(STATUS_CANCELLED)
            raise
        except Exception as e:
            self._fail(run, e)
            return

        if not self.is_current(run):
            logger.info(f"Discarding results of stale {run!r}")
            return

        # Frames, captions and summary become visible together.
        self.frames = list(run.frames)
        self.captions = list(run.captions)
        self.summary = run.summary
        self.last_failure = None
        self.conversation.bind(run.video, run.summary)
        run.status = RunStatus.COMPLETED
        run.progress.set_status(STATUS_COMPLETE)
        run.progress.advance_to(100)
        logger.info(f"Completed {run!r}")

    def _fail(self, run: ProcessingRun, error: Exception) -> None:
        if run.superseded:
            logger.info(f"Ignoring failure of cancelled {run!r}: {error}")
            return

        if isinstance(error, VideoDurationExceededException):
            stage = Stage.VALIDATION
        elif isinstance(error, ExtractionException):
            stage = Stage.SAMPLING
        elif isinstance(error, PipelineStageException):
            stage = Stage(error.stage)
        else:
            stage = _STAGE_BY_STATUS.get(run.status, Stage.SAMPLING)

        if isinstance(error, VisionChatException):
            message, error_code = error.message, error.error_code
        else:
            logger.exception(f"Unexpected error in {run!r}")
            message, error_code = str(error) or "An unknown error occurred.", None

        run.frames = []
        run.captions = []
        run.summary = None
        run.status = RunStatus.FAILED
        run.progress.set_status(STATUS_FAILED)
        run.failure = FailureEvent(stage, message, error_code, run.run_id)

        if self.is_current(run):
            self._record_failure(run.failure)
        else:
            logger.info(f"Ignoring failure of stale {run!r}: {message}")

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def ask(self, question: str) -> Optional[ChatTurn]:
        """Ask a question about the processed video; see ConversationManager.submit."""
        return await self.conversation.submit(question)

    async def close(self) -> None:
        run = self.current_run
        self._cancel_current_run()
        if run is not None and run.task is not None:
            await asyncio.gather(run.task, return_exceptions=True)
        if self.video is not None:
            await remove_file(self.video.path)
        await self.gateway.close()
