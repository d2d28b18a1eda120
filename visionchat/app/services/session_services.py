import time
from typing import Optional

from fastapi import HTTPException, UploadFile
from loguru import logger

from visionchat.app.schemas.session import (
    ChatResponse,
    ChatTurnInfo,
    FailureInfo,
    FrameInfo,
    RunInfo,
    SessionState,
    VideoInfo,
)
from visionchat.config.settings import VisionChatConfig
from visionchat.exceptions import (
    ConversationStateException,
    ExtractionException,
    NoVideoLoadedException,
    ValidationException,
    VideoTooLargeException,
)
from visionchat.video_pipeline.core.model_gateway import create_model_gateway
from visionchat.video_pipeline.core.models import FailureEvent
from visionchat.video_pipeline.session import ProcessingRun, VisionChatSession

_session: Optional[VisionChatSession] = None


def get_session() -> VisionChatSession:
    """FastAPI dependency returning the process-wide session, created on first use."""
    global _session
    if _session is None:
        config = VisionChatConfig()
        logger.info(f"Creating {config.app_name} session with provider '{config.llm.provider}'")
        _session = VisionChatSession(create_model_gateway(config), config=config.pipeline)
    return _session


async def close_session():
    global _session
    if _session is not None:
        await _session.close()
        _session = None


def _failure_info(event: Optional[FailureEvent]) -> Optional[FailureInfo]:
    if event is None:
        return None
    return FailureInfo(
        stage=event.stage.value,
        title=event.title,
        message=event.message,
        error_code=event.error_code,
        run_id=event.run_id,
    )


def _run_info(run: ProcessingRun) -> RunInfo:
    return RunInfo(
        run_id=run.run_id,
        status=run.status.value,
        progress=run.progress.percent,
        status_label=run.progress.status,
        frame_count=len(run.frames),
        failure=_failure_info(run.failure),
    )


def _transcript(session: VisionChatSession):
    return [ChatTurnInfo(role=turn.role, content=turn.content) for turn in session.transcript]


def session_state(session: VisionChatSession) -> SessionState:
    video = None
    if session.video is not None:
        metadata = session.video.metadata
        video = VideoInfo(
            filename=session.video.filename,
            mime_type=session.video.mime_type,
            hash_id=session.video.hash_id,
            size_bytes=session.video.size_bytes,
            width=metadata.width,
            height=metadata.height,
            fps=metadata.fps,
            duration_seconds=metadata.duration_seconds,
        )

    frames = [
        FrameInfo(
            index=record.frame.sample_point.index,
            timestamp=record.frame.timestamp,
            width=record.frame.width,
            height=record.frame.height,
            data_uri=record.frame.data_uri,
            caption=record.caption,
        )
        for record in session.captions
    ]

    return SessionState(
        video=video,
        run=_run_info(session.current_run) if session.current_run is not None else None,
        frames=frames,
        summary=session.summary,
        transcript=_transcript(session),
        conversation_state=session.conversation.state.value,
        last_failure=_failure_info(session.last_failure),
    )


UPLOAD_CHUNK_SIZE = 1024 * 1024


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload, stopping as soon as it is known to exceed ``max_bytes``."""
    if file.size is not None and file.size > max_bytes:
        raise VideoTooLargeException(file.size, max_bytes)
    chunks, total = [], 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise VideoTooLargeException(total, max_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


async def upload_video(session: VisionChatSession, file: UploadFile) -> SessionState:
    try:
        data = await _read_upload(file, session.config.max_video_size_bytes)
    except VideoTooLargeException as e:
        session.reject_upload(e)
        raise HTTPException(413, e.message)
    try:
        await session.load_video(data, file.filename or "", file.content_type)
    except VideoTooLargeException as e:
        raise HTTPException(413, e.message)
    except (ValidationException, ExtractionException) as e:
        raise HTTPException(422, e.message)
    return session_state(session)


async def process_video(session: VisionChatSession, wait: bool = True) -> RunInfo:
    started = time.perf_counter()
    try:
        if wait:
            run = await session.process()
        else:
            run = session.start_processing()
    except NoVideoLoadedException as e:
        raise HTTPException(409, e.message)

    if wait:
        logger.info(f"{run!r} finished in {time.perf_counter() - started:.2f}s")
    return _run_info(run)


async def chat(session: VisionChatSession, question: str) -> ChatResponse:
    try:
        turn = await session.ask(question)
    except ConversationStateException as e:
        raise HTTPException(409, e.message)
    except ValidationException as e:
        raise HTTPException(422, e.message)

    if turn is None:
        failure = session.last_failure
        raise HTTPException(502, failure.message if failure else "Failed to get a response from the AI.")
    return ChatResponse(turn=ChatTurnInfo(role=turn.role, content=turn.content), transcript=_transcript(session))
