import asyncio
import os

import pytest

from visionchat.config.settings import PipelineConfig
from visionchat.exceptions import (
    ConversationStateException,
    NoVideoLoadedException,
    UnsupportedMediaException,
    VideoDurationExceededException,
    VideoMetadataException,
    VideoTooLargeException,
)
from visionchat.video_pipeline.core.models import RunStatus, Stage
from visionchat.video_pipeline.session import VisionChatSession
from visionchat.tests.fakes import write_test_video


@pytest.fixture
def session(gateway, pipeline_config):
    session = VisionChatSession(gateway, config=pipeline_config)
    session.failures = []
    session.subscribe_failures(session.failures.append)
    return session


async def test_upload_then_process_commits_everything(session, video_file):
    video = await session.load_video_file(str(video_file))

    assert video.duration_seconds == pytest.approx(3.0)
    assert os.path.exists(video.path)
    assert video.mime_type == "video/x-msvideo"

    run = await session.process()

    assert run.status == RunStatus.COMPLETED
    assert run.progress.percent == pytest.approx(100.0)
    assert [f.timestamp for f in session.frames] == [0, 1, 2, 3]
    assert [c.caption for c in session.captions] == ["caption 0", "caption 1", "caption 2", "caption 3"]
    assert session.summary == "A short video."
    assert session.conversation.is_ready
    assert session.failures == []


async def test_rejected_upload_keeps_previous_state(session, video_file, gateway):
    await session.load_video_file(str(video_file))
    await session.process()
    await session.ask("What is shown?")

    with pytest.raises(UnsupportedMediaException):
        await session.load_video(b"hello", "notes.txt")

    assert session.failures[-1].stage == Stage.VALIDATION
    assert session.summary == "A short video."
    assert len(session.transcript) == 2


async def test_oversized_upload_is_rejected(gateway, tmp_path):
    config = PipelineConfig(media_folder=str(tmp_path / "media"), max_video_size_mb=1)
    session = VisionChatSession(gateway, config=config)

    with pytest.raises(VideoTooLargeException):
        await session.load_video(b"\0" * (2 * 1024 * 1024), "big.mp4", "video/mp4")

    assert session.video is None
    assert session.last_failure.error_code == "VIDEO_TOO_LARGE"


async def test_long_video_is_rejected_at_upload(gateway, tmp_path, video_file):
    config = PipelineConfig(media_folder=str(tmp_path / "media"), max_duration_seconds=2)
    session = VisionChatSession(gateway, config=config)

    with pytest.raises(VideoDurationExceededException):
        await session.load_video_file(str(video_file))

    assert session.video is None
    assert session.last_failure.stage == Stage.VALIDATION
    assert os.listdir(tmp_path / "media") == []


async def test_undecodable_upload_is_rejected(session):
    with pytest.raises(VideoMetadataException):
        await session.load_video(b"garbage bytes", "broken.mp4", "video/mp4")
    assert session.last_failure.error_code == "UNDECODABLE_MEDIA"


async def test_process_without_video(session):
    with pytest.raises(NoVideoLoadedException):
        await session.process()
    assert session.failures[-1].stage == Stage.VALIDATION


async def test_caption_failure_exposes_nothing(session, video_file, gateway):
    gateway.caption_failures = {2}
    await session.load_video_file(str(video_file))

    run = await session.process()

    assert run.status == RunStatus.FAILED
    assert run.failure.stage == Stage.CAPTIONING
    assert run.frames == [] and run.captions == [] and run.summary is None
    assert session.captions == []
    assert session.summary is None
    assert len(session.failures) == 1
    assert not any(event[0] == "summarize" for event in gateway.events)
    with pytest.raises(ConversationStateException):
        await session.ask("Anything?")


async def test_failed_rerun_keeps_committed_results(session, video_file, gateway):
    await session.load_video_file(str(video_file))
    await session.process()

    gateway.summary_failure = RuntimeError("model unavailable")
    run = await session.process()

    assert run.status == RunStatus.FAILED
    assert run.failure.stage == Stage.SUMMARIZATION
    assert session.summary == "A short video."
    assert len(session.captions) == 4


async def test_rerun_keeps_transcript_and_rebinds_summary(session, video_file, gateway):
    await session.load_video_file(str(video_file))
    await session.process()
    await session.ask("First?")

    gateway.summary_text = "A better summary."
    await session.process()
    await session.ask("Second?")

    assert len(session.transcript) == 4
    assert gateway.answer_calls[-1]["summary"] == "A better summary."


async def test_new_upload_clears_results_and_transcript(session, video_file, tmp_path):
    await session.load_video_file(str(video_file))
    first_path = session.video.path
    await session.process()
    await session.ask("Hello?")

    other = write_test_video(tmp_path / "other.avi", seconds=2.0)
    await session.load_video_file(str(other))

    assert session.frames == [] and session.captions == []
    assert session.summary is None
    assert session.transcript == []
    assert not os.path.exists(first_path)


async def test_new_upload_cancels_in_flight_run(session, video_file, gateway, tmp_path):
    gateway.caption_gate = asyncio.Event()
    await session.load_video_file(str(video_file))
    stale = session.start_processing()
    await asyncio.wait_for(gateway.caption_started.wait(), timeout=5)

    other = write_test_video(tmp_path / "other.avi", seconds=2.0)
    await session.load_video_file(str(other))
    gateway.caption_gate.set()
    await asyncio.gather(stale.task, return_exceptions=True)

    assert stale.status == RunStatus.CANCELLED
    assert session.captions == []
    assert session.summary is None
    assert session.video.filename == "other.avi"

    run = await session.process()
    assert run.status == RunStatus.COMPLETED
    assert [f.timestamp for f in session.frames] == [0, 1, 2]


async def test_superseded_process_call_returns_cancelled_run(session, video_file, gateway):
    gateway.caption_gate = asyncio.Event()
    await session.load_video_file(str(video_file))

    first = asyncio.ensure_future(session.process())
    await asyncio.wait_for(gateway.caption_started.wait(), timeout=5)
    gateway.caption_gate.set()
    second = await session.process()
    first_run = await first

    assert first_run.status == RunStatus.CANCELLED
    assert second.status == RunStatus.COMPLETED
    assert session.current_run is second


async def test_progress_listener_sees_monotonic_updates(session, video_file):
    seen = []
    session.subscribe_progress(lambda percent, status: seen.append(percent))
    await session.load_video_file(str(video_file))
    await session.process()

    assert seen == sorted(seen)
    assert seen[-1] == pytest.approx(100.0)
