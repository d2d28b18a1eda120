import asyncio

import pytest

from visionchat.exceptions import PipelineStageException, ProviderException
from visionchat.video_pipeline.core.ingestion.analysis_pipeline import AnalysisPipeline
from visionchat.video_pipeline.core.progress import STATUS_COMPLETE, ProgressTracker
from visionchat.tests.fakes import make_frame


@pytest.fixture
def frames():
    return [make_frame(i, timestamp=i * 3.0) for i in range(10)]


async def test_captions_follow_frame_order(gateway, frames):
    gateway.caption_delays = {i: 0.05 - i * 0.004 for i in range(10)}

    records = await AnalysisPipeline(gateway).generate_captions(frames)

    assert [r.caption for r in records] == [f"caption {i}" for i in range(10)]
    assert [r.frame for r in records] == frames
    finished = [index for kind, index in gateway.events if kind == "caption_end"]
    assert finished[0] == 9


async def test_summary_waits_for_every_caption(gateway, frames):
    gateway.caption_delays = {3: 0.05}

    result = await AnalysisPipeline(gateway).run(frames)

    kinds = [event[0] for event in gateway.events]
    assert kinds.index("summarize") == len(kinds) - 1
    assert kinds.count("caption_end") == 10
    assert gateway.events[-1] == ("summarize", tuple(f"caption {i}" for i in range(10)))
    assert result.summary == "A short video."
    assert len(result.captions) == 10


async def test_one_failed_caption_fails_the_stage(gateway, frames):
    gateway.caption_failures = {4}
    gateway.caption_delays = {i: 0.2 for i in range(5, 10)}

    with pytest.raises(PipelineStageException) as exc_info:
        await AnalysisPipeline(gateway).run(frames)

    assert exc_info.value.stage == "captioning"
    assert not any(event[0] == "summarize" for event in gateway.events)
    # Slow calls were cancelled rather than left running.
    await asyncio.sleep(0.3)
    assert not any(kind == "caption_end" and index >= 5 for kind, index in gateway.events)


async def test_empty_caption_is_a_failure(gateway, frames):
    gateway.empty_captions = {0}

    with pytest.raises(PipelineStageException) as exc_info:
        await AnalysisPipeline(gateway).generate_captions(frames)

    assert exc_info.value.error_code == "EMPTY_CAPTION"


async def test_no_frames_is_a_captioning_failure(gateway):
    with pytest.raises(PipelineStageException) as exc_info:
        await AnalysisPipeline(gateway).generate_captions([])
    assert exc_info.value.stage == "captioning"


async def test_summary_failure_names_its_stage(gateway, frames):
    gateway.summary_failure = ProviderException("rate limited", error_code="PROVIDER_ERROR")

    with pytest.raises(PipelineStageException) as exc_info:
        await AnalysisPipeline(gateway).run(frames)

    assert exc_info.value.stage == "summarization"
    assert exc_info.value.error_code == "PROVIDER_ERROR"


async def test_blank_summary_is_a_failure(gateway, frames):
    gateway.summary_text = "   "
    with pytest.raises(PipelineStageException) as exc_info:
        await AnalysisPipeline(gateway).run(frames)
    assert exc_info.value.error_code == "EMPTY_SUMMARY"


async def test_caption_concurrency_is_bounded(gateway, frames):
    in_flight = 0
    peak = 0
    original = gateway.caption

    async def counting_caption(frame):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            await asyncio.sleep(0.01)
            return await original(frame)
        finally:
            in_flight -= 1

    gateway.caption = counting_caption
    await AnalysisPipeline(gateway, caption_concurrency=3).generate_captions(frames)
    assert peak == 3


async def test_progress_moves_from_forty_to_one_hundred(gateway, frames):
    progress = ProgressTracker()
    seen = []
    progress.subscribe(lambda percent, status: seen.append((percent, status)))

    await AnalysisPipeline(gateway).run(frames, progress)

    percents = [p for p, _ in seen]
    assert percents == sorted(percents)
    assert 40.0 in percents
    assert progress.percent == pytest.approx(100.0)
    assert progress.status == STATUS_COMPLETE
    assert any(p == pytest.approx(80.0) for p in percents)
