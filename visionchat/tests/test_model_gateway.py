import pytest

from visionchat.exceptions import ExtractionException, ProviderException
from visionchat.providers.base import VisionProvider
from visionchat.video_pipeline.core.model_gateway import ProviderModelGateway
from visionchat.video_pipeline.core.models import FrameCaptionResponse, VideoSummaryResponse
from visionchat.video_pipeline.prompts_and_description import VideoChatbotResponse
from visionchat.tests.fakes import RecordingLLM, make_frame, make_source


class RecordingVision(VisionProvider):
    def __init__(self, analysis=None, error=None):
        self.analysis = analysis
        self.error = error
        self.calls = []
        self.closed = False

    async def analyze_image(self, image_data, **kwargs):
        self.calls.append(("image", [image_data], kwargs.get("prompt"), kwargs))
        if self.error:
            raise self.error
        return {"analysis": self.analysis}

    async def analyze_images(self, images, prompt, **kwargs):
        self.calls.append(("images", images, prompt, kwargs))
        if self.error:
            raise self.error
        return {"analysis": self.analysis}

    async def close(self):
        self.closed = True


class CountingSampler:
    def __init__(self, frames=None, error=None):
        self.frames = frames if frames is not None else [make_frame(i) for i in range(3)]
        self.error = error
        self.calls = []

    async def sample(self, video, progress=None):
        self.calls.append(video.hash_id)
        if self.error:
            raise self.error
        return self.frames


def build(vision=None, llm=None, sampler=None):
    return ProviderModelGateway(
        llm_provider=llm or RecordingLLM(),
        vision_provider=vision or RecordingVision(),
        frame_sampler=sampler or CountingSampler(),
    )


async def test_caption_reads_structured_response():
    vision = RecordingVision(analysis=FrameCaptionResponse(caption="  A dog on a beach. "))
    gateway = build(vision=vision)

    caption = await gateway.caption(make_frame(2))

    assert caption == "A dog on a beach."
    _, images, prompt, kwargs = vision.calls[0]
    assert images == [make_frame(2).image]
    assert kwargs["response_format"] is FrameCaptionResponse
    assert kwargs["mime_type"] == "image/jpeg"


async def test_caption_accepts_plain_text():
    gateway = build(vision=RecordingVision(analysis="just text"))
    assert await gateway.caption(make_frame(0)) == "just text"


async def test_summarize_sends_numbered_captions_in_order():
    llm = RecordingLLM(content=VideoSummaryResponse(summary="A dog runs, then sleeps."))
    gateway = build(llm=llm)

    summary = await gateway.summarize(["A dog runs.", "A dog sleeps."])

    assert summary == "A dog runs, then sleeps."
    messages, kwargs = llm.calls[0]
    assert "1. A dog runs.\n2. A dog sleeps." in messages[-1]["content"]
    assert kwargs["response_format"] is VideoSummaryResponse


async def test_answer_grounds_on_cached_video_frames():
    vision = RecordingVision(analysis=VideoChatbotResponse(answer="It is a dog."))
    sampler = CountingSampler()
    gateway = build(vision=vision, sampler=sampler)
    video = make_source(30.0)

    first = await gateway.answer(video, "What animal?", "A dog on a beach.", "User: What animal?")
    await gateway.answer(video, "Again?", "A dog on a beach.", "User: What animal?\nAssistant: It is a dog.\nUser: Again?")

    assert first == "It is a dog."
    assert sampler.calls == [video.hash_id]
    _, images, prompt, kwargs = vision.calls[0]
    assert images == [frame.image for frame in sampler.frames]
    assert "A dog on a beach." in prompt
    assert "User: What animal?" in prompt
    assert "Question: What animal?" in prompt
    assert "Prioritize information from the video itself" in kwargs["system_prompt"]


async def test_answer_frames_cached_per_video():
    sampler = CountingSampler()
    gateway = build(vision=RecordingVision(analysis="ok"), sampler=sampler)

    await gateway.answer(make_source(10.0, filename="a.mp4"), "q", "s", "")
    await gateway.answer(make_source(10.0, filename="b.mp4"), "q", "s", "")

    assert sampler.calls == ["hash-a.mp4", "hash-b.mp4"]


async def test_unexpected_provider_errors_become_provider_exceptions():
    gateway = build(vision=RecordingVision(error=TimeoutError("slow")))
    with pytest.raises(ProviderException) as exc_info:
        await gateway.caption(make_frame(0))
    assert exc_info.value.error_code == "PROVIDER_ERROR"


async def test_frame_preparation_failure_is_a_provider_failure():
    sampler = CountingSampler(error=ExtractionException("bad seek", error_code="SEEK_FAILED"))
    gateway = build(sampler=sampler)
    with pytest.raises(ProviderException) as exc_info:
        await gateway.answer(make_source(10.0), "q", "s", "")
    assert exc_info.value.error_code == "SEEK_FAILED"


async def test_close_releases_providers():
    llm, vision = RecordingLLM(), RecordingVision()
    gateway = build(vision=vision, llm=llm)
    await gateway.close()
    assert llm.closed and vision.closed


async def test_missing_model_output_is_a_provider_failure():
    gateway = build(vision=RecordingVision(analysis=None), llm=RecordingLLM(content=None))

    with pytest.raises(ProviderException) as exc_info:
        await gateway.caption(make_frame(0))
    assert exc_info.value.error_code == "NO_MODEL_OUTPUT"
    with pytest.raises(ProviderException):
        await gateway.summarize(["A dog runs."])
    with pytest.raises(ProviderException):
        await gateway.answer(make_source(10.0), "q", "s", "")
