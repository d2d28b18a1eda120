import asyncio
from collections import OrderedDict
from typing import Any, List, Optional, Sequence

from loguru import logger

from visionchat.config.settings import VisionChatConfig
from visionchat.exceptions import ProviderException, VisionChatException
from visionchat.providers.base import LLMProvider, ModelGateway, VisionProvider
from visionchat.providers.factory import provider_factory
from visionchat.utils.error_handler import ErrorHandler
from visionchat.video_pipeline.core.ingestion.frame_sampler import FrameSampler
from visionchat.video_pipeline.core.models import (
    FrameArtifact,
    FrameCaptionResponse,
    VideoSource,
    VideoSummaryResponse,
)
from visionchat.video_pipeline.prompts_and_description import (
    FRAME_CAPTION_PROMPT,
    FRAME_CAPTION_SYSTEM_PROMPT,
    VIDEO_CHATBOT_PROMPT,
    VIDEO_CHATBOT_SYSTEM_PROMPT,
    VIDEO_SUMMARY_PROMPT,
    VIDEO_SUMMARY_SYSTEM_PROMPT,
    VideoChatbotResponse,
)


def _field(content: Any, name: str) -> str:
    """Pull ``name`` out of a structured response, tolerating plain-text replies."""
    if content is None:
        raise ProviderException(f"Model returned no {name}", error_code="NO_MODEL_OUTPUT")
    if isinstance(content, str):
        return content.strip()
    return (getattr(content, name, "") or "").strip()


class ProviderModelGateway(ModelGateway):
    """
    ModelGateway backed by the configured LLM and vision providers.

    Chat-completion models cannot take a whole video, so questions are
    grounded on ``answer_frame_count`` stills rasterized across the full
    duration. Those stills are computed once per video and cached by hash.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        vision_provider: VisionProvider,
        frame_sampler: Optional[FrameSampler] = None,
        answer_frame_count: int = 6,
        cache_size: int = 4,
    ):
        self.llm_provider = llm_provider
        self.vision_provider = vision_provider
        self.frame_sampler = frame_sampler or FrameSampler(max_frames=answer_frame_count)
        self.cache_size = cache_size
        self._answer_frames: "OrderedDict[str, List[FrameArtifact]]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def caption(self, frame: FrameArtifact) -> str:
        try:
            result = await self.vision_provider.analyze_image(
                frame.image,
                prompt=FRAME_CAPTION_PROMPT,
                system_prompt=FRAME_CAPTION_SYSTEM_PROMPT,
                mime_type=frame.mime_type,
                response_format=FrameCaptionResponse,
            )
        except VisionChatException:
            raise
        except Exception as e:
            raise ErrorHandler.handle_provider_error(e, "vision") from e
        caption = _field(result.get("analysis"), "caption")
        logger.debug(f"Caption for frame {frame.sample_point.index} @ {frame.timestamp:.2f}s: {caption}")
        return caption

    async def summarize(self, captions: Sequence[str]) -> str:
        numbered = "\n".join(f"{i + 1}. {caption}" for i, caption in enumerate(captions))
        messages = [
            {"role": "system", "content": VIDEO_SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": VIDEO_SUMMARY_PROMPT.format(captions=numbered)},
        ]
        try:
            result = await self.llm_provider.chat_completion(messages, response_format=VideoSummaryResponse)
        except VisionChatException:
            raise
        except Exception as e:
            raise ErrorHandler.handle_provider_error(e, "llm") from e
        return _field(result.get("content"), "summary")

    async def answer(self, video: VideoSource, question: str, summary: str, chat_history: str) -> str:
        frames = await self._frames_for(video)
        prompt = VIDEO_CHATBOT_PROMPT.format(summary=summary, chat_history=chat_history, question=question)
        try:
            result = await self.vision_provider.analyze_images(
                [frame.image for frame in frames],
                prompt,
                system_prompt=VIDEO_CHATBOT_SYSTEM_PROMPT,
                response_format=VideoChatbotResponse,
            )
        except VisionChatException:
            raise
        except Exception as e:
            raise ErrorHandler.handle_provider_error(e, "vision") from e
        return _field(result.get("analysis"), "answer")

    async def _frames_for(self, video: VideoSource) -> List[FrameArtifact]:
        async with self._lock:
            frames = self._answer_frames.get(video.hash_id)
            if frames is not None:
                self._answer_frames.move_to_end(video.hash_id)
                return frames

            try:
                frames = await self.frame_sampler.sample(video)
            except VisionChatException as e:
                raise ProviderException(
                    f"Could not prepare the video for the chat model: {e.message}",
                    error_code=e.error_code,
                ) from e

            self._answer_frames[video.hash_id] = frames
            while len(self._answer_frames) > self.cache_size:
                self._answer_frames.popitem(last=False)
            return frames

    async def close(self) -> None:
        self._answer_frames.clear()
        await self.vision_provider.close()
        await self.llm_provider.close()


def create_model_gateway(config: Optional[VisionChatConfig] = None) -> ProviderModelGateway:
    """Build the gateway from the configured provider."""
    config = config or VisionChatConfig()
    pipeline = config.pipeline
    return ProviderModelGateway(
        llm_provider=provider_factory.create_llm_provider(config=config),
        vision_provider=provider_factory.create_vision_provider(config=config),
        frame_sampler=FrameSampler(
            max_frames=pipeline.answer_frame_count,
            max_duration=pipeline.max_duration_seconds,
            num_workers=pipeline.num_workers,
            jpeg_quality=pipeline.jpeg_quality,
            max_frame_width=pipeline.max_frame_width,
        ),
        answer_frame_count=pipeline.answer_frame_count,
    )
