import base64
from visionchat.utils.error_handler import convert_exceptions
from visionchat.exceptions import ProviderException
from visionchat.providers.base import LLMProvider, VisionProvider
from visionchat.providers.openai_providers.llm_provider import OpenAILLMProvider
from loguru import logger
from typing import Dict, Any, List, Optional

DEFAULT_IMAGE_PROMPT = "Analyze this image and describe what you see."


def image_content(image_data: bytes, mime_type: str = "image/jpeg", detail: str = "auto") -> Dict[str, Any]:
    """Build an ``image_url`` message part carrying the image inline as base64."""
    image_base64 = base64.b64encode(image_data).decode('utf-8')
    return {
        "type": "image_url",
        "image_url": {
            "url": f"data:{mime_type};base64,{image_base64}",
            "detail": detail,
        }
    }


class ChatVisionProvider(VisionProvider):
    """
    Vision provider that sends images inline to a multimodal chat-completion
    model through an LLMProvider.
    """

    label = "Vision"

    def __init__(self, config: Dict[str, Any], llm_provider: LLMProvider, model: Optional[str] = None):
        self.config = config
        self.llm_provider = llm_provider
        self.model = model

    def _kwargs(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        call_kwargs = {k: v for k, v in kwargs.items() if k not in ("prompt", "system_prompt", "mime_type", "detail")}
        if self.model:
            call_kwargs.setdefault("model", self.model)
        return call_kwargs

    @convert_exceptions({Exception: ProviderException})
    async def analyze_image(self, image_data: bytes, **kwargs) -> Dict[str, Any]:
        """Analyze a single image."""
        return await self.analyze_images([image_data], kwargs.pop("prompt", DEFAULT_IMAGE_PROMPT), **kwargs)

    @convert_exceptions({Exception: ProviderException})
    async def analyze_images(self, images: List[bytes], prompt: str, **kwargs) -> Dict[str, Any]:
        """Answer ``prompt`` grounded on ``images``; the text part always comes first."""
        mime_type = kwargs.get("mime_type", "image/jpeg")
        detail = kwargs.get("detail", "auto")
        content = [{"type": "text", "text": prompt}]
        content.extend(image_content(image, mime_type, detail) for image in images)

        messages = []
        if kwargs.get("system_prompt"):
            messages.append({"role": "system", "content": kwargs["system_prompt"]})
        messages.append({"role": "user", "content": content})

        try:
            response = await self.llm_provider.chat_completion(messages, **self._kwargs(kwargs))
        except Exception as e:
            logger.error(f"{self.label} analysis failed: {e}")
            raise

        return {
            "analysis": response["content"],
            "model": response.get("model"),
            "usage": response.get("usage")
        }

    async def close(self):
        await self.llm_provider.close()


class OpenAIVisionProvider(ChatVisionProvider):
    """OpenAI Vision provider implementation."""

    label = "OpenAI Vision"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(
            config,
            OpenAILLMProvider(config),
            model=config.get("vision_model_name") or config.get("model_name", "gpt-4o"),
        )
