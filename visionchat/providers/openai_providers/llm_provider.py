from visionchat.providers.base import LLMProvider
from loguru import logger
from visionchat.utils.error_handler import ProviderException, ConfigurationException
from typing import Dict, Any, List
from visionchat.utils.error_handler import handle_exceptions, convert_exceptions
from openai import AsyncOpenAI
from pydantic import BaseModel


class OpenAILLMProvider(LLMProvider):
    """OpenAI LLM provider implementation."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.client = self._initialize_client()

    def _initialize_client(self):
        """Initialize OpenAI client."""
        api_key = self.config.get("api_key")
        if not api_key:
            raise ConfigurationException("OpenAI API key is required")

        try:
            return AsyncOpenAI(
                api_key=api_key,
                base_url=self.config.get("endpoint") or None,
                timeout=self.config.get("timeout", 200),
                max_retries=self.config.get("max_retries", 2)
            )
        except Exception as e:
            raise ProviderException(f"Failed to initialize OpenAI client: {e}")

    @handle_exceptions(retries=3, exceptions=(ProviderException,))
    @convert_exceptions({Exception: ProviderException})
    async def chat_completion(self, messages: List[Dict], **kwargs) -> Dict[str, Any]:
        """Generate chat completion using OpenAI."""
        model = kwargs.pop("model", None) or self.config.get("model_name", "gpt-4o")
        return await _complete(self.client, model, messages, self.config, "OpenAI", **kwargs)

    async def close(self):
        """Close the LLM client and cleanup resources."""
        if self.client:
            logger.info("Closing OpenAI LLM client")
            await self.client.close()


async def _complete(client, model: str, messages: List[Dict], config: Dict[str, Any], label: str, **kwargs) -> Dict[str, Any]:
    """
    Shared chat-completion call for OpenAI-compatible clients.

    When ``response_format`` is a pydantic model the structured ``parse`` API is
    used and ``content`` holds the parsed model instance.
    """
    try:
        temperature = kwargs.get("temperature", config.get("temperature", 0.0))
        max_tokens = kwargs.get("max_tokens", 4000)
        response_format = kwargs.get("response_format")

        # Remove temperature, max_tokens, and response_format from kwargs to avoid duplicate arguments
        filtered_kwargs = {k: v for k, v in kwargs.items() if k not in ["temperature", "max_tokens", "response_format"]}

        if response_format and isinstance(response_format, type) and issubclass(response_format, BaseModel):
            response = await client.chat.completions.parse(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                response_format=response_format,
                **filtered_kwargs
            )
            message = response.choices[0].message
            if getattr(message, "refusal", None):
                raise ProviderException(f"{label} refused the request: {message.refusal}", error_code="MODEL_REFUSAL")
            content = message.parsed
            if content is None:
                raise ProviderException(f"{label} returned no structured output", error_code="NO_STRUCTURED_OUTPUT")
        else:
            completion_kwargs = {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
                **filtered_kwargs
            }
            if response_format:
                completion_kwargs["response_format"] = response_format

            response = await client.chat.completions.create(**completion_kwargs)
            message = response.choices[0].message
            if getattr(message, "refusal", None):
                raise ProviderException(f"{label} refused the request: {message.refusal}", error_code="MODEL_REFUSAL")
            content = message.content

        return {
            "content": content,
            "usage": response.usage.model_dump() if response.usage else None,
            "model": response.model,
            "finish_reason": response.choices[0].finish_reason
        }
    except ProviderException as e:
        logger.error(f"{label} chat completion failed: {e.message}")
        raise
    except Exception as e:
        logger.error(f"{label} chat completion failed: {e}")
        raise ProviderException(f"{label} chat completion failed: {e}")
