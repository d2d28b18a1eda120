from typing import Dict, Optional, Type
from loguru import logger

from .base import LLMProvider, VisionProvider
from .azure_providers import AzureLLMProvider, AzureVisionProvider
from .openai_providers import OpenAILLMProvider, OpenAIVisionProvider
from ..utils.error_handler import ConfigurationException
from ..config.settings import VisionChatConfig


class ProviderFactory:
    """Factory class for creating provider instances."""

    _llm_providers: Dict[str, Type[LLMProvider]] = {
        'azure': AzureLLMProvider,
        'openai': OpenAILLMProvider,
    }

    _vision_providers: Dict[str, Type[VisionProvider]] = {
        'azure': AzureVisionProvider,
        'openai': OpenAIVisionProvider,
    }

    @classmethod
    def create_llm_provider(cls, provider_name: str = None, config: Optional[VisionChatConfig] = None) -> LLMProvider:
        """
        Create LLM provider instance.

        Args:
            provider_name: Name of the provider (optional, defaults to config)
            config: Loaded configuration (optional, read from the environment when omitted)

        Returns:
            LLMProvider instance

        Raises:
            ConfigurationException: If provider is not supported
        """
        config = config or VisionChatConfig()
        if provider_name is None:
            provider_name = config.llm.provider

        if provider_name not in cls._llm_providers:
            raise ConfigurationException(
                f"Unknown LLM provider: {provider_name}. "
                f"Supported providers: {list(cls._llm_providers.keys())}"
            )

        provider_class = cls._llm_providers[provider_name]
        logger.info(f"Creating LLM provider: {provider_name}")
        return provider_class(config.llm.model_dump())

    @classmethod
    def create_vision_provider(cls, provider_name: str = None, config: Optional[VisionChatConfig] = None) -> VisionProvider:
        """
        Create vision provider instance.

        Args:
            provider_name: Name of the provider (optional, defaults to config)
            config: Loaded configuration (optional, read from the environment when omitted)

        Returns:
            VisionProvider instance

        Raises:
            ConfigurationException: If provider is not supported
        """
        config = config or VisionChatConfig()
        if provider_name is None:
            provider_name = config.llm.provider

        if provider_name not in cls._vision_providers:
            raise ConfigurationException(
                f"Unknown vision provider: {provider_name}. "
                f"Supported providers: {list(cls._vision_providers.keys())}"
            )

        provider_class = cls._vision_providers[provider_name]
        logger.info(f"Creating vision provider: {provider_name}")
        return provider_class(config.llm.model_dump())

    @classmethod
    def get_supported_providers(cls) -> Dict[str, list]:
        """Get list of supported providers by type."""
        return {
            "llm": list(cls._llm_providers.keys()),
            "vision": list(cls._vision_providers.keys()),
        }


# Global factory instance
provider_factory = ProviderFactory()
