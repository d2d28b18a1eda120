from visionchat.providers.base import LLMProvider
from loguru import logger
from openai import AsyncAzureOpenAI
from azure.identity.aio import get_bearer_token_provider
from visionchat.utils.error_handler import ProviderException, ConfigurationException
from typing import Dict, Any, List
from visionchat.utils.error_handler import handle_exceptions, convert_exceptions
from visionchat.providers.credentials import AzureCredentials
from visionchat.providers.openai_providers.llm_provider import _complete


class AzureLLMProvider(LLMProvider):
    """Azure OpenAI LLM provider implementation."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.credential = None
        self.client = self._initialize_client()

    def _initialize_client(self):
        """Initialize Azure OpenAI client."""
        endpoint = self.config.get("endpoint")
        api_version = self.config.get("api_version", "2024-08-01-preview")
        use_managed_identity = self.config.get("use_managed_identity", False)
        timeout = self.config.get("timeout", 200)
        max_retries = self.config.get("max_retries", 2)

        if not endpoint:
            raise ConfigurationException("Azure OpenAI endpoint is required")

        if not use_managed_identity and not self.config.get("api_key"):
            raise ConfigurationException("Azure OpenAI API key is required when managed identity is disabled")

        try:
            if use_managed_identity:
                self.credential = AzureCredentials.get_async_credentials()
                token_provider = get_bearer_token_provider(
                    self.credential,
                    "https://cognitiveservices.azure.com/.default"
                )
                return AsyncAzureOpenAI(
                    api_version=api_version,
                    azure_endpoint=endpoint,
                    azure_ad_token_provider=token_provider,
                    max_retries=max_retries,
                    timeout=timeout
                )

            return AsyncAzureOpenAI(
                api_version=api_version,
                azure_endpoint=endpoint,
                api_key=self.config.get("api_key"),
                max_retries=max_retries,
                timeout=timeout
            )
        except Exception as e:
            raise ProviderException(f"Failed to initialize Azure OpenAI client: {e}")

    @handle_exceptions(retries=3, exceptions=(ProviderException,))
    @convert_exceptions({Exception: ProviderException})
    async def chat_completion(self, messages: List[Dict], **kwargs) -> Dict[str, Any]:
        """Generate chat completion using Azure OpenAI."""
        deployment_name = kwargs.pop("model", None) or self.config.get("deployment_name")
        if not deployment_name:
            raise ConfigurationException("Azure OpenAI deployment name is required")
        return await _complete(self.client, deployment_name, messages, self.config, "Azure OpenAI", **kwargs)

    async def close(self):
        """Close the LLM client and cleanup resources."""
        if self.client:
            logger.info("Closing Azure OpenAI LLM client")
            await self.client.close()
        if self.credential:
            await self.credential.close()
