from visionchat.providers.azure_providers.llm_provider import AzureLLMProvider
from visionchat.providers.openai_providers.vision_provider import ChatVisionProvider
from typing import Dict, Any


class AzureVisionProvider(ChatVisionProvider):
    """Azure OpenAI vision provider: images go to a multimodal deployment."""

    label = "Azure OpenAI Vision"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(
            config,
            AzureLLMProvider(config),
            model=config.get("vision_deployment_name") or config.get("deployment_name"),
        )
