from .llm_provider import AzureLLMProvider
from .vision_provider import AzureVisionProvider

__all__ = [
    "AzureLLMProvider",
    "AzureVisionProvider",
]
