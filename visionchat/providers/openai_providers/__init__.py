from .llm_provider import OpenAILLMProvider
from .vision_provider import OpenAIVisionProvider

__all__ = [
    'OpenAILLMProvider',
    'OpenAIVisionProvider',
]
