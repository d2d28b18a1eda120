from .llm_provider import LLMProvider
from .vision_provider import VisionProvider
from .model_gateway import ModelGateway

__all__ = [
    'LLMProvider',
    'VisionProvider',
    'ModelGateway',
]
