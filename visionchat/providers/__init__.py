from .factory import ProviderFactory, provider_factory
from .base import LLMProvider, ModelGateway, VisionProvider

__all__ = [
    "ProviderFactory",
    "provider_factory",
    "LLMProvider",
    "ModelGateway",
    "VisionProvider",
]
