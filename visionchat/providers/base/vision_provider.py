from abc import ABC, abstractmethod
from typing import Dict, Any, List


class VisionProvider(ABC):
    """Abstract base class for vision providers."""

    @abstractmethod
    async def analyze_image(self, image_data: bytes, **kwargs) -> Dict[str, Any]:
        """Analyze a single image."""
        pass

    @abstractmethod
    async def analyze_images(self, images: List[bytes], prompt: str, **kwargs) -> Dict[str, Any]:
        """Answer a prompt grounded on several images at once."""
        pass

    @abstractmethod
    async def close(self):
        """Close the provider and cleanup resources."""
        pass
