from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from visionchat.video_pipeline.core.models import FrameArtifact, VideoSource


class ModelGateway(ABC):
    """
    The three model capabilities the pipeline depends on.

    Implementations signal failure, refusals included, by raising
    ``ProviderException``. A returned string is whatever the model said;
    the caller decides whether an empty one is usable.
    """

    @abstractmethod
    async def caption(self, frame: "FrameArtifact") -> str:
        """Describe one still image."""
        pass

    @abstractmethod
    async def summarize(self, captions: Sequence[str]) -> str:
        """Turn ordered frame captions into one narrative summary."""
        pass

    @abstractmethod
    async def answer(self, video: "VideoSource", question: str, summary: str, chat_history: str) -> str:
        """Answer a question about the whole video."""
        pass

    async def close(self) -> None:
        pass
