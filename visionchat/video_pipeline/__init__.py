from .session import VisionChatSession, ProcessingRun
from .core.model_gateway import ProviderModelGateway, create_model_gateway
from .core.ingestion.frame_sampler import FrameSampler, compute_sample_points
from .core.ingestion.analysis_pipeline import AnalysisPipeline
from .core.chat.conversation import ConversationManager

__all__ = [
    "VisionChatSession",
    "ProcessingRun",
    "ProviderModelGateway",
    "create_model_gateway",
    "FrameSampler",
    "compute_sample_points",
    "AnalysisPipeline",
    "ConversationManager",
]
