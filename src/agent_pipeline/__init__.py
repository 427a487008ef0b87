"""Agent conversation pipeline: document ingestion, tiered retrieval, intent routing and tool calls."""

from .config import ChunkingConfig, RetrievalConfig, Settings
from .errors import PipelineError

__all__ = ["ChunkingConfig", "PipelineError", "RetrievalConfig", "Settings"]
