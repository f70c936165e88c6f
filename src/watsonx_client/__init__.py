"""watsonx client SDK: text generation and Orchestrate agents for IBM watsonx."""

from .async_client import AsyncWatsonxClient
from .async_orchestrate import AsyncOrchestrateClient
from .batch import run_batch, run_batch_threaded
from .client import WatsonxClient
from .errors import (
    AuthError,
    ConfigurationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ShapeMismatchError,
    StreamError,
    ValidationError,
    WatsonxError,
)
from .normalize import Availability, ListShape, normalize_list
from .orchestrate import OrchestrateClient
from .quality import assess_quality
from .sse import AgentEventDecoder, FrameAssembler, GenerationStreamDecoder, parse_agent_event
from .types import (
    Agent,
    BatchItemOutcome,
    BatchMessageRequest,
    BatchMessageResponse,
    BatchReport,
    BatchUnit,
    ChatRequest,
    ChatResponse,
    DocumentCollection,
    GenerationConfig,
    GenerationResult,
    Message,
    ModelInfo,
    RunInfo,
    Skill,
    StreamOutcome,
    TextFragment,
    ThreadInfo,
    Tool,
    ToolExecutionRequest,
    ToolExecutionResult,
)

__all__ = [
    "WatsonxClient",
    "AsyncWatsonxClient",
    "OrchestrateClient",
    "AsyncOrchestrateClient",
    "WatsonxError",
    "AuthError",
    "NotFoundError",
    "ValidationError",
    "RateLimitError",
    "ServerError",
    "NetworkError",
    "StreamError",
    "ShapeMismatchError",
    "ConfigurationError",
    "FrameAssembler",
    "GenerationStreamDecoder",
    "AgentEventDecoder",
    "parse_agent_event",
    "Availability",
    "ListShape",
    "normalize_list",
    "run_batch",
    "run_batch_threaded",
    "assess_quality",
    "GenerationConfig",
    "GenerationResult",
    "ModelInfo",
    "TextFragment",
    "StreamOutcome",
    "BatchUnit",
    "BatchItemOutcome",
    "BatchReport",
    "Agent",
    "Message",
    "ThreadInfo",
    "Skill",
    "Tool",
    "ToolExecutionRequest",
    "ToolExecutionResult",
    "RunInfo",
    "DocumentCollection",
    "BatchMessageRequest",
    "BatchMessageResponse",
    "ChatRequest",
    "ChatResponse",
]
