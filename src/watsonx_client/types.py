"""Type definitions for the watsonx SDK."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_SECS,
    LONG_FORM_TIMEOUT_SECS,
    MAX_TOKENS_LIMIT,
    QUICK_RESPONSE_MAX_TOKENS,
    QUICK_RESPONSE_TIMEOUT_SECS,
)


class _Lenient(BaseModel):
    """Base for server payloads: unknown fields are dropped, aliases accepted."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# -- Generation --


class GenerationConfig(BaseModel):
    """Per-request generation settings."""

    model_id: str = DEFAULT_MODEL
    timeout: float = DEFAULT_TIMEOUT_SECS
    max_tokens: int = DEFAULT_MAX_TOKENS
    top_k: int | None = 50
    top_p: float | None = 1.0
    stop_sequences: list[str] = Field(default_factory=list)
    temperature: float | None = None
    repetition_penalty: float | None = 1.1

    @field_validator("max_tokens")
    @classmethod
    def _clamp_max_tokens(cls, value: int) -> int:
        return min(value, MAX_TOKENS_LIMIT)

    @classmethod
    def long_form(cls, **kwargs: Any) -> GenerationConfig:
        """Maximum output length with a five minute timeout."""
        return cls(max_tokens=MAX_TOKENS_LIMIT, timeout=LONG_FORM_TIMEOUT_SECS, **kwargs)

    @classmethod
    def quick_response(cls, **kwargs: Any) -> GenerationConfig:
        """Short answers with a 30 second timeout."""
        return cls(max_tokens=QUICK_RESPONSE_MAX_TOKENS, timeout=QUICK_RESPONSE_TIMEOUT_SECS, **kwargs)

    def to_parameters(self, min_new_tokens: int = 1) -> dict[str, Any]:
        """Build the ``parameters`` object of a generation request."""
        params: dict[str, Any] = {
            "decoding_method": "greedy" if self.temperature is None else "sample",
            "max_new_tokens": self.max_tokens,
            "min_new_tokens": min_new_tokens,
            "top_k": self.top_k if self.top_k is not None else 50,
            "top_p": self.top_p if self.top_p is not None else 1.0,
            "repetition_penalty": self.repetition_penalty if self.repetition_penalty is not None else 1.1,
            "stop_sequences": self.stop_sequences,
        }
        if self.temperature is not None:
            params["temperature"] = self.temperature
        return params


class GenerationResult(BaseModel):
    """Result of a non-streaming generation."""

    text: str
    model_id: str
    tokens_used: int | None = None
    quality_score: float | None = None
    request_id: str | None = None


class FoundationModelSpec(_Lenient):
    """Raw entry of the foundation model catalog."""

    model_id: str
    label: str | None = None
    provider: str | None = None
    short_description: str | None = None
    long_description: str | None = None
    functions: list[dict[str, Any]] | None = None
    lifecycle: list[dict[str, Any]] | None = None

    def to_model_info(self) -> ModelInfo:
        tasks = None
        if self.functions is not None:
            tasks = [f["id"] for f in self.functions if isinstance(f.get("id"), str)]
        available = None
        if self.lifecycle is not None and any(entry.get("id") == "available" for entry in self.lifecycle):
            available = True
        return ModelInfo(
            model_id=self.model_id,
            name=self.label,
            description=self.long_description or self.short_description,
            provider=self.provider,
            supported_tasks=tasks,
            available=available,
        )


class ModelInfo(BaseModel):
    """A foundation model available to the project."""

    model_id: str
    name: str | None = None
    description: str | None = None
    provider: str | None = None
    version: str | None = None
    supported_tasks: list[str] | None = None
    max_context_length: int | None = None
    available: bool | None = None


# -- Streaming --


class TextFragment(BaseModel):
    """A piece of generated text, delivered as soon as it is decoded."""

    text: str
    is_final: bool = False


class StreamOutcome(BaseModel):
    """Terminal value of a streaming call.

    ``completed`` is False when the stream ended without a terminal marker;
    ``text`` then holds whatever was accumulated before the connection closed.
    """

    text: str
    model_id: str | None = None
    agent_id: str | None = None
    thread_id: str | None = None
    completed: bool = False
    fragment_count: int = 0


class MessageCreated(BaseModel):
    """``message.created``: a complete message."""

    kind: Literal["message.created"] = "message.created"
    text: str | None = None
    thread_id: str | None = None


class MessageDelta(BaseModel):
    """``message.delta``: an incremental piece of a message."""

    kind: Literal["message.delta"] = "message.delta"
    text: str | None = None
    thread_id: str | None = None


class UnrecognizedEvent(BaseModel):
    """Any other event kind; carried only for its thread id."""

    kind: str
    thread_id: str | None = None


AgentEvent = Union[MessageCreated, MessageDelta, UnrecognizedEvent]


# -- Batch --


class BatchUnit(BaseModel):
    """One independent request in a batch."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    config: GenerationConfig | None = None
    id: str | None = None


class BatchItemOutcome(BaseModel):
    """Success value or captured failure of one batch unit."""

    index: int
    id: str | None = None
    prompt: str
    result: Any = None
    error: str | None = None
    error_kind: Literal["error", "cancelled", "timeout"] | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error_kind is None


class BatchReport(BaseModel):
    """Aggregate of every outcome in a batch."""

    model_config = ConfigDict(frozen=True)

    results: list[BatchItemOutcome]
    total: int
    success_count: int
    failure_count: int
    duration: float

    @property
    def successes(self) -> list[BatchItemOutcome]:
        return [item for item in self.results if item.ok]

    @property
    def failures(self) -> list[BatchItemOutcome]:
        return [item for item in self.results if not item.ok]


# -- Orchestration --


class Agent(_Lenient):
    """An orchestration agent."""

    id: str = Field(validation_alias=AliasChoices("id", "agent_id"))
    name: str | None = Field(default=None, validation_alias=AliasChoices("display_name", "name"))
    description: str | None = None


class Message(_Lenient):
    """A conversation message."""

    role: str
    content: str | list[dict[str, Any]]

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(part.get("text", "") for part in self.content if isinstance(part.get("text"), str))


class MessagePayload(BaseModel):
    """Body of a ``runs/stream`` request."""

    message: Message
    agent_id: str
    thread_id: str | None = None
    additional_properties: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        body = self.model_dump(exclude_none=True)
        for key in ("additional_properties", "context"):
            if not body[key]:
                del body[key]
        return body


class ThreadInfo(_Lenient):
    """A conversation thread."""

    thread_id: str = Field(validation_alias=AliasChoices("thread_id", "id"))
    agent_id: str | None = None
    title: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    message_count: int | None = None


class Skill(_Lenient):
    """A skill an agent can use."""

    id: str
    name: str
    description: str | None = None
    skill_type: str | None = Field(default=None, validation_alias=AliasChoices("type", "skill_type"))
    enabled: bool = True
    version: str | None = None


class Tool(_Lenient):
    """A tool an agent can call."""

    id: str
    name: str
    description: str | None = None
    tool_type: str | None = Field(default=None, validation_alias=AliasChoices("type", "tool_type"))
    enabled: bool = True
    version: str | None = None


class ToolExecutionRequest(BaseModel):
    """Direct tool invocation."""

    tool_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    agent_id: str | None = None
    thread_id: str | None = None


class ToolExecutionResult(_Lenient):
    """Outcome of a direct tool invocation."""

    tool_id: str | None = None
    success: bool = True
    result: Any = None
    error: str | None = None
    execution_time_ms: int | None = None


class RunInfo(_Lenient):
    """An agent run."""

    run_id: str = Field(validation_alias=AliasChoices("run_id", "id"))
    agent_id: str | None = None
    thread_id: str | None = None
    status: str | None = None
    created_at: str | None = None
    completed_at: str | None = None
    error: str | None = None


class DocumentCollection(_Lenient):
    """A document collection used for retrieval."""

    id: str
    name: str
    description: str | None = None
    status: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    document_count: int = 0


class BatchMessageRequest(BaseModel):
    """Several messages for one agent, processed server-side."""

    messages: list[Message]
    agent_id: str
    thread_id: str | None = None
    metadata: dict[str, Any] | None = None


class BatchMessageResult(_Lenient):
    """Server-side result for one message of a batch."""

    message_index: int
    response: str | None = None
    error: str | None = None
    processing_time_ms: int | None = None


class BatchMessageResponse(_Lenient):
    """Response of a server-side message batch."""

    batch_id: str = ""
    responses: list[BatchMessageResult] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """A message to a custom assistant."""

    message: str
    session_id: str | None = None
    metadata: dict[str, Any] | None = None
    stream: bool = False


class ChatResponse(_Lenient):
    """A custom assistant's reply."""

    message: str
    session_id: str
    message_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
