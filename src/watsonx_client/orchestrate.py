"""Synchronous client for the watsonx Orchestrate API."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

import httpx

from ._config import OrchestrateConfig, resolve_orchestrate_config
from .client import SDK_VERSION
from .errors import AuthError, NetworkError, StreamError, error_from_status
from .normalize import Availability, ListShape
from .sse import AgentEventDecoder, iter_chat_sync, iter_fragments
from .types import (
    Agent,
    BatchMessageRequest,
    BatchMessageResponse,
    BatchMessageResult,
    ChatRequest,
    ChatResponse,
    DocumentCollection,
    Message,
    MessagePayload,
    RunInfo,
    Skill,
    StreamOutcome,
    TextFragment,
    ThreadInfo,
    Tool,
    ToolExecutionRequest,
    ToolExecutionResult,
)

# Agents, threads, messages, tools and runs are core endpoints; skills,
# collections and batch messages are not deployed on every instance.
AGENTS = ListShape(Agent, aliases=("agents",))
THREADS = ListShape(ThreadInfo, aliases=("threads",))
MESSAGES = ListShape(Message, aliases=("messages",))
TOOLS = ListShape(Tool, aliases=("tools",))
RUNS = ListShape(RunInfo, aliases=("runs",))
SKILLS = ListShape(Skill, aliases=("skills",), availability=Availability.EMPTY_OK)
COLLECTIONS = ListShape(DocumentCollection, aliases=("collections",), availability=Availability.EMPTY_OK)
BATCH_RESULTS = ListShape(BatchMessageResult, aliases=("responses", "results"), availability=Availability.EMPTY_OK)

STREAM_HEADERS = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
    # Ask proxies not to buffer the event stream.
    "X-Accel-Buffering": "no",
}


def read_list(response: httpx.Response, shape: ListShape) -> list[Any]:
    """Normalize a list response, degrading 404 on optional endpoints."""
    if response.status_code == 404:
        return shape.unavailable(error_from_status(404, response.text))
    if response.status_code >= 400:
        raise error_from_status(response.status_code, response.text)
    return shape.resolve(response.content)


def read_batch_response(response: httpx.Response) -> BatchMessageResponse:
    responses = read_list(response, BATCH_RESULTS)
    batch_id = ""
    if response.status_code < 400:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("batch_id"), str):
            batch_id = data["batch_id"]
    return BatchMessageResponse(batch_id=batch_id, responses=responses)


def run_payload(agent_id: str, message: str, thread_id: str | None) -> dict[str, Any]:
    payload = MessagePayload(
        message=Message(role="user", content=message),
        agent_id=agent_id,
        thread_id=thread_id,
    )
    return payload.to_json()


def chat_response(text: str, session_id: str | None) -> ChatResponse:
    return ChatResponse(
        message=text,
        session_id=session_id or str(uuid.uuid4()),
        message_id=str(uuid.uuid4()),
    )


class OrchestrateClient:
    """Synchronous client for the watsonx Orchestrate API.

    Example::

        with OrchestrateClient(instance_id="...", api_key="...") as client:
            agent = client.list_agents()[0]
            reply = client.stream_message(agent.id, "Hello", on_fragment=lambda f: print(f.text, end=""))
            client.send_message(agent.id, "And then?", thread_id=reply.thread_id)
    """

    def __init__(
        self,
        instance_id: str | None = None,
        api_key: str | None = None,
        *,
        region: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._config: OrchestrateConfig = resolve_orchestrate_config(instance_id, api_key, region, base_url, timeout)
        self._api_key = self._config.api_key
        self._http = httpx.Client(
            base_url=self._config.base_url,
            headers={"User-Agent": f"watsonx-client-python/{SDK_VERSION}"},
            timeout=self._config.timeout,
        )

    @property
    def config(self) -> OrchestrateConfig:
        return self._config

    @property
    def is_authenticated(self) -> bool:
        return self._api_key is not None

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def close(self) -> None:
        """Close the HTTP client."""
        self._http.close()

    def __enter__(self) -> OrchestrateClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -- Agents and threads --

    def list_agents(self) -> list[Agent]:
        """List all agents."""
        return read_list(self._send("GET", "/agents"), AGENTS)

    def get_agent(self, agent_id: str) -> Agent:
        """Get an agent by id."""
        return Agent.model_validate(self._request("GET", f"/agents/{agent_id}"))

    def list_threads(self, agent_id: str | None = None) -> list[ThreadInfo]:
        """List conversation threads, optionally for one agent."""
        params = {"agent_id": agent_id} if agent_id else None
        return read_list(self._send("GET", "/threads", params=params), THREADS)

    def create_thread(self, agent_id: str | None = None) -> ThreadInfo:
        """Create a conversation thread."""
        body = {"agent_id": agent_id} if agent_id else {}
        return ThreadInfo.model_validate(self._request("POST", "/threads", json=body))

    def delete_thread(self, thread_id: str) -> None:
        """Delete a conversation thread."""
        self._request("DELETE", f"/threads/{thread_id}")

    def get_thread_messages(self, thread_id: str) -> list[Message]:
        """Conversation history of a thread."""
        return read_list(self._send("GET", f"/threads/{thread_id}/messages"), MESSAGES)

    # -- Messaging --

    def send_message(self, agent_id: str, message: str, thread_id: str | None = None) -> StreamOutcome:
        """Send a message and wait for the whole reply.

        Pass the returned ``thread_id`` back in to continue the conversation.
        """
        response = self._send("POST", "/runs/stream", json=run_payload(agent_id, message, thread_id))
        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)
        decoder = AgentEventDecoder(agent_id, thread_id)
        for _ in iter_fragments([response.content], decoder):
            pass
        return decoder.finalize()

    def stream_message(
        self,
        agent_id: str,
        message: str,
        thread_id: str | None = None,
        on_fragment: Callable[[TextFragment], Any] | None = None,
    ) -> StreamOutcome:
        """Send a message and deliver the reply as it is generated."""
        decoder = AgentEventDecoder(agent_id, thread_id)
        try:
            with self._http.stream(
                "POST",
                "/runs/stream",
                json=run_payload(agent_id, message, thread_id),
                headers={**self._auth_headers(), **STREAM_HEADERS},
            ) as response:
                if response.status_code >= 400:
                    response.read()
                    raise error_from_status(response.status_code, response.text)
                for fragment in iter_fragments(response.iter_bytes(), decoder):
                    if on_fragment is not None:
                        on_fragment(fragment)
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            raise StreamError(f"Run stream failed: {e}") from e
        return decoder.finalize()

    def send_batch_messages(self, request: BatchMessageRequest) -> BatchMessageResponse:
        """Process several messages server-side. Empty if the instance lacks batch support."""
        response = self._send("POST", "/batch/messages", json=request.model_dump(exclude_none=True))
        return read_batch_response(response)

    # -- Runs --

    def list_runs(self, agent_id: str | None = None) -> list[RunInfo]:
        """List runs, optionally for one agent."""
        params = {"agent_id": agent_id} if agent_id else None
        return read_list(self._send("GET", "/runs", params=params), RUNS)

    def get_run(self, run_id: str) -> RunInfo:
        """Get a run by id."""
        return RunInfo.model_validate(self._request("GET", f"/runs/{run_id}"))

    def cancel_run(self, run_id: str) -> None:
        """Cancel a running execution."""
        self._request("POST", f"/runs/{run_id}/cancel")

    # -- Tools and skills --

    def list_tools(self) -> list[Tool]:
        """List all tools."""
        return read_list(self._send("GET", "/tools"), TOOLS)

    def get_tool(self, tool_id: str) -> Tool:
        """Get a tool by id."""
        return Tool.model_validate(self._request("GET", f"/tools/{tool_id}"))

    def execute_tool(self, request: ToolExecutionRequest) -> ToolExecutionResult:
        """Invoke a tool directly."""
        data = self._request("POST", f"/tools/{request.tool_id}/execute", json=request.model_dump(exclude_none=True))
        return ToolExecutionResult.model_validate(data)

    def list_skills(self) -> list[Skill]:
        """List all skills. Empty if the instance lacks skill support."""
        return read_list(self._send("GET", "/skills"), SKILLS)

    def get_skill(self, skill_id: str) -> Skill:
        """Get a skill by id."""
        return Skill.model_validate(self._request("GET", f"/skills/{skill_id}"))

    # -- Collections --

    def list_collections(self) -> list[DocumentCollection]:
        """List document collections. Empty if the instance lacks collections."""
        return read_list(self._send("GET", "/collections"), COLLECTIONS)

    def get_collection(self, collection_id: str) -> DocumentCollection:
        """Get a document collection by id."""
        return DocumentCollection.model_validate(self._request("GET", f"/collections/{collection_id}"))

    # -- Assistant chat --

    def send_chat_message(self, assistant_id: str, request: ChatRequest) -> ChatResponse:
        """Send a message to a custom assistant."""
        data = self._request(
            "POST",
            f"/v1/assistants/{assistant_id}/chat",
            json=request.model_dump(exclude_none=True),
            headers=self._bearer_headers(),
        )
        return ChatResponse.model_validate(data)

    def stream_chat_message(
        self,
        assistant_id: str,
        request: ChatRequest,
        on_fragment: Callable[[TextFragment], Any] | None = None,
    ) -> ChatResponse:
        """Stream a custom assistant's reply over SSE."""
        body = request.model_copy(update={"stream": True}).model_dump(exclude_none=True)
        parts: list[str] = []
        try:
            with self._http.stream(
                "POST",
                f"/v1/assistants/{assistant_id}/chat",
                params={"stream": "true"},
                json=body,
                headers={**self._auth_headers(), **self._bearer_headers(), "Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    response.read()
                    raise error_from_status(response.status_code, response.text)
                for fragment in iter_chat_sync(response):
                    parts.append(fragment.text)
                    if on_fragment is not None:
                        on_fragment(fragment)
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            raise StreamError(f"Chat stream failed: {e}") from e
        return chat_response("".join(parts), request.session_id)

    # -- Internal --

    def _auth_headers(self) -> dict[str, str]:
        if self._api_key is None:
            raise AuthError("Not authenticated. Set an API key first.")
        return {"IAM-API_KEY": self._api_key}

    def _bearer_headers(self) -> dict[str, str]:
        if self._api_key is None:
            raise AuthError("Not authenticated. Set an API key first.")
        return {"Authorization": f"Bearer {self._api_key}"}

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        try:
            return self._http.request(method, path, headers=headers, **kwargs)
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._send(method, path, **kwargs)
        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)
        if not response.content:
            return None
        return response.json()
