"""Asynchronous client for the watsonx Orchestrate API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from types import TracebackType
from typing import Any

import httpx

from ._config import OrchestrateConfig, resolve_orchestrate_config
from .client import SDK_VERSION
from .errors import AuthError, NetworkError, StreamError, error_from_status
from .orchestrate import (
    AGENTS,
    COLLECTIONS,
    MESSAGES,
    RUNS,
    SKILLS,
    STREAM_HEADERS,
    THREADS,
    TOOLS,
    chat_response,
    read_batch_response,
    read_list,
    run_payload,
)
from .sse import AgentEventDecoder, FragmentHandler, aiter_fragments, emit, iter_chat_async
from .types import (
    Agent,
    BatchMessageRequest,
    BatchMessageResponse,
    ChatRequest,
    ChatResponse,
    DocumentCollection,
    Message,
    RunInfo,
    Skill,
    StreamOutcome,
    ThreadInfo,
    Tool,
    ToolExecutionRequest,
    ToolExecutionResult,
)


async def _single_chunk(content: bytes) -> AsyncIterator[bytes]:
    yield content


class AsyncOrchestrateClient:
    """Asynchronous client for the watsonx Orchestrate API.

    Example::

        async with AsyncOrchestrateClient(instance_id="...", api_key="...") as client:
            agents = await client.list_agents()
            reply = await client.send_message(agents[0].id, "Hello")
            print(reply.text)
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
        self._http = httpx.AsyncClient(
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

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> AsyncOrchestrateClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- Agents and threads --

    async def list_agents(self) -> list[Agent]:
        """List all agents."""
        return read_list(await self._send("GET", "/agents"), AGENTS)

    async def get_agent(self, agent_id: str) -> Agent:
        """Get an agent by id."""
        return Agent.model_validate(await self._request("GET", f"/agents/{agent_id}"))

    async def list_threads(self, agent_id: str | None = None) -> list[ThreadInfo]:
        """List conversation threads, optionally for one agent."""
        params = {"agent_id": agent_id} if agent_id else None
        return read_list(await self._send("GET", "/threads", params=params), THREADS)

    async def create_thread(self, agent_id: str | None = None) -> ThreadInfo:
        """Create a conversation thread."""
        body = {"agent_id": agent_id} if agent_id else {}
        return ThreadInfo.model_validate(await self._request("POST", "/threads", json=body))

    async def delete_thread(self, thread_id: str) -> None:
        """Delete a conversation thread."""
        await self._request("DELETE", f"/threads/{thread_id}")

    async def get_thread_messages(self, thread_id: str) -> list[Message]:
        """Conversation history of a thread."""
        return read_list(await self._send("GET", f"/threads/{thread_id}/messages"), MESSAGES)

    # -- Messaging --

    async def send_message(self, agent_id: str, message: str, thread_id: str | None = None) -> StreamOutcome:
        """Send a message and wait for the whole reply.

        Pass the returned ``thread_id`` back in to continue the conversation.
        """
        response = await self._send("POST", "/runs/stream", json=run_payload(agent_id, message, thread_id))
        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)
        decoder = AgentEventDecoder(agent_id, thread_id)
        async for _ in aiter_fragments(_single_chunk(response.content), decoder):
            pass
        return decoder.finalize()

    async def stream_message(
        self,
        agent_id: str,
        message: str,
        thread_id: str | None = None,
        on_fragment: FragmentHandler | None = None,
    ) -> StreamOutcome:
        """Send a message and deliver the reply as it is generated.

        ``on_fragment`` may be a coroutine function.
        """
        decoder = AgentEventDecoder(agent_id, thread_id)
        request = self._http.build_request(
            "POST",
            "/runs/stream",
            json=run_payload(agent_id, message, thread_id),
            headers={**self._auth_headers(), **STREAM_HEADERS},
        )
        try:
            response = await self._http.send(request, stream=True)
            try:
                if response.status_code >= 400:
                    await response.aread()
                    raise error_from_status(response.status_code, response.text)
                async for fragment in aiter_fragments(response.aiter_bytes(), decoder):
                    await emit(on_fragment, fragment)
            finally:
                await response.aclose()
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            raise StreamError(f"Run stream failed: {e}") from e
        return decoder.finalize()

    async def send_batch_messages(self, request: BatchMessageRequest) -> BatchMessageResponse:
        """Process several messages server-side. Empty if the instance lacks batch support."""
        response = await self._send("POST", "/batch/messages", json=request.model_dump(exclude_none=True))
        return read_batch_response(response)

    # -- Runs --

    async def list_runs(self, agent_id: str | None = None) -> list[RunInfo]:
        """List runs, optionally for one agent."""
        params = {"agent_id": agent_id} if agent_id else None
        return read_list(await self._send("GET", "/runs", params=params), RUNS)

    async def get_run(self, run_id: str) -> RunInfo:
        """Get a run by id."""
        return RunInfo.model_validate(await self._request("GET", f"/runs/{run_id}"))

    async def cancel_run(self, run_id: str) -> None:
        """Cancel a running execution."""
        await self._request("POST", f"/runs/{run_id}/cancel")

    # -- Tools and skills --

    async def list_tools(self) -> list[Tool]:
        """List all tools."""
        return read_list(await self._send("GET", "/tools"), TOOLS)

    async def get_tool(self, tool_id: str) -> Tool:
        """Get a tool by id."""
        return Tool.model_validate(await self._request("GET", f"/tools/{tool_id}"))

    async def execute_tool(self, request: ToolExecutionRequest) -> ToolExecutionResult:
        """Invoke a tool directly."""
        data = await self._request(
            "POST", f"/tools/{request.tool_id}/execute", json=request.model_dump(exclude_none=True)
        )
        return ToolExecutionResult.model_validate(data)

    async def list_skills(self) -> list[Skill]:
        """List all skills. Empty if the instance lacks skill support."""
        return read_list(await self._send("GET", "/skills"), SKILLS)

    async def get_skill(self, skill_id: str) -> Skill:
        """Get a skill by id."""
        return Skill.model_validate(await self._request("GET", f"/skills/{skill_id}"))

    # -- Collections --

    async def list_collections(self) -> list[DocumentCollection]:
        """List document collections. Empty if the instance lacks collections."""
        return read_list(await self._send("GET", "/collections"), COLLECTIONS)

    async def get_collection(self, collection_id: str) -> DocumentCollection:
        """Get a document collection by id."""
        return DocumentCollection.model_validate(await self._request("GET", f"/collections/{collection_id}"))

    # -- Assistant chat --

    async def send_chat_message(self, assistant_id: str, request: ChatRequest) -> ChatResponse:
        """Send a message to a custom assistant."""
        data = await self._request(
            "POST",
            f"/v1/assistants/{assistant_id}/chat",
            json=request.model_dump(exclude_none=True),
            headers=self._bearer_headers(),
        )
        return ChatResponse.model_validate(data)

    async def stream_chat_message(
        self,
        assistant_id: str,
        request: ChatRequest,
        on_fragment: FragmentHandler | None = None,
    ) -> ChatResponse:
        """Stream a custom assistant's reply over SSE."""
        body = request.model_copy(update={"stream": True}).model_dump(exclude_none=True)
        parts: list[str] = []
        http_request = self._http.build_request(
            "POST",
            f"/v1/assistants/{assistant_id}/chat",
            params={"stream": "true"},
            json=body,
            headers={**self._auth_headers(), **self._bearer_headers(), "Accept": "text/event-stream"},
        )
        try:
            response = await self._http.send(http_request, stream=True)
            try:
                if response.status_code >= 400:
                    await response.aread()
                    raise error_from_status(response.status_code, response.text)
                async for fragment in iter_chat_async(response):
                    parts.append(fragment.text)
                    await emit(on_fragment, fragment)
            finally:
                await response.aclose()
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

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        try:
            return await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._send(method, path, **kwargs)
        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)
        if not response.content:
            return None
        return response.json()
