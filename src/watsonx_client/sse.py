"""Stream decoding for the watsonx SDK.

Two dialects arrive over HTTP:

* text generation streams SSE ``data: {json}`` frames and ends with
  ``data: [DONE]``;
* orchestration runs stream one JSON event per line
  (``{"event": "message.delta", "data": {...}}``).

Both go through a :class:`FrameAssembler` that turns raw byte chunks into
complete lines, then through a decoder that owns the session state. A decoder
instance belongs to exactly one stream.

Assistant chat uses standard SSE and is parsed with ``httpx_sse``.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator
from typing import Any, Protocol

import httpx
import httpx_sse

from .types import (
    AgentEvent,
    MessageCreated,
    MessageDelta,
    StreamOutcome,
    TextFragment,
    UnrecognizedEvent,
)

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"
SKIPPED_PREFIXES = ("id:", "event:", "retry:", ":")

FragmentHandler = Callable[[TextFragment], Any]


class FrameAssembler:
    """Buffers byte chunks into complete newline-terminated lines."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        if b"\n" not in chunk:
            self._buffer.extend(chunk)
            return []
        head, *middle, rest = chunk.split(b"\n")
        self._buffer.extend(head)
        complete = [bytes(self._buffer), *middle]
        self._buffer = bytearray(rest)
        return [_decode_line(raw) for raw in complete]

    def flush(self) -> str | None:
        """Return the unterminated remainder, if any, and clear the buffer."""
        if not self._buffer:
            return None
        line = _decode_line(bytes(self._buffer))
        self._buffer.clear()
        return line or None


def _decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


def _strip_data_prefix(line: str) -> str | None:
    """Payload of a ``data:`` line (one optional space), else None."""
    if not line.startswith("data:"):
        return None
    payload = line[5:]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload.strip()


def _first(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def extract_generated_text(data: Any) -> tuple[str, bool] | None:
    """Pull the text out of a generation payload.

    Returns ``(text, is_final)`` or None when no known envelope matches.
    Handles ``results[0].generated_text`` as well as the chat-completion
    ``choices[0].delta.content`` and ``choices[0].message.content`` forms.
    """
    if not isinstance(data, dict):
        return None

    result = _first(data.get("results"))
    if isinstance(result, dict) and isinstance(result.get("generated_text"), str):
        stop_reason = result.get("stop_reason")
        is_final = isinstance(stop_reason, str) and stop_reason != "not_finished"
        return result["generated_text"], is_final

    choice = _first(data.get("choices"))
    if isinstance(choice, dict):
        for key in ("delta", "message"):
            body = choice.get(key)
            if isinstance(body, dict) and isinstance(body.get("content"), str):
                return body["content"], choice.get("finish_reason") is not None
    return None


class StreamDecoder(Protocol):
    @property
    def is_terminal(self) -> bool: ...

    def feed_line(self, line: str) -> TextFragment | None: ...

    def close(self) -> None: ...


class GenerationStreamDecoder:
    """Decodes the ``data: {json}`` / ``[DONE]`` generation dialect."""

    def __init__(self, model_id: str | None = None) -> None:
        self.model_id = model_id
        self._parts: list[str] = []
        self._terminal = False
        self._completed = False

    @property
    def is_terminal(self) -> bool:
        return self._terminal

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed_line(self, line: str) -> TextFragment | None:
        if self._terminal:
            return None
        line = line.strip()
        if not line or line.startswith(SKIPPED_PREFIXES):
            return None

        payload = _strip_data_prefix(line)
        if not payload:
            return None
        if payload == DONE_MARKER:
            self._terminal = True
            self._completed = True
            return None

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.debug("Skipping malformed generation frame: %s", e)
            return None

        extracted = extract_generated_text(data)
        if extracted is None:
            logger.debug("Skipping generation frame without text: %.120s", payload)
            return None

        text, is_final = extracted
        self._parts.append(text)
        return TextFragment(text=text, is_final=is_final)

    def close(self) -> None:
        self._terminal = True

    def finalize(self) -> StreamOutcome:
        self.close()
        return StreamOutcome(
            text=self.text,
            model_id=self.model_id,
            completed=self._completed,
            fragment_count=len(self._parts),
        )


def _content_texts(content: Any) -> list[str]:
    if not isinstance(content, list):
        return []
    return [part["text"] for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)]


def _first_content_text(container: Any) -> str | None:
    if not isinstance(container, dict):
        return None
    part = _first(container.get("content"))
    if isinstance(part, dict) and isinstance(part.get("text"), str):
        return part["text"]
    return None


def parse_agent_event(line: str) -> AgentEvent | None:
    """Parse one event line of the orchestration run stream.

    Returns None for blank lines, invalid JSON, or objects without an event kind.
    """
    line = line.strip()
    if not line:
        return None
    payload = _strip_data_prefix(line)
    if payload is not None:
        line = payload
    try:
        obj = json.loads(line)
    except json.JSONDecodeError as e:
        logger.debug("Skipping malformed agent event: %s", e)
        return None
    if not isinstance(obj, dict) or not isinstance(obj.get("event"), str):
        return None

    kind = obj["event"]
    data = obj.get("data")
    if not isinstance(data, dict):
        data = {}
    thread_id = data.get("thread_id") if isinstance(data.get("thread_id"), str) else None

    if kind == "message.delta":
        text = _first_content_text(data.get("delta"))
        if text is None and not isinstance(data.get("delta"), dict):
            text = _first_content_text(data)
        return MessageDelta(text=text, thread_id=thread_id)
    if kind == "message.created":
        message = data.get("message")
        texts = _content_texts(message.get("content")) if isinstance(message, dict) else []
        return MessageCreated(text="".join(texts) if texts else None, thread_id=thread_id)
    return UnrecognizedEvent(kind=kind, thread_id=thread_id)


class AgentEventDecoder:
    """Decodes the typed-event dialect of orchestration runs.

    The first thread id seen in a session is kept; later events that carry a
    different id do not replace it.
    """

    def __init__(self, agent_id: str | None = None, thread_id: str | None = None) -> None:
        self.agent_id = agent_id
        self._requested_thread_id = thread_id
        self._seen_thread_id: str | None = None
        self._parts: list[str] = []
        self._created_text: str | None = None
        self._created_seen = False
        self._terminal = False

    @property
    def is_terminal(self) -> bool:
        return self._terminal

    @property
    def thread_id(self) -> str | None:
        return self._seen_thread_id or self._requested_thread_id

    def feed_event(self, event: AgentEvent) -> TextFragment | None:
        if event.thread_id and self._seen_thread_id is None:
            self._seen_thread_id = event.thread_id
        elif event.thread_id and event.thread_id != self._seen_thread_id:
            logger.debug("Ignoring thread id %s; session pinned to %s", event.thread_id, self._seen_thread_id)

        if isinstance(event, MessageDelta) and event.text is not None:
            self._parts.append(event.text)
            return TextFragment(text=event.text)
        if isinstance(event, MessageCreated):
            self._created_seen = True
            if event.text is not None:
                self._created_text = event.text
        return None

    def feed_line(self, line: str) -> TextFragment | None:
        if self._terminal:
            return None
        event = parse_agent_event(line)
        if event is None:
            return None
        return self.feed_event(event)

    def close(self) -> None:
        self._terminal = True

    def finalize(self) -> StreamOutcome:
        self.close()
        if self._parts:
            text = "".join(self._parts)
        else:
            text = self._created_text or ""
        return StreamOutcome(
            text=text,
            agent_id=self.agent_id,
            thread_id=self.thread_id,
            completed=self._created_seen,
            fragment_count=len(self._parts),
        )


def iter_fragments(chunks: Iterable[bytes], decoder: StreamDecoder) -> Iterator[TextFragment]:
    """Drive ``decoder`` over byte chunks, yielding fragments in order."""
    assembler = FrameAssembler()
    try:
        for chunk in chunks:
            for line in assembler.feed(chunk):
                fragment = decoder.feed_line(line)
                if fragment is not None:
                    yield fragment
            if decoder.is_terminal:
                return
        tail = assembler.flush()
        if tail is not None:
            fragment = decoder.feed_line(tail)
            if fragment is not None:
                yield fragment
    finally:
        decoder.close()


async def aiter_fragments(chunks: AsyncIterable[bytes], decoder: StreamDecoder) -> AsyncIterator[TextFragment]:
    """Async variant of :func:`iter_fragments`."""
    assembler = FrameAssembler()
    try:
        async for chunk in chunks:
            for line in assembler.feed(chunk):
                fragment = decoder.feed_line(line)
                if fragment is not None:
                    yield fragment
            if decoder.is_terminal:
                return
        tail = assembler.flush()
        if tail is not None:
            fragment = decoder.feed_line(tail)
            if fragment is not None:
                yield fragment
    finally:
        decoder.close()


async def emit(handler: FragmentHandler | None, fragment: TextFragment) -> None:
    """Call ``handler`` with ``fragment``, awaiting it if it is a coroutine."""
    if handler is None:
        return
    result = handler(fragment)
    if inspect.isawaitable(result):
        await result


def _chat_content(sse: httpx_sse.ServerSentEvent) -> str | None:
    data = sse.data.strip()
    if not data or data == DONE_MARKER:
        return None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed chat frame: %.120s", data)
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("content"), str):
        return parsed["content"]
    return None


def iter_chat_sync(response: httpx.Response) -> Iterator[TextFragment]:
    """Parse assistant chat SSE events from a sync httpx response."""
    for sse in httpx_sse.EventSource(response).iter_sse():
        if sse.data.strip() == DONE_MARKER:
            return
        content = _chat_content(sse)
        if content is not None:
            yield TextFragment(text=content)


async def iter_chat_async(response: httpx.Response) -> AsyncIterator[TextFragment]:
    """Parse assistant chat SSE events from an async httpx response."""
    async for sse in httpx_sse.EventSource(response).aiter_sse():
        if sse.data.strip() == DONE_MARKER:
            return
        content = _chat_content(sse)
        if content is not None:
            yield TextFragment(text=content)
