"""Tests for the synchronous OrchestrateClient."""

import json

import pytest
from pytest_httpx import HTTPXMock, IteratorStream

from watsonx_client import (
    Agent,
    AuthError,
    BatchMessageRequest,
    ChatRequest,
    Message,
    NotFoundError,
    OrchestrateClient,
    ShapeMismatchError,
    StreamError,
    ToolExecutionRequest,
)

BASE_URL = "http://localhost:9999/orchestrate"

TOOLS = [{"id": "t1", "name": "search"}, {"id": "t2", "name": "calculator", "type": "python"}]


def make_client(**kwargs) -> OrchestrateClient:
    kwargs.setdefault("api_key", "wxo-key")
    return OrchestrateClient(instance_id="inst-1", base_url=BASE_URL, **kwargs)


def run_events(*events: dict) -> bytes:
    return b"".join(json.dumps(event).encode() + b"\n" for event in events)


def delta(text: str, thread_id: str) -> dict:
    return {"event": "message.delta", "data": {"thread_id": thread_id, "delta": {"content": [{"text": text}]}}}


class TestConfig:
    def test_default_base_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("WXO_URL", raising=False)
        monkeypatch.delenv("WXO_REGION", raising=False)
        client = OrchestrateClient(instance_id="inst-1", api_key="k")
        assert client.config.base_url == (
            "https://api.us-south.watson-orchestrate.cloud.ibm.com/instances/inst-1/v1/orchestrate"
        )

    def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("WXO_API_KEY", raising=False)
        client = make_client(api_key=None)
        assert not client.is_authenticated
        with pytest.raises(AuthError):
            client.list_agents()


class TestListAgents:
    def test_wrapped(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{BASE_URL}/agents",
            json={"agents": [{"agent_id": "a1", "display_name": "Helper", "extra": "ignored"}]},
        )
        agents = make_client().list_agents()
        assert agents == [Agent(id="a1", name="Helper")]

        request = httpx_mock.get_request()
        assert request is not None
        assert request.headers["IAM-API_KEY"] == "wxo-key"

    def test_bare_array(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=[{"id": "a1", "name": "Helper"}, {"id": "a2"}])
        agents = make_client().list_agents()
        assert [a.id for a in agents] == ["a1", "a2"]

    def test_unrecognized_shape(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"data": []})
        with pytest.raises(ShapeMismatchError):
            make_client().list_agents()


class TestTools:
    def test_bare_and_wrapped_agree(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=TOOLS)
        httpx_mock.add_response(json={"tools": TOOLS})
        client = make_client()
        assert client.list_tools() == client.list_tools()

    def test_not_found_propagates(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=404, json={"error": "no tools endpoint"})
        with pytest.raises(NotFoundError):
            make_client().list_tools()

    def test_execute(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{BASE_URL}/tools/t1/execute",
            json={"tool_id": "t1", "success": True, "result": {"answer": 42}, "execution_time_ms": 12},
        )
        result = make_client().execute_tool(ToolExecutionRequest(tool_id="t1", parameters={"q": "life"}))
        assert result.result == {"answer": 42}

        request = httpx_mock.get_request()
        assert request is not None
        assert json.loads(request.content) == {"tool_id": "t1", "parameters": {"q": "life"}}


class TestOptionalEndpoints:
    def test_skills_not_found_is_empty(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{BASE_URL}/skills", status_code=404)
        assert make_client().list_skills() == []

    def test_skills_unrecognized_shape_is_empty(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"unexpected": True})
        assert make_client().list_skills() == []

    def test_skills_listed(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"skills": [{"id": "s1", "name": "Summarize", "type": "llm"}]})
        skills = make_client().list_skills()
        assert skills[0].skill_type == "llm"

    def test_collections_not_found_is_empty(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=404)
        assert make_client().list_collections() == []

    def test_other_errors_still_raise(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=401, json={"error": "bad key"})
        with pytest.raises(AuthError):
            make_client().list_skills()

    def test_batch_messages_not_found(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=404)
        request = BatchMessageRequest(messages=[Message(role="user", content="hi")], agent_id="a1")
        response = make_client().send_batch_messages(request)
        assert response.batch_id == ""
        assert response.responses == []

    def test_batch_messages_results_alias(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            json={"batch_id": "b-1", "results": [{"message_index": 0, "response": "hello"}]},
        )
        request = BatchMessageRequest(messages=[Message(role="user", content="hi")], agent_id="a1")
        response = make_client().send_batch_messages(request)
        assert response.batch_id == "b-1"
        assert response.responses[0].response == "hello"


class TestThreads:
    def test_create(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{BASE_URL}/threads", method="POST", json={"id": "th-1", "agent_id": "a1"})
        thread = make_client().create_thread("a1")
        assert thread.thread_id == "th-1"

    def test_list_for_agent(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"threads": [{"thread_id": "th-1"}]})
        threads = make_client().list_threads("a1")
        assert [t.thread_id for t in threads] == ["th-1"]
        request = httpx_mock.get_request()
        assert request is not None
        assert request.url.params["agent_id"] == "a1"

    def test_messages(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            json={
                "messages": [
                    {"role": "user", "content": "hi"},
                    {"role": "assistant", "content": [{"response_type": "text", "text": "hello"}]},
                ]
            }
        )
        messages = make_client().get_thread_messages("th-1")
        assert [m.text for m in messages] == ["hi", "hello"]

    def test_delete(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{BASE_URL}/threads/th-1", method="DELETE", status_code=204)
        make_client().delete_thread("th-1")


class TestRuns:
    def test_get_run(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"id": "r1", "status": "completed"})
        run = make_client().get_run("r1")
        assert run.run_id == "r1"
        assert run.status == "completed"

    def test_cancel(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{BASE_URL}/runs/r1/cancel", method="POST", json={})
        make_client().cancel_run("r1")

    def test_list_runs(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"runs": [{"run_id": "r1"}, {"run_id": "r2"}]})
        assert len(make_client().list_runs()) == 2


class TestSendMessage:
    def test_collects_reply(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{BASE_URL}/runs/stream",
            content=run_events(
                {"event": "run.started", "data": {"thread_id": "th-9"}},
                delta("Hello", "th-9"),
                delta(" there", "th-9"),
                {"event": "message.created", "data": {"message": {"content": [{"text": "Hello there"}]}}},
            ),
        )
        outcome = make_client().send_message("a1", "hi")
        assert outcome.text == "Hello there"
        assert outcome.thread_id == "th-9"
        assert outcome.agent_id == "a1"
        assert outcome.completed is True

        request = httpx_mock.get_request()
        assert request is not None
        assert json.loads(request.content) == {
            "message": {"role": "user", "content": "hi"},
            "agent_id": "a1",
        }

    def test_continues_thread(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(content=run_events(delta("ok", "th-1")))
        make_client().send_message("a1", "again", thread_id="th-1")
        request = httpx_mock.get_request()
        assert request is not None
        assert json.loads(request.content)["thread_id"] == "th-1"

    def test_error_status(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=404, json={"error": "agent not found"})
        with pytest.raises(NotFoundError):
            make_client().send_message("missing", "hi")


class TestStreamMessage:
    def test_streams_fragments(self, httpx_mock: HTTPXMock) -> None:
        body = run_events(delta("Hel", "th-first"), delta("lo", "th-second"))
        httpx_mock.add_response(stream=IteratorStream([body[:7], body[7:50], body[50:]]))
        received: list[str] = []

        outcome = make_client().stream_message("a1", "hi", on_fragment=lambda f: received.append(f.text))

        assert received == ["Hel", "lo"]
        assert outcome.text == "Hello"
        # A thread id that changes mid-stream does not replace the first one.
        assert outcome.thread_id == "th-first"

        request = httpx_mock.get_request()
        assert request is not None
        assert request.headers["accept"] == "text/event-stream"
        assert request.headers["IAM-API_KEY"] == "wxo-key"


class TestAssistantChat:
    def test_send(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{BASE_URL}/v1/assistants/as-1/chat",
            json={"message": "hi!", "session_id": "s-1", "message_id": "m-1"},
        )
        response = make_client().send_chat_message("as-1", ChatRequest(message="hi"))
        assert response.message == "hi!"

        request = httpx_mock.get_request()
        assert request is not None
        assert request.headers["authorization"] == "Bearer wxo-key"

    def test_stream(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{BASE_URL}/v1/assistants/as-1/chat?stream=true",
            stream=IteratorStream(
                [
                    b'data: {"content": "Hi"}\n\n',
                    b'data: {"content": " there"}\n\n',
                    b"data: [DONE]\n\n",
                ]
            ),
            headers={"content-type": "text/event-stream"},
        )
        received: list[str] = []
        response = make_client().stream_chat_message(
            "as-1", ChatRequest(message="hi", session_id="s-7"), on_fragment=lambda f: received.append(f.text)
        )
        assert received == ["Hi", " there"]
        assert response.message == "Hi there"
        assert response.session_id == "s-7"
        assert response.message_id

        request = httpx_mock.get_request()
        assert request is not None
        assert json.loads(request.content)["stream"] is True

    def test_stream_requires_event_stream(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"content": "not a stream"})
        with pytest.raises(StreamError):
            make_client().stream_chat_message("as-1", ChatRequest(message="hi"))
