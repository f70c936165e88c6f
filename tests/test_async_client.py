"""Tests for the asynchronous AsyncWatsonxClient."""

import asyncio
import json

import httpx
import pytest
from pytest_httpx import HTTPXMock, IteratorStream

from watsonx_client import AsyncWatsonxClient, AuthError, BatchUnit, GenerationConfig, NotFoundError, TextFragment

BASE_URL = "http://localhost:9999"
IAM_URL = "http://iam.localhost"


def make_client(**kwargs) -> AsyncWatsonxClient:
    kwargs.setdefault("access_token", "test-token")
    return AsyncWatsonxClient(api_key="test-key", project_id="proj-1", api_url=BASE_URL, iam_url=IAM_URL, **kwargs)


def generation_response(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    if body["input"] == "fail":
        return httpx.Response(500, json={"error": "generation backend down"})
    return httpx.Response(200, json={"results": [{"generated_text": body["input"].upper()}]})


class TestAsyncConnect:
    async def test_stores_token(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{IAM_URL}/identity/token", json={"access_token": "abc"})
        async with make_client(access_token=None) as client:
            await client.connect()
            assert client.is_connected

    async def test_rejected_key(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=401)
        async with make_client(access_token=None) as client:
            with pytest.raises(AuthError):
                await client.connect()


class TestAsyncGenerateText:
    async def test_returns_text(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"results": [{"generated_text": "hello"}]})
        async with make_client() as client:
            result = await client.generate_text("hi")
            assert result.text == "hello"

    async def test_not_found(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=404, json={"error": "no such model"})
        async with make_client() as client:
            with pytest.raises(NotFoundError):
                await client.generate_text("hi")


class TestAsyncGenerateTextStream:
    async def test_sync_handler(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            stream=IteratorStream(
                [
                    b'data: {"results":[{"generated_text":"Hello"}]}\n',
                    b'data: {"results":[{"generated_text":" world"}]}\n',
                    b"data: [DONE]\n",
                ]
            )
        )
        received: list[str] = []
        async with make_client() as client:
            outcome = await client.generate_text_stream("hi", on_fragment=lambda f: received.append(f.text))

        assert received == ["Hello", " world"]
        assert outcome.text == "Hello world"
        assert outcome.completed is True

    async def test_coroutine_handler(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            stream=IteratorStream([b'data: {"results":[{"generated_text":"caf', b'\xc3', b'\xa9"}]}\n'])
        )
        received: list[TextFragment] = []

        async def handler(fragment: TextFragment) -> None:
            await asyncio.sleep(0)
            received.append(fragment)

        async with make_client() as client:
            outcome = await client.generate_text_stream("hi", on_fragment=handler)

        assert [f.text for f in received] == ["café"]
        assert outcome.completed is False

    async def test_error_status(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=404, json={"error": "gone"})
        async with make_client() as client:
            with pytest.raises(NotFoundError, match="gone"):
                await client.generate_text_stream("hi")


class TestAsyncListModels:
    async def test_bare_array(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=[{"model_id": "ibm/granite-3-8b-instruct"}])
        async with make_client() as client:
            models = await client.list_models()
        assert [m.model_id for m in models] == ["ibm/granite-3-8b-instruct"]


class TestAsyncGenerateBatch:
    async def test_isolates_failures(self, httpx_mock: HTTPXMock) -> None:
        for _ in range(5):
            httpx_mock.add_callback(generation_response)
        units = [BatchUnit(prompt=p, id=str(i)) for i, p in enumerate(["a", "b", "fail", "d", "e"], start=1)]

        async with make_client() as client:
            report = await client.generate_batch(units, concurrency_limit=2)

        assert report.total == 5
        assert report.success_count == 4
        assert report.failure_count == 1
        assert report.failures[0].id == "3"
        assert [item.result.text for item in report.successes] == ["A", "B", "D", "E"]

    async def test_unit_config_overrides_default(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_callback(generation_response)
        unit = BatchUnit(prompt="x", config=GenerationConfig(model_id="openai/gpt-oss-120b"))
        async with make_client() as client:
            await client.generate_batch([unit])

        request = httpx_mock.get_request()
        assert request is not None
        assert json.loads(request.content)["model_id"] == "openai/gpt-oss-120b"
