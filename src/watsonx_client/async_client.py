"""Asynchronous client for the watsonx text generation API."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from types import TracebackType
from typing import Any

import httpx

from ._config import Config, resolve_config
from .batch import run_batch
from .client import (
    GENERATION_PATH,
    GENERATION_STREAM_PATH,
    MODEL_SPECS,
    MODEL_SPECS_PATH,
    SDK_VERSION,
    TOKEN_GRANT_TYPE,
    first_generated_text,
    generation_body,
)
from .errors import AuthError, NetworkError, StreamError, error_from_status
from .models import DEFAULT_MODEL
from .quality import assess_quality
from .sse import FragmentHandler, GenerationStreamDecoder, aiter_fragments, emit
from .types import (
    BatchReport,
    BatchUnit,
    GenerationConfig,
    GenerationResult,
    ModelInfo,
    StreamOutcome,
)


class AsyncWatsonxClient:
    """Asynchronous client for the watsonx text generation API.

    Example::

        async with AsyncWatsonxClient() as client:
            await client.connect()
            report = await client.generate_batch_simple(["Hi", "Hello"], concurrency_limit=2)
            print(report.success_count)
    """

    def __init__(
        self,
        api_key: str | None = None,
        project_id: str | None = None,
        *,
        api_url: str | None = None,
        iam_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        model_id: str | None = None,
        access_token: str | None = None,
    ) -> None:
        self._config: Config = resolve_config(api_key, project_id, api_url, iam_url, api_version, timeout)
        self._access_token = access_token
        self._model_id = model_id or DEFAULT_MODEL
        self._http = httpx.AsyncClient(
            base_url=self._config.api_url,
            headers={"User-Agent": f"watsonx-client-python/{SDK_VERSION}"},
            timeout=self._config.timeout,
        )

    @property
    def config(self) -> Config:
        return self._config

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def is_connected(self) -> bool:
        return self._access_token is not None

    def with_model(self, model_id: str) -> AsyncWatsonxClient:
        """Set the model used when no config is passed. Returns self."""
        self._model_id = model_id
        return self

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> AsyncWatsonxClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- API methods --

    async def connect(self) -> None:
        """Exchange the API key for a bearer token."""
        if not self._config.api_key:
            raise AuthError("No API key configured. Set WATSONX_API_KEY or pass api_key.")
        try:
            response = await self._http.post(
                self._config.token_url,
                data={"grant_type": TOKEN_GRANT_TYPE, "apikey": self._config.api_key},
                headers={"Accept": "application/json"},
            )
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e

        if response.status_code >= 400:
            raise AuthError(f"Authentication failed: {response.status_code}")
        token = response.json().get("access_token")
        if not isinstance(token, str):
            raise AuthError("Authentication response did not include an access token")
        self._access_token = token

    async def generate(self, prompt: str, config: GenerationConfig | None = None) -> GenerationResult:
        """Generate text through the streaming endpoint and return it whole."""
        config = config or self._default_config()
        outcome = await self.generate_text_stream(prompt, config)
        return GenerationResult(text=outcome.text, model_id=config.model_id, request_id=str(uuid.uuid4()))

    async def generate_text(self, prompt: str, config: GenerationConfig | None = None) -> GenerationResult:
        """Generate text with the non-streaming endpoint."""
        config = config or self._default_config()
        data = await self._request(
            "POST",
            GENERATION_PATH,
            json=generation_body(prompt, config, self._config.project_id, min_new_tokens=5),
            timeout=config.timeout,
        )
        return GenerationResult(
            text=first_generated_text(data),
            model_id=config.model_id,
            request_id=str(uuid.uuid4()),
        )

    async def generate_text_stream(
        self,
        prompt: str,
        config: GenerationConfig | None = None,
        on_fragment: FragmentHandler | None = None,
    ) -> StreamOutcome:
        """Stream a generation, calling ``on_fragment`` for each piece of text.

        ``on_fragment`` may be a coroutine function; the next chunk is not read
        until it returns.
        """
        config = config or self._default_config()
        decoder = GenerationStreamDecoder(config.model_id)
        request = self._http.build_request(
            "POST",
            GENERATION_STREAM_PATH,
            params=self._version_params(),
            json=generation_body(prompt, config, self._config.project_id),
            headers={**self._auth_headers(), "Accept": "text/event-stream"},
            timeout=config.timeout,
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
            raise StreamError(f"Generation stream failed: {e}") from e
        return decoder.finalize()

    async def list_models(self) -> list[ModelInfo]:
        """List the foundation models available in this region."""
        data = await self._request("GET", MODEL_SPECS_PATH)
        return [spec.to_model_info() for spec in MODEL_SPECS.resolve(data)]

    async def generate_batch(
        self,
        units: Iterable[BatchUnit],
        config: GenerationConfig | None = None,
        *,
        concurrency_limit: int | None = None,
        timeout: float | None = None,
    ) -> BatchReport:
        """Run many non-streaming generations concurrently.

        Each unit uses its own config when it has one, else ``config``. One
        failing unit is reported in its outcome and does not stop the others.
        """
        default = config or self._default_config()

        async def operation(unit: BatchUnit) -> GenerationResult:
            return await self.generate_text(unit.prompt, unit.config or default)

        return await run_batch(units, operation, concurrency_limit=concurrency_limit, timeout=timeout)

    async def generate_batch_simple(
        self,
        prompts: Iterable[str],
        config: GenerationConfig | None = None,
        **kwargs: Any,
    ) -> BatchReport:
        """Batch-generate plain prompts that share one config."""
        return await self.generate_batch([BatchUnit(prompt=p) for p in prompts], config, **kwargs)

    def assess_quality(self, text: str, prompt: str = "") -> float:
        """Heuristic 0..1 quality score of ``text``."""
        return assess_quality(text, prompt)

    # -- Internal --

    def _default_config(self) -> GenerationConfig:
        return GenerationConfig(model_id=self._model_id)

    def _version_params(self) -> dict[str, str]:
        return {"version": self._config.api_version}

    def _auth_headers(self) -> dict[str, str]:
        if self._access_token is None:
            raise AuthError("Not connected. Call connect() first.")
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {**self._auth_headers(), "Accept": "application/json"}
        try:
            response = await self._http.request(method, path, params=self._version_params(), headers=headers, **kwargs)
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e

        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)
        return response.json()
