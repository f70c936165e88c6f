"""Synchronous client for the watsonx text generation API."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from typing import Any

import httpx

from ._config import Config, resolve_config
from .batch import run_batch_threaded
from .errors import AuthError, NetworkError, StreamError, WatsonxError, error_from_status
from .models import DEFAULT_MODEL
from .normalize import ListShape
from .quality import assess_quality
from .sse import GenerationStreamDecoder, iter_fragments
from .types import (
    BatchReport,
    BatchUnit,
    FoundationModelSpec,
    GenerationConfig,
    GenerationResult,
    ModelInfo,
    StreamOutcome,
    TextFragment,
)

SDK_VERSION = "0.3.0"

TOKEN_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
GENERATION_PATH = "/ml/v1/text/generation"
GENERATION_STREAM_PATH = "/ml/v1/text/generation_stream"
MODEL_SPECS_PATH = "/ml/v1/foundation_model_specs"

MODEL_SPECS = ListShape(FoundationModelSpec, aliases=("resources",))


def generation_body(prompt: str, config: GenerationConfig, project_id: str, *, min_new_tokens: int = 1) -> dict[str, Any]:
    return {
        "input": prompt,
        "parameters": config.to_parameters(min_new_tokens),
        "model_id": config.model_id,
        "project_id": project_id,
    }


def first_generated_text(data: Any) -> str:
    results = data.get("results") if isinstance(data, dict) else None
    if not results or not isinstance(results[0], dict) or not isinstance(results[0].get("generated_text"), str):
        raise WatsonxError("No generation results returned")
    return results[0]["generated_text"]


class WatsonxClient:
    """Synchronous client for the watsonx text generation API.

    Example::

        with WatsonxClient() as client:
            client.connect()
            result = client.generate_text("Why is the sky blue?")
            print(result.text)
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
        self._http = httpx.Client(
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

    def with_model(self, model_id: str) -> WatsonxClient:
        """Set the model used when no config is passed. Returns self."""
        self._model_id = model_id
        return self

    def close(self) -> None:
        """Close the HTTP client."""
        self._http.close()

    def __enter__(self) -> WatsonxClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -- API methods --

    def connect(self) -> None:
        """Exchange the API key for a bearer token."""
        if not self._config.api_key:
            raise AuthError("No API key configured. Set WATSONX_API_KEY or pass api_key.")
        try:
            response = self._http.post(
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

    def generate(self, prompt: str, config: GenerationConfig | None = None) -> GenerationResult:
        """Generate text through the streaming endpoint and return it whole."""
        config = config or self._default_config()
        outcome = self.generate_text_stream(prompt, config)
        return GenerationResult(text=outcome.text, model_id=config.model_id, request_id=str(uuid.uuid4()))

    def generate_text(self, prompt: str, config: GenerationConfig | None = None) -> GenerationResult:
        """Generate text with the non-streaming endpoint."""
        config = config or self._default_config()
        data = self._request(
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

    def generate_text_stream(
        self,
        prompt: str,
        config: GenerationConfig | None = None,
        on_fragment: Callable[[TextFragment], Any] | None = None,
    ) -> StreamOutcome:
        """Stream a generation, calling ``on_fragment`` for each piece of text.

        A stream that ends without ``[DONE]`` still returns what arrived, with
        ``completed`` set to False.
        """
        config = config or self._default_config()
        decoder = GenerationStreamDecoder(config.model_id)
        try:
            with self._http.stream(
                "POST",
                GENERATION_STREAM_PATH,
                params=self._version_params(),
                json=generation_body(prompt, config, self._config.project_id),
                headers={**self._auth_headers(), "Accept": "text/event-stream"},
                timeout=config.timeout,
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
            raise StreamError(f"Generation stream failed: {e}") from e
        return decoder.finalize()

    def list_models(self) -> list[ModelInfo]:
        """List the foundation models available in this region."""
        data = self._request("GET", MODEL_SPECS_PATH)
        return [spec.to_model_info() for spec in MODEL_SPECS.resolve(data)]

    def generate_batch(
        self,
        units: Iterable[BatchUnit],
        config: GenerationConfig | None = None,
        *,
        concurrency_limit: int | None = None,
        timeout: float | None = None,
    ) -> BatchReport:
        """Run many non-streaming generations on a thread pool.

        Each unit uses its own config when it has one, else ``config``.
        """
        default = config or self._default_config()

        def operation(unit: BatchUnit) -> GenerationResult:
            return self.generate_text(unit.prompt, unit.config or default)

        return run_batch_threaded(units, operation, max_workers=concurrency_limit, timeout=timeout)

    def generate_batch_simple(
        self,
        prompts: Iterable[str],
        config: GenerationConfig | None = None,
        **kwargs: Any,
    ) -> BatchReport:
        """Batch-generate plain prompts that share one config."""
        return self.generate_batch([BatchUnit(prompt=p) for p in prompts], config, **kwargs)

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

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {**self._auth_headers(), "Accept": "application/json"}
        try:
            response = self._http.request(method, path, params=self._version_params(), headers=headers, **kwargs)
        except httpx.ConnectError as e:
            raise NetworkError(f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e

        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)
        return response.json()
