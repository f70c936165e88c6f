"""Configuration resolution for the watsonx SDK."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import ConfigurationError
from .models import (
    DEFAULT_API_URL,
    DEFAULT_API_VERSION,
    DEFAULT_IAM_URL,
    DEFAULT_ORCHESTRATE_REGION,
    DEFAULT_ORCHESTRATE_TIMEOUT,
    DEFAULT_TIMEOUT_SECS,
)


@dataclass(frozen=True)
class Config:
    api_key: str | None
    project_id: str
    iam_url: str
    api_url: str
    api_version: str
    timeout: float

    @property
    def token_url(self) -> str:
        host = self.iam_url if "://" in self.iam_url else f"https://{self.iam_url}"
        return f"{host.rstrip('/')}/identity/token"


@dataclass(frozen=True)
class OrchestrateConfig:
    instance_id: str
    region: str
    api_key: str | None
    timeout: float
    base_url_override: str | None = None

    @property
    def base_url(self) -> str:
        """Base URL for orchestration endpoints, without a trailing slash."""
        if self.base_url_override:
            return self.base_url_override.replace("{}", self.instance_id).rstrip("/")
        return (
            f"https://api.{self.region}.watson-orchestrate.cloud.ibm.com"
            f"/instances/{self.instance_id}/v1/orchestrate"
        )


def _env(*names: str) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value is not None:
            return value
    return None


def _timeout_from_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def resolve_config(
    api_key: str | None = None,
    project_id: str | None = None,
    api_url: str | None = None,
    iam_url: str | None = None,
    api_version: str | None = None,
    timeout: float | None = None,
) -> Config:
    """Resolve config from constructor args > env vars > defaults."""
    project = project_id or _env("WATSONX_PROJECT_ID", "PROJECT_ID")
    if not project or not project.strip():
        raise ConfigurationError("WATSONX_PROJECT_ID or PROJECT_ID must be set")

    return Config(
        api_key=api_key or _env("WATSONX_API_KEY", "API_KEY"),
        project_id=project.strip(),
        iam_url=iam_url or _env("IAM_IBM_CLOUD_URL") or DEFAULT_IAM_URL,
        api_url=(api_url or _env("WATSONX_API_URL") or DEFAULT_API_URL).rstrip("/"),
        api_version=api_version or _env("WATSONX_API_VERSION") or DEFAULT_API_VERSION,
        timeout=timeout if timeout is not None else _timeout_from_env("WATSONX_TIMEOUT_SECS", DEFAULT_TIMEOUT_SECS),
    )


def resolve_orchestrate_config(
    instance_id: str | None = None,
    api_key: str | None = None,
    region: str | None = None,
    base_url: str | None = None,
    timeout: float | None = None,
) -> OrchestrateConfig:
    """Resolve orchestration config from constructor args > env vars > defaults."""
    instance = instance_id or _env("WXO_INSTANCE_ID")
    if not instance or not instance.strip():
        raise ConfigurationError("WXO_INSTANCE_ID must be set")

    return OrchestrateConfig(
        instance_id=instance.strip(),
        region=region or _env("WXO_REGION") or DEFAULT_ORCHESTRATE_REGION,
        api_key=api_key or _env("WXO_API_KEY"),
        timeout=timeout if timeout is not None else DEFAULT_ORCHESTRATE_TIMEOUT,
        base_url_override=base_url or _env("WXO_URL"),
    )
