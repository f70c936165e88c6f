"""Exception hierarchy for the watsonx SDK."""

from __future__ import annotations

import json


class WatsonxError(Exception):
    """Base error for all watsonx SDK errors."""


class AuthError(WatsonxError):
    """401 Unauthorized / 403 Forbidden, or no token available."""

    status = 401


class NotFoundError(WatsonxError):
    """404 Not Found."""

    status = 404


class ValidationError(WatsonxError):
    """400 Bad Request."""

    status = 400


class RateLimitError(WatsonxError):
    """429 Too Many Requests."""

    status = 429


class ServerError(WatsonxError):
    """500 Internal Server Error."""

    status = 500


class NetworkError(WatsonxError):
    """Network / connection error."""


class StreamError(WatsonxError):
    """Transport failure while reading a stream."""


class ShapeMismatchError(WatsonxError):
    """A list payload matched none of the shapes the endpoint accepts."""


class ConfigurationError(WatsonxError):
    """Missing or invalid client configuration."""


def _message_from_body(body: str) -> str:
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body
    if not isinstance(parsed, dict):
        return body
    for key in ("error", "message"):
        value = parsed.get(key)
        if isinstance(value, str):
            return value
    errors = parsed.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        message = errors[0].get("message")
        if isinstance(message, str):
            return message
    return body


def error_from_status(status: int, body: str) -> WatsonxError:
    """Map an HTTP status code + body to the appropriate error."""
    message = _message_from_body(body)
    errors = {
        400: ValidationError,
        401: AuthError,
        403: AuthError,
        404: NotFoundError,
        429: RateLimitError,
    }
    cls = errors.get(status, ServerError)
    return cls(f"{message} (status {status})")
