"""Normalization of list payloads that come back in more than one shape.

The same logical endpoint may answer with a bare JSON array, or with an object
holding the array under one of several field names. Endpoints that are not
deployed everywhere are declared optional, and an absent or unrecognized
payload from them is read as an empty list.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Generic, Sequence, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ShapeMismatchError, WatsonxError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_UNPARSEABLE = object()


class Availability(str, Enum):
    """What an endpoint does when its payload is missing or unrecognized."""

    EMPTY_OK = "empty_ok"
    PROPAGATE = "propagate"


@lru_cache(maxsize=None)
def _list_adapter(item_type: type[BaseModel]) -> TypeAdapter:
    return TypeAdapter(list[item_type])  # type: ignore[valid-type]


def _load(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return _UNPARSEABLE
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return _UNPARSEABLE
    return raw


def _validate_each(items: list[Any], item_type: type[T]) -> list[T]:
    parsed: list[T] = []
    for position, item in enumerate(items):
        try:
            parsed.append(item_type.model_validate(item))
        except PydanticValidationError as e:
            logger.debug("Skipping %s at position %d: %s", item_type.__name__, position, e.error_count())
    return parsed


def normalize_list(
    raw: Any,
    item_type: type[T],
    aliases: Sequence[str] = (),
    on_unavailable: Availability = Availability.PROPAGATE,
) -> list[T]:
    """Read ``raw`` as a list of ``item_type``.

    ``raw`` may be bytes, text or already-decoded JSON. Shapes are tried in
    order: a bare array of valid items, then an object whose first matching
    alias holds an array (invalid elements are skipped). Anything else yields
    ``[]`` for ``Availability.EMPTY_OK`` and raises ``ShapeMismatchError``
    otherwise.
    """
    data = _load(raw)

    if isinstance(data, list):
        try:
            return _list_adapter(item_type).validate_python(data)
        except PydanticValidationError as e:
            logger.debug("Bare array is not a list of %s: %s", item_type.__name__, e.error_count())

    if isinstance(data, dict):
        for alias in aliases:
            items = data.get(alias)
            if isinstance(items, list):
                return _validate_each(items, item_type)

    if on_unavailable is Availability.EMPTY_OK:
        return []
    expected = ", ".join(repr(a) for a in aliases) or "none"
    raise ShapeMismatchError(f"Expected a list of {item_type.__name__} (aliases: {expected})")


@dataclass(frozen=True)
class ListShape(Generic[T]):
    """How one list endpoint's payload is read."""

    item_type: type[T]
    aliases: tuple[str, ...] = ()
    availability: Availability = Availability.PROPAGATE

    @property
    def optional(self) -> bool:
        return self.availability is Availability.EMPTY_OK

    def resolve(self, raw: Any) -> list[T]:
        return normalize_list(raw, self.item_type, self.aliases, self.availability)

    def unavailable(self, error: WatsonxError) -> list[T]:
        """Result for an endpoint that answered "not found"."""
        if self.optional:
            logger.debug("Optional endpoint unavailable, returning no %s: %s", self.item_type.__name__, error)
            return []
        raise error
