"""
LLM response parsing and validation.

Models are asked for exactly one JSON object or array, but often wrap it in
prose or markdown fences. The parser:

1. Strips code fences
2. Scans for balanced {...} / [...] fragments (string- and escape-aware),
   in order of appearance, decoding each as JSON
3. Validates each decoded value against the expected pydantic shape and
   returns the first that matches

Anything that fails (no fragment, undecodable, wrong shape, empty list)
raises MalformedResponseError. There is no partial result.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Annotated, Any, Generic, TypeVar

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from rapport.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_CLOSERS = {"{": "}", "[": "]"}
_CODE_FENCE = re.compile(r"```(?:json|JSON)?")


class MalformedResponseError(ValueError):
    """Provider output did not contain a payload of the expected shape."""


@dataclass(frozen=True)
class ResponseShape(Generic[T]):
    """Expected payload: a JSON object or a non-empty JSON array of objects."""

    name: str
    opening: str
    adapter: TypeAdapter

    @classmethod
    def object(cls, model: type[BaseModel]) -> ResponseShape:
        return cls(name=model.__name__, opening="{", adapter=TypeAdapter(model))

    @classmethod
    def array(cls, item: type[BaseModel]) -> ResponseShape:
        adapter = TypeAdapter(Annotated[list[item], Field(min_length=1)])  # type: ignore[valid-type]
        return cls(name=f"list[{item.__name__}]", opening="[", adapter=adapter)


def iter_balanced_fragments(text: str, opening: str) -> Iterator[str]:
    """
    Yield every balanced fragment starting with `opening`, in order.

    Brackets inside JSON strings are ignored. A fragment whose brackets do
    not nest properly is skipped.
    """
    start = text.find(opening)
    while start != -1:
        fragment = _scan_from(text, start)
        if fragment is not None:
            yield fragment
        start = text.find(opening, start + 1)


def _scan_from(text: str, start: int) -> str | None:
    stack: list[str] = []
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return text[start : index + 1]

    return None


def iter_json_values(text: str, opening: str = "{") -> Iterator[Any]:
    """Decode each balanced JSON fragment of the requested kind, in order, skipping undecodable ones."""
    cleaned = _CODE_FENCE.sub("", text).strip()

    for fragment in iter_balanced_fragments(cleaned, opening):
        try:
            yield json.loads(fragment)
        except json.JSONDecodeError as e:
            logger.debug("Skipping undecodable fragment (%s): %.80s", e, fragment)


def parse_payload(raw_text: str | None, shape: ResponseShape[T]) -> T:
    """
    Extract and validate the payload for `shape` from raw provider text.

    Fragments are tried in order; the first one that validates wins, so an
    example like "[10]" in the prose does not hide the real payload.

    Raises:
        MalformedResponseError: Missing, undecodable, or mismatched payload
    """
    if not raw_text or not raw_text.strip():
        raise MalformedResponseError("empty response")

    last_error: ValidationError | None = None
    for data in iter_json_values(raw_text, shape.opening):
        try:
            return shape.adapter.validate_python(data)
        except ValidationError as e:
            logger.debug("Fragment does not match %s: %d error(s)", shape.name, e.error_count())
            last_error = e

    if last_error is None:
        raise MalformedResponseError(
            f"no decodable JSON {shape.opening}...{_CLOSERS[shape.opening]} in response"
        )
    raise MalformedResponseError(
        f"response does not match {shape.name}: {last_error.error_count()} validation error(s)"
    ) from last_error
