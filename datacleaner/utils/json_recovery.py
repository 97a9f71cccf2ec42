"""
JSON Recovery for LLM Output
============================

Models are asked for strict JSON but routinely wrap it in markdown fences,
prepend conversational text, or get truncated. Recovery is an ordered list of
strategies; each one turns the raw text into a candidate string (or None when
it does not apply). The first candidate that parses AND validates against the
target type wins.

Example:
    payload = recover_json(raw_text, ProfilesPayload)
    rows = recover_json(raw_text, list[PortPriceRecord], strategies=ARRAY_STRATEGIES)
"""

import json
import re
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from datacleaner.utils.errors import ParseError
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Strategy = Callable[[str], str | None]

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def as_is(text: str) -> str | None:
    """Use the text unchanged."""
    return text


def strip_code_fences(text: str) -> str | None:
    """Remove markdown code fences (```json / ```)."""
    if "```" not in text:
        return None
    return _FENCE_RE.sub("", text).strip()


def _slice_between(text: str, opener: str, closer: str) -> str | None:
    cleaned = _FENCE_RE.sub("", text)
    first = cleaned.find(opener)
    last = cleaned.rfind(closer)
    if first == -1 or last == -1 or last < first:
        return None
    return cleaned[first : last + 1]


def slice_object(text: str) -> str | None:
    """Keep everything from the first '{' to the last '}'."""
    return _slice_between(text, "{", "}")


def slice_array(text: str) -> str | None:
    """Keep everything from the first '[' to the last ']'."""
    return _slice_between(text, "[", "]")


OBJECT_STRATEGIES: tuple[Strategy, ...] = (as_is, strip_code_fences, slice_object)
ARRAY_STRATEGIES: tuple[Strategy, ...] = (as_is, strip_code_fences, slice_array)


def recover_json(
    raw_text: str,
    target: Any = Any,
    strategies: Sequence[Strategy] = OBJECT_STRATEGIES,
    context: str = "llm_response",
) -> Any:
    """
    Recover a value of type ``target`` from unreliable model output.

    Args:
        raw_text: Text returned by the model
        target: Type to validate against (pydantic model, list[...], Any)
        strategies: Ordered recovery strategies
        context: Label used in log events

    Returns:
        Validated value

    Raises:
        ParseError: If no strategy yields a valid value; carries the raw text
    """
    if raw_text is None or not str(raw_text).strip():
        raise ParseError("Empty response content", raw_text=raw_text or "")

    adapter = TypeAdapter(target)
    last_error = "no strategy applied"

    for strategy in strategies:
        candidate = strategy(raw_text)
        if candidate is None:
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = f"JSON parse error: {e}"
            continue
        try:
            value = adapter.validate_python(data)
        except PydanticValidationError as e:
            last_error = f"Schema violation: {e.error_count()} error(s): {e.errors()[0]['msg']}"
            continue

        if strategy is not as_is:
            logger.debug(
                "json_recovery.recovered",
                context=context,
                strategy=strategy.__name__,
            )
        return value

    logger.warning(
        "json_recovery.failed",
        context=context,
        error=last_error,
        raw_preview=raw_text[:200],
    )
    raise ParseError(
        f"JSON Parse Failed: {last_error}",
        raw_text=raw_text,
        details={"context": context},
    )
