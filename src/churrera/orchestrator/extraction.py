"""Structured result extraction from free-form agent transcripts."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.models import Job, ParallelDescription

logger = logging.getLogger(__name__)

RESULT_PATTERN = re.compile(r"<result>(.*?)</result>", re.IGNORECASE | re.DOTALL)
LIST_TYPE_PREFIX = "List_"


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ValueError(f"not a boolean: {value!r}")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"not an integer: {value!r}")
        return int(value)
    return int(value)


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    return float(value)


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


ELEMENT_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "Integer": _to_int,
    "Long": _to_int,
    "Double": _to_float,
    "Float": _to_float,
    "String": _to_str,
    "Boolean": _to_bool,
}


def element_converter(bind_result_type: str) -> Callable[[Any], Any] | None:
    """Converter for the element type of a ``List_<Type>`` tag, ``None`` if unsupported."""

    if not bind_result_type.startswith(LIST_TYPE_PREFIX):
        return None
    return ELEMENT_CONVERTERS.get(bind_result_type[len(LIST_TYPE_PREFIX) :])


def find_result_block(transcript: str) -> str | None:
    """Content of the last ``<result>`` block, stripped; ``None`` when absent or empty."""

    matches = RESULT_PATTERN.findall(transcript)
    if not matches:
        return None
    content = matches[-1].strip()
    return content or None


def _first_array(node: Any) -> list[Any] | None:
    """First array in depth-first value order."""

    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, list):
            return current
        if isinstance(current, dict):
            stack.extend(reversed(list(current.values())))
    return None


def select_array(payload: Any, preferred_key: str) -> list[Any] | None:
    """Pick the result array out of a decoded ``<result>`` payload."""

    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return None
    preferred = payload.get(preferred_key)
    if isinstance(preferred, list):
        return preferred
    return _first_array(payload)


def parse_result_values(content: str, bind_result_type: str) -> list[Any]:
    """Decode and type-convert the values of a result block; empty on any failure."""

    converter = element_converter(bind_result_type)
    if converter is None:
        logger.warning("Unsupported bind result type %r", bind_result_type)
        return []
    try:
        payload = json.loads(content)
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.warning("Result block is not valid JSON: %s", exc)
        return []
    array = select_array(payload, bind_result_type)
    if array is None:
        logger.warning("Result block holds no JSON array")
        return []
    try:
        return [converter(item) for item in array]
    except (TypeError, ValueError) as exc:
        logger.warning("Result element does not match %s: %s", bind_result_type, exc)
        return []


class ResultExtractor:
    """Turns a finished parallel parent's transcript into typed values."""

    def __init__(self, *, store: JobStore, fetch_transcript: Callable[[str], str]) -> None:
        self.store = store
        self.fetch_transcript = fetch_transcript

    def extract(self, job: Job, parallel: ParallelDescription) -> list[Any]:
        """Extract values and persist them as ``job.result``.

        Transcript fetch errors propagate; parse and shape failures return an
        empty list and leave the job untouched.
        """

        if job.agent_id is None:
            return []
        transcript = self.fetch_transcript(job.agent_id)
        content = find_result_block(transcript)
        if content is None:
            logger.warning("No <result> block in transcript of job %s", job.job_id)
            return []
        values = parse_result_values(content, parallel.bind_result_type)
        if not values:
            return []
        self.store.save_job(job.evolve(result=json.dumps(values, separators=(",", ":"))))
        logger.info("Extracted %d result values for job %s", len(values), job.job_id)
        return values
