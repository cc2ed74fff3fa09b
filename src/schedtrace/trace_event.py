#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Raw trace events as produced by the trace decoder.

The decoder itself lives elsewhere; this module only defines the event
shape the loaders consume and a reader for the JSON form of it.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, TextIO

from .errors import EventFormatError
from .sched_types import UNKNOWN_CPU, Timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceEvent:
    """A single decoded tracepoint event."""
    index: int
    timestamp: Timestamp
    name: str
    cpu: int = UNKNOWN_CPU
    clipped: bool = False
    number_properties: Mapping[str, int] = field(default_factory=dict)
    text_properties: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> 'TraceEvent':
        """
        Build an event from its JSON object form.

        Args:
            obj: Dictionary with keys index, timestamp, name and optionally
                cpu, clipped, number_properties, text_properties

        Returns:
            TraceEvent

        Raises:
            EventFormatError: If an envelope key is missing or malformed
        """
        for key in ('index', 'timestamp', 'name'):
            if key not in obj:
                raise EventFormatError(f"event object is missing '{key}'")
        clipped = obj.get('clipped', False)
        if not isinstance(clipped, bool):
            raise EventFormatError(f"'clipped' must be a boolean, got {clipped!r}")
        try:
            numbers = {str(k): _integral(v, k) for k, v in obj.get('number_properties', {}).items()}
            texts = {str(k): str(v) for k, v in obj.get('text_properties', {}).items()}
        except AttributeError as e:
            raise EventFormatError(f"malformed event object: {e}") from e
        return cls(
            index=_integral(obj['index'], 'index'),
            timestamp=Timestamp(_integral(obj['timestamp'], 'timestamp')),
            name=str(obj['name']),
            cpu=_integral(obj.get('cpu', UNKNOWN_CPU), 'cpu'),
            clipped=clipped,
            number_properties=numbers,
            text_properties=texts,
        )


def _integral(value: Any, name: str) -> int:
    """Return value as an int, rejecting bools, fractions and non-numbers."""
    if isinstance(value, bool):
        raise EventFormatError(f"'{name}' must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise EventFormatError(f"'{name}' must be an integer, got {value!r}")


def read_json_objects(stream: TextIO) -> Iterator[Dict[str, Any]]:
    """
    Read complete JSON objects from a stream, handling multi-line JSON.
    Yields one complete JSON object at a time.
    """
    buffer = ""
    brace_count = 0
    in_string = False
    escape_next = False

    for line in stream:
        for char in line:
            if brace_count == 0 and not buffer and char != '{':
                # Separators between top-level objects
                continue
            buffer += char

            if char == '"' and not escape_next:
                in_string = not in_string

            escape_next = (char == '\\' and not escape_next)

            if in_string:
                continue
            if char == '{':
                brace_count += 1
            elif char == '}':
                brace_count -= 1
                if brace_count == 0:
                    try:
                        yield json.loads(buffer)
                    except json.JSONDecodeError as e:
                        logger.error(f"JSON decode error: {e}")
                    buffer = ""

    if buffer.strip():
        logger.warning(f"Discarding {len(buffer)} bytes of incomplete JSON at end of input")


def read_trace_events(stream: TextIO) -> Iterator[TraceEvent]:
    """
    Read TraceEvents from a stream of JSON objects.

    Raises:
        EventFormatError: On the first object that is not a valid event
    """
    for obj in read_json_objects(stream):
        yield TraceEvent.from_dict(obj)
