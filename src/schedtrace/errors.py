#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Exceptions raised by schedtrace.
"""


class SchedTraceError(Exception):
    """Base class for all schedtrace errors."""


class ConfigurationError(SchedTraceError):
    """Raised when a loader registry or ingest run is misconfigured."""


class MissingFieldError(SchedTraceError):
    """
    A required tracepoint field was absent from an event.

    Attributes:
        field_name: Name of the missing field
        event_index: Index of the offending event in the trace
    """

    def __init__(self, field_name: str, event_index: int):
        self.field_name = field_name
        self.event_index = event_index
        super().__init__(f"field '{field_name}' not found for event {event_index}")

    def __reduce__(self):
        return (self.__class__, (self.field_name, self.event_index))


class EventFormatError(SchedTraceError):
    """Raised when a decoded JSON object cannot be turned into a TraceEvent."""


class TransitionBuilderError(SchedTraceError):
    """Raised when a transition setter is called before any transition was started."""
