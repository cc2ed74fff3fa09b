#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
schedtrace: scheduler tracepoint to thread-transition translation.

Converts raw sched_switch, sched_wakeup, sched_wakeup_new and
sched_migrate_task events into per-thread transitions annotated with
conflict policies for a downstream timeline assembler.
"""

__version__ = "0.1.0"
__all__ = [
    "PID",
    "CPUID",
    "Priority",
    "ThreadState",
    "ConflictPolicy",
    "UNKNOWN_PID",
    "UNKNOWN_CPU",
    "UNKNOWN_PRIORITY",
    "UNKNOWN_COMMAND",
    "StringBank",
    "TraceEvent",
    "ThreadTransition",
    "ThreadTransitionSetBuilder",
    "EventLoader",
    "default_event_loaders",
    "switch_only_loaders",
    "SchedTraceError",
    "ConfigurationError",
    "MissingFieldError",
    "TransitionIngestor",
    "load_transitions",
]

from .sched_types import (
    PID, CPUID, Priority, ThreadState, ConflictPolicy,
    UNKNOWN_PID, UNKNOWN_CPU, UNKNOWN_PRIORITY, UNKNOWN_COMMAND,
)
from .errors import SchedTraceError, ConfigurationError, MissingFieldError
from .string_bank import StringBank
from .trace_event import TraceEvent
from .transitions import ThreadTransition, ThreadTransitionSetBuilder
from .event_loader import EventLoader, default_event_loaders, switch_only_loaders
from .ingest import TransitionIngestor, load_transitions
