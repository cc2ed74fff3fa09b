#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Value types shared by the scheduler event loaders.

PIDs, CPU IDs and priorities are plain integers with a -1 sentinel meaning
"unknown". Unknown values never take part in conflict checks.
"""

from enum import Enum
from typing import Any, NewType, Tuple

PID = NewType('PID', int)
CPUID = NewType('CPUID', int)
Priority = NewType('Priority', int)
StringID = NewType('StringID', int)
Timestamp = NewType('Timestamp', int)

UNKNOWN_PID = PID(-1)
UNKNOWN_CPU = CPUID(-1)
UNKNOWN_PRIORITY = Priority(-1)
UNKNOWN_COMMAND = StringID(-1)

# Kernel TASK_RUNNING; any other prev_state value means the task blocked.
TASK_RUNNING = 0


class ThreadState(Enum):
    """Run-state of a thread as seen by the scheduler."""
    UNKNOWN = "unknown"
    RUNNING = "running"
    WAITING = "waiting"
    SLEEPING = "sleeping"

    def conflicts_with(self, other: 'ThreadState') -> bool:
        """Return True if both states are known and differ."""
        return values_conflict(self, other, ThreadState.UNKNOWN)


class ConflictPolicy(Enum):
    """
    Directive telling the timeline assembler what to do when a transition
    disagrees with its chronological neighbour for the same PID.
    """
    ASSERT = "assert"
    DROP = "drop"
    INSERT_SYNTHETIC = "insert_synthetic"


def values_conflict(a: Any, b: Any, unknown: Any) -> bool:
    """
    Check whether two channel values disagree.

    Args:
        a: First value
        b: Second value
        unknown: The channel's unknown sentinel

    Returns:
        True only when neither value is unknown and they are not equal
    """
    if a == unknown or b == unknown:
        return False
    return a != b


def ordering_key(timestamp: Timestamp, event_index: int) -> Tuple[int, int]:
    """Ordering of transitions for the same PID: timestamp, then event index."""
    return (timestamp, event_index)
