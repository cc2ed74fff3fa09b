#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Thread transitions and the per-event builder that produces them.

A ThreadTransition is one event's claim about a single thread: the values
of its command, priority, CPU and state immediately before and after the
event. Each CPU and state claim carries a forwards and a backwards conflict
policy telling the timeline assembler how to treat disagreement with the
next or previous transition for the same PID.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from .errors import TransitionBuilderError
from .sched_types import (
    PID, CPUID, Priority, StringID, Timestamp, ThreadState, ConflictPolicy,
    UNKNOWN_CPU, UNKNOWN_PRIORITY, UNKNOWN_COMMAND, ordering_key,
)
from .string_bank import StringBank


@dataclass(frozen=True)
class ThreadTransition:
    """Immutable per-event, per-thread transition record."""
    event_index: int
    timestamp: Timestamp
    pid: PID
    prev_command: StringID = UNKNOWN_COMMAND
    next_command: StringID = UNKNOWN_COMMAND
    prev_priority: Priority = UNKNOWN_PRIORITY
    next_priority: Priority = UNKNOWN_PRIORITY
    prev_cpu: CPUID = UNKNOWN_CPU
    next_cpu: CPUID = UNKNOWN_CPU
    prev_state: ThreadState = ThreadState.UNKNOWN
    next_state: ThreadState = ThreadState.UNKNOWN
    on_forwards_cpu_conflict: ConflictPolicy = ConflictPolicy.ASSERT
    on_backwards_cpu_conflict: ConflictPolicy = ConflictPolicy.ASSERT
    on_forwards_state_conflict: ConflictPolicy = ConflictPolicy.ASSERT
    on_backwards_state_conflict: ConflictPolicy = ConflictPolicy.ASSERT

    def sort_key(self) -> Tuple[int, int]:
        return ordering_key(self.timestamp, self.event_index)

    def to_dict(self, string_bank: Optional[StringBank] = None) -> Dict[str, Any]:
        """
        Convert to a JSON-ready dictionary.

        Args:
            string_bank: If given, command handles are resolved to text;
                unknown commands become None either way

        Returns:
            Dictionary with enum members replaced by their values
        """
        def command(sid: StringID) -> Any:
            if sid == UNKNOWN_COMMAND:
                return None
            return string_bank.string_by_id(sid) if string_bank is not None else sid

        return {
            'event_index': self.event_index,
            'timestamp': self.timestamp,
            'pid': self.pid,
            'prev_command': command(self.prev_command),
            'next_command': command(self.next_command),
            'prev_priority': self.prev_priority,
            'next_priority': self.next_priority,
            'prev_cpu': self.prev_cpu,
            'next_cpu': self.next_cpu,
            'prev_state': self.prev_state.value,
            'next_state': self.next_state.value,
            'on_forwards_cpu_conflict': self.on_forwards_cpu_conflict.value,
            'on_backwards_cpu_conflict': self.on_backwards_cpu_conflict.value,
            'on_forwards_state_conflict': self.on_forwards_state_conflict.value,
            'on_backwards_state_conflict': self.on_backwards_state_conflict.value,
        }


class ThreadTransitionSetBuilder:
    """
    Accumulates the transitions produced by a single event.

    Every setter applies to the transition most recently started with
    with_transition() and returns the builder, so calls can be chained.
    Channels left unset stay Unknown with an Assert policy.
    """

    def __init__(self, string_bank: StringBank):
        self.string_bank = string_bank
        self._transitions: List[ThreadTransition] = []

    def with_transition(self, event_index: int, timestamp: Timestamp, pid: PID) -> 'ThreadTransitionSetBuilder':
        self._transitions.append(ThreadTransition(
            event_index=event_index,
            timestamp=timestamp,
            pid=pid,
        ))
        return self

    def _update(self, **changes) -> 'ThreadTransitionSetBuilder':
        if not self._transitions:
            raise TransitionBuilderError(
                f"cannot set {', '.join(changes)} before with_transition()")
        self._transitions[-1] = replace(self._transitions[-1], **changes)
        return self

    def _command_id(self, command: Optional[str]) -> StringID:
        if command is None:
            return UNKNOWN_COMMAND
        return self.string_bank.string_id(command)

    def with_prev_command(self, command: Optional[str]) -> 'ThreadTransitionSetBuilder':
        return self._update(prev_command=self._command_id(command))

    def with_next_command(self, command: Optional[str]) -> 'ThreadTransitionSetBuilder':
        return self._update(next_command=self._command_id(command))

    def with_prev_priority(self, priority: Priority) -> 'ThreadTransitionSetBuilder':
        return self._update(prev_priority=priority)

    def with_next_priority(self, priority: Priority) -> 'ThreadTransitionSetBuilder':
        return self._update(next_priority=priority)

    def with_prev_cpu(self, cpu: CPUID) -> 'ThreadTransitionSetBuilder':
        return self._update(prev_cpu=cpu)

    def with_next_cpu(self, cpu: CPUID) -> 'ThreadTransitionSetBuilder':
        return self._update(next_cpu=cpu)

    def with_prev_state(self, state: ThreadState) -> 'ThreadTransitionSetBuilder':
        return self._update(prev_state=state)

    def with_next_state(self, state: ThreadState) -> 'ThreadTransitionSetBuilder':
        return self._update(next_state=state)

    def on_forwards_cpu_conflict(self, policy: ConflictPolicy) -> 'ThreadTransitionSetBuilder':
        return self._update(on_forwards_cpu_conflict=policy)

    def on_backwards_cpu_conflict(self, policy: ConflictPolicy) -> 'ThreadTransitionSetBuilder':
        return self._update(on_backwards_cpu_conflict=policy)

    def on_forwards_state_conflict(self, policy: ConflictPolicy) -> 'ThreadTransitionSetBuilder':
        return self._update(on_forwards_state_conflict=policy)

    def on_backwards_state_conflict(self, policy: ConflictPolicy) -> 'ThreadTransitionSetBuilder':
        return self._update(on_backwards_state_conflict=policy)

    def transitions(self) -> List[ThreadTransition]:
        """Return all transitions started on this builder, in construction order."""
        return list(self._transitions)
