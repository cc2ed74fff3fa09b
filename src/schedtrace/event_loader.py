#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Event loaders for scheduler tracepoints.

An EventLoader maps tracepoint names to loader functions. Each loader turns
one raw event into zero or more ThreadTransitions. Transitions may leave
values Unknown for a later pass to infer, and a loader that trusts its
tracepoint less can say so by relaxing the conflict policies on what it
emits, so that on disagreement its claims are dropped or bridged instead of
treated as errors.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from .errors import ConfigurationError, MissingFieldError
from .sched_types import (
    PID, CPUID, Priority, ThreadState, ConflictPolicy,
    UNKNOWN_PRIORITY, TASK_RUNNING,
)
from .string_bank import StringBank
from .trace_event import TraceEvent
from .transitions import ThreadTransition, ThreadTransitionSetBuilder

logger = logging.getLogger(__name__)

LoaderFunc = Callable[[TraceEvent, ThreadTransitionSetBuilder], None]


class Tracepoint:
    """Tracepoint names understood by the default loaders."""
    SCHED_MIGRATE_TASK = "sched_migrate_task"
    SCHED_SWITCH = "sched_switch"
    SCHED_WAKEUP = "sched_wakeup"
    SCHED_WAKEUP_NEW = "sched_wakeup_new"


class EventLoader:
    """Dispatches raw events to the loader registered for their tracepoint."""

    def __init__(self, loaders: Mapping[str, LoaderFunc], string_bank: StringBank):
        """
        Initialize the loader registry.

        Args:
            loaders: Tracepoint name to loader function
            string_bank: Bank used to intern command names

        Raises:
            ConfigurationError: If no loaders are provided
        """
        if not loaders:
            raise ConfigurationError("an empty EventLoader cannot generate thread transitions")
        self.string_bank = string_bank
        self.loaders: Mapping[str, LoaderFunc] = MappingProxyType(dict(loaders))

    def thread_transitions(self, event: TraceEvent) -> List[ThreadTransition]:
        """
        Generate the thread transitions implied by an event.

        Clipped events and events with no registered loader produce an
        empty list. Errors raised by the loader propagate unchanged.

        Args:
            event: Raw trace event

        Returns:
            Transitions in the order the loader produced them
        """
        if event.clipped:
            logger.debug(f"Skipping clipped event {event.index} ({event.name})")
            return []
        loader = self.loaders.get(event.name)
        if loader is None:
            logger.debug(f"No loader for tracepoint {event.name!r} (event {event.index})")
            return []
        builder = ThreadTransitionSetBuilder(self.string_bank)
        loader(event, builder)
        return builder.transitions()


def _required_number(event: TraceEvent, name: str) -> int:
    try:
        return event.number_properties[name]
    except KeyError:
        raise MissingFieldError(name, event.index) from None


def _optional_priority(event: TraceEvent, name: str) -> Priority:
    prio = event.number_properties.get(name)
    if prio is None:
        return UNKNOWN_PRIORITY
    return Priority(prio)


@dataclass(frozen=True)
class MigrateData:
    """Fields of a sched_migrate_task event."""
    pid: PID
    comm: Optional[str]
    priority: Priority
    orig_cpu: CPUID
    dest_cpu: CPUID

    @classmethod
    def from_event(cls, event: TraceEvent) -> 'MigrateData':
        pid = PID(_required_number(event, 'pid'))
        comm = event.text_properties.get('comm')
        priority = _optional_priority(event, 'prio')
        orig_cpu = CPUID(_required_number(event, 'orig_cpu'))
        dest_cpu = CPUID(_required_number(event, 'dest_cpu'))
        return cls(pid, comm, priority, orig_cpu, dest_cpu)


@dataclass(frozen=True)
class SwitchData:
    """
    Fields of a sched_switch event. Next and prev refer to the switched-in
    and switched-out threads respectively.
    """
    next_pid: PID
    next_comm: Optional[str]
    next_priority: Priority
    prev_pid: PID
    prev_comm: Optional[str]
    prev_priority: Priority
    prev_state: ThreadState

    @classmethod
    def from_event(cls, event: TraceEvent) -> 'SwitchData':
        next_pid = PID(_required_number(event, 'next_pid'))
        next_comm = event.text_properties.get('next_comm')
        next_priority = _optional_priority(event, 'next_prio')
        prev_pid = PID(_required_number(event, 'prev_pid'))
        prev_comm = event.text_properties.get('prev_comm')
        prev_priority = _optional_priority(event, 'prev_prio')
        # The switched-in thread is Running. The switched-out thread is
        # Waiting if it was still TASK_RUNNING (preempted) and Sleeping for
        # any other task state bit (blocked).
        prev_task_state = _required_number(event, 'prev_state')
        if prev_task_state == TASK_RUNNING:
            prev_state = ThreadState.WAITING
        else:
            prev_state = ThreadState.SLEEPING
        return cls(next_pid, next_comm, next_priority,
                   prev_pid, prev_comm, prev_priority, prev_state)


@dataclass(frozen=True)
class WakeupData:
    """Fields of a sched_wakeup or sched_wakeup_new event."""
    pid: PID
    comm: Optional[str]
    priority: Priority
    target_cpu: CPUID

    @classmethod
    def from_event(cls, event: TraceEvent) -> 'WakeupData':
        pid = PID(_required_number(event, 'pid'))
        comm = event.text_properties.get('comm')
        priority = _optional_priority(event, 'prio')
        target_cpu = CPUID(_required_number(event, 'target_cpu'))
        return cls(pid, comm, priority, target_cpu)


def load_sched_migrate_task(event: TraceEvent, builder: ThreadTransitionSetBuilder) -> None:
    """Load a sched:sched_migrate_task event."""
    md = MigrateData.from_event(event)
    # One transition: backwards on the original CPU, forwards on the
    # destination CPU.
    (builder.with_transition(event.index, event.timestamp, md.pid)
        .with_prev_command(md.comm)
        .with_next_command(md.comm)
        .with_prev_priority(md.priority)
        .with_next_priority(md.priority)
        .with_prev_cpu(md.orig_cpu)
        .with_next_cpu(md.dest_cpu))


def load_sched_switch(event: TraceEvent, builder: ThreadTransitionSetBuilder) -> None:
    """
    Load a sched:sched_switch event.

    Produces two transitions, both on the reporting CPU before and after:
    the switched-in PID forwards in Running state, and the switched-out PID
    backwards in Running state and forwards in Waiting or Sleeping state
    depending on its prev_state.
    """
    sd = SwitchData.from_event(event)
    cpu = CPUID(event.cpu)
    (builder.with_transition(event.index, event.timestamp, sd.next_pid)
        .with_prev_command(sd.next_comm)
        .with_next_command(sd.next_comm)
        .with_prev_priority(sd.next_priority)
        .with_next_priority(sd.next_priority)
        .with_prev_cpu(cpu)
        .with_next_cpu(cpu)
        .with_next_state(ThreadState.RUNNING))
    (builder.with_transition(event.index, event.timestamp, sd.prev_pid)
        .with_prev_command(sd.prev_comm)
        .with_next_command(sd.prev_comm)
        .with_prev_priority(sd.prev_priority)
        .with_next_priority(sd.prev_priority)
        .with_prev_cpu(cpu)
        .with_next_cpu(cpu)
        .with_prev_state(ThreadState.RUNNING)
        .with_next_state(sd.prev_state))


def load_sched_wakeup(event: TraceEvent, builder: ThreadTransitionSetBuilder) -> None:
    """
    Load a sched:sched_wakeup or sched:sched_wakeup_new event.

    Wakeups are often emitted from interrupt context, so they can appear out
    of order relative to other events, can be reported against a CPU other
    than the one the thread runs on, and can fire on threads that are
    already running. Their CPU claims in both directions and their forwards
    state claim are therefore dropped on conflict.
    """
    wd = WakeupData.from_event(event)
    (builder.with_transition(event.index, event.timestamp, wd.pid)
        .with_prev_command(wd.comm)
        .with_next_command(wd.comm)
        .with_prev_priority(wd.priority)
        .with_next_priority(wd.priority)
        .with_prev_cpu(wd.target_cpu)
        .with_next_cpu(wd.target_cpu)
        .with_next_state(ThreadState.WAITING)
        .on_backwards_cpu_conflict(ConflictPolicy.DROP)
        .on_forwards_cpu_conflict(ConflictPolicy.DROP)
        .on_forwards_state_conflict(ConflictPolicy.DROP))


def _insert_synthetics_on_conflict(builder: ThreadTransitionSetBuilder) -> ThreadTransitionSetBuilder:
    return (builder
        .on_forwards_cpu_conflict(ConflictPolicy.INSERT_SYNTHETIC)
        .on_backwards_cpu_conflict(ConflictPolicy.INSERT_SYNTHETIC)
        .on_forwards_state_conflict(ConflictPolicy.INSERT_SYNTHETIC)
        .on_backwards_state_conflict(ConflictPolicy.INSERT_SYNTHETIC))


def load_sched_switch_with_synthetics(event: TraceEvent, builder: ThreadTransitionSetBuilder) -> None:
    """
    Load a sched:sched_switch event from a trace with no other events that
    could signal state or CPU changes.

    Wherever a state or CPU transition is missing between two switches, the
    assembler is directed to insert a synthetic transition between them.
    """
    sd = SwitchData.from_event(event)
    cpu = CPUID(event.cpu)
    _insert_synthetics_on_conflict(
        builder.with_transition(event.index, event.timestamp, sd.next_pid)
            .with_prev_command(sd.next_comm)
            .with_next_command(sd.next_comm)
            .with_prev_priority(sd.next_priority)
            .with_next_priority(sd.next_priority)
            .with_prev_cpu(cpu)
            .with_next_cpu(cpu)
            .with_prev_state(ThreadState.WAITING)
            .with_next_state(ThreadState.RUNNING))
    _insert_synthetics_on_conflict(
        builder.with_transition(event.index, event.timestamp, sd.prev_pid)
            .with_prev_command(sd.prev_comm)
            .with_next_command(sd.prev_comm)
            .with_prev_priority(sd.prev_priority)
            .with_next_priority(sd.prev_priority)
            .with_prev_cpu(cpu)
            .with_next_cpu(cpu)
            .with_prev_state(ThreadState.RUNNING)
            .with_next_state(sd.prev_state))


def default_event_loaders() -> Dict[str, LoaderFunc]:
    """Loaders for the standard scheduling tracepoints."""
    return {
        Tracepoint.SCHED_MIGRATE_TASK: load_sched_migrate_task,
        Tracepoint.SCHED_SWITCH: load_sched_switch,
        Tracepoint.SCHED_WAKEUP: load_sched_wakeup,
        Tracepoint.SCHED_WAKEUP_NEW: load_sched_wakeup,
    }


def switch_only_loaders() -> Dict[str, LoaderFunc]:
    """Loaders for traces in which scheduling is only attested by sched_switch."""
    return {
        Tracepoint.SCHED_SWITCH: load_sched_switch_with_synthetics,
    }


LOADER_SETS: Mapping[str, Callable[[], Dict[str, LoaderFunc]]] = MappingProxyType({
    'default': default_event_loaders,
    'switch_only': switch_only_loaders,
})


def loaders_by_name(name: str) -> Dict[str, LoaderFunc]:
    """
    Look up a loader preset by name.

    Raises:
        ConfigurationError: If the name is not a known preset
    """
    factory = LOADER_SETS.get(name)
    if factory is None:
        raise ConfigurationError(
            f"unknown loader set {name!r}; expected one of {', '.join(sorted(LOADER_SETS))}")
    return factory()
