#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Tests for the scheduler event loaders.
"""

import sys
import unittest
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from schedtrace.errors import ConfigurationError, MissingFieldError
from schedtrace.event_loader import (
    EventLoader, Tracepoint, default_event_loaders, switch_only_loaders,
    loaders_by_name, load_sched_switch,
)
from schedtrace.sched_types import (
    ConflictPolicy, ThreadState, UNKNOWN_COMMAND, UNKNOWN_CPU, UNKNOWN_PRIORITY,
)
from schedtrace.string_bank import StringBank
from schedtrace.trace_event import TraceEvent

ASSERT = ConflictPolicy.ASSERT
DROP = ConflictPolicy.DROP
SYNTHETIC = ConflictPolicy.INSERT_SYNTHETIC


def migrate_event(index=1, **overrides):
    numbers = {'pid': 42, 'orig_cpu': 1, 'dest_cpu': 3, 'prio': 10}
    numbers.update(overrides)
    numbers = {k: v for k, v in numbers.items() if v is not None}
    return TraceEvent(index=index, timestamp=1000, name='sched_migrate_task', cpu=0,
                      number_properties=numbers, text_properties={'comm': 'x'})


def switch_event(index=2, prev_state=0, cpu=2, **overrides):
    numbers = {'next_pid': 5, 'prev_pid': 7, 'prev_state': prev_state}
    numbers.update(overrides)
    numbers = {k: v for k, v in numbers.items() if v is not None}
    return TraceEvent(index=index, timestamp=2000, name='sched_switch', cpu=cpu,
                      number_properties=numbers,
                      text_properties={'next_comm': 'a', 'prev_comm': 'b'})


def wakeup_event(index=3, name='sched_wakeup', **overrides):
    numbers = {'pid': 9, 'target_cpu': 4}
    numbers.update(overrides)
    numbers = {k: v for k, v in numbers.items() if v is not None}
    return TraceEvent(index=index, timestamp=3000, name=name, cpu=1,
                      number_properties=numbers)


def policies(transition):
    return (transition.on_forwards_cpu_conflict,
            transition.on_backwards_cpu_conflict,
            transition.on_forwards_state_conflict,
            transition.on_backwards_state_conflict)


class TestEventLoaderRegistry(unittest.TestCase):
    """Test dispatch, skipping and configuration of the loader registry."""

    def setUp(self):
        self.bank = StringBank()
        self.loader = EventLoader(default_event_loaders(), self.bank)

    def test_empty_registry_rejected(self):
        with self.assertRaises(ConfigurationError):
            EventLoader({}, self.bank)

    def test_clipped_event_yields_nothing(self):
        """Clipped events are skipped even when their fields are missing."""
        for name in ('sched_switch', 'sched_wakeup', 'sched_migrate_task', 'irq_handler_entry'):
            event = TraceEvent(index=5, timestamp=10, name=name, clipped=True)
            self.assertEqual(self.loader.thread_transitions(event), [])

    def test_unknown_tracepoint_yields_nothing(self):
        event = TraceEvent(index=6, timestamp=10, name='sched_process_exit',
                           number_properties={'pid': 1})
        self.assertEqual(self.loader.thread_transitions(event), [])

    def test_registry_is_immutable(self):
        with self.assertRaises(TypeError):
            self.loader.loaders['sched_switch'] = None

    def test_registry_copies_mapping(self):
        loaders = switch_only_loaders()
        loader = EventLoader(loaders, self.bank)
        loaders['sched_wakeup'] = load_sched_switch
        self.assertNotIn('sched_wakeup', loader.loaders)

    def test_loader_error_propagates(self):
        def failing(event, builder):
            raise RuntimeError("boom")
        loader = EventLoader({'sched_switch': failing}, self.bank)
        with self.assertRaises(RuntimeError):
            loader.thread_transitions(switch_event())

    def test_interpretation_is_idempotent(self):
        switch_only = EventLoader(switch_only_loaders(), self.bank)
        cases = [(self.loader, migrate_event()), (self.loader, switch_event()),
                 (self.loader, wakeup_event()), (switch_only, switch_event(prev_state=1))]
        for loader, event in cases:
            first = loader.thread_transitions(event)
            second = loader.thread_transitions(event)
            self.assertTrue(first)
            self.assertEqual(first, second)

    def test_wakeup_comm_interned_once(self):
        event = TraceEvent(index=8, timestamp=10, name='sched_wakeup', cpu=0,
                           number_properties={'pid': 9, 'target_cpu': 4},
                           text_properties={'comm': 'kworker/2:0'})
        first = self.loader.thread_transitions(event)[0]
        second = self.loader.thread_transitions(event)[0]
        self.assertEqual(first.prev_command, first.next_command)
        self.assertEqual(first.next_command, second.next_command)
        self.assertEqual(self.bank.string_by_id(first.prev_command), 'kworker/2:0')
        self.assertEqual(len(self.bank), 1)

    def test_presets(self):
        self.assertEqual(set(default_event_loaders()), {
            Tracepoint.SCHED_MIGRATE_TASK, Tracepoint.SCHED_SWITCH,
            Tracepoint.SCHED_WAKEUP, Tracepoint.SCHED_WAKEUP_NEW,
        })
        self.assertEqual(set(switch_only_loaders()), {Tracepoint.SCHED_SWITCH})
        self.assertEqual(set(loaders_by_name('switch_only')), {Tracepoint.SCHED_SWITCH})
        with self.assertRaises(ConfigurationError):
            loaders_by_name('everything')


class TestMissingFields(unittest.TestCase):
    """Every required field is reported by name together with the event index."""

    def setUp(self):
        self.loader = EventLoader(default_event_loaders(), StringBank())
        self.switch_only = EventLoader(switch_only_loaders(), StringBank())

    def assertMissing(self, loader, event, field_name):
        with self.assertRaises(MissingFieldError) as ctx:
            loader.thread_transitions(event)
        self.assertEqual(ctx.exception.field_name, field_name)
        self.assertEqual(ctx.exception.event_index, event.index)
        self.assertIn(field_name, str(ctx.exception))
        self.assertIn(str(event.index), str(ctx.exception))

    def test_migrate_required_fields(self):
        for field_name in ('pid', 'orig_cpu', 'dest_cpu'):
            self.assertMissing(self.loader, migrate_event(index=11, **{field_name: None}), field_name)

    def test_switch_required_fields(self):
        for field_name in ('next_pid', 'prev_pid', 'prev_state'):
            event = switch_event(index=12, **{field_name: None})
            self.assertMissing(self.loader, event, field_name)
            self.assertMissing(self.switch_only, event, field_name)

    def test_wakeup_required_fields(self):
        for name in ('sched_wakeup', 'sched_wakeup_new'):
            for field_name in ('pid', 'target_cpu'):
                self.assertMissing(self.loader, wakeup_event(index=13, name=name, **{field_name: None}),
                                   field_name)


class TestMigrateLoader(unittest.TestCase):

    def setUp(self):
        self.bank = StringBank()
        self.loader = EventLoader(default_event_loaders(), self.bank)

    def test_migrate(self):
        transitions = self.loader.thread_transitions(migrate_event())
        self.assertEqual(len(transitions), 1)
        tt = transitions[0]
        self.assertEqual(tt.pid, 42)
        self.assertEqual(tt.event_index, 1)
        self.assertEqual(tt.timestamp, 1000)
        self.assertEqual((tt.prev_cpu, tt.next_cpu), (1, 3))
        self.assertEqual(tt.prev_command, tt.next_command)
        self.assertEqual(self.bank.string_by_id(tt.next_command), 'x')
        self.assertEqual((tt.prev_priority, tt.next_priority), (10, 10))
        self.assertEqual((tt.prev_state, tt.next_state), (ThreadState.UNKNOWN, ThreadState.UNKNOWN))
        self.assertEqual(policies(tt), (ASSERT,) * 4)

    def test_migrate_without_optional_fields(self):
        event = TraceEvent(index=4, timestamp=1, name='sched_migrate_task',
                           number_properties={'pid': 42, 'orig_cpu': 0, 'dest_cpu': 2})
        tt = self.loader.thread_transitions(event)[0]
        self.assertEqual(tt.prev_priority, UNKNOWN_PRIORITY)
        self.assertEqual(tt.next_priority, UNKNOWN_PRIORITY)
        self.assertEqual(tt.prev_command, UNKNOWN_COMMAND)
        self.assertEqual(tt.next_command, UNKNOWN_COMMAND)


class TestSwitchLoader(unittest.TestCase):

    def setUp(self):
        self.bank = StringBank()
        self.loader = EventLoader(default_event_loaders(), self.bank)

    def test_switch_to_waiting(self):
        incoming, outgoing = self.loader.thread_transitions(switch_event(prev_state=0))

        self.assertEqual(incoming.pid, 5)
        self.assertEqual((incoming.prev_cpu, incoming.next_cpu), (2, 2))
        self.assertEqual(incoming.prev_state, ThreadState.UNKNOWN)
        self.assertEqual(incoming.next_state, ThreadState.RUNNING)
        self.assertEqual(self.bank.string_by_id(incoming.prev_command), 'a')
        self.assertEqual(incoming.prev_command, incoming.next_command)

        self.assertEqual(outgoing.pid, 7)
        self.assertEqual((outgoing.prev_cpu, outgoing.next_cpu), (2, 2))
        self.assertEqual(outgoing.prev_state, ThreadState.RUNNING)
        self.assertEqual(outgoing.next_state, ThreadState.WAITING)
        self.assertEqual(self.bank.string_by_id(outgoing.next_command), 'b')

        for tt in (incoming, outgoing):
            self.assertEqual(policies(tt), (ASSERT,) * 4)
            self.assertEqual((tt.prev_priority, tt.next_priority), (UNKNOWN_PRIORITY, UNKNOWN_PRIORITY))
            self.assertEqual(tt.sort_key(), (2000, 2))

    def test_switch_to_sleeping(self):
        waiting = self.loader.thread_transitions(switch_event(prev_state=0))
        for prev_state in (1, 2, 0x40, 0x402):
            sleeping = self.loader.thread_transitions(switch_event(prev_state=prev_state))
            self.assertEqual(sleeping[1].next_state, ThreadState.SLEEPING)
            # Nothing else differs.
            self.assertEqual(sleeping[0], waiting[0])
            self.assertEqual(sleeping[1].prev_state, waiting[1].prev_state)
            self.assertEqual(sleeping[1].prev_cpu, waiting[1].prev_cpu)
            self.assertEqual(policies(sleeping[1]), policies(waiting[1]))

    def test_switch_priorities(self):
        event = switch_event(next_prio=120, prev_prio=100)
        incoming, outgoing = self.loader.thread_transitions(event)
        self.assertEqual((incoming.prev_priority, incoming.next_priority), (120, 120))
        self.assertEqual((outgoing.prev_priority, outgoing.next_priority), (100, 100))


class TestWakeupLoader(unittest.TestCase):

    def setUp(self):
        self.loader = EventLoader(default_event_loaders(), StringBank())

    def test_wakeup(self):
        for name in ('sched_wakeup', 'sched_wakeup_new'):
            transitions = self.loader.thread_transitions(wakeup_event(name=name))
            self.assertEqual(len(transitions), 1)
            tt = transitions[0]
            self.assertEqual(tt.pid, 9)
            self.assertEqual((tt.prev_cpu, tt.next_cpu), (4, 4))
            self.assertEqual(tt.prev_state, ThreadState.UNKNOWN)
            self.assertEqual(tt.next_state, ThreadState.WAITING)
            self.assertEqual(tt.prev_priority, UNKNOWN_PRIORITY)
            self.assertEqual(tt.on_forwards_cpu_conflict, DROP)
            self.assertEqual(tt.on_backwards_cpu_conflict, DROP)
            self.assertEqual(tt.on_forwards_state_conflict, DROP)
            self.assertEqual(tt.on_backwards_state_conflict, ASSERT)

    def test_wakeup_uses_target_cpu_not_reporting_cpu(self):
        tt = self.loader.thread_transitions(wakeup_event())[0]
        self.assertNotEqual(tt.next_cpu, 1)
        self.assertNotEqual(tt.next_cpu, UNKNOWN_CPU)


class TestSwitchWithSynthetics(unittest.TestCase):

    def setUp(self):
        self.loader = EventLoader(switch_only_loaders(), StringBank())
        self.strict = EventLoader(default_event_loaders(), StringBank())

    def test_all_policies_insert_synthetic(self):
        transitions = self.loader.thread_transitions(switch_event(prev_state=1))
        self.assertEqual(len(transitions), 2)
        for tt in transitions:
            self.assertEqual(policies(tt), (SYNTHETIC,) * 4)

    def test_values_match_strict_switch(self):
        synthetic = self.loader.thread_transitions(switch_event(prev_state=1))
        strict = self.strict.thread_transitions(switch_event(prev_state=1))
        for s, t in zip(synthetic, strict):
            self.assertEqual((s.pid, s.prev_cpu, s.next_cpu, s.next_state),
                             (t.pid, t.prev_cpu, t.next_cpu, t.next_state))
        self.assertEqual(synthetic[0].prev_state, ThreadState.WAITING)
        self.assertEqual(synthetic[1].prev_state, ThreadState.RUNNING)
        self.assertEqual(synthetic[1].next_state, ThreadState.SLEEPING)

    def test_wakeups_ignored(self):
        self.assertEqual(self.loader.thread_transitions(wakeup_event()), [])


if __name__ == '__main__':
    unittest.main()
