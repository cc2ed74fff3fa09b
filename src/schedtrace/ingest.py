#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Batch ingestion of trace events into thread transitions.

Events are independent of one another, so a trace can be fanned out across
worker threads that share one EventLoader and one StringBank.
"""

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from itertools import islice
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import MissingFieldError
from .event_loader import EventLoader
from .trace_event import TraceEvent
from .transitions import ThreadTransition

logger = logging.getLogger(__name__)


def load_transitions(loader: EventLoader,
                     events: Iterable[TraceEvent],
                     workers: int = 1) -> List[List[ThreadTransition]]:
    """
    Generate transitions for every event, optionally in parallel.

    Args:
        loader: Shared loader registry
        events: Finite sequence of events
        workers: Number of worker threads

    Returns:
        One list of transitions per input event, in input order

    Raises:
        MissingFieldError: From the first malformed event encountered
    """
    if workers <= 1:
        return [loader.thread_transitions(ev) for ev in events]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(loader.thread_transitions, events))


class TransitionIngestor:
    """Runs a loader over a trace, keeping per-run statistics."""

    def __init__(self, loader: EventLoader, strict: bool = False, workers: int = 1,
                 batch_factor: int = 64):
        """
        Initialize the ingestor.

        Args:
            loader: Loader registry to apply to each event
            strict: Re-raise the first MissingFieldError instead of counting it
            workers: Number of worker threads
            batch_factor: Events submitted per worker before results are drained
        """
        self.loader = loader
        self.strict = strict
        self.workers = workers
        self.batch_factor = batch_factor
        self.stats: Dict[str, Any] = {
            'total_events': 0,
            'clipped': 0,
            'ignored': 0,
            'missing_field_errors': 0,
            'transitions': 0,
            'events_by_tracepoint': defaultdict(int),
        }

    def _process(self, event: TraceEvent) -> Tuple[TraceEvent, List[ThreadTransition], Optional[MissingFieldError]]:
        try:
            return event, self.loader.thread_transitions(event), None
        except MissingFieldError as e:
            return event, [], e

    def _results(self, pool: Optional[ThreadPoolExecutor], events: Iterable[TraceEvent]):
        if pool is None:
            yield from map(self._process, events)
            return
        # Submit in bounded batches so the input is read incrementally.
        it = iter(events)
        batch_size = self.workers * self.batch_factor
        while True:
            batch = list(islice(it, batch_size))
            if not batch:
                return
            yield from pool.map(self._process, batch)

    def process(self, events: Iterable[TraceEvent]) -> Iterator[ThreadTransition]:
        """
        Yield the transitions of every event, in event order.

        A MissingFieldError is logged and counted and the event skipped,
        unless strict mode is on, in which case it is raised.
        """
        pool = ThreadPoolExecutor(max_workers=self.workers) if self.workers > 1 else None
        try:
            for event, transitions, error in self._results(pool, events):
                self.stats['total_events'] += 1
                if error is not None:
                    self.stats['missing_field_errors'] += 1
                    if self.strict:
                        raise error
                    logger.warning(f"Skipping malformed {event.name} event: {error}")
                    continue
                if event.clipped:
                    self.stats['clipped'] += 1
                elif event.name not in self.loader.loaders:
                    self.stats['ignored'] += 1
                else:
                    self.stats['events_by_tracepoint'][event.name] += 1
                self.stats['transitions'] += len(transitions)
                yield from transitions
        finally:
            if pool is not None:
                pool.shutdown(wait=True, cancel_futures=True)

    def log_stats(self):
        """Log ingestion statistics."""
        logger.info("=== Ingestion Statistics ===")
        logger.info(f"Total events processed: {self.stats['total_events']}")
        logger.info(f"Clipped events: {self.stats['clipped']}")
        logger.info(f"Ignored events: {self.stats['ignored']}")
        logger.info(f"Missing field errors: {self.stats['missing_field_errors']}")
        logger.info(f"Transitions: {self.stats['transitions']}")
        for name, count in sorted(self.stats['events_by_tracepoint'].items()):
            logger.debug(f"  {name}: {count}")
