#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
schedtrace command-line tool.

Reads decoded scheduler trace events as JSON objects from a file or stdin,
converts them to thread transitions and writes one JSON transition per line.
"""

import argparse
import json
import logging
import sys
from contextlib import ExitStack
from typing import List, Optional, TextIO

from rich.console import Console
from rich.table import Table

from .config import IngestConfig
from .errors import ConfigurationError, EventFormatError, MissingFieldError
from .event_loader import EventLoader, loaders_by_name
from .ingest import TransitionIngestor
from .string_bank import StringBank
from .trace_event import read_trace_events

logger = logging.getLogger(__name__)
console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='schedtrace',
        description="Convert scheduler tracepoint events into thread transitions",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        'input',
        nargs='?',
        default='-',
        help='JSON trace events file, or - for stdin'
    )
    parser.add_argument(
        '--output', '-o',
        default='-',
        help='Where to write transitions as JSON lines, or - for stdout'
    )
    parser.add_argument(
        '--loader-set',
        default=None,
        help='Loader preset: default or switch_only (env: SCHEDTRACE_LOADER_SET)'
    )
    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='Worker threads used to interpret events (env: SCHEDTRACE_WORKERS)'
    )
    parser.add_argument(
        '--strict',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Abort on the first event with a missing field (env: SCHEDTRACE_STRICT)'
    )
    parser.add_argument(
        '--no-summary',
        action='store_true',
        help='Do not print the summary table'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def print_summary(ingestor: TransitionIngestor, string_bank: StringBank):
    """Print a summary of the run to stderr."""
    stats = ingestor.stats
    table = Table(title="schedtrace summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Events", str(stats['total_events']))
    table.add_row("Clipped", str(stats['clipped']))
    table.add_row("Ignored (no loader)", str(stats['ignored']))
    table.add_row("Missing field errors", str(stats['missing_field_errors']))
    table.add_row("Transitions", str(stats['transitions']))
    table.add_row("Distinct commands", str(len(string_bank)))
    for name, count in sorted(stats['events_by_tracepoint'].items()):
        table.add_row(f"  {name}", str(count))
    console.print(table)


def run(config: IngestConfig, source: TextIO, sink: TextIO) -> TransitionIngestor:
    """
    Convert every event read from source and write transitions to sink.

    Returns:
        The ingestor, for its statistics
    """
    string_bank = StringBank()
    loader = EventLoader(loaders_by_name(config.loader_set), string_bank)
    ingestor = TransitionIngestor(loader, strict=config.strict, workers=config.workers)
    for transition in ingestor.process(read_trace_events(source)):
        sink.write(json.dumps(transition.to_dict(string_bank)))
        sink.write('\n')
    return ingestor


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    try:
        config = IngestConfig.from_sources(
            loader_set=args.loader_set,
            workers=args.workers,
            strict=args.strict,
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.info(f"Loader set: {config.loader_set}, workers: {config.workers}, strict: {config.strict}")

    try:
        with ExitStack() as stack:
            source = sys.stdin if args.input == '-' else stack.enter_context(open(args.input, 'r'))
            sink = sys.stdout if args.output == '-' else stack.enter_context(open(args.output, 'w'))
            ingestor = run(config, source, sink)
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 1
    except (MissingFieldError, EventFormatError) as e:
        logger.error(f"Aborting: {e}")
        return 1

    ingestor.log_stats()
    if not args.no_summary:
        print_summary(ingestor, ingestor.loader.string_bank)
    return 0


if __name__ == "__main__":
    sys.exit(main())
