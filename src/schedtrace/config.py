#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Configuration for a schedtrace ingest run.

Values come from command-line arguments, with environment variables
(SCHEDTRACE_LOADER_SET, SCHEDTRACE_WORKERS, SCHEDTRACE_STRICT) taking the
place of any argument left unset.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError
from .event_loader import LOADER_SETS

ENV_LOADER_SET = 'SCHEDTRACE_LOADER_SET'
ENV_WORKERS = 'SCHEDTRACE_WORKERS'
ENV_STRICT = 'SCHEDTRACE_STRICT'

DEFAULT_LOADER_SET = 'default'
DEFAULT_WORKERS = 1

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off', ''}


@dataclass(frozen=True)
class IngestConfig:
    """Settings for one ingest run."""
    loader_set: str = DEFAULT_LOADER_SET
    workers: int = DEFAULT_WORKERS
    strict: bool = False

    def validate(self) -> 'IngestConfig':
        """
        Check that all settings are usable.

        Raises:
            ConfigurationError: On an unknown loader set or a bad worker count
        """
        if self.loader_set not in LOADER_SETS:
            raise ConfigurationError(
                f"unknown loader set {self.loader_set!r}; "
                f"expected one of {', '.join(sorted(LOADER_SETS))}")
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")
        return self

    @classmethod
    def from_sources(cls,
                     loader_set: Optional[str] = None,
                     workers: Optional[int] = None,
                     strict: Optional[bool] = None,
                     environ: Optional[Mapping[str, str]] = None) -> 'IngestConfig':
        """
        Build a validated config from explicit values and the environment.

        Args:
            loader_set: Loader preset name, or None to consult the environment
            workers: Worker thread count, or None to consult the environment
            strict: Abort on the first malformed event, or None to consult
                the environment
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated IngestConfig
        """
        env = os.environ if environ is None else environ

        if loader_set is None:
            loader_set = env.get(ENV_LOADER_SET, DEFAULT_LOADER_SET)

        if workers is None:
            raw = env.get(ENV_WORKERS)
            if raw is None:
                workers = DEFAULT_WORKERS
            else:
                try:
                    workers = int(raw)
                except ValueError:
                    raise ConfigurationError(f"{ENV_WORKERS} must be an integer, got {raw!r}") from None

        if strict is None:
            raw = env.get(ENV_STRICT, '').strip().lower()
            if raw in _TRUE_VALUES:
                strict = True
            elif raw in _FALSE_VALUES:
                strict = False
            else:
                raise ConfigurationError(f"{ENV_STRICT} must be a boolean, got {raw!r}")

        return cls(loader_set=loader_set, workers=workers, strict=strict).validate()
