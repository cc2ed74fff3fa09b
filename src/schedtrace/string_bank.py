#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
String interning for command names.

A trace repeats the same few hundred command names across millions of
events; the bank hands out one small integer handle per distinct string.
"""

import logging
import threading
from typing import Dict, List

from .sched_types import StringID

logger = logging.getLogger(__name__)


class StringBank:
    """Append-only, thread-safe string interning cache."""

    def __init__(self):
        self._ids_by_string: Dict[str, StringID] = {}
        self._strings: List[str] = []
        self._lock = threading.Lock()

    def string_id(self, text: str) -> StringID:
        """
        Return the handle for a string, allocating one on first sight.

        Args:
            text: String to intern

        Returns:
            Stable handle; equal strings always get the same handle
        """
        # Fast path without the lock; dict reads are atomic.
        sid = self._ids_by_string.get(text)
        if sid is not None:
            return sid
        with self._lock:
            sid = self._ids_by_string.get(text)
            if sid is None:
                sid = StringID(len(self._strings))
                self._strings.append(text)
                self._ids_by_string[text] = sid
                logger.debug(f"Interned {text!r} as {sid}")
            return sid

    def string_by_id(self, sid: StringID) -> str:
        """
        Look up the string for a handle.

        Raises:
            KeyError: If the handle was never allocated by this bank
        """
        if sid < 0 or sid >= len(self._strings):
            raise KeyError(sid)
        return self._strings[sid]

    def __len__(self) -> int:
        return len(self._strings)

    def __contains__(self, text: object) -> bool:
        return text in self._ids_by_string
