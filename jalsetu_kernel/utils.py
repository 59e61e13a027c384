"""Shared helpers: logging setup and per-key locking."""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, Optional


def to_local_naive(value: datetime) -> datetime:
    """
    Express a timestamp in the engine's time base: naive local time, the
    same base as the default ``datetime.now`` clock. Aware values (e.g. an
    ISO-8601 string ending in ``Z``) are converted; naive ones pass through.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=None)
    return value.astimezone().replace(tzinfo=None)


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure console logging for the engine.

    All jalsetu.* loggers inherit this configuration. Repeated calls only
    adjust the level.
    """
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    root = logging.getLogger("jalsetu")
    root.setLevel(numeric_level)

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        root.addHandler(handler)


class KeyedLock:
    """
    A table of locks, one per key, created on first use.

    Gives single-writer access per key (e.g. per sensor_id) while work on
    different keys proceeds without coordination.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def for_key(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self.for_key(key):
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
