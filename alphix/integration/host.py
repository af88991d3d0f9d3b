"""
Host ledger: clock plus transactional call boundary.

Every public mutating entry point of the shell runs inside `HostLedger.atomic()`.
The outermost call snapshots the declared state fields of every registered
component and restores them if anything raises, so a failed call leaves no
partial mutation behind. Nested calls join the outer transaction.

Components declare their persisted fields in `_STATE_FIELDS`. Field values
must be ints, frozen dataclasses, or flat containers of those (references to
other components are allowed: containers are copied one level deep).
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from typing import Any, Iterator, List


logger = logging.getLogger(__name__)


class HostLedger:
    def __init__(self, timestamp: int = 0) -> None:
        if timestamp < 0:
            raise ValueError(f"timestamp must be non-negative: {timestamp}")
        self._timestamp = timestamp
        self._components: List[Any] = []
        self._depth = 0

    @property
    def now(self) -> int:
        return self._timestamp

    @property
    def in_call(self) -> bool:
        return self._depth > 0

    def advance_time(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"time cannot move backwards: {seconds}")
        self._timestamp += seconds
        return self._timestamp

    def register(self, component: Any) -> Any:
        if not hasattr(component, "_STATE_FIELDS"):
            raise TypeError(f"{type(component).__name__} does not declare _STATE_FIELDS")
        if not any(c is component for c in self._components):
            self._components.append(component)
        return component

    def _snapshot(self) -> list[tuple[Any, dict[str, Any]]]:
        return [
            (component, {name: copy.copy(getattr(component, name)) for name in component._STATE_FIELDS})
            for component in self._components
        ]

    @staticmethod
    def _restore(snapshot: list[tuple[Any, dict[str, Any]]]) -> None:
        for component, fields in snapshot:
            for name, value in fields.items():
                setattr(component, name, value)

    @contextmanager
    def atomic(self, label: str) -> Iterator[None]:
        """Run a call transactionally; only the outermost level snapshots."""
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        snapshot = self._snapshot()
        self._depth = 1
        try:
            yield
        except Exception as exc:
            self._restore(snapshot)
            logger.warning("%s reverted: %s: %s", label, type(exc).__name__, exc)
            raise
        finally:
            self._depth = 0
