"""
Permission capability and pause switch.

The engine does not ship an access-control framework. Every component takes an
`Authorizer` (anything with ``authorize(caller, operation) -> bool``) and asks
it once per privileged call. `StaticAuthorizer` is the minimal in-memory
implementation used by the simulation and the tests.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Protocol, Set

from ..core.errors import Paused, ReentrantCall, Unauthorized


logger = logging.getLogger(__name__)

# Operation names checked against the authorizer.
OP_INITIALIZE_POOL = "initialize_pool"
OP_POKE = "poke"
OP_SET_YIELD_SOURCE = "set_yield_source"
OP_PAUSE = "pause"


class Authorizer(Protocol):
    def authorize(self, caller: str, operation: str) -> bool: ...


class StaticAuthorizer:
    """Operation -> allowed callers."""

    def __init__(self, grants: Dict[str, Set[str]] | None = None) -> None:
        self._grants: Dict[str, Set[str]] = {op: set(callers) for op, callers in (grants or {}).items()}

    def grant(self, operation: str, caller: str) -> None:
        self._grants.setdefault(operation, set()).add(caller)

    def revoke(self, operation: str, caller: str) -> None:
        self._grants.get(operation, set()).discard(caller)

    def authorize(self, caller: str, operation: str) -> bool:
        return caller in self._grants.get(operation, ())


def require_authorized(authorizer: Authorizer, caller: str, operation: str) -> None:
    if not authorizer.authorize(caller, operation):
        raise Unauthorized(caller, operation)


class PauseSwitch:
    """Global emergency stop shared by the hook and its vault wrappers."""

    _STATE_FIELDS = ("_paused",)

    def __init__(self, authorizer: Authorizer) -> None:
        self._authorizer = authorizer
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self, caller: str) -> None:
        require_authorized(self._authorizer, caller, OP_PAUSE)
        self._paused = True
        logger.info("paused by %s", caller)

    def unpause(self, caller: str) -> None:
        require_authorized(self._authorizer, caller, OP_PAUSE)
        self._paused = False
        logger.info("unpaused by %s", caller)

    def require_not_paused(self) -> None:
        if self._paused:
            raise Paused("contract is paused")


class ReentrancyGuard:
    """Mutual-exclusion flag held for the duration of a mutating call."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._entered:
            raise ReentrantCall(f"re-entered {self._name} during an in-flight call")
        self._entered = True
        try:
            yield
        finally:
            self._entered = False
