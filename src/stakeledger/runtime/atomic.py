from __future__ import annotations

"""All-or-nothing execution for engine operations.

Every participant is snapshotted when a scope opens and restored if the
scope body raises. Scopes nest as savepoints: an inner failure restores the
inner snapshot only, an inner success folds its deferred work (event
publication) into the enclosing scope. Deferred work runs once, when the
outermost scope commits.
"""

from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Protocol, Tuple


class Journaled(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snap: Any) -> None: ...


class AtomicScope:
    def __init__(self) -> None:
        self._participants: List[Journaled] = []
        self._deferred: List[List[Callable[[], None]]] = []

    def register(self, participant: Journaled) -> None:
        if not any(p is participant for p in self._participants):
            self._participants.append(participant)

    @property
    def depth(self) -> int:
        return len(self._deferred)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snaps: List[Tuple[Journaled, Any]] = [(p, p.snapshot()) for p in self._participants]
        self._deferred.append([])
        try:
            yield
        except BaseException:
            self._deferred.pop()
            for p, snap in reversed(snaps):
                p.restore(snap)
            raise

        done = self._deferred.pop()
        if self._deferred:
            self._deferred[-1].extend(done)
            return
        for fn in done:
            fn()

    def defer(self, fn: Callable[[], None]) -> None:
        """Run `fn` after the outermost scope commits (immediately if none is open)."""
        if self._deferred:
            self._deferred[-1].append(fn)
            return
        fn()
