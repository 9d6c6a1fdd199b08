from __future__ import annotations

from typing import Any, Dict, List

import pytest

from stakeledger.runtime.atomic import AtomicScope


class _Box:
    def __init__(self) -> None:
        self.data: Dict[str, int] = {}

    def snapshot(self) -> Any:
        return dict(self.data)

    def restore(self, snap: Any) -> None:
        self.data = snap


def test_failed_scope_restores_participants_and_drops_deferred() -> None:
    scope = AtomicScope()
    box = _Box()
    scope.register(box)
    ran: List[str] = []

    with pytest.raises(RuntimeError):
        with scope.transaction():
            box.data["a"] = 1
            scope.defer(lambda: ran.append("a"))
            raise RuntimeError("boom")

    assert box.data == {}
    assert ran == []
    assert scope.depth == 0


def test_inner_failure_restores_inner_snapshot_only() -> None:
    scope = AtomicScope()
    box = _Box()
    scope.register(box)
    ran: List[str] = []

    with scope.transaction():
        box.data["outer"] = 1
        scope.defer(lambda: ran.append("outer"))
        with pytest.raises(ValueError):
            with scope.transaction():
                box.data["inner"] = 2
                scope.defer(lambda: ran.append("inner"))
                raise ValueError("inner")
        assert box.data == {"outer": 1}

    assert box.data == {"outer": 1}
    assert ran == ["outer"]


def test_deferred_work_runs_once_at_outermost_commit() -> None:
    scope = AtomicScope()
    ran: List[str] = []

    with scope.transaction():
        with scope.transaction():
            scope.defer(lambda: ran.append("inner"))
        assert ran == []
        scope.defer(lambda: ran.append("outer"))
        assert ran == []

    assert ran == ["inner", "outer"]

    # outside any scope: immediate
    scope.defer(lambda: ran.append("now"))
    assert ran[-1] == "now"


def test_register_is_idempotent() -> None:
    scope = AtomicScope()
    box = _Box()
    scope.register(box)
    scope.register(box)

    with pytest.raises(RuntimeError):
        with scope.transaction():
            box.data["x"] = 1
            raise RuntimeError("x")
    assert box.data == {}
