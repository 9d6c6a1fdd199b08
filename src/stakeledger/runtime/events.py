from __future__ import annotations

"""Observable engine events.

Events are buffered inside the current atomic scope and published only when
the outermost scope commits, so a failed operation never emits anything.
Publication appends to the in-process history, writes one JSONL log line and
notifies subscribers.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.metrics import inc_counter

Json = Dict[str, Any]

_log = logging.getLogger("stakeledger.events")


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit a single JSONL log event."""
    payload: Json = {"ts_ms": int(time.time() * 1000), "event": str(event)}
    payload.update(fields)
    try:
        logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str))
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        logger.info(" ".join(parts))


@dataclass(frozen=True)
class EngineEvent:
    @property
    def event_name(self) -> str:
        return type(self).__name__

    def to_json(self) -> Json:
        return {"event": self.event_name, **asdict(self)}


@dataclass(frozen=True)
class DelegationStarted(EngineEvent):
    token_id: int
    owner: str
    start_block: int
    auto_renew: bool


@dataclass(frozen=True)
class DelegationExitRequested(EngineEvent):
    token_id: int
    end_block: int


@dataclass(frozen=True)
class DelegationRewardsClaimed(EngineEvent):
    token_id: int
    amount: int
    claimer: str
    recipient: str
    # covered accrual window [from_block, to_block); equal for lost-rewards payouts
    from_block: int
    to_block: int


@dataclass(frozen=True)
class BaseRewardsClaimed(EngineEvent):
    token_id: int
    amount: int
    recipient: str
    from_ts: int
    to_ts: int


@dataclass(frozen=True)
class PolicyChanged(EngineEvent):
    setting: str
    value: Any
    version: int


@dataclass(frozen=True)
class LostRewardsAdded(EngineEvent):
    owner: str
    token_id: int
    amount: int


@dataclass(frozen=True)
class LostRewardsRemoved(EngineEvent):
    owner: str
    token_id: int
    amount: int


E = TypeVar("E", bound=EngineEvent)


class EventBus:
    def __init__(self, scope: AtomicScope, *, max_history: int = 10_000) -> None:
        self._scope = scope
        self._max_history = int(max_history)
        self._history: List[EngineEvent] = []
        self._subscribers: List[Callable[[EngineEvent], None]] = []

    def emit(self, event: EngineEvent) -> None:
        self._scope.defer(lambda: self._publish(event))

    def subscribe(self, fn: Callable[[EngineEvent], None]) -> None:
        self._subscribers.append(fn)

    def history(self, kind: Optional[Type[E]] = None) -> List[Any]:
        if kind is None:
            return list(self._history)
        return [e for e in self._history if isinstance(e, kind)]

    def clear(self) -> None:
        self._history.clear()

    def _publish(self, event: EngineEvent) -> None:
        self._history.append(event)
        if len(self._history) > self._max_history:
            del self._history[: len(self._history) - self._max_history]

        inc_counter(f"events_{event.event_name}")
        log_event(_log, event.event_name, **asdict(event))

        # runs after commit; subscriber failures are logged, not raised
        for fn in list(self._subscribers):
            try:
                fn(event)
            except Exception as e:
                inc_counter("event_subscriber_errors")
                log_event(_log, "event_subscriber_failed", event_name=event.event_name, error=repr(e))
