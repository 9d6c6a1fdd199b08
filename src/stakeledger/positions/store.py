# src/stakeledger/positions/store.py
from __future__ import annotations

"""Position Store (external collaborator) and its in-memory reference implementation.

The store owns position identity and ownership. The reward engine only reads
it, except through the hook contract:

  - can_transfer(token_id) is consulted before any transfer
  - before_transfer / before_burn run BEFORE ownership changes and BEFORE any
    receiver callback, so outstanding rewards settle to the sender first
  - the receiver callback runs last and may re-enter the engine
"""

import copy
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Dict, Iterable, List, Optional, Protocol

from stakeledger.ledger.types import Level, Position
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.clock import Clock
from stakeledger.runtime.errors import PreconditionError, Unauthorized, UnknownToken

# (operator, sender, token_id, data)
Receiver = Callable[[str, str, int, bytes], None]


class PositionStore(Protocol):
    def bind(self, hooks: "PositionHooks", scope: Optional[AtomicScope] = None) -> None: ...

    def exists(self, token_id: int) -> bool: ...

    def owner_of(self, token_id: int) -> str: ...

    def position(self, token_id: int) -> Position: ...

    def mint(self, owner: str, level_id: int, amount: int, *, migrated: bool = False) -> Position: ...

    def transfer(self, sender: str, receiver: str, token_id: int, *, operator: Optional[str] = None, data: bytes = b"") -> None: ...

    def burn(self, token_id: int) -> Position: ...

    def register_receiver(self, account: str, fn: Receiver) -> None: ...


class PositionHooks(Protocol):
    def can_transfer(self, token_id: int) -> bool: ...

    def before_transfer(self, token_id: int, sender: str) -> None: ...

    def before_burn(self, token_id: int, owner: str) -> None: ...


class InMemoryPositionStore:
    def __init__(self, clock: Clock, levels: Iterable[Level] = ()) -> None:
        self.clock = clock
        self._levels: Dict[int, Level] = {}
        for lvl in levels:
            self.add_level(lvl)

        self._positions: Dict[int, Position] = {}
        self._next_id = 1
        # stake asset returned on burn
        self._stake_refunds: Dict[str, int] = {}

        self._receivers: Dict[str, Receiver] = {}
        self._hooks: Optional[PositionHooks] = None
        self._scope: Optional[AtomicScope] = None

    # ---- wiring ----

    def bind(self, hooks: PositionHooks, scope: Optional[AtomicScope] = None) -> None:
        self._hooks = hooks
        self._scope = scope
        if scope is not None:
            scope.register(self)

    def register_receiver(self, account: str, fn: Receiver) -> None:
        self._receivers[str(account)] = fn

    def _txn(self) -> ContextManager[Any]:
        return self._scope.transaction() if self._scope is not None else nullcontext()

    # ---- levels ----

    def add_level(self, level: Level) -> None:
        if int(level.level_id) <= 0:
            raise ValueError("level_id must be > 0")
        self._levels[int(level.level_id)] = level

    def level(self, level_id: int) -> Level:
        lvl = self._levels.get(int(level_id))
        if lvl is None:
            raise PreconditionError("invalid_level", "unknown_level", {"level_id": level_id})
        return lvl

    def levels(self) -> List[Level]:
        return [self._levels[k] for k in sorted(self._levels)]

    # ---- reads ----

    def exists(self, token_id: int) -> bool:
        return int(token_id) in self._positions

    def owner_of(self, token_id: int) -> str:
        return self.position(token_id).owner

    def position(self, token_id: int) -> Position:
        pos = self._positions.get(int(token_id))
        if pos is None:
            raise UnknownToken(details={"token_id": token_id})
        return pos

    def tokens_of(self, owner: str) -> List[int]:
        return sorted(t for t, p in self._positions.items() if p.owner == owner)

    def stake_refund_of(self, account: str) -> int:
        return int(self._stake_refunds.get(account, 0))

    @property
    def total_staked(self) -> int:
        return sum(p.staked_amount for p in self._positions.values())

    # ---- mutations ----

    def mint(self, owner: str, level_id: int, amount: int, *, migrated: bool = False) -> Position:
        o = str(owner or "").strip()
        if not o:
            raise PreconditionError("invalid_params", "missing_owner", {})
        lvl = self.level(level_id)
        if int(amount) != int(lvl.stake_required):
            raise PreconditionError(
                "invalid_params",
                "stake_amount_mismatch",
                {"level_id": level_id, "required": lvl.stake_required, "got": int(amount)},
            )

        block = self.clock.block_number()
        token_id = self._next_id
        # migrated positions carry no maturity gate
        maturity_end = block if migrated else block + int(lvl.maturity_blocks)
        pos = Position(
            token_id=token_id,
            owner=o,
            level_id=int(level_id),
            staked_amount=int(amount),
            minted_at_block=block,
            maturity_end_block=maturity_end,
            migrated=bool(migrated),
        )
        self._positions[token_id] = pos
        self._next_id += 1
        return pos

    def transfer(self, sender: str, receiver: str, token_id: int, *, operator: Optional[str] = None, data: bytes = b"") -> None:
        op = sender if operator is None else operator
        with self._txn():
            pos = self.position(token_id)
            if pos.owner != sender:
                raise Unauthorized(reason="sender_not_owner", details={"token_id": token_id, "sender": sender})
            if op != sender:
                raise Unauthorized(reason="operator_not_approved", details={"token_id": token_id, "operator": op})
            to = str(receiver or "").strip()
            if not to:
                raise PreconditionError("invalid_params", "missing_receiver", {"token_id": token_id})

            if self._hooks is not None:
                if not self._hooks.can_transfer(token_id):
                    raise PreconditionError("conflict", "position_locked", {"token_id": token_id})
                self._hooks.before_transfer(token_id, sender)

            self._positions[int(token_id)] = pos.with_owner(to)

            fn = self._receivers.get(to)
            if fn is not None:
                fn(op, sender, int(token_id), bytes(data))

    def burn(self, token_id: int) -> Position:
        with self._txn():
            pos = self.position(token_id)
            if self._hooks is not None:
                self._hooks.before_burn(token_id, pos.owner)
            # the hook may have re-entered; re-read before removing
            pos = self.position(token_id)
            del self._positions[int(token_id)]
            self._stake_refunds[pos.owner] = self.stake_refund_of(pos.owner) + pos.staked_amount
            return pos

    # ---- journaling ----

    def snapshot(self) -> Any:
        return (copy.deepcopy(self._positions), self._next_id, dict(self._stake_refunds))

    def restore(self, snap: Any) -> None:
        self._positions, self._next_id, self._stake_refunds = snap
