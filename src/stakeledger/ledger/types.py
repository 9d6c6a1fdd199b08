"""stakeledger.ledger.types

Typed records shared by the reward engine.

This module defines:
  - Level / Position: the read-only view of a staked position
  - BaseAccrualState: the continuous-yield anchor
  - EndBlock: tagged end-of-delegation marker (Bounded | Unbounded)
  - DelegationRecord: the per-position delegation schedule
  - DelegationStatus / ValidatorStatus
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        return int(v)
    except Exception as e:
        raise ValueError(f"record schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


@dataclass(frozen=True)
class Level:
    level_id: int
    name: str
    stake_required: int
    maturity_blocks: int

    def to_json(self) -> Json:
        return {
            "level_id": self.level_id,
            "name": self.name,
            "stake_required": self.stake_required,
            "maturity_blocks": self.maturity_blocks,
        }

    @staticmethod
    def from_json(j: Any) -> "Level":
        if isinstance(j, Level):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return Level(
            level_id=_coerce_int(j.get("level_id"), field="level_id"),
            name=str(j.get("name", "") or ""),
            stake_required=_coerce_int(j.get("stake_required", 0), field="stake_required"),
            maturity_blocks=_coerce_int(j.get("maturity_blocks", 0), field="maturity_blocks"),
        )


@dataclass(frozen=True)
class Position:
    token_id: int
    owner: str
    level_id: int
    staked_amount: int
    minted_at_block: int
    maturity_end_block: int
    migrated: bool = False

    def is_under_maturity(self, block: int) -> bool:
        return int(block) < int(self.maturity_end_block)

    def with_owner(self, owner: str) -> "Position":
        return replace(self, owner=owner)

    def to_json(self) -> Json:
        return {
            "token_id": self.token_id,
            "owner": self.owner,
            "level_id": self.level_id,
            "staked_amount": self.staked_amount,
            "minted_at_block": self.minted_at_block,
            "maturity_end_block": self.maturity_end_block,
            "migrated": self.migrated,
        }


@dataclass
class BaseAccrualState:
    # 0 means never settled / not yet staked
    last_claim_timestamp: int = 0


class EndBlock:
    """End of a delegation: either a concrete block or open-ended.

    Use `EndBlock.at(n)` / `EndBlock.UNBOUNDED`. Reading `.block` on the
    unbounded marker raises, so the sentinel never leaks into arithmetic.
    """

    __slots__ = ("_block",)

    UNBOUNDED: "EndBlock"

    def __init__(self, block: Optional[int]) -> None:
        if block is not None and int(block) < 0:
            raise ValueError("end block must be >= 0")
        self._block = None if block is None else int(block)

    @staticmethod
    def at(block: int) -> "EndBlock":
        return EndBlock(int(block))

    @property
    def bounded(self) -> bool:
        return self._block is not None

    @property
    def block(self) -> int:
        if self._block is None:
            raise ValueError("unbounded end block has no block number")
        return self._block

    def reached(self, now: int) -> bool:
        return self._block is not None and int(now) >= self._block

    def clamp(self, now: int) -> int:
        """min(now, end) without touching the sentinel."""
        if self._block is None:
            return int(now)
        return min(int(now), self._block)

    def to_json(self) -> Optional[int]:
        return self._block

    @staticmethod
    def from_json(v: Any) -> "EndBlock":
        if v is None:
            return EndBlock.UNBOUNDED
        return EndBlock.at(_coerce_int(v, field="end_block"))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EndBlock):
            return NotImplemented
        return self._block == other._block

    def __hash__(self) -> int:
        return hash(("EndBlock", self._block))

    def __repr__(self) -> str:
        if self._block is None:
            return "EndBlock.UNBOUNDED"
        return f"EndBlock.at({self._block})"

    def __deepcopy__(self, memo: Dict[int, Any]) -> "EndBlock":
        return self


EndBlock.UNBOUNDED = EndBlock(None)


class DelegationStatus(IntEnum):
    NONE = 0
    PENDING = 1
    ACTIVE = 2
    EXITED = 3


class ValidatorStatus(str, Enum):
    UNKNOWN = "unknown"
    QUEUED = "queued"
    ACTIVE = "active"
    EXITED = "exited"


@dataclass
class DelegationRecord:
    """Live delegation schedule of one position.

    accumulation_start only ever advances by whole periods, except for the
    final settlement of a closed window, which moves it to the window end.
    """

    token_id: int
    auto_renew: bool
    accumulation_start: int
    end: EndBlock
    delegated_at: int
    exit_requested: bool = False

    def is_active(self, now: int) -> bool:
        return not self.end.reached(now)

    def status(self, now: int) -> DelegationStatus:
        if self.end.reached(now):
            return DelegationStatus.EXITED
        if int(now) < int(self.accumulation_start):
            return DelegationStatus.PENDING
        return DelegationStatus.ACTIVE

    def to_json(self) -> Json:
        return {
            "token_id": self.token_id,
            "auto_renew": self.auto_renew,
            "accumulation_start": self.accumulation_start,
            "end_block": self.end.to_json(),
            "delegated_at": self.delegated_at,
            "exit_requested": self.exit_requested,
        }

    @staticmethod
    def from_json(j: Any) -> "DelegationRecord":
        if isinstance(j, DelegationRecord):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return DelegationRecord(
            token_id=_coerce_int(j.get("token_id"), field="token_id"),
            auto_renew=bool(j.get("auto_renew", False)),
            accumulation_start=_coerce_int(j.get("accumulation_start", 0), field="accumulation_start"),
            end=EndBlock.from_json(j.get("end_block")),
            delegated_at=_coerce_int(j.get("delegated_at", 0), field="delegated_at"),
            exit_requested=bool(j.get("exit_requested", False)),
        )
