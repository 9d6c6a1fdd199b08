# src/stakeledger/runtime/clock.py
from __future__ import annotations

"""Monotonic clocks for reward accrual.

The settlement math is the same for every deployment; only the unit of
`now()` differs:

  - BlockClock: host-chain block number
  - ValidatorPeriodClock: periods completed by one validator, as reported
    by the protocol staker

Both also expose the host block number (maturity gating) and a wall-clock
timestamp in seconds (base accrual).
"""

from typing import TYPE_CHECKING, Protocol

from stakeledger.ledger.constants import BLOCK_INTERVAL_SECONDS
from stakeledger.ledger.types import ValidatorStatus
from stakeledger.runtime.errors import ValidatorInactive

if TYPE_CHECKING:
    from stakeledger.positions.protocol_staker import ProtocolStaker

DEFAULT_GENESIS_TIMESTAMP: int = 1_700_000_000


class Clock(Protocol):
    kind: str
    requires_maturity_for_delegation: bool
    cancels_pending_on_exit: bool

    def now(self) -> int: ...

    def block_number(self) -> int: ...

    def timestamp(self) -> int: ...

    def check_delegation_allowed(self) -> None: ...

    def accrual_halted(self) -> bool: ...


class BlockClock:
    """Block-height clock. Tests and local runs advance it with `mine`."""

    kind = "block"
    requires_maturity_for_delegation = False
    cancels_pending_on_exit = False

    def __init__(
        self,
        *,
        start_block: int = 0,
        genesis_timestamp: int = DEFAULT_GENESIS_TIMESTAMP,
        block_interval_seconds: int = BLOCK_INTERVAL_SECONDS,
    ) -> None:
        if int(block_interval_seconds) <= 0:
            raise ValueError("block_interval_seconds must be > 0")
        self._block = int(start_block)
        self._genesis_ts = int(genesis_timestamp)
        self._interval = int(block_interval_seconds)
        self._drift_s = 0

    def now(self) -> int:
        return self._block

    def block_number(self) -> int:
        return self._block

    def timestamp(self) -> int:
        return self._genesis_ts + self._block * self._interval + self._drift_s

    def check_delegation_allowed(self) -> None:
        return None

    def accrual_halted(self) -> bool:
        return False

    def mine(self, blocks: int = 1) -> int:
        n = int(blocks)
        if n < 0:
            raise ValueError("cannot mine a negative number of blocks")
        self._block += n
        return self._block

    def mine_to(self, block: int) -> int:
        return self.mine(max(int(block) - self._block, 0))

    def sleep(self, seconds: int) -> int:
        """Advance wall-clock time without producing a block."""
        s = int(seconds)
        if s < 0:
            raise ValueError("time does not run backwards")
        self._drift_s += s
        return self.timestamp()


class ValidatorPeriodClock:
    """Validator-period clock: one unit per period completed by `validator_id`."""

    kind = "validator"
    requires_maturity_for_delegation = True
    cancels_pending_on_exit = True

    def __init__(self, staker: "ProtocolStaker", validator_id: str, chain: BlockClock) -> None:
        v = str(validator_id or "").strip()
        if not v:
            raise ValueError("validator_id must be a non-empty string")
        self.staker = staker
        self.validator_id = v
        self.chain = chain

    def now(self) -> int:
        return int(self.staker.completed_periods(self.validator_id))

    def block_number(self) -> int:
        return self.chain.block_number()

    def timestamp(self) -> int:
        return self.chain.timestamp()

    def check_delegation_allowed(self) -> None:
        status = self.staker.validator_status(self.validator_id)
        if status not in (ValidatorStatus.QUEUED, ValidatorStatus.ACTIVE):
            raise ValidatorInactive(details={"validator": self.validator_id, "status": status.value})

    def accrual_halted(self) -> bool:
        """An exited validator completes no further periods."""
        return self.staker.validator_status(self.validator_id) == ValidatorStatus.EXITED
