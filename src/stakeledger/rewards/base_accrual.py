from __future__ import annotations

"""Base accrual ledger: continuous stake-proportional yield.

    owed = staked_amount * (now_ts - last_claim_timestamp) * NUM // DEN

The stream starts at mint (`register`), is reset only by a settlement and
stops at burn (`clear`). No periods, caps or locks apply.
"""

import logging

from stakeledger.ledger.constants import BASE_REWARD_DENOMINATOR, BASE_REWARD_NUMERATOR
from stakeledger.ledger.state import EngineState
from stakeledger.ledger.types import BaseAccrualState
from stakeledger.positions.store import PositionStore
from stakeledger.runtime.access import AccessPolicy, deny_if_paused, require_owner_or_manager
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.clock import Clock
from stakeledger.runtime.events import BaseRewardsClaimed, EventBus
from stakeledger.rewards.treasury import Treasury

log = logging.getLogger("stakeledger.rewards.base")


def base_reward(staked_amount: int, seconds: int) -> int:
    if seconds <= 0 or staked_amount <= 0:
        return 0
    return int(staked_amount) * int(seconds) * BASE_REWARD_NUMERATOR // BASE_REWARD_DENOMINATOR


class BaseAccrualLedger:
    def __init__(
        self,
        *,
        state: EngineState,
        store: PositionStore,
        clock: Clock,
        access: AccessPolicy,
        treasury: Treasury,
        events: EventBus,
        scope: AtomicScope,
    ) -> None:
        self.state = state
        self.store = store
        self.clock = clock
        self.access = access
        self.treasury = treasury
        self.events = events
        self.scope = scope

    def register(self, token_id: int) -> None:
        self.state.base[int(token_id)] = BaseAccrualState(last_claim_timestamp=self.clock.timestamp())

    def clear(self, token_id: int) -> None:
        self.state.base.pop(int(token_id), None)

    def last_claim_timestamp(self, token_id: int) -> int:
        entry = self.state.base.get(int(token_id))
        return entry.last_claim_timestamp if entry is not None else 0

    def claimable(self, token_id: int) -> int:
        last = self.last_claim_timestamp(token_id)
        if last == 0:
            return 0
        pos = self.store.position(token_id)
        return base_reward(pos.staked_amount, self.clock.timestamp() - last)

    def claim(self, caller: str, token_id: int) -> int:
        """Pay the current owner everything accrued so far."""
        deny_if_paused(self.access, op="claim_base_rewards")
        with self.scope.transaction():
            pos = self.store.position(token_id)
            require_owner_or_manager(self.access, caller, pos.owner, pos.token_id, op="claim_base_rewards")
            return self.settle(pos.token_id, pos.owner)

    def settle(self, token_id: int, recipient: str) -> int:
        """Pay `recipient` and move the anchor to now. Must run inside a scope."""
        entry = self.state.base.get(int(token_id))
        if entry is None or entry.last_claim_timestamp == 0:
            return 0

        now_ts = self.clock.timestamp()
        from_ts = entry.last_claim_timestamp
        amount = self.claimable(token_id)
        if amount <= 0:
            return 0

        self.treasury.pay(recipient, amount, stream="base")
        entry.last_claim_timestamp = now_ts
        self.events.emit(
            BaseRewardsClaimed(token_id=int(token_id), amount=amount, recipient=recipient, from_ts=from_ts, to_ts=now_ts)
        )
        log.debug("base settled token=%s amount=%s recipient=%s", token_id, amount, recipient)
        return amount
