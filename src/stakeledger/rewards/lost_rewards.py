from __future__ import annotations

"""Lost-rewards compensation ledger.

Admins seed amounts keyed by (owner, token_id) for rewards a holder could not
claim. The recorded owner is always the recipient, whoever triggers the
payout; the amount is also folded into that owner's delegation views and is
paid alongside delegation claims and by the transfer/burn settlement hook.
"""

from typing import List, Sequence, Tuple

from stakeledger.ledger.state import EngineState
from stakeledger.runtime.access import AccessPolicy, deny_if_paused, require_admin
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.clock import Clock
from stakeledger.runtime.errors import InvalidPolicy
from stakeledger.runtime.events import DelegationRewardsClaimed, EventBus, LostRewardsAdded, LostRewardsRemoved
from stakeledger.rewards.treasury import Treasury


class LostRewardsLedger:
    def __init__(
        self,
        *,
        state: EngineState,
        clock: Clock,
        access: AccessPolicy,
        treasury: Treasury,
        events: EventBus,
        scope: AtomicScope,
    ) -> None:
        self.state = state
        self.clock = clock
        self.access = access
        self.treasury = treasury
        self.events = events
        self.scope = scope

    def claimable(self, owner: str, token_id: int) -> int:
        return int(self.state.lost_rewards.get((str(owner), int(token_id)), 0))

    def entries(self) -> List[Tuple[str, int, int]]:
        return [(o, t, a) for (o, t), a in sorted(self.state.lost_rewards.items())]

    def add(self, caller: str, owners: Sequence[str], token_ids: Sequence[int], amounts: Sequence[int]) -> None:
        """Accumulate compensation for each (owner, token_id); all-or-nothing."""
        deny_if_paused(self.access, op="add_lost_rewards")
        require_admin(self.access, caller, op="add_lost_rewards")

        os_, ts, ams = list(owners or []), list(token_ids or []), list(amounts or [])
        if not os_:
            raise InvalidPolicy(reason="empty_lost_rewards", details={})
        if not (len(os_) == len(ts) == len(ams)):
            raise InvalidPolicy(
                reason="length_mismatch",
                details={"owners": len(os_), "token_ids": len(ts), "amounts": len(ams)},
            )

        with self.scope.transaction():
            for owner, token_id, amount in zip(os_, ts, ams):
                o = str(owner or "").strip()
                if not o:
                    raise InvalidPolicy(reason="missing_owner", details={"token_id": token_id})
                amt = int(amount)
                if amt <= 0:
                    raise InvalidPolicy(reason="amount_must_be_positive", details={"owner": o, "token_id": token_id})
                key = (o, int(token_id))
                self.state.lost_rewards[key] = self.state.lost_rewards.get(key, 0) + amt
                self.events.emit(LostRewardsAdded(owner=o, token_id=int(token_id), amount=amt))

    def remove(self, caller: str, owner: str, token_id: int) -> int:
        deny_if_paused(self.access, op="remove_lost_rewards")
        require_admin(self.access, caller, op="remove_lost_rewards")
        with self.scope.transaction():
            amount = self.state.lost_rewards.pop((str(owner), int(token_id)), 0)
            if amount > 0:
                self.events.emit(LostRewardsRemoved(owner=str(owner), token_id=int(token_id), amount=amount))
            return amount

    def claim(self, caller: str, owner: str, token_id: int) -> int:
        """Anyone may trigger; the recorded owner is paid."""
        deny_if_paused(self.access, op="claim_lost_rewards")
        with self.scope.transaction():
            return self.settle(owner, token_id, claimer=caller)

    def settle(self, owner: str, token_id: int, *, claimer: str) -> int:
        key = (str(owner), int(token_id))
        amount = int(self.state.lost_rewards.get(key, 0))
        if amount <= 0:
            return 0

        self.treasury.pay(key[0], amount, stream="lost")
        del self.state.lost_rewards[key]
        now = self.clock.now()
        self.events.emit(
            DelegationRewardsClaimed(
                token_id=key[1], amount=amount, claimer=claimer, recipient=key[0], from_block=now, to_block=now
            )
        )
        return amount

