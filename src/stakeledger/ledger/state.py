from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from stakeledger.ledger.constants import DEFAULT_PERIOD_DURATION
from stakeledger.ledger.types import BaseAccrualState, DelegationRecord

Json = Dict[str, Any]


@dataclass
class RewardPolicy:
    """Process-wide reward settings, read through by every accrual computation.

    global_accrual_cutoff == 0 and max_claimable_periods == 0 mean unbounded.
    """

    rate_per_block: Dict[int, int] = field(default_factory=dict)
    period_duration: int = DEFAULT_PERIOD_DURATION
    global_accrual_cutoff: int = 0
    max_claimable_periods: int = 0
    version: int = 0

    def rate(self, level_id: int) -> int:
        return int(self.rate_per_block.get(int(level_id), 0))

    def cutoff_reached(self, now: int) -> bool:
        return self.global_accrual_cutoff != 0 and int(now) >= self.global_accrual_cutoff

    def clamp(self, now: int) -> int:
        if self.global_accrual_cutoff == 0:
            return int(now)
        return min(int(now), self.global_accrual_cutoff)

    def to_json(self) -> Json:
        return {
            "rate_per_block": {str(k): int(v) for k, v in sorted(self.rate_per_block.items())},
            "period_duration": self.period_duration,
            "global_accrual_cutoff": self.global_accrual_cutoff,
            "max_claimable_periods": self.max_claimable_periods,
            "version": self.version,
        }


@dataclass
class EngineState:
    """All mutable reward-engine state.

    One object so an atomic scope can snapshot and restore it as a unit.
    """

    policy: RewardPolicy = field(default_factory=RewardPolicy)
    base: Dict[int, BaseAccrualState] = field(default_factory=dict)
    delegations: Dict[int, DelegationRecord] = field(default_factory=dict)
    lost_rewards: Dict[Tuple[str, int], int] = field(default_factory=dict)

    # reward asset
    treasury_balance: int = 0
    balances: Dict[str, int] = field(default_factory=dict)

    stats: Dict[str, int] = field(
        default_factory=lambda: {
            "base_paid_total": 0,
            "delegation_paid_total": 0,
            "lost_paid_total": 0,
        }
    )

    def delegation(self, token_id: int) -> Optional[DelegationRecord]:
        return self.delegations.get(int(token_id))

    def balance_of(self, account: str) -> int:
        return int(self.balances.get(account, 0))

    def to_dict(self) -> Json:
        return {
            "policy": self.policy.to_json(),
            "base": {str(k): {"last_claim_timestamp": v.last_claim_timestamp} for k, v in sorted(self.base.items())},
            "delegations": {str(k): v.to_json() for k, v in sorted(self.delegations.items())},
            "lost_rewards": [
                {"owner": owner, "token_id": token_id, "amount": amount}
                for (owner, token_id), amount in sorted(self.lost_rewards.items())
            ],
            "treasury_balance": self.treasury_balance,
            "balances": dict(sorted(self.balances.items())),
            "stats": dict(self.stats),
        }

    # ---- journaling ----

    def snapshot(self) -> Json:
        return {f.name: copy.deepcopy(getattr(self, f.name)) for f in fields(self)}

    def restore(self, snap: Json) -> None:
        for name, value in snap.items():
            setattr(self, name, value)
