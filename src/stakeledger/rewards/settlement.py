# src/stakeledger/rewards/settlement.py
from __future__ import annotations

"""Transfer / unstake settlement hook.

Ownership changes run as an ordered two-phase protocol:

  1. settle: base ledger, then delegation record, then lost rewards, all paid
     to the sender (the owner at the moment of the call); accrual anchors are
     advanced here
  2. hand off: the store changes ownership (or burns) and only then runs the
     receiver callback

Because the anchors move in phase 1, anything the receiver re-enters during
phase 2 sees only post-settlement accrual. Both phases share one atomic scope
opened by the store, so a failure in either (including an underfunded
treasury or a rejecting receiver) restores everything.
"""

import logging

from stakeledger.positions.store import PositionStore
from stakeledger.runtime.access import AccessPolicy, deny_if_paused
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.errors import DelegationAlreadyActive, OwnerChanged
from stakeledger.rewards.base_accrual import BaseAccrualLedger
from stakeledger.rewards.delegation import DelegationEngine
from stakeledger.rewards.lost_rewards import LostRewardsLedger

log = logging.getLogger("stakeledger.rewards.settlement")


class SettlementHook:
    """PositionHooks implementation bound into the position store."""

    def __init__(
        self,
        *,
        store: PositionStore,
        access: AccessPolicy,
        base: BaseAccrualLedger,
        delegation: DelegationEngine,
        lost: LostRewardsLedger,
        scope: AtomicScope,
    ) -> None:
        self.store = store
        self.access = access
        self.base = base
        self.delegation = delegation
        self.lost = lost
        self.scope = scope

    def can_transfer(self, token_id: int) -> bool:
        return not self.delegation.is_active(token_id)

    def before_transfer(self, token_id: int, sender: str) -> None:
        deny_if_paused(self.access, op="transfer")
        with self.scope.transaction():
            self._check_handoff(token_id, sender)
            paid = self._settle_all(token_id, sender)
            log.debug("pre-transfer settlement token=%s sender=%s paid=%s", token_id, sender, paid)

    def before_burn(self, token_id: int, owner: str) -> None:
        deny_if_paused(self.access, op="unstake")
        with self.scope.transaction():
            self._check_handoff(token_id, owner)
            paid = self._settle_all(token_id, owner)
            # no dangling accrual after burn
            self.base.clear(token_id)
            self.delegation.clear(token_id)
            log.debug("pre-burn settlement token=%s owner=%s paid=%s", token_id, owner, paid)

    def _check_handoff(self, token_id: int, sender: str) -> None:
        current = self.store.owner_of(token_id)
        if current != sender:
            raise OwnerChanged(details={"token_id": token_id, "expected_owner": sender, "owner": current})
        if self.delegation.is_active(token_id):
            raise DelegationAlreadyActive(reason="position_locked", details={"token_id": token_id})

    def _settle_all(self, token_id: int, sender: str) -> int:
        paid = self.base.settle(token_id, sender)
        paid += self.delegation.settle_for_handoff(token_id, sender)
        paid += self.lost.settle(sender, token_id, claimer=sender)
        return paid
