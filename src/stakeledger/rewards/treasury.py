from __future__ import annotations

from stakeledger.ledger.state import EngineState
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.errors import InsufficientRewardFunds, InvalidPolicy
from stakeledger.runtime.metrics import record_payout, set_gauge


class Treasury:
    """Reward-asset treasury: the one contended balance every payout draws from."""

    def __init__(self, state: EngineState, scope: AtomicScope) -> None:
        self.state = state
        self.scope = scope

    @property
    def balance(self) -> int:
        return int(self.state.treasury_balance)

    def fund(self, amount: int) -> int:
        amt = int(amount)
        if amt <= 0:
            raise InvalidPolicy(reason="funding_must_be_positive", details={"amount": amt})
        self.state.treasury_balance += amt
        self._publish_gauge()
        return self.balance

    def pay(self, recipient: str, amount: int, *, stream: str) -> None:
        amt = int(amount)
        if amt <= 0:
            return
        if self.state.treasury_balance < amt:
            raise InsufficientRewardFunds(
                details={"recipient": recipient, "amount": amt, "available": self.state.treasury_balance, "stream": stream}
            )

        self.state.treasury_balance -= amt
        self.state.balances[recipient] = self.state.balance_of(recipient) + amt
        key = f"{stream}_paid_total"
        self.state.stats[key] = int(self.state.stats.get(key, 0)) + amt

        self.scope.defer(lambda: record_payout(stream, amt))
        self._publish_gauge()

    def _publish_gauge(self) -> None:
        self.scope.defer(lambda: set_gauge("treasury_balance", self.state.treasury_balance))
