from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class EngineError(Exception):
    """Canonical error type for reward engine failures.

    Raised synchronously to the caller; the surrounding atomic scope has
    already restored every mutated component by the time it is observed.
    """

    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


@dataclass
class PreconditionError(EngineError):
    """Caller or record state does not allow the operation."""


@dataclass
class ResourceError(EngineError):
    """A shared resource (the reward treasury) cannot serve the operation."""


@dataclass
class InvariantError(EngineError):
    """State changed underneath an operation in a way it cannot tolerate."""


# ---- precondition errors ----


@dataclass
class Unauthorized(PreconditionError):
    code: str = "forbidden"
    reason: str = "unauthorized"
    details: Optional[Json] = None


@dataclass
class Paused(PreconditionError):
    code: str = "paused"
    reason: str = "engine_paused"
    details: Optional[Json] = None


@dataclass
class UnknownToken(PreconditionError):
    code: str = "not_found"
    reason: str = "unknown_token"
    details: Optional[Json] = None


@dataclass
class DelegationAlreadyActive(PreconditionError):
    code: str = "conflict"
    reason: str = "delegation_active"
    details: Optional[Json] = None


@dataclass
class NotDelegated(PreconditionError):
    code: str = "conflict"
    reason: str = "not_delegated"
    details: Optional[Json] = None


@dataclass
class ExitAlreadyScheduled(PreconditionError):
    code: str = "conflict"
    reason: str = "exit_already_scheduled"
    details: Optional[Json] = None


@dataclass
class LevelRateZero(PreconditionError):
    code: str = "invalid_level"
    reason: str = "level_rate_zero"
    details: Optional[Json] = None


@dataclass
class RewardsProgramEnded(PreconditionError):
    code: str = "conflict"
    reason: str = "rewards_program_ended"
    details: Optional[Json] = None


@dataclass
class UnderMaturity(PreconditionError):
    code: str = "conflict"
    reason: str = "under_maturity"
    details: Optional[Json] = None


@dataclass
class ValidatorInactive(PreconditionError):
    code: str = "conflict"
    reason: str = "validator_inactive"
    details: Optional[Json] = None


@dataclass
class InvalidPolicy(PreconditionError):
    code: str = "invalid_params"
    reason: str = "invalid_policy"
    details: Optional[Json] = None


# ---- resource errors ----


@dataclass
class InsufficientRewardFunds(ResourceError):
    code: str = "insufficient_funds"
    reason: str = "treasury_underfunded"
    details: Optional[Json] = None


# ---- invariant errors ----


@dataclass
class OwnerChanged(InvariantError):
    code: str = "invariant"
    reason: str = "owner_changed"
    details: Optional[Json] = None
