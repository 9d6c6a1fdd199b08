from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; the engine re-validates
everything it is handed.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class StakeRequest(BaseModel):
    level_id: int = Field(..., description="Level (tier) of the new position")
    amount: int = Field(..., description="Stake amount; must equal the level's required stake")
    # None: stake only; true/false: stake and delegate with that auto-renew flag
    auto_renew: Optional[bool] = Field(default=None)


class DelegateRequest(BaseModel):
    auto_renew: bool = Field(default=False, description="Renew period after period until an exit is requested")


class TransferRequest(BaseModel):
    receiver: str = Field(..., description="New owner")
    data: str = Field(default="", description="Opaque payload handed to the receiver callback")


class LostRewardsClaimRequest(BaseModel):
    owner: str = Field(..., description="Recorded owner to be paid")
    token_id: int


class RateRequest(BaseModel):
    level_id: int
    rate: int = Field(..., description="Reward units per accrual unit; 0 disables the level")


class RatesBulkRequest(BaseModel):
    level_ids: List[int]
    rates: List[int]


class PeriodDurationRequest(BaseModel):
    blocks: int


class CutoffRequest(BaseModel):
    block: int = Field(..., description="Global accrual cutoff; 0 removes it")


class MaxClaimablePeriodsRequest(BaseModel):
    periods: int = Field(..., description="Per-claim period bound; 0 removes it")


class LostRewardsAddRequest(BaseModel):
    owners: List[str]
    token_ids: List[int]
    amounts: List[int]


class LostRewardsRemoveRequest(BaseModel):
    owner: str
    token_id: int
