# src/stakeledger/ledger/constants.py
from __future__ import annotations

"""Monetary and scheduling constants.

Base yield (stake asset -> reward asset):
- 5 reward units per 10**9 stake units per second
  (0.000432 reward tokens per stake token per day)

Block cadence:
- 10 second blocks, 8_640 blocks per day
"""

# Both assets use 18 decimals
TOKEN_DECIMALS: int = 18
UNIT: int = 10**TOKEN_DECIMALS

# Base accrual rate: staked * seconds * NUM // DEN
BASE_REWARD_NUMERATOR: int = 5
BASE_REWARD_DENOMINATOR: int = 10**9

BLOCK_INTERVAL_SECONDS: int = 10
BLOCKS_PER_DAY: int = 24 * 60 * 60 // BLOCK_INTERVAL_SECONDS

# Default delegation cycle: one week of blocks
DEFAULT_PERIOD_DURATION: int = 7 * BLOCKS_PER_DAY

# Batched claiming bound for the validator-period clock (0 = unbounded)
DEFAULT_MAX_CLAIMABLE_PERIODS: int = 832
