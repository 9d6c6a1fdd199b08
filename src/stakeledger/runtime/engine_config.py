# src/stakeledger/runtime/engine_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from stakeledger.ledger.constants import (
    BLOCK_INTERVAL_SECONDS,
    DEFAULT_MAX_CLAIMABLE_PERIODS,
    DEFAULT_PERIOD_DURATION,
    UNIT,
)
from stakeledger.ledger.types import Level

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


DEFAULT_LEVELS: Tuple[Level, ...] = (
    Level(level_id=1, name="Strength", stake_required=100 * UNIT, maturity_blocks=10),
    Level(level_id=2, name="Thunder", stake_required=500 * UNIT, maturity_blocks=20),
    Level(level_id=3, name="Mjolnir", stake_required=1_500 * UNIT, maturity_blocks=30),
    Level(level_id=8, name="Dawn", stake_required=1 * UNIT, maturity_blocks=5),
    Level(level_id=9, name="Lightning", stake_required=5 * UNIT, maturity_blocks=10),
)

# reward-asset units per block of delegation, by level
DEFAULT_RATES_PER_BLOCK: Dict[int, int] = {
    1: 122_399_797_000_000_000,
    2: 975_076_104_000_000_000,
    3: 3_900_304_414_000_000_000,
    8: 697_615_000_000_000,
    9: 3_900_304_000_000_000,
}


@dataclass(frozen=True)
class EngineConfig:
    mode: str  # "dev" | "testnet" | "prod"

    # accrual clock: "block" | "validator"
    clock: str
    validator_id: str

    start_block: int
    block_interval_seconds: int

    period_duration: int
    rates_per_block: Dict[int, int]
    levels: Tuple[Level, ...]
    global_accrual_cutoff: int
    max_claimable_periods: int

    treasury_funding: int
    admins: Tuple[str, ...]

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_CLOCKS = {"block", "validator"}


def validate_engine_config(cfg: EngineConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    clock = str(cfg.clock or "").strip().lower()
    if clock not in _ALLOWED_CLOCKS:
        raise ValueError(f"clock must be one of {_ALLOWED_CLOCKS}; got: {cfg.clock!r}")
    if clock == "validator" and not str(cfg.validator_id or "").strip():
        raise ValueError("validator_id is required when clock == 'validator'")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if int(cfg.start_block) < 0:
        raise ValueError(f"start_block must be >= 0; got: {cfg.start_block}")
    if int(cfg.block_interval_seconds) <= 0:
        raise ValueError(f"block_interval_seconds must be > 0; got: {cfg.block_interval_seconds}")
    if int(cfg.period_duration) <= 0:
        raise ValueError(f"period_duration must be > 0; got: {cfg.period_duration}")

    for name in ("global_accrual_cutoff", "max_claimable_periods", "treasury_funding"):
        if int(getattr(cfg, name)) < 0:
            raise ValueError(f"{name} must be >= 0; got: {getattr(cfg, name)}")

    if not cfg.levels:
        raise ValueError("at least one level is required")
    seen = set()
    for lvl in cfg.levels:
        if int(lvl.level_id) <= 0:
            raise ValueError(f"level_id must be > 0; got: {lvl.level_id}")
        if lvl.level_id in seen:
            raise ValueError(f"duplicate level_id: {lvl.level_id}")
        if int(lvl.stake_required) <= 0 or int(lvl.maturity_blocks) < 0:
            raise ValueError(f"level {lvl.level_id}: stake_required must be > 0 and maturity_blocks >= 0")
        seen.add(lvl.level_id)

    for level_id, rate in cfg.rates_per_block.items():
        if int(level_id) not in seen:
            raise ValueError(f"rates_per_block references unknown level {level_id}")
        if int(rate) < 0:
            raise ValueError(f"rate for level {level_id} must be >= 0; got: {rate}")

    for a in cfg.admins:
        if not isinstance(a, str) or not a.strip():
            raise ValueError("admins must be non-empty strings")


def default_engine_config() -> EngineConfig:
    return EngineConfig(
        # Production posture unless a config file says otherwise.
        mode="prod",
        clock="block",
        validator_id="",
        start_block=0,
        block_interval_seconds=BLOCK_INTERVAL_SECONDS,
        period_duration=DEFAULT_PERIOD_DURATION,
        rates_per_block=dict(DEFAULT_RATES_PER_BLOCK),
        levels=DEFAULT_LEVELS,
        global_accrual_cutoff=0,
        max_claimable_periods=0,
        treasury_funding=0,
        admins=(),
        api_host="0.0.0.0",
        api_port=8000,
        log_level="INFO",
    )


def _parse_rates(raw: Any, default: Dict[int, int]) -> Dict[int, int]:
    if raw is None:
        return dict(default)
    if isinstance(raw, list):
        # [{"level_id": 1, "rate": 10}, ...]
        return {int(r["level_id"]): int(r["rate"]) for r in raw}
    if isinstance(raw, dict):
        return {int(k): int(v) for k, v in raw.items()}
    raise ValueError("rates_per_block must be a mapping or a list of {level_id, rate}")


def _parse_levels(raw: Any, default: Tuple[Level, ...]) -> Tuple[Level, ...]:
    if raw is None:
        return default
    if not isinstance(raw, list):
        raise ValueError("levels must be a list")
    return tuple(Level.from_json(x) for x in raw)


def engine_config_from_dict(raw: Json) -> EngineConfig:
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a mapping")

    d = default_engine_config()
    clock = _as_str(raw.get("clock"), d.clock).strip().lower()
    # on the validator clock one unit of now() is one completed validator period
    if clock == "validator":
        period, max_periods = 1, DEFAULT_MAX_CLAIMABLE_PERIODS
    else:
        period, max_periods = d.period_duration, d.max_claimable_periods

    cfg = EngineConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        clock=clock,
        validator_id=str(raw.get("validator_id") or d.validator_id).strip(),
        start_block=_as_int(raw.get("start_block"), d.start_block),
        block_interval_seconds=_as_int(raw.get("block_interval_seconds"), d.block_interval_seconds),
        period_duration=_as_int(raw.get("period_duration"), period),
        rates_per_block=_parse_rates(raw.get("rates_per_block"), d.rates_per_block),
        levels=_parse_levels(raw.get("levels"), d.levels),
        global_accrual_cutoff=_as_int(raw.get("global_accrual_cutoff"), d.global_accrual_cutoff),
        max_claimable_periods=_as_int(raw.get("max_claimable_periods"), max_periods),
        treasury_funding=_as_int(raw.get("treasury_funding"), d.treasury_funding),
        admins=tuple(str(a) for a in (raw.get("admins") or d.admins)),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).upper(),
    )

    validate_engine_config(cfg)
    return cfg


def read_engine_config_file(path: str) -> EngineConfig:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a JSON/YAML object")
    return engine_config_from_dict(raw)


def load_engine_config(*, config_path: Optional[str] = None) -> EngineConfig:
    p = config_path or os.environ.get("STAKELEDGER_CONFIG_PATH")
    if p:
        return read_engine_config_file(p)

    cfg = default_engine_config()
    validate_engine_config(cfg)
    return cfg


def apply_engine_config_to_env(cfg: EngineConfig) -> None:
    validate_engine_config(cfg)
    os.environ["STAKELEDGER_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["STAKELEDGER_CLOCK"] = cfg.clock
    os.environ["STAKELEDGER_VALIDATOR_ID"] = cfg.validator_id
    os.environ["STAKELEDGER_PERIOD_DURATION"] = str(int(cfg.period_duration))
    os.environ["STAKELEDGER_API_HOST"] = cfg.api_host
    os.environ["STAKELEDGER_API_PORT"] = str(int(cfg.api_port))
    os.environ["STAKELEDGER_LOG_LEVEL"] = cfg.log_level
