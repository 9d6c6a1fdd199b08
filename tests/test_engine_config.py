from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from stakeledger.ledger.types import ValidatorStatus
from stakeledger.runtime.engine_boot import build_engine
from stakeledger.runtime.engine_config import (
    DEFAULT_RATES_PER_BLOCK,
    apply_engine_config_to_env,
    default_engine_config,
    engine_config_from_dict,
    load_engine_config,
    read_engine_config_file,
)

_LEVELS = [{"level_id": 1, "name": "Strength", "stake_required": 100, "maturity_blocks": 0}]


def test_defaults_are_valid_and_production_posture(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STAKELEDGER_CONFIG_PATH", raising=False)
    cfg = load_engine_config()
    assert cfg == default_engine_config()
    assert cfg.mode == "prod"
    assert cfg.clock == "block"
    assert cfg.rates_per_block == DEFAULT_RATES_PER_BLOCK
    assert {lvl.level_id for lvl in cfg.levels} == set(DEFAULT_RATES_PER_BLOCK)


def test_from_dict_accepts_rate_list_and_normalizes_strings() -> None:
    cfg = engine_config_from_dict(
        {
            "mode": " DEV ",
            "levels": _LEVELS,
            "rates_per_block": [{"level_id": 1, "rate": "5"}],
            "period_duration": "10",
            "admins": ["admin"],
            "log_level": "debug",
        }
    )
    assert cfg.mode == "dev"
    assert cfg.rates_per_block == {1: 5}
    assert cfg.period_duration == 10
    assert cfg.admins == ("admin",)
    assert cfg.log_level == "DEBUG"


@pytest.mark.parametrize(
    "patch,needle",
    [
        ({"mode": "staging"}, "mode"),
        ({"clock": "wallclock"}, "clock"),
        ({"clock": "validator"}, "validator_id"),
        ({"period_duration": 0}, "period_duration"),
        ({"api_port": 70000}, "api_port"),
        ({"rates_per_block": {"4": 1}}, "unknown level"),
        ({"levels": []}, "level"),
        ({"levels": _LEVELS + _LEVELS}, "duplicate"),
        ({"global_accrual_cutoff": -1}, "global_accrual_cutoff"),
    ],
)
def test_invalid_config_fails_fast(patch, needle) -> None:
    raw = {"levels": _LEVELS, "rates_per_block": {"1": 1}}
    raw.update(patch)
    with pytest.raises(ValueError) as ei:
        engine_config_from_dict(raw)
    assert needle in str(ei.value)


def test_reads_yaml_and_json_files(tmp_path: Path) -> None:
    y = tmp_path / "engine.yaml"
    y.write_text(
        "\n".join(
            [
                "mode: testnet",
                "clock: validator",
                "validator_id: val-1",
                "period_duration: 1",
                "max_claimable_periods: 832",
                "levels:",
                "  - {level_id: 1, name: Strength, stake_required: 100, maturity_blocks: 10}",
                "rates_per_block:",
                "  1: 7",
            ]
        ),
        encoding="utf-8",
    )
    cfg = read_engine_config_file(str(y))
    assert (cfg.mode, cfg.clock, cfg.validator_id, cfg.max_claimable_periods) == ("testnet", "validator", "val-1", 832)
    assert cfg.levels[0].maturity_blocks == 10

    j = tmp_path / "engine.json"
    j.write_text(json.dumps({"levels": _LEVELS, "rates_per_block": {"1": 3}, "treasury_funding": 99}), encoding="utf-8")
    cfg = read_engine_config_file(str(j))
    assert cfg.rates_per_block == {1: 3}
    assert cfg.treasury_funding == 99


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "engine.json"
    p.write_text(json.dumps({"mode": "dev", "levels": _LEVELS, "rates_per_block": {"1": 2}}), encoding="utf-8")
    monkeypatch.setenv("STAKELEDGER_CONFIG_PATH", str(p))

    cfg = load_engine_config()
    assert cfg.mode == "dev"
    assert cfg.rates_per_block == {1: 2}


def test_top_level_must_be_a_mapping(tmp_path: Path) -> None:
    p = tmp_path / "engine.json"
    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        read_engine_config_file(str(p))


def test_apply_engine_config_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in ("MODE", "CLOCK", "VALIDATOR_ID", "PERIOD_DURATION", "API_HOST", "API_PORT", "LOG_LEVEL"):
        monkeypatch.setenv(f"STAKELEDGER_{k}", "")

    cfg = engine_config_from_dict({"mode": "dev", "api_port": 9001, "period_duration": 42})
    apply_engine_config_to_env(cfg)

    assert os.environ["STAKELEDGER_MODE"] == "dev"
    assert os.environ["STAKELEDGER_API_PORT"] == "9001"
    assert os.environ["STAKELEDGER_PERIOD_DURATION"] == "42"


def test_build_engine_block_clock_funds_treasury() -> None:
    cfg = engine_config_from_dict(
        {"levels": _LEVELS, "rates_per_block": {"1": 1}, "treasury_funding": 1_000, "admins": ["admin"], "start_block": 50}
    )
    rt = build_engine(cfg)

    assert rt.clock is rt.chain
    assert rt.staker is None
    assert rt.engine.clock.now() == 50
    assert rt.engine.treasury.balance == 1_000
    assert rt.access.is_admin("admin") is True
    assert [lvl.level_id for lvl in rt.store.levels()] == [1]


def test_build_engine_validator_clock() -> None:
    cfg = engine_config_from_dict(
        {"clock": "validator", "validator_id": "val-1", "levels": _LEVELS, "rates_per_block": {"1": 1}}
    )
    rt = build_engine(cfg)

    assert rt.clock.kind == "validator"
    assert rt.cfg.max_claimable_periods == 832
    assert rt.staker is not None
    assert rt.staker.validator_status("val-1") == ValidatorStatus.QUEUED
    assert rt.engine.clock.now() == 0


def test_validator_clock_defaults_to_one_period_per_validator_period() -> None:
    cfg = engine_config_from_dict(
        {
            "clock": "validator",
            "validator_id": "val-1",
            "levels": _LEVELS,
            "rates_per_block": {"1": 3},
            "treasury_funding": 1_000,
            "admins": ["admin"],
        }
    )
    assert (cfg.period_duration, cfg.max_claimable_periods) == (1, 832)

    rt = build_engine(cfg)
    token = rt.engine.migrate("admin", "alice", 1, 100).token_id
    rt.engine.delegate("alice", token, True)

    rt.staker.set_status("val-1", ValidatorStatus.ACTIVE)
    rt.staker.complete_periods("val-1", 50)
    assert rt.engine.claim_delegation_rewards("keeper", token) == 49 * 3
    assert rt.engine.balance_of("alice") == 49 * 3


def test_block_clock_keeps_weekly_periods_unless_overridden() -> None:
    cfg = engine_config_from_dict({"levels": _LEVELS, "rates_per_block": {"1": 1}})
    assert (cfg.period_duration, cfg.max_claimable_periods) == (default_engine_config().period_duration, 0)
    cfg = engine_config_from_dict(
        {"clock": "validator", "validator_id": "v", "period_duration": 4, "levels": _LEVELS, "rates_per_block": {"1": 1}}
    )
    assert cfg.period_duration == 4
