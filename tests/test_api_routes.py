from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from stakeledger.runtime import metrics
from stakeledger.runtime.engine_boot import EngineRuntime, build_engine
from stakeledger.runtime.engine_config import engine_config_from_dict


def _runtime() -> EngineRuntime:
    return build_engine(
        engine_config_from_dict(
            {
                "mode": "dev",
                "levels": [{"level_id": 1, "name": "Strength", "stake_required": 100, "maturity_blocks": 0}],
                "rates_per_block": {"1": 1},
                "period_duration": 10,
                "treasury_funding": 10**9,
                "admins": ["admin"],
            }
        )
    )


@pytest.fixture
def rt(monkeypatch: pytest.MonkeyPatch) -> EngineRuntime:
    runtime = _runtime()
    from stakeledger.api import app as api_app

    monkeypatch.setattr(api_app, "build_engine", lambda: runtime)
    return runtime


@pytest.fixture
def client(rt: EngineRuntime) -> TestClient:
    from stakeledger.api.app import create_app

    with TestClient(create_app(boot_runtime=True)) as c:
        yield c


def _as(caller: str) -> dict:
    return {"x-caller": caller}


def test_create_app_without_runtime_still_serves_health() -> None:
    from stakeledger.api.app import create_app

    app = create_app(boot_runtime=False)
    assert app.state.runtime is None
    with TestClient(app) as c:
        r = c.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["engine"] is None

        r = c.get("/v1/positions/1")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_health_reports_engine(client: TestClient) -> None:
    r = client.get("/v1/health")
    assert r.status_code == 200
    eng = r.json()["engine"]
    assert eng["mode"] == "dev"
    assert eng["clock"] == "block"
    assert eng["treasury_balance"] == 10**9


def test_stake_delegate_claim_round_trip(client: TestClient, rt: EngineRuntime) -> None:
    r = client.post("/v1/positions", json={"level_id": 1, "amount": 100}, headers=_as("alice"))
    assert r.status_code == 200, r.text
    token = r.json()["position"]["token_id"]

    r = client.post(f"/v1/positions/{token}/delegate", json={"auto_renew": False}, headers=_as("alice"))
    assert r.status_code == 200, r.text
    assert r.json()["delegation"]["accumulation_start"] == 1
    assert r.json()["delegation"]["end_block"] == 11

    rt.chain.mine_to(11)
    view = client.get(f"/v1/positions/{token}").json()
    assert view["delegation"]["status"] == "EXITED"
    assert view["delegation"]["claimable"] == 10
    assert view["delegation"]["can_transfer"] is True

    r = client.post(f"/v1/positions/{token}/claim/delegation", headers=_as("keeper"))
    assert r.json() == {"ok": True, "token_id": token, "paid": 10}

    r = client.get("/v1/accounts/alice/balance")
    assert r.json()["balance"] == 10


def test_stake_with_auto_renew_delegates_and_locks(client: TestClient) -> None:
    r = client.post("/v1/positions", json={"level_id": 1, "amount": 100, "auto_renew": True}, headers=_as("alice"))
    token = r.json()["position"]["token_id"]

    view = client.get(f"/v1/positions/{token}").json()
    assert view["delegation"]["unbounded"] is True
    assert view["delegation"]["end_block"] is None

    r = client.post(f"/v1/positions/{token}/transfer", json={"receiver": "bob"}, headers=_as("alice"))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "position_locked"

    r = client.post(f"/v1/positions/{token}/exit", headers=_as("alice"))
    assert r.json()["end_block"] == 11
    r = client.post(f"/v1/positions/{token}/exit", headers=_as("alice"))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "exit_already_scheduled"


def test_errors_map_to_http_statuses(client: TestClient, rt: EngineRuntime) -> None:
    r = client.post("/v1/positions", json={"level_id": 1, "amount": 100})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "missing_caller"

    r = client.get("/v1/positions/404")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "unknown_token"

    r = client.post("/v1/admin/policy/rate", json={"level_id": 1, "rate": 2}, headers=_as("alice"))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "admin_required"

    r = client.post("/v1/positions", json={"level_id": 1, "amount": 99}, headers=_as("alice"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "stake_amount_mismatch"

    rt.access.pause()
    r = client.post("/v1/positions", json={"level_id": 1, "amount": 100}, headers=_as("alice"))
    assert r.status_code == 423
    assert r.json()["ok"] is False


def test_admin_policy_and_lost_rewards(client: TestClient) -> None:
    r = client.post("/v1/admin/policy/rates", json={"level_ids": [1], "rates": [3]}, headers=_as("admin"))
    assert r.status_code == 200
    assert r.json()["policy"]["rate_per_block"] == {"1": 3}

    r = client.post("/v1/admin/policy/cutoff", json={"block": 500}, headers=_as("admin"))
    assert r.json()["policy"]["global_accrual_cutoff"] == 500
    r = client.post("/v1/admin/policy/period-duration", json={"blocks": 0}, headers=_as("admin"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "period_duration_zero"
    assert client.get("/v1/policy").json()["policy"]["version"] == 2

    body = {"owners": ["alice"], "token_ids": [1], "amounts": [25]}
    assert client.post("/v1/admin/lost-rewards", json=body, headers=_as("admin")).json()["added"] == 1
    rows = client.get("/v1/admin/lost-rewards").json()["lost_rewards"]
    assert rows == [{"owner": "alice", "token_id": 1, "amount": 25}]

    r = client.post("/v1/lost-rewards/claim", json={"owner": "alice", "token_id": 1}, headers=_as("bob"))
    assert r.json()["paid"] == 25
    r = client.post("/v1/admin/lost-rewards/remove", json={"owner": "alice", "token_id": 1}, headers=_as("admin"))
    assert r.json()["removed"] == 0


def test_unstake_route_burns_position(client: TestClient, rt: EngineRuntime) -> None:
    token = client.post("/v1/positions", json={"level_id": 1, "amount": 100}, headers=_as("alice")).json()["position"]["token_id"]

    r = client.post(f"/v1/positions/{token}/unstake", headers=_as("bob"))
    assert r.status_code == 403
    r = client.post(f"/v1/positions/{token}/unstake", headers=_as("alice"))
    assert r.status_code == 200
    assert rt.store.exists(token) is False


def test_metrics_route_gated_by_env(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    metrics.reset()
    monkeypatch.delenv("STAKELEDGER_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    client.post("/v1/positions", json={"level_id": 1, "amount": 100}, headers=_as("alice"))
    monkeypatch.setenv("STAKELEDGER_METRICS_ENABLED", "1")
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "stakeledger_ops_stake 1" in r.text
