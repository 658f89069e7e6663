from movin_earn.conftest import ADMIN
from movin_earn.core.config import TOKEN


def _h(user):
    return {"X-User-Id": user}


def test_stake_roundtrip(client, fund):
    fund("alice", 100)
    resp = client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": str(10 * TOKEN), "lock_months": 3})
    assert resp.status_code == 200
    stake = resp.json()["stake"]
    assert stake["index"] == 0
    assert stake["amount"] == str(10 * TOKEN)
    assert stake["lockMonths"] == 3

    listing = client.get("/v1/earn/stakes", headers=_h("alice")).json()
    assert listing["count"] == 1

    reward = client.get("/v1/earn/stakes/0/reward", headers=_h("alice")).json()
    assert reward["reward"] == "0"


def test_engine_errors_use_standard_shape(client, fund):
    fund("alice", 10)
    resp = client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": str(TOKEN), "lock_months": 7})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "invalid_lock_period"
    assert body["error"]["request_id"] == resp.headers.get("x-request-id")


def test_missing_stake_is_404(client):
    resp = client.get("/v1/earn/stakes/3", headers=_h("alice"))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "invalid_stake_index"


def test_locked_unstake_is_409(client, fund):
    fund("alice", 10)
    client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": str(TOKEN), "lock_months": 1})
    resp = client.post("/v1/earn/stakes/0/unstake", headers=_h("alice"))
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "lock_period_active"


def test_malformed_amount_rejected(client):
    resp = client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": "1.5", "lock_months": 1})
    assert resp.status_code == 422


def test_missing_caller_header_rejected(client):
    resp = client.get("/v1/earn/stakes")
    assert resp.status_code == 422


def test_activity_and_rate_limit(client, clock):
    first = client.post("/v1/earn/activity", headers=_h("alice"), json={"steps": 1000, "mets": 0})
    assert first.status_code == 200
    assert first.json()["totalReward"] == str(TOKEN)

    clock.advance(30)
    second = client.post("/v1/earn/activity", headers=_h("alice"), json={"steps": 10, "mets": 0})
    assert second.status_code == 429
    assert second.json()["error"]["code"] == "invalid_activity_input"

    today = client.get("/v1/earn/activity/today", headers=_h("alice")).json()
    assert today == {"userId": "alice", "steps": 1000, "mets": 0}

    preview = client.post("/v1/earn/activity/preview", headers=_h("alice"), json={"steps": 500}).json()
    assert preview["stepsReward"] == str(TOKEN // 2)


def test_referral_endpoints(client):
    resp = client.post("/v1/earn/referrals", headers=_h("alice"), json={"referrer": "bob"})
    assert resp.json()["signupBonus"] == str(TOKEN)

    again = client.post("/v1/earn/referrals", headers=_h("alice"), json={"referrer": "carol"})
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "already_referred"

    info = client.get("/v1/earn/referrals", headers=_h("bob")).json()
    assert info["referredCount"] == 1
    assert info["referrals"] == ["alice"]


def test_premium_endpoints(client):
    denied = client.post(
        "/v1/earn/premium", headers=_h("alice"), json={"account": "alice", "is_premium": True, "amount_paid": str(10 * TOKEN)}
    )
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "unauthorized_access"

    resp = client.post(
        "/v1/earn/premium", headers=_h(ADMIN), json={"account": "alice", "is_premium": True, "amount_paid": str(10 * TOKEN)}
    )
    assert resp.status_code == 200
    assert client.get("/v1/earn/premium", headers=_h("alice")).json()["isPremium"] is True

    bad = client.post(
        "/v1/earn/premium", headers=_h(ADMIN), json={"account": "alice", "is_premium": True, "amount_paid": "5"}
    )
    assert bad.json()["error"]["code"] == "invalid_premium_amount"


def test_pause_blocks_account_holders(client, fund):
    fund("alice", 10)
    assert client.post("/v1/earn/admin/pause", headers=_h("alice")).status_code == 403
    assert client.post("/v1/earn/admin/pause", headers=_h(ADMIN)).json() == {"paused": True}

    resp = client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": str(TOKEN), "lock_months": 1})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "contract_paused"
    assert client.get("/v1/earn/status").json()["paused"] is True

    client.post("/v1/earn/admin/unpause", headers=_h(ADMIN))
    resp = client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": str(TOKEN), "lock_months": 1})
    assert resp.status_code == 200


def test_admin_multiplier_and_migration(client):
    resp = client.post("/v1/earn/admin/multipliers", headers=_h(ADMIN), json={"months": 6, "multiplier": 8})
    assert resp.json()["lockMultipliers"]["6"] == 8

    report = client.post("/v1/earn/admin/migrate", headers=_h(ADMIN), json={"account": "ghost"}).json()
    assert report == {"account": "ghost", "changed": False, "repairs": []}

    bulk = client.post("/v1/earn/admin/migrate/bulk", headers=_h(ADMIN), json={"accounts": ["a", ""]}).json()
    assert bulk["successCount"] == 1
    assert bulk["failureCount"] == 1


def test_meal_endpoint(client):
    resp = client.post("/v1/earn/meals", headers=_h(ADMIN), json={"account": "alice", "score": 80})
    assert resp.json() == {"userId": "alice", "reward": str(80 * TOKEN // 100)}

    again = client.post("/v1/earn/meals", headers=_h(ADMIN), json={"account": "alice", "score": 80})
    assert again.status_code == 429
    assert again.json()["error"]["code"] == "meal_claim_too_soon"


def test_rates_endpoint(client):
    body = client.get("/v1/earn/rates").json()
    assert body == {"stepsRate": str(TOKEN), "metsRate": str(TOKEN), "decayDays": 0}


def test_funding_flow_without_fixtures(client):
    short = client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": str(TOKEN), "lock_months": 1})
    assert short.json()["error"]["code"] == "insufficient_allowance"

    denied = client.post("/v1/earn/admin/mint", headers=_h("alice"), json={"account": "alice", "amount": str(TOKEN)})
    assert denied.status_code == 403

    minted = client.post("/v1/earn/admin/mint", headers=_h(ADMIN), json={"account": "alice", "amount": str(5 * TOKEN)})
    assert minted.json() == {"userId": "alice", "minted": str(5 * TOKEN), "balance": str(5 * TOKEN)}

    approved = client.post("/v1/earn/token/approve", headers=_h("alice"), json={"amount": str(3 * TOKEN)})
    assert approved.json() == {"userId": "alice", "custodyAllowance": str(3 * TOKEN)}

    resp = client.post("/v1/earn/stakes", headers=_h("alice"), json={"amount": str(2 * TOKEN), "lock_months": 1})
    assert resp.status_code == 200

    balance = client.get("/v1/earn/token/balance", headers=_h("alice")).json()
    assert balance == {"userId": "alice", "balance": str(3 * TOKEN), "custodyAllowance": str(TOKEN)}


def test_caller_header_is_trimmed(client):
    resp = client.post("/v1/earn/referrals", headers=_h("alice "), json={"referrer": "alice"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_referrer"

    blank = client.get("/v1/earn/stakes", headers=_h("   "))
    assert blank.status_code == 400
    assert blank.json()["error"]["code"] == "validation_error"


def test_activity_history_endpoint(client, clock):
    client.post("/v1/earn/activity", headers=_h("alice"), json={"steps": 150, "mets": 1})
    clock.advance(120)
    client.post("/v1/earn/activity", headers=_h("alice"), json={"steps": 300, "mets": 0})

    body = client.get("/v1/earn/activity/history", headers=_h("alice")).json()
    assert [e["value"] for e in body["steps"]] == [150, 300]
    assert body["steps"][1]["timestamp"] - body["steps"][0]["timestamp"] == 120
    assert [e["value"] for e in body["mets"]] == [1]


def test_base_rate_repair_endpoint(client, clock):
    denied = client.post(
        "/v1/earn/admin/base-rates", headers=_h("alice"), json={"steps_rate": "1", "mets_rate": "1", "timestamp": 1}
    )
    assert denied.status_code == 403

    stamp = clock.now() - 10
    resp = client.post(
        "/v1/earn/admin/base-rates",
        headers=_h(ADMIN),
        json={"steps_rate": str(TOKEN // 2), "mets_rate": str(TOKEN // 4), "timestamp": stamp},
    )
    assert resp.json() == {
        "baseStepsRate": str(TOKEN // 2),
        "baseMetsRate": str(TOKEN // 4),
        "lastDecayTimestamp": stamp,
    }
    assert client.get("/v1/earn/rates").json()["stepsRate"] == str(TOKEN // 2)
