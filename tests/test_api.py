"""HTTP tests for the trade and analytics routers."""

from factories import T0

from journal.services.auth import create_access_token

BASE = "/api/trades"

TRADE = {
    "symbol": "reliance",
    "trade_type": "intraday",
    "position": "long",
    "entry_price": 100.0,
    "quantity": 10,
    "entry_timestamp": T0.isoformat(),
    "brokerage": 0.0,
    "tags": ["breakout"],
}

EXIT = {"exit_price": 120.0, "exit_timestamp": "2024-03-04T10:15:00+00:00", "brokerage": 0.0}


def create(client, headers, **overrides):
    resp = client.post(BASE, json={**TRADE, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# 1. Auth
# ---------------------------------------------------------------------------

def test_health_needs_no_token(client):
    resp = client.get("/api/system/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_missing_token_rejected(client):
    resp = client.get(BASE)
    assert resp.status_code in (401, 403)


def test_invalid_token_rejected(client):
    resp = client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


def test_trades_isolated_between_users(client, auth_headers):
    trade = create(client, auth_headers)
    other = {"Authorization": f"Bearer {create_access_token('user-2')}"}
    assert client.get(f"{BASE}/{trade['id']}", headers=other).status_code == 404


# ---------------------------------------------------------------------------
# 2. Trade lifecycle
# ---------------------------------------------------------------------------

def test_create_get_and_exit(client, auth_headers):
    trade = create(client, auth_headers)
    assert trade["symbol"] == "RELIANCE"
    assert trade["status"] == "open"
    assert trade["exit"] is None

    fetched = client.get(f"{BASE}/{trade['id']}", headers=auth_headers).json()
    assert fetched["id"] == trade["id"]

    resp = client.post(f"{BASE}/{trade['id']}/exit", json=EXIT, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "closed"
    assert body["pnl"]["gross"] == 200.0
    assert body["pnl"]["net"] == 200.0
    assert body["holding_period"] == 60


def test_exit_closed_trade_conflicts(client, auth_headers):
    trade = create(client, auth_headers)
    client.post(f"{BASE}/{trade['id']}/exit", json=EXIT, headers=auth_headers)
    resp = client.post(f"{BASE}/{trade['id']}/exit", json=EXIT, headers=auth_headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "TRADE_ALREADY_CLOSED"


def test_cancel_then_exit_is_invalid_state(client, auth_headers):
    trade = create(client, auth_headers)
    assert client.post(f"{BASE}/{trade['id']}/cancel", headers=auth_headers).json()["status"] == "cancelled"
    resp = client.post(f"{BASE}/{trade['id']}/exit", json=EXIT, headers=auth_headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "INVALID_TRADE_STATE"


def test_patch_rejects_fields_outside_status_schema(client, auth_headers):
    trade = create(client, auth_headers)
    resp = client.patch(f"{BASE}/{trade['id']}", json={"status": "closed"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_INPUT"


def test_patch_entry_price_recomputes(client, auth_headers):
    trade = create(client, auth_headers, stop_loss=95.0, target=115.0)
    resp = client.patch(f"{BASE}/{trade['id']}", json={"entry_price": 105.0}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["entry"]["price"] == 105.0
    assert resp.json()["risk_reward_ratio"] == 1.0


def test_delete_then_get_is_not_found(client, auth_headers):
    trade = create(client, auth_headers)
    assert client.delete(f"{BASE}/{trade['id']}", headers=auth_headers).status_code == 204
    resp = client.get(f"{BASE}/{trade['id']}", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_invalid_create_body_is_422(client, auth_headers):
    resp = client.post(BASE, json={**TRADE, "quantity": 0}, headers=auth_headers)
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# 3. Listing
# ---------------------------------------------------------------------------

def test_list_with_filters_and_pagination(client, auth_headers):
    create(client, auth_headers)
    create(client, auth_headers, symbol="INFY")
    create(client, auth_headers, symbol="TCS")

    resp = client.get(BASE, params={"symbol": ["INFY", "TCS"], "limit": 1}, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["pagination"]["total"] == 2
    assert body["pagination"]["total_pages"] == 2
    assert body["pagination"]["has_more"] is True
    assert len(body["data"]) == 1


def test_list_rejects_unknown_sort_field(client, auth_headers):
    resp = client.get(BASE, params={"sort_by": "password"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_INPUT"


def test_symbols_and_open(client, auth_headers):
    create(client, auth_headers, symbol="TCS")
    closed = create(client, auth_headers, symbol="INFY")
    client.post(f"{BASE}/{closed['id']}/exit", json=EXIT, headers=auth_headers)

    assert client.get(f"{BASE}/symbols", headers=auth_headers).json() == ["INFY", "TCS"]
    open_trades = client.get(f"{BASE}/open", headers=auth_headers).json()
    assert [t["symbol"] for t in open_trades] == ["TCS"]


def test_bulk_endpoint(client, auth_headers):
    payload = {"trades": [{**TRADE, "broker_trade_id": "A"}, {**TRADE, "broker_trade_id": "A"}, {"symbol": "X"}]}
    resp = client.post(f"{BASE}/bulk", json=payload, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["created"] == 1
    assert body["skipped"] == 1
    assert [e["index"] for e in body["errors"]] == [2]


# ---------------------------------------------------------------------------
# 4. Analytics
# ---------------------------------------------------------------------------

def test_summary_reports_infinite_profit_factor_as_null(client, auth_headers):
    trade = create(client, auth_headers)
    client.post(f"{BASE}/{trade['id']}/exit", json=EXIT, headers=auth_headers)
    resp = client.get("/api/analytics/summary", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["profit_factor"] is None
    assert body["win_rate"] == 100.0
    assert body["total_pnl"] == 200.0


def test_statistics_rejects_unknown_group_by(client, auth_headers):
    resp = client.get("/api/analytics/statistics", params={"group_by": "mood"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_INPUT"


def test_reversed_date_range_rejected(client, auth_headers):
    params = {"date_from": "2024-03-05T00:00:00Z", "date_to": "2024-03-01T00:00:00Z"}
    resp = client.get("/api/analytics/daily", params=params, headers=auth_headers)
    assert resp.status_code == 400


def test_daily_and_performance(client, auth_headers):
    trade = create(client, auth_headers)
    client.post(f"{BASE}/{trade['id']}/exit", json=EXIT, headers=auth_headers)

    daily = client.get("/api/analytics/daily", headers=auth_headers).json()
    assert daily == [{"day": "2024-03-04", "pnl": 200.0, "trades": 1, "winning_trades": 1, "losing_trades": 0}]

    perf = client.get("/api/analytics/performance", headers=auth_headers).json()
    assert perf["trading_days"] == 1
    assert perf["max_win_streak"] == 1


def test_breakdown_and_trends(client, auth_headers):
    trade = create(client, auth_headers)
    client.post(f"{BASE}/{trade['id']}/exit", json=EXIT, headers=auth_headers)

    items = client.get("/api/analytics/breakdown", params={"dimension": "position"}, headers=auth_headers).json()
    assert items == [{"label": "long", "pnl": 200.0, "trades": 1}, {"label": "short", "pnl": 0.0, "trades": 0}]

    resp = client.get("/api/analytics/breakdown", params={"dimension": "mood"}, headers=auth_headers)
    assert resp.status_code == 400

    monthly = client.get("/api/analytics/trends/monthly", headers=auth_headers).json()
    assert [p["period"] for p in monthly] == ["2024-03"]
    weekly = client.get("/api/analytics/trends/weekly", params={"weeks": 4}, headers=auth_headers).json()
    assert [p["period"] for p in weekly] == ["2024-W10"]
    assert client.get("/api/analytics/trends/weekly", params={"weeks": 0}, headers=auth_headers).status_code == 422


def test_dashboard(client, auth_headers):
    resp = client.get("/api/analytics/dashboard", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"as_of", "today", "this_week", "this_month"}
    assert body["today"]["trades"] == 0
