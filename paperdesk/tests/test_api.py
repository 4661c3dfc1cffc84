import sys
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperdesk.api.routes_orders import router as orders_router  # noqa: E402
from paperdesk.api.routes_portfolio import configure_portfolio_manager, router as portfolio_router  # noqa: E402
from paperdesk.api.routes_proposals import configure_approval_desk, router as proposals_router  # noqa: E402
from paperdesk.proxy.proxy_client import ProxyError  # noqa: E402
from paperdesk.trading.approvals import ApprovalDesk  # noqa: E402
from paperdesk.trading.portfolio_manager import PortfolioManager  # noqa: E402


class FakeClient:
    def __init__(self) -> None:
        self.responses = {
            "/account": {"equity": 135482.5, "cash": 56520.75, "buying_power": 113041.5},
            "/positions": [
                {"symbol": "AAPL", "qty": 150, "avg_entry_price": 175.23, "current_price": 182.45, "unrealized_pl": 1083.0},
                {"symbol": "MSFT", "qty": 75, "avg_entry_price": 338.92, "current_price": 342.15, "unrealized_pl": 242.25,
                 "unrealized_plpc": "0.0095"},
            ],
            "/risk": {"max_order_notional": 50000, "max_position_pct": 25},
            "/orders": {"orders": [{"id": "1", "symbol": "NVDA", "status": "PARTIALLY_FILLED", "qty": 25, "filled_qty": 10}]},
            "/proposed-trades": {"proposals": [{"symbol": "AAPL", "side": "buy", "qty": 10, "confidence": 65},
                                               {"symbol": "SPY", "side": "hold"}]},
            "/approve": {"success": True, "order_id": "o-77", "message": "submitted"},
            "/regime": {"regime": "RISK_OFF", "detail": "VIX > 25"},
            "/watchlist": {"symbols": ["SPY"]},
        }
        self.failures = {}
        self.gets = []
        self.posts = []

    async def get(self, endpoint, params=None):
        self.gets.append((endpoint, params))
        if endpoint in self.failures:
            raise self.failures[endpoint]
        return self.responses.get(endpoint)

    async def post(self, endpoint, body):
        self.posts.append((endpoint, body))
        if endpoint in self.failures:
            raise self.failures[endpoint]
        return self.responses.get(endpoint)


def build_client(fake: FakeClient) -> TestClient:
    manager = PortfolioManager(fake)
    configure_portfolio_manager(manager)
    configure_approval_desk(ApprovalDesk(manager))
    app = FastAPI()
    app.include_router(portfolio_router)
    app.include_router(orders_router)
    app.include_router(proposals_router)
    return TestClient(app)


def test_positions_are_served_in_canonical_shape():
    client = build_client(FakeClient())
    resp = client.get("/api/positions")
    assert resp.status_code == 200
    body = resp.json()
    assert body[0]["symbol"] == "AAPL"
    assert body[0]["avgPrice"] == 175.23
    assert abs(body[0]["unrealizedPLPercent"] - 4.1203) < 1e-3
    assert abs(body[1]["unrealizedPLPercent"] - 0.95) < 1e-9


def test_positions_search_and_sort():
    client = build_client(FakeClient())
    resp = client.get("/api/positions", params={"sort": "symbol", "direction": "desc"})
    assert [p["symbol"] for p in resp.json()] == ["MSFT", "AAPL"]
    resp = client.get("/api/positions", params={"search": "ms"})
    assert [p["symbol"] for p in resp.json()] == ["MSFT"]


def test_positions_bad_sort_is_400():
    client = build_client(FakeClient())
    resp = client.get("/api/positions", params={"sort": "color", "direction": "asc"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


def test_unparsable_field_is_served_distinct_from_zero():
    fake = FakeClient()
    fake.responses["/positions"] = [{"symbol": "AMD", "qty": 10, "current_price": "halted"}]
    client = build_client(fake)
    body = client.get("/api/positions").json()
    assert body[0]["currentPrice"] == {"kind": "unparsable", "raw": "halted"}
    assert body[0]["marketValue"] == {"kind": "unparsable", "raw": "halted"}


def test_orders_route_forwards_status_filter():
    fake = FakeClient()
    client = build_client(fake)
    resp = client.get("/api/orders", params={"status": "open"})
    assert resp.status_code == 200
    order = resp.json()[0]
    assert order["status"] == "OPEN"
    assert order["quantity"] == 25
    assert order["filled"] == 10
    assert fake.gets[-1] == ("/orders", {"status": "open"})


def test_orders_route_rejects_unknown_filter():
    client = build_client(FakeClient())
    resp = client.get("/api/orders", params={"status": "weird"})
    assert resp.status_code == 400


def test_upstream_failure_surfaces_message_as_502():
    fake = FakeClient()
    fake.failures["/orders"] = ProxyError("API Error: 503 Service Unavailable", status_code=503)
    client = build_client(fake)
    resp = client.get("/api/orders")
    assert resp.status_code == 502
    assert resp.json() == {
        "error": "upstream_error",
        "detail": "API Error: 503 Service Unavailable",
        "context": {"upstream_status": 503},
    }


def test_dashboard_load_and_refresh():
    fake = FakeClient()
    client = build_client(fake)
    resp = client.get("/api/dashboard")
    assert resp.status_code == 200
    body = resp.json()
    assert body["num_positions"] == 2
    assert body["account"]["buying_power"] == 113041.5
    assert body["risk"]["max_position_pct"] == 25

    fake.failures["/account"] = ProxyError("account unavailable", status_code=500)
    resp = client.post("/api/dashboard/refresh")
    assert resp.status_code == 502
    assert resp.json()["detail"] == "account unavailable"
    # last good snapshot is still served, flagged stale
    body = client.get("/api/dashboard").json()
    assert body["num_positions"] == 2
    assert body["stale"] is True
    assert body["last_error"] == "account unavailable"

    del fake.failures["/account"]
    body = client.post("/api/dashboard/refresh").json()
    assert body["stale"] is False
    assert body["last_error"] is None


def test_regime_never_fails():
    fake = FakeClient()
    client = build_client(fake)
    assert client.get("/api/regime").json() == {"regime": "RISK_OFF", "detail": "VIX > 25"}
    fake.failures["/regime"] = ProxyError("not found", status_code=404)
    assert client.get("/api/regime").json() == {"regime": "UNKNOWN", "detail": ""}


def test_approve_flow_removes_proposal():
    fake = FakeClient()
    client = build_client(fake)
    proposals = client.get("/api/proposals").json()
    assert [(p["symbol"], p["side"], p["confidence"]) for p in proposals] == [("AAPL", "buy", 0.65), ("SPY", "hold", 0.4)]

    resp = client.post("/api/proposals/approve", json={"symbol": "AAPL", "side": "BUY"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "order_id": "o-77", "message": "submitted"}
    assert fake.posts == [("/approve", {"symbol": "AAPL", "side": "buy", "qty": 10.0, "est_price": 0.0})]


def test_approve_rejects_hold_side():
    client = build_client(FakeClient())
    resp = client.post("/api/proposals/approve", json={"symbol": "SPY", "side": "hold"})
    assert resp.status_code == 422


def test_approve_upstream_failure_is_502():
    fake = FakeClient()
    fake.failures["/approve"] = ProxyError("insufficient buying power", status_code=403)
    client = build_client(fake)
    client.get("/api/proposals")
    resp = client.post("/api/proposals/approve", json={"symbol": "AAPL", "side": "buy"})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "insufficient buying power"


def test_approve_rejected_by_broker_is_400_with_its_message():
    fake = FakeClient()
    fake.responses["/approve"] = {"success": False, "message": "market closed"}
    client = build_client(fake)
    client.get("/api/proposals")
    resp = client.post("/api/proposals/approve", json={"symbol": "AAPL", "side": "buy"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"
    assert resp.json()["detail"] == "market closed"
    # proposal stays approvable
    assert [p["symbol"] for p in client.get("/api/proposals").json()] == ["AAPL", "SPY"]


def test_approve_unknown_proposal_without_qty_is_400():
    fake = FakeClient()
    client = build_client(fake)
    resp = client.post("/api/proposals/approve", json={"symbol": "TSLA", "side": "buy"})
    assert resp.status_code == 400
    assert resp.json()["context"] == {"symbol": "TSLA", "side": "buy"}
    resp = client.post("/api/proposals/approve", json={"symbol": "TSLA", "side": "buy", "qty": 0})
    assert resp.status_code == 400
    assert fake.posts == []


def test_approve_unknown_proposal_with_qty_is_submitted():
    fake = FakeClient()
    client = build_client(fake)
    resp = client.post("/api/proposals/approve", json={"symbol": "tsla", "side": "sell", "qty": 5, "est_price": 238.9})
    assert resp.status_code == 200
    assert fake.posts == [("/approve", {"symbol": "TSLA", "side": "sell", "qty": 5.0, "est_price": 238.9})]


def test_approve_matches_loaded_proposal_case_insensitively():
    fake = FakeClient()
    client = build_client(fake)
    client.get("/api/proposals")
    resp = client.post("/api/proposals/approve", json={"symbol": "aapl", "side": "buy"})
    assert resp.status_code == 200
    assert fake.posts == [("/approve", {"symbol": "AAPL", "side": "buy", "qty": 10.0, "est_price": 0.0})]
