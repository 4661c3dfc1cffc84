import asyncio
from typing import Any, Optional, Tuple

from paperdesk.core.logging import get_logger
from paperdesk.proxy.envelope import (
    ORDERS_KEYS,
    POSITIONS_KEYS,
    PROPOSALS_KEYS,
    WATCHLIST_KEYS,
    unwrap_collection,
)
from paperdesk.proxy.proxy_client import ProxyClient, ProxyError
from paperdesk.trading.account import (
    normalize_account,
    normalize_regime,
    normalize_risk,
    normalize_watchlist,
)
from paperdesk.trading.fields import numeric_or_zero
from paperdesk.trading.orders import iso_now, normalize_orders, validate_status_filter
from paperdesk.trading.positions import normalize_positions
from paperdesk.trading.proposals import normalize_proposals
from paperdesk.trading.schemas import (
    Account,
    ApprovalResult,
    DashboardSnapshot,
    Order,
    Position,
    Proposal,
    Regime,
    RiskLimits,
    WatchItem,
)

logger = get_logger(__name__)


def build_dashboard(account: Account, positions: Tuple[Position, ...], risk: RiskLimits) -> DashboardSnapshot:
    return DashboardSnapshot(
        account=account,
        positions=positions,
        risk=risk,
        num_positions=len(positions),
        total_market_value=sum(numeric_or_zero(p.market_value) for p in positions),
        total_unrealized_pl=sum(numeric_or_zero(p.unrealized_pl) for p in positions),
        as_of=iso_now(),
    )


class PortfolioManager:
    """Runs fetch -> unwrap -> normalize per endpoint and keeps the latest snapshots."""

    def __init__(self, client: ProxyClient) -> None:
        self.client = client
        self.account: Optional[Account] = None
        self.risk: Optional[RiskLimits] = None
        self.positions: Tuple[Position, ...] = ()
        self.orders: Tuple[Order, ...] = ()
        self.watchlist: Tuple[WatchItem, ...] = ()
        self.regime: Regime = Regime()
        self.dashboard: Optional[DashboardSnapshot] = None
        self.dashboard_error: Optional[str] = None

    async def _fetch_account(self) -> Account:
        return normalize_account(await self.client.get("/account"))

    async def _fetch_risk(self) -> RiskLimits:
        return normalize_risk(await self.client.get("/risk"))

    async def _fetch_positions(self) -> Tuple[Position, ...]:
        raw = await self.client.get("/positions")
        return normalize_positions(unwrap_collection(raw, POSITIONS_KEYS))

    async def get_account(self) -> Account:
        self.account = await self._fetch_account()
        return self.account

    async def get_risk(self) -> RiskLimits:
        self.risk = await self._fetch_risk()
        return self.risk

    async def list_positions(self) -> Tuple[Position, ...]:
        self.positions = await self._fetch_positions()
        return self.positions

    async def list_orders(self, status: Optional[str] = None) -> Tuple[Order, ...]:
        """
        Fetch orders, optionally filtered upstream by ``all``/``open``/``closed``.

        The proxy applies the filter; results are not re-filtered here.
        """
        params = None
        if status is not None:
            params = {"status": validate_status_filter(status)}
        raw = await self.client.get("/orders", params=params)
        self.orders = normalize_orders(unwrap_collection(raw, ORDERS_KEYS))
        return self.orders

    async def list_proposals(self) -> Tuple[Proposal, ...]:
        raw = await self.client.get("/proposed-trades")
        return normalize_proposals(unwrap_collection(raw, PROPOSALS_KEYS))

    async def list_watchlist(self) -> Tuple[WatchItem, ...]:
        raw = await self.client.get("/watchlist")
        self.watchlist = normalize_watchlist(unwrap_collection(raw, WATCHLIST_KEYS))
        return self.watchlist

    async def submit_approval(self, proposal: Proposal) -> ApprovalResult:
        payload = {
            "symbol": proposal.symbol,
            "side": proposal.side,
            "qty": numeric_or_zero(proposal.qty),
            "est_price": numeric_or_zero(proposal.est_price),
        }
        raw = await self.client.post("/approve", payload)
        record: Any = raw if isinstance(raw, dict) else {}
        order_id = record.get("order_id")
        return ApprovalResult(
            success=record.get("success") is not False,
            order_id=str(order_id) if order_id is not None else None,
            message=str(record.get("message") or ""),
        )

    async def fetch_dashboard(self) -> DashboardSnapshot:
        """Load account, positions and risk together; any single failure fails the whole load."""
        account, positions, risk = await asyncio.gather(
            self._fetch_account(),
            self._fetch_positions(),
            self._fetch_risk(),
        )
        return build_dashboard(account, positions, risk)

    def apply_dashboard(self, snapshot: DashboardSnapshot) -> None:
        self.dashboard = snapshot
        self.dashboard_error = None
        self.account = snapshot.account
        self.positions = snapshot.positions
        self.risk = snapshot.risk
        logger.info(
            "dashboard_refreshed",
            extra={
                "event": "dashboard_refreshed",
                "positions_count": snapshot.num_positions,
                "total_market_value": snapshot.total_market_value,
            },
        )

    def record_dashboard_failure(self, exc: Exception) -> None:
        self.dashboard_error = str(exc)

    def current_dashboard(self) -> Optional[DashboardSnapshot]:
        """Last good snapshot, flagged stale while the most recent load has failed."""
        if self.dashboard is None or self.dashboard_error is None:
            return self.dashboard
        return self.dashboard.model_copy(update={"stale": True, "last_error": self.dashboard_error})

    async def load_dashboard(self) -> DashboardSnapshot:
        try:
            snapshot = await self.fetch_dashboard()
        except Exception as exc:
            self.record_dashboard_failure(exc)
            raise
        self.apply_dashboard(snapshot)
        return snapshot

    async def fetch_regime(self) -> Regime:
        """Regime is advisory; an unavailable endpoint reads as UNKNOWN instead of failing."""
        try:
            return normalize_regime(await self.client.get("/regime"))
        except ProxyError as exc:
            logger.warning("regime_fetch_failed", extra={"event": "regime_fetch_failed", "error": str(exc)})
            return Regime()

    def apply_regime(self, regime: Regime) -> None:
        self.regime = regime

    async def get_regime(self) -> Regime:
        regime = await self.fetch_regime()
        self.apply_regime(regime)
        return regime
