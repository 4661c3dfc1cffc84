from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from paperdesk.api.errors import error_response, upstream_error_response
from paperdesk.core.logging import get_logger
from paperdesk.proxy.proxy_client import ProxyError
from paperdesk.trading.portfolio_manager import PortfolioManager
from paperdesk.trading.position_views import filter_positions, sort_positions
from paperdesk.trading.schemas import (
    Account,
    DashboardSnapshot,
    ErrorResponse,
    Position,
    Regime,
    RiskLimits,
    WatchItem,
)

router = APIRouter(prefix="/api", tags=["portfolio"])

_manager: PortfolioManager | None = None
logger = get_logger(__name__)

_ERRORS = {400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def configure_portfolio_manager(manager: PortfolioManager) -> None:
    global _manager
    _manager = manager


def get_portfolio_manager() -> PortfolioManager:
    if _manager is None:
        raise HTTPException(status_code=500, detail="Portfolio manager not configured")
    return _manager


@router.get("/dashboard", response_model=DashboardSnapshot, responses=_ERRORS)
async def dashboard(manager: PortfolioManager = Depends(get_portfolio_manager)):
    """Return the latest dashboard snapshot, loading one on first use; ``stale`` marks a failed refresh."""
    try:
        snapshot = manager.current_dashboard()
        if snapshot is not None:
            return snapshot
        return await manager.load_dashboard()
    except ProxyError as exc:
        logger.warning("dashboard_load_failed", extra={"event": "dashboard_load_failed", "error": str(exc)})
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("dashboard_load_failed", extra={"event": "dashboard_load_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to load dashboard")


@router.post("/dashboard/refresh", response_model=DashboardSnapshot, responses=_ERRORS)
async def refresh_dashboard(manager: PortfolioManager = Depends(get_portfolio_manager)):
    """Reload account, positions and risk together."""
    try:
        return await manager.load_dashboard()
    except ProxyError as exc:
        logger.warning("dashboard_refresh_failed", extra={"event": "dashboard_refresh_failed", "error": str(exc)})
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("dashboard_refresh_failed", extra={"event": "dashboard_refresh_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to refresh dashboard")


@router.get("/account", response_model=Account, responses=_ERRORS)
async def account(manager: PortfolioManager = Depends(get_portfolio_manager)):
    try:
        return await manager.get_account()
    except ProxyError as exc:
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("account_failed", extra={"event": "account_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to fetch account")


@router.get("/risk", response_model=RiskLimits, responses=_ERRORS)
async def risk(manager: PortfolioManager = Depends(get_portfolio_manager)):
    try:
        return await manager.get_risk()
    except ProxyError as exc:
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("risk_failed", extra={"event": "risk_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to fetch risk limits")


@router.get("/positions", response_model=list[Position], responses=_ERRORS)
async def list_positions(
    search: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    direction: Optional[str] = Query(None),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    """Return normalized positions, optionally searched by symbol and sorted by column."""
    try:
        positions = await manager.list_positions()
        return sort_positions(filter_positions(positions, search), sort, direction)
    except ValueError as exc:
        return error_response(status_code=400, code="validation_error", detail=str(exc))
    except ProxyError as exc:
        logger.warning("list_positions_failed", extra={"event": "list_positions_failed", "error": str(exc)})
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("list_positions_failed", extra={"event": "list_positions_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to fetch positions")


@router.get("/watchlist", response_model=list[WatchItem], responses=_ERRORS)
async def watchlist(manager: PortfolioManager = Depends(get_portfolio_manager)):
    try:
        return await manager.list_watchlist()
    except ProxyError as exc:
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("watchlist_failed", extra={"event": "watchlist_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to fetch watchlist")


@router.get("/regime", response_model=Regime)
async def regime(manager: PortfolioManager = Depends(get_portfolio_manager)):
    """Market regime; reads UNKNOWN when the proxy cannot supply one."""
    return await manager.get_regime()
