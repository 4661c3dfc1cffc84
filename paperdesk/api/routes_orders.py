from typing import Optional

from fastapi import APIRouter, Depends, Query

from paperdesk.api.errors import error_response, upstream_error_response
from paperdesk.api.routes_portfolio import get_portfolio_manager
from paperdesk.core.logging import get_logger
from paperdesk.proxy.proxy_client import ProxyError
from paperdesk.trading.portfolio_manager import PortfolioManager
from paperdesk.trading.schemas import ErrorResponse, Order

router = APIRouter(prefix="/api", tags=["orders"])
logger = get_logger(__name__)


@router.get(
    "/orders",
    response_model=list[Order],
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def list_orders(
    status: Optional[str] = Query(None, description="all, open or closed"),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    """Return normalized orders; the status filter is applied by the proxy."""
    try:
        return await manager.list_orders(status)
    except ValueError as exc:
        return error_response(status_code=400, code="validation_error", detail=str(exc))
    except ProxyError as exc:
        logger.warning(
            "list_orders_failed", extra={"event": "list_orders_failed", "status": status, "error": str(exc)}
        )
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("list_orders_failed", extra={"event": "list_orders_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to fetch orders")
