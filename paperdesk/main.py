from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paperdesk.api.routes_orders import router as orders_router
from paperdesk.api.routes_portfolio import configure_portfolio_manager, router as portfolio_router
from paperdesk.api.routes_proposals import configure_approval_desk, router as proposals_router
from paperdesk.core.config import get_settings
from paperdesk.core.logging import get_logger, init_logging
from paperdesk.proxy.proxy_client import ClientConfig, ProxyClient
from paperdesk.trading.approvals import ApprovalDesk
from paperdesk.trading.portfolio_manager import PortfolioManager
from paperdesk.trading.refresh import AutoRefresher

logger = get_logger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    init_logging(settings.log_level, structured=settings.log_json)

    client = ProxyClient(ClientConfig.from_settings(settings))
    manager = PortfolioManager(client)
    desk = ApprovalDesk(manager)
    configure_portfolio_manager(manager)
    configure_approval_desk(desk)

    refreshers: List[AutoRefresher] = [
        AutoRefresher(
            "dashboard",
            settings.dashboard_refresh_seconds,
            manager.fetch_dashboard,
            on_result=manager.apply_dashboard,
            on_error=manager.record_dashboard_failure,
        ),
        AutoRefresher(
            "regime",
            settings.regime_refresh_seconds,
            manager.fetch_regime,
            on_result=manager.apply_regime,
        ),
    ]

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.auto_refresh_enabled:
            for refresher in refreshers:
                refresher.start()
            logger.info(
                "auto_refresh_started",
                extra={"event": "auto_refresh_started", "refreshers": [r.name for r in refreshers]},
            )
        try:
            yield
        finally:
            for refresher in refreshers:
                await refresher.stop()
            await desk.drain()

    app = FastAPI(
        title="Paperdesk Brokerage Dashboard API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(portfolio_router)
    app.include_router(orders_router)
    app.include_router(proposals_router)
    return app


app = create_app()
