from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import router
from app.config.logging import configure_logging
from app.config.settings import Settings, settings
from app.services.market_data import MarketDataService, build_market_data_service


def create_app(
    config: Settings | None = None, service: MarketDataService | None = None
) -> FastAPI:
    config = config or settings
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.market_data = service or build_market_data_service(config)
        yield

    app = FastAPI(title="vectorflux market data", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
