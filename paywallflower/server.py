from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paywallflower.api.router import api_router
from paywallflower.services.orchestrator import SmartBypassService
from paywallflower.utils.logger import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    setup_logging()
    service = getattr(app.state, "bypass_service", None) or SmartBypassService()
    app.state.bypass_service = service
    await service.initialize()
    yield
    await service.cleanup()


def create_app(service: SmartBypassService | None = None) -> FastAPI:
    app = FastAPI(
        title="Paywallflower",
        version="0.1.0",
        description="Adaptive paywall bypass orchestration",
        lifespan=lifespan,
    )
    if service is not None:
        app.state.bypass_service = service
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
