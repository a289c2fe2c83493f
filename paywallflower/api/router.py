from fastapi import APIRouter

from paywallflower.api.routes import bypass, health, metrics

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(bypass.router, tags=["bypass"])
api_router.include_router(metrics.router, tags=["metrics"])
