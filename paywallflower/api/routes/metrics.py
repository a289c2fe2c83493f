from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from paywallflower.api.deps import get_bypass_service
from paywallflower.services.orchestrator import SmartBypassService

router = APIRouter(prefix="/metrics")


@router.get("")
async def metrics(service: SmartBypassService = Depends(get_bypass_service)) -> dict[str, Any]:
    return service.get_metrics()


@router.get("/trending")
async def trending(
    hours: int = Query(default=24, gt=0, le=24 * 30),
    service: SmartBypassService = Depends(get_bypass_service),
) -> dict[str, Any]:
    return service.get_trending_data(hours)


@router.get("/domains/{domain}")
async def domain_metrics(domain: str, service: SmartBypassService = Depends(get_bypass_service)) -> dict[str, Any]:
    data = service.get_domain_metrics(domain.lower().removeprefix("www."))
    if data is None:
        raise HTTPException(status_code=404, detail="No metrics for domain")
    return data
