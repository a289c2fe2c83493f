import time

from fastapi import APIRouter, Depends

from paywallflower.api.deps import get_bypass_service
from paywallflower.models.api import BatchBypassRequest, BatchBypassResponse, BypassRequest
from paywallflower.models.bypass import AttemptOptions, BypassResult
from paywallflower.services.orchestrator import SmartBypassService

router = APIRouter(prefix="/bypass")


@router.post("", response_model=BypassResult)
async def bypass(
    input: BypassRequest,
    service: SmartBypassService = Depends(get_bypass_service),
) -> BypassResult:
    options = None
    if input.timeout_ms:
        options = AttemptOptions(deadline=time.monotonic() + input.timeout_ms / 1000)
    return await service.bypass_paywall(input.url, options)


@router.post("/batch", response_model=BatchBypassResponse)
async def bypass_batch(
    input: BatchBypassRequest,
    service: SmartBypassService = Depends(get_bypass_service),
) -> BatchBypassResponse:
    results = await service.process_urls(input.urls)
    return BatchBypassResponse(requested=len(input.urls), succeeded=len(results), results=results)
