from fastapi import APIRouter, Depends

from paywallflower.api.deps import get_bypass_service
from paywallflower.models.api import HealthResponse
from paywallflower.services.orchestrator import SmartBypassService

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(service: SmartBypassService = Depends(get_bypass_service)) -> HealthResponse:
    report = await service.get_health_status()
    status = report["service"]
    checks = report["methods"]

    if not status["initialized"]:
        overall = "starting"
    elif status["available_methods"] == 0:
        overall = "down"
    elif status["available_methods"] < status["registered_methods"]:
        overall = "degraded"
    else:
        overall = "ok"

    return HealthResponse(
        status=overall,
        initialized=status["initialized"],
        registered_methods=status["registered_methods"],
        available_methods=status["available_methods"],
        methods={name: result.model_dump() for name, result in checks["results"].items()},
    )
