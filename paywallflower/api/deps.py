from fastapi import HTTPException, Request

from paywallflower.services.orchestrator import SmartBypassService


def get_bypass_service(request: Request) -> SmartBypassService:
    service = getattr(request.app.state, "bypass_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Bypass service not initialized")
    return service
