from typing import Any

from pydantic import BaseModel, Field

from paywallflower.models.bypass import BypassResult


class BypassRequest(BaseModel):
    url: str = Field(min_length=1)
    timeout_ms: int | None = Field(default=None, gt=0, le=120_000)


class BatchBypassRequest(BaseModel):
    urls: list[str] = Field(min_length=1, max_length=20)


class BatchBypassResponse(BaseModel):
    requested: int
    succeeded: int
    results: list[BypassResult]


class HealthResponse(BaseModel):
    status: str
    initialized: bool
    registered_methods: int
    available_methods: int
    methods: dict[str, Any] = {}
