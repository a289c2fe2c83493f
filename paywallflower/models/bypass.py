import time
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from paywallflower.config.constants import HEALTH_FAILURE_THRESHOLD, RESPONSE_TIME_EMA_ALPHA


def utcnow() -> datetime:
    return datetime.now(UTC)


class BypassFailure(StrEnum):
    NOT_APPLICABLE = "not applicable"
    RATE_LIMITED = "rate limit exceeded"
    NO_METHODS = "no available methods"
    EXHAUSTED = "all methods failed"
    INVALID_URL = "invalid url"
    DEADLINE_EXCEEDED = "deadline exceeded"


class MethodConfig(BaseModel):
    name: str = Field(min_length=1)
    enabled: bool = True
    priority: int = Field(default=5, ge=1, le=10)
    timeout_ms: int = Field(default=30000, gt=0)
    test_url: str | None = None


class HealthStatus(BaseModel):
    healthy: bool = True
    last_check: datetime | None = None
    consecutive_failures: int = 0
    last_error: str | None = None

    def record(self, success: bool, error: str | None = None, checked: bool = False) -> None:
        """Fold one outcome into the circuit state.

        Recovery needs a single success; three failures in a row open the circuit.
        """
        if checked:
            self.last_check = utcnow()
        if success:
            self.consecutive_failures = 0
        else:
            self.consecutive_failures += 1
            if error:
                self.last_error = error
        self.healthy = self.consecutive_failures < HEALTH_FAILURE_THRESHOLD


class MethodMetrics(BaseModel):
    total_attempts: int = 0
    successful_attempts: int = 0
    average_response_time: float = 0.0
    last_attempt: datetime | None = None

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.successful_attempts / self.total_attempts * 100

    def record(self, success: bool, response_time_ms: float) -> None:
        self.total_attempts += 1
        if success:
            self.successful_attempts += 1

        if self.total_attempts == 1:
            self.average_response_time = float(response_time_ms)
        else:
            self.average_response_time = (
                RESPONSE_TIME_EMA_ALPHA * response_time_ms
                + (1 - RESPONSE_TIME_EMA_ALPHA) * self.average_response_time
            )
        self.last_attempt = utcnow()


class AttemptOptions(BaseModel):
    # time.monotonic() instant after which the attempt is abandoned
    deadline: float | None = None
    is_health_check: bool = False
    headers: dict[str, str] = {}

    def deadline_passed(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline


class AttemptResult(BaseModel):
    success: bool
    method: str
    result: str | None = None
    error: str | None = None
    extracted_content: str | None = None
    metadata: dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def ok(cls, method: str, result: str, **kwargs: Any) -> "AttemptResult":
        return cls(success=True, method=method, result=result, **kwargs)

    @classmethod
    def fail(cls, method: str, error: str, **kwargs: Any) -> "AttemptResult":
        return cls(success=False, method=method, error=error, **kwargs)


class HealthCheckResult(BaseModel):
    healthy: bool
    message: str
    response_time_ms: int | None = None
    error: str | None = None


class BypassResult(BaseModel):
    success: bool
    original_url: str | None = None
    result: str | None = None
    method: str | None = None
    response_time_ms: int | None = None
    extracted_content: str | None = None
    metadata: dict[str, Any] = {}
    error: str | None = None
    attempted_methods: list[str] = []
