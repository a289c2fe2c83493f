import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from paywallflower.config.constants import RECENT_WINDOW_SIZE


class AttemptRecord(BaseModel):
    url: str
    domain: str
    method: str
    success: bool
    response_time_ms: float
    timestamp: datetime
    metadata: dict[str, Any] = {}


@dataclass
class RecentAttempt:
    success: bool
    response_time_ms: float
    timestamp: datetime


@dataclass
class MetricsAggregate:
    """Running totals for one method, either on one domain or across all of them."""

    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    total_response_time: float = 0.0
    average_response_time: float = 0.0
    min_response_time: float = math.inf
    max_response_time: float = 0.0
    last_attempt: datetime | None = None
    last_success: datetime | None = None
    consecutive_failures: int = 0
    recent_attempts: deque[RecentAttempt] = field(
        default_factory=lambda: deque(maxlen=RECENT_WINDOW_SIZE)
    )
    recent_success_rate: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.successful_attempts / self.total_attempts * 100

    @property
    def failure_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.failed_attempts / self.total_attempts * 100

    def update(self, success: bool, response_time_ms: float, timestamp: datetime) -> None:
        self.total_attempts += 1
        self.last_attempt = timestamp

        if success:
            self.successful_attempts += 1
            self.last_success = timestamp
            self.consecutive_failures = 0
        else:
            self.failed_attempts += 1
            self.consecutive_failures += 1

        self.total_response_time += response_time_ms
        self.average_response_time = self.total_response_time / self.total_attempts
        self.min_response_time = min(self.min_response_time, response_time_ms)
        self.max_response_time = max(self.max_response_time, response_time_ms)

        # deque(maxlen) evicts the oldest entry
        self.recent_attempts.append(RecentAttempt(success, response_time_ms, timestamp))
        successes = sum(1 for a in self.recent_attempts if a.success)
        self.recent_success_rate = successes / len(self.recent_attempts) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_attempts": self.total_attempts,
            "successful_attempts": self.successful_attempts,
            "failed_attempts": self.failed_attempts,
            "total_response_time": self.total_response_time,
            "average_response_time": self.average_response_time,
            "min_response_time": None if math.isinf(self.min_response_time) else self.min_response_time,
            "max_response_time": self.max_response_time,
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "consecutive_failures": self.consecutive_failures,
            "recent_success_rate": self.recent_success_rate,
            "success_rate": self.success_rate,
            "recent_attempts": [
                {
                    "success": a.success,
                    "response_time_ms": a.response_time_ms,
                    "timestamp": a.timestamp.isoformat(),
                }
                for a in self.recent_attempts
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricsAggregate":
        agg = cls(
            total_attempts=data.get("total_attempts", 0),
            successful_attempts=data.get("successful_attempts", 0),
            failed_attempts=data.get("failed_attempts", 0),
            total_response_time=data.get("total_response_time", 0.0),
            average_response_time=data.get("average_response_time", 0.0),
            max_response_time=data.get("max_response_time", 0.0),
            consecutive_failures=data.get("consecutive_failures", 0),
            recent_success_rate=data.get("recent_success_rate", 0.0),
        )
        if data.get("min_response_time") is not None:
            agg.min_response_time = data["min_response_time"]
        if data.get("last_attempt"):
            agg.last_attempt = datetime.fromisoformat(data["last_attempt"])
        if data.get("last_success"):
            agg.last_success = datetime.fromisoformat(data["last_success"])
        for item in data.get("recent_attempts", []):
            agg.recent_attempts.append(
                RecentAttempt(
                    success=item["success"],
                    response_time_ms=item["response_time_ms"],
                    timestamp=datetime.fromisoformat(item["timestamp"]),
                )
            )
        return agg


class MethodRanking(BaseModel):
    method: str
    success_rate: float
    recent_success_rate: float
    average_response_time: float
    total_attempts: int
    consecutive_failures: int
    last_success: datetime | None = None
