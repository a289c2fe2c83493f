"""Method capability interface and the managed wrapper around concrete strategies.

A ``BypassStrategy`` only knows how to fetch; ``ManagedMethod`` gives it the
config, health state and metrics that the registry and orchestrator consume.
"""

import asyncio
import time
from typing import Any, Protocol, runtime_checkable

import structlog

from paywallflower.models.bypass import (
    AttemptOptions,
    AttemptResult,
    HealthCheckResult,
    HealthStatus,
    MethodConfig,
    MethodMetrics,
)
from paywallflower.utils.errors import MethodTimeoutError, StrategyError
from paywallflower.utils.url import is_valid_url

log = structlog.get_logger()


@runtime_checkable
class BypassMethod(Protocol):
    """What the registry and orchestrator require of every registered method."""

    config: MethodConfig
    health: HealthStatus

    @property
    def name(self) -> str: ...

    async def attempt(self, url: str, options: AttemptOptions | None = None) -> AttemptResult: ...

    async def health_check(self) -> HealthCheckResult: ...

    def is_available(self) -> bool: ...

    def get_metrics(self) -> dict[str, Any]: ...

    def update_config(self, **changes: Any) -> None: ...

    async def cleanup(self) -> None: ...


class BypassStrategy(Protocol):
    name: str
    default_config: MethodConfig

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult: ...

    async def probe(self) -> HealthCheckResult | None: ...

    async def close(self) -> None: ...


class ManagedMethod:
    """Wraps a strategy with timeouts, health tracking and per-method metrics.

    ``attempt`` never raises; every failure comes back as ``success=False``.
    """

    def __init__(self, strategy: BypassStrategy, config: MethodConfig | None = None):
        self.strategy = strategy
        self.config = config or strategy.default_config.model_copy()
        self.health = HealthStatus()
        self.metrics = MethodMetrics()
        self._closed = False
        self.log = log.bind(method=self.config.name)

    @property
    def name(self) -> str:
        return self.config.name

    async def attempt(self, url: str, options: AttemptOptions | None = None) -> AttemptResult:
        options = options or AttemptOptions()
        start = time.monotonic()
        result = await self._execute(url, options)
        response_time_ms = int((time.monotonic() - start) * 1000)

        if result.metadata.get("deadline_exceeded"):
            # The caller's deadline ran out, not the method
            self.log.debug("method_attempt_skipped", url=url, error=result.error)
            return result

        if not options.is_health_check:
            self.metrics.record(result.success, response_time_ms)
        self.health.record(result.success, result.error)

        self.log.debug(
            "method_attempt",
            url=url,
            success=result.success,
            response_time_ms=response_time_ms,
            success_rate=self.metrics.success_rate,
            error=result.error,
        )
        return result

    async def _execute(self, url: str, options: AttemptOptions) -> AttemptResult:
        if not is_valid_url(url):
            return AttemptResult.fail(self.name, "Invalid URL provided")

        try:
            timeout = self._effective_timeout(options)
        except MethodTimeoutError as e:
            return AttemptResult.fail(self.name, str(e), metadata={"deadline_exceeded": True})

        try:
            return await asyncio.wait_for(self.strategy.run(url, options), timeout=timeout)
        except StrategyError as e:
            return AttemptResult.fail(self.name, str(e), metadata={"status": e.status_code})
        except TimeoutError:
            cut_by_deadline = timeout < self.config.timeout_ms / 1000
            return AttemptResult.fail(
                self.name,
                f"{self.name} timed out after {int(timeout * 1000)}ms",
                metadata={"deadline_exceeded": True} if cut_by_deadline else {},
            )
        except Exception as e:
            return AttemptResult.fail(self.name, f"{self.name} error: {e}")

    def _effective_timeout(self, options: AttemptOptions) -> float:
        timeout = self.config.timeout_ms / 1000
        if options.deadline is not None:
            remaining = options.deadline - time.monotonic()
            if remaining <= 0:
                raise MethodTimeoutError("Deadline exceeded before attempt", method=self.name)
            timeout = min(timeout, remaining)
        return timeout

    async def health_check(self) -> HealthCheckResult:
        start = time.monotonic()
        try:
            probed = await self.strategy.probe()
            if probed is not None:
                self.health.record(probed.healthy, probed.error, checked=True)
                return probed

            if not self.config.test_url:
                return HealthCheckResult(healthy=True, message="No test URL configured")

            result = await self._execute(self.config.test_url, AttemptOptions(is_health_check=True))
            self.health.record(result.success, result.error, checked=True)
            return HealthCheckResult(
                healthy=self.health.healthy,
                response_time_ms=int((time.monotonic() - start) * 1000),
                error=result.error,
                message="Health check passed" if result.success else f"Health check failed: {result.error}",
            )
        except Exception as e:
            self.health.record(False, str(e), checked=True)
            self.log.debug("health_check_error", error=str(e))
            return HealthCheckResult(
                healthy=False,
                error=str(e),
                message=f"Health check error: {e}",
            )

    def is_available(self) -> bool:
        return self.config.enabled and self.health.healthy

    def get_metrics(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.config.enabled,
            "priority": self.config.priority,
            "health_status": self.health.model_dump(mode="json"),
            "metrics": {
                **self.metrics.model_dump(mode="json"),
                "success_rate": self.metrics.success_rate,
            },
        }

    def reset_metrics(self) -> None:
        self.metrics = MethodMetrics()

    def update_config(self, **changes: Any) -> None:
        # Re-validate so a bad priority or timeout is rejected
        self.config = MethodConfig.model_validate({**self.config.model_dump(), **changes})
        self.log.debug("method_config_updated", config=self.config.model_dump())

    async def cleanup(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.strategy.close()
        self.log.debug("method_cleaned_up")
