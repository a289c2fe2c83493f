import asyncio
import contextlib
from datetime import UTC, datetime
from typing import Any

import structlog

from paywallflower.methods.base import BypassMethod
from paywallflower.models.bypass import HealthCheckResult
from paywallflower.utils.errors import InvalidPriorityError, MethodContractError

log = structlog.get_logger()

DEFAULT_HEALTH_CHECK_INTERVAL_MS = 300_000


def _health_report(results: dict[str, HealthCheckResult]) -> dict[str, Any]:
    return {
        "timestamp": datetime.now(UTC),
        "total_methods": len(results),
        "healthy_methods": sum(1 for r in results.values() if r.healthy),
        "results": results,
    }


class MethodRegistry:
    """Owns the registered bypass methods and keeps their health current."""

    def __init__(self) -> None:
        self._methods: dict[str, BypassMethod] = {}
        self._health_task: asyncio.Task[None] | None = None
        self._stop_health: asyncio.Event | None = None
        self.health_check_interval_ms = DEFAULT_HEALTH_CHECK_INTERVAL_MS
        self.last_health_report: dict[str, Any] | None = None

    def register(self, method: BypassMethod) -> None:
        if not isinstance(method, BypassMethod):
            raise MethodContractError(
                f"{type(method).__name__} does not implement the bypass method interface"
            )

        if method.name in self._methods:
            log.warning("method_replaced", method=method.name)

        self._methods[method.name] = method
        log.info(
            "method_registered",
            method=method.name,
            priority=method.config.priority,
            enabled=method.config.enabled,
        )

    async def unregister(self, name: str) -> None:
        method = self._methods.pop(name, None)
        if method is not None:
            await method.cleanup()
            log.info("method_unregistered", method=name)

    def get_method(self, name: str) -> BypassMethod | None:
        return self._methods.get(name)

    def get_all_methods(self) -> list[BypassMethod]:
        return list(self._methods.values())

    def get_available_methods(self) -> list[BypassMethod]:
        return [m for m in self._methods.values() if m.is_available()]

    def get_methods_by_priority(self, only_available: bool = True) -> list[BypassMethod]:
        methods = self.get_available_methods() if only_available else self.get_all_methods()
        return sorted(methods, key=lambda m: m.config.priority, reverse=True)

    def update_method_config(self, name: str, **config: Any) -> None:
        method = self.get_method(name)
        if method is None:
            log.warning("unknown_method_config_update", method=name)
            return
        method.update_config(**config)
        log.info("method_config_updated", method=name, config=config)

    def update_method_configs(self, configs: dict[str, dict[str, Any]]) -> None:
        for name, config in configs.items():
            self.update_method_config(name, **config)

    def set_method_enabled(self, name: str, enabled: bool) -> None:
        self.update_method_config(name, enabled=enabled)

    def set_method_priority(self, name: str, priority: int) -> None:
        if not 1 <= priority <= 10:
            raise InvalidPriorityError("Priority must be between 1 and 10", priority=priority, method=name)
        self.update_method_config(name, priority=priority)

    async def _check_one(self, method: BypassMethod) -> HealthCheckResult:
        try:
            return await method.health_check()
        except Exception as e:
            return HealthCheckResult(
                healthy=False,
                error=str(e),
                message=f"Health check failed: {e}",
            )

    async def perform_health_checks(self) -> dict[str, Any]:
        """Check every method concurrently; one failing check never affects the others."""
        methods = self.get_all_methods()
        log.debug("health_checks_started", methods=len(methods))

        outcomes = await asyncio.gather(*(self._check_one(m) for m in methods))
        report = _health_report({m.name: outcome for m, outcome in zip(methods, outcomes)})

        log.info("health_checks_completed", healthy=report["healthy_methods"], total=len(methods))
        self.last_health_report = report
        return report

    def health_snapshot(self) -> dict[str, Any]:
        """Latest scheduled check results, without running any new checks.

        Methods registered since that run, or every method before the first run,
        are reported from their current circuit state.
        """
        checked = self.last_health_report["results"] if self.last_health_report else {}
        results = {}
        for method in self.get_all_methods():
            if method.name in checked:
                results[method.name] = checked[method.name]
            else:
                results[method.name] = HealthCheckResult(
                    healthy=method.health.healthy,
                    error=method.health.last_error,
                    message="Not checked yet",
                )
        report = _health_report(results)
        if self.last_health_report:
            report["timestamp"] = self.last_health_report["timestamp"]
        return report

    def start_health_checks(self, interval_ms: int | None = None) -> None:
        """Run health checks every interval_ms until stopped. Must be called inside a running loop."""
        self.stop_health_checks()

        if interval_ms is not None:
            self.health_check_interval_ms = interval_ms
        self._stop_health = asyncio.Event()
        self._health_task = asyncio.create_task(
            self._health_loop(self._stop_health, self.health_check_interval_ms / 1000),
            name="method-health-checks",
        )
        log.info("health_checks_scheduled", interval_ms=self.health_check_interval_ms)

    async def _health_loop(self, stop: asyncio.Event, interval: float) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                try:
                    await self.perform_health_checks()
                except Exception as e:
                    log.error("periodic_health_checks_failed", error=str(e))

    def stop_health_checks(self) -> None:
        if self._stop_health is not None and not self._stop_health.is_set():
            self._stop_health.set()
            log.info("health_checks_stopped")

    @property
    def health_checks_running(self) -> bool:
        return self._health_task is not None and not self._health_task.done()

    def get_metrics(self) -> dict[str, Any]:
        methods = self.get_all_methods()
        method_metrics = [m.get_metrics() for m in methods]

        total_attempts = 0
        total_successes = 0
        total_response_time = 0.0
        with_attempts = 0
        for entry in method_metrics:
            stats = entry["metrics"]
            total_attempts += stats["total_attempts"]
            total_successes += stats["successful_attempts"]
            if stats["total_attempts"] > 0:
                total_response_time += stats["average_response_time"]
                with_attempts += 1

        return {
            "summary": {
                "total_methods": len(methods),
                "enabled_methods": sum(1 for m in methods if m.config.enabled),
                "healthy_methods": sum(1 for m in methods if m.health.healthy),
                "total_attempts": total_attempts,
                "total_successes": total_successes,
                "average_success_rate": total_successes / total_attempts * 100 if total_attempts else 0.0,
                "average_response_time": total_response_time / with_attempts if with_attempts else 0.0,
            },
            "methods": method_metrics,
            "timestamp": datetime.now(UTC),
        }

    def reset_metrics(self) -> None:
        for method in self._methods.values():
            reset = getattr(method, "reset_metrics", None)
            if reset is not None:
                reset()
        log.info("method_metrics_reset")

    async def cleanup(self) -> None:
        """Stop the scheduler, wait for any in-flight check, then release every method."""
        self.stop_health_checks()
        if self._health_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._health_task
            self._health_task = None
        self._stop_health = None

        methods = self.get_all_methods()
        outcomes = await asyncio.gather(*(m.cleanup() for m in methods), return_exceptions=True)
        for method, outcome in zip(methods, outcomes):
            if isinstance(outcome, Exception):
                log.error("method_cleanup_failed", method=method.name, error=str(outcome))

        self._methods.clear()
        self.last_health_report = None
        log.info("registry_cleaned_up")
