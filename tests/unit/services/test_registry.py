import asyncio
from typing import Any

import pytest

from paywallflower.models.bypass import (
    AttemptOptions,
    AttemptResult,
    HealthCheckResult,
    HealthStatus,
    MethodConfig,
)
from paywallflower.services.registry import MethodRegistry
from paywallflower.utils.errors import InvalidPriorityError, MethodContractError


class StubMethod:
    """Minimal hand-written method; health_check and cleanup can be made to raise."""

    def __init__(self, name: str, priority: int = 5, check_error: Exception | None = None, cleanup_error=None):
        self.config = MethodConfig(name=name, priority=priority)
        self.health = HealthStatus()
        self.check_error = check_error
        self.cleanup_error = cleanup_error
        self.checks = 0
        self.cleaned = False

    @property
    def name(self) -> str:
        return self.config.name

    async def attempt(self, url: str, options: AttemptOptions | None = None) -> AttemptResult:
        return AttemptResult.ok(self.name, url)

    async def health_check(self) -> HealthCheckResult:
        self.checks += 1
        if self.check_error:
            raise self.check_error
        return HealthCheckResult(healthy=True, message="ok")

    def is_available(self) -> bool:
        return self.config.enabled and self.health.healthy

    def get_metrics(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "metrics": {"total_attempts": 0, "successful_attempts": 0, "average_response_time": 0.0},
        }

    def update_config(self, **changes: Any) -> None:
        self.config = MethodConfig.model_validate({**self.config.model_dump(), **changes})

    async def cleanup(self) -> None:
        self.cleaned = True
        if self.cleanup_error:
            raise self.cleanup_error


class TestRegistration:
    def test_register_and_lookup(self, registry, make_method):
        method = make_method("archive_today", priority=9)

        registry.register(method)

        assert registry.get_method("archive_today") is method
        assert registry.get_all_methods() == [method]

    def test_rejects_object_without_method_interface(self, registry):
        with pytest.raises(MethodContractError):
            registry.register(object())

    def test_same_name_replaces(self, registry, make_method):
        registry.register(make_method("archive_today", priority=9))
        replacement = make_method("archive_today", priority=2)

        registry.register(replacement)

        assert registry.get_all_methods() == [replacement]

    @pytest.mark.asyncio
    async def test_unregister_cleans_up(self, registry, make_method):
        method = make_method("wayback_machine")
        registry.register(method)

        await registry.unregister("wayback_machine")
        await registry.unregister("wayback_machine")

        assert registry.get_method("wayback_machine") is None
        assert method.strategy.close_calls == 1


class TestSelection:
    def test_priority_order_and_availability(self, registry, make_method):
        low = make_method("wayback_machine", priority=4)
        high = make_method("archive_today", priority=9)
        disabled = make_method("google_cache", priority=6)
        for m in (low, high, disabled):
            registry.register(m)
        registry.set_method_enabled("google_cache", False)

        assert [m.name for m in registry.get_methods_by_priority()] == ["archive_today", "wayback_machine"]
        assert [m.name for m in registry.get_methods_by_priority(only_available=False)] == [
            "archive_today",
            "google_cache",
            "wayback_machine",
        ]

    def test_unhealthy_methods_not_available(self, registry, make_method):
        method = make_method("archive_today")
        registry.register(method)
        for _ in range(3):
            method.health.record(False, "down")

        assert registry.get_available_methods() == []


class TestConfiguration:
    def test_set_priority(self, registry, make_method):
        registry.register(make_method("archive_today", priority=9))

        registry.set_method_priority("archive_today", 3)

        assert registry.get_method("archive_today").config.priority == 3

    @pytest.mark.parametrize("priority", [0, 11])
    def test_priority_out_of_range(self, registry, make_method, priority):
        registry.register(make_method("archive_today", priority=9))

        with pytest.raises(InvalidPriorityError) as exc_info:
            registry.set_method_priority("archive_today", priority)

        assert exc_info.value.priority == priority
        assert registry.get_method("archive_today").config.priority == 9

    def test_bulk_update_ignores_unknown_names(self, registry, make_method):
        registry.register(make_method("archive_today"))

        registry.update_method_configs({"archive_today": {"timeout_ms": 500}, "missing": {"enabled": False}})

        assert registry.get_method("archive_today").config.timeout_ms == 500
        assert registry.get_method("missing") is None


class TestHealthChecks:
    @pytest.mark.asyncio
    async def test_one_raising_check_is_isolated(self, registry):
        good = StubMethod("good")
        bad = StubMethod("bad", check_error=RuntimeError("probe exploded"))
        registry.register(good)
        registry.register(bad)

        report = await registry.perform_health_checks()

        assert report["total_methods"] == 2
        assert report["healthy_methods"] == 1
        assert report["results"]["good"].healthy is True
        assert report["results"]["bad"].healthy is False
        assert "probe exploded" in report["results"]["bad"].message

    @pytest.mark.asyncio
    async def test_snapshot_serves_last_results_without_checking(self, registry):
        checked = StubMethod("checked")
        registry.register(checked)
        report = await registry.perform_health_checks()

        late = StubMethod("late")
        late.health.record(False, "upstream 503")
        registry.register(late)
        snapshot = registry.health_snapshot()

        assert checked.checks == 1
        assert late.checks == 0
        assert snapshot["timestamp"] == report["timestamp"]
        assert snapshot["total_methods"] == 2
        assert snapshot["results"]["checked"] is report["results"]["checked"]
        assert snapshot["results"]["late"].healthy is True
        assert snapshot["results"]["late"].error == "upstream 503"
        assert snapshot["results"]["late"].message == "Not checked yet"

    def test_snapshot_before_first_run(self, registry):
        method = StubMethod("fresh")
        for _ in range(3):
            method.health.record(False, "timed out")
        registry.register(method)

        snapshot = registry.health_snapshot()

        assert method.checks == 0
        assert snapshot["healthy_methods"] == 0
        assert snapshot["results"]["fresh"].healthy is False

    @pytest.mark.asyncio
    async def test_scheduler_runs_until_stopped(self, registry):
        method = StubMethod("good")
        registry.register(method)

        registry.start_health_checks(interval_ms=10)
        assert registry.health_checks_running is True
        await asyncio.sleep(0.08)
        registry.stop_health_checks()
        await asyncio.sleep(0.02)

        assert method.checks >= 2
        assert registry.health_checks_running is False

    @pytest.mark.asyncio
    async def test_restart_replaces_previous_schedule(self, registry):
        registry.start_health_checks(interval_ms=60_000)
        registry.start_health_checks(interval_ms=30_000)

        assert registry.health_check_interval_ms == 30_000
        await registry.cleanup()
        assert registry.health_checks_running is False


class TestMetricsAndCleanup:
    @pytest.mark.asyncio
    async def test_get_metrics_summary(self, registry, make_method):
        ok = make_method("archive_today", outcomes=[True])
        bad = make_method("wayback_machine", outcomes=[False])
        registry.register(ok)
        registry.register(bad)
        await ok.attempt("https://www.wsj.com/a")
        await bad.attempt("https://www.wsj.com/a")

        summary = registry.get_metrics()["summary"]

        assert summary["total_methods"] == 2
        assert summary["enabled_methods"] == 2
        assert summary["total_attempts"] == 2
        assert summary["total_successes"] == 1
        assert summary["average_success_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_reset_metrics(self, registry, make_method):
        method = make_method("archive_today")
        registry.register(method)
        await method.attempt("https://www.wsj.com/a")

        registry.reset_metrics()

        assert method.metrics.total_attempts == 0

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent_and_tolerates_failures(self, registry):
        good = StubMethod("good")
        bad = StubMethod("bad", cleanup_error=RuntimeError("close failed"))
        registry.register(good)
        registry.register(bad)
        registry.start_health_checks(interval_ms=60_000)

        await registry.cleanup()
        await registry.cleanup()

        assert good.cleaned and bad.cleaned
        assert registry.get_all_methods() == []
        assert registry.health_checks_running is False
