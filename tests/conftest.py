import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from paywallflower.config.settings import Settings
from paywallflower.methods.base import ManagedMethod
from paywallflower.models.bypass import AttemptOptions, AttemptResult, HealthCheckResult, MethodConfig
from paywallflower.services.metrics_store import MetricsStore
from paywallflower.services.orchestrator import SmartBypassService
from paywallflower.services.registry import MethodRegistry


class FakeStrategy:
    """Scripted strategy: each run() consumes the next outcome, the last one repeats."""

    def __init__(
        self,
        name: str = "fake",
        priority: int = 5,
        outcomes: list[bool | Exception] | None = None,
        probe_result: HealthCheckResult | None = None,
        test_url: str | None = "https://example.com/health",
        delay: float = 0.0,
    ):
        self.name = name
        self.default_config = MethodConfig(name=name, priority=priority, timeout_ms=1000, test_url=test_url)
        self.outcomes = list(outcomes or [True])
        self.probe_result = probe_result
        self.delay = delay
        self.calls: list[str] = []
        self.close_calls = 0

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if outcome:
            return AttemptResult.ok(self.name, f"https://mirror.test/{self.name}", metadata={"kind": "fake"})
        return AttemptResult.fail(self.name, f"{self.name} failed")

    async def probe(self) -> HealthCheckResult | None:
        return self.probe_result

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def settings() -> Settings:
    return Settings(health_checks_enabled=False)


@pytest.fixture
def make_method() -> Callable[..., ManagedMethod]:
    def _make(name: str = "fake", priority: int = 5, **kwargs) -> ManagedMethod:
        return ManagedMethod(FakeStrategy(name=name, priority=priority, **kwargs))

    return _make


@pytest.fixture
def detector() -> MagicMock:
    mock = MagicMock()
    mock.is_paywalled = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def registry() -> MethodRegistry:
    return MethodRegistry()


@pytest.fixture
def service(settings: Settings, registry: MethodRegistry, detector: MagicMock) -> SmartBypassService:
    return SmartBypassService(
        settings=settings,
        registry=registry,
        metrics=MetricsStore(),
        detector=detector,
    )
