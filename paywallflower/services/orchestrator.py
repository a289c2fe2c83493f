import time
from datetime import UTC, datetime
from typing import Any

import structlog

from paywallflower.config.constants import BEST_METHODS_MIN_ATTEMPTS, PREFERRED_RECENT_SUCCESS_RATE
from paywallflower.config.settings import Settings, get_settings
from paywallflower.methods.base import BypassMethod
from paywallflower.methods.factory import create_methods
from paywallflower.models.bypass import AttemptOptions, BypassFailure, BypassResult
from paywallflower.services.metrics_store import MetricsStore, rank_key
from paywallflower.services.paywall_detector import PaywallDetector
from paywallflower.services.rate_limiter import UrlRateLimiter
from paywallflower.services.registry import MethodRegistry
from paywallflower.services.strategy_store import DomainStrategyStore
from paywallflower.utils.url import extract_domain, normalize_url

log = structlog.get_logger()


def _by_priority(methods: list[BypassMethod]) -> list[BypassMethod]:
    return sorted(methods, key=lambda m: m.config.priority, reverse=True)


class SmartBypassService:
    """Picks bypass methods per domain, runs them in order and learns from the outcome."""

    def __init__(
        self,
        settings: Settings | None = None,
        registry: MethodRegistry | None = None,
        metrics: MetricsStore | None = None,
        detector: PaywallDetector | None = None,
        rate_limiter: UrlRateLimiter | None = None,
        strategies: DomainStrategyStore | None = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or MethodRegistry()
        self.metrics = metrics or MetricsStore()
        self.detector = detector or PaywallDetector.from_settings(self.settings)
        self.rate_limiter = rate_limiter or UrlRateLimiter(
            max_requests=self.settings.rate_limit_max,
            window_s=self.settings.rate_limit_window_s,
            retention_windows=self.settings.rate_limit_retention_minutes,
        )
        self.strategies = strategies or DomainStrategyStore(max_entries=self.settings.max_domain_strategies)
        self.initialized = False
        self.log = log.bind(service="SmartBypassService")

    async def initialize(self) -> None:
        if self.initialized:
            return

        self.log.info("initializing")
        if not self.registry.get_all_methods():
            for method in create_methods(self.settings):
                self.registry.register(method)

        self.strategies.seed(self.settings.domain_strategies)

        if self.settings.health_checks_enabled:
            self.registry.start_health_checks(self.settings.health_check_interval_ms)

        self.initialized = True
        self.log.info("initialized", registered_methods=len(self.registry.get_all_methods()))

    async def bypass_paywall(self, url: str, options: AttemptOptions | None = None) -> BypassResult:
        normalized_url = normalize_url(url)
        domain = extract_domain(normalized_url)
        if domain is None:
            return BypassResult(success=False, original_url=url, error=BypassFailure.INVALID_URL)

        self.log.info("bypass_started", url=normalized_url, domain=domain)

        try:
            paywalled = await self.detector.is_paywalled(normalized_url)
        except Exception as e:
            self.log.error("paywall_detection_failed", url=normalized_url, error=str(e))
            return BypassResult(success=False, original_url=url, error=f"paywall detection failed: {e}")

        if not paywalled:
            self.log.info("bypass_not_applicable", url=normalized_url)
            return BypassResult(success=False, original_url=url, error=BypassFailure.NOT_APPLICABLE)

        if not self.rate_limiter.check(normalized_url):
            self.log.warning("rate_limit_exceeded", url=normalized_url)
            return BypassResult(success=False, original_url=url, error=BypassFailure.RATE_LIMITED)

        methods = self.get_methods_for_domain(domain)
        if not methods:
            self.log.warning("no_available_methods", domain=domain)
            return BypassResult(success=False, original_url=url, error=BypassFailure.NO_METHODS)

        self.log.debug(
            "bypass_candidates",
            methods=[{"name": m.name, "priority": m.config.priority} for m in methods],
        )

        # One at a time: later candidates are slower or costlier
        attempted: list[str] = []
        for method in methods:
            if options is not None and options.deadline_passed():
                return self._deadline_exceeded(url, normalized_url, attempted)

            attempted.append(method.name)
            start = time.monotonic()
            try:
                result = await method.attempt(normalized_url, options)
            except Exception as e:
                self.log.error("method_raised", method=method.name, error=str(e))
                self.metrics.record_attempt(normalized_url, method.name, False, 0, {"error": str(e)})
                self.update_domain_strategy(domain, method.name, False, 0)
                continue

            response_time_ms = int((time.monotonic() - start) * 1000)
            if result.metadata.get("deadline_exceeded"):
                return self._deadline_exceeded(url, normalized_url, attempted)

            self.metrics.record_attempt(
                normalized_url,
                method.name,
                result.success,
                response_time_ms,
                {"error": result.error, **result.metadata},
            )
            self.update_domain_strategy(domain, method.name, result.success, response_time_ms)

            if result.success:
                self.log.info("bypass_succeeded", method=method.name, response_time_ms=response_time_ms)
                return BypassResult(
                    success=True,
                    original_url=url,
                    result=result.result,
                    method=method.name,
                    response_time_ms=response_time_ms,
                    extracted_content=result.extracted_content,
                    metadata=result.metadata,
                )

            self.log.debug("method_failed", method=method.name, error=result.error)

        self.log.warning("all_methods_failed", url=normalized_url)
        return BypassResult(
            success=False,
            original_url=url,
            error=BypassFailure.EXHAUSTED,
            attempted_methods=attempted,
        )

    def _deadline_exceeded(self, url: str, normalized_url: str, attempted: list[str]) -> BypassResult:
        # Caller-side abort: nothing is recorded against the remaining methods
        self.log.warning("bypass_deadline_exceeded", url=normalized_url, attempted=attempted)
        return BypassResult(
            success=False,
            original_url=url,
            error=BypassFailure.DEADLINE_EXCEEDED,
            attempted_methods=attempted,
        )

    def get_methods_for_domain(self, domain: str) -> list[BypassMethod]:
        """Order the available methods for a domain, best candidate first."""
        strategy = self.strategies.get(domain)
        blacklisted = set(strategy.blacklisted_methods) if strategy else set()
        available = [m for m in self.registry.get_available_methods() if m.name not in blacklisted]

        if strategy and strategy.preferred_methods:
            preferred = []
            for name in strategy.preferred_methods:
                method = self.registry.get_method(name)
                if method is not None and method.is_available() and name not in blacklisted:
                    preferred.append(method)
            remaining = [m for m in available if m.name not in strategy.preferred_methods]
            return preferred + _by_priority(remaining)

        best = self.metrics.get_best_methods_for_domain(domain, BEST_METHODS_MIN_ATTEMPTS)
        if best:
            by_name = {m.name: m for m in available}
            proven = [
                r for r in sorted(best, key=rank_key)
                if r.recent_success_rate > PREFERRED_RECENT_SUCCESS_RATE and r.method in by_name
            ]
            proven_names = {r.method for r in proven}
            remaining = [m for m in available if m.name not in proven_names]
            return [by_name[r.method] for r in proven] + _by_priority(remaining)

        return [m for m in self.registry.get_methods_by_priority(True) if m.name not in blacklisted]

    def update_domain_strategy(self, domain: str, method: str, success: bool, response_time_ms: float) -> None:
        strategy = self.strategies.update(
            domain,
            method,
            success,
            blacklist_candidates=self.metrics.get_methods_to_blacklist(domain),
        )
        self.log.debug(
            "domain_strategy_updated",
            domain=domain,
            method=method,
            success=success,
            response_time_ms=response_time_ms,
            preferred=strategy.preferred_methods,
            blacklisted=sorted(strategy.blacklisted_methods),
        )

    async def process_urls(self, urls: list[str]) -> list[BypassResult]:
        results = []
        for url in urls:
            try:
                result = await self.bypass_paywall(url)
            except Exception as e:
                self.log.error("url_processing_failed", url=url, error=str(e))
                continue
            if result.success:
                results.append(result)
        return results

    def get_metrics(self) -> dict[str, Any]:
        return {
            "registry": self.registry.get_metrics(),
            "bypass": self.metrics.get_global_metrics(),
            "domain_strategies": len(self.strategies),
            "rate_limited_urls": len(self.rate_limiter),
            "timestamp": datetime.now(UTC),
        }

    def get_domain_metrics(self, domain: str) -> dict[str, Any] | None:
        domain_metrics = self.metrics.get_domain_metrics(domain)
        strategy = self.strategies.get(domain)
        if domain_metrics is None and strategy is None:
            return None
        return {
            **(domain_metrics or {"domain": domain}),
            "strategy": strategy.model_dump(mode="json") if strategy else None,
        }

    def get_trending_data(self, hours: int = 24) -> dict[str, Any]:
        return self.metrics.get_trending_data(hours)

    async def get_health_status(self, live: bool = False) -> dict[str, Any]:
        """Service and per-method health.

        By default this reports the scheduler's last results; ``live=True`` checks
        every method now, which also feeds their circuit state.
        """
        checks = await self.registry.perform_health_checks() if live else self.registry.health_snapshot()
        return {
            "service": {
                "initialized": self.initialized,
                "registered_methods": len(self.registry.get_all_methods()),
                "available_methods": len(self.registry.get_available_methods()),
            },
            "methods": checks,
            "timestamp": datetime.now(UTC),
        }

    async def cleanup(self) -> None:
        self.log.info("cleaning_up")
        await self.registry.cleanup()
        await self.detector.close()
        self.rate_limiter.reset()
        self.strategies.clear()
        self.initialized = False
        self.log.info("cleaned_up")
