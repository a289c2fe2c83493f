from collections import deque
from datetime import UTC, datetime, timedelta
from functools import cmp_to_key
from typing import Any

import structlog

from paywallflower.config.constants import (
    BLACKLIST_MAX_FAILURE_RATE,
    BLACKLIST_MIN_ATTEMPTS,
    MAX_RECENT_ATTEMPTS,
    OVERALL_RATE_SIGNIFICANT_GAP,
    RECENT_RATE_SIGNIFICANT_GAP,
    UNKNOWN_DOMAIN,
)
from paywallflower.models.metrics import AttemptRecord, MetricsAggregate, MethodRanking
from paywallflower.utils.url import extract_domain

log = structlog.get_logger()


def compare_rankings(a: MethodRanking, b: MethodRanking) -> int:
    """Order best-first; small differences in rate fall through to the next tier."""
    if abs(a.recent_success_rate - b.recent_success_rate) > RECENT_RATE_SIGNIFICANT_GAP:
        return -1 if a.recent_success_rate > b.recent_success_rate else 1
    if abs(a.success_rate - b.success_rate) > OVERALL_RATE_SIGNIFICANT_GAP:
        return -1 if a.success_rate > b.success_rate else 1
    if a.average_response_time != b.average_response_time:
        return -1 if a.average_response_time < b.average_response_time else 1
    return 0


rank_key = cmp_to_key(compare_rankings)


class MetricsStore:
    """In-memory attempt history with per domain x method and global aggregates."""

    def __init__(self, max_recent_attempts: int = MAX_RECENT_ATTEMPTS):
        self._domains: dict[str, dict[str, MetricsAggregate]] = {}
        self._global: dict[str, MetricsAggregate] = {}
        self._recent: deque[AttemptRecord] = deque(maxlen=max_recent_attempts)

    def record_attempt(
        self,
        url: str,
        method: str,
        success: bool,
        response_time_ms: float,
        metadata: dict[str, Any] | None = None,
    ) -> AttemptRecord:
        domain = extract_domain(url) or UNKNOWN_DOMAIN
        timestamp = datetime.now(UTC)

        domain_metrics = self._domains.setdefault(domain, {})
        domain_metrics.setdefault(method, MetricsAggregate()).update(success, response_time_ms, timestamp)
        self._global.setdefault(method, MetricsAggregate()).update(success, response_time_ms, timestamp)

        record = AttemptRecord(
            url=url,
            domain=domain,
            method=method,
            success=success,
            response_time_ms=response_time_ms,
            timestamp=timestamp,
            metadata=metadata or {},
        )
        self._recent.append(record)

        log.debug(
            "attempt_recorded",
            domain=domain,
            method=method,
            success=success,
            response_time_ms=response_time_ms,
            success_rate=self.get_success_rate(domain, method),
        )
        return record

    def get_aggregate(self, domain: str, method: str) -> MetricsAggregate | None:
        return self._domains.get(domain, {}).get(method)

    def get_global_aggregate(self, method: str) -> MetricsAggregate | None:
        return self._global.get(method)

    @property
    def recent_attempts(self) -> list[AttemptRecord]:
        return list(self._recent)

    def get_success_rate(self, domain: str, method: str) -> float:
        agg = self.get_aggregate(domain, method)
        return agg.success_rate if agg else 0.0

    def get_global_success_rate(self, method: str) -> float:
        agg = self._global.get(method)
        return agg.success_rate if agg else 0.0

    def get_best_methods_for_domain(self, domain: str, min_attempts: int = 5) -> list[MethodRanking]:
        """Rank methods with enough history on this domain, best first."""
        rankings = [
            MethodRanking(
                method=method,
                success_rate=agg.success_rate,
                recent_success_rate=agg.recent_success_rate,
                average_response_time=agg.average_response_time,
                total_attempts=agg.total_attempts,
                consecutive_failures=agg.consecutive_failures,
                last_success=agg.last_success,
            )
            for method, agg in self._domains.get(domain, {}).items()
            if agg.total_attempts >= min_attempts
        ]
        return sorted(rankings, key=rank_key)

    def get_methods_to_blacklist(
        self,
        domain: str,
        min_attempts: int = BLACKLIST_MIN_ATTEMPTS,
        max_failure_rate: float = BLACKLIST_MAX_FAILURE_RATE,
    ) -> list[str]:
        """Methods failing on this domain both over their lifetime and recently."""
        candidates = []
        for method, agg in self._domains.get(domain, {}).items():
            if agg.total_attempts < min_attempts:
                continue
            recent_failure_rate = 100 - agg.recent_success_rate
            if agg.failure_rate >= max_failure_rate and recent_failure_rate >= max_failure_rate:
                candidates.append(method)
        return candidates

    def get_domain_metrics(self, domain: str) -> dict[str, Any] | None:
        domain_metrics = self._domains.get(domain)
        if domain_metrics is None:
            return None

        total_attempts = sum(agg.total_attempts for agg in domain_metrics.values())
        total_successes = sum(agg.successful_attempts for agg in domain_metrics.values())
        return {
            "domain": domain,
            "total_attempts": total_attempts,
            "total_successes": total_successes,
            "overall_success_rate": total_successes / total_attempts * 100 if total_attempts else 0.0,
            "methods": {method: agg.to_dict() for method, agg in domain_metrics.items()},
            "best_methods": [r.model_dump(mode="json") for r in self.get_best_methods_for_domain(domain)],
        }

    def get_global_metrics(self) -> dict[str, Any]:
        total_attempts = sum(agg.total_attempts for agg in self._global.values())
        total_successes = sum(agg.successful_attempts for agg in self._global.values())
        return {
            "total_attempts": total_attempts,
            "total_successes": total_successes,
            "overall_success_rate": total_successes / total_attempts * 100 if total_attempts else 0.0,
            "methods": {method: agg.to_dict() for method, agg in self._global.items()},
            "total_domains": len(self._domains),
            "recent_attempts_count": len(self._recent),
        }

    def get_trending_data(self, hours: int = 24) -> dict[str, Any]:
        cutoff = datetime.now(UTC) - timedelta(hours=hours)
        window = [a for a in self._recent if a.timestamp > cutoff]

        method_trends: dict[str, dict[str, float]] = {}
        domain_trends: dict[str, dict[str, float]] = {}
        for attempt in window:
            mt = method_trends.setdefault(attempt.method, {"attempts": 0, "successes": 0, "total_time": 0.0})
            mt["attempts"] += 1
            mt["successes"] += int(attempt.success)
            mt["total_time"] += attempt.response_time_ms

            dt = domain_trends.setdefault(attempt.domain, {"attempts": 0, "successes": 0})
            dt["attempts"] += 1
            dt["successes"] += int(attempt.success)

        for trend in method_trends.values():
            trend["success_rate"] = trend["successes"] / trend["attempts"] * 100
            trend["average_response_time"] = trend["total_time"] / trend["attempts"]
        for trend in domain_trends.values():
            trend["success_rate"] = trend["successes"] / trend["attempts"] * 100

        return {
            "time_range": f"{hours} hours",
            "total_attempts": len(window),
            "method_trends": method_trends,
            "domain_trends": domain_trends,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def clear_domain_metrics(self, domain: str) -> None:
        self._domains.pop(domain, None)
        log.info("domain_metrics_cleared", domain=domain)

    def clear_all_metrics(self) -> None:
        self._domains.clear()
        self._global.clear()
        self._recent.clear()
        log.info("all_metrics_cleared")

    def export_metrics(self) -> dict[str, Any]:
        """JSON-serialisable snapshot for backup or offline analysis."""
        return {
            "domain_metrics": {
                domain: {method: agg.to_dict() for method, agg in methods.items()}
                for domain, methods in self._domains.items()
            },
            "global_metrics": {method: agg.to_dict() for method, agg in self._global.items()},
            "recent_attempts": [a.model_dump(mode="json") for a in self._recent],
            "export_timestamp": datetime.now(UTC).isoformat(),
        }

    def import_metrics(self, data: dict[str, Any]) -> None:
        if "domain_metrics" in data:
            self._domains = {
                domain: {method: MetricsAggregate.from_dict(agg) for method, agg in methods.items()}
                for domain, methods in data["domain_metrics"].items()
            }
        if "global_metrics" in data:
            self._global = {method: MetricsAggregate.from_dict(agg) for method, agg in data["global_metrics"].items()}
        if "recent_attempts" in data:
            self._recent.clear()
            self._recent.extend(AttemptRecord.model_validate(a) for a in data["recent_attempts"])

        log.info(
            "metrics_imported",
            domains=len(self._domains),
            methods=len(self._global),
            recent_attempts=len(self._recent),
        )
