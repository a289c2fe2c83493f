import threading
from collections import OrderedDict
from collections.abc import Iterable

import structlog

from paywallflower.config.settings import DomainStrategySeed
from paywallflower.models.bypass import utcnow
from paywallflower.models.strategy import DomainStrategy

log = structlog.get_logger()


class DomainStrategyStore:
    """Per-domain learned strategies, bounded by evicting the least recently updated.

    Seeded strategies come from configuration and are never evicted.
    """

    def __init__(self, max_entries: int = 5000):
        self.max_entries = max_entries
        self._strategies: OrderedDict[str, DomainStrategy] = OrderedDict()
        self._lock = threading.Lock()

    def seed(self, seeds: dict[str, DomainStrategySeed]) -> None:
        with self._lock:
            for domain, seed in seeds.items():
                self._strategies[domain] = DomainStrategy(
                    domain=domain,
                    preferred_methods=list(seed.preferred_methods),
                    blacklisted_methods=set(seed.blacklisted_methods),
                    seeded=True,
                )
        if seeds:
            log.info("domain_strategies_seeded", count=len(seeds))

    def get(self, domain: str) -> DomainStrategy | None:
        with self._lock:
            return self._strategies.get(domain)

    def update(
        self,
        domain: str,
        method: str,
        success: bool,
        blacklist_candidates: Iterable[str] = (),
    ) -> DomainStrategy:
        """Apply one outcome to the domain's strategy, creating it on first touch."""
        with self._lock:
            strategy = self._strategies.get(domain)
            if strategy is None:
                self._evict(self.max_entries - 1)
                strategy = DomainStrategy(domain=domain)
                self._strategies[domain] = strategy
            self._strategies.move_to_end(domain)

            strategy.total_attempts += 1
            if success:
                strategy.successful_attempts += 1
                strategy.prefer(method)
            strategy.last_updated = utcnow()

            for candidate in blacklist_candidates:
                if strategy.blacklist(candidate):
                    log.info("method_blacklisted", domain=domain, method=candidate)

            return strategy

    def _evict(self, keep: int) -> None:
        while len(self._strategies) > keep:
            victim = next((d for d, s in self._strategies.items() if not s.seeded), None)
            if victim is None:
                return
            del self._strategies[victim]
            log.debug("domain_strategy_evicted", domain=victim)

    def clear(self) -> None:
        with self._lock:
            self._strategies.clear()

    def snapshot(self) -> dict[str, DomainStrategy]:
        with self._lock:
            return {d: s.model_copy(deep=True) for d, s in self._strategies.items()}

    def __len__(self) -> int:
        return len(self._strategies)

    def __contains__(self, domain: object) -> bool:
        return domain in self._strategies
