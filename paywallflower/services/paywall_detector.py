import threading
from collections.abc import Iterable

import httpx
import structlog

from paywallflower.config.constants import PAYWALL_DOMAINS, PAYWALL_INDICATORS, WHITELISTED_DOMAINS
from paywallflower.config.settings import Settings
from paywallflower.methods.http import SharedClient
from paywallflower.utils.url import extract_domain

log = structlog.get_logger()


class DomainStore:
    """A mutable set of domains with subdomain-aware matching."""

    def __init__(self, domains: Iterable[str] = ()):
        self._domains = {self._clean(d) for d in domains}
        self._lock = threading.Lock()

    @staticmethod
    def _clean(domain: str) -> str:
        return domain.strip().lower().removeprefix("www.")

    def add(self, domain: str) -> None:
        with self._lock:
            self._domains.add(self._clean(domain))

    def remove(self, domain: str) -> None:
        with self._lock:
            self._domains.discard(self._clean(domain))

    def contains(self, domain: str) -> bool:
        return self._clean(domain) in self._domains

    def matches(self, domain: str) -> bool:
        """True if domain or any parent domain is in the store."""
        parts = self._clean(domain).split(".")
        return any(".".join(parts[i:]) in self._domains for i in range(len(parts) - 1))

    def to_list(self) -> list[str]:
        return sorted(self._domains)

    def __len__(self) -> int:
        return len(self._domains)


class PaywallDetector:
    """Decides whether a URL is worth running bypass methods against."""

    def __init__(
        self,
        whitelist: DomainStore | None = None,
        paywall_domains: DomainStore | None = None,
        indicators: list[str] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_ms: int = 5000,
    ):
        self.whitelist = whitelist if whitelist is not None else DomainStore(WHITELISTED_DOMAINS)
        self.paywall_domains = paywall_domains if paywall_domains is not None else DomainStore(PAYWALL_DOMAINS)
        self.indicators = [i.lower() for i in (indicators or PAYWALL_INDICATORS)]
        self.http = SharedClient(client, timeout_ms=timeout_ms)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaywallDetector":
        return cls(
            whitelist=DomainStore([*WHITELISTED_DOMAINS, *settings.extra_whitelisted_domains]),
            paywall_domains=DomainStore([*PAYWALL_DOMAINS, *settings.extra_paywall_domains]),
            timeout_ms=settings.paywall_detection_timeout_ms,
        )

    def is_whitelisted(self, url: str) -> bool:
        domain = extract_domain(url)
        return bool(domain) and self.whitelist.matches(domain)

    def is_known_paywall_domain(self, url: str) -> bool:
        domain = extract_domain(url)
        if not domain:
            return False
        known = self.paywall_domains.matches(domain)
        log.debug("known_paywall_domain_checked", domain=domain, known=known)
        return known

    async def detect_paywall_heuristic(self, url: str) -> bool:
        try:
            response = await self.http.client.get(url)
        except httpx.HTTPError as e:
            log.warning("paywall_heuristic_failed", url=url, error=str(e))
            return False

        content = response.text.lower()
        found = [i for i in self.indicators if i in content]
        if not found:
            return False

        log.info("paywall_detected_heuristically", url=url, indicators=found)
        domain = extract_domain(url)
        if domain:
            self.add_paywall_domain(domain)
        return True

    async def is_paywalled(self, url: str) -> bool:
        if self.is_whitelisted(url):
            return False
        if self.is_known_paywall_domain(url):
            return True
        return await self.detect_paywall_heuristic(url)

    def add_paywall_domain(self, domain: str) -> None:
        self.paywall_domains.add(domain)
        log.info("paywall_domain_added", domain=domain)

    def get_known_domains(self) -> list[str]:
        return self.paywall_domains.to_list()

    async def close(self) -> None:
        await self.http.close()
