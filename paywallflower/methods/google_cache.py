import re
import time
from urllib.parse import quote

import httpx
import structlog

from paywallflower.methods.http import SharedClient
from paywallflower.models.bypass import AttemptOptions, AttemptResult, HealthCheckResult, MethodConfig
from paywallflower.services.content_extractor import extract_article, format_article, validate_article_html
from paywallflower.utils.errors import StrategyError

log = structlog.get_logger()

GOOGLE_CACHE_URL = "https://webcache.googleusercontent.com/search?q=cache:"
_PROBE_URL = "https://www.wikipedia.org"

_NOT_CACHED = [
    re.compile(p, re.I)
    for p in (
        r"did not match any documents",
        r"is not available in the cache",
        r"404\. that.s an error",
        r"the requested url .* was not found",
    )
]
_BLOCKED = [
    re.compile(p, re.I)
    for p in (
        r"unusual traffic",
        r"our systems have detected",
        r"captcha",
    )
]


class GoogleCacheStrategy:
    """Reads the article from Google's cached copy of the page."""

    name = "google_cache"
    default_config = MethodConfig(name="google_cache", priority=6, timeout_ms=15000)

    def __init__(self, client: httpx.AsyncClient | None = None, user_agent: str | None = None):
        self.http = SharedClient(client, timeout_ms=self.default_config.timeout_ms, user_agent=user_agent)

    def cache_url(self, url: str) -> str:
        return f"{GOOGLE_CACHE_URL}{quote(url, safe='')}"

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult:
        cache_url = self.cache_url(url)
        try:
            response = await self.http.client.get(cache_url, headers=options.headers)
        except httpx.HTTPError as e:
            return AttemptResult.fail(self.name, f"Google Cache error: {e}")

        if response.status_code == 404:
            return AttemptResult.fail(self.name, "Page not found in Google Cache", metadata={"status": 404})
        if response.status_code != 200:
            raise StrategyError(
                f"Google Cache returned status {response.status_code}",
                status_code=response.status_code,
                method=self.name,
                url=url,
            )

        html = response.text
        if any(p.search(html) for p in _NOT_CACHED):
            return AttemptResult.fail(self.name, "Page not found in Google Cache")
        if any(p.search(html) for p in _BLOCKED):
            return AttemptResult.fail(self.name, "Google Cache blocked the request")

        validation = validate_article_html(html)
        if not validation.is_valid:
            return AttemptResult.fail(self.name, validation.reason)

        article = extract_article(html, url)
        log.debug("google_cache_extracted", url=url, content_length=len(article.markdown))
        return AttemptResult.ok(
            self.name,
            cache_url,
            extracted_content=format_article(article, url, "Google Cache"),
            metadata={"kind": "google_cache_redirect", "title": article.title, "content_length": len(article.markdown)},
        )

    async def probe(self) -> HealthCheckResult | None:
        start = time.monotonic()
        try:
            response = await self.http.client.get(self.cache_url(_PROBE_URL), timeout=10.0)
        except httpx.HTTPError as e:
            return HealthCheckResult(healthy=False, error=str(e), message=f"Google Cache health check failed: {e}")

        healthy = response.status_code == 200
        return HealthCheckResult(
            healthy=healthy,
            response_time_ms=int((time.monotonic() - start) * 1000),
            message=(
                "Google Cache is responding normally"
                if healthy
                else f"Google Cache returned status {response.status_code}"
            ),
        )

    async def close(self) -> None:
        await self.http.close()
