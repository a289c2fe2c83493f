import re
import time
from urllib.parse import quote

import httpx
import structlog
from selectolax.parser import HTMLParser

from paywallflower.methods.http import SharedClient
from paywallflower.models.bypass import AttemptOptions, AttemptResult, HealthCheckResult, MethodConfig
from paywallflower.services.content_extractor import extract_article, format_article, validate_article_html
from paywallflower.utils.errors import StrategyError

log = structlog.get_logger()

TWELVE_FT_URL = "https://12ft.io/"
_PROBE_URL = "https://httpbin.org/html"

_ERROR_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"12ft has been disabled for this site",
        r"this site is not supported",
        r"paywall not detected",
        r"unable to parse",
        r"blocked by the site",
        r"rate limit exceeded",
        r"service temporarily unavailable",
        r"error 40[34]",
        r"error 429",
        r"cloudflare",
    )
]


def _error_message(html: str) -> str:
    parser = HTMLParser(html)
    node = parser.css_first("div.error, .error")
    if node and node.text(strip=True):
        return node.text(strip=True)
    title = parser.css_first("title")
    if title and "error" in title.text().lower():
        return title.text().strip()
    return "12ft.io reported an error processing this URL"


class TwelveFtStrategy:
    """Fetches the article through the 12ft.io reader proxy."""

    name = "12ft_io"
    default_config = MethodConfig(name="12ft_io", priority=8, timeout_ms=15000)

    def __init__(self, client: httpx.AsyncClient | None = None, user_agent: str | None = None):
        self.http = SharedClient(client, timeout_ms=self.default_config.timeout_ms, user_agent=user_agent)

    def bypass_url(self, url: str) -> str:
        return f"{TWELVE_FT_URL}{quote(url, safe='')}"

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult:
        bypass_url = self.bypass_url(url)
        try:
            response = await self.http.client.get(bypass_url, headers=options.headers)
        except httpx.HTTPError as e:
            return AttemptResult.fail(self.name, f"12ft.io error: {e}")

        if response.status_code != 200:
            raise StrategyError(
                f"12ft.io returned status {response.status_code}",
                status_code=response.status_code,
                method=self.name,
                url=url,
            )

        html = response.text
        if any(p.search(html) for p in _ERROR_PATTERNS):
            return AttemptResult.fail(self.name, _error_message(html))

        validation = validate_article_html(html)
        if not validation.is_valid:
            return AttemptResult.fail(self.name, validation.reason)

        article = extract_article(html, url, strip_title_prefix="12ft.io")
        log.debug("twelve_ft_extracted", url=url, content_length=len(article.markdown))
        return AttemptResult.ok(
            self.name,
            bypass_url,
            extracted_content=format_article(article, url, "12ft.io"),
            metadata={"kind": "12ft_io_redirect", "title": article.title, "content_length": len(article.markdown)},
        )

    async def probe(self) -> HealthCheckResult | None:
        start = time.monotonic()
        try:
            response = await self.http.client.get(self.bypass_url(_PROBE_URL), timeout=10.0)
        except httpx.HTTPError as e:
            return HealthCheckResult(healthy=False, error=str(e), message=f"12ft.io health check failed: {e}")

        healthy = response.status_code == 200 and len(response.text) > 100
        return HealthCheckResult(
            healthy=healthy,
            response_time_ms=int((time.monotonic() - start) * 1000),
            message="12ft.io is responding normally" if healthy else "12ft.io response seems degraded",
        )

    async def close(self) -> None:
        await self.http.close()
