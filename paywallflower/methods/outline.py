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

OUTLINE_URL = "https://outline.com/"
_HEALTH_URL = "https://example.com"

_ERROR_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"unable to parse",
        r"failed to fetch",
        r"article not found",
        r"access denied",
        r"rate limit",
        r"temporarily unavailable",
        r"service error",
        r"not supported",
        r"cloudflare",
        r"captcha",
    )
]

# Markup only present once outline.com has rendered the page
_OUTLINE_MARKERS = re.compile(r"outline\.com|class=[\"'][^\"']*\botl-", re.I)
_TITLE_SUFFIX = re.compile(r"\s*-\s*Outline\s*$", re.I)


def _error_message(html: str) -> str:
    parser = HTMLParser(html)
    node = parser.css_first("div.error, p.error, div.message")
    if node and node.text(strip=True):
        return node.text(strip=True)
    title = parser.css_first("title")
    if title and any(word in title.text().lower() for word in ("error", "failed")):
        return title.text().strip()
    return "Outline.com could not process this URL"


class OutlineStrategy:
    """Fetches the cleaned reader view that outline.com renders for an article."""

    name = "outline_com"
    default_config = MethodConfig(name="outline_com", priority=7, timeout_ms=20000)

    def __init__(self, client: httpx.AsyncClient | None = None, user_agent: str | None = None):
        self.http = SharedClient(client, timeout_ms=self.default_config.timeout_ms, user_agent=user_agent)

    def bypass_url(self, url: str) -> str:
        return f"{OUTLINE_URL}{quote(url, safe='')}"

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult:
        bypass_url = self.bypass_url(url)
        headers = {"Referer": OUTLINE_URL, **options.headers}
        try:
            response = await self.http.client.get(bypass_url, headers=headers)
        except httpx.HTTPError as e:
            return AttemptResult.fail(self.name, f"Outline.com error: {e}")

        if response.status_code == 429:
            return AttemptResult.fail(self.name, "Outline.com rate limit exceeded", metadata={"status": 429})
        if response.status_code != 200:
            raise StrategyError(
                f"Outline.com returned status {response.status_code}",
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
        if not _OUTLINE_MARKERS.search(html):
            return AttemptResult.fail(self.name, "Content not processed by Outline.com")

        article = extract_article(html, url)
        article = article.model_copy(update={"title": _TITLE_SUFFIX.sub("", article.title) or "Article"})
        log.debug("outline_extracted", url=url, content_length=len(article.markdown))
        return AttemptResult.ok(
            self.name,
            bypass_url,
            extracted_content=format_article(article, url, "Outline.com"),
            metadata={"kind": "outline_redirect", "title": article.title, "content_length": len(article.markdown)},
        )

    async def probe(self) -> HealthCheckResult | None:
        start = time.monotonic()
        try:
            response = await self.http.client.get(self.bypass_url(_HEALTH_URL), timeout=10.0)
        except httpx.HTTPError as e:
            return HealthCheckResult(healthy=False, error=str(e), message=f"Outline.com health check failed: {e}")

        healthy = (
            response.status_code == 200
            and len(response.text) > 500
            and not any(p.search(response.text) for p in _ERROR_PATTERNS)
        )
        return HealthCheckResult(
            healthy=healthy,
            response_time_ms=int((time.monotonic() - start) * 1000),
            message="Outline.com is responding normally" if healthy else "Outline.com may be experiencing issues",
        )

    async def close(self) -> None:
        await self.http.close()
