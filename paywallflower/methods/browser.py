import asyncio

import structlog
from scrapling.fetchers import StealthyFetcher

from paywallflower.models.bypass import AttemptOptions, AttemptResult, HealthCheckResult, MethodConfig
from paywallflower.services.content_extractor import extract_article, format_article, validate_article_html

log = structlog.get_logger()

_CAPTCHA_SIGNALS = [
    "captcha",
    "challenge-form",
    "cf-browser-verification",
    "recaptcha",
    "hcaptcha",
    "turnstile",
]


class BrowserStrategy:
    """Renders the page in a stealth headless browser and extracts the article directly."""

    name = "browser_extraction"
    # Resource intensive, so tried last
    default_config = MethodConfig(
        name="browser_extraction",
        priority=3,
        timeout_ms=30000,
        test_url="https://httpbin.org/html",
    )

    def __init__(self) -> None:
        self._fetcher: StealthyFetcher | None = None

    @property
    def fetcher(self) -> StealthyFetcher:
        if self._fetcher is None:
            self._fetcher = StealthyFetcher(auto_match=False)
        return self._fetcher

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult:
        response = await asyncio.to_thread(
            self.fetcher.fetch,
            url,
            headless=True,
            network_idle=True,
            timeout=self.default_config.timeout_ms,
        )
        html = response.html_content or ""
        status_code = response.status

        if status_code in (403, 429, 503):
            return AttemptResult.fail(self.name, f"Browser blocked with status {status_code}")
        html_lower = html.lower()
        if any(signal in html_lower for signal in _CAPTCHA_SIGNALS):
            return AttemptResult.fail(self.name, "Captcha challenge detected")

        validation = validate_article_html(html)
        if not validation.is_valid:
            return AttemptResult.fail(self.name, validation.reason, metadata={"content_length": len(html)})

        article = extract_article(html, url)
        log.debug("browser_extracted", url=url, content_length=len(article.markdown))
        return AttemptResult.ok(
            self.name,
            format_article(article, url, "browser extraction"),
            extracted_content=article.markdown,
            metadata={"kind": "browser_content", "title": article.title, "content_length": len(article.markdown)},
        )

    async def probe(self) -> HealthCheckResult | None:
        # Default check: render test_url through run()
        return None

    async def close(self) -> None:
        self._fetcher = None
