import time
from urllib.parse import urlparse

import httpx
import structlog

from paywallflower.methods.http import SharedClient
from paywallflower.models.bypass import AttemptOptions, AttemptResult, HealthCheckResult, MethodConfig

log = structlog.get_logger()

ARCHIVE_TODAY_URL = "https://archive.today"
_ARCHIVE_HOSTS = ("archive.today", "archive.ph", "archive.is", "archive.li")
_PROBE_URL = "https://httpbin.org/html"


def is_archive_snapshot(url: str) -> bool:
    """True for a snapshot page, not a search or submit page."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").removeprefix("www.")
    if host not in _ARCHIVE_HOSTS:
        return False
    return not parsed.path.startswith(("/newest", "/submit", "/search")) and parsed.path not in ("", "/")


class ArchiveTodayStrategy:
    """Looks up (or requests) an archive.today snapshot of the article."""

    name = "archive_today"
    default_config = MethodConfig(
        name="archive_today",
        priority=9,
        timeout_ms=10000,
        test_url="https://www.example.com",
    )

    def __init__(self, client: httpx.AsyncClient | None = None, user_agent: str | None = None):
        self.http = SharedClient(client, timeout_ms=self.default_config.timeout_ms, user_agent=user_agent)

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult:
        try:
            newest = await self.http.client.get(f"{ARCHIVE_TODAY_URL}/newest/{url}", headers=options.headers)
            if newest.status_code == 200 and is_archive_snapshot(str(newest.url)):
                archive_url = str(newest.url)
                log.debug("archive_today_found", url=url, archive_url=archive_url)
                return AttemptResult.ok(
                    self.name,
                    archive_url,
                    metadata={"archive_url": archive_url, "kind": "archive_redirect", "created": False},
                )

            created = await self.http.client.post(
                f"{ARCHIVE_TODAY_URL}/submit/",
                data={"url": url, "anyway": "1"},
                headers=options.headers,
            )
            if created.status_code == 200 and is_archive_snapshot(str(created.url)):
                archive_url = str(created.url)
                log.debug("archive_today_created", url=url, archive_url=archive_url)
                return AttemptResult.ok(
                    self.name,
                    archive_url,
                    metadata={"archive_url": archive_url, "kind": "archive_redirect", "created": True},
                )
        except httpx.HTTPError as e:
            return AttemptResult.fail(self.name, f"Archive.today error: {e}")

        return AttemptResult.fail(self.name, "No archive found on Archive.today")

    async def probe(self) -> HealthCheckResult | None:
        start = time.monotonic()
        try:
            response = await self.http.client.get(f"{ARCHIVE_TODAY_URL}/newest/{_PROBE_URL}", timeout=8.0)
        except httpx.HTTPError as e:
            return HealthCheckResult(
                healthy=False,
                error=str(e),
                message=f"Archive.today health check failed: {e}",
            )

        healthy = response.status_code == 200
        return HealthCheckResult(
            healthy=healthy,
            response_time_ms=int((time.monotonic() - start) * 1000),
            message=(
                "Archive.today is responding normally"
                if healthy
                else f"Archive.today returned status {response.status_code}"
            ),
        )

    async def close(self) -> None:
        await self.http.close()
