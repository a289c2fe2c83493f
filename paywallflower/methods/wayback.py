import time

import httpx
import structlog

from paywallflower.methods.http import SharedClient
from paywallflower.models.bypass import AttemptOptions, AttemptResult, HealthCheckResult, MethodConfig

log = structlog.get_logger()

WAYBACK_API_URL = "https://archive.org/wayback/available"
_PROBE_URL = "https://www.wikipedia.org"


class WaybackStrategy:
    """Returns the closest Wayback Machine snapshot of the article."""

    name = "wayback_machine"
    # Low priority: archive.org is often slow or missing recent articles
    default_config = MethodConfig(
        name="wayback_machine",
        priority=4,
        timeout_ms=15000,
        test_url="https://www.example.com",
    )

    def __init__(self, client: httpx.AsyncClient | None = None, user_agent: str | None = None):
        self.http = SharedClient(client, timeout_ms=self.default_config.timeout_ms, user_agent=user_agent)

    async def run(self, url: str, options: AttemptOptions) -> AttemptResult:
        try:
            response = await self.http.client.get(WAYBACK_API_URL, params={"url": url}, headers=options.headers)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return AttemptResult.fail(self.name, f"Wayback Machine error: {e}")

        closest = ((data or {}).get("archived_snapshots") or {}).get("closest") or {}
        snapshot_url = closest.get("url")
        if not closest.get("available") or not snapshot_url:
            return AttemptResult.fail(self.name, "No archive found on Wayback Machine")

        if "archive.org" not in snapshot_url:
            return AttemptResult.fail(
                self.name,
                "Invalid Wayback Machine URL returned",
                metadata={"returned_url": snapshot_url},
            )

        log.debug("wayback_snapshot_found", url=url, snapshot=snapshot_url, timestamp=closest.get("timestamp"))
        return AttemptResult.ok(
            self.name,
            snapshot_url,
            metadata={
                "archive_url": snapshot_url,
                "snapshot_timestamp": closest.get("timestamp"),
                "kind": "archive_redirect",
            },
        )

    async def probe(self) -> HealthCheckResult | None:
        start = time.monotonic()
        try:
            response = await self.http.client.get(WAYBACK_API_URL, params={"url": _PROBE_URL}, timeout=10.0)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return HealthCheckResult(
                healthy=False,
                error=str(e),
                message=f"Wayback Machine health check failed: {e}",
            )

        healthy = response.status_code == 200 and isinstance(data, dict)
        if not healthy:
            message = f"Wayback Machine API returned unexpected response: {response.status_code}"
        elif not data.get("archived_snapshots"):
            message = "Wayback Machine API is responding but may have limited functionality"
        else:
            message = "Wayback Machine API is responding normally"

        return HealthCheckResult(
            healthy=healthy,
            response_time_ms=int((time.monotonic() - start) * 1000),
            message=message,
        )

    async def close(self) -> None:
        await self.http.close()
