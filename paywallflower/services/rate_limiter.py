import threading
import time


class UrlRateLimiter:
    """Per-URL attempt limiting in fixed minute buckets."""

    def __init__(self, max_requests: int = 3, window_s: int = 60, retention_windows: int = 5):
        self.max_requests = max_requests
        self.window_s = window_s
        self.retention_windows = retention_windows
        self._counts: dict[tuple[str, int], int] = {}
        self._lock = threading.Lock()

    def check(self, url: str, now: float | None = None) -> bool:
        """Count one request for url. Returns False, without counting, when over the limit."""
        bucket = int((time.time() if now is None else now) // self.window_s)
        key = (url, bucket)

        with self._lock:
            self._purge(bucket)
            count = self._counts.get(key, 0)
            if count >= self.max_requests:
                return False
            self._counts[key] = count + 1
            return True

    def _purge(self, bucket: int) -> None:
        stale = [k for k in self._counts if bucket - k[1] > self.retention_windows]
        for k in stale:
            del self._counts[k]

    def reset(self, url: str | None = None) -> None:
        with self._lock:
            if url is None:
                self._counts.clear()
            else:
                for k in [k for k in self._counts if k[0] == url]:
                    del self._counts[k]

    def __len__(self) -> int:
        return len(self._counts)
