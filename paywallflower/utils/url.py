import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import structlog

from paywallflower.config.constants import TRACKING_PARAMS

log = structlog.get_logger()

_URL_PATTERN = re.compile(
    r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)"
)


def is_valid_url(url: str) -> bool:
    """Check that a URL is absolute http(s) with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def normalize_url(url: str) -> str:
    """Normalize a URL: drop tracking params and fragment, lowercase scheme/host.

    Unparseable input is returned unchanged.
    """
    if not is_valid_url(url):
        log.warning("normalize_url_failed", url=url)
        return url

    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in TRACKING_PARAMS]
    normalized = parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=parsed.netloc.lower(),
        query=urlencode(query),
        fragment="",
    )
    if not normalized.path:
        normalized = normalized._replace(path="/")

    return urlunparse(normalized)


def extract_domain(url: str) -> str | None:
    """Extract the host from a URL without the www. prefix. None if invalid."""
    if not is_valid_url(url):
        log.warning("extract_domain_failed", url=url)
        return None

    domain = (urlparse(url).hostname or "").lower()
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


def extract_urls(content: str) -> list[str]:
    """Find all http(s) URLs in a block of text."""
    urls = _URL_PATTERN.findall(content or "")
    log.debug("extracted_urls", count=len(urls))
    return urls
