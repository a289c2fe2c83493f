HEALTH_FAILURE_THRESHOLD = 3
RESPONSE_TIME_EMA_ALPHA = 0.1

RECENT_WINDOW_SIZE = 20
MAX_RECENT_ATTEMPTS = 1000

BEST_METHODS_MIN_ATTEMPTS = 3
PREFERRED_RECENT_SUCCESS_RATE = 50.0
BLACKLIST_MIN_ATTEMPTS = 10
BLACKLIST_MAX_FAILURE_RATE = 90.0

# Three-tier ranking thresholds (percentage points)
RECENT_RATE_SIGNIFICANT_GAP = 10.0
OVERALL_RATE_SIGNIFICANT_GAP = 5.0

UNKNOWN_DOMAIN = "unknown"

PAYWALL_DOMAINS: list[str] = [
    "nytimes.com",
    "wsj.com",
    "washingtonpost.com",
    "ft.com",
    "theatlantic.com",
    "economist.com",
    "bloomberg.com",
    "reuters.com",
    "newyorker.com",
    "wired.com",
    "medium.com",
    "substack.com",
]

# Domains that may trip the heuristics but never carry a paywall
WHITELISTED_DOMAINS: list[str] = [
    "x.com",
    "twitter.com",
    "facebook.com",
    "instagram.com",
    "linkedin.com",
    "reddit.com",
    "youtube.com",
    "tiktok.com",
    "pinterest.com",
    "snapchat.com",
    "discord.com",
    "telegram.org",
    "whatsapp.com",
    "github.com",
    "stackoverflow.com",
    "wikipedia.org",
    "archive.org",
    "archive.today",
    "archive.ph",
]

PAYWALL_INDICATORS: list[str] = [
    "subscribe",
    "paywall",
    "premium",
    "subscriber",
    "membership",
    "sign up",
    "register to read",
    "continue reading",
]

TRACKING_PARAMS: set[str] = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "fbclid",
    "gclid",
    "ref",
    "source",
    "campaign",
}
