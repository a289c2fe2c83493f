import re
from typing import Any

from markdownify import markdownify as md
from pydantic import BaseModel
from selectolax.parser import HTMLParser, Node

_MAIN_SELECTORS = [
    "main",
    "article",
    "[role='main']",
    "#content",
    ".content",
    ".post-content",
    ".entry-content",
    ".article-body",
    ".main-content",
    "#main-content",
]
_NOISE = "nav, footer, header, aside, .sidebar, .ads, script, style, noscript, form"

# Paywall copy that survives when a bypass didn't actually work
_PAYWALL_LEFTOVERS = [
    re.compile(r"subscribe to continue", re.I),
    re.compile(r"sign up to read", re.I),
    re.compile(r"premium content", re.I),
    re.compile(r"subscription required", re.I),
]

MIN_ARTICLE_CHARS = 500


class ExtractedArticle(BaseModel):
    title: str = ""
    markdown: str = ""
    metadata: dict[str, Any] = {}


class ContentValidation(BaseModel):
    is_valid: bool
    reason: str


def validate_article_html(html: str, min_chars: int = MIN_ARTICLE_CHARS) -> ContentValidation:
    """Decide whether fetched HTML looks like an unlocked article."""
    if len(html) < min_chars:
        return ContentValidation(is_valid=False, reason="Content too short")

    parser = HTMLParser(html)
    if not any(parser.css_first(sel) for sel in ("article", "main", "p", ".content", ".article")):
        return ContentValidation(is_valid=False, reason="No article content detected")

    if any(pattern.search(html) for pattern in _PAYWALL_LEFTOVERS):
        return ContentValidation(is_valid=False, reason="Paywall not successfully bypassed")

    return ContentValidation(is_valid=True, reason="Content appears valid")


def extract_article(html: str, url: str, strip_title_prefix: str | None = None) -> ExtractedArticle:
    """Pull the main article out of a page as Markdown plus OG/meta tags."""
    parser = HTMLParser(html)
    metadata = _extract_metadata(parser, url)

    title = metadata.get("og_title") or metadata.get("title") or "Article"
    if strip_title_prefix:
        title = re.sub(rf"^{re.escape(strip_title_prefix)}\s*-?\s*", "", title, flags=re.I)

    node = _find_main_content(parser)
    markdown = _html_to_markdown(node.html) if node is not None and node.html else ""

    return ExtractedArticle(title=title.strip(), markdown=markdown, metadata=metadata)


def _find_main_content(parser: HTMLParser) -> Node | None:
    for selector in _MAIN_SELECTORS:
        node = parser.css_first(selector)
        if node:
            for noise in node.css(_NOISE):
                noise.decompose()
            return node

    body = parser.body
    if body:
        for noise in body.css(_NOISE):
            noise.decompose()
    return body


def _html_to_markdown(html: str) -> str:
    content = md(
        html,
        heading_style="ATX",
        bullets="-",
        strip=["script", "style", "nav", "footer", "header", "aside"],
    )
    content = re.sub(r"\n{3,}", "\n\n", content)
    return content.strip()


def _extract_metadata(parser: HTMLParser, url: str) -> dict[str, Any]:
    meta = {
        "url": url,
        "title": "",
        "description": "",
        "og_title": "",
        "og_description": "",
        "author": "",
        "canonical": "",
    }

    title_node = parser.css_first("title")
    if title_node:
        meta["title"] = title_node.text().strip()

    for m in parser.css("meta"):
        name = (m.attributes.get("name") or "").lower()
        prop = (m.attributes.get("property") or "").lower()
        content = m.attributes.get("content") or ""

        if name == "description":
            meta["description"] = content
        elif prop == "og:title":
            meta["og_title"] = content
        elif prop == "og:description":
            meta["og_description"] = content
        elif name == "author":
            meta["author"] = content

    link_canonical = parser.css_first("link[rel='canonical']")
    if link_canonical:
        meta["canonical"] = link_canonical.attributes.get("href") or ""

    return meta


def format_article(article: ExtractedArticle, original_url: str, via: str) -> str:
    return f"**{article.title}**\n\n{article.markdown}\n\n*Original URL: {original_url}*\n*Retrieved via {via}*"
