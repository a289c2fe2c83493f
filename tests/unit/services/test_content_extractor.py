from paywallflower.services.content_extractor import extract_article, format_article, validate_article_html

BODY = "<p>The central bank held rates steady, citing cooling inflation and a softer labor market.</p>" * 8

ARTICLE_HTML = f"""
<html>
<head>
  <title>12ft.io - Rates Held Steady</title>
  <meta name="description" content="Central bank decision">
  <meta name="author" content="Jane Reporter">
  <link rel="canonical" href="https://www.ft.com/content/rates">
</head>
<body>
  <header>Site header</header>
  <nav>Home | World | Markets</nav>
  <main>
    <h1>Rates Held Steady</h1>
    {BODY}
    <aside>Related stories</aside>
  </main>
  <footer>Copyright</footer>
</body>
</html>
"""


class TestValidateArticleHtml:
    def test_valid_article(self):
        validation = validate_article_html(ARTICLE_HTML)

        assert validation.is_valid is True

    def test_too_short(self):
        validation = validate_article_html("<p>Short</p>")

        assert validation.is_valid is False
        assert validation.reason == "Content too short"

    def test_no_article_elements(self):
        html = "<div>" + "x" * 600 + "</div>"

        validation = validate_article_html(html)

        assert validation.reason == "No article content detected"

    def test_paywall_leftovers(self):
        html = ARTICLE_HTML.replace("</main>", "<p>Subscription required to read more.</p></main>")

        validation = validate_article_html(html)

        assert validation.is_valid is False
        assert validation.reason == "Paywall not successfully bypassed"


class TestExtractArticle:
    def test_main_content_without_chrome(self):
        article = extract_article(ARTICLE_HTML, "https://www.ft.com/content/rates")

        assert "# Rates Held Steady" in article.markdown
        assert "central bank held rates steady" in article.markdown
        assert "Related stories" not in article.markdown
        assert "Home | World" not in article.markdown
        assert "Copyright" not in article.markdown

    def test_metadata(self):
        article = extract_article(ARTICLE_HTML, "https://www.ft.com/content/rates")

        assert article.metadata["author"] == "Jane Reporter"
        assert article.metadata["description"] == "Central bank decision"
        assert article.metadata["canonical"] == "https://www.ft.com/content/rates"

    def test_strips_proxy_title_prefix(self):
        article = extract_article(ARTICLE_HTML, "https://www.ft.com/content/rates", strip_title_prefix="12ft.io")

        assert article.title == "Rates Held Steady"

    def test_falls_back_to_body(self):
        html = "<html><body><nav>menu</nav><div>Plain page text</div></body></html>"

        article = extract_article(html, "https://example.com")

        assert article.title == "Article"
        assert "Plain page text" in article.markdown
        assert "menu" not in article.markdown

    def test_format_article(self):
        article = extract_article(ARTICLE_HTML, "https://www.ft.com/content/rates", strip_title_prefix="12ft.io")

        text = format_article(article, "https://www.ft.com/content/rates", "12ft.io")

        assert text.startswith("**Rates Held Steady**")
        assert text.endswith("*Retrieved via 12ft.io*")
        assert "*Original URL: https://www.ft.com/content/rates*" in text
