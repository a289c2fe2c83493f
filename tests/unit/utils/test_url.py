import pytest

from paywallflower.utils.url import extract_domain, extract_urls, is_valid_url, normalize_url


class TestIsValidUrl:
    @pytest.mark.parametrize("url", ["https://www.nytimes.com/a", "http://example.com"])
    def test_valid(self, url):
        assert is_valid_url(url) is True

    @pytest.mark.parametrize("url", ["", "not a url", "ftp://example.com/file", "https://", "/relative/path"])
    def test_invalid(self, url):
        assert is_valid_url(url) is False


class TestNormalizeUrl:
    def test_strips_tracking_params_and_fragment(self):
        url = "HTTPS://WWW.NYTimes.com/2024/story.html?utm_source=tw&id=7&fbclid=abc#comments"

        assert normalize_url(url) == "https://www.nytimes.com/2024/story.html?id=7"

    def test_empty_path_becomes_root(self):
        assert normalize_url("https://www.wsj.com") == "https://www.wsj.com/"

    def test_path_case_preserved(self):
        assert normalize_url("https://ft.com/Content/ABC") == "https://ft.com/Content/ABC"

    def test_invalid_returned_unchanged(self):
        assert normalize_url("not a url") == "not a url"


class TestExtractDomain:
    def test_strips_www(self):
        assert extract_domain("https://www.nytimes.com/a") == "nytimes.com"

    def test_keeps_other_subdomains(self):
        assert extract_domain("https://cooking.nytimes.com/recipes") == "cooking.nytimes.com"

    def test_lowercases_and_drops_port(self):
        assert extract_domain("https://WWW.FT.COM:8443/a") == "ft.com"

    def test_invalid(self):
        assert extract_domain("not a url") is None


def test_extract_urls():
    text = "Read https://www.nytimes.com/a.html and http://wsj.com/b?x=1 but not ftp://files.example"

    assert extract_urls(text) == ["https://www.nytimes.com/a.html", "http://wsj.com/b?x=1"]
