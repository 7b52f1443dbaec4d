"""Tests for URL classification and strategy construction."""

from __future__ import annotations

import pytest

from docharvest.dispatcher import (
    StrategyType,
    create_strategy,
    detect_strategy,
    is_valid_strategy,
    validate_url,
)
from docharvest.errors import InvalidURLError, NoStrategyError
from docharvest.strategies import (
    CrawlerStrategy,
    LinkListStrategy,
    PackageRegistryStrategy,
    SitemapStrategy,
    SourceArchiveStrategy,
    WikiStrategy,
)


CASES = [
    ("https://github.com/owner/repo/wiki", StrategyType.WIKI),
    ("https://github.com/owner/repo/wiki/Getting-Started", StrategyType.WIKI),
    ("https://github.com/owner/repo.wiki.git", StrategyType.WIKI),
    ("https://github.com/owner/repo", StrategyType.SOURCE_ARCHIVE),
    ("https://github.com/wikipedia/tools", StrategyType.SOURCE_ARCHIVE),
    ("https://gitlab.com/group/project/-/tree/main/docs", StrategyType.SOURCE_ARCHIVE),
    ("git@github.com:owner/repo.git", StrategyType.SOURCE_ARCHIVE),
    ("https://example.com/project.git", StrategyType.SOURCE_ARCHIVE),
    ("https://example.com/sitemap.xml", StrategyType.SITEMAP),
    ("https://example.com/SITEMAP_index.XML", StrategyType.SITEMAP),
    ("https://example.com/sitemaps/sitemap-1.xml.gz", StrategyType.SITEMAP),
    ("https://example.com/llms.txt", StrategyType.LINK_LIST),
    ("https://example.com/docs/LLMS.TXT", StrategyType.LINK_LIST),
    ("https://pkg.go.dev/net/http", StrategyType.PACKAGE_REGISTRY),
    ("https://docs.example.com/", StrategyType.CRAWLER),
    ("https://github.com/owner/repo/blob/main/README.md", StrategyType.CRAWLER),
    ("https://docs.github.com/en/actions", StrategyType.CRAWLER),
    ("https://example.com/feed.xml", StrategyType.CRAWLER),
]


class TestDetectStrategy:
    @pytest.mark.parametrize("url,expected", CASES)
    def test_classification(self, url, expected):
        assert detect_strategy(url) is expected

    @pytest.mark.parametrize("url", ["", "   ", "ftp://example.com/file", "not a url", "https://"])
    def test_unknown(self, url):
        assert detect_strategy(url) is StrategyType.UNKNOWN

    def test_values_are_cli_names(self):
        assert detect_strategy("https://example.com/llms.txt").value == "llms"
        assert detect_strategy("https://github.com/o/r").value == "git"


class TestCreateStrategy:
    @pytest.mark.parametrize(
        "strategy_type,cls",
        [
            (StrategyType.CRAWLER, CrawlerStrategy),
            (StrategyType.SOURCE_ARCHIVE, SourceArchiveStrategy),
            (StrategyType.SITEMAP, SitemapStrategy),
            (StrategyType.LINK_LIST, LinkListStrategy),
            (StrategyType.PACKAGE_REGISTRY, PackageRegistryStrategy),
            (StrategyType.WIKI, WikiStrategy),
        ],
    )
    def test_builds_each_type(self, make_deps, strategy_type, cls):
        strategy = create_strategy(strategy_type, make_deps())
        assert isinstance(strategy, cls)
        assert strategy.name == strategy_type.value

    def test_accepts_names(self, make_deps):
        assert isinstance(create_strategy("sitemap", make_deps()), SitemapStrategy)

    @pytest.mark.parametrize("bad", [StrategyType.UNKNOWN, "unknown", "ftp", ""])
    def test_unknown_type_is_an_error(self, make_deps, bad):
        with pytest.raises(NoStrategyError):
            create_strategy(bad, make_deps())

    @pytest.mark.parametrize("url,expected", CASES)
    def test_can_handle_agrees_with_classifier(self, make_deps, url, expected):
        assert create_strategy(expected, make_deps()).can_handle(url)

    def test_is_valid_strategy(self):
        assert is_valid_strategy("pkggo")
        assert not is_valid_strategy("unknown")
        assert not is_valid_strategy("svn")


class TestValidateUrl:
    def test_strips_whitespace(self):
        assert validate_url("  https://x.com/docs  ") == "https://x.com/docs"

    @pytest.mark.parametrize("url", ["git@github.com:o/r.git", "https://github.com/o/r.wiki.git"])
    def test_repository_forms_accepted(self, url):
        assert validate_url(url) == url

    @pytest.mark.parametrize("url", ["", "   ", "ftp://x.com", "x.com/docs", "https://"])
    def test_rejected(self, url):
        with pytest.raises(InvalidURLError):
            validate_url(url)
