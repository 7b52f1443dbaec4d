"""Strategy package exports."""

from .base import Dependencies, Options, Strategy, filter_urls
from .crawler import CrawlerStrategy
from .git import SourceArchiveStrategy, is_source_repo_url, parse_repo_url
from .llms import LinkListStrategy, is_link_list_url, parse_link_list
from .registry import PackageRegistryStrategy, is_registry_url
from .sitemap import SitemapStrategy, discover_sitemap, is_sitemap_url, parse_sitemap
from .wiki import WikiStrategy, is_wiki_url, parse_wiki_url

__all__ = [
    "CrawlerStrategy",
    "Dependencies",
    "LinkListStrategy",
    "Options",
    "PackageRegistryStrategy",
    "SitemapStrategy",
    "SourceArchiveStrategy",
    "Strategy",
    "WikiStrategy",
    "discover_sitemap",
    "filter_urls",
    "is_link_list_url",
    "is_registry_url",
    "is_sitemap_url",
    "is_source_repo_url",
    "is_wiki_url",
    "parse_link_list",
    "parse_repo_url",
    "parse_sitemap",
    "parse_wiki_url",
]
