"""Default values shared by config, fetcher, crawler, and CLI."""

from __future__ import annotations


DEFAULT_OUTPUT_DIR = "./docs"
DEFAULT_WORKERS = 5
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_FETCH_TIMEOUT_SECONDS = 90.0
DEFAULT_MAX_DEPTH = 3

DEFAULT_CACHE_ENABLED = True
DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60
DEFAULT_CACHE_DIR = "~/.docharvest/cache"
CACHE_DB_FILENAME = "cache.sqlite3"
STATE_FILENAME = ".docharvest-state.json"
STATE_VERSION = 1

DEFAULT_JS_TIMEOUT_SECONDS = 60.0
DEFAULT_RENDER_JS = False
DEFAULT_AUTO_RENDER_JS = False

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_INTERVAL_SECONDS = 1.0
DEFAULT_MAX_INTERVAL_SECONDS = 30.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36 docharvest/0.1"
)
DEFAULT_HTTP_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,text/markdown;q=0.8,*/*;q=0.7",
    "Accept-Language": "en-US,en;q=0.9",
}

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    r".*\.pdf$",
    r".*/login.*",
    r".*/logout.*",
    r".*/admin.*",
    r".*/sign-in.*",
    r".*/sign-up.*",
)

DEFAULT_LOG_LEVEL = "info"
DEFAULT_CONFIG_PATH = "~/.docharvest/config.yaml"
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
JSON_INDENT = 2

# Cache key namespace for fetched pages.
CACHE_PREFIX_PAGE = "page"

PACKAGE_REGISTRY_DOMAIN = "pkg.go.dev"
