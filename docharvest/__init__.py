"""Documentation harvester: fetch, crawl, and convert docs sources into Markdown."""

from .cache import MemoryCache, SQLiteCache
from .config import HarvestConfig, load_config, save_config
from .context import Context
from .converter import ConversionPipeline, MarkdownReader, classify_content
from .dispatcher import StrategyType, create_strategy, detect_strategy, is_valid_strategy, validate_url
from .errors import (
    Cancelled,
    ConversionError,
    FetchError,
    HarvestError,
    InvalidURLError,
    NoStrategyError,
    RetryableError,
    StrategyError,
    ValidationError,
)
from .fetcher import Fetcher
from .frontier import EnqueueResult, EnqueueStatus, Frontier, LinkScope
from .orchestrator import Orchestrator
from .retry import Retrier
from .state import SyncState
from .stats import StatsCollector
from .strategies import Dependencies, Options, Strategy
from .types import ContentKind, Document, FetchResult, FrontierItem, RetryPolicy
from .writer import Writer

__all__ = [
    "Cancelled",
    "ContentKind",
    "Context",
    "ConversionError",
    "ConversionPipeline",
    "Dependencies",
    "Document",
    "EnqueueResult",
    "EnqueueStatus",
    "FetchError",
    "FetchResult",
    "Fetcher",
    "Frontier",
    "FrontierItem",
    "HarvestConfig",
    "HarvestError",
    "InvalidURLError",
    "LinkScope",
    "MarkdownReader",
    "MemoryCache",
    "NoStrategyError",
    "Options",
    "Orchestrator",
    "Retrier",
    "RetryPolicy",
    "RetryableError",
    "SQLiteCache",
    "StatsCollector",
    "Strategy",
    "StrategyError",
    "StrategyType",
    "SyncState",
    "ValidationError",
    "Writer",
    "classify_content",
    "create_strategy",
    "detect_strategy",
    "is_valid_strategy",
    "load_config",
    "save_config",
    "validate_url",
]
