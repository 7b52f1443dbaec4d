"""Strategy contract, run options, and the collaborators strategies share."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from tqdm import tqdm

from ..cache import Cache, SQLiteCache
from ..config import HarvestConfig
from ..constants import CACHE_DB_FILENAME, DEFAULT_WORKERS
from ..context import Context
from ..converter import ConversionPipeline, MarkdownReader, classify_content
from ..errors import Cancelled, RenderError, find_error
from ..fetcher import Fetcher
from ..frontier import compile_patterns
from ..renderer import Renderer, needs_js_rendering
from ..state import SyncState
from ..stats import StatsCollector
from ..types import ContentKind, Document, FetchResult, utc_now
from ..url import has_url_prefix
from ..writer import Writer


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Options:
    """Per-run knobs passed to `Strategy.execute`.

    ``max_depth`` 0 means the seed page only; ``limit`` 0 means unlimited.
    """

    max_depth: int = 0
    concurrency: int = DEFAULT_WORKERS
    limit: int = 0
    exclude_patterns: list[str] = field(default_factory=list)
    content_selector: str = ""
    exclude_selector: str = ""
    filter_url: str = ""
    dry_run: bool = False
    force: bool = False
    render_js: bool = False
    auto_render_js: bool = False
    split: bool = False

    def __post_init__(self) -> None:
        self.max_depth = max(0, self.max_depth)
        self.concurrency = max(1, self.concurrency)
        self.limit = max(0, self.limit)

    @classmethod
    def from_config(cls, config: HarvestConfig) -> "Options":
        return cls(
            max_depth=config.max_depth,
            concurrency=config.workers,
            limit=config.limit,
            exclude_patterns=list(config.exclude_patterns),
            content_selector=config.content_selector,
            exclude_selector=config.exclude_selector,
            filter_url=config.filter_url,
            dry_run=config.dry_run,
            force=config.force,
            render_js=config.render_js,
            auto_render_js=config.auto_render_js,
            split=config.split,
        )


class Dependencies:
    """Collaborators injected into every strategy of one run."""

    def __init__(
        self,
        *,
        fetcher: Fetcher,
        writer: Writer,
        cache: Cache | None = None,
        renderer: Renderer | None = None,
        stats: StatsCollector | None = None,
        state: SyncState | None = None,
        show_progress: bool = False,
    ) -> None:
        self.fetcher = fetcher
        self.writer = writer
        self.cache = cache
        self.renderer = renderer
        self.stats = stats or StatsCollector()
        self.state = state
        self.show_progress = show_progress
        self.markdown_reader = MarkdownReader()

    @classmethod
    def from_config(cls, config: HarvestConfig) -> "Dependencies":
        cache: Cache | None = None
        if config.cache_enabled:
            cache = SQLiteCache(config.cache_path / CACHE_DB_FILENAME)

        fetcher = Fetcher(
            cache=cache,
            enable_cache=config.cache_enabled,
            cache_ttl_seconds=config.cache_ttl_seconds,
            retry_policy=config.retry_policy,
            timeout_seconds=config.timeout_seconds,
            user_agent=config.user_agent,
            default_headers=config.default_headers,
        )
        renderer = None
        if config.render_js or config.auto_render_js:
            renderer = Renderer(timeout_seconds=config.js_timeout_seconds, user_agent=config.user_agent)
        state = None
        if config.sync and not config.dry_run:
            state = SyncState(config.output_dir)
            state.load()

        return cls(
            fetcher=fetcher,
            writer=Writer(config.output_dir, flat=config.flat, json_metadata=config.json_metadata),
            cache=cache,
            renderer=renderer,
            state=state,
            show_progress=config.show_progress,
        )

    def new_converter(self, options: Options) -> ConversionPipeline:
        return ConversionPipeline(
            content_selector=options.content_selector or None,
            exclude_selector=options.exclude_selector or None,
        )

    def write_document(self, document: Document, options: Options) -> bool:
        """Write unless dry-run, or unless the page is already up to date.

        Without sync state, "up to date" means the target file exists. With
        sync state it means the last sync wrote the same content hash and the
        file is still there. ``force`` writes regardless. Returns True when a
        file was written.
        """

        if options.dry_run:
            logger.info("[dry-run] %s (%d words)", document.url, document.word_count)
            return False

        exists = self.writer.exists(document.url, document.relative_path)
        if self.state is not None:
            self.state.mark_seen(document.url)
            if not options.force and exists and self.state.is_unchanged(document.url, document.content_hash):
                logger.debug("Unchanged since last sync: %s", document.url)
                self.stats.record_unchanged()
                return False
        elif not options.force and exists:
            logger.debug("Skipping existing output for %s", document.url)
            self.stats.record_written(False)
            return False

        path = self.writer.write(document)
        self.stats.record_written(True)
        if self.state is not None:
            self.state.record(document, path)
        return True

    def progress(self, *, total: int | None, desc: str) -> tqdm:
        return tqdm(total=total, desc=desc, unit="page", disable=not self.show_progress, leave=False)

    def close(self) -> None:
        self.fetcher.close()
        if self.renderer is not None:
            self.renderer.close()
        if self.cache is not None:
            self.cache.close()
        self.stats.finish()


class Strategy(ABC):
    """One way of turning a source URL into written documents."""

    name: str = ""

    def __init__(self, deps: Dependencies) -> None:
        self.deps = deps

    @abstractmethod
    def can_handle(self, url: str) -> bool:
        """True when this strategy is the one the dispatcher would pick."""

    @abstractmethod
    def execute(self, ctx: Context, url: str, options: Options) -> None:
        """Harvest ``url``; raises on fatal failure or cancellation."""

    def convert_response(
        self,
        result: FetchResult,
        kind: ContentKind,
        options: Options,
        converter: ConversionPipeline,
        *,
        ctx: Context,
    ) -> Document:
        """Turn a fetched HTML or Markdown response into a Document."""

        url = result.effective_url
        if kind == ContentKind.MARKDOWN:
            document = self.deps.markdown_reader.read(result.body, url)
            rendered = False
        else:
            html: str | bytes = result.body
            rendered = False
            renderer = self.deps.renderer
            if renderer is not None and (
                options.render_js or (options.auto_render_js and needs_js_rendering(result.text))
            ):
                try:
                    html = renderer.render(url, ctx=ctx)
                    rendered = True
                except RenderError as exc:
                    logger.warning("Rendering %s failed, using static HTML: %s", url, exc)
            document = converter.convert(html, url, ctx=ctx)

        document = document.with_updates(
            source_strategy=self.name,
            cache_hit=result.from_cache,
            fetched_at=utc_now(),
            rendered_with_js=rendered,
        )
        self.deps.stats.record_converted(document)
        return document

    def process_url(
        self,
        ctx: Context,
        url: str,
        options: Options,
        converter: ConversionPipeline,
        *,
        fallback_title: str = "",
    ) -> bool:
        """Fetch, convert and write one page; per-page failures are logged.

        Returns True when a document was produced. Cancellation propagates.
        """

        ctx.raise_if_done()
        if self.deps.state is None and not options.force and not options.dry_run and self.deps.writer.exists(url):
            logger.debug("Skipping %s, output already exists", url)
            self.deps.stats.record_written(False)
            return False

        try:
            result = self.deps.fetcher.get(url, ctx=ctx)
            kind = classify_content(result.content_type, result.effective_url)
            self.deps.stats.record_fetch(result, kind.value)
            if kind == ContentKind.OTHER:
                logger.debug("Skipping non-document content at %s (%s)", url, result.content_type)
                return False
            document = self.convert_response(result, kind, options, converter, ctx=ctx)
            if not document.title and fallback_title:
                document = document.with_updates(title=fallback_title)
            self.deps.write_document(document, options)
            return True
        except Exception as exc:
            cancelled = find_error(exc, Cancelled)
            if cancelled is not None:
                raise cancelled
            self.deps.stats.record_fetch_error(exc)
            logger.warning("Failed to process %s: %s", url, exc)
            return False

    def process_urls(
        self,
        ctx: Context,
        urls: list[str],
        options: Options,
        *,
        desc: str,
        titles: Mapping[str, str] | None = None,
    ) -> int:
        """Run `process_url` over ``urls`` with ``options.concurrency`` threads.

        Returns how many documents were produced.
        """

        converter = self.deps.new_converter(options)
        produced = 0
        with self.deps.progress(total=len(urls), desc=desc) as progress, ThreadPoolExecutor(
            max_workers=options.concurrency,
            thread_name_prefix=f"{self.name}-worker",
        ) as pool:
            titles = titles or {}
            futures = [
                pool.submit(self.process_url, ctx, url, options, converter, fallback_title=titles.get(url, ""))
                for url in urls
            ]
            try:
                for future in as_completed(futures):
                    if future.result():
                        produced += 1
                    progress.update(1)
            except BaseException:
                ctx.cancel()
                for future in futures:
                    future.cancel()
                raise
        return produced


def filter_urls(urls: Iterable[str], filter_url: str = "", exclude_patterns: Iterable[str] = ()) -> list[str]:
    """Keep URLs under ``filter_url`` that match no exclusion pattern.

    De-duplicates while preserving order.
    """

    excluded = compile_patterns(exclude_patterns)
    kept: list[str] = []
    seen: set[str] = set()
    for url in urls:
        if not url or url in seen:
            continue
        seen.add(url)
        if filter_url and not has_url_prefix(url, filter_url):
            continue
        if any(pattern.search(url) for pattern in excluded):
            continue
        kept.append(url)
    return kept


__all__ = [
    "Dependencies",
    "Options",
    "Strategy",
    "filter_urls",
]
