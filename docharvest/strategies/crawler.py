"""Breadth-first website crawl with a bounded worker pool."""

from __future__ import annotations

import logging
import threading

from tqdm import tqdm

from ..context import Context
from ..converter import ConversionPipeline, classify_content
from ..errors import Cancelled, InvalidURLError, find_error
from ..frontier import Frontier, LinkScope
from ..types import ContentKind, Document, FrontierItem
from ..url import is_http_url
from .base import Options, Strategy


logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.2


class CrawlerStrategy(Strategy):
    """Crawl a documentation site starting from one page.

    The seed page is fetched first, on the calling thread, and its failure
    aborts the run. Every other page is processed by a fixed pool of worker
    threads fed by a shared `Frontier`; their failures are logged and the
    page is dropped.
    """

    name = "crawler"

    def can_handle(self, url: str) -> bool:
        return is_http_url(url)

    def execute(self, ctx: Context, url: str, options: Options) -> None:
        ctx.raise_if_done()

        frontier = Frontier(max_depth=options.max_depth, limit=options.limit)
        scope = LinkScope(url, filter_url=options.filter_url, exclude_patterns=options.exclude_patterns)
        converter = self.deps.new_converter(options)

        seeded = frontier.seed(url)
        self.deps.stats.record_enqueue(seeded)
        if not seeded.accepted:
            raise InvalidURLError(f"cannot crawl {url!r}")

        progress = self.deps.progress(total=None, desc="crawl")
        progress_lock = threading.Lock()
        try:
            seed = frontier.pop(timeout=0)
            if seed is not None:
                try:
                    self._process_item(ctx, frontier, scope, seed, options, converter, fatal=True)
                finally:
                    frontier.task_done()
                    progress.update(1)

            if frontier.wait_idle(0):
                logger.info("Crawl of %s finished after the seed page", url)
                return

            self._drain(ctx, frontier, scope, options, converter, progress, progress_lock)
        finally:
            progress.close()
            self.deps.stats.record_frontier_snapshot(frontier.snapshot())

        snapshot = frontier.snapshot()
        logger.info(
            "Crawl of %s done: %d visited, %d documents, %d abandoned",
            url,
            snapshot["visited"],
            snapshot["results"],
            snapshot["abandoned"],
        )

    def _drain(
        self,
        ctx: Context,
        frontier: Frontier,
        scope: LinkScope,
        options: Options,
        converter: ConversionPipeline,
        progress: tqdm,
        progress_lock: threading.Lock,
    ) -> None:
        workers = [
            threading.Thread(
                target=self._worker,
                args=(ctx, frontier, scope, options, converter, progress, progress_lock),
                name=f"crawler-worker-{idx}",
                daemon=True,
            )
            for idx in range(options.concurrency)
        ]
        for worker in workers:
            worker.start()

        try:
            while not frontier.wait_idle(POLL_INTERVAL_SECONDS):
                if ctx.done():
                    break
        except BaseException:
            ctx.cancel()
            raise
        finally:
            frontier.close()
            for worker in workers:
                worker.join()

        if ctx.done():
            logger.info("Crawl cancelled with %d pages still pending", frontier.snapshot()["abandoned"])
            ctx.raise_if_done()

    def _worker(
        self,
        ctx: Context,
        frontier: Frontier,
        scope: LinkScope,
        options: Options,
        converter: ConversionPipeline,
        progress: tqdm,
        progress_lock: threading.Lock,
    ) -> None:
        while not ctx.done():
            item = frontier.pop(timeout=POLL_INTERVAL_SECONDS)
            if item is None:
                if frontier.closed:
                    return
                continue

            try:
                self._process_item(ctx, frontier, scope, item, options, converter, fatal=False)
            except Cancelled:
                return
            except Exception as exc:
                logger.warning("Unexpected failure on %s: %s", item.url, exc)
            finally:
                frontier.task_done()
                with progress_lock:
                    progress.update(1)

    def _process_item(
        self,
        ctx: Context,
        frontier: Frontier,
        scope: LinkScope,
        item: FrontierItem,
        options: Options,
        converter: ConversionPipeline,
        *,
        fatal: bool,
    ) -> None:
        if item.depth > frontier.max_depth:
            return
        ctx.raise_if_done()

        try:
            result = self.deps.fetcher.get(item.url, ctx=ctx)
        except Exception as exc:
            cancelled = find_error(exc, Cancelled)
            if cancelled is not None:
                raise cancelled
            self.deps.stats.record_fetch_error(exc)
            if fatal:
                raise
            logger.warning("Failed to fetch %s: %s", item.url, exc)
            return

        kind = classify_content(result.content_type, result.effective_url)
        self.deps.stats.record_fetch(result, kind.value)
        if kind == ContentKind.OTHER:
            logger.debug("Discarding %s with content type %r", item.url, result.content_type)
            return

        try:
            document = self.convert_response(result, kind, options, converter, ctx=ctx)
        except Exception as exc:
            cancelled = find_error(exc, Cancelled)
            if cancelled is not None:
                raise cancelled
            logger.warning("Failed to convert %s: %s", item.url, exc)
            return

        if not frontier.claim_result():
            return

        try:
            self.deps.write_document(document, options)
        except Exception as exc:
            logger.warning("Failed to write %s: %s", item.url, exc)

        self._enqueue_links(frontier, scope, item, document)

    def _enqueue_links(self, frontier: Frontier, scope: LinkScope, item: FrontierItem, document: Document) -> None:
        next_depth = item.depth + 1
        if next_depth > frontier.max_depth or frontier.closed:
            return

        for link in document.links:
            skipped = scope.check(link)
            if skipped is not None:
                self.deps.stats.record_enqueue(skipped)
                continue
            self.deps.stats.record_enqueue(frontier.push(link, depth=next_depth, referrer=item.url))


__all__ = ["CrawlerStrategy"]
