"""Run one harvest: pick a strategy for the URL, execute it, report stats."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from .config import HarvestConfig
from .context import Context
from .dispatcher import StrategyType, create_strategy, detect_strategy, is_valid_strategy, validate_url
from .errors import Cancelled, NoStrategyError, StrategyError, ValidationError, find_error
from .strategies import Dependencies, Options, Strategy, discover_sitemap
from .strategies.sitemap import is_sitemap_content, maybe_decompress
from .url import url_path_lower


logger = logging.getLogger(__name__)

StrategyFactory = Callable[[StrategyType, Dependencies], Strategy]


class Orchestrator:
    """Wires config, collaborators and the selected strategy for a run."""

    def __init__(
        self,
        config: HarvestConfig,
        *,
        deps: Dependencies | None = None,
        strategy_factory: StrategyFactory | None = None,
    ) -> None:
        self.config = config
        self.deps = deps or Dependencies.from_config(config)
        self.strategy_factory = strategy_factory or create_strategy

        self._owns_deps = deps is None

    def resolve_strategy(self, url: str, *, override: str = "", ctx: Context) -> tuple[StrategyType, str]:
        """Return the strategy type to use and the URL to hand it."""

        if override:
            if not is_valid_strategy(override):
                raise ValidationError("strategy", f"unknown strategy override: {override}")
            logger.debug("Using strategy override %s", override)
            return StrategyType(override), url

        strategy_type = detect_strategy(url)
        logger.debug("Detected strategy %s for %s", strategy_type.value, url)
        if strategy_type == StrategyType.UNKNOWN:
            raise NoStrategyError(f"unable to determine strategy for URL: {url}")
        if strategy_type != StrategyType.CRAWLER:
            return strategy_type, url

        if self.config.sitemap_discovery:
            sitemap_url = discover_sitemap(self.deps.fetcher, url, ctx=ctx)
            if sitemap_url:
                logger.info("Discovered sitemap %s, switching from crawler to sitemap", sitemap_url)
                return StrategyType.SITEMAP, sitemap_url

        if url_path_lower(url).endswith(".xml") and self._looks_like_sitemap(url, ctx=ctx):
            logger.info("Content of %s is sitemap XML, switching to sitemap", url)
            return StrategyType.SITEMAP, url
        return strategy_type, url

    def _looks_like_sitemap(self, url: str, *, ctx: Context) -> bool:
        try:
            result = self.deps.fetcher.get(url, ctx=ctx)
            return is_sitemap_content(maybe_decompress(result.body, url))
        except Exception as exc:
            cancelled = find_error(exc, Cancelled)
            if cancelled is not None:
                raise cancelled
            logger.debug("Sitemap content check for %s failed: %s", url, exc)
            return False

    def run(self, url: str, *, strategy: str = "", ctx: Context | None = None) -> dict[str, Any]:
        """Harvest ``url`` and return the run summary.

        Validation problems raise before any network I/O. Strategy failures are
        wrapped in `StrategyError`; cancellation is re-raised as is.
        """

        ctx = ctx or Context()
        started = time.monotonic()

        try:
            url = validate_url(url)
            logger.info(
                "Starting documentation harvest: url=%s, output_dir=%s, workers=%d",
                url,
                self.config.output_dir,
                self.config.workers,
            )
            strategy_type, target_url = self.resolve_strategy(url, override=strategy, ctx=ctx)
            runner = self.strategy_factory(strategy_type, self.deps)
            logger.info("Using %s strategy", runner.name)

            options = Options.from_config(self.config)
            if self.deps.state is not None:
                self.deps.state.bind(target_url, runner.name)
            try:
                runner.execute(ctx, target_url, options)
            except KeyboardInterrupt:
                ctx.cancel()
                raise
            except Exception as exc:
                cancelled = find_error(exc, Cancelled)
                if cancelled is not None:
                    logger.warning("Harvest cancelled")
                    raise cancelled from None
                raise StrategyError(runner.name, target_url, exc) from exc
            self._finish_sync()
        finally:
            if self._owns_deps:
                self.deps.close()
            else:
                self.deps.stats.finish()

        duration = time.monotonic() - started
        summary = self.deps.stats.to_json()
        logger.info(
            "Documentation harvest completed in %.1fs: %d documents written",
            duration,
            self.deps.stats.written,
        )
        return {
            "url": url,
            "strategy": strategy_type.value,
            "target_url": target_url,
            "output_dir": str(self.config.output_dir),
            "dry_run": self.config.dry_run,
            "stats": summary,
        }

    def _finish_sync(self) -> None:
        """Prune pages that disappeared upstream (when asked) and save the sync state."""

        state = self.deps.state
        if state is None:
            return
        if self.config.prune:
            if self.config.limit:
                logger.warning("Not pruning: a run limited to %d pages does not see every page", self.config.limit)
            elif self.deps.stats.fetch_errors:
                logger.warning("Not pruning: %d pages failed to fetch", self.deps.stats.fetch_errors)
            else:
                pruned = state.prune()
                self.deps.stats.record_pruned(pruned)
                if pruned:
                    logger.info("Removed %d pages no longer present upstream", pruned)
        state.save()

    def close(self) -> None:
        self.deps.close()


__all__ = [
    "Orchestrator",
    "StrategyFactory",
]
