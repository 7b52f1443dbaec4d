"""CLI entrypoint: ``docharvest URL [options]``."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any

from .config import HarvestConfig, load_config
from .constants import DEFAULT_CONFIG_PATH
from .context import Context
from .dispatcher import StrategyType, detect_strategy
from .errors import Cancelled, HarvestError, NoStrategyError, ValidationError, find_error
from .orchestrator import Orchestrator


logger = logging.getLogger(__name__)

NOISY_LOGGERS = ("urllib3", "selenium", "readability", "readability.readability")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="docharvest",
        description="Harvest documentation from websites, repositories, sitemaps and wikis into Markdown.",
    )
    parser.add_argument("url", help="Documentation URL, repository URL, sitemap, llms.txt or wiki.")

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to JSON/YAML config (default: {DEFAULT_CONFIG_PATH} when present).",
    )
    parser.add_argument("-o", "--output", default=None, help="Output directory for Markdown files.")
    parser.add_argument("-j", "--workers", type=int, default=None, help="Number of concurrent workers.")
    parser.add_argument("-d", "--depth", type=int, default=None, help="Maximum crawl depth (0 = seed only).")
    parser.add_argument("-l", "--limit", type=int, default=None, help="Maximum documents to produce (0 = unlimited).")
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Regex of URLs never to follow (repeatable, added to configured patterns).",
    )
    parser.add_argument("--filter", dest="filter_url", default=None, help="Only follow URLs starting with this prefix.")
    parser.add_argument("--selector", default=None, help="CSS selector of the main content region.")
    parser.add_argument("--exclude-selector", default=None, help="CSS selector of elements to drop before extraction.")

    parser.add_argument("--render-js", action="store_true", help="Render every HTML page in a headless browser.")
    parser.add_argument(
        "--auto-render-js",
        action="store_true",
        help="Render only pages that look like JavaScript application shells.",
    )
    parser.add_argument("--no-cache", action="store_true", help="Disable the on-disk response cache.")
    parser.add_argument("--cache-ttl", type=float, default=None, help="Cache TTL in seconds.")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds.")
    parser.add_argument("--user-agent", default=None)

    parser.add_argument("--flat", action="store_true", help="Write all files into one directory.")
    parser.add_argument("--json-meta", action="store_true", help="Write a .json metadata file next to each document.")
    parser.add_argument("--force", action="store_true", help="Overwrite existing output files.")
    parser.add_argument("--dry-run", action="store_true", help="Run the pipeline without writing files.")
    parser.add_argument("--split", action="store_true", help="Split package pages into one document per section.")
    parser.add_argument("--sync", action="store_true", help="Skip pages unchanged since the last run into this output directory.")
    parser.add_argument("--prune", action="store_true", help="With --sync, delete files of pages that are no longer present.")

    parser.add_argument(
        "--strategy",
        choices=[member.value for member in StrategyType if member != StrategyType.UNKNOWN],
        default=None,
        help="Skip detection and use this strategy.",
    )
    parser.add_argument(
        "--no-sitemap-discovery",
        action="store_true",
        help="Do not look for a sitemap before crawling.",
    )
    parser.add_argument("--detect", action="store_true", help="Print the detected strategy and exit.")

    parser.add_argument("--progress", action="store_true", help="Show progress bars.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    parser.add_argument(
        "--print-stats",
        action="store_true",
        help="Print full stats JSON in stdout after run.",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> HarvestConfig:
    if args.config is not None:
        payload = load_config(args.config).to_dict()
    else:
        default_path = Path(DEFAULT_CONFIG_PATH).expanduser()
        payload = load_config(default_path).to_dict() if default_path.is_file() else {}

    if args.output is not None:
        payload["output_dir"] = args.output
    if args.workers is not None:
        payload["workers"] = args.workers
    if args.depth is not None:
        payload["max_depth"] = args.depth
    if args.limit is not None:
        payload["limit"] = args.limit
    if args.exclude:
        base = payload.get("exclude_patterns", HarvestConfig().exclude_patterns)
        payload["exclude_patterns"] = list(base) + list(args.exclude)
    if args.filter_url is not None:
        payload["filter_url"] = args.filter_url
    if args.selector is not None:
        payload["content_selector"] = args.selector
    if args.exclude_selector is not None:
        payload["exclude_selector"] = args.exclude_selector

    if args.render_js:
        payload["render_js"] = True
    if args.auto_render_js:
        payload["auto_render_js"] = True
    if args.no_cache:
        payload["cache_enabled"] = False
    if args.cache_ttl is not None:
        payload["cache_ttl_seconds"] = args.cache_ttl
    if args.timeout is not None:
        payload["timeout_seconds"] = args.timeout
    if args.user_agent is not None:
        payload["user_agent"] = args.user_agent

    for flag, key in (
        ("flat", "flat"),
        ("json_meta", "json_metadata"),
        ("force", "force"),
        ("dry_run", "dry_run"),
        ("split", "split"),
        ("sync", "sync"),
        ("prune", "prune"),
        ("progress", "show_progress"),
    ):
        if getattr(args, flag):
            payload[key] = True
    if args.no_sitemap_discovery:
        payload["sitemap_discovery"] = False
    if args.verbose:
        payload["log_level"] = "debug"

    return HarvestConfig.from_dict(payload)


def setup_logging(level: str = "info", log_file: Path | None = None) -> None:
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Connection-pool and webdriver chatter drowns out per-page progress.
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def print_summary(result: dict[str, Any], *, print_stats: bool) -> None:
    stats = result.get("stats", {})

    print("\n=== Harvest Complete ===")
    print(f"url: {result.get('url')}")
    print(f"strategy: {result.get('strategy')}")
    print(f"output_dir: {result.get('output_dir')}")
    if result.get("dry_run"):
        print("dry_run: true")

    print("\n--- Core Stats ---")
    for section, key in [
        ("fetch", "ok"),
        ("fetch", "error"),
        ("fetch", "cache_hits"),
        ("convert", "documents"),
        ("write", "written"),
        ("write", "skipped_existing"),
    ]:
        value = stats.get(section, {}).get(key)
        if value is not None:
            print(f"{section}_{key}: {value}")
    if "duration_seconds" in stats:
        print(f"duration_seconds: {stats['duration_seconds']:.1f}")

    if print_stats:
        print("\n--- Full Stats JSON ---")
        print(json.dumps(stats, indent=2, sort_keys=True))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.detect:
        print(detect_strategy(args.url).value)
        return 0

    setup_logging("debug" if args.verbose else "info", args.log_file)

    try:
        config = build_config(args)
    except (ValueError, OSError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    logging.getLogger().setLevel(config.log_level.upper())

    ctx = Context()
    try:
        orchestrator = Orchestrator(config)
        result = orchestrator.run(args.url, strategy=args.strategy or "", ctx=ctx)
    except KeyboardInterrupt:
        ctx.cancel()
        logger.error("Interrupted by user")
        return 130
    except Cancelled:
        logger.error("Harvest cancelled")
        return 130
    except (ValidationError, NoStrategyError) as exc:
        logger.error("%s", exc)
        return 2
    except HarvestError as exc:
        if find_error(exc, Cancelled) is not None:
            return 130
        logger.error("Harvest failed: %s", exc)
        return 1
    except Exception:
        logger.exception("Harvest failed")
        return 1

    print_summary(result, print_stats=args.print_stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
