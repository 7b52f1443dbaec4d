"""Typed harvester configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_AUTO_RENDER_JS,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CACHE_DIR,
    DEFAULT_CACHE_ENABLED,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_INITIAL_INTERVAL_SECONDS,
    DEFAULT_JS_TIMEOUT_SECONDS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_INTERVAL_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_RENDER_JS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    DEFAULT_WORKERS,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .errors import ValidationError
from .types import JSONDict, RetryPolicy


LOG_LEVELS = ("debug", "info", "warning", "error")


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(key, f"invalid float {value!r}") from exc


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(key, f"invalid int {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(key, f"invalid int {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(key, f"invalid bool {value!r}")


def _as_str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    raise ValidationError(key, f"expected a list of strings, got {type(value).__name__}")


@dataclass(slots=True)
class HarvestConfig:
    """Settings for one harvester run, shared by the CLI and the orchestrator."""

    output_dir: str = DEFAULT_OUTPUT_DIR
    workers: int = DEFAULT_WORKERS
    max_depth: int = DEFAULT_MAX_DEPTH
    limit: int = 0
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    filter_url: str = ""
    content_selector: str = ""
    exclude_selector: str = ""

    cache_enabled: bool = DEFAULT_CACHE_ENABLED
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    cache_dir: str = DEFAULT_CACHE_DIR

    render_js: bool = DEFAULT_RENDER_JS
    auto_render_js: bool = DEFAULT_AUTO_RENDER_JS
    js_timeout_seconds: float = DEFAULT_JS_TIMEOUT_SECONDS

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_interval_seconds: float = DEFAULT_INITIAL_INTERVAL_SECONDS
    max_interval_seconds: float = DEFAULT_MAX_INTERVAL_SECONDS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))

    flat: bool = False
    json_metadata: bool = False
    force: bool = False
    dry_run: bool = False
    split: bool = False
    sync: bool = False
    prune: bool = False
    sitemap_discovery: bool = True
    show_progress: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        self.output_dir = str(self.output_dir).strip()
        if not self.output_dir:
            raise ValidationError("output_dir", "must not be empty")
        if self.workers <= 0:
            raise ValidationError("workers", "must be > 0")
        if self.max_depth < 0:
            raise ValidationError("max_depth", "must be >= 0")
        if self.limit < 0:
            raise ValidationError("limit", "must be >= 0")
        if self.timeout_seconds <= 0:
            raise ValidationError("timeout_seconds", "must be > 0")
        if self.cache_ttl_seconds <= 0:
            raise ValidationError("cache_ttl_seconds", "must be > 0")
        if self.js_timeout_seconds <= 0:
            raise ValidationError("js_timeout_seconds", "must be > 0")
        if self.max_retries < 0:
            raise ValidationError("max_retries", "must be >= 0")
        if self.prune and not self.sync:
            raise ValidationError("prune", "requires sync")

        self.log_level = self.log_level.strip().lower()
        if self.log_level not in LOG_LEVELS:
            raise ValidationError("log_level", f"must be one of {LOG_LEVELS}")

        self.exclude_patterns = [pattern for pattern in self.exclude_patterns if pattern]
        self.filter_url = self.filter_url.strip()

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_interval=self.initial_interval_seconds,
            max_interval=self.max_interval_seconds,
            multiplier=self.backoff_multiplier,
        )

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()

    def to_dict(self) -> JSONDict:
        """Serialize config for manifests and reproducibility."""

        return {
            "output_dir": self.output_dir,
            "workers": self.workers,
            "max_depth": self.max_depth,
            "limit": self.limit,
            "timeout_seconds": self.timeout_seconds,
            "exclude_patterns": list(self.exclude_patterns),
            "filter_url": self.filter_url,
            "content_selector": self.content_selector,
            "exclude_selector": self.exclude_selector,
            "cache_enabled": self.cache_enabled,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "cache_dir": self.cache_dir,
            "render_js": self.render_js,
            "auto_render_js": self.auto_render_js,
            "js_timeout_seconds": self.js_timeout_seconds,
            "max_retries": self.max_retries,
            "initial_interval_seconds": self.initial_interval_seconds,
            "max_interval_seconds": self.max_interval_seconds,
            "backoff_multiplier": self.backoff_multiplier,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
            "flat": self.flat,
            "json_metadata": self.json_metadata,
            "force": self.force,
            "dry_run": self.dry_run,
            "split": self.split,
            "sync": self.sync,
            "prune": self.prune,
            "sitemap_discovery": self.sitemap_discovery,
            "show_progress": self.show_progress,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HarvestConfig":
        """Build config from a parsed dictionary; unknown keys are rejected."""

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValidationError(unknown[0], "unknown config key")

        return cls(
            output_dir=str(payload.get("output_dir", DEFAULT_OUTPUT_DIR)),
            workers=_as_int(payload.get("workers", DEFAULT_WORKERS), "workers"),
            max_depth=_as_int(payload.get("max_depth", DEFAULT_MAX_DEPTH), "max_depth"),
            limit=_as_int(payload.get("limit", 0), "limit"),
            timeout_seconds=_as_float(payload.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS), "timeout_seconds"),
            exclude_patterns=_as_str_list(
                payload.get("exclude_patterns", list(DEFAULT_EXCLUDE_PATTERNS)),
                "exclude_patterns",
            ),
            filter_url=str(payload.get("filter_url") or ""),
            content_selector=str(payload.get("content_selector") or ""),
            exclude_selector=str(payload.get("exclude_selector") or ""),
            cache_enabled=_as_bool(payload.get("cache_enabled", DEFAULT_CACHE_ENABLED), "cache_enabled"),
            cache_ttl_seconds=_as_float(
                payload.get("cache_ttl_seconds", DEFAULT_CACHE_TTL_SECONDS),
                "cache_ttl_seconds",
            ),
            cache_dir=str(payload.get("cache_dir", DEFAULT_CACHE_DIR)),
            render_js=_as_bool(payload.get("render_js", DEFAULT_RENDER_JS), "render_js"),
            auto_render_js=_as_bool(payload.get("auto_render_js", DEFAULT_AUTO_RENDER_JS), "auto_render_js"),
            js_timeout_seconds=_as_float(
                payload.get("js_timeout_seconds", DEFAULT_JS_TIMEOUT_SECONDS),
                "js_timeout_seconds",
            ),
            max_retries=_as_int(payload.get("max_retries", DEFAULT_MAX_RETRIES), "max_retries"),
            initial_interval_seconds=_as_float(
                payload.get("initial_interval_seconds", DEFAULT_INITIAL_INTERVAL_SECONDS),
                "initial_interval_seconds",
            ),
            max_interval_seconds=_as_float(
                payload.get("max_interval_seconds", DEFAULT_MAX_INTERVAL_SECONDS),
                "max_interval_seconds",
            ),
            backoff_multiplier=_as_float(
                payload.get("backoff_multiplier", DEFAULT_BACKOFF_MULTIPLIER),
                "backoff_multiplier",
            ),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(payload.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
            flat=_as_bool(payload.get("flat", False), "flat"),
            json_metadata=_as_bool(payload.get("json_metadata", False), "json_metadata"),
            force=_as_bool(payload.get("force", False), "force"),
            dry_run=_as_bool(payload.get("dry_run", False), "dry_run"),
            split=_as_bool(payload.get("split", False), "split"),
            sync=_as_bool(payload.get("sync", False), "sync"),
            prune=_as_bool(payload.get("prune", False), "prune"),
            sitemap_discovery=_as_bool(payload.get("sitemap_discovery", True), "sitemap_discovery"),
            show_progress=_as_bool(payload.get("show_progress", False), "show_progress"),
            log_level=str(payload.get("log_level", DEFAULT_LOG_LEVEL)),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("config", f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> HarvestConfig:
    """Load HarvestConfig from a JSON/YAML path."""

    config_path = Path(path).expanduser()
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValidationError(
            "config",
            f"unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}",
        )

    try:
        if suffix == ".json":
            payload = json.loads(config_path.read_text(encoding="utf-8"))
        else:
            payload = _load_yaml(config_path)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValidationError("config", f"cannot parse {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ValidationError("config", f"config at {config_path} must be a mapping")

    return HarvestConfig.from_dict(payload)


def save_config(config: HarvestConfig, path: str | Path) -> None:
    """Save HarvestConfig as JSON or YAML based on file extension."""

    out_path = Path(path).expanduser()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ValidationError(
        "config",
        f"unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}",
    )


__all__ = [
    "HarvestConfig",
    "LOG_LEVELS",
    "load_config",
    "save_config",
]
