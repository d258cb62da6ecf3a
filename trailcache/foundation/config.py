from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, FrozenSet, Mapping

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    """Where cached coverage lives and how intervals are coalesced."""

    cache_dir: str = field(
        default="~/.cache/trailcache", metadata={"env": "TRAILCACHE_CACHE_DIR"}
    )
    namespace: str = field(
        default="write-events", metadata={"env": "TRAILCACHE_CACHE_NAMESPACE"}
    )
    adjacency_tolerance_seconds: float = field(
        default=1.0, metadata={"env": "TRAILCACHE_ADJACENCY_TOLERANCE"}
    )


@dataclass
class FetchConfig:
    """Remote event API access and pagination limits."""

    base_url: str | None = field(
        default=None, metadata={"env": "TRAILCACHE_FETCH_URL"}
    )
    headers: dict[str, str] = field(default_factory=dict)
    page_size: int = field(default=50, metadata={"env": "TRAILCACHE_PAGE_SIZE"})
    max_pages: int | None = field(
        default=None, metadata={"env": "TRAILCACHE_MAX_PAGES"}
    )
    max_retries: int = field(default=3, metadata={"env": "TRAILCACHE_MAX_RETRIES"})
    retry_backoff_s: float = field(
        default=0.5, metadata={"env": "TRAILCACHE_RETRY_BACKOFF"}
    )
    penalty_backoff_s: float = field(
        default=2.0, metadata={"env": "TRAILCACHE_PENALTY_BACKOFF"}
    )
    min_interval_s: float = field(
        default=0.5, metadata={"env": "TRAILCACHE_MIN_INTERVAL"}
    )
    max_concurrency: int = 1
    timeout_s: float = field(default=10.0, metadata={"env": "TRAILCACHE_HTTP_TIMEOUT"})
    write_only: bool = field(default=True, metadata={"env": "TRAILCACHE_WRITE_ONLY"})


@dataclass
class FiltersConfig:
    """Default event filters applied by the command line."""

    ignore_patterns: list[str] = field(
        default_factory=list, metadata={"env": "TRAILCACHE_IGNORE_PATTERNS"}
    )
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)


@dataclass
class TelemetryConfig:
    """Metrics exposition."""

    prometheus_port: int | None = field(
        default=None, metadata={"env": "TRAILCACHE_PROMETHEUS_PORT"}
    )


CONFIG_SECTION_NAMES: tuple[str, ...] = (
    "cache",
    "fetch",
    "filters",
    "telemetry",
)


@dataclass
class UnifiedConfig:
    """Configuration aggregating every trailcache section."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    filters: FiltersConfig = field(default_factory=FiltersConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    present_sections: FrozenSet[str] = field(default_factory=frozenset)


def find_config_file(cwd: Path | None = None) -> str | None:
    """Return the first discoverable configuration file in ``cwd``."""

    base = Path.cwd() if cwd is None else cwd

    for name in ("trailcache.yml", "trailcache.yaml"):
        candidate = base / name
        if candidate.is_file():
            return str(candidate)
    return None


def _read_config_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                logger.error("Failed to parse configuration file %s: %s", path, exc)
                raise ValueError(f"Failed to parse configuration file {path}") from exc
    except (FileNotFoundError, OSError) as exc:
        logger.error("Unable to open configuration file %s: %s", path, exc)
        raise

    if not isinstance(data, dict):
        raise TypeError("Unified config must be a mapping")
    return data


def _extract_sections(
    data: Mapping[str, Any],
) -> tuple[dict[str, dict[str, Any]], FrozenSet[str]]:
    unknown = sorted(set(data) - set(CONFIG_SECTION_NAMES))
    if unknown:
        raise TypeError(f"Unknown configuration section(s): {', '.join(unknown)}")

    present_sections: FrozenSet[str] = frozenset(
        section
        for section in CONFIG_SECTION_NAMES
        if section in data and isinstance(data.get(section), dict)
    )

    sections: dict[str, dict[str, Any]] = {}
    for section_name in CONFIG_SECTION_NAMES:
        raw_section = data.get(section_name, {})
        if raw_section is None:
            raw_section = {}
        if not isinstance(raw_section, dict):
            raise TypeError(f"{section_name} section must be a mapping")
        sections[section_name] = dict(raw_section)
    return sections, present_sections


def _coerce_env_value(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def apply_env_overrides(section: Any, environ: Mapping[str, str] | None = None) -> Any:
    """Overwrite dataclass fields of ``section`` from their ``env`` metadata."""

    env = os.environ if environ is None else environ
    for f in fields(section):
        key = f.metadata.get("env")
        if not key or key not in env:
            continue
        current = getattr(section, f.name)
        if current is None:
            # Optional numeric knobs default to ``None``; parse them as ints.
            raw = env[key]
            value: Any = int(raw) if raw.strip().lstrip("-").isdigit() else raw
        else:
            value = _coerce_env_value(env[key], current)
        logger.debug("config override %s=%r from %s", f.name, value, key)
        setattr(section, f.name, value)
    return section


def load_config(path: str) -> UnifiedConfig:
    """Parse YAML/JSON and populate :class:`UnifiedConfig`."""

    data = _read_config_mapping(path)
    sections, present_sections = _extract_sections(data)

    cache_cfg = CacheConfig(**sections["cache"])
    fetch_cfg = FetchConfig(**sections["fetch"])
    filters_cfg = FiltersConfig(**sections["filters"])
    telemetry_cfg = TelemetryConfig(**sections["telemetry"])

    return apply_overrides(
        UnifiedConfig(
            cache=cache_cfg,
            fetch=fetch_cfg,
            filters=filters_cfg,
            telemetry=telemetry_cfg,
            present_sections=present_sections,
        )
    )


def apply_overrides(
    config: UnifiedConfig, environ: Mapping[str, str] | None = None
) -> UnifiedConfig:
    """Apply environment overrides to every section of ``config``."""

    for section_name in CONFIG_SECTION_NAMES:
        apply_env_overrides(getattr(config, section_name), environ)
    return config


def default_config(environ: Mapping[str, str] | None = None) -> UnifiedConfig:
    """Return defaults with environment overrides applied."""

    return apply_overrides(UnifiedConfig(), environ)


__all__ = [
    "CONFIG_SECTION_NAMES",
    "CacheConfig",
    "FetchConfig",
    "FiltersConfig",
    "TelemetryConfig",
    "UnifiedConfig",
    "apply_env_overrides",
    "apply_overrides",
    "default_config",
    "find_config_file",
    "load_config",
]
