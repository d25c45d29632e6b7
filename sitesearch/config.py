"""Configuration helpers for SiteSearch.

Settings are loaded into ``AppConfig`` dataclasses: scalar values come from
environment variables (optionally seeded by a ``.env`` file), structured values
such as the site list and per-domain tables come from a JSON settings file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

LOGGER = logging.getLogger("sitesearch.config")


def _env(key: str, default: str) -> str:
    value = os.getenv(key)
    return value if value is not None else default


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env(key, str(default)))
    except ValueError:
        return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int_map(raw: Any) -> Dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    result: Dict[str, int] = {}
    for key, value in raw.items():
        try:
            result[str(key).lower()] = int(value)
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring non-numeric value for %s: %r", key, value)
    return result


def _load_dotenv(base_dir: Path) -> None:
    env_path = base_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path)


@dataclass(frozen=True)
class SiteConfig:
    url: str
    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "url", self.url.strip().rstrip("/"))


@dataclass(slots=True)
class IndexingSettings:
    """Crawl and ranking parameters shared by every indexing run."""

    user_agent: str = "SiteSearchBot/1.0 (+https://example.org/bot)"
    timeout_ms: int = 10000
    min_delay_ms: int = 500
    default_delay_ms: int = 1000
    site_delays: Dict[str, int] = field(default_factory=dict)
    max_retries: int = 3
    max_depth: int = 5
    site_depths: Dict[str, int] = field(default_factory=dict)
    max_pages_per_site: int = 1000
    max_concurrent_pages: int = 4
    exclude_patterns: List[str] = field(default_factory=list)
    status_touch_every: int = 100
    frequency_threshold: float = 0.8
    excluded_result_paths: Tuple[str, ...] = ("/admin/", "/api/")
    orchestrator_pool_cap: int = 32
    orchestrator_pool_per_site: int = 4
    monitor_interval: float = 5.0
    stop_grace_seconds: float = 10.0
    crawl_grace_seconds: float = 120.0

    def delay_for(self, domain: str) -> int:
        return self.site_delays.get(domain, self.default_delay_ms)

    def depth_for(self, domain: str) -> int:
        return self.site_depths.get(domain, self.max_depth)

    @classmethod
    def from_mapping(cls, raw: Dict[str, Any] | None) -> "IndexingSettings":
        raw = raw or {}
        base = cls()
        delays = raw.get("delays") or {}
        excluded = raw.get("excluded_result_paths")
        return cls(
            user_agent=str(raw.get("user_agent") or base.user_agent),
            timeout_ms=_as_int(raw.get("timeout_ms"), base.timeout_ms),
            min_delay_ms=_as_int(raw.get("min_delay_ms"), base.min_delay_ms),
            default_delay_ms=_as_int(delays.get("default"), base.default_delay_ms),
            site_delays=_int_map(delays.get("site_specific")),
            max_retries=max(1, _as_int(raw.get("max_retries"), base.max_retries)),
            max_depth=_as_int(raw.get("max_depth"), base.max_depth),
            site_depths=_int_map(raw.get("site_depths")),
            max_pages_per_site=_as_int(raw.get("max_pages_per_site"), base.max_pages_per_site),
            max_concurrent_pages=max(1, _as_int(raw.get("max_concurrent_pages"), base.max_concurrent_pages)),
            exclude_patterns=[str(p) for p in raw.get("exclude_patterns") or []],
            status_touch_every=max(1, _as_int(raw.get("status_touch_every"), base.status_touch_every)),
            frequency_threshold=_as_float(raw.get("frequency_threshold"), base.frequency_threshold),
            excluded_result_paths=tuple(excluded) if excluded is not None else base.excluded_result_paths,
            orchestrator_pool_cap=_as_int(raw.get("orchestrator_pool_cap"), base.orchestrator_pool_cap),
            orchestrator_pool_per_site=_as_int(raw.get("orchestrator_pool_per_site"), base.orchestrator_pool_per_site),
            monitor_interval=_as_float(raw.get("monitor_interval"), base.monitor_interval),
            stop_grace_seconds=_as_float(raw.get("stop_grace_seconds"), base.stop_grace_seconds),
            crawl_grace_seconds=_as_float(raw.get("crawl_grace_seconds"), base.crawl_grace_seconds),
        )

    def apply_env(self) -> None:
        self.user_agent = _env("SITESEARCH_USER_AGENT", self.user_agent)
        self.timeout_ms = _env_int("SITESEARCH_TIMEOUT_MS", self.timeout_ms)
        self.min_delay_ms = _env_int("SITESEARCH_MIN_DELAY_MS", self.min_delay_ms)
        self.max_retries = max(1, _env_int("SITESEARCH_MAX_RETRIES", self.max_retries))
        self.max_depth = _env_int("SITESEARCH_MAX_DEPTH", self.max_depth)
        self.max_pages_per_site = _env_int("SITESEARCH_MAX_PAGES", self.max_pages_per_site)
        self.max_concurrent_pages = max(1, _env_int("SITESEARCH_MAX_CONCURRENT_PAGES", self.max_concurrent_pages))


@dataclass(slots=True)
class AppConfig:
    base_dir: Path
    data_dir: Path
    database_url: str
    log_level: str = "INFO"
    secret_key: str = "dev"
    sites: List[SiteConfig] = field(default_factory=list)
    indexing: IndexingSettings = field(default_factory=IndexingSettings)
    log_file_path: Path = field(init=False)

    def __post_init__(self) -> None:
        self.log_file_path = self.data_dir / "logs" / "sitesearch.log"

    def site_for_url(self, url: str) -> Optional[SiteConfig]:
        """Return the configured site whose base URL prefixes ``url``."""
        candidate = (url or "").strip()
        for site in self.sites:
            if candidate == site.url or candidate.startswith(site.url + "/"):
                return site
        return None


def _read_settings_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a JSON object")
    return data


def load_config(base_dir: Path | None = None, settings_path: Path | None = None) -> AppConfig:
    base = Path(base_dir or os.getenv("SITESEARCH_HOME") or Path.cwd())
    _load_dotenv(base)
    data_dir = base / "sitesearch-data"
    data_dir.mkdir(parents=True, exist_ok=True)

    settings_file = Path(settings_path or _env("SITESEARCH_SETTINGS", str(base / "sitesearch.json")))
    raw = _read_settings_file(settings_file)

    sites = [
        SiteConfig(url=str(item["url"]), name=str(item.get("name") or item["url"]))
        for item in raw.get("sites") or []
        if isinstance(item, dict) and item.get("url")
    ]
    indexing = IndexingSettings.from_mapping(raw.get("indexing"))
    indexing.apply_env()

    default_db = f"sqlite:///{data_dir / 'sitesearch.db'}"
    return AppConfig(
        base_dir=base,
        data_dir=data_dir,
        database_url=_env("SITESEARCH_DATABASE_URL", default_db),
        log_level=_env("SITESEARCH_LOG_LEVEL", "INFO"),
        secret_key=_env("SITESEARCH_SECRET_KEY", "dev"),
        sites=sites,
        indexing=indexing,
    )
