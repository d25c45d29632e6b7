"""Single-site crawler: breadth-first discovery, fetch with retry, page indexing."""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Pattern

import requests
from requests import Response, Session
from sqlalchemy.exc import SQLAlchemyError

from ..config import IndexingSettings, SiteConfig
from ..database import Database
from ..models import SiteStatus
from ..repositories import PageRepository, SiteRepository
from .. import utils
from .frontier import CancelToken, CrawlFrontier, FrontierEntry
from .html import document_text, extract_links, parse_document
from .http import HttpSettings, create_session, http_get
from .index_builder import IndexBuilder

# скрипты, формы входа и служебные разделы
BUILTIN_DENYLIST = re.compile(r".*(\.(php|asp|aspx|jsp|cgi|do|action)|\?|&|#|login|admin|auth|register).*", re.I)


class CrawlError(Exception):
    """Base error for crawl failures."""


class PageFetchError(CrawlError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class _Counter:
    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        return self._value


@dataclass
class CrawlStats:
    discovered: _Counter = field(default_factory=_Counter)
    saved: _Counter = field(default_factory=_Counter)
    failed: _Counter = field(default_factory=_Counter)

    def as_dict(self) -> dict:
        return {
            "discovered": self.discovered.value,
            "saved": self.saved.value,
            "failed": self.failed.value,
        }


class SiteCrawler:
    """Owns one indexing run for one site."""

    def __init__(
        self,
        site: SiteConfig,
        site_id: int,
        *,
        database: Database,
        settings: IndexingSettings,
        index_builder: IndexBuilder,
        token: Optional[CancelToken] = None,
        session: Optional[Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = utils.normalize_base_url(site.url)
        self.site = site
        self.site_id = site_id
        self.database = database
        self.settings = settings
        self.index_builder = index_builder
        self.token = token or CancelToken()
        self.domain = utils.get_domain(self.base_url)
        self.http_settings = HttpSettings.from_indexing(settings)
        self._owns_session = session is None
        self.http = session or create_session(self.http_settings)
        self.stats = CrawlStats()
        self.logger = logger or logging.getLogger("sitesearch.crawler")
        self._exclude: List[Pattern[str]] = [re.compile(p) for p in settings.exclude_patterns]
        self._frontier: Optional[CrawlFrontier] = None
        # close() drops pooled connections; a fetch in progress is bounded by timeout_ms
        self.token.on_cancel(self.http.close)

    # ------------------------------------------------------------------
    # Публичные операции
    # ------------------------------------------------------------------
    def crawl_site(self) -> CrawlStats:
        self.logger.info("Starting crawl of %s (%s)", self.site.name, self.base_url)
        started = time.monotonic()
        frontier = CrawlFrontier(
            self.domain or self.site.name,
            self._process_entry,
            max_workers=self.settings.max_concurrent_pages,
            max_size=self.settings.max_pages_per_site,
            token=self.token,
            logger=self.logger,
        )
        self._frontier = frontier
        frontier.start()
        try:
            self._enqueue("/", 0)
            drained = frontier.wait()
        finally:
            frontier.shutdown(self.settings.crawl_grace_seconds if not self.token.cancelled else 2.0)
            if self._owns_session:
                self.http.close()

        if drained and not self.token.cancelled:
            with self.database.session() as session:
                SiteRepository(session).set_status_if(self.site_id, SiteStatus.INDEXING, SiteStatus.INDEXED)
            self.logger.info(
                "Completed crawl of %s: %s in %.1fs", self.site.name, self.stats.as_dict(), time.monotonic() - started
            )
        else:
            self.logger.info("Crawl of %s cancelled: %s", self.site.name, frontier.stats())
        return self.stats

    def crawl_single_page(self, url: str) -> int:
        """Fetch and index exactly one URL; returns the new page id.

        Raises ``PageFetchError`` when the page cannot be fetched or stored.
        """
        path = utils.normalize_path(url, self.base_url)
        self.logger.info("Indexing single page %s", url)
        try:
            response = self._fetch_with_retry(url)
        finally:
            if self._owns_session:
                self.http.close()
        if response is None:
            raise PageFetchError(url, "page did not return HTTP 200")
        self.index_builder.remove_page(self.site_id, path)
        soup = parse_document(response.text)
        page_id = self._save_page(path, response.status_code, response.text)
        if page_id is None:
            raise PageFetchError(url, "page could not be stored")
        self.index_builder.index_page_content(page_id, self.site_id, document_text(soup))
        return page_id

    def should_skip(self, path: str, depth: int) -> bool:
        if depth > self.settings.depth_for(self.domain):
            return True
        if self._frontier is not None and self._frontier.is_full():
            return True
        return self.is_denied(path)

    def is_denied(self, path: str) -> bool:
        """True for paths matching an exclude pattern or the built-in denylist."""
        if any(pattern.fullmatch(path) for pattern in self._exclude):
            return True
        return bool(BUILTIN_DENYLIST.match(path))

    # ------------------------------------------------------------------
    # Обход
    # ------------------------------------------------------------------
    def _enqueue(self, path: str, depth: int) -> bool:
        if self.token.cancelled or self._frontier is None or self.should_skip(path, depth):
            return False
        url = utils.normalize_url(self.base_url + path)
        if self._frontier.admit(url, path, depth):
            self.stats.discovered.increment()
            return True
        return False

    def _process_entry(self, entry: FrontierEntry) -> None:
        try:
            self._fetch_and_index(entry)
        except Exception as exc:  # noqa: BLE001 - учитываем как сбой страницы
            self.stats.failed.increment()
            if self._frontier is not None:
                self._frontier.release(entry.url)
            self.logger.warning("Failed to process %s: %s", entry.url, exc)

    def _fetch_and_index(self, entry: FrontierEntry) -> None:
        response = self._fetch_with_retry(entry.url)
        if response is None:
            return
        soup = parse_document(response.text)
        links = extract_links(soup)
        text = document_text(soup)
        page_id = self._save_page(entry.path, response.status_code, response.text)
        if page_id is not None:
            self.index_builder.index_page_content(page_id, self.site_id, text)
        for href in links:
            if self.token.cancelled or (self._frontier is not None and self._frontier.is_full()):
                break
            if not utils.is_same_site_link(href, self.base_url):
                continue
            # запрос и фрагмент проверяются до нормализации
            if self.is_denied(utils.relative_path(href, self.base_url)):
                continue
            self._enqueue(utils.normalize_path(href, self.base_url), entry.depth + 1)

    # ------------------------------------------------------------------
    # Загрузка
    # ------------------------------------------------------------------
    def retry_delay(self, attempt: int) -> float:
        """Seconds to wait after ``attempt``: linear backoff over the domain courtesy delay."""
        delay_ms = max(self.settings.min_delay_ms, self.settings.delay_for(self.domain) * attempt)
        return delay_ms / 1000.0

    def _fetch_with_retry(self, url: str) -> Optional[Response]:
        attempts = self.settings.max_retries
        for attempt in range(1, attempts + 1):
            if self.token.cancelled:
                return None
            try:
                response = http_get(self.http, url, self.http_settings, logger=self.logger)
            except requests.RequestException as exc:
                if attempt == attempts or self.token.cancelled:
                    raise PageFetchError(url, str(exc)) from exc
                self.token.wait(self.retry_delay(attempt))
                continue

            self.token.wait(self.retry_delay(attempt))
            if response.status_code != 200:
                if attempt == attempts:
                    self.logger.warning("HTTP %s for %s", response.status_code, url)
                continue
            content_type = response.headers.get("Content-Type", "")
            if content_type and "html" not in content_type.lower():
                self.logger.debug("Skipping %s with content type %s", url, content_type)
                return None
            return response
        return None

    def _save_page(self, path: str, code: int, content: str) -> Optional[int]:
        try:
            with self.database.session() as session:
                page_id = PageRepository(session).add(self.site_id, path, code, content).id
        except SQLAlchemyError as exc:
            self.stats.failed.increment()
            self.logger.warning("Failed to save page %s: %s", path, exc)
            return None
        saved = self.stats.saved.increment()
        if saved % self.settings.status_touch_every == 0:
            with self.database.session() as session:
                SiteRepository(session).set_status_if(self.site_id, SiteStatus.INDEXING, SiteStatus.INDEXING)
            self.logger.info("%s: %s pages saved", self.site.name, saved)
        return page_id
