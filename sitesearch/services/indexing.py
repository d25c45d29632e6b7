"""Indexing job lifecycle: one crawler per configured site, start/stop guards."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from requests import Session

from ..config import AppConfig, SiteConfig
from ..database import Database
from ..models import SiteStatus
from ..repositories import SiteRepository
from .crawler import SiteCrawler
from .frontier import CancelToken
from .index_builder import IndexBuilder

LOGGER = logging.getLogger("sitesearch.indexing")

ALREADY_RUNNING = "indexing already running"
NOT_RUNNING = "indexing not running"
PAGE_FAILED = "could not index page"
NO_SITES = "no sites configured"
STOPPED_BY_USER = "Indexing stopped by user"


@dataclass
class IndexingResult:
    ok: bool
    error: str | None = None


@dataclass
class _Run:
    token: CancelToken
    executor: ThreadPoolExecutor
    futures: Dict[Future, SiteConfig]


class IndexingService:
    """Fan an indexing request out to per-site crawlers and track the run."""

    def __init__(
        self,
        config: AppConfig,
        database: Database,
        index_builder: IndexBuilder,
        *,
        session_factory: Optional[Callable[[], Session]] = None,
    ) -> None:
        self.config = config
        self.database = database
        self.index_builder = index_builder
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._site_lock = threading.Lock()
        self._run: Optional[_Run] = None
        self._monitor: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Состояние
    # ------------------------------------------------------------------
    def is_running(self) -> bool:
        return self._run is not None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the monitor of the current run finishes; returns True if it did."""
        monitor = self._monitor
        if monitor is None:
            return True
        monitor.join(timeout)
        return not monitor.is_alive()

    # ------------------------------------------------------------------
    # Запуск и остановка
    # ------------------------------------------------------------------
    def start_indexing(self) -> IndexingResult:
        with self._lock:
            if self._run is not None:
                LOGGER.info("Indexing already running")
                return IndexingResult(False, ALREADY_RUNNING)
            sites = list(self.config.sites)
            if not sites:
                return IndexingResult(False, NO_SITES)

            settings = self.config.indexing
            pool_size = max(1, min(settings.orchestrator_pool_cap, len(sites) * settings.orchestrator_pool_per_site))
            token = CancelToken()
            executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="site-indexer")
            futures = {executor.submit(self._index_site, site, token): site for site in sites}
            run = _Run(token=token, executor=executor, futures=futures)
            self._run = run
            LOGGER.info("Starting indexing for %s sites (pool=%s)", len(sites), pool_size)

            self._monitor = threading.Thread(target=self._monitor_run, args=(run,), name="indexing-monitor", daemon=True)
            self._monitor.start()
        return IndexingResult(True)

    def stop_indexing(self) -> IndexingResult:
        with self._lock:
            run = self._run
            if run is None:
                LOGGER.info("No active indexing to stop")
                return IndexingResult(False, NOT_RUNNING)

            LOGGER.info("Stopping indexing")
            run.token.cancel()
            for future in run.futures:
                future.cancel()
            _, not_done = wait(list(run.futures), timeout=self.config.indexing.stop_grace_seconds)
            if not_done:
                LOGGER.warning("%s site tasks did not finish within the grace period", len(not_done))
            run.executor.shutdown(wait=False, cancel_futures=True)

            with self.database.session() as session:
                failed = SiteRepository(session).fail_indexing(STOPPED_BY_USER)
            LOGGER.info("Indexing stopped, %s sites marked as failed", failed)
            self._run = None
        return IndexingResult(True)

    def index_page(self, url: str) -> IndexingResult:
        site_config = self.config.site_for_url(url)
        if site_config is None:
            LOGGER.warning("Page %s is outside of configured sites", url)
            return IndexingResult(False, PAGE_FAILED)

        site_id, created = self._ensure_site(site_config)
        crawler = self._crawler(site_config, site_id, CancelToken())
        try:
            crawler.crawl_single_page(url)
        except Exception as exc:  # noqa: BLE001 - сообщаем вызывающему отрицательный результат
            LOGGER.error("Error indexing page %s: %s", url, exc)
            self._finish_single_page(site_id, created, SiteStatus.FAILED, str(exc))
            return IndexingResult(False, PAGE_FAILED)
        self._finish_single_page(site_id, created, SiteStatus.INDEXED, None)
        return IndexingResult(True)

    # ------------------------------------------------------------------
    # Внутренние шаги
    # ------------------------------------------------------------------
    def _crawler(self, site: SiteConfig, site_id: int, token: CancelToken) -> SiteCrawler:
        return SiteCrawler(
            site,
            site_id,
            database=self.database,
            settings=self.config.indexing,
            index_builder=self.index_builder,
            token=token,
            session=self._session_factory() if self._session_factory else None,
        )

    def _index_site(self, site: SiteConfig, token: CancelToken) -> None:
        site_id: Optional[int] = None
        try:
            if token.cancelled:
                return
            site_id = self._prepare_site(site)
            self._crawler(site, site_id, token).crawl_site()
        except Exception as exc:  # noqa: BLE001 - сбой сайта не должен останавливать остальные
            LOGGER.exception("Indexing failed for %s: %s", site.url, exc)
            if site_id is not None:
                with self.database.session() as session:
                    SiteRepository(session).set_status_if(site_id, SiteStatus.INDEXING, SiteStatus.FAILED, str(exc))
        finally:
            if site_id is not None and token.cancelled:
                with self.database.session() as session:
                    SiteRepository(session).set_status_if(
                        site_id, SiteStatus.INDEXING, SiteStatus.FAILED, STOPPED_BY_USER
                    )

    def _prepare_site(self, site: SiteConfig) -> int:
        """Drop every record of the previous run for ``site.url`` and start a fresh one."""
        with self._site_lock:
            with self.database.session() as session:
                repo = SiteRepository(session)
                existing = repo.find_by_url(site.url)
                while existing is not None:
                    repo.purge(existing)
                    existing = repo.find_by_url(site.url)
                repo.reset_identity()
                return repo.create(site.url, site.name, SiteStatus.INDEXING).id

    def _ensure_site(self, site: SiteConfig) -> tuple[int, bool]:
        with self._site_lock:
            with self.database.session() as session:
                repo = SiteRepository(session)
                existing = repo.find_by_url(site.url)
                if existing is not None:
                    return existing.id, False
                return repo.create(site.url, site.name, SiteStatus.INDEXING).id, True

    def _finish_single_page(self, site_id: int, created: bool, status: SiteStatus, error: str | None) -> None:
        with self.database.session() as session:
            repo = SiteRepository(session)
            if created:
                repo.set_status(site_id, status, error)
                return
            current = repo.get(site_id)
            # статус сайта, который сейчас обходится, не трогаем
            if current is None or (current.status == SiteStatus.INDEXING and self.is_running()):
                return
            repo.set_status(site_id, status, error)

    def _monitor_run(self, run: _Run) -> None:
        interval = self.config.indexing.monitor_interval
        while not run.token.cancelled and not all(f.done() for f in run.futures):
            run.token.wait(interval)
        with self._lock:
            if self._run is run:
                self._run = None
                run.executor.shutdown(wait=False)
                LOGGER.info("Indexing run finished")
