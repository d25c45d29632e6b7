"""Bootstrap helpers that assemble all runtime components."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from requests import Session

from .config import AppConfig, load_config
from .database import Database
from .services.index_builder import IndexBuilder
from .services.indexing import IndexingService
from .services.lemmas import LemmaExtractor
from .services.morphology import MorphologyAdapter
from .services.search import SearchService
from .services.statistics import StatisticsService

LOGGER = logging.getLogger("sitesearch.bootstrap")


@dataclass
class AppContext:
    config: AppConfig
    database: Database
    extractor: LemmaExtractor
    index_builder: IndexBuilder
    indexing: IndexingService
    search: SearchService
    statistics: StatisticsService

    def shutdown(self) -> None:
        if self.indexing.is_running():
            self.indexing.stop_indexing()
        self.database.dispose()


def build_context(
    config: AppConfig | None = None,
    *,
    morphology: Optional[MorphologyAdapter] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> AppContext:
    config = config or load_config()
    LOGGER.info("Loaded config: %s sites, database %s", len(config.sites), config.database_url)
    database = Database(config.database_url)
    database.create_all()

    extractor = LemmaExtractor(morphology)
    index_builder = IndexBuilder(database, extractor)
    indexing = IndexingService(config, database, index_builder, session_factory=session_factory)
    search = SearchService(database, extractor, config.indexing)
    statistics = StatisticsService(database, indexing)
    return AppContext(config, database, extractor, index_builder, indexing, search, statistics)
