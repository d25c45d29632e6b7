"""Service layer helpers for SiteSearch."""

from .logging import configure_logging, get_rotating_log_handler
from .http import HttpSettings, create_session, http_get
from .morphology import MorphologyAdapter, WordAnalysis
from .lemmas import LemmaExtractor
from .frontier import CancelToken, CrawlFrontier, KeyedLock
from .index_builder import IndexBuilder
from .crawler import CrawlError, CrawlStats, PageFetchError, SiteCrawler
from .indexing import IndexingResult, IndexingService
from .search import SearchResponse, SearchResult, SearchService
from .snippet import extract_title, generate_snippet
from .statistics import Statistics, StatisticsService

__all__ = [
    "configure_logging",
    "get_rotating_log_handler",
    "HttpSettings",
    "create_session",
    "http_get",
    "MorphologyAdapter",
    "WordAnalysis",
    "LemmaExtractor",
    "CancelToken",
    "CrawlFrontier",
    "KeyedLock",
    "IndexBuilder",
    "CrawlError",
    "CrawlStats",
    "PageFetchError",
    "SiteCrawler",
    "IndexingResult",
    "IndexingService",
    "SearchResponse",
    "SearchResult",
    "SearchService",
    "extract_title",
    "generate_snippet",
    "Statistics",
    "StatisticsService",
]
