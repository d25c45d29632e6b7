"""Query-time search: lemma intersection and TF-IDF ranking over the inverted index."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..config import IndexingSettings
from ..database import Database
from ..models import SiteStatus
from ..repositories import LemmaRepository, PageRepository, PostingRepository, SiteRepository
from .. import utils
from .lemmas import LemmaExtractor
from .snippet import extract_title, generate_snippet

EMPTY_QUERY = "empty search query"
SITE_NOT_INDEXED = "site not found or not indexed yet"
NOTHING_INDEXED = "no indexed sites yet"
SEARCH_FAILED = "search failed"


@dataclass
class SearchResult:
    site: str
    site_name: str
    uri: str
    title: str
    snippet: str
    relevance: float

    def to_dict(self) -> dict:
        return {
            "site": self.site,
            "siteName": self.site_name,
            "uri": self.uri,
            "title": self.title,
            "snippet": self.snippet,
            "relevance": self.relevance,
        }


@dataclass
class SearchResponse:
    result: bool
    count: int = 0
    error: Optional[str] = None
    data: List[SearchResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "result": self.result,
            "count": self.count,
            "error": self.error,
            "data": [item.to_dict() for item in self.data],
        }


class SearchService:
    """Read-only ranking over Lemma/Posting rows of indexed sites."""

    def __init__(
        self,
        database: Database,
        extractor: LemmaExtractor,
        settings: IndexingSettings,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.database = database
        self.extractor = extractor
        self.settings = settings
        self.logger = logger or logging.getLogger("sitesearch.search")

    def search(self, query: str | None, site_url: str | None = None, offset: int = 0, limit: int = 20) -> SearchResponse:
        if not query or not query.strip():
            return SearchResponse(False, error=EMPTY_QUERY)
        offset = max(0, int(offset or 0))
        limit = max(0, int(limit if limit is not None else 20))

        try:
            with self.database.session() as session:
                sites = self._candidate_sites(session, site_url)
                if not sites:
                    return SearchResponse(False, error=SITE_NOT_INDEXED if site_url else NOTHING_INDEXED)

                query_lemmas = self.extractor.extract_set(query)
                if not query_lemmas:
                    return SearchResponse(True, 0)

                results: List[SearchResult] = []
                for site in sites:
                    results.extend(self._search_site(session, site, query_lemmas, query))
        except SQLAlchemyError as exc:
            self.logger.exception("Search for %r failed: %s", query, exc)
            return SearchResponse(False, error=SEARCH_FAILED)

        unique: Dict[str, SearchResult] = {}
        for item in results:
            unique.setdefault(item.uri, item)
        ranked = sorted(unique.values(), key=lambda item: item.relevance, reverse=True)
        return SearchResponse(True, len(ranked), None, ranked[offset:offset + limit])

    # ------------------------------------------------------------------
    # Шаги поиска по одному сайту
    # ------------------------------------------------------------------
    def _candidate_sites(self, session: Session, site_url: str | None) -> List[models.Site]:
        repo = SiteRepository(session)
        if site_url:
            site = repo.find_by_url(utils.normalize_base_url(site_url))
            return [site] if site is not None and site.status == SiteStatus.INDEXED else []
        return repo.list_by_status(SiteStatus.INDEXED)

    def filter_lemmas(self, lemmas: Sequence[models.Lemma], total_pages: int) -> List[models.Lemma]:
        """Drop lemmas present on too many pages and order the rest rarest first."""
        threshold = total_pages * self.settings.frequency_threshold
        kept = [lemma for lemma in lemmas if 0 < lemma.frequency <= threshold]
        return sorted(kept, key=lambda lemma: (lemma.frequency, lemma.lemma))

    @staticmethod
    def intersect_pages(postings: PostingRepository, lemmas: Sequence[models.Lemma]) -> Set[int]:
        if not lemmas:
            return set()
        page_ids = postings.page_ids_for_lemma(lemmas[0].id)
        for lemma in lemmas[1:]:
            if not page_ids:
                break
            page_ids &= postings.page_ids_for_lemma(lemma.id)
        return page_ids

    @staticmethod
    def score_pages(
        ranks: Dict[tuple[int, int], float],
        page_ids: Sequence[int],
        lemmas: Sequence[models.Lemma],
        total_pages: int,
    ) -> Dict[int, float]:
        """Sum ``rank * ln(total / frequency)`` per page, normalized by the maximum score."""
        scores: Dict[int, float] = {}
        for page_id in page_ids:
            score = 0.0
            for lemma in lemmas:
                rank = ranks.get((page_id, lemma.id))
                if rank is not None:
                    score += rank * math.log(total_pages / lemma.frequency)
            scores[page_id] = score
        best = max(scores.values(), default=0.0)
        if best > 0:
            scores = {page_id: score / best for page_id, score in scores.items()}
        return scores

    def _search_site(
        self, session: Session, site: models.Site, query_lemmas: Set[str], query: str
    ) -> List[SearchResult]:
        total_pages = PageRepository(session).count_by_site(site.id)
        lemmas = self.filter_lemmas(LemmaRepository(session).find_many(site.id, query_lemmas), total_pages)
        if not lemmas:
            return []

        postings = PostingRepository(session)
        page_ids = sorted(self.intersect_pages(postings, lemmas))
        if not page_ids:
            return []

        ranks = postings.ranks(page_ids, [lemma.id for lemma in lemmas])
        scores = self.score_pages(ranks, page_ids, lemmas, total_pages)

        results: List[SearchResult] = []
        for page in PageRepository(session).get_many(page_ids):
            if any(marker in page.path for marker in self.settings.excluded_result_paths):
                continue
            results.append(
                SearchResult(
                    site=site.url,
                    site_name=site.name,
                    uri=page.path,
                    title=extract_title(page.content),
                    snippet=generate_snippet(page.content, query, query_lemmas, self.extractor),
                    relevance=scores.get(page.id, 0.0),
                )
            )
        self.logger.debug("Site %s: %s results for %r", site.url, len(results), query)
        return results
