"""Inverted index maintenance: lemma frequencies and page postings."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete

from .. import models
from ..database import Database
from ..repositories import LemmaRepository, PageRepository, PostingRepository
from .frontier import KeyedLock
from .lemmas import LemmaExtractor

LOGGER = logging.getLogger("sitesearch.index_builder")


class IndexBuilder:
    """Upsert Lemma and Posting rows for crawled pages.

    ``Lemma.frequency`` counts pages, not occurrences. The find-or-create and
    increment of a ``(site, lemma)`` row happens while holding that key's lock,
    so concurrent crawl workers never lose an update.
    """

    def __init__(
        self,
        database: Database,
        extractor: LemmaExtractor,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.database = database
        self.extractor = extractor
        self._locks = locks or KeyedLock()

    def index_page_content(self, page_id: int, site_id: int, text: str) -> int:
        """Index ``text`` of an already saved page; returns the number of distinct lemmas."""
        counts = self.extractor.extract_counts(text)
        if not counts:
            return 0
        with self._locks.hold((site_id, lemma) for lemma in counts):
            with self.database.session() as session:
                lemmas = LemmaRepository(session)
                postings = PostingRepository(session)
                for lemma_text, occurrences in counts.items():
                    lemma = lemmas.get_or_create(site_id, lemma_text)
                    lemma.frequency += 1
                    postings.replace(page_id, lemma.id, float(occurrences))
        LOGGER.debug("Indexed page %s: %s lemmas", page_id, len(counts))
        return len(counts)

    def remove_page(self, site_id: int, path: str) -> bool:
        """Delete the page at ``path`` and roll back its contribution to lemma frequencies."""
        with self.database.session() as session:
            page = PageRepository(session).find_by_path(site_id, path)
            if page is None:
                return False
            keys = [(site_id, posting.lemma.lemma) for posting in PostingRepository(session).for_page(page.id)]

        with self._locks.hold(keys):
            with self.database.session() as session:
                pages = PageRepository(session)
                page = pages.find_by_path(site_id, path)
                if page is None:
                    return False
                orphaned = []
                for posting in PostingRepository(session).for_page(page.id):
                    lemma = posting.lemma
                    lemma.frequency -= 1
                    if lemma.frequency <= 0:
                        orphaned.append(lemma.id)
                pages.delete(page)
                if orphaned:
                    session.execute(
                        delete(models.Lemma)
                        .where(models.Lemma.id.in_(orphaned))
                        .execution_options(synchronize_session=False)
                    )
        LOGGER.info("Removed page %s from site %s index", path, site_id)
        return True
