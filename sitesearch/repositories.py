"""Repository layer over the site/page/lemma/posting tables."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.orm import Session

from . import models
from .models import SiteStatus


class BaseRepository:
    def __init__(self, session: Session):
        self.session = session


class SiteRepository(BaseRepository):
    def get(self, site_id: int) -> Optional[models.Site]:
        return self.session.get(models.Site, site_id)

    def find_by_url(self, url: str) -> Optional[models.Site]:
        stmt = select(models.Site).where(models.Site.url == url).order_by(models.Site.id.desc())
        return self.session.scalars(stmt).first()

    def list_all(self) -> List[models.Site]:
        return list(self.session.scalars(select(models.Site).order_by(models.Site.id)))

    def list_by_status(self, status: SiteStatus) -> List[models.Site]:
        stmt = select(models.Site).where(models.Site.status == status).order_by(models.Site.id)
        return list(self.session.scalars(stmt))

    def count(self) -> int:
        return int(self.session.scalar(select(func.count(models.Site.id))) or 0)

    def create(self, url: str, name: str, status: SiteStatus = SiteStatus.INDEXING) -> models.Site:
        site = models.Site(url=url, name=name, status=status, status_time=datetime.utcnow())
        self.session.add(site)
        self.session.flush()
        return site

    def purge(self, site: models.Site) -> None:
        """Delete the site together with all of its pages, lemmas and postings."""
        page_ids = select(models.Page.id).where(models.Page.site_id == site.id)
        self.session.execute(
            delete(models.Posting).where(models.Posting.page_id.in_(page_ids)).execution_options(
                synchronize_session=False
            )
        )
        self.session.execute(
            delete(models.Page).where(models.Page.site_id == site.id).execution_options(synchronize_session=False)
        )
        self.session.execute(
            delete(models.Lemma).where(models.Lemma.site_id == site.id).execution_options(synchronize_session=False)
        )
        self.session.execute(
            delete(models.Site).where(models.Site.id == site.id).execution_options(synchronize_session=False)
        )
        self.session.expunge(site)

    def reset_identity(self) -> None:
        """Restart the site id counter when the table is empty.

        Only SQLite and MySQL are handled; other dialects keep their sequence.
        """
        if self.count():
            return
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            self.session.execute(text("DELETE FROM sqlite_sequence WHERE name = 'site'"))
        elif dialect == "mysql":
            self.session.execute(text("ALTER TABLE site AUTO_INCREMENT = 1"))

    def set_status(self, site_id: int, status: SiteStatus, error: str | None = None) -> None:
        self.session.execute(
            update(models.Site)
            .where(models.Site.id == site_id)
            .values(status=status, last_error=error, status_time=datetime.utcnow())
        )

    def set_status_if(
        self, site_id: int, expected: SiteStatus, status: SiteStatus, error: str | None = None
    ) -> bool:
        """Compare-and-set the status; returns False when ``expected`` no longer holds."""
        result = self.session.execute(
            update(models.Site)
            .where(models.Site.id == site_id, models.Site.status == expected)
            .values(status=status, last_error=error, status_time=datetime.utcnow())
        )
        return bool(result.rowcount)

    def fail_indexing(self, message: str) -> int:
        result = self.session.execute(
            update(models.Site)
            .where(models.Site.status == SiteStatus.INDEXING)
            .values(status=SiteStatus.FAILED, last_error=message, status_time=datetime.utcnow())
        )
        return int(result.rowcount or 0)


class PageRepository(BaseRepository):
    def add(self, site_id: int, path: str, code: int, content: str) -> models.Page:
        page = models.Page(site_id=site_id, path=path, code=code, content=content)
        self.session.add(page)
        self.session.flush()
        return page

    def find_by_path(self, site_id: int, path: str) -> Optional[models.Page]:
        stmt = select(models.Page).where(models.Page.site_id == site_id, models.Page.path == path)
        return self.session.scalars(stmt).first()

    def get_many(self, page_ids: Iterable[int]) -> List[models.Page]:
        ids = list(page_ids)
        if not ids:
            return []
        stmt = select(models.Page).where(models.Page.id.in_(ids)).order_by(models.Page.id)
        return list(self.session.scalars(stmt))

    def count(self) -> int:
        return int(self.session.scalar(select(func.count(models.Page.id))) or 0)

    def count_by_site(self, site_id: int) -> int:
        stmt = select(func.count(models.Page.id)).where(models.Page.site_id == site_id)
        return int(self.session.scalar(stmt) or 0)

    def delete(self, page: models.Page) -> None:
        self.session.execute(
            delete(models.Posting).where(models.Posting.page_id == page.id).execution_options(
                synchronize_session=False
            )
        )
        self.session.delete(page)
        self.session.flush()


class LemmaRepository(BaseRepository):
    def find(self, site_id: int, lemma: str) -> Optional[models.Lemma]:
        stmt = select(models.Lemma).where(models.Lemma.site_id == site_id, models.Lemma.lemma == lemma)
        return self.session.scalar(stmt)

    def find_many(self, site_id: int, lemmas: Iterable[str]) -> List[models.Lemma]:
        values = list(lemmas)
        if not values:
            return []
        stmt = select(models.Lemma).where(models.Lemma.site_id == site_id, models.Lemma.lemma.in_(values))
        return list(self.session.scalars(stmt))

    def get_or_create(self, site_id: int, lemma: str) -> models.Lemma:
        row = self.find(site_id, lemma)
        if row:
            return row
        row = models.Lemma(site_id=site_id, lemma=lemma, frequency=0)
        self.session.add(row)
        self.session.flush()
        return row

    def count(self) -> int:
        return int(self.session.scalar(select(func.count(models.Lemma.id))) or 0)

    def count_by_site(self, site_id: int) -> int:
        stmt = select(func.count(models.Lemma.id)).where(models.Lemma.site_id == site_id)
        return int(self.session.scalar(stmt) or 0)


class PostingRepository(BaseRepository):
    def replace(self, page_id: int, lemma_id: int, rank: float) -> models.Posting:
        stmt = select(models.Posting).where(
            models.Posting.page_id == page_id, models.Posting.lemma_id == lemma_id
        )
        posting = self.session.scalar(stmt)
        if posting:
            posting.rank = rank
        else:
            posting = models.Posting(page_id=page_id, lemma_id=lemma_id, rank=rank)
            self.session.add(posting)
        return posting

    def for_page(self, page_id: int) -> List[models.Posting]:
        stmt = select(models.Posting).where(models.Posting.page_id == page_id)
        return list(self.session.scalars(stmt))

    def page_ids_for_lemma(self, lemma_id: int) -> Set[int]:
        stmt = select(models.Posting.page_id).where(models.Posting.lemma_id == lemma_id)
        return set(self.session.scalars(stmt))

    def ranks(self, page_ids: Sequence[int], lemma_ids: Sequence[int]) -> Dict[tuple[int, int], float]:
        """Map ``(page_id, lemma_id)`` to rank for the given cross product."""
        if not page_ids or not lemma_ids:
            return {}
        stmt = select(models.Posting.page_id, models.Posting.lemma_id, models.Posting.rank).where(
            models.Posting.page_id.in_(list(page_ids)),
            models.Posting.lemma_id.in_(list(lemma_ids)),
        )
        return {(page_id, lemma_id): float(rank) for page_id, lemma_id, rank in self.session.execute(stmt)}
