"""Index statistics for the dashboard."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..database import Database
from ..models import SiteStatus
from ..repositories import LemmaRepository, PageRepository, SiteRepository


def epoch_seconds(value: datetime | None) -> int:
    if value is None:
        return 0
    return calendar.timegm(value.utctimetuple())


@dataclass
class TotalStatistics:
    sites: int = 0
    pages: int = 0
    lemmas: int = 0
    indexing: bool = False

    def to_dict(self) -> dict:
        return {"sites": self.sites, "pages": self.pages, "lemmas": self.lemmas, "indexing": self.indexing}


@dataclass
class SiteStatistics:
    url: str
    name: str
    status: str
    status_time: int
    error: Optional[str]
    pages: int
    lemmas: int

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "name": self.name,
            "status": self.status,
            "statusTime": self.status_time,
            "error": self.error,
            "pages": self.pages,
            "lemmas": self.lemmas,
        }


@dataclass
class Statistics:
    total: TotalStatistics = field(default_factory=TotalStatistics)
    detailed: List[SiteStatistics] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"total": self.total.to_dict(), "detailed": [item.to_dict() for item in self.detailed]}


class StatisticsService:
    def __init__(self, database: Database, indexing_service=None) -> None:
        self.database = database
        self.indexing_service = indexing_service

    def get_statistics(self) -> Statistics:
        with self.database.session() as session:
            sites = SiteRepository(session)
            pages = PageRepository(session)
            lemmas = LemmaRepository(session)

            detailed = [
                SiteStatistics(
                    url=site.url,
                    name=site.name,
                    status=SiteStatus(site.status).value,
                    status_time=epoch_seconds(site.status_time),
                    error=site.last_error,
                    pages=pages.count_by_site(site.id),
                    lemmas=lemmas.count_by_site(site.id),
                )
                for site in sites.list_all()
            ]
            running = bool(self.indexing_service and self.indexing_service.is_running())
            total = TotalStatistics(
                sites=len(detailed),
                pages=pages.count(),
                lemmas=lemmas.count(),
                indexing=running or any(item.status == SiteStatus.INDEXING.value for item in detailed),
            )
        return Statistics(total=total, detailed=detailed)
