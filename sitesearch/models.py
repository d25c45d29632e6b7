"""ORM models for crawled sites, pages and the inverted index."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class SiteStatus(str, enum.Enum):
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


class Site(Base):
    __tablename__ = "site"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[SiteStatus] = mapped_column(
        Enum(SiteStatus, name="site_status", native_enum=False), nullable=False
    )
    status_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    pages: Mapped[List["Page"]] = relationship(
        "Page", back_populates="site", cascade="all, delete-orphan", passive_deletes=True
    )
    lemmas: Mapped[List["Lemma"]] = relationship(
        "Lemma", back_populates="site", cascade="all, delete-orphan", passive_deletes=True
    )


class Page(Base):
    __tablename__ = "page"
    __table_args__ = (Index("idx_page_path", "path"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("site.id", ondelete="CASCADE"), nullable=False, index=True)
    path: Mapped[str] = mapped_column(String(512), nullable=False)
    code: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    site: Mapped["Site"] = relationship("Site", back_populates="pages")
    postings: Mapped[List["Posting"]] = relationship(
        "Posting", back_populates="page", cascade="all, delete-orphan", passive_deletes=True
    )


class Lemma(Base):
    __tablename__ = "lemma"
    __table_args__ = (UniqueConstraint("site_id", "lemma", name="uix_lemma_site"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("site.id", ondelete="CASCADE"), nullable=False, index=True)
    lemma: Mapped[str] = mapped_column(String(255), nullable=False)
    frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    site: Mapped["Site"] = relationship("Site", back_populates="lemmas")
    postings: Mapped[List["Posting"]] = relationship(
        "Posting", back_populates="lemma", cascade="all, delete-orphan", passive_deletes=True
    )


class Posting(Base):
    """Weighted (page, lemma) association; ``rank`` is the occurrence count."""

    __tablename__ = "posting"
    __table_args__ = (UniqueConstraint("page_id", "lemma_id", name="uix_posting_page_lemma"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    page_id: Mapped[int] = mapped_column(ForeignKey("page.id", ondelete="CASCADE"), nullable=False, index=True)
    lemma_id: Mapped[int] = mapped_column(ForeignKey("lemma.id", ondelete="CASCADE"), nullable=False, index=True)
    rank: Mapped[float] = mapped_column(Float, nullable=False)

    page: Mapped["Page"] = relationship("Page", back_populates="postings")
    lemma: Mapped["Lemma"] = relationship("Lemma", back_populates="postings")
