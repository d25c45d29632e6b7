"""Shared pytest fixtures for SiteSearch tests.

Provides a temporary SQLite-backed ``AppContext``, an in-memory HTTP session
that serves a small site, a deterministic morphology adapter and a Flask test
client, so that test modules can focus on behaviour rather than boilerplate.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

import pytest
import requests
from sqlalchemy import select

from sitesearch.app import create_app
from sitesearch.bootstrap import build_context
from sitesearch.config import AppConfig, IndexingSettings, SiteConfig
from sitesearch.models import Page, Site, SiteStatus
from sitesearch.repositories import PageRepository, SiteRepository
from sitesearch.services.morphology import WordAnalysis

BASE_URL = "http://test.local"

FAST_SETTINGS: Dict[str, Any] = {
    "min_delay_ms": 0,
    "default_delay_ms": 0,
    "max_retries": 2,
    "max_concurrent_pages": 2,
    "monitor_interval": 0.05,
    "stop_grace_seconds": 3.0,
    "crawl_grace_seconds": 3.0,
}


def html_page(title: str, body: str, links: Iterable[str] = ()) -> str:
    anchors = "".join(f'<a href="{href}"></a>' for href in links)
    return f"<html><head><title>{title}</title></head><body><p>{body}</p>{anchors}</body></html>"


DEFAULT_PAGES: Dict[str, Any] = {
    "/": html_page(
        "Главная",
        "Добро пожаловать",
        [
            "/cats",
            "/dogs",
            "/cats?sort=1",
            "/admin/panel",
            "/page.php",
            "http://other.site/x",
            "mailto:owner@test.local",
            "#top",
            "/broken",
            "/down",
            "/report",
            BASE_URL + "/dogs/",
        ],
    ),
    "/cats": html_page("Кошки", "Коты и кошки. Кот спит.", ["/", "/cats/black"]),
    "/cats/black": html_page("Чёрный", "Чёрный кот", ["/cats"]),
    "/dogs": html_page("Собаки", "Собаки лают", ["/"]),
    "/broken": 500,
    "/down": requests.ConnectionError("connection refused"),
    "/report": ("application/pdf", "%PDF-1.4"),
}


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeMorphology:
    """Identity lemmatizer with a few Russian inflections and functional words."""

    FUNCTIONAL = {"и": "CONJ", "в": "PREP", "на": "PREP", "ой": "INTJ"}
    FORMS = {
        "коты": "кот",
        "кота": "кот",
        "коту": "кот",
        "кошки": "кошка",
        "собаки": "собака",
        "собак": "собака",
        "лают": "лаять",
        "спит": "спать",
        "спят": "спать",
    }

    def analyze(self, word: str) -> List[WordAnalysis]:
        if word in self.FUNCTIONAL:
            return [WordAnalysis(word, frozenset({self.FUNCTIONAL[word]}))]
        return [WordAnalysis(self.FORMS.get(word, word), frozenset({"NOUN"}))]


class FakeResponse:
    def __init__(self, status_code: int, text: str, content_type: str = "text/html; charset=utf-8"):
        self.status_code = status_code
        self.text = text
        self.headers = {"Content-Type": content_type}


def site_map(base_url: str, pages: Dict[str, Any]) -> Dict[str, Any]:
    return {(base_url + path).rstrip("/"): value for path, value in pages.items()}


class FakeSession:
    """Serves an in-memory site map and records every requested URL.

    Values are HTML strings, HTTP status codes, exceptions to raise or
    ``(content_type, body)`` tuples.
    """

    def __init__(self, pages: Dict[str, Any]):
        self.pages = dict(pages)
        self.calls: List[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        key = url.rstrip("/")
        with self._lock:
            self.calls.append(key)
        value = self.pages.get(key, 404)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, int):
            return FakeResponse(value, "")
        if isinstance(value, tuple):
            return FakeResponse(200, value[1], value[0])
        return FakeResponse(200, value)

    def call_counts(self) -> Counter:
        with self._lock:
            return Counter(self.calls)

    def close(self) -> None:
        self.closed = True


class BlockingSession:
    """Every request hangs until the session is closed, then fails."""

    def __init__(self) -> None:
        self.released = threading.Event()
        self.calls = 0
        self._cond = threading.Condition()

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        with self._cond:
            self.calls += 1
            self._cond.notify_all()
        self.released.wait(10)
        raise requests.ConnectionError(f"{url}: connection closed")

    def wait_for_calls(self, count: int, timeout: float = 5.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self.calls >= count, timeout)

    def close(self) -> None:
        self.released.set()


class Seeder:
    """Creates sites and indexed pages directly through the repositories."""

    def __init__(self, context) -> None:
        self.context = context

    def site(self, url: str = BASE_URL, name: str = "Test site", status: SiteStatus = SiteStatus.INDEXED) -> int:
        with self.context.database.session() as session:
            return SiteRepository(session).create(url, name, status).id

    def page(self, site_id: int, path: str, text: str, title: Optional[str] = None) -> int:
        with self.context.database.session() as session:
            page_id = PageRepository(session).add(site_id, path, 200, html_page(title or path, text)).id
        self.context.index_builder.index_page_content(page_id, site_id, text)
        return page_id


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_context(tmp_path):
    """Factory for isolated contexts; every created context is shut down after the test."""
    created = []

    def factory(*, sites=None, session=None, session_factory=None, **overrides):
        settings = IndexingSettings(**{**FAST_SETTINGS, **overrides})
        config = AppConfig(
            base_dir=tmp_path,
            data_dir=tmp_path,
            database_url=f"sqlite:///{tmp_path / f'sitesearch-{len(created)}.db'}",
            sites=list(sites) if sites is not None else [SiteConfig(BASE_URL, "Test site")],
            indexing=settings,
        )
        if session_factory is None:
            http = session if session is not None else FakeSession(site_map(BASE_URL, DEFAULT_PAGES))
            session_factory = lambda: http  # noqa: E731
        ctx = build_context(config, morphology=FakeMorphology(), session_factory=session_factory)
        created.append(ctx)
        return ctx

    yield factory
    for ctx in created:
        ctx.shutdown()


@pytest.fixture()
def fake_http() -> FakeSession:
    return FakeSession(site_map(BASE_URL, DEFAULT_PAGES))


@pytest.fixture()
def context(make_context, fake_http):
    return make_context(session=fake_http)


@pytest.fixture()
def seed(context) -> Seeder:
    return Seeder(context)


@pytest.fixture()
def app(context):
    flask_app = create_app(context=context)
    flask_app.config.update({"TESTING": True})
    return flask_app


@pytest.fixture()
def client(app):
    """Flask test client for issuing HTTP requests."""
    return app.test_client()


def saved_paths(context, site_id: Optional[int] = None) -> set:
    stmt = select(Page.path)
    if site_id is not None:
        stmt = stmt.where(Page.site_id == site_id)
    with context.database.session() as session:
        return set(session.scalars(stmt))


def site_rows(context) -> List[Site]:
    with context.database.session() as session:
        return SiteRepository(session).list_all()
