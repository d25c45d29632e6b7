import threading

from sitesearch.config import SiteConfig
from sitesearch.models import SiteStatus
from sitesearch.services.indexing import (
    ALREADY_RUNNING,
    NO_SITES,
    NOT_RUNNING,
    PAGE_FAILED,
    STOPPED_BY_USER,
)

from conftest import BASE_URL, BlockingSession, FakeSession, html_page, saved_paths, site_map, site_rows


class TestIndexingRun:
    def test_full_run_indexes_configured_site(self, context):
        assert context.indexing.start_indexing().ok
        assert context.indexing.wait(10)
        assert not context.indexing.is_running()

        [site] = site_rows(context)
        assert site.status == SiteStatus.INDEXED
        assert site.url == BASE_URL
        assert saved_paths(context) == {"/", "/cats", "/cats/black", "/dogs"}

    def test_rerun_replaces_previous_records(self, context):
        for _ in range(2):
            assert context.indexing.start_indexing().ok
            assert context.indexing.wait(10)
        sites = site_rows(context)
        assert len(sites) == 1
        assert len(saved_paths(context)) == 4
        assert context.statistics.get_statistics().total.pages == 4

    def test_start_without_sites(self, make_context):
        ctx = make_context(sites=[])
        result = ctx.indexing.start_indexing()
        assert not result.ok
        assert result.error == NO_SITES

    def test_failed_site_does_not_abort_siblings(self, make_context):
        http = FakeSession({**site_map(BASE_URL, {"/": html_page("A", "кот")}), **site_map("http://b.test", {"/": html_page("B", "лес")})})
        lock = threading.Lock()
        calls = []

        def session_factory():
            with lock:
                calls.append(1)
                if len(calls) == 1:
                    raise RuntimeError("boom")
            return http

        ctx = make_context(
            sites=[SiteConfig(BASE_URL, "A"), SiteConfig("http://b.test", "B")],
            session_factory=session_factory,
        )
        assert ctx.indexing.start_indexing().ok
        assert ctx.indexing.wait(10)

        statuses = sorted((site.status.value, site.last_error) for site in site_rows(ctx))
        assert statuses == [("FAILED", "boom"), ("INDEXED", None)]


class TestStartStopGuards:
    def test_stop_when_idle_is_rejected(self, context):
        result = context.indexing.stop_indexing()
        assert not result.ok
        assert result.error == NOT_RUNNING

    def test_start_while_running_is_rejected(self, make_context):
        http = BlockingSession()
        ctx = make_context(session=http)
        assert ctx.indexing.start_indexing().ok
        assert http.wait_for_calls(1)

        result = ctx.indexing.start_indexing()
        assert not result.ok
        assert result.error == ALREADY_RUNNING
        assert ctx.indexing.stop_indexing().ok

    def test_stop_marks_every_running_site_failed(self, make_context):
        http = BlockingSession()
        sites = [SiteConfig(f"http://{name}.test", name) for name in ("a", "b", "c")]
        ctx = make_context(sites=sites, session=http)
        assert ctx.indexing.start_indexing().ok
        assert http.wait_for_calls(3)

        assert ctx.indexing.stop_indexing().ok
        assert not ctx.indexing.is_running()

        rows = site_rows(ctx)
        assert len(rows) == 3
        assert all(site.status == SiteStatus.FAILED for site in rows)
        assert all(site.last_error == STOPPED_BY_USER for site in rows)

        second = ctx.indexing.stop_indexing()
        assert not second.ok
        assert second.error == NOT_RUNNING

        assert ctx.indexing.start_indexing().ok
        assert ctx.indexing.wait(10)


class TestIndexPage:
    def test_page_outside_configured_sites_is_rejected(self, context, fake_http):
        result = context.indexing.index_page("http://elsewhere.test/page")
        assert not result.ok
        assert result.error == PAGE_FAILED
        assert site_rows(context) == []
        assert fake_http.calls == []

    def test_page_of_unindexed_site_creates_site(self, context):
        result = context.indexing.index_page(BASE_URL + "/cats")
        assert result.ok
        [site] = site_rows(context)
        assert site.status == SiteStatus.INDEXED
        assert saved_paths(context) == {"/cats"}

    def test_failed_page_marks_new_site_failed(self, context):
        result = context.indexing.index_page(BASE_URL + "/broken")
        assert not result.ok
        assert result.error == PAGE_FAILED
        [site] = site_rows(context)
        assert site.status == SiteStatus.FAILED

    def test_reindex_keeps_other_pages(self, context):
        assert context.indexing.start_indexing().ok
        assert context.indexing.wait(10)

        assert context.indexing.index_page(BASE_URL + "/dogs").ok

        assert saved_paths(context) == {"/", "/cats", "/cats/black", "/dogs"}
        [site] = site_rows(context)
        assert site.status == SiteStatus.INDEXED
