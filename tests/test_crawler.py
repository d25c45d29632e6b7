import pytest

from sitesearch.config import IndexingSettings, SiteConfig
from sitesearch.models import SiteStatus
from sitesearch.repositories import LemmaRepository, SiteRepository
from sitesearch.services.crawler import BUILTIN_DENYLIST, PageFetchError, SiteCrawler
from sitesearch.services.frontier import CancelToken

from conftest import BASE_URL, FakeSession, html_page, saved_paths, site_map


@pytest.fixture()
def make_crawler(context, fake_http):
    def factory(token=None, session=None):
        with context.database.session() as db:
            site_id = SiteRepository(db).create(BASE_URL, "Test site", SiteStatus.INDEXING).id
        return SiteCrawler(
            context.config.sites[0],
            site_id,
            database=context.database,
            settings=context.config.indexing,
            index_builder=context.index_builder,
            token=token,
            session=session or fake_http,
        )

    return factory


def _site(context, site_id):
    with context.database.session() as db:
        return SiteRepository(db).get(site_id)


class TestCrawlSite:
    def test_crawls_reachable_same_site_pages(self, context, fake_http, make_crawler):
        crawler = make_crawler()
        stats = crawler.crawl_site()

        assert saved_paths(context, crawler.site_id) == {"/", "/cats", "/cats/black", "/dogs"}
        assert stats.saved.value == 4
        assert stats.as_dict() == {"discovered": stats.discovered.value, "saved": 4, "failed": 1}
        assert _site(context, crawler.site_id).status == SiteStatus.INDEXED

        calls = fake_http.call_counts()
        assert all(count == 1 for url, count in calls.items() if url not in {BASE_URL + "/broken", BASE_URL + "/down"})
        assert not any("admin" in url or ".php" in url or "other.site" in url for url in calls)

    def test_non_200_and_errors_are_retried_then_abandoned(self, context, fake_http, make_crawler):
        crawler = make_crawler()
        stats = crawler.crawl_site()

        calls = fake_http.call_counts()
        assert calls[BASE_URL + "/broken"] == 2
        assert calls[BASE_URL + "/down"] == 2
        assert stats.failed.value == 1
        assert "/broken" not in saved_paths(context)
        assert "/report" not in saved_paths(context)

    def test_depth_limit(self, context, make_crawler):
        context.config.indexing.max_depth = 1
        crawler = make_crawler()
        crawler.crawl_site()
        assert saved_paths(context) == {"/", "/cats", "/dogs"}

    def test_max_pages_per_site(self, context, make_crawler):
        context.config.indexing.max_pages_per_site = 2
        crawler = make_crawler()
        crawler.crawl_site()
        assert saved_paths(context) == {"/", "/cats"}

    def test_exclude_patterns_are_full_matched(self, context, make_crawler):
        context.config.indexing.exclude_patterns = ["/dogs.*", "/cat"]
        crawler = make_crawler()
        crawler.crawl_site()
        assert saved_paths(context) == {"/", "/cats", "/cats/black"}

    def test_links_with_query_string_are_not_followed(self, context, make_crawler):
        pages = {
            "/": html_page("Главная", "текст", ["/list?page=2", "/news#latest"]),
            "/list": html_page("Список", "текст"),
            "/news": html_page("Новости", "текст"),
        }
        http = FakeSession(site_map(BASE_URL, pages))
        crawler = make_crawler(session=http)
        crawler.crawl_site()

        assert saved_paths(context, crawler.site_id) == {"/"}
        assert http.calls == [BASE_URL]

    def test_indexes_page_text(self, context, make_crawler):
        crawler = make_crawler()
        crawler.crawl_site()
        with context.database.session() as db:
            lemmas = LemmaRepository(db)
            assert lemmas.find(crawler.site_id, "кот").frequency == 2
            assert lemmas.find(crawler.site_id, "собака").frequency == 1

    def test_cancelled_run_fetches_nothing_and_keeps_status(self, context, fake_http, make_crawler):
        token = CancelToken()
        token.cancel()
        crawler = make_crawler(token=token)
        crawler.crawl_site()
        assert fake_http.calls == []
        assert saved_paths(context) == set()
        assert _site(context, crawler.site_id).status == SiteStatus.INDEXING
        assert fake_http.closed


class TestCrawlSinglePage:
    def test_reindex_replaces_page_and_frequencies(self, context, fake_http, make_crawler):
        crawler = make_crawler()
        crawler.crawl_site()
        fake_http.pages[BASE_URL + "/dogs"] = html_page("Собаки", "Собаки спят")

        crawler.crawl_single_page(BASE_URL + "/dogs/")

        assert saved_paths(context) == {"/", "/cats", "/cats/black", "/dogs"}
        with context.database.session() as db:
            lemmas = LemmaRepository(db)
            assert lemmas.find(crawler.site_id, "лаять") is None
            assert lemmas.find(crawler.site_id, "спать").frequency == 2
            assert lemmas.find(crawler.site_id, "собака").frequency == 1

    def test_failed_fetch_raises(self, make_crawler):
        crawler = make_crawler()
        with pytest.raises(PageFetchError):
            crawler.crawl_single_page(BASE_URL + "/broken")
        with pytest.raises(PageFetchError):
            crawler.crawl_single_page(BASE_URL + "/down")


class TestPolicies:
    def test_retry_delay_is_linear_over_domain_delay(self, context):
        settings = IndexingSettings(min_delay_ms=500, default_delay_ms=1000, site_delays={"test.local": 100})
        crawler = SiteCrawler(
            SiteConfig("http://www.test.local", "Test"),
            1,
            database=context.database,
            settings=settings,
            index_builder=context.index_builder,
            session=FakeSession({}),
        )
        assert crawler.retry_delay(1) == 0.5
        assert crawler.retry_delay(6) == pytest.approx(0.6)

        other = SiteCrawler(
            SiteConfig("http://other.test", "Other"),
            1,
            database=context.database,
            settings=settings,
            index_builder=context.index_builder,
            session=crawler.http,
        )
        assert other.retry_delay(2) == 2.0

    @pytest.mark.parametrize(
        "path",
        ["/index.php", "/login", "/user/register", "/admin/", "/auth/callback", "/a.aspx", "/search?q=1", "/a&b"],
    )
    def test_builtin_denylist(self, path):
        assert BUILTIN_DENYLIST.match(path)

    @pytest.mark.parametrize("path", ["/", "/news/2024", "/catalog/item-1"])
    def test_builtin_denylist_allows_content(self, path):
        assert not BUILTIN_DENYLIST.match(path)

    def test_should_skip_respects_site_depth(self, make_crawler):
        crawler = make_crawler()
        assert not crawler.should_skip("/a", 5)
        assert crawler.should_skip("/a", 6)
        assert crawler.should_skip("/admin/x", 1)
