"""Tests for the breadth-first web crawler and single-page scraper."""

from typing import Dict, List

import httpx
import pytest

from mica_checker.core.config import CrawlerSettings
from mica_checker.core.exceptions import AcquisitionError, UnsafeUrlError
from mica_checker.services.acquisition.url_guard import reject_internal_requests
from mica_checker.services.acquisition.web_crawler import WebCrawler
from mica_checker.services.acquisition.web_scraper import WebPageScraper

BODY = "This crypto-asset white paper describes the offeror, the issuer and the token rights. " * 3


def page(title: str, links: List[str], body: str = BODY) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a> ' for href in links)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<main><h1>{title}</h1><p>{body}</p>{anchors}</main>"
        f"</body></html>"
    )


SITE: Dict[str, str] = {
    "/": page("Home", ["/team", "/token", "/risks?ref=home", "https://elsewhere.example.org/"]),
    "/team": page("Team", ["/", "/roadmap"]),
    "/token": page("Token", ["/risks#top"]),
    "/risks": page("Risks", []),
    "/roadmap": page("Roadmap", []),
}


def make_client(site: Dict[str, str], requested: List[str]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        if request.url.host != "token.example.com" or request.url.path not in site:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=site[request.url.path], headers={"content-type": "text/html"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def redirecting_client(requested: List[str]) -> httpx.AsyncClient:
    """Site whose /go page redirects to the cloud metadata address."""
    site = {"/": page("Home", ["/go"])}

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        if request.url.path == "/go":
            return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/meta-data"})
        if request.url.path in site:
            return httpx.Response(200, text=site[request.url.path], headers={"content-type": "text/html"})
        return httpx.Response(404, text="not found")

    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        follow_redirects=True,
        event_hooks={"request": [reject_internal_requests]},
    )


async def no_sleep(_: float) -> None:
    return None


class TestWebCrawler:
    """Test suite for WebCrawler."""

    @pytest.fixture
    def settings(self) -> CrawlerSettings:
        return CrawlerSettings(max_pages=20, max_depth=10, min_content_chars=100, request_delay=0)

    @pytest.mark.asyncio
    async def test_stops_at_max_pages(self, settings):
        """A five-page site crawled with a cap of three keeps three pages."""
        requested: List[str] = []
        async with make_client(SITE, requested) as client:
            crawler = WebCrawler(client, settings, sleep=no_sleep)
            result = await crawler.crawl("https://token.example.com/", max_pages=3)

        assert len(result.pages) == 3
        assert [p.url for p in result.pages] == [
            "https://token.example.com/",
            "https://token.example.com/team",
            "https://token.example.com/token",
        ]
        assert len(requested) == 3

    @pytest.mark.asyncio
    async def test_same_host_only_and_deduplicated(self, settings):
        requested: List[str] = []
        async with make_client(SITE, requested) as client:
            crawler = WebCrawler(client, settings, sleep=no_sleep)
            result = await crawler.crawl("https://token.example.com/")

        urls = [p.url for p in result.pages]
        assert len(urls) == 5
        assert len(set(urls)) == 5
        assert "https://token.example.com/risks" in urls
        assert all("elsewhere.example.org" not in url for url in requested)

    @pytest.mark.asyncio
    async def test_max_depth(self, settings):
        requested: List[str] = []
        async with make_client(SITE, requested) as client:
            crawler = WebCrawler(client, settings, sleep=no_sleep)
            result = await crawler.crawl("https://token.example.com/", max_depth=1)

        urls = [p.url for p in result.pages]
        assert "https://token.example.com/roadmap" not in urls
        assert len(urls) == 4

    @pytest.mark.asyncio
    async def test_short_pages_are_visited_but_not_kept(self, settings):
        site = {"/": page("Home", ["/thin"]), "/thin": page("Thin", [], body="tiny")}
        requested: List[str] = []
        async with make_client(site, requested) as client:
            crawler = WebCrawler(client, settings, sleep=no_sleep)
            result = await crawler.crawl("https://token.example.com/")

        assert [p.url for p in result.pages] == ["https://token.example.com/"]
        assert "https://token.example.com/thin" in result.visited

    @pytest.mark.asyncio
    async def test_failed_fetch_is_skipped(self, settings):
        site = {"/": page("Home", ["/missing", "/team"]), "/team": page("Team", [])}
        requested: List[str] = []
        async with make_client(site, requested) as client:
            crawler = WebCrawler(client, settings, sleep=no_sleep)
            result = await crawler.crawl("https://token.example.com/")

        assert [p.title for p in result.pages] == ["Home", "Team"]

    @pytest.mark.asyncio
    async def test_redirect_to_internal_address_is_skipped(self, settings):
        requested: List[str] = []
        async with redirecting_client(requested) as client:
            crawler = WebCrawler(client, settings, sleep=no_sleep)
            result = await crawler.crawl("https://token.example.com/")

        assert [p.title for p in result.pages] == ["Home"]
        assert "https://token.example.com/go" in result.visited
        assert not any("169.254" in url for url in requested)

    @pytest.mark.asyncio
    async def test_delay_between_requests(self):
        settings = CrawlerSettings(max_pages=20, max_depth=10, min_content_chars=100, request_delay=0.5)
        delays: List[float] = []

        async def record_sleep(seconds: float) -> None:
            delays.append(seconds)

        requested: List[str] = []
        async with make_client(SITE, requested) as client:
            crawler = WebCrawler(client, settings, sleep=record_sleep)
            await crawler.crawl("https://token.example.com/", max_pages=2)

        assert delays == [0.5]

    @pytest.mark.asyncio
    async def test_page_text_includes_title_and_url(self, settings):
        requested: List[str] = []
        async with make_client(SITE, requested) as client:
            crawler = WebCrawler(client, settings, sleep=no_sleep)
            result = await crawler.crawl("https://token.example.com/", max_pages=1)

        text = result.pages[0].as_text()
        assert text.startswith("# Home\nURL: https://token.example.com/")
        assert "token rights" in text


class TestWebPageScraper:
    """Test suite for WebPageScraper."""

    @pytest.mark.asyncio
    async def test_scrapes_single_page(self):
        requested: List[str] = []
        async with make_client(SITE, requested) as client:
            scraper = WebPageScraper(client, CrawlerSettings(min_content_chars=100))
            scraped = await scraper.scrape("https://token.example.com/team")

        assert scraped.title == "Team"
        assert "offeror" in scraped.content
        assert requested == ["https://token.example.com/team"]

    @pytest.mark.asyncio
    async def test_insufficient_content_raises(self):
        site = {"/": page("Home", [], body="short")}
        async with make_client(site, []) as client:
            scraper = WebPageScraper(client, CrawlerSettings(min_content_chars=100))
            with pytest.raises(AcquisitionError, match="Insufficient content"):
                await scraper.scrape("https://token.example.com/")

    @pytest.mark.asyncio
    async def test_redirect_to_internal_address_raises(self):
        requested: List[str] = []
        async with redirecting_client(requested) as client:
            scraper = WebPageScraper(client, CrawlerSettings(min_content_chars=100))
            with pytest.raises(UnsafeUrlError):
                await scraper.scrape("https://token.example.com/go")

        assert requested == ["https://token.example.com/go"]

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        async with make_client({}, []) as client:
            scraper = WebPageScraper(client, CrawlerSettings())
            with pytest.raises(AcquisitionError):
                await scraper.scrape("https://token.example.com/")
