"""
Discovery engine: finds the documentation pages reachable from a start page.

Seeds come from the start page's sidebar (or its content links when there is
no sidebar), its header categories and, in directory-only mode, the site's
sitemaps. Deep mode then crawls breadth-first in concurrency-bounded batches.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Set

from bs4 import BeautifulSoup

from ..models import CrawlQueueEntry, DiscoveredPage, DiscoveryMode, SourceKind
from ..session import Session
from ..utils.concurrency import run_pool
from ..utils.constants import (
    DEFAULT_DISCOVERY_CONCURRENCY,
    DEFAULT_EXCLUDES,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    MAX_PAGES_LIMIT,
)
from ..utils.log import get_logger
from ..utils.paths import (
    get_origin,
    get_url_path,
    normalize_url,
    path_starts_with_root,
    sanitize_segment,
    title_from_url,
)
from .content import extract_doc_title, extract_site_name
from .fetcher import FetchError, HttpFetcher, HttpStatusError
from .harvester import HarvestedLink, LinkHarvester, parse_html
from .inference import (
    DocLikenessPolicy,
    StructuralDocPolicy,
    derive_category_path_prefixes,
    resolve_root,
)
from .scope import is_in_scope, matches_path_prefix
from .sitemap import SitemapDiscovery


def clamp_max_pages(value: int) -> int:
    """Keep a user-supplied page limit within 1..MAX_PAGES_LIMIT."""
    return max(1, min(int(value), MAX_PAGES_LIMIT))


@dataclass
class DiscoveryOptions:
    """Parameters of one discovery run."""

    root_path: Optional[str] = None
    max_pages: int = DEFAULT_MAX_PAGES
    max_depth: int = DEFAULT_MAX_DEPTH
    concurrency: int = DEFAULT_DISCOVERY_CONCURRENCY
    exclude_patterns: Sequence[str] = DEFAULT_EXCLUDES
    mode: DiscoveryMode = DiscoveryMode.DEEP
    expand_articles: bool = False
    use_sitemap: bool = True


@dataclass
class DiscoveryResult:
    """Page list and the scope it was discovered under."""

    pages: List[DiscoveredPage] = field(default_factory=list)
    root_path: str = "/"
    category_prefixes: List[str] = field(default_factory=list)
    stopped: bool = False


class DiscoveryEngine:
    """
    Orchestrates URL discovery for one session.

    Shared collections are only touched between await points, so the
    cooperative asyncio scheduler needs no extra locking here.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        session: Optional[Session] = None,
        options: Optional[DiscoveryOptions] = None,
        harvester: Optional[LinkHarvester] = None,
        doc_policy: Optional[DocLikenessPolicy] = None,
        sitemap: Optional[SitemapDiscovery] = None
    ):
        self.fetcher = fetcher
        self.session = session or Session()
        self.options = options or DiscoveryOptions()
        self.options.max_pages = clamp_max_pages(self.options.max_pages)
        self.harvester = harvester or LinkHarvester()
        self.doc_policy = doc_policy or StructuralDocPolicy()
        self.sitemap = sitemap or SitemapDiscovery(fetcher)
        self.logger = get_logger("discovery")

        self.start_url = ""
        self.origin = ""
        self.root_path = "/"
        self.category_prefixes: List[str] = []

        self._discovered: Dict[str, SourceKind] = {}
        self._visited: Set[str] = set()
        self._queue: Deque[CrawlQueueEntry] = deque()
        self._anchor_titles: Dict[str, str] = {}
        self._page_titles: Dict[str, str] = {}

    @property
    def queued(self) -> int:
        return len(self._queue)

    async def discover(self, start_url: str, seed_html: Optional[str] = None) -> DiscoveryResult:
        """
        Run discovery from a start page.

        Args:
            start_url: Page the user started from
            seed_html: Already-loaded HTML of the start page; fetched when None

        Returns:
            DiscoveryResult with pages sorted by URL

        Raises:
            ValueError: If start_url is not an absolute http(s) URL
        """
        start = normalize_url(start_url)
        if not start or not start.startswith(("http://", "https://")):
            raise ValueError(f"Invalid start URL: {start_url!r}")

        self.start_url = start
        self.origin = get_origin(start)
        control = self.session.control

        soup = await self._load_seed_page(start, seed_html)
        nav_links: List[HarvestedLink] = []
        content_links: List[HarvestedLink] = []
        category_links: List[HarvestedLink] = []
        if soup is not None:
            nav_links = self.harvester.navigation_links(soup, start, self._same_site)
            category_links = self.harvester.category_links(soup, start, self._same_site)
            if not nav_links:
                content_links = self.harvester.content_links(soup, start, self._same_site)
            self._page_titles[start] = extract_doc_title(soup, start)
            self.session.site_name = extract_site_name(soup)

        seed_links = nav_links or content_links
        self.root_path = resolve_root(
            self.options.root_path, start, [link.url for link in seed_links]
        )
        self.category_prefixes = derive_category_path_prefixes(
            start,
            [start] + [link.url for link in category_links] + [link.url for link in seed_links],
            self.root_path
        )
        self.session.root_path = self.root_path
        self.logger.info(
            f"Docs root {self.root_path}, sections: {', '.join(self.category_prefixes)}"
        )

        self._add(start, 0, SourceKind.START)
        seed_kind = SourceKind.NAV_SEED if nav_links else SourceKind.SEED
        for link in seed_links:
            self._add(link.url, 1, seed_kind, link.title)
        for link in category_links:
            self._add(link.url, 1, SourceKind.CATEGORY_SEED, link.title)

        if self.options.mode == DiscoveryMode.DIRECTORY:
            if self.options.use_sitemap and not control.stop_requested:
                await self._seed_from_sitemaps()
        else:
            await self._crawl()

        pages = [
            DiscoveredPage(url=url, title=self.resolve_title(url))
            for url in sorted(self._discovered)
        ]
        self.session.pages = pages
        self.session.update_progress(found=len(pages), queued=len(self._queue), current_url="")
        self.logger.info(f"Discovered {len(pages)} pages")

        return DiscoveryResult(
            pages=pages,
            root_path=self.root_path,
            category_prefixes=list(self.category_prefixes),
            stopped=control.stop_requested
        )

    def resolve_title(self, url: str) -> str:
        """Fetched-page title, else anchor text, else the decoded URL leaf."""
        title = self._page_titles.get(url)
        if title:
            return title
        anchor = self._anchor_titles.get(url)
        if anchor:
            return sanitize_segment(anchor, "index")
        return sanitize_segment(title_from_url(url), "index")

    def is_accepted(self, url: str) -> bool:
        """Scope, docs-root and section checks applied to every non-start URL."""
        if not is_in_scope(url, self.origin, None, self.options.exclude_patterns):
            return False
        if not path_starts_with_root(get_url_path(url), self.root_path):
            return False
        return matches_path_prefix(url, self.category_prefixes)

    async def rediscover(self, url: str) -> Optional[DiscoveredPage]:
        """
        Fetch one URL again after a failure and add it to the page list.

        Raises:
            FetchError: If the page still cannot be fetched
        """
        url = normalize_url(url)
        html = await self.fetcher.fetch_text(url)
        self.session.html_cache[url] = html
        soup = parse_html(html)
        self._page_titles[url] = extract_doc_title(soup, url)
        if url not in self._discovered:
            self._discovered[url] = SourceKind.CRAWL
        page = DiscoveredPage(url=url, title=self.resolve_title(url))
        pages = [p for p in self.session.pages if p.url != url] + [page]
        self.session.pages = sorted(pages, key=lambda p: p.url)
        return page

    def _same_site(self, url: str) -> bool:
        return get_origin(url) == self.origin

    async def _load_seed_page(self, start: str, seed_html: Optional[str]) -> Optional[BeautifulSoup]:
        if seed_html is not None:
            self.session.html_cache[start] = seed_html
            return parse_html(seed_html)
        html = await self._fetch_page(start)
        return parse_html(html) if html is not None else None

    async def _fetch_page(self, url: str) -> Optional[str]:
        cached = self.session.html_cache.get(url)
        if cached is not None:
            return cached
        try:
            html = await self.fetcher.fetch_text(url)
        except FetchError as e:
            # A failed URL is never fetched twice in one run
            self._visited.add(url)
            if isinstance(e, HttpStatusError) and e.is_gone:
                self.logger.debug(f"Skipping missing page ({e}): {url}")
                return None
            self.session.record_failure(url, f"discover:{e}", self.resolve_title(url))
            return None
        self.session.html_cache[url] = html
        return html

    def _add(self, url: str, depth: int, source: SourceKind, title: str = "") -> bool:
        url = normalize_url(url)
        if not url:
            return False
        if source != SourceKind.START and not self.is_accepted(url):
            return False
        if title and url not in self._anchor_titles:
            self._anchor_titles[url] = title
        if url in self._discovered:
            return False
        if len(self._discovered) >= self.options.max_pages:
            return False

        self._discovered[url] = source
        self._queue.append(CrawlQueueEntry(url=url, depth=depth, source=source))
        self.session.emit("page", url=url, source=source.value, depth=depth)
        self.session.update_progress(found=len(self._discovered), queued=len(self._queue))
        return True

    async def _seed_from_sitemaps(self) -> None:
        control = self.session.control
        remaining = self.options.max_pages - len(self._discovered)
        if remaining <= 0:
            return
        urls = await self.sitemap.discover(
            self.origin,
            max_urls=self.options.max_pages * 4,
            max_depth=self.options.max_depth,
            should_continue=lambda: not control.stop_requested
        )
        for url in urls:
            if len(self._discovered) >= self.options.max_pages:
                break
            self._add(url, 1, SourceKind.SITEMAP)

    async def _crawl(self) -> None:
        control = self.session.control
        limit = max(1, int(self.options.concurrency))

        while self._queue:
            if not await control.checkpoint():
                break
            batch = [self._queue.popleft() for _ in range(min(limit, len(self._queue)))]
            self.session.update_progress(queued=len(self._queue))
            await run_pool(batch, limit, self._process_entry)

        if control.stop_requested:
            self.logger.info(f"Discovery stopped with {len(self._queue)} URLs still queued")

    async def _process_entry(self, entry: CrawlQueueEntry, index: int) -> None:
        if not await self.session.control.checkpoint():
            # Keep the entry so a stopped run still reports it as queued
            self._queue.appendleft(entry)
            return
        if entry.url in self._visited:
            return
        self._visited.add(entry.url)
        if entry.depth >= self.options.max_depth:
            return

        self.session.update_progress(current_url=entry.url)
        html = await self._fetch_page(entry.url)
        if html is None:
            return

        soup = parse_html(html)
        self._page_titles[entry.url] = extract_doc_title(soup, entry.url)
        depth = entry.depth + 1
        accept = self._same_site

        for link in self.harvester.category_links(soup, entry.url, accept):
            self._add(link.url, depth, SourceKind.CATEGORY, link.title)
        for link in self.harvester.navigation_links(soup, entry.url, accept):
            self._add(link.url, depth, SourceKind.NAV, link.title)
        if self.options.expand_articles or not self.doc_policy.is_likely_doc(entry.url):
            for link in self.harvester.content_links(soup, entry.url, accept):
                self._add(link.url, depth, SourceKind.CRAWL, link.title)

        self.session.update_progress(done=len(self._visited))
