"""
robots.txt and sitemap discovery.

Used by directory-only discovery to seed pages that are listed in the site's
sitemaps. Malformed sitemaps are skipped, never fatal.
"""

import re
from collections import deque
from typing import Callable, Deque, List, Optional, Set
from urllib.parse import urljoin

from lxml import etree

from ..utils.log import get_logger
from .fetcher import FetchError, HttpFetcher


_SITEMAP_LINE = re.compile(r"^\s*sitemap\s*:\s*(\S+)", re.IGNORECASE)

# Hard cap on sitemap documents fetched in one session
MAX_SITEMAP_DOCUMENTS = 50


def parse_sitemaps_from_robots(robots_text: str, origin: str) -> List[str]:
    """
    Extract Sitemap: directives from robots.txt content.

    Args:
        robots_text: robots.txt file content
        origin: Site origin used to resolve relative sitemap URLs

    Returns:
        Absolute sitemap URLs in file order
    """
    urls: List[str] = []
    for line in (robots_text or "").splitlines():
        match = _SITEMAP_LINE.match(line)
        if not match:
            continue
        try:
            urls.append(urljoin(origin + "/", match.group(1)))
        except ValueError:
            continue
    return urls


def parse_sitemap_xml(xml_text: str) -> Optional[tuple]:
    """
    Parse a sitemap or sitemap index document.

    Returns:
        (page_urls, nested_sitemap_urls), or None if the XML is malformed
    """
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
    try:
        root = etree.fromstring(xml_text.strip().encode("utf-8"), parser=parser)
    except (etree.XMLSyntaxError, ValueError):
        return None
    if root is None:
        return None

    pages: List[str] = []
    nested: List[str] = []
    for element in root.iter():
        if not isinstance(element.tag, str) or etree.QName(element).localname != "loc":
            continue
        parent = element.getparent()
        if parent is None:
            continue
        value = (element.text or "").strip()
        if not value:
            continue
        kind = etree.QName(parent).localname
        if kind == "url":
            pages.append(value)
        elif kind == "sitemap":
            nested.append(value)
    return pages, nested


class SitemapDiscovery:
    """
    Collects page URLs from /sitemap.xml and robots.txt sitemaps.

    Nested sitemap indexes are followed breadth-first, bounded by max_depth
    levels, MAX_SITEMAP_DOCUMENTS documents and max_urls collected pages.
    """

    def __init__(self, fetcher: HttpFetcher):
        self.fetcher = fetcher
        self.logger = get_logger("sitemap")

    async def discover(
        self,
        origin: str,
        max_urls: int,
        max_depth: int,
        should_continue: Optional[Callable[[], bool]] = None
    ) -> List[str]:
        """
        Gather page URLs listed in the site's sitemaps.

        Args:
            origin: Site origin, e.g. "https://example.com"
            max_urls: Stop once this many page URLs were found
            max_depth: Maximum sitemap-index nesting level followed
            should_continue: Polled between documents; False stops early

        Returns:
            Page URLs in discovery order, without duplicates
        """
        candidates = [urljoin(origin + "/", "/sitemap.xml")]
        try:
            robots = await self.fetcher.fetch_text(urljoin(origin + "/", "/robots.txt"), retries=1)
            candidates.extend(parse_sitemaps_from_robots(robots, origin))
        except FetchError as e:
            self.logger.debug(f"No robots.txt sitemaps: {e}")

        queue: Deque[tuple] = deque((url, 0) for url in dict.fromkeys(candidates))
        visited: Set[str] = set()
        found: List[str] = []
        found_set: Set[str] = set()

        while queue and len(found) < max_urls and len(visited) < MAX_SITEMAP_DOCUMENTS:
            if should_continue is not None and not should_continue():
                break
            sitemap_url, depth = queue.popleft()
            if sitemap_url in visited:
                continue
            visited.add(sitemap_url)

            try:
                xml_text = await self.fetcher.fetch_text(sitemap_url, retries=1)
            except FetchError as e:
                self.logger.debug(f"Sitemap {sitemap_url} unavailable: {e}")
                continue

            parsed = parse_sitemap_xml(xml_text)
            if parsed is None:
                self.logger.warning(f"Skipping malformed sitemap {sitemap_url}")
                continue

            pages, nested = parsed
            for page in pages:
                if page not in found_set:
                    found_set.add(page)
                    found.append(page)
                    if len(found) >= max_urls:
                        break
            if depth < max_depth:
                for child in nested:
                    if child not in visited:
                        queue.append((child, depth + 1))

        self.logger.info(f"Sitemaps listed {len(found)} pages ({len(visited)} documents read)")
        return found
