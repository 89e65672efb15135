"""
Link harvester for documentation pages.

Extracts three kinds of links from a parsed page: content-body links,
sidebar navigation links and top-level category links. Each kind walks a
prioritized list of scope selectors and uses the first one that matches.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, NavigableString, Tag

from ..utils.log import get_logger
from ..utils.paths import normalize_url


# Content: article/main containers first, the whole body last
CONTENT_SCOPE_SELECTORS: Tuple[str, ...] = (
    "article",
    "main",
    "[role='main']",
    ".theme-doc-markdown",
    ".markdown-body",
    ".md-content",
    ".docs-content",
    ".content",
    "body",
)

# Sidebar: explicit left-nav markers, then framework sidebars, then generic
NAV_SCOPE_SELECTORS: Tuple[str, ...] = (
    "[data-left-nav]",
    "[data-testid='left-nav'], [data-qa='left-nav'], [data-nav='left']",
    ".theme-doc-sidebar-container",
    ".md-sidebar--primary",
    ".VPSidebar",
    ".wy-nav-side",
    ".bd-sidebar, .bd-docs-nav",
    ".book-summary",
    ".docs-sidebar, .doc-sidebar, .sidebar-nav, .left-nav, .leftnav",
    "#sidebar, .sidebar",
    "aside",
    "nav[aria-label*='ocs'], nav[aria-label*='idebar']",
    "nav",
    ".toc, #toc, [role='navigation']",
)

# Categories: header/top menus, any nav as last resort
CATEGORY_SCOPE_SELECTORS: Tuple[str, ...] = (
    "header nav",
    "[role='banner'] nav",
    ".navbar, .navbar__items",
    ".md-tabs",
    ".VPNav, .VPNavBar",
    ".top-nav, .topnav, .header-nav, .main-nav",
    "header",
    "nav",
)

CONTENT_CHROME = frozenset({"header", "footer", "nav"})
NAV_CHROME = frozenset({"header", "footer"})
CATEGORY_CHROME = frozenset({"footer"})

_CHROME_ROLES = {
    "banner": "header",
    "contentinfo": "footer",
    "navigation": "nav",
}

_REJECTED_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")
_BARE_DOMAIN = re.compile(r"^(?:[a-z0-9-]+\.)+([a-z]{2,})(?::\d+)?(?=[/?#]|$)", re.IGNORECASE)
_FILE_LIKE_SUFFIXES = frozenset({
    "html", "htm", "shtml", "xhtml", "php", "asp", "aspx", "jsp", "md", "txt",
    "xml", "json", "cgi",
})
_TITLE_CHILD_SELECTOR = "[data-title], .title, .card-title, .menu__link-title, h1, h2, h3, h4"
_WHITESPACE = re.compile(r"\s+")


@dataclass
class HarvestedLink:
    """A candidate link: normalized URL plus the text that described it."""

    url: str
    title: str = ""


def parse_html(html: str) -> BeautifulSoup:
    """Parse HTML with lxml, falling back to the stdlib parser."""
    try:
        return BeautifulSoup(html, "lxml")
    except Exception:
        return BeautifulSoup(html, "html.parser")


def resolve_href(raw: Optional[str], base_url: str) -> str:
    """
    Turn an href attribute into an absolute http(s) URL.

    Rejects empty, hash-only, whitespace-containing and javascript/mailto/
    tel/data hrefs. Protocol-relative and bare-domain hrefs are upgraded to
    https before resolving against base_url.

    Returns:
        Absolute URL, or "" if the href is not a usable link
    """
    if raw is None:
        return ""
    href = str(raw).strip()
    if not href or href.startswith("#"):
        return ""
    if any(char.isspace() for char in href):
        return ""
    if href.lower().startswith(_REJECTED_PREFIXES):
        return ""

    if href.startswith("//"):
        href = "https:" + href
    else:
        match = _BARE_DOMAIN.match(href)
        if match and match.group(1).lower() not in _FILE_LIKE_SUFFIXES:
            href = "https://" + href

    try:
        absolute = urljoin(base_url, href)
        scheme = urlsplit(absolute).scheme.lower()
    except ValueError:
        return ""
    if scheme not in ("http", "https"):
        return ""
    return absolute


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace of extracted text."""
    return _WHITESPACE.sub(" ", text or "").strip()


def text_without_ruby(tag: Tag) -> str:
    """Text of a tag, skipping ruby annotations (<rt>, <rp>)."""
    parts: List[str] = []
    for node in tag.descendants:
        if type(node) is not NavigableString:
            continue
        if _has_ancestor(node, ("rt", "rp", "script", "style"), stop=tag):
            continue
        parts.append(str(node))
    return clean_text("".join(parts))


def _has_ancestor(node, names: Tuple[str, ...], stop: Tag) -> bool:
    for parent in node.parents:
        if parent is stop:
            return False
        if parent.name in names:
            return True
    return False


def _chrome_kind(tag: Tag) -> Optional[str]:
    if tag.name in ("header", "footer", "nav"):
        return tag.name
    role = (tag.get("role") or "").strip().lower()
    return _CHROME_ROLES.get(role)


def _inside_chrome(tag: Tag, excluded: Iterable[str], stop: Optional[Tag] = None) -> bool:
    """Check whether a tag sits in an excluded chrome container below `stop`."""
    excluded = frozenset(excluded)
    for parent in tag.parents:
        if parent is stop:
            return False
        if isinstance(parent, Tag) and not isinstance(parent, BeautifulSoup) \
                and _chrome_kind(parent) in excluded:
            return True
    return False


class LinkHarvester:
    """
    Extracts content, navigation and category links from parsed pages.

    Anchors nested inside header/footer/nav chrome are skipped according to
    the link kind, so global navigation is not harvested twice.
    """

    def __init__(
        self,
        content_selectors: Sequence[str] = CONTENT_SCOPE_SELECTORS,
        nav_selectors: Sequence[str] = NAV_SCOPE_SELECTORS,
        category_selectors: Sequence[str] = CATEGORY_SCOPE_SELECTORS
    ):
        self.content_selectors = tuple(content_selectors)
        self.nav_selectors = tuple(nav_selectors)
        self.category_selectors = tuple(category_selectors)
        self.logger = get_logger("harvester")

    def content_links(
        self,
        soup: BeautifulSoup,
        base_url: str,
        accept: Optional[Callable[[str], bool]] = None
    ) -> List[HarvestedLink]:
        """Links in the article/main body of the page."""
        return self._harvest(
            soup, base_url, self.content_selectors, CONTENT_CHROME, accept, self._content_title
        )

    def navigation_links(
        self,
        soup: BeautifulSoup,
        base_url: str,
        accept: Optional[Callable[[str], bool]] = None
    ) -> List[HarvestedLink]:
        """Links of the left sidebar / table of contents."""
        return self._harvest(
            soup, base_url, self.nav_selectors, NAV_CHROME, accept, self._anchor_title
        )

    def category_links(
        self,
        soup: BeautifulSoup,
        base_url: str,
        accept: Optional[Callable[[str], bool]] = None
    ) -> List[HarvestedLink]:
        """Links of the header / top navigation menus."""
        return self._harvest(
            soup, base_url, self.category_selectors, CATEGORY_CHROME, accept, self._anchor_title
        )

    def resolve_scopes(
        self,
        soup: BeautifulSoup,
        selectors: Sequence[str],
        excluded: Iterable[str]
    ) -> List[Tag]:
        """
        Find the scope elements of the first selector that matches.

        Scopes nested inside excluded chrome, or inside another selected
        scope, are dropped.
        """
        excluded = frozenset(excluded)
        for selector in selectors:
            try:
                found = soup.select(selector)
            except Exception as e:
                self.logger.debug(f"Selector {selector!r} failed: {e}")
                continue
            scopes: List[Tag] = []
            for tag in found:
                if _chrome_kind(tag) in excluded or _inside_chrome(tag, excluded):
                    continue
                if any(parent is scope for scope in scopes for parent in tag.parents):
                    continue
                scopes.append(tag)
            if scopes:
                return scopes
        return []

    def _harvest(
        self,
        soup: BeautifulSoup,
        base_url: str,
        selectors: Sequence[str],
        excluded: Iterable[str],
        accept: Optional[Callable[[str], bool]],
        describe: Callable[[Tag], str]
    ) -> List[HarvestedLink]:
        links: List[HarvestedLink] = []
        seen: Dict[str, int] = {}

        for scope in self.resolve_scopes(soup, selectors, excluded):
            for anchor in scope.find_all("a", href=True):
                if _inside_chrome(anchor, excluded, stop=scope):
                    continue
                absolute = resolve_href(anchor.get("href"), base_url)
                url = normalize_url(absolute)
                if not url or (accept is not None and not accept(url)):
                    continue
                title = describe(anchor)
                if url in seen:
                    if title and not links[seen[url]].title:
                        links[seen[url]].title = title
                    continue
                seen[url] = len(links)
                links.append(HarvestedLink(url=url, title=title))

        return links

    @staticmethod
    def _anchor_title(anchor: Tag) -> str:
        explicit = clean_text(anchor.get("title"))
        return explicit or text_without_ruby(anchor)

    @staticmethod
    def _content_title(anchor: Tag) -> str:
        for attr in ("title", "aria-label", "data-title"):
            value = clean_text(anchor.get(attr))
            if value:
                return value
        marked = anchor.select_one(_TITLE_CHILD_SELECTOR)
        if marked is not None:
            text = text_without_ruby(marked)
            if text:
                return text
        return text_without_ruby(anchor)
