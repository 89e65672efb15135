"""
Main-content location and page metadata extraction.
"""

from typing import Tuple

from bs4 import BeautifulSoup, Tag

from ..utils.paths import sanitize_segment, title_from_url
from .harvester import clean_text, text_without_ruby


MAIN_CONTENT_SELECTORS: Tuple[str, ...] = (
    "article",
    "main",
    "[role='main']",
    ".theme-doc-markdown",
    ".markdown-body",
    ".md-content",
    ".docs-content",
    ".content",
)

# A candidate node needs this much text to beat the <body> fallback
MIN_CONTENT_TEXT = 100

STRIPPED_TAGS = ("script", "style", "noscript", "iframe", "nav", "header", "footer", "aside")


def extract_doc_title(soup: BeautifulSoup, fallback_url: str) -> str:
    """
    Display title of a page: first h1, then <title>, then the URL's leaf.

    Returns:
        Sanitized, non-empty title
    """
    title = ""
    h1 = soup.find("h1")
    if h1 is not None:
        title = text_without_ruby(h1)
    if not title and soup.title is not None:
        title = clean_text(soup.title.get_text())
    if not title:
        title = title_from_url(fallback_url)
    return sanitize_segment(title, "index")


def extract_site_name(soup: BeautifulSoup) -> str:
    """Site name from og:site_name or application-name metadata ("" if absent)."""
    for attrs in ({"property": "og:site_name"}, {"name": "application-name"}, {"name": "og:site_name"}):
        meta = soup.find("meta", attrs=attrs)
        if meta is not None:
            content = clean_text(meta.get("content"))
            if content:
                return content
    return ""


def extract_main_node(soup: BeautifulSoup) -> Tag:
    """
    Locate the element holding the page's main content.

    The first selector match with more than MIN_CONTENT_TEXT characters of
    text wins; otherwise the whole body (or document) is used.
    """
    for selector in MAIN_CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is not None and len(node.get_text(strip=True)) > MIN_CONTENT_TEXT:
            return node
    return soup.body or soup


def clean_node_for_markdown(node: Tag) -> Tag:
    """Remove scripts, styles, embedded frames and page chrome in place."""
    for tag in node.find_all(STRIPPED_TAGS):
        tag.decompose()
    return node


def front_matter(title: str, source_url: str) -> str:
    """Metadata header prepended to every converted page."""
    def quoted(value: str) -> str:
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'

    return "\n".join([
        "---",
        f"title: {quoted(title)}",
        f"source: {quoted(source_url)}",
        "---",
        "",
    ])
