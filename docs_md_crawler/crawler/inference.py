"""
Docs-root inference and page-shape heuristics.

When no root path is configured, the crawl is bounded by a root guessed from
the start URL and its navigation links. The segment vocabularies below are
English-centric; sites using other conventions may get a wrong root.
"""

import re
from collections import Counter
from typing import Iterable, List, Optional
from urllib.parse import urljoin

from ..utils.log import get_logger
from ..utils.paths import (
    get_origin,
    get_url_path,
    normalize_root_path,
    normalize_url,
    path_starts_with_root,
    relative_segments,
    split_path_segments,
)


# First path segments that never name a docs root
GENERIC_SEGMENTS = frozenset({
    "category", "categories", "tag", "tags", "author", "authors", "page", "pages",
    "search", "archive", "archives", "feed", "rss", "login", "signin", "signup",
    "register", "account", "user", "users", "cart", "checkout", "wp-content",
    "wp-admin", "static", "assets", "images", "img", "cdn-cgi",
})

# First path segments that usually hold documentation
DOC_HINT_SEGMENTS = frozenset({
    "docs", "doc", "documentation", "guide", "guides", "api", "reference", "manual",
    "manuals", "kb", "knowledge-base", "knowledgebase", "help", "handbook", "learn",
    "tutorial", "tutorials", "wiki", "developer", "developers", "support", "book",
})

HINT_WEIGHT = 4
MIN_PLAIN_SCORE = 2

LISTING_ROOTS = frozenset({"category", "categories", "tag", "tags", "author", "authors"})
NON_CONTENT_LEAVES = frozenset({
    "home", "index", "about", "contact", "privacy", "terms", "search", "login",
    "signin", "signup", "register", "logout", "sitemap",
})
FEED_LEAVES = frozenset({"feed", "rss", "atom"})
_PAGINATION_NUMBER = re.compile(r"^\d+$")

logger = get_logger("inference")


def infer_docs_root_path(
    start_url: str,
    candidate_links: Iterable[str],
    fallback_path: str = "/"
) -> str:
    """
    Infer the documentation root path of a site.

    A start URL with a meaningful first segment defines the root directly.
    Otherwise same-origin candidate links vote with their first segment;
    documentation-like segments weigh HINT_WEIGHT times more. The winner is
    used if it is hint-listed or scored at least MIN_PLAIN_SCORE.

    Args:
        start_url: URL the crawl starts from
        candidate_links: Navigation or content links of the start page
        fallback_path: Root returned when no segment wins

    Returns:
        Root path such as "/docs", or the normalized fallback
    """
    start_segments = split_path_segments(get_url_path(start_url))
    if start_segments:
        first = start_segments[0]
        if first.lower() not in GENERIC_SEGMENTS and "." not in first:
            return "/" + first

    origin = get_origin(start_url)
    scores: Counter = Counter()
    seen = set()
    for link in candidate_links:
        url = normalize_url(urljoin(start_url, link))
        if not url or url in seen or get_origin(url) != origin:
            continue
        seen.add(url)
        segments = split_path_segments(get_url_path(url))
        if not segments:
            continue
        segment = segments[0]
        if segment.lower() in GENERIC_SEGMENTS or "." in segment:
            continue
        scores[segment] += HINT_WEIGHT if segment.lower() in DOC_HINT_SEGMENTS else 1

    if scores:
        # Highest score, ties broken alphabetically
        segment, score = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[0]
        if segment.lower() in DOC_HINT_SEGMENTS or score >= MIN_PLAIN_SCORE:
            logger.debug(f"Inferred docs root /{segment} (score {score})")
            return "/" + segment

    return normalize_root_path(fallback_path)


def derive_category_path_prefixes(
    start_url: str,
    category_urls: Iterable[str],
    docs_root_path: str
) -> List[str]:
    """
    Collect the section prefixes a category-seeded crawl may enter.

    Each same-origin link below the docs root contributes the root plus its
    first segment under the root. With no qualifying link, the docs root
    itself is the only prefix.

    Returns:
        Sorted, de-duplicated list of path prefixes
    """
    root = normalize_root_path(docs_root_path)
    root_segments = split_path_segments(root)
    origin = get_origin(start_url)
    prefixes = set()

    for link in category_urls:
        url = normalize_url(urljoin(start_url, link))
        if not url or get_origin(url) != origin:
            continue
        path = get_url_path(url)
        if not path_starts_with_root(path, root):
            continue
        rel = relative_segments(split_path_segments(path), root_segments)
        if not rel:
            prefixes.add(root)
        elif root == "/":
            prefixes.add("/" + rel[0])
        else:
            prefixes.add(f"{root}/{rel[0]}")

    if not prefixes:
        return [root]
    if root in prefixes:
        return [root]
    return sorted(prefixes)


def is_likely_doc_url_by_structure(url: str) -> bool:
    """
    Guess whether a URL is a finished article rather than a listing page.

    Listing roots, single-segment site pages, pagination and feeds are not
    articles; any path of two or more segments is, and so is a single long
    hyphenated slug.
    """
    segments = [segment.lower() for segment in split_path_segments(get_url_path(url))]
    if not segments:
        return False
    if segments[0] in LISTING_ROOTS:
        return False
    if len(segments) == 1 and segments[0] in NON_CONTENT_LEAVES:
        return False
    for index, segment in enumerate(segments[:-1]):
        if segment == "page" and _PAGINATION_NUMBER.match(segments[index + 1]):
            return False
    if segments[-1] in FEED_LEAVES or segments[-1].endswith(".xml"):
        return False
    if len(segments) >= 2:
        return True
    slug = segments[0]
    return len(slug) >= 12 and "-" in slug


class DocLikenessPolicy:
    """
    Decides whether a page looks like a finished article.

    The discovery engine skips content-link expansion on such pages. Replace
    the policy to tune the heuristic for a particular site.
    """

    def is_likely_doc(self, url: str) -> bool:
        raise NotImplementedError


class StructuralDocPolicy(DocLikenessPolicy):
    """Default policy backed by is_likely_doc_url_by_structure()."""

    def is_likely_doc(self, url: str) -> bool:
        return is_likely_doc_url_by_structure(url)


class NeverDocPolicy(DocLikenessPolicy):
    """Treats every page as a listing, so content links are always expanded."""

    def is_likely_doc(self, url: str) -> bool:
        return False


def resolve_root(explicit_root: Optional[str], start_url: str, candidate_links: Iterable[str]) -> str:
    """Use the configured root when given, otherwise infer one."""
    if explicit_root:
        return normalize_root_path(explicit_root)
    return infer_docs_root_path(start_url, candidate_links, "/")
